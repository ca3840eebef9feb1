# mlm_system/services/rate_service.py
"""
Level commission rate table - versioned, admin editable.
"""
from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Tuple, Sequence, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

import config
from models import CommissionConfig
from mlm_system.config.commissions import LEVEL_COUNT
from mlm_system.exceptions import ValidationError
from mlm_system.events.event_bus import eventBus, MLMEvents

logger = logging.getLogger(__name__)


class RateTable(NamedTuple):
    """Immutable snapshot of level rates handed to a distribution run."""
    version: int
    rates: Tuple[Decimal, ...]

    def rateFor(self, level: int) -> Decimal:
        """Rate for 1-based level; zero beyond the table."""
        if 1 <= level <= len(self.rates):
            return self.rates[level - 1]
        return Decimal("0")


def defaultRateTable() -> RateTable:
    return RateTable(version=0, rates=tuple(config.DEFAULT_LEVEL_RATES))


def validateRates(rates: Sequence) -> Tuple[Decimal, ...]:
    """Exactly 5 non-negative decimal fractions. Sum and order are not checked."""
    if rates is None or isinstance(rates, (str, bytes)) or len(rates) != LEVEL_COUNT:
        raise ValidationError(f"Rate table must contain exactly {LEVEL_COUNT} values")

    validated = []
    for index, value in enumerate(rates, start=1):
        try:
            rate = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Level {index} rate is not a number: {value!r}")
        if not rate.is_finite() or rate < 0:
            raise ValidationError(f"Level {index} rate must be a non-negative number: {value!r}")
        validated.append(rate)

    return tuple(validated)


class RateService:
    """Service for reading and updating the level rate table."""

    def __init__(self, session: Session):
        self.session = session

    async def getCurrentRates(self) -> RateTable:
        """Latest persisted version, or the configured defaults as version 0."""
        current = self.session.query(CommissionConfig).order_by(
            CommissionConfig.version.desc()
        ).first()

        if not current:
            return defaultRateTable()

        return RateTable(
            version=current.version,
            rates=tuple(Decimal(str(r)) for r in current.rates)
        )

    async def updateRates(self, rates: Sequence, updatedBy: Optional[int] = None) -> RateTable:
        """
        Write a new version of the rate table.

        Raises:
            ValidationError: wrong length or a negative/non-numeric value
        """
        validated = validateRates(rates)

        lastVersion = self.session.query(func.max(CommissionConfig.version)).scalar() or 0
        row = CommissionConfig(
            version=lastVersion + 1,
            rates=[str(r) for r in validated],
            updatedBy=updatedBy
        )
        self.session.add(row)
        self.session.flush()

        table = RateTable(version=row.version, rates=validated)
        logger.info(f"Level rates updated to version {table.version} by {updatedBy}: {row.rates}")

        await eventBus.emit(MLMEvents.RATES_UPDATED, {
            "version": table.version,
            "rates": row.rates,
            "updatedBy": updatedBy
        })

        return table
