# mlm_system/services/earnings_service.py
"""
Ledger queries, settlement and withdrawals.

Earnings are never edited except for status (pending -> completed).
A withdrawal is a negative earning; pending withdrawals lock balance until completed.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Any
from sqlalchemy.orm import Session
from sqlalchemy import func, or_, and_
import logging

from models import User, Earning
from mlm_system.config.commissions import EarningType, EarningStatus, CENTS
from mlm_system.exceptions import ValidationError, NotFoundError
from mlm_system.utils.time_machine import timeMachine
from mlm_system.events.event_bus import eventBus, MLMEvents

logger = logging.getLogger(__name__)

_WITHDRAWAL = EarningType.WITHDRAWAL.value
_PENDING = EarningStatus.PENDING.value
_COMPLETED = EarningStatus.COMPLETED.value


class EarningsService:
    """Service for reading and settling the earnings ledger."""

    def __init__(self, session: Session):
        self.session = session

    async def getUserEarnings(self, userId: int) -> Dict[str, Any]:
        """Earnings list (newest first) and summary figures for one user."""
        income = and_(Earning.userID == userId, Earning.type != _WITHDRAWAL)
        thisMonthStart, now = timeMachine.currentMonthRange
        lastMonthStart, lastMonthEnd = timeMachine.lastMonthRange

        stats = {
            "total": self._sum(income),
            "pending": self._sum(income, Earning.status == _PENDING),
            "thisMonth": self._sum(income, Earning.date >= thisMonthStart),
            "lastMonth": self._sum(income, Earning.date >= lastMonthStart, Earning.date < lastMonthEnd),
            "withdrawn": -self._sum(
                Earning.userID == userId, Earning.type == _WITHDRAWAL, Earning.status == _COMPLETED
            ),
            "available": await self.getAvailableBalance(userId),
        }

        earnings = self.session.query(Earning).filter(
            Earning.userID == userId
        ).order_by(Earning.date.desc(), Earning.earningID.desc()).all()

        return {"earnings": earnings, "stats": stats}

    async def listEarnings(
            self,
            userId: Optional[int] = None,
            status: Optional[str] = None,
            earningType: Optional[str] = None,
            startDate: Optional[datetime] = None,
            endDate: Optional[datetime] = None
    ) -> List[Earning]:
        """Admin ledger view with optional filters."""
        query = self.session.query(Earning)
        if userId is not None:
            query = query.filter(Earning.userID == userId)
        if status:
            query = query.filter(Earning.status == status)
        if earningType:
            query = query.filter(Earning.type == earningType)
        if startDate:
            query = query.filter(Earning.date >= startDate)
        if endDate:
            query = query.filter(Earning.date <= endDate)
        return query.order_by(Earning.date.desc(), Earning.earningID.desc()).all()

    async def getAvailableBalance(self, userId: int) -> Decimal:
        """Completed income minus every withdrawal, pending ones included."""
        return self._sum(
            Earning.userID == userId,
            or_(
                and_(Earning.type != _WITHDRAWAL, Earning.status == _COMPLETED),
                Earning.type == _WITHDRAWAL
            )
        )

    async def settleEarnings(
            self,
            userId: Optional[int] = None,
            earningIds: Optional[List[int]] = None
    ) -> int:
        """Mark pending income earnings as completed. Returns the number settled."""
        query = self.session.query(Earning).filter(
            Earning.status == _PENDING,
            Earning.type != _WITHDRAWAL
        )
        if userId is not None:
            query = query.filter(Earning.userID == userId)
        if earningIds is not None:
            if not earningIds:
                return 0
            query = query.filter(Earning.earningID.in_(earningIds))

        settled = query.update({Earning.status: _COMPLETED}, synchronize_session='fetch')
        self.session.flush()

        logger.info(f"Settled {settled} earnings (user={userId}, ids={earningIds})")
        return settled

    async def requestWithdrawal(self, userId: int, amount) -> Earning:
        """
        Post a pending negative withdrawal earning.

        Raises:
            ValidationError: amount not positive or above the available balance
            NotFoundError: unknown user
        """
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise ValidationError("Invalid amount")
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Invalid amount")
        amount = amount.quantize(CENTS)

        if not self.session.query(User.userID).filter_by(userID=userId).first():
            raise NotFoundError(f"User {userId} not found")

        available = await self.getAvailableBalance(userId)
        if amount > available:
            raise ValidationError("Requested amount exceeds available balance")

        withdrawal = Earning(
            userID=userId,
            amount=-amount,
            type=_WITHDRAWAL,
            status=_PENDING,
            description="Withdrawal request"
        )
        self.session.add(withdrawal)
        self.session.flush()

        logger.info(f"Withdrawal {withdrawal.earningID} of {amount} requested by user {userId}")

        await eventBus.emit(MLMEvents.WITHDRAWAL_REQUESTED, {
            "userID": userId,
            "earningID": withdrawal.earningID,
            "amount": str(amount)
        })

        return withdrawal

    async def completeWithdrawal(self, earningId: int) -> Earning:
        withdrawal = self.session.query(Earning).filter_by(earningID=earningId).first()
        if not withdrawal or withdrawal.type != _WITHDRAWAL:
            raise NotFoundError(f"Withdrawal {earningId} not found")
        if withdrawal.status != _PENDING:
            raise ValidationError(f"Withdrawal {earningId} is already {withdrawal.status}")

        withdrawal.status = _COMPLETED
        self.session.flush()

        logger.info(f"Withdrawal {earningId} completed for user {withdrawal.userID}")
        return withdrawal

    def _sum(self, *conditions) -> Decimal:
        value = self.session.query(func.sum(Earning.amount)).filter(*conditions).scalar()
        return Decimal(str(value or 0))
