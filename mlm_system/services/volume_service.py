# mlm_system/services/volume_service.py
"""
Volume service - personal and team PV over the current month.

Team volume is computed on demand from the referredBy/referralCode subtree;
nothing is pushed up the tree when an order is placed.
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

from models import User, Order
from mlm_system.config.commissions import PV_STATUSES
from mlm_system.utils.chain_walker import ChainWalker
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

Window = Tuple[datetime, datetime]

# Ограничение на размер IN (...) для SQLite
_ID_CHUNK = 500


class VolumeService:
    """Service for personal and team volumes."""

    def __init__(self, session: Session):
        self.session = session
        self.walker = ChainWalker(session)

    async def getPersonalPV(self, userId: int, window: Optional[Window] = None) -> Decimal:
        """Sum of totalPV of the user's orders in the window with a PV-eligible status."""
        return self._sumOrders([userId], Order.totalPV, window)

    async def getTeamPV(
            self,
            user: User,
            window: Optional[Window] = None,
            personalPV: Optional[Decimal] = None
    ) -> Decimal:
        """Personal PV plus the personal PV of every descendant, at any depth."""
        if personalPV is None:
            personalPV = await self.getPersonalPV(user.userID, window)

        descendants = self.walker.walk_downline(user)
        if not descendants:
            return personalPV

        downlinePV = self._sumOrders([d.userID for d in descendants], Order.totalPV, window)
        return personalPV + downlinePV

    async def getTeamStats(self, user: User, window: Optional[Window] = None) -> Dict:
        """
        Non-PV progress figures for a user.

        Returns:
            directReferrals, teamSize, teamSales (order amount of the whole
            downline in the window), teamPV (downline only)
        """
        descendants = self.walker.walk_downline(user)
        directCount = len(self.walker.get_direct_referrals(user))
        ids = [d.userID for d in descendants]

        stats = {
            "directReferrals": directCount,
            "teamSize": len(descendants),
            "teamSales": self._sumOrders(ids, Order.totalAmount, window) if ids else Decimal("0"),
            "teamPV": self._sumOrders(ids, Order.totalPV, window) if ids else Decimal("0"),
        }

        logger.info(
            f"Team stats for user {user.userID}: direct={stats['directReferrals']}, "
            f"size={stats['teamSize']}, sales={stats['teamSales']}"
        )
        return stats

    def _sumOrders(self, userIds: List[int], column, window: Optional[Window]) -> Decimal:
        if window is None:
            window = timeMachine.currentMonthRange
        start, end = window

        total = Decimal("0")
        for i in range(0, len(userIds), _ID_CHUNK):
            chunk = userIds[i:i + _ID_CHUNK]
            value = self.session.query(func.sum(column)).filter(
                Order.userID.in_(chunk),
                Order.status.in_(PV_STATUSES),
                Order.createdAt >= start,
                Order.createdAt <= end
            ).scalar()
            total += Decimal(str(value or 0))

        return total
