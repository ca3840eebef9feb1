# mlm_system/services/commission_service.py
"""
Commission distribution service - posts level, franchise and self commissions
for a delivered order.

Every sub-ledger (mlm_level, franchise, self_commission) is gated independently:
    1. an existing earning of that type for the order means "already done"
    2. a DistributionClaim insert makes the check atomic under concurrency
Each posting runs in its own savepoint, so one failed posting does not undo the others.
"""
from copy import deepcopy
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Union
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
import logging

import config
from models import Order, Earning, Franchise, DistributionClaim
from models.order import _empty_commissions
from mlm_system.config.commissions import EarningType, EarningStatus, OrderType, PERCENT, CENTS
from mlm_system.services.rate_service import RateService, RateTable
from mlm_system.utils.chain_walker import ChainWalker
from mlm_system.events.event_bus import eventBus, MLMEvents

logger = logging.getLogger(__name__)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class CommissionService:
    """Service for distributing MLM commissions."""

    def __init__(self, session: Session):
        self.session = session
        self.walker = ChainWalker(session)

    async def distributeAllCommissions(
            self,
            order: Union[Order, int],
            rates: Optional[RateTable] = None,
            includeSelf: Optional[bool] = None
    ) -> Dict:
        """
        Run the level and franchise steps (and optionally self commission).
        The steps are independent: a failure in one does not stop the others.
        """
        if includeSelf is None:
            includeSelf = config.SELF_COMMISSION_ON_DELIVERY

        steps = [
            ("mlm", self.distributeOrderCommissions, (order, rates)),
            ("franchise", self.distributeFranchiseCommission, (order,)),
        ]
        if includeSelf:
            steps.append(("self", self.distributeSelfCommission, (order,)))

        results = {"success": True}
        for name, step, args in steps:
            try:
                results[name] = await step(*args)
            except Exception as e:
                logger.error(f"Commission step '{name}' failed for order {order}: {e}", exc_info=True)
                results[name] = {"success": False, "error": str(e)}

            if not results[name].get("success"):
                results["success"] = False

        return results

    async def distributeOrderCommissions(
            self,
            order: Union[Order, int],
            rates: Optional[RateTable] = None
    ) -> Dict:
        """
        Post level commissions to up to 5 ancestors of the buyer, per item.

        An admin ancestor consumes its level but receives nothing; the level's
        commission is forfeited rather than passed to the next ancestor.
        Safe to call any number of times for the same order.
        """
        order = self._resolveOrder(order)
        if not order:
            return {"success": False, "error": "Order not found"}

        results = {
            "success": True,
            "orderID": order.orderID,
            "skipped": False,
            "postings": [],
            "forfeited": [],
            "totalDistributed": Decimal("0")
        }

        if self._hasEarning(order.orderID, EarningType.MLM_LEVEL):
            logger.info(f"Level commissions already posted for order {order.orderID}, skipping")
            return self._skipped(results, "already_distributed")

        # Один снимок ставок на весь заказ
        if rates is None:
            rates = await RateService(self.session).getCurrentRates()
        results["rateVersion"] = rates.version

        if not self._claim(order.orderID, EarningType.MLM_LEVEL, rates.version):
            return self._skipped(results, "already_claimed")

        buyer = order.user
        if not buyer:
            logger.warning(f"Buyer {order.userID} of order {order.orderID} not found")
            return results

        upline = self.walker.resolve_upline(buyer)

        for level, ancestor in enumerate(upline, start=1):
            if ancestor.isAdmin:
                logger.info(
                    f"Level {level} of order {order.orderID} forfeited: "
                    f"ancestor {ancestor.userID} is admin"
                )
                results["forfeited"].append({"level": level, "user": ancestor.userID})

        for item in order.items:
            itemValue = Decimal(str(item.productPrice)) * Decimal(item.quantity)

            for level, ancestor in enumerate(upline, start=1):
                if ancestor.isAdmin:
                    continue

                amount = _money(itemValue * rates.rateFor(level))
                if amount <= 0:
                    continue

                earning = self._postEarning(
                    userID=ancestor.userID,
                    amount=amount,
                    type=EarningType.MLM_LEVEL.value,
                    level=level,
                    orderID=order.orderID,
                    description=f"Level {level} commission from order #{order.orderID} ({item.productName})"
                )
                if earning is None:
                    continue

                posting = {
                    "user": ancestor.userID,
                    "level": level,
                    "amount": str(amount),
                    "earningID": earning.earningID,
                    "product": item.productName
                }
                results["postings"].append(posting)
                results["totalDistributed"] += amount

        self._appendToCache(order, "mlm", results["postings"])

        logger.info(
            f"Distributed level commissions for order {order.orderID}: "
            f"{len(results['postings'])} postings, total {results['totalDistributed']}, "
            f"rates v{rates.version}"
        )

        await eventBus.emit(MLMEvents.COMMISSION_DISTRIBUTED, {
            "orderID": order.orderID,
            "postings": len(results["postings"]),
            "total": str(results["totalDistributed"]),
            "rateVersion": rates.version
        })

        return results

    async def distributeFranchiseCommission(self, order: Union[Order, int]) -> Dict:
        """
        Post the franchise owner's share of the whole order total and update
        the franchise running totals.
        """
        order = self._resolveOrder(order)
        if not order:
            return {"success": False, "error": "Order not found"}

        results = {
            "success": True,
            "orderID": order.orderID,
            "skipped": False,
            "amount": Decimal("0")
        }

        if not order.franchiseID:
            return self._skipped(results, "no_franchise")

        franchise = self.session.query(Franchise).filter_by(franchiseID=order.franchiseID).first()
        if not franchise:
            logger.warning(f"Franchise {order.franchiseID} for order {order.orderID} not found")
            return self._skipped(results, "franchise_not_found")

        if not franchise.ownerID:
            logger.warning(f"Franchise {franchise.franchiseID} has no owner, order {order.orderID} skipped")
            return self._skipped(results, "no_owner")

        if self._hasEarning(order.orderID, EarningType.FRANCHISE):
            logger.info(f"Franchise commission already posted for order {order.orderID}, skipping")
            return self._skipped(results, "already_distributed")

        orderTotal = Decimal(str(order.totalAmount))
        percentage = Decimal(str(franchise.commissionPercentage or 0))
        amount = _money(orderTotal * percentage / PERCENT)

        claimed = False
        try:
            with self.session.begin_nested():
                self.session.add(DistributionClaim(
                    orderID=order.orderID,
                    commissionType=EarningType.FRANCHISE.value
                ))
                self.session.flush()
                claimed = True

                earning = Earning(
                    userID=franchise.ownerID,
                    amount=amount,
                    type=EarningType.FRANCHISE.value,
                    orderID=order.orderID,
                    franchiseID=franchise.franchiseID,
                    status=EarningStatus.PENDING.value,
                    description=f"Franchise commission ({percentage}%) from order #{order.orderID}"
                )
                self.session.add(earning)
                self._incrementFranchiseTotals(franchise, order, amount, orderTotal)
        except IntegrityError:
            if claimed:
                logger.error(f"Franchise posting failed for order {order.orderID}", exc_info=True)
                return {**results, "success": False, "error": "posting failed"}
            logger.info(f"Franchise commission for order {order.orderID} claimed by another run")
            return self._skipped(results, "already_claimed")
        except Exception as e:
            logger.error(f"Franchise posting failed for order {order.orderID}: {e}", exc_info=True)
            return {**results, "success": False, "error": str(e)}

        # Franchise totals were changed by a bulk UPDATE
        self.session.expire(franchise, ['totalCommission', 'salesOnline', 'salesOffline', 'salesTotal'])

        self._setCacheSection(order, "franchise", {
            "franchise": franchise.franchiseID,
            "owner": franchise.ownerID,
            "percentage": str(percentage),
            "amount": str(amount),
            "earningID": earning.earningID
        })

        results["amount"] = amount
        results["earningID"] = earning.earningID

        logger.info(
            f"Franchise commission {amount} posted to owner {franchise.ownerID} "
            f"of franchise {franchise.franchiseID} for order {order.orderID}"
        )

        await eventBus.emit(MLMEvents.FRANCHISE_COMMISSION_POSTED, {
            "orderID": order.orderID,
            "franchiseID": franchise.franchiseID,
            "ownerID": franchise.ownerID,
            "amount": str(amount)
        })

        return results

    async def distributeSelfCommission(self, order: Union[Order, int]) -> Dict:
        """
        Rebate to the buyer: price * qty * selfCommissionRate / 100 for each item
        with a positive rate.
        """
        order = self._resolveOrder(order)
        if not order:
            return {"success": False, "error": "Order not found"}

        results = {
            "success": True,
            "orderID": order.orderID,
            "skipped": False,
            "postings": [],
            "totalDistributed": Decimal("0")
        }

        if self._hasEarning(order.orderID, EarningType.SELF_COMMISSION):
            return self._skipped(results, "already_distributed")

        eligibleItems = [i for i in order.items if Decimal(str(i.selfCommissionRate or 0)) > 0]
        if not eligibleItems:
            return self._skipped(results, "no_eligible_items")

        if not self._claim(order.orderID, EarningType.SELF_COMMISSION):
            return self._skipped(results, "already_claimed")

        for item in eligibleItems:
            rate = Decimal(str(item.selfCommissionRate))
            amount = _money(
                Decimal(str(item.productPrice)) * Decimal(item.quantity) * rate / PERCENT
            )
            if amount <= 0:
                continue

            earning = self._postEarning(
                userID=order.userID,
                amount=amount,
                type=EarningType.SELF_COMMISSION.value,
                orderID=order.orderID,
                description=f"Self commission ({rate}%) on {item.productName}"
            )
            if earning is None:
                continue

            results["postings"].append({
                "user": order.userID,
                "product": item.productName,
                "rate": str(rate),
                "amount": str(amount),
                "earningID": earning.earningID
            })
            results["totalDistributed"] += amount

        self._appendToCache(order, "self", results["postings"])

        logger.info(
            f"Self commission for order {order.orderID}: "
            f"{len(results['postings'])} postings, total {results['totalDistributed']}"
        )

        await eventBus.emit(MLMEvents.SELF_COMMISSION_POSTED, {
            "orderID": order.orderID,
            "userID": order.userID,
            "total": str(results["totalDistributed"])
        })

        return results

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolveOrder(self, order: Union[Order, int]) -> Optional[Order]:
        if isinstance(order, Order):
            return order

        found = self.session.query(Order).filter_by(orderID=order).first()
        if not found:
            logger.warning(f"Order {order} not found")
        return found

    def _hasEarning(self, orderId: int, earningType: EarningType) -> bool:
        return self.session.query(Earning.earningID).filter(
            Earning.orderID == orderId,
            Earning.type == earningType.value
        ).first() is not None

    def _claim(self, orderId: int, earningType: EarningType, rateVersion: Optional[int] = None) -> bool:
        """Insert the distribution claim; False if the order was already claimed."""
        try:
            with self.session.begin_nested():
                self.session.add(DistributionClaim(
                    orderID=orderId,
                    commissionType=earningType.value,
                    rateVersion=rateVersion
                ))
            return True
        except IntegrityError:
            logger.info(f"{earningType.value} for order {orderId} claimed by another run, skipping")
            return False

    def _postEarning(self, **fields) -> Optional[Earning]:
        """Insert one pending earning in its own savepoint. None on failure."""
        fields.setdefault("status", EarningStatus.PENDING.value)
        try:
            with self.session.begin_nested():
                earning = Earning(**fields)
                self.session.add(earning)
            return earning
        except Exception as e:
            logger.error(
                f"Failed to post {fields.get('type')} earning for user {fields.get('userID')} "
                f"(order {fields.get('orderID')}): {e}",
                exc_info=True
            )
            return None

    def _incrementFranchiseTotals(self, franchise: Franchise, order: Order, amount: Decimal, orderTotal: Decimal):
        # Все итоги одним атомарным UPDATE x = x + delta
        salesColumn = Franchise.salesOffline if order.orderType == OrderType.OFFLINE.value else Franchise.salesOnline
        self.session.query(Franchise).filter(
            Franchise.franchiseID == franchise.franchiseID
        ).update(
            {
                Franchise.totalCommission: func.coalesce(Franchise.totalCommission, 0) + amount,
                salesColumn: func.coalesce(salesColumn, 0) + orderTotal,
                Franchise.salesTotal: func.coalesce(Franchise.salesTotal, 0) + orderTotal,
            },
            synchronize_session=False
        )

    def _appendToCache(self, order: Order, section: str, postings: List[Dict]):
        commissions = deepcopy(order.commissions) if order.commissions else _empty_commissions()
        commissions.setdefault(section, [])
        commissions[section].extend(postings)
        order.commissions = commissions
        flag_modified(order, 'commissions')
        self.session.flush()

    def _setCacheSection(self, order: Order, section: str, value: Dict):
        commissions = deepcopy(order.commissions) if order.commissions else _empty_commissions()
        commissions[section] = value
        order.commissions = commissions
        flag_modified(order, 'commissions')
        self.session.flush()

    @staticmethod
    def _skipped(results: Dict, reason: str) -> Dict:
        results["skipped"] = True
        results["reason"] = reason
        return results
