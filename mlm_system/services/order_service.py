# mlm_system/services/order_service.py
"""
Order lifecycle adapter.

Moving an order to `delivered` writes a CommissionTask in the same transaction;
processCommissionQueue later runs the distribution. Delivery never waits on it.
"""
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Any
from sqlalchemy.orm import Session
from sqlalchemy import or_, and_
import logging

import config
from models import Order, OrderItem, User, Franchise, CommissionTask
from mlm_system.config.commissions import OrderStatus, OrderType, ALLOWED_TRANSITIONS
from mlm_system.exceptions import ValidationError, InvalidStatusTransition, NotFoundError
from mlm_system.services.commission_service import CommissionService
from mlm_system.utils.time_machine import timeMachine
from mlm_system.events.event_bus import eventBus, MLMEvents

logger = logging.getLogger(__name__)


class OrderService:
    """Service for order status changes and the commission outbox."""

    def __init__(self, session: Session):
        self.session = session

    async def createOrder(
            self,
            userId: int,
            items: List[Dict[str, Any]],
            orderType: str = OrderType.ONLINE.value,
            franchiseId: Optional[int] = None
    ) -> Order:
        """
        Create a pending order from item dicts:
        {"productName", "productPrice", "quantity", "pv", "selfCommissionRate", "productID"}
        """
        if not self.session.query(User.userID).filter_by(userID=userId).first():
            raise NotFoundError(f"User {userId} not found")
        if not items:
            raise ValidationError("Order must contain at least one item")
        if orderType not in {t.value for t in OrderType}:
            raise ValidationError(f"Unknown order type: {orderType}")
        if franchiseId and not self.session.query(Franchise.franchiseID).filter_by(franchiseID=franchiseId).first():
            raise NotFoundError(f"Franchise {franchiseId} not found")

        order = Order(
            userID=userId,
            orderType=orderType,
            franchiseID=franchiseId,
            status=OrderStatus.PENDING.value
        )
        totalAmount = Decimal("0")
        totalPV = Decimal("0")

        for data in items:
            price = _decimal(data.get("productPrice"), "productPrice")
            quantity = data.get("quantity", 1)
            pv = _decimal(data.get("pv", 0), "pv")
            rate = _decimal(data.get("selfCommissionRate", 0), "selfCommissionRate")

            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise ValidationError("quantity must be a positive integer")

            order.items.append(OrderItem(
                productID=data.get("productID"),
                productName=data.get("productName") or "Product",
                productPrice=price,
                quantity=quantity,
                pv=pv,
                selfCommissionRate=rate
            ))
            totalAmount += price * quantity
            totalPV += pv * quantity

        order.totalAmount = totalAmount
        order.totalPV = totalPV
        self.session.add(order)
        self.session.flush()

        logger.info(f"Order {order.orderID} created for user {userId}: total={totalAmount}, PV={totalPV}")
        return order

    async def updateOrderStatus(self, orderId: int, status: str) -> Order:
        """
        Apply a status transition.

        Raises:
            NotFoundError: unknown order
            ValidationError: unknown status
            InvalidStatusTransition: transition not allowed from the current status
        """
        order = self.session.query(Order).filter_by(orderID=orderId).first()
        if not order:
            raise NotFoundError(f"Order {orderId} not found")

        try:
            newStatus = OrderStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown order status: {status}")

        current = OrderStatus(order.status)
        if newStatus == current:
            return order

        if newStatus not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransition(orderId, current.value, newStatus.value)

        order.status = newStatus.value
        delivered = False

        if newStatus == OrderStatus.DELIVERED and order.deliveredAt is None:
            order.deliveredAt = timeMachine.now
            self._enqueue(order)
            delivered = True

        self.session.flush()
        logger.info(f"Order {orderId} status: {current.value} -> {newStatus.value}")

        if delivered:
            await eventBus.emit(MLMEvents.ORDER_DELIVERED, {
                "orderID": orderId,
                "userID": order.userID,
                "totalAmount": str(order.totalAmount)
            })

        return order

    async def processCommissionQueue(self, batchSize: Optional[int] = None) -> int:
        """
        Process a batch of commission tasks.
        Called by a background scheduler.

        Returns:
            Number of tasks completed
        """
        if batchSize is None:
            batchSize = config.COMMISSION_TASK_BATCH

        # Worker crashed after marking the task: pick it up again once the lease runs out
        leaseExpired = timeMachine.now - timedelta(seconds=config.COMMISSION_TASK_LEASE_SECONDS)

        tasks = self.session.query(CommissionTask).filter(
            or_(
                CommissionTask.status == 'pending',
                and_(
                    CommissionTask.status == 'failed',
                    CommissionTask.attempts < config.COMMISSION_TASK_MAX_ATTEMPTS
                ),
                and_(
                    CommissionTask.status == 'processing',
                    CommissionTask.startedAt < leaseExpired,
                    CommissionTask.attempts < config.COMMISSION_TASK_MAX_ATTEMPTS
                )
            )
        ).order_by(
            CommissionTask.priority.desc(),
            CommissionTask.createdAt.asc(),
            CommissionTask.id.asc()
        ).limit(batchSize).all()

        if not tasks:
            return 0

        processedCount = 0
        commissions = CommissionService(self.session)

        for task in tasks:
            try:
                # Mark as processing
                task.status = 'processing'
                task.startedAt = timeMachine.now
                task.attempts = (task.attempts or 0) + 1
                self.session.commit()

                result = await commissions.distributeAllCommissions(task.orderID)

                if result["success"]:
                    task.status = 'completed'
                    task.completedAt = timeMachine.now
                    task.lastError = None
                    processedCount += 1
                else:
                    task.status = 'failed'
                    task.lastError = self._describeFailure(result)

                self.session.commit()

            except Exception as e:
                logger.error(f"Error processing commission task {task.id}: {e}", exc_info=True)
                self.session.rollback()
                task.status = 'failed'
                task.lastError = str(e)[:500]
                self.session.commit()

        logger.info(f"Processed {processedCount}/{len(tasks)} commission tasks")
        return processedCount

    def _enqueue(self, order: Order):
        existing = self.session.query(CommissionTask.id).filter(
            CommissionTask.orderID == order.orderID,
            CommissionTask.status.in_(['pending', 'processing'])
        ).first()
        if existing:
            return

        self.session.add(CommissionTask(orderID=order.orderID))
        logger.info(f"Commission task queued for order {order.orderID}")

    @staticmethod
    def _describeFailure(result: Dict) -> str:
        errors = [
            f"{name}: {step.get('error')}"
            for name, step in result.items()
            if isinstance(step, dict) and not step.get("success")
        ]
        return "; ".join(errors)[:500] or "Distribution failed"


def _decimal(value, field: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite() or number < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return number
