# models/commission_queue.py
"""
Outbox of commission distribution tasks.

A task is written in the same transaction that moves an order to `delivered`,
so the delivery and the pending distribution are committed together.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from models.base import Base, _get_current_time


class CommissionTask(Base):
    """Commission distribution task queue."""
    __tablename__ = 'commission_tasks'

    id = Column(Integer, primary_key=True, autoincrement=True)
    orderID = Column(Integer, ForeignKey('orders.orderID'), nullable=False, index=True)
    priority = Column(Integer, default=0, index=True)
    status = Column(String(20), default='pending', index=True)  # pending, processing, completed, failed
    createdAt = Column(DateTime, default=_get_current_time, index=True)
    startedAt = Column(DateTime, nullable=True)
    completedAt = Column(DateTime, nullable=True)
    attempts = Column(Integer, default=0)
    lastError = Column(String, nullable=True)

    def __repr__(self):
        return f"<CommissionTask(order={self.orderID}, status={self.status})>"
