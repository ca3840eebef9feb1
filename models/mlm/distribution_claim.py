# models/mlm/distribution_claim.py
"""
DistributionClaim - one row per (order, commission type) that has been distributed.

The unique constraint makes "already distributed?" and "mark distributed" a single
atomic insert. A duplicate insert raises IntegrityError and means another run got there first.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from models.base import Base, _get_current_time


class DistributionClaim(Base):
    __tablename__ = 'distribution_claims'
    __table_args__ = (
        UniqueConstraint('orderID', 'commissionType', name='uq_claim_order_type'),
    )

    claimID = Column(Integer, primary_key=True, autoincrement=True)
    orderID = Column(Integer, ForeignKey('orders.orderID'), nullable=False, index=True)
    commissionType = Column(String, nullable=False)  # mlm_level, franchise, self_commission
    rateVersion = Column(Integer, nullable=True)
    claimedAt = Column(DateTime, default=_get_current_time)

    def __repr__(self):
        return f"<DistributionClaim(order={self.orderID}, type={self.commissionType})>"
