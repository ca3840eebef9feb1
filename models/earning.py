# models/earning.py
"""
Earning model - append-only ledger of money owed or paid to users.

Only `status` changes after insert (pending -> completed on settlement).
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship, backref
from models.base import Base, AuditMixin, _get_current_time


class Earning(Base, AuditMixin):
    __tablename__ = 'earnings'

    # Primary key
    earningID = Column(Integer, primary_key=True, autoincrement=True)

    # Recipient
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    # Signed amount: negative for withdrawals
    amount = Column(DECIMAL(12, 2), nullable=False)

    # self_commission, mlm_level, franchise, rank, reward, withdrawal
    type = Column(String, nullable=False, index=True)
    level = Column(Integer, nullable=True)  # 1..5, только для mlm_level
    description = Column(Text, nullable=True)

    # Links
    orderID = Column(Integer, ForeignKey('orders.orderID'), nullable=True, index=True)
    franchiseID = Column(Integer, ForeignKey('franchises.franchiseID'), nullable=True)

    status = Column(String, default="pending", nullable=False)  # pending, completed
    date = Column(DateTime, default=_get_current_time, index=True)

    # Relationships
    user = relationship('User', backref=backref('earnings', passive_deletes=True))
    order = relationship('Order', backref='earnings')

    def __repr__(self):
        return f"<Earning(earningID={self.earningID}, user={self.userID}, type={self.type}, amount={self.amount})>"
