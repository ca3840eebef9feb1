# models/franchise.py
"""
Franchise model - a sales point whose owner earns a flat share of tagged orders.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class Franchise(Base, AuditMixin):
    __tablename__ = 'franchises'

    franchiseID = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    district = Column(String, nullable=True)

    ownerID = Column(Integer, ForeignKey('users.userID'), nullable=True)

    # Percent of the whole order total (10 = 10%)
    commissionPercentage = Column(DECIMAL(5, 2), nullable=False, default=0)

    # Running totals, only changed by UPDATE x = x + delta
    totalCommission = Column(DECIMAL(14, 2), default=0)
    salesOnline = Column(DECIMAL(14, 2), default=0)
    salesOffline = Column(DECIMAL(14, 2), default=0)
    salesTotal = Column(DECIMAL(14, 2), default=0)

    status = Column(String, default="active")  # active, inactive

    owner = relationship('User', foreign_keys=[ownerID])

    @property
    def totalSales(self):
        """Sales totals keyed by order type: {"online": "1500.00", "offline": "0", "total": "1500.00"}"""
        return {
            "online": str(self.salesOnline or 0),
            "offline": str(self.salesOffline or 0),
            "total": str(self.salesTotal or 0),
        }

    def __repr__(self):
        return f"<Franchise(franchiseID={self.franchiseID}, name={self.name}, pct={self.commissionPercentage})>"
