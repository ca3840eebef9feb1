# models/mlm/rank.py
"""
Rank model - ordered tier ladder with qualification thresholds.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, JSON
from models.base import Base, AuditMixin


class Rank(Base, AuditMixin):
    __tablename__ = 'ranks'

    rankID = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    level = Column(Integer, unique=True, nullable=False, index=True)

    # Requirements
    directReferralsRequired = Column(Integer, default=0, nullable=False)
    teamSizeRequired = Column(Integer, default=0, nullable=False)
    teamSalesRequired = Column(DECIMAL(14, 2), default=0, nullable=False)
    personalPVRequired = Column(DECIMAL(12, 2), default=0, nullable=False)
    teamPVRequired = Column(DECIMAL(14, 2), default=0, nullable=False)

    # Rewards
    commissionReward = Column(DECIMAL(5, 2), default=0, nullable=False)  # Процент, 0..100
    bonusReward = Column(DECIMAL(12, 2), default=0, nullable=False)

    benefits = Column(JSON, nullable=True)  # ["Free shipping", ...]
    icon = Column(String, nullable=True)
    color = Column(String, nullable=True)

    @property
    def requirements(self):
        return {
            "directReferrals": self.directReferralsRequired,
            "teamSize": self.teamSizeRequired,
            "teamSales": self.teamSalesRequired,
            "personalPV": self.personalPVRequired,
            "teamPV": self.teamPVRequired,
        }

    def __repr__(self):
        return f"<Rank(level={self.level}, name={self.name})>"
