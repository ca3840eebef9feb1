# models/mlm/user_rank.py
"""
UserRank model - one row per user with the current tier and progress snapshot.
"""
from sqlalchemy import Column, Integer, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship, backref
from models.base import Base, AuditMixin, _get_current_time


def _empty_progress():
    return {
        "directReferrals": 0,
        "teamSize": 0,
        "teamSales": "0",
        "personalPV": "0",
        "teamPV": "0",
    }


class UserRank(Base, AuditMixin):
    __tablename__ = 'user_ranks'

    userRankID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), unique=True, nullable=False)
    currentRankID = Column(Integer, ForeignKey('ranks.rankID'), nullable=False)

    progress = Column(JSON, nullable=True, default=_empty_progress)
    # Decimal values are stored as strings

    achievements = Column(JSON, nullable=True, default=list)
    # [{"name": ..., "description": ..., "date": iso, "reward": "500", "type": "rank_up"}]

    lastUpdated = Column(DateTime, default=_get_current_time)

    # Relationships
    user = relationship('User', backref=backref('userRank', uselist=False))
    currentRank = relationship('Rank')

    def __repr__(self):
        return f"<UserRank(user={self.userID}, rank={self.currentRankID})>"
