# models/mlm/rank_history.py
"""
RankHistory model - append-only log of rank achievements.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, _get_current_time


class RankHistory(Base):
    __tablename__ = 'rank_history'

    historyID = Column(Integer, primary_key=True, autoincrement=True)
    achievedAt = Column(DateTime, default=_get_current_time)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    # Rank details
    previousRankID = Column(Integer, ForeignKey('ranks.rankID'), nullable=True)
    rankID = Column(Integer, ForeignKey('ranks.rankID'), nullable=False)

    # Qualification metrics at time of achievement
    personalPV = Column(DECIMAL(12, 2), nullable=True)
    teamPV = Column(DECIMAL(14, 2), nullable=True)
    qualificationMethod = Column(String, nullable=True)  # initial, natural

    # Additional context
    notes = Column(Text, nullable=True)

    # Relationships
    rank = relationship('Rank', foreign_keys=[rankID])
    previousRank = relationship('Rank', foreign_keys=[previousRankID])

    def __repr__(self):
        return f"<RankHistory(user={self.userID}, rank={self.rankID}, date={self.achievedAt})>"
