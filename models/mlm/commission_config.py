# models/mlm/commission_config.py
"""
CommissionConfig model - versioned level rate table.

Each admin edit writes a new row; the row with the highest version is current.
"""
from sqlalchemy import Column, Integer, JSON, DateTime, ForeignKey
from models.base import Base, _get_current_time


class CommissionConfig(Base):
    __tablename__ = 'commission_configs'

    configID = Column(Integer, primary_key=True, autoincrement=True)
    version = Column(Integer, unique=True, nullable=False, index=True)

    rates = Column(JSON, nullable=False)  # ["0.015", "0.01", "0.005", "0.005", "0.005"]

    updatedBy = Column(Integer, ForeignKey('users.userID'), nullable=True)
    createdAt = Column(DateTime, default=_get_current_time)

    def __repr__(self):
        return f"<CommissionConfig(version={self.version}, rates={self.rates})>"
