# models/__init__.py
"""
Database models for the MLM commission engine.
Import all models here so Base.metadata sees every table.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Core models
from models.user import User
from models.franchise import Franchise
from models.order import Order, OrderItem
from models.earning import Earning
from models.commission_queue import CommissionTask

# MLM models
from models.mlm.rank import Rank
from models.mlm.user_rank import UserRank
from models.mlm.rank_history import RankHistory
from models.mlm.commission_config import CommissionConfig
from models.mlm.distribution_claim import DistributionClaim

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Core
    'User',
    'Franchise',
    'Order',
    'OrderItem',
    'Earning',
    'CommissionTask',

    # MLM
    'Rank',
    'UserRank',
    'RankHistory',
    'CommissionConfig',
    'DistributionClaim',
]
