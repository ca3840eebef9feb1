# models/mlm/__init__.py
"""
MLM-specific models: rank ladder, rate table and distribution claims.
"""

from models.mlm.rank import Rank
from models.mlm.user_rank import UserRank
from models.mlm.rank_history import RankHistory
from models.mlm.commission_config import CommissionConfig
from models.mlm.distribution_claim import DistributionClaim

__all__ = [
    'Rank',
    'UserRank',
    'RankHistory',
    'CommissionConfig',
    'DistributionClaim',
]
