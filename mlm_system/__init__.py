# mlm_system/__init__.py
"""
MLM System - referral network, commission distribution and rank progression.
"""

# Services
from mlm_system.services.commission_service import CommissionService
from mlm_system.services.volume_service import VolumeService
from mlm_system.services.rank_service import RankService
from mlm_system.services.network_service import NetworkService
from mlm_system.services.rate_service import RateService, RateTable
from mlm_system.services.order_service import OrderService
from mlm_system.services.earnings_service import EarningsService

# Configuration
from mlm_system.config.commissions import EarningType, OrderStatus, OrderType, UserRole

# Errors
from mlm_system.exceptions import MLMError, ValidationError, InvalidStatusTransition, NotFoundError

# Utilities
from mlm_system.utils.time_machine import timeMachine
from mlm_system.utils.chain_walker import ChainWalker

# Events
from mlm_system.events.event_bus import eventBus, MLMEvents

__all__ = [
    # Services
    'CommissionService',
    'VolumeService',
    'RankService',
    'NetworkService',
    'RateService',
    'RateTable',
    'OrderService',
    'EarningsService',

    # Config
    'EarningType',
    'OrderStatus',
    'OrderType',
    'UserRole',

    # Errors
    'MLMError',
    'ValidationError',
    'InvalidStatusTransition',
    'NotFoundError',

    # Utils
    'timeMachine',
    'ChainWalker',

    # Events
    'eventBus',
    'MLMEvents',
]
