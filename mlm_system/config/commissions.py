# mlm_system/config/commissions.py
"""
MLM commission configuration and constants.
"""
from enum import Enum
from decimal import Decimal


class EarningType(Enum):
    SELF_COMMISSION = "self_commission"
    MLM_LEVEL = "mlm_level"
    FRANCHISE = "franchise"
    RANK = "rank"
    REWARD = "reward"
    WITHDRAWAL = "withdrawal"


class EarningStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class OrderType(Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class UserRole(Enum):
    USER = "user"
    DISTRIBUTOR = "distributor"
    FRANCHISE_OWNER = "franchise_owner"
    ADMIN = "admin"


# Допустимые переходы статуса заказа
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.APPROVED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.APPROVED: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}

# Заказы в этих статусах учитываются в PV
PV_STATUSES = (
    OrderStatus.PROCESSING.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
)

# Constants
LEVEL_COUNT = 5  # Ровно 5 уровней в таблице ставок
PERCENT = Decimal("100")
CENTS = Decimal("0.01")
