# mlm_system/exceptions.py
"""
Exceptions raised at the configuration and admin boundaries of the MLM system.

The distribution engine itself never raises for missing orders, users or
franchises; it logs and skips.
"""


class MLMError(Exception):
    """Base class for MLM system errors."""


class ValidationError(MLMError):
    """Raised when input is rejected (rate table, amounts, rank definitions)."""


class InvalidStatusTransition(MLMError):
    """Raised when an order status change is not allowed."""

    def __init__(self, orderId, current, requested):
        self.orderId = orderId
        self.current = current
        self.requested = requested
        super().__init__(f"Order {orderId}: cannot move from '{current}' to '{requested}'")


class NotFoundError(MLMError):
    """Raised by admin-facing operations when the target does not exist."""
