# mlm_system/events/event_bus.py
"""
In-process event bus.

Services emit after their database work is done. Handlers may be sync or async;
a handler that raises is logged and skipped, the emitter never sees the error.
"""
from collections import defaultdict
from typing import Dict, List, Callable, Any
import logging
import asyncio

logger = logging.getLogger(__name__)


class EventBus:
    """Singleton registry of event handlers."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._handlers = defaultdict(list)
        return cls._instance

    def subscribe(self, eventName: str, handler: Callable) -> Callable:
        """Subscribe handler to event. Returns the handler."""
        if handler not in self._handlers[eventName]:
            self._handlers[eventName].append(handler)
            logger.debug(f"Handler {_name(handler)} subscribed to {eventName}")
        return handler

    def on(self, eventName: str) -> Callable:
        """
        Decorator form of subscribe:

            @eventBus.on(MLMEvents.RANK_ACHIEVED)
            async def notify(data): ...
        """
        def decorator(handler: Callable) -> Callable:
            return self.subscribe(eventName, handler)
        return decorator

    def unsubscribe(self, eventName: str, handler: Callable):
        handlers = self._handlers.get(eventName, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug(f"Handler {_name(handler)} unsubscribed from {eventName}")

    async def emit(self, eventName: str, data: Dict[str, Any]) -> List[str]:
        """
        Call every handler of the event in subscription order.

        Returns:
            Names of handlers that failed
        """
        failed = []
        for handler in list(self._handlers.get(eventName, [])):
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(data)
                else:
                    handler(data)
            except Exception as e:
                logger.error(f"Error in handler {_name(handler)} for event {eventName}: {e}", exc_info=True)
                failed.append(_name(handler))
        return failed

    def clear(self):
        """Clear all event handlers."""
        self._handlers.clear()


def _name(handler: Callable) -> str:
    return getattr(handler, "__name__", repr(handler))


# Global event bus instance
eventBus = EventBus()


class MLMEvents:
    """Standard MLM system events."""

    ORDER_DELIVERED = "order.delivered"
    COMMISSION_DISTRIBUTED = "commission.distributed"
    FRANCHISE_COMMISSION_POSTED = "franchise_commission.posted"
    SELF_COMMISSION_POSTED = "self_commission.posted"

    RANK_ACHIEVED = "rank.achieved"

    USER_REGISTERED = "user.registered"
    USER_REMOVED = "user.removed"

    RATES_UPDATED = "rates.updated"
    WITHDRAWAL_REQUESTED = "withdrawal.requested"
