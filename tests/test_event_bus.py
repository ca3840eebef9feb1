# tests/test_event_bus.py
"""
Tests for the in-process event bus.
"""
import pytest

from mlm_system.events.event_bus import eventBus, EventBus, MLMEvents


def test_event_bus_is_singleton():
    assert EventBus() is eventBus


@pytest.mark.asyncio
async def test_sync_and_async_handlers_receive_data():
    received = []

    @eventBus.on(MLMEvents.USER_REGISTERED)
    async def async_handler(data):
        received.append(("async", data["userID"]))

    def sync_handler(data):
        received.append(("sync", data["userID"]))

    eventBus.subscribe(MLMEvents.USER_REGISTERED, sync_handler)
    eventBus.subscribe(MLMEvents.USER_REGISTERED, sync_handler)

    failed = await eventBus.emit(MLMEvents.USER_REGISTERED, {"userID": 7})

    assert failed == []
    assert received == [("async", 7), ("sync", 7)]


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others():
    received = []

    def broken(data):
        raise RuntimeError("boom")

    eventBus.subscribe(MLMEvents.RATES_UPDATED, broken)
    eventBus.subscribe(MLMEvents.RATES_UPDATED, received.append)

    failed = await eventBus.emit(MLMEvents.RATES_UPDATED, {"version": 2})

    assert failed == ["broken"]
    assert received == [{"version": 2}]


@pytest.mark.asyncio
async def test_unsubscribe_and_unknown_event():
    received = []
    eventBus.subscribe(MLMEvents.USER_REMOVED, received.append)
    eventBus.unsubscribe(MLMEvents.USER_REMOVED, received.append)

    assert await eventBus.emit(MLMEvents.USER_REMOVED, {"userID": 1}) == []
    assert await eventBus.emit("nothing.here", {}) == []
    assert received == []
