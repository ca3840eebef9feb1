# tests/test_time_machine.py
"""
Tests for the virtual clock and month windows.
"""
from datetime import datetime, timezone

import pytest

from mlm_system.utils.time_machine import timeMachine


def test_month_windows(frozen_time):
    start, now = frozen_time.currentMonthRange

    assert start == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert now == datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
    assert frozen_time.lastMonthRange == (
        datetime(2026, 2, 1, tzinfo=timezone.utc),
        datetime(2026, 3, 1, tzinfo=timezone.utc),
    )
    assert frozen_time.currentMonth == "2026-03"


def test_january_rolls_back_a_year(frozen_time):
    frozen_time.setTime(datetime(2026, 1, 10))

    assert frozen_time.now.tzinfo is not None
    assert frozen_time.lastMonthRange[0] == datetime(2025, 12, 1, tzinfo=timezone.utc)


def test_advance_requires_test_mode():
    timeMachine.resetToRealTime()

    with pytest.raises(ValueError):
        timeMachine.advanceTime(days=1)
