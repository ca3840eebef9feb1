# tests/conftest.py
"""
Pytest configuration and shared fixtures for MLM engine tests.

Every test gets its own in-memory SQLite database and a frozen virtual clock.

Run:
    pytest tests -v
"""
import os
import sys
import itertools
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

# Тестовое окружение до импорта config
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("MLM_LEVEL_RATES", "0.015,0.01,0.005,0.005,0.005")

# Добавить корень проекта в PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from init import get_session, init_tables
from models import User, Order, OrderItem, Franchise, Rank
from mlm_system.utils.time_machine import timeMachine
from mlm_system.events.event_bus import eventBus

# =============================================================================
# CONSTANTS
# =============================================================================

FROZEN_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    _, engine = get_session("sqlite://")
    init_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create database session for each test."""
    from sqlalchemy.orm import sessionmaker
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def frozen_time():
    """Pin 'now' to mid-March 2026."""
    timeMachine.setTime(FROZEN_NOW)
    yield timeMachine
    timeMachine.resetToRealTime()


@pytest.fixture(autouse=True)
def clean_event_bus():
    yield
    eventBus.clear()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(session):
    """
    Create a user. `upline` fills uplineID, referralChain and (by default)
    referredBy, so both hierarchies agree unless overridden.
    """
    counter = itertools.count(1)

    def _make(upline=None, role="user", referredBy=None, chain=None, name=None):
        n = next(counter)
        user = User(
            name=name or f"User {n}",
            email=f"user{n}@example.com",
            role=role,
            referralCode=f"CODE{n:03d}",
            uplineID=upline.userID if upline else None,
            referralChain=chain if chain is not None else (
                [upline.userID] + upline.chainSnapshot if upline else []
            ),
            referredBy=referredBy if referredBy is not None else (
                upline.referralCode if upline else None
            ),
        )
        session.add(user)
        session.flush()
        return user

    return _make


@pytest.fixture
def make_chain(make_user):
    """Linear chain root -> ... -> buyer; returns [root, ..., buyer]."""

    def _make(length, roles=None):
        roles = roles or {}
        users = []
        parent = None
        for i in range(length):
            parent = make_user(upline=parent, role=roles.get(i, "user"))
            users.append(parent)
        return users

    return _make


@pytest.fixture
def make_order(session):
    """Create an order; items are (name, price, quantity[, selfCommissionRate])."""

    def _make(user, items=None, status="delivered", franchise=None,
              orderType="online", totalPV=None, createdAt=None):
        items = items or [("Product", "1000", 1)]
        order = Order(
            userID=user.userID,
            status=status,
            orderType=orderType,
            franchiseID=franchise.franchiseID if franchise else None,
        )
        total = Decimal("0")
        for item in items:
            name, price, quantity = item[:3]
            rate = Decimal(str(item[3])) if len(item) > 3 else Decimal("0")
            order.items.append(OrderItem(
                productName=name,
                productPrice=Decimal(str(price)),
                quantity=quantity,
                selfCommissionRate=rate,
            ))
            total += Decimal(str(price)) * quantity

        order.totalAmount = total
        order.totalPV = Decimal(str(totalPV)) if totalPV is not None else Decimal("0")
        if createdAt is not None:
            order.createdAt = createdAt
        session.add(order)
        session.flush()
        return order

    return _make


@pytest.fixture
def make_franchise(session):

    def _make(owner, percentage="10", name="Central"):
        franchise = Franchise(
            name=name,
            district="North",
            ownerID=owner.userID if owner else None,
            commissionPercentage=Decimal(str(percentage)),
        )
        session.add(franchise)
        session.flush()
        return franchise

    return _make


@pytest.fixture
def rank_ladder(session):
    """Bronze (1) -> Silver (2) -> Gold (3)."""
    ranks = [
        Rank(name="Bronze", level=1),
        Rank(name="Silver", level=2, personalPVRequired=Decimal("100"),
             teamPVRequired=Decimal("300"), bonusReward=Decimal("500")),
        Rank(name="Gold", level=3, personalPVRequired=Decimal("200"),
             teamPVRequired=Decimal("500"), bonusReward=Decimal("1500")),
    ]
    session.add_all(ranks)
    session.flush()
    return ranks
