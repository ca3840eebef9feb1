# tests/test_earnings_service.py
"""
Tests for ledger summaries, settlement and withdrawals.
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from models import Earning
from mlm_system.services.earnings_service import EarningsService
from mlm_system.exceptions import ValidationError, NotFoundError


@pytest.fixture
def post_earning(session):

    def _post(user, amount, type="mlm_level", status="pending", date=None):
        earning = Earning(userID=user.userID, amount=Decimal(str(amount)), type=type, status=status)
        if date is not None:
            earning.date = date
        session.add(earning)
        session.flush()
        return earning

    return _post


@pytest.mark.asyncio
async def test_summary_figures(session, make_user, post_earning):
    user = make_user()
    post_earning(user, "30")
    post_earning(user, "20", status="completed")
    post_earning(user, "50", status="completed", date=datetime(2026, 2, 10, tzinfo=timezone.utc))
    post_earning(user, "70", status="completed", date=datetime(2026, 1, 5, tzinfo=timezone.utc))
    post_earning(user, "-40", type="withdrawal", status="completed")

    result = await EarningsService(session).getUserEarnings(user.userID)
    stats = result["stats"]

    assert stats["total"] == Decimal("170")
    assert stats["pending"] == Decimal("30")
    assert stats["thisMonth"] == Decimal("50")
    assert stats["lastMonth"] == Decimal("50")
    assert stats["withdrawn"] == Decimal("40")
    assert stats["available"] == Decimal("100")
    assert len(result["earnings"]) == 5


@pytest.mark.asyncio
async def test_settle_earnings(session, make_user, post_earning):
    user = make_user()
    other = make_user()
    first = post_earning(user, "10")
    post_earning(user, "15")
    post_earning(other, "5")
    service = EarningsService(session)

    assert await service.settleEarnings(earningIds=[first.earningID]) == 1
    assert await service.settleEarnings(userId=user.userID) == 1
    assert await service.getAvailableBalance(user.userID) == Decimal("25")
    assert await service.getAvailableBalance(other.userID) == Decimal("0")


@pytest.mark.asyncio
async def test_withdrawal_locks_balance(session, make_user, post_earning):
    user = make_user()
    post_earning(user, "100", status="completed")
    post_earning(user, "500")  # pending income is not withdrawable
    service = EarningsService(session)

    withdrawal = await service.requestWithdrawal(user.userID, "60")

    assert withdrawal.amount == Decimal("-60")
    assert withdrawal.status == "pending"
    assert await service.getAvailableBalance(user.userID) == Decimal("40")

    with pytest.raises(ValidationError):
        await service.requestWithdrawal(user.userID, "41")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-5", "abc", None])
async def test_withdrawal_amount_must_be_positive(session, make_user, post_earning, amount):
    user = make_user()
    post_earning(user, "100", status="completed")

    with pytest.raises(ValidationError):
        await EarningsService(session).requestWithdrawal(user.userID, amount)


@pytest.mark.asyncio
async def test_complete_withdrawal(session, make_user, post_earning):
    user = make_user()
    income = post_earning(user, "100", status="completed")
    service = EarningsService(session)
    withdrawal = await service.requestWithdrawal(user.userID, "100")

    completed = await service.completeWithdrawal(withdrawal.earningID)

    assert completed.status == "completed"
    assert (await service.getUserEarnings(user.userID))["stats"]["withdrawn"] == Decimal("100")
    with pytest.raises(ValidationError):
        await service.completeWithdrawal(withdrawal.earningID)
    with pytest.raises(NotFoundError):
        await service.completeWithdrawal(income.earningID)


@pytest.mark.asyncio
async def test_withdrawal_for_unknown_user(session):
    with pytest.raises(NotFoundError):
        await EarningsService(session).requestWithdrawal(404, "10")


@pytest.mark.asyncio
async def test_list_earnings_filters(session, make_user, post_earning):
    user = make_user()
    post_earning(user, "10", type="franchise")
    post_earning(user, "20")
    post_earning(make_user(), "30", type="franchise")

    earnings = await EarningsService(session).listEarnings(userId=user.userID, earningType="franchise")

    assert [e.amount for e in earnings] == [Decimal("10")]
