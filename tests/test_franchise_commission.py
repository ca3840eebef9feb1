# tests/test_franchise_commission.py
"""
Tests for franchise commission, self commission and the combined run.
"""
from decimal import Decimal

import pytest

from models import Earning, Franchise, DistributionClaim
from mlm_system.services.commission_service import CommissionService


@pytest.mark.asyncio
async def test_franchise_share_of_whole_order(session, make_user, make_order, make_franchise):
    owner = make_user(role="franchise_owner")
    buyer = make_user()
    franchise = make_franchise(owner, percentage="10")
    order = make_order(buyer, items=[("A", "500", 2), ("B", "250", 4)], franchise=franchise)

    result = await CommissionService(session).distributeFranchiseCommission(order)

    assert result["amount"] == Decimal("200")
    earnings = session.query(Earning).filter_by(type="franchise").all()
    assert len(earnings) == 1
    assert earnings[0].userID == owner.userID
    assert earnings[0].franchiseID == franchise.franchiseID
    assert order.commissions["franchise"]["amount"] == "200.00"


@pytest.mark.asyncio
async def test_franchise_totals_updated(session, make_user, make_order, make_franchise):
    owner = make_user()
    franchise = make_franchise(owner, percentage="5")
    service = CommissionService(session)

    await service.distributeFranchiseCommission(make_order(make_user(), items=[("A", "2000", 1)], franchise=franchise))
    await service.distributeFranchiseCommission(
        make_order(make_user(), items=[("B", "1000", 1)], franchise=franchise, orderType="offline")
    )

    session.refresh(franchise)
    assert franchise.totalCommission == Decimal("150")
    assert Decimal(franchise.totalSales["online"]) == Decimal("2000")
    assert Decimal(franchise.totalSales["offline"]) == Decimal("1000")
    assert Decimal(franchise.totalSales["total"]) == Decimal("3000")


@pytest.mark.asyncio
async def test_franchise_totals_keep_concurrent_increments(session, make_user, make_order, make_franchise):
    franchise = make_franchise(make_user(), percentage="10")
    order = make_order(make_user(), items=[("A", "500", 1)], franchise=franchise)
    loaded = franchise.totalSales

    # Another worker commits a sale while this session still holds the old row
    session.query(Franchise).filter(Franchise.franchiseID == franchise.franchiseID).update(
        {
            Franchise.totalCommission: Franchise.totalCommission + Decimal("70"),
            Franchise.salesOnline: Franchise.salesOnline + Decimal("700"),
            Franchise.salesTotal: Franchise.salesTotal + Decimal("700"),
        },
        synchronize_session=False
    )
    assert franchise.totalSales == loaded

    await CommissionService(session).distributeFranchiseCommission(order)

    session.refresh(franchise)
    assert franchise.totalCommission == Decimal("120")
    assert Decimal(franchise.totalSales["online"]) == Decimal("1200")
    assert Decimal(franchise.totalSales["offline"]) == Decimal("0")
    assert Decimal(franchise.totalSales["total"]) == Decimal("1200")


def test_new_franchise_sales_are_strings(session, make_user, make_franchise):
    franchise = make_franchise(make_user())
    session.refresh(franchise)

    assert set(franchise.totalSales) == {"online", "offline", "total"}
    assert all(isinstance(value, str) for value in franchise.totalSales.values())
    assert all(Decimal(value) == 0 for value in franchise.totalSales.values())


@pytest.mark.asyncio
async def test_franchise_commission_posted_once(session, make_user, make_order, make_franchise):
    franchise = make_franchise(make_user())
    order = make_order(make_user(), franchise=franchise)
    service = CommissionService(session)

    await service.distributeFranchiseCommission(order)
    second = await service.distributeFranchiseCommission(order)

    assert second["skipped"] is True
    assert session.query(Earning).filter_by(type="franchise").count() == 1
    session.refresh(franchise)
    assert franchise.totalCommission == Decimal("100")


@pytest.mark.asyncio
async def test_franchise_claim_blocks_posting(session, make_user, make_order, make_franchise):
    franchise = make_franchise(make_user())
    order = make_order(make_user(), franchise=franchise)
    session.add(DistributionClaim(orderID=order.orderID, commissionType="franchise"))
    session.flush()

    result = await CommissionService(session).distributeFranchiseCommission(order)

    assert result["reason"] == "already_claimed"
    assert session.query(Earning).count() == 0


@pytest.mark.asyncio
async def test_order_without_franchise_is_noop(session, make_user, make_order):
    order = make_order(make_user())

    result = await CommissionService(session).distributeFranchiseCommission(order)

    assert result["skipped"] is True
    assert result["reason"] == "no_franchise"


@pytest.mark.asyncio
async def test_missing_franchise_is_noop(session, make_user, make_order):
    order = make_order(make_user())
    order.franchiseID = 777
    session.flush()

    result = await CommissionService(session).distributeFranchiseCommission(order)

    assert result["success"] is True
    assert result["reason"] == "franchise_not_found"
    assert session.query(Earning).count() == 0


@pytest.mark.asyncio
async def test_ownerless_franchise_is_noop(session, make_user, make_order, make_franchise):
    franchise = make_franchise(None)
    order = make_order(make_user(), franchise=franchise)

    result = await CommissionService(session).distributeFranchiseCommission(order)

    assert result["reason"] == "no_owner"
    assert session.query(Franchise).one().totalCommission == Decimal("0")


@pytest.mark.asyncio
async def test_gates_are_independent(session, make_chain, make_order, make_franchise, make_user):
    *_, buyer = make_chain(3)
    franchise = make_franchise(make_user())
    order = make_order(buyer, franchise=franchise)
    service = CommissionService(session)

    # Level commissions already done by an earlier run
    await service.distributeOrderCommissions(order)

    result = await service.distributeAllCommissions(order)

    assert result["success"] is True
    assert result["mlm"]["skipped"] is True
    assert result["franchise"]["amount"] == Decimal("100")
    assert session.query(Earning).filter_by(type="mlm_level").count() == 2


@pytest.mark.asyncio
async def test_franchise_step_runs_when_level_step_fails(
        session, make_chain, make_order, make_franchise, make_user, monkeypatch):
    *_, buyer = make_chain(2)
    franchise = make_franchise(make_user())
    order = make_order(buyer, franchise=franchise)
    service = CommissionService(session)

    async def boom(*args, **kwargs):
        raise RuntimeError("rate store unavailable")

    monkeypatch.setattr(service, "distributeOrderCommissions", boom)

    result = await service.distributeAllCommissions(order)

    assert result["success"] is False
    assert result["mlm"] == {"success": False, "error": "rate store unavailable"}
    assert result["franchise"]["success"] is True
    assert session.query(Earning).filter_by(type="franchise").count() == 1


@pytest.mark.asyncio
async def test_self_commission_rebate(session, make_user, make_order):
    buyer = make_user()
    order = make_order(buyer, items=[("Rebated", "1000", 2, "5"), ("Plain", "300", 1)])
    service = CommissionService(session)

    result = await service.distributeSelfCommission(order)
    again = await service.distributeSelfCommission(order)

    assert result["totalDistributed"] == Decimal("100")
    assert again["skipped"] is True
    earnings = session.query(Earning).filter_by(type="self_commission").all()
    assert [(e.userID, e.amount) for e in earnings] == [(buyer.userID, Decimal("100"))]
    assert len(order.commissions["self"]) == 1


@pytest.mark.asyncio
async def test_self_commission_not_in_default_run(session, make_chain, make_order):
    *_, buyer = make_chain(2)
    order = make_order(buyer, items=[("Rebated", "1000", 1, "5")])
    service = CommissionService(session)

    default = await service.distributeAllCommissions(order)
    assert "self" not in default
    assert session.query(Earning).filter_by(type="self_commission").count() == 0

    withSelf = await service.distributeAllCommissions(order, includeSelf=True)
    assert withSelf["self"]["totalDistributed"] == Decimal("50")
