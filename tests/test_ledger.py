import asyncio

import pytest
from sqlalchemy import func, select

from webforge.core.errors import CreditLimitExceeded, PersistenceError
from webforge.models import BalanceTransaction, Team
from webforge.services import ledger_service

from conftest import TEAM_ID, seed_team


async def _transactions(session_factory, kind=None):
    async with session_factory() as s:
        q = select(BalanceTransaction).where(BalanceTransaction.team_id == TEAM_ID)
        if kind:
            q = q.where(BalanceTransaction.kind == kind)
        return list((await s.execute(q.order_by(BalanceTransaction.id))).scalars().all())


async def _balance(session_factory):
    async with session_factory() as s:
        return await ledger_service.get_balance(s, TEAM_ID)


async def test_reserve_within_balance(session_factory):
    await seed_team(session_factory, balance_cents=1000, credit_limit_cents=0)

    async with session_factory() as s:
        tx = await ledger_service.reserve(s, TEAM_ID, 700, job_id="job-1", actor_id="user-1")
        await s.commit()

    assert await _balance(session_factory) == 300
    assert (tx.amount_cents, tx.balance_before_cents, tx.balance_after_cents) == (-700, 1000, 300)
    reservations = await _transactions(session_factory, ledger_service.KIND_RESERVATION)
    assert [t.amount_cents for t in reservations] == [-700]


async def test_reserve_over_limit_writes_nothing(session_factory):
    await seed_team(session_factory, balance_cents=200, credit_limit_cents=0)
    before = await _transactions(session_factory)

    async with session_factory() as s:
        with pytest.raises(CreditLimitExceeded) as exc:
            await ledger_service.reserve(s, TEAM_ID, 700, job_id="job-1")
        await s.rollback()

    assert exc.value.balance_cents == 200
    assert await _balance(session_factory) == 200
    assert len(await _transactions(session_factory)) == len(before)


async def test_reserve_may_use_credit_limit(session_factory):
    await seed_team(session_factory, balance_cents=200, credit_limit_cents=500)

    async with session_factory() as s:
        await ledger_service.reserve(s, TEAM_ID, 700, job_id="job-1")
        await s.commit()
        with pytest.raises(CreditLimitExceeded):
            await ledger_service.reserve(s, TEAM_ID, 1, job_id="job-2")
        await s.rollback()

    assert await _balance(session_factory) == -500


async def test_reserve_zero_is_a_no_op(session_factory):
    await seed_team(session_factory, balance_cents=0)
    async with session_factory() as s:
        assert await ledger_service.reserve(s, TEAM_ID, 0, job_id="job-1") is None
        await s.commit()
    assert await _transactions(session_factory, ledger_service.KIND_RESERVATION) == []


async def test_refund_restores_and_cannot_repeat(session_factory):
    await seed_team(session_factory, balance_cents=1000)

    async with session_factory() as s:
        await ledger_service.reserve(s, TEAM_ID, 700, job_id="job-1")
        await ledger_service.refund(s, TEAM_ID, 700, "job-1", reason="provider timeout")
        await s.commit()

    assert await _balance(session_factory) == 1000

    async with session_factory() as s:
        with pytest.raises(PersistenceError):
            await ledger_service.refund(s, TEAM_ID, 700, "job-1")
        await s.rollback()

    assert await _balance(session_factory) == 1000
    refunds = await _transactions(session_factory, ledger_service.KIND_REFUND)
    assert len(refunds) == 1
    assert "provider timeout" in refunds[0].note


async def test_settle_is_a_no_op_when_realized_equals_reserved(session_factory):
    await seed_team(session_factory, balance_cents=1000)
    async with session_factory() as s:
        assert await ledger_service.settle(s, TEAM_ID, 700, 700, "job-1") is None
        tx = await ledger_service.settle(s, TEAM_ID, 700, 500, "job-2")
        await s.commit()
    assert tx.amount_cents == 200
    assert await _balance(session_factory) == 1200


async def test_every_mutation_has_one_matching_transaction(session_factory):
    await seed_team(session_factory, balance_cents=5000, credit_limit_cents=1000)

    async with session_factory() as s:
        for i in range(6):
            await ledger_service.reserve(s, TEAM_ID, 900, job_id=f"job-{i}")
        for i in range(0, 6, 2):
            await ledger_service.refund(s, TEAM_ID, 900, f"job-{i}")
        await ledger_service.top_up(s, TEAM_ID, 250, note="manual")
        await s.commit()

    txs = await _transactions(session_factory)
    for prev, cur in zip(txs, txs[1:]):
        assert cur.balance_before_cents == prev.balance_after_cents
    for t in txs:
        assert t.balance_after_cents - t.balance_before_cents == t.amount_cents

    async with session_factory() as s:
        total = (await s.execute(
            select(func.sum(BalanceTransaction.amount_cents)).where(BalanceTransaction.team_id == TEAM_ID)
        )).scalar()
        team = await s.get(Team, TEAM_ID)
    assert team.balance_cents == total == 5000 - 900 * 3 + 250


async def test_concurrent_reservations_cannot_both_pass_the_limit(session_factory):
    await seed_team(session_factory, balance_cents=1000, credit_limit_cents=0)

    async def attempt(n):
        async with session_factory() as s:
            try:
                await ledger_service.reserve(s, TEAM_ID, 700, job_id=f"job-{n}")
                await s.commit()
                return "ok"
            except CreditLimitExceeded:
                await s.rollback()
                return "limit"

    results = await asyncio.gather(*(attempt(n) for n in range(4)))

    assert sorted(results) == ["limit", "limit", "limit", "ok"]
    assert len(await _transactions(session_factory, ledger_service.KIND_RESERVATION)) == 1
    assert await _balance(session_factory) == 300
