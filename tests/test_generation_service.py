import asyncio
import random
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from webforge.core.database import build_engine
from webforge.core.errors import CreditLimitExceeded, JobStateError, ValidationError
from webforge.models import BalanceTransaction, GenerationJob, Team, User
from webforge.schemas.generate import CreateJobRequest
from webforge.services import generation_service, ledger_service
from webforge.services.archive_service import read_archive

from conftest import HTML_FILES, TEAM_ID, USER_ID, ScriptedProvider, make_gateway, protocol_text, seed_team

GOOD_ANSWER = protocol_text(HTML_FILES)


def _request(**overrides):
    data = {"prompt": "A bakery in Ghent", "language": "en", "model_tier": "junior", "output_kind": "html"}
    data.update(overrides)
    return CreateJobRequest(**data)


async def _create(session_factory, **overrides) -> str:
    async with session_factory() as s:
        job = await generation_service.create_job(s, USER_ID, _request(**overrides))
        return job.id


async def _job(session_factory, job_id) -> GenerationJob:
    async with session_factory() as s:
        return await s.get(GenerationJob, job_id)


async def _balance(session_factory) -> int:
    async with session_factory() as s:
        return await ledger_service.get_balance(s, TEAM_ID)


async def _job_transactions(session_factory, job_id):
    async with session_factory() as s:
        rows = await s.execute(select(BalanceTransaction).where(BalanceTransaction.job_id == job_id))
        return list(rows.scalars().all())


# ─────────────────────────────────────────────
# Create
# ─────────────────────────────────────────────
async def test_create_reserves_price_and_returns_pending_job(session_factory):
    await seed_team(session_factory, balance_cents=1000, credit_limit_cents=0, html_price_cents=700)

    job_id = await _create(session_factory)

    job = await _job(session_factory, job_id)
    assert job.status == "pending"
    assert job.team_id == TEAM_ID
    assert job.reserved_price_cents == 700
    assert job.realized_price_cents == 0
    assert await _balance(session_factory) == 300
    txs = await _job_transactions(session_factory, job_id)
    assert [(t.kind, t.amount_cents) for t in txs] == [("reservation", -700)]


async def test_create_over_credit_limit_leaves_no_trace(session_factory):
    await seed_team(session_factory, balance_cents=200, credit_limit_cents=0, html_price_cents=700)

    with pytest.raises(CreditLimitExceeded):
        await _create(session_factory)

    async with session_factory() as s:
        assert (await s.execute(select(GenerationJob))).scalars().all() == []
        kinds = (await s.execute(select(BalanceTransaction.kind))).scalars().all()
    assert kinds == ["top_up"]
    assert await _balance(session_factory) == 200


@pytest.mark.parametrize("overrides", [
    {"prompt": "   "},
    {"model_tier": "principal"},
    {"output_kind": "flash"},
    {"team_id": "someone-elses-team"},
    {"language": "x" * 41},
    {"layout_hint": "minimal " * 11},
    {"site_name": "S" * 201},
])
async def test_create_rejects_bad_requests_without_side_effects(session_factory, overrides):
    await seed_team(session_factory)
    with pytest.raises(ValidationError):
        await _create(session_factory, **overrides)
    assert await _balance(session_factory) == 1000


async def test_user_without_team_is_not_billed(session_factory):
    async with session_factory() as s:
        s.add(User(id=USER_ID, email="solo@example.com", name="Solo"))
        await s.commit()

    job_id = await _create(session_factory)
    job = await _job(session_factory, job_id)
    assert job.team_id is None
    assert job.reserved_price_cents == 0
    assert await _job_transactions(session_factory, job_id) == []


# ─────────────────────────────────────────────
# Run
# ─────────────────────────────────────────────
async def test_run_completes_and_stores_files_and_archive(session_factory):
    await seed_team(session_factory)
    job_id = await _create(session_factory)
    provider = ScriptedProvider([GOOD_ANSWER])

    status = await generation_service.run_job(job_id, session_factory, make_gateway(provider))

    assert status == "completed"
    job = await _job(session_factory, job_id)
    assert job.status == "completed"
    assert job.error_message is None
    assert job.files == HTML_FILES
    assert job.realized_price_cents == job.reserved_price_cents == 700
    assert job.validation == {"errors": [], "warnings": [], "attempts": 1}
    assert job.generation_cost > 0
    assert job.tokens_in == 1000 and job.tokens_out == 2000
    entries = read_archive(job.archive)
    assert {p: c.decode("utf-8") for p, c in entries.items()} == job.files
    assert await _balance(session_factory) == 300
    assert "TARGET WEBSITE LANGUAGE: English" in provider.calls[0]["user"]


async def test_provider_timeout_fails_job_and_refunds_once(session_factory):
    await seed_team(session_factory, balance_cents=1000, credit_limit_cents=0, html_price_cents=700)
    job_id = await _create(session_factory)
    assert await _balance(session_factory) == 300

    provider = ScriptedProvider([GOOD_ANSWER], delay=2.0)
    status = await generation_service.run_job(job_id, session_factory, make_gateway(provider, timeout=0.05))

    assert status == "failed"
    job = await _job(session_factory, job_id)
    assert job.status == "failed"
    assert job.realized_price_cents == 0
    assert "timed out" in job.error_message
    assert job.files is None and job.archive is None
    assert await _balance(session_factory) == 1000
    txs = await _job_transactions(session_factory, job_id)
    assert sorted((t.kind, t.amount_cents) for t in txs) == [("refund", 700), ("reservation", -700)]


async def test_job_completes_even_with_unresolved_validation_errors(session_factory):
    await seed_team(session_factory)
    job_id = await _create(session_factory)
    provider = ScriptedProvider(["<!-- FILE: index.html --><h1>only a homepage</h1>"])

    status = await generation_service.run_job(job_id, session_factory, make_gateway(provider))

    assert status == "completed"
    assert len(provider.calls) == 3
    job = await _job(session_factory, job_id)
    assert job.validation["attempts"] == 3
    assert "Missing required file: styles.css" in job.validation["errors"]
    assert job.realized_price_cents == 700


async def test_unparseable_output_fails_the_job(session_factory):
    await seed_team(session_factory)
    job_id = await _create(session_factory)
    provider = ScriptedProvider(["I cannot build websites."])

    assert await generation_service.run_job(job_id, session_factory, make_gateway(provider)) == "failed"
    job = await _job(session_factory, job_id)
    assert job.error_message == "Failed to parse generated files"
    assert await _balance(session_factory) == 1000


async def test_redelivered_run_is_ignored(session_factory):
    await seed_team(session_factory)
    job_id = await _create(session_factory)
    provider = ScriptedProvider([GOOD_ANSWER])
    gateway = make_gateway(provider)

    assert await generation_service.run_job(job_id, session_factory, gateway) == "completed"
    assert await generation_service.run_job(job_id, session_factory, gateway) is None
    assert len(provider.calls) == 1


async def test_redelivered_run_of_failed_job_does_not_refund_again(session_factory):
    await seed_team(session_factory)
    job_id = await _create(session_factory)
    gateway = make_gateway(ScriptedProvider([RuntimeError("upstream exploded")]))

    assert await generation_service.run_job(job_id, session_factory, gateway) == "failed"
    assert await generation_service.run_job(job_id, session_factory, gateway) is None

    refunds = [t for t in await _job_transactions(session_factory, job_id) if t.kind == "refund"]
    assert len(refunds) == 1
    assert await _balance(session_factory) == 1000


async def test_concurrent_deliveries_run_the_job_once(session_factory):
    await seed_team(session_factory)
    job_id = await _create(session_factory)
    provider = ScriptedProvider([GOOD_ANSWER], delay=0.05)
    gateway = make_gateway(provider)

    results = await asyncio.gather(
        generation_service.run_job(job_id, session_factory, gateway),
        generation_service.run_job(job_id, session_factory, gateway),
    )

    assert results.count("completed") == 1
    assert results.count(None) == 1
    assert len(provider.calls) == 1


async def test_fail_job_is_a_no_op_on_terminal_jobs(session_factory):
    await seed_team(session_factory)
    job_id = await _create(session_factory)
    async with session_factory() as s:
        assert await generation_service.fail_job(s, job_id, "first") is True
        assert await generation_service.fail_job(s, job_id, "second") is False

    job = await _job(session_factory, job_id)
    assert job.error_message == "first"
    assert await _balance(session_factory) == 1000


@pytest.mark.parametrize("seed", range(5))
async def test_balance_matches_completed_and_refunded_jobs(session_factory, seed):
    rng = random.Random(seed)
    await seed_team(session_factory, balance_cents=5000, credit_limit_cents=2000, html_price_cents=700)

    outcomes = {}
    for _ in range(10):
        try:
            job_id = await _create(session_factory)
        except CreditLimitExceeded:
            continue
        answer = rng.choice([GOOD_ANSWER, RuntimeError("429 rate limit"), "no files", GOOD_ANSWER])
        status = await generation_service.run_job(job_id, session_factory, make_gateway(ScriptedProvider([answer])))
        outcomes[job_id] = status

    async with session_factory() as s:
        jobs = (await s.execute(select(GenerationJob))).scalars().all()
        team = await s.get(Team, TEAM_ID)
        refunds = (await s.execute(
            select(BalanceTransaction).where(BalanceTransaction.kind == "refund")
        )).scalars().all()

    realized = sum(j.realized_price_cents for j in jobs if j.status == "completed")
    assert team.balance_cents == 5000 - realized
    assert team.balance_cents >= -team.credit_limit_cents
    assert len(refunds) == sum(1 for j in jobs if j.status == "failed")
    assert len({r.job_id for r in refunds}) == len(refunds)
    assert all(j.status in ("completed", "failed") for j in jobs)
    assert set(outcomes.values()) <= {"completed", "failed"}


# ─────────────────────────────────────────────
# Stale jobs
# ─────────────────────────────────────────────
async def test_stale_jobs_are_failed_and_refunded_once(session_factory):
    await seed_team(session_factory, balance_cents=2000)
    stale_id = await _create(session_factory)
    fresh_id = await _create(session_factory, prompt="Another site")
    async with session_factory() as s:
        await s.execute(
            update(GenerationJob)
            .where(GenerationJob.id == stale_id)
            .values(status="generating", created_at=datetime.utcnow() - timedelta(minutes=45))
        )
        await s.commit()

    async with session_factory() as s:
        assert await generation_service.fail_stale_jobs(s, older_than_minutes=20) == [stale_id]
    async with session_factory() as s:
        assert await generation_service.fail_stale_jobs(s, older_than_minutes=20) == []

    stale = await _job(session_factory, stale_id)
    assert stale.status == "failed"
    assert "timed out" in stale.error_message
    assert (await _job(session_factory, fresh_id)).status == "pending"
    assert await _balance(session_factory) == 2000 - 700

    provider = ScriptedProvider([GOOD_ANSWER])
    assert await generation_service.run_job(stale_id, session_factory, make_gateway(provider)) is None
    assert provider.calls == []


# ─────────────────────────────────────────────
# Read
# ─────────────────────────────────────────────
async def test_status_and_download(session_factory):
    await seed_team(session_factory)
    job_id = await _create(session_factory, site_name="Ghent Bakery")

    async with session_factory() as s:
        with pytest.raises(JobStateError):
            await generation_service.download_archive(s, job_id, USER_ID)

    await generation_service.run_job(job_id, session_factory, make_gateway(ScriptedProvider([GOOD_ANSWER])))

    async with session_factory() as s:
        job = await generation_service.get_job(s, job_id, USER_ID)
        status = generation_service.job_status(job)
        filename, data = await generation_service.download_archive(s, job_id, USER_ID)

    assert status["status"] == "completed"
    assert status["files"] == sorted(HTML_FILES)
    assert filename == "Ghent_Bakery.zip"
    assert set(read_archive(data)) == set(HTML_FILES)


async def test_run_swallows_database_errors_before_the_claim(tmp_path):
    # No tables: the initial load fails inside the database layer
    bare = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        factory = async_sessionmaker(bare, expire_on_commit=False)
        provider = ScriptedProvider([GOOD_ANSWER])
        assert await generation_service.run_job("job-x", session_factory=factory, gateway=make_gateway(provider)) is None
        assert provider.calls == []
    finally:
        await bare.dispose()
