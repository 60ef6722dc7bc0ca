# FILE: webforge/services/generation_service.py
"""
Generation job orchestration.

    create_job   validate -> resolve team -> price -> reserve -> pending row (one commit)
    run_job      claim pending -> generating, run provider/codec/repair/archive,
                 then completed, or failed plus refund (one commit each)

run_job assumes at-least-once delivery. A terminal job is skipped, and the
conditional claim lets exactly one worker move a job out of pending. Every
failure path goes through fail_job, whose conditional status update decides
whether the refund happens, so a job is refunded at most once.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from webforge.core import config
from webforge.core.database import SessionLocal
from webforge.core.errors import (
    JobNotFound,
    JobStateError,
    PersistenceError,
    PipelineError,
    ValidationError,
)
from webforge.models.generation_job import (
    ACTIVE_STATUSES,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_GENERATING,
    STATUS_PENDING,
    GenerationJob,
)
from webforge.models.team_member import TeamMember
from webforge.models.team_pricing import TeamPricing
from webforge.repair.repair_loop import RepairResult, generate_with_repair
from webforge.schemas.generate import CreateJobRequest
from webforge.services import ledger_service
from webforge.services.archive_service import archive_filename, build_archive
from webforge.services.model_routing import MODEL_TIERS
from webforge.services.prompt_service import build_generation_system_prompt, build_generation_user_prompt
from webforge.services.provider_service import ProviderGateway
from webforge.validators.structure_validator import POLICIES, policy_for

logger = logging.getLogger("webforge.jobs")

MAX_PROMPT_CHARS = 20000
# Column widths on generation_jobs
MAX_FIELD_CHARS = {"language": 40, "layout_hint": 80, "site_name": 200, "team_id": 36}
MAX_ERROR_CHARS = 2000

_gateway: Optional[ProviderGateway] = None


def get_gateway() -> ProviderGateway:
    global _gateway
    if _gateway is None:
        _gateway = ProviderGateway()
    return _gateway


@dataclass(frozen=True)
class JobParams:
    """What a worker needs from the job row; read once at claim time."""
    job_id: str
    team_id: Optional[str]
    prompt: str
    language: str
    model_tier: str
    output_kind: str
    layout_hint: Optional[str]
    site_name: Optional[str]
    reserved_price_cents: int

    @classmethod
    def from_job(cls, job: GenerationJob) -> "JobParams":
        return cls(
            job_id=job.id,
            team_id=job.team_id,
            prompt=job.prompt,
            language=job.language,
            model_tier=job.model_tier,
            output_kind=job.output_kind,
            layout_hint=job.layout_hint,
            site_name=job.site_name,
            reserved_price_cents=int(job.reserved_price_cents or 0),
        )


# ─────────────────────────────────────────────
# CREATE
# ─────────────────────────────────────────────
def validate_request(req: CreateJobRequest) -> None:
    if not req.prompt:
        raise ValidationError("prompt is required")
    if len(req.prompt) > MAX_PROMPT_CHARS:
        raise ValidationError(f"prompt is too long (max {MAX_PROMPT_CHARS} characters)")
    if not req.language:
        raise ValidationError("language is required")
    for name, limit in MAX_FIELD_CHARS.items():
        value = getattr(req, name)
        if value and len(value) > limit:
            raise ValidationError(f"{name} is too long (max {limit} characters)")
    if req.model_tier not in MODEL_TIERS:
        raise ValidationError(f"model_tier must be one of {list(MODEL_TIERS)}")
    if req.output_kind not in POLICIES:
        raise ValidationError(f"output_kind must be one of {sorted(POLICIES)}")


async def resolve_team(db: AsyncSession, user_id: str, team_id: Optional[str] = None) -> Optional[str]:
    """
    An explicit team must be one the user is an approved member of.
    Without one, the user's oldest approved membership is used (or no team).
    """
    q = select(TeamMember.team_id).where(
        TeamMember.user_id == user_id,
        TeamMember.status == "approved",
    )
    if team_id:
        found = (await db.execute(q.where(TeamMember.team_id == team_id))).scalar_one_or_none()
        if found is None:
            raise ValidationError(f"You are not an approved member of team {team_id}")
        return found

    return (await db.execute(q.order_by(TeamMember.created_at, TeamMember.id).limit(1))).scalar_one_or_none()


async def price_for(db: AsyncSession, team_id: Optional[str], output_kind: str) -> int:
    if not team_id:
        return 0
    pricing = await db.get(TeamPricing, team_id)
    return pricing.price_for(output_kind) if pricing else 0


async def create_job(db: AsyncSession, user_id: str, req: CreateJobRequest) -> GenerationJob:
    """
    Reserve the price and insert the pending job in one transaction.
    Any error leaves neither a job row nor a ledger row behind.
    """
    validate_request(req)
    team_id = await resolve_team(db, user_id, req.team_id)
    price = await price_for(db, team_id, req.output_kind)
    job_id = str(uuid.uuid4())

    try:
        if team_id and price > 0:
            await ledger_service.reserve(db, team_id, price, job_id=job_id, actor_id=user_id)

        job = GenerationJob(
            id=job_id,
            user_id=user_id,
            team_id=team_id,
            prompt=req.prompt,
            language=req.language,
            model_tier=req.model_tier,
            output_kind=req.output_kind,
            layout_hint=req.layout_hint,
            site_name=req.site_name,
            status=STATUS_PENDING,
            reserved_price_cents=price,
            realized_price_cents=0,
        )
        db.add(job)
        await db.commit()
    except PipelineError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Failed to create job for user %s", user_id)
        raise PersistenceError("Failed to create generation job") from e

    logger.info(
        "Job %s created: user=%s team=%s kind=%s tier=%s reserved=%d",
        job_id, user_id, team_id, req.output_kind, req.model_tier, price,
    )
    return job


# ─────────────────────────────────────────────
# STATE TRANSITIONS
# ─────────────────────────────────────────────
async def claim_job(db: AsyncSession, job_id: str) -> bool:
    """pending -> generating. True for exactly one caller."""
    res = await db.execute(
        update(GenerationJob)
        .where(GenerationJob.id == job_id, GenerationJob.status == STATUS_PENDING)
        .values(status=STATUS_GENERATING, started_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return res.rowcount == 1


async def fail_job(db: AsyncSession, job_id: str, message: str) -> bool:
    """
    The single failure transition. Moves a non-terminal job to failed and
    refunds its reservation in the same commit. Returns False (and changes
    nothing) when the job already reached a terminal status.
    """
    job = await db.get(GenerationJob, job_id)
    if job is None:
        raise JobNotFound(f"Job not found: {job_id}")
    team_id = job.team_id
    reserved = int(job.reserved_price_cents or 0)

    res = await db.execute(
        update(GenerationJob)
        .where(GenerationJob.id == job_id, GenerationJob.status.in_(ACTIVE_STATUSES))
        .values(
            status=STATUS_FAILED,
            error_message=(message or "Generation failed")[:MAX_ERROR_CHARS],
            realized_price_cents=0,
            completed_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        await db.rollback()
        return False

    if team_id and reserved > 0:
        await ledger_service.refund(db, team_id, reserved, job_id, reason=message)
    await db.commit()

    logger.warning("Job %s failed (refunded %d): %s", job_id, reserved if team_id else 0, message)
    return True


async def complete_job(db: AsyncSession, params: JobParams, result: RepairResult) -> bool:
    """generating -> completed with files, archive and report. False if the job left generating meanwhile."""
    archive = build_archive(result.files)
    usage = result.usage

    res = await db.execute(
        update(GenerationJob)
        .where(GenerationJob.id == params.job_id, GenerationJob.status == STATUS_GENERATING)
        .values(
            status=STATUS_COMPLETED,
            files=dict(result.files),
            archive=archive,
            validation=result.report.to_dict(),
            realized_price_cents=GenerationJob.reserved_price_cents,
            generation_cost=usage.cost,
            model_used=", ".join(usage.models)[:80] or None,
            tokens_in=usage.prompt_tokens,
            tokens_out=usage.completion_tokens,
            error_message=None,
            completed_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        await db.rollback()
        return False

    if params.team_id:
        await ledger_service.settle(
            db, params.team_id, params.reserved_price_cents, params.reserved_price_cents, params.job_id
        )
    await db.commit()
    return True


def error_message_for(err: Exception) -> str:
    if isinstance(err, PipelineError):
        return err.message
    return f"Generation failed: {str(err)[:500]}"


# ─────────────────────────────────────────────
# RUN (background worker)
# ─────────────────────────────────────────────
async def generate_files(gateway: ProviderGateway, params: JobParams) -> RepairResult:
    return await generate_with_repair(
        gateway,
        build_generation_system_prompt(params.output_kind),
        build_generation_user_prompt(params.prompt, params.language, params.layout_hint, params.site_name),
        params.model_tier,
        policy_for(params.output_kind),
        label=f"job {params.job_id}",
    )


async def _fail_in_new_session(session_factory: async_sessionmaker, job_id: str, message: str) -> bool:
    async with session_factory() as db:
        try:
            return await fail_job(db, job_id, message)
        except (SQLAlchemyError, PipelineError):
            await db.rollback()
            logger.exception("Could not mark job %s as failed; the stale job sweep will retry", job_id)
            return False


async def run_job(
        job_id: str,
        session_factory: Optional[async_sessionmaker] = None,
        gateway: Optional[ProviderGateway] = None,
) -> Optional[str]:
    """
    Worker entry point; carries only the job id. Never raises: the outcome
    is written to the job row. Returns the status this call left the job in,
    or None when it did nothing (unknown job, or claimed elsewhere).
    """
    session_factory = session_factory or SessionLocal
    gateway = gateway or get_gateway()

    try:
        async with session_factory() as db:
            job = await db.get(GenerationJob, job_id)
            if job is None:
                logger.warning("Run for unknown job %s", job_id)
                return None
            if job.is_terminal:
                logger.info("Job %s already processed (%s), skipping", job_id, job.status)
                return None
            params = JobParams.from_job(job)
            if not await claim_job(db, job_id):
                logger.info("Job %s was claimed by another worker", job_id)
                return None
    except SQLAlchemyError:
        # Nothing was claimed; a redelivery or the stale job sweep picks the job up
        logger.exception("Job %s: could not load or claim", job_id)
        return None

    logger.info("Job %s generating (%s, %s)", job_id, params.output_kind, params.model_tier)

    try:
        result = await generate_files(gateway, params)
    except Exception as e:
        logger.warning("Job %s generation error: %s", job_id, e)
        failed = await _fail_in_new_session(session_factory, job_id, error_message_for(e))
        return STATUS_FAILED if failed else None

    try:
        async with session_factory() as db:
            completed = await complete_job(db, params, result)
    except (SQLAlchemyError, PipelineError):
        logger.exception("Job %s: saving the result failed", job_id)
        failed = await _fail_in_new_session(session_factory, job_id, "Failed to save generated files")
        return STATUS_FAILED if failed else None

    if not completed:
        logger.warning("Job %s left the generating state before completion; result dropped", job_id)
        return None

    logger.info(
        "Job %s completed: %d files, %d validation errors, cost=$%.4f",
        job_id, len(result.files), len(result.report.errors), result.usage.cost,
    )
    return STATUS_COMPLETED


# ─────────────────────────────────────────────
# STALE JOBS
# ─────────────────────────────────────────────
async def fail_stale_jobs(
        db: AsyncSession,
        older_than_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
) -> List[str]:
    minutes = older_than_minutes if older_than_minutes is not None else config.STALE_JOB_MINUTES
    cutoff = (now or datetime.utcnow()) - timedelta(minutes=minutes)

    stale_ids = (
        await db.execute(
            select(GenerationJob.id).where(
                GenerationJob.status.in_(ACTIVE_STATUSES),
                GenerationJob.created_at < cutoff,
            )
        )
    ).scalars().all()

    failed: List[str] = []
    for job_id in stale_ids:
        if await fail_job(db, job_id, f"Generation timed out after {minutes} minutes"):
            failed.append(job_id)

    if failed:
        logger.warning("Failed %d stale jobs: %s", len(failed), ", ".join(failed))
    return failed


# ─────────────────────────────────────────────
# READ
# ─────────────────────────────────────────────
async def get_job(db: AsyncSession, job_id: str, user_id: str) -> GenerationJob:
    job = await db.get(GenerationJob, job_id)
    if job is None or job.user_id != user_id:
        raise JobNotFound("Job not found")
    return job


def job_status(job: GenerationJob) -> dict:
    return {
        "job_id": job.id,
        "status": job.status,
        "output_kind": job.output_kind,
        "model_tier": job.model_tier,
        "site_name": job.site_name,
        "error": job.error_message,
        "validation": job.validation,
        "files": sorted((job.files or {}).keys()),
        "reserved_price_cents": int(job.reserved_price_cents or 0),
        "realized_price_cents": int(job.realized_price_cents or 0),
        "generation_cost": job.generation_cost,
        "model_used": job.model_used,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
    }


async def download_archive(db: AsyncSession, job_id: str, user_id: str) -> Tuple[str, bytes]:
    job = await get_job(db, job_id, user_id)
    if job.status != STATUS_COMPLETED:
        raise JobStateError(f"Job is {job.status}, nothing to download yet")
    if job.archive is None:
        raise JobNotFound("Archive is no longer available")
    return archive_filename(job.site_name or "", job.id), job.archive
