# FILE: webforge/api/internal.py
# Worker-facing endpoints for an external queue or scheduler (shared secret, no user auth)

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from webforge.api.deps import get_provider_gateway, get_session_factory, require_task_secret
from webforge.core.database import get_db
from webforge.services.generation_service import fail_stale_jobs, run_job
from webforge.services.provider_service import ProviderGateway

router = APIRouter(prefix="/api/internal", tags=["internal"], dependencies=[Depends(require_task_secret)])


@router.post("/jobs/{job_id}/run")
async def run_job_task(
        job_id: str,
        gateway: ProviderGateway = Depends(get_provider_gateway),
        session_factory=Depends(get_session_factory),
):
    """Runs the job to its end before answering; safe to deliver more than once."""
    status = await run_job(job_id, session_factory=session_factory, gateway=gateway)
    return {"job_id": job_id, "status": status, "ran": status is not None}


@router.post("/jobs/reap-stale")
async def reap_stale_jobs(older_than_minutes: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    failed = await fail_stale_jobs(db, older_than_minutes=older_than_minutes)
    return {"failed": failed, "count": len(failed)}
