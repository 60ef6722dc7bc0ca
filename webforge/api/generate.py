# FILE: webforge/api/generate.py

import io

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from webforge.api.deps import get_current_user, get_enqueuer, get_provider_gateway
from webforge.core.database import get_db
from webforge.schemas.generate import (
    CreateJobRequest,
    CreateJobResponse,
    EditRequest,
    EditResponse,
    JobStatusResponse,
)
from webforge.services.edit_service import edit_job
from webforge.services.generation_service import create_job, download_archive, get_job, job_status
from webforge.services.provider_service import ProviderGateway
from webforge.services.task_queue import TaskEnqueuer

router = APIRouter(prefix="/api", tags=["generate"])


# ─────────────────────────────────────────────
# START GENERATION
# ─────────────────────────────────────────────
@router.post("/generate", response_model=CreateJobResponse)
async def start_generation(
        req: CreateJobRequest,
        user=Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
        enqueuer: TaskEnqueuer = Depends(get_enqueuer),
):
    """Reserve, persist a pending job and hand its id to the worker. No provider call here."""
    job = await create_job(db, user["id"], req)
    await enqueuer.enqueue_run(job.id)
    return CreateJobResponse(job_id=job.id)


# ─────────────────────────────────────────────
# POLL STATUS
# ─────────────────────────────────────────────
@router.get("/generate/status/{job_id}", response_model=JobStatusResponse)
async def get_generation_status(job_id: str, user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    job = await get_job(db, job_id, user["id"])
    return JobStatusResponse(**job_status(job))


# ─────────────────────────────────────────────
# DOWNLOAD
# ─────────────────────────────────────────────
@router.get("/generate/{job_id}/download")
async def download_generation(job_id: str, user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    filename, data = await download_archive(db, job_id, user["id"])
    return StreamingResponse(
        io.BytesIO(data),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ─────────────────────────────────────────────
# EDIT
# ─────────────────────────────────────────────
@router.post("/generate/edit", response_model=EditResponse)
async def edit_generation(
        req: EditRequest,
        user=Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
        gateway: ProviderGateway = Depends(get_provider_gateway),
):
    result = await edit_job(db, user["id"], req, gateway=gateway)
    return EditResponse(files=result.files, changed_files=result.changed_files, message=result.message)
