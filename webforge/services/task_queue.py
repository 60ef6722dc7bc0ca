# FILE: webforge/services/task_queue.py
"""
Hand-off from the request path to the worker. A trigger carries only the
job id; the worker re-reads everything else from the job row. Callers learn
the outcome by polling the job, never through the trigger.
"""
import logging
from typing import Optional, Protocol

from fastapi import BackgroundTasks

from webforge.services.generation_service import run_job

logger = logging.getLogger("webforge.tasks")


class TaskEnqueuer(Protocol):
    """Interface for enqueuing job runs."""

    async def enqueue_run(self, job_id: str) -> None:
        ...


class BackgroundTaskEnqueuer:
    """Runs the job in-process after the response is sent (own DB session)."""

    def __init__(self, background_tasks: BackgroundTasks, session_factory=None, gateway=None):
        self.background_tasks = background_tasks
        self.session_factory = session_factory
        self.gateway = gateway

    async def enqueue_run(self, job_id: str) -> None:
        logger.info("Scheduling run for job %s", job_id)
        self.background_tasks.add_task(
            run_job, job_id, session_factory=self.session_factory, gateway=self.gateway
        )


class InlineEnqueuer:
    """Runs the job before returning. For scripts and tests."""

    def __init__(self, session_factory=None, gateway=None):
        self.session_factory = session_factory
        self.gateway = gateway
        self.last_status: Optional[str] = None

    async def enqueue_run(self, job_id: str) -> None:
        self.last_status = await run_job(job_id, session_factory=self.session_factory, gateway=self.gateway)
