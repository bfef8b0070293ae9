"""
Background invoice generation.

Each dispatched job becomes one asyncio task. Rendering and artifact upload
are blocking, so they run on a thread pool; the event loop only waits.
Jobs are never cancelled once dispatched and failures are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional, Set

from app.core.storage import ArtifactStorage
from app.events.hub import NotificationHub
from app.events.models import EventType, job_event
from app.invoices.models import JobStatus
from app.invoices.service import InvoiceJobService

logger = logging.getLogger(__name__)

Renderer = Callable[[Dict[str, Any]], bytes]

_EVENT_FOR_STATUS = {
    JobStatus.ready: EventType.job_ready,
    JobStatus.failed: EventType.job_failed,
}


def artifact_key(user_id: str, job_id: str) -> str:
    return f"invoices/{user_id}/{job_id}.pdf"


class InvoiceJobRunner:
    def __init__(
        self,
        *,
        hub: NotificationHub,
        storage: ArtifactStorage,
        renderer: Renderer,
        store=InvoiceJobService,
        max_workers: int = 4,
    ):
        self.hub = hub
        self.storage = storage
        self.renderer = renderer
        self.store = store
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="invoice-job")
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, job: dict) -> asyncio.Task:
        """Schedule generation for a freshly created job and return immediately."""
        job_id = str(job["_id"])
        task = asyncio.get_running_loop().create_task(self._run(job), name=f"invoice-job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Dispatched invoice job {job_id}")
        return task

    async def _run(self, job: dict) -> JobStatus:
        job_id = str(job["_id"])
        user_id = job["user_id"]
        loop = asyncio.get_running_loop()

        try:
            pdf = await loop.run_in_executor(self._executor, self.renderer, job["invoice"])
            ref = await loop.run_in_executor(
                self._executor, self.storage.save, artifact_key(user_id, job_id), pdf
            )
            transitioned = await self.store.mark_ready(job_id, ref)
            outcome = JobStatus.ready
        except Exception as e:
            logger.exception(f"Invoice job {job_id} failed")
            try:
                transitioned = await self.store.mark_failed(job_id, f"{type(e).__name__}: {e}")
            except Exception:
                logger.exception(f"Could not record failure for invoice job {job_id}")
                return JobStatus.failed
            outcome = JobStatus.failed

        if not transitioned:
            # Someone else already finished this job and owns the notification.
            return outcome

        logger.info(f"Invoice job {job_id} {outcome.value}")
        await self.hub.publish(user_id, job_event(_EVENT_FOR_STATUS[outcome], job_id, outcome.value))
        return outcome

    async def join(self, timeout: Optional[float] = None) -> int:
        """Wait for dispatched jobs to finish. Returns how many are still running."""
        tasks = list(self._tasks)
        if not tasks:
            return 0
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        return len(still_running)

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight jobs, then stop the worker threads."""
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} invoice job(s) to finish")
        still_running = await self.join(timeout)
        if still_running:
            logger.warning(f"{still_running} invoice job(s) still running at shutdown")
        self._executor.shutdown(wait=False)
