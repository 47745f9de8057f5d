"""Dispatcher: the entry point that turns requests into job executions.

Two modes:
- single job: run exactly `job_id`, whatever its current status
- batch: claim up to `max_jobs` due pending jobs, oldest run_at first

Each claim is atomic, so overlapping dispatcher invocations never execute
the same job twice. A failing job never affects its siblings in a batch.
"""

from __future__ import annotations

import asyncio
import logging

from contentflow.config import Settings, get_settings
from contentflow.errors import JobNotFoundError
from contentflow.executor import JobExecutor
from contentflow.jobs.store import JobStore
from contentflow.schemas import BatchResponse, JobResult


logger = logging.getLogger(__name__)

NO_PENDING_JOBS = "No pending jobs"


class Dispatcher:
    def __init__(
        self,
        executor: JobExecutor,
        jobs: JobStore | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.executor = executor
        self.jobs = jobs or executor.jobs
        self.default_max_jobs = settings.dispatcher_default_max_jobs
        self.concurrency = settings.dispatcher_concurrency

    async def run_job(self, job_id: str) -> JobResult:
        """Run one job by id; raises JobNotFoundError without touching state."""
        logger.info(f"Processing specific job: {job_id}")
        job = await self.jobs.force_claim(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        outcome = await self.executor.execute(job)
        return outcome.to_result()

    async def _claim_and_execute(self, job_id: str) -> JobResult | None:
        job = await self.jobs.claim(job_id)
        if job is None:
            return None
        try:
            outcome = await self.executor.execute(job)
        except Exception as e:
            # Unexpected executor error; keep the batch going
            logger.error(f"[{job_id}] Error processing job: {e}")
            return JobResult(job_id=job_id, success=False, error=str(e) or type(e).__name__)
        return outcome.to_result()

    async def run_batch(self, max_jobs: int | None = None) -> BatchResponse:
        """Claim and run up to `max_jobs` due jobs; results keep claim order."""
        limit = max_jobs or self.default_max_jobs
        logger.info(f"Looking for up to {limit} pending jobs")

        job_ids = await self.jobs.due_job_ids(limit)
        if not job_ids:
            logger.info("No pending jobs found")
            return BatchResponse(processed=0, message=NO_PENDING_JOBS)

        logger.info(f"Found {len(job_ids)} pending jobs")

        if self.concurrency > 1:
            semaphore = asyncio.Semaphore(self.concurrency)

            async def bounded(job_id: str) -> JobResult | None:
                async with semaphore:
                    return await self._claim_and_execute(job_id)

            outcomes = await asyncio.gather(*(bounded(job_id) for job_id in job_ids))
        else:
            outcomes = []
            for job_id in job_ids:
                outcomes.append(await self._claim_and_execute(job_id))

        results = [r for r in outcomes if r is not None]
        if not results:
            return BatchResponse(processed=0, message=NO_PENDING_JOBS)
        return BatchResponse(processed=len(results), results=results)
