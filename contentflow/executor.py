"""Job Executor: run one claimed job and finalize its run and status.

For each job:
1. create a fresh run row (one per attempt)
2. build the pipeline registered for the job type and execute it with a
   recorder scoped to this execution
3. complete or fail the job, then write the step log once

Pipeline and finalization errors stop at this boundary and become the
job's error_message.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentflow.config import Settings, get_settings
from contentflow.database.models import AgentJob
from contentflow.database.session import async_session_maker
from contentflow.errors import ContentFlowError
from contentflow.jobs.store import JobStore, RetryPolicy
from contentflow.notifier import Notifier
from contentflow.pipelines.base import PipelineDeps, PipelineRegistry
from contentflow.pipelines.registry import REGISTRY
from contentflow.runs.recorder import RunStore, StepRecorder
from contentflow.schemas import JobResult, JobStatus
from contentflow.stages.clients import StageClients


logger = logging.getLogger(__name__)


@dataclass
class JobOutcome:
    """What happened to one job execution."""
    job_id: str
    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None
    run_id: str | None = None
    status: JobStatus | None = None

    def to_result(self) -> JobResult:
        return JobResult(
            job_id=self.job_id,
            success=self.success,
            result=self.result,
            error=self.error,
        )


class JobExecutor:
    """Executes claimed jobs through the pipeline registry."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        stages: StageClients | None = None,
        notifier: Notifier | None = None,
        registry: PipelineRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        rng: random.Random | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.session_maker = session_maker or async_session_maker
        self.jobs = JobStore(self.session_maker)
        self.runs = RunStore(self.session_maker)
        self.registry = registry or REGISTRY
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)

        self._owns_clients = stages is None
        self.stages = stages or StageClients.from_settings(settings)
        if notifier is None and self._owns_clients:
            notifier = Notifier(settings)
        self.notifier = notifier

        self.deps = PipelineDeps(
            session_maker=self.session_maker,
            stages=self.stages,
            notifier=self.notifier,
            rng=rng or random.Random(),
        )

    async def execute(self, job: AgentJob) -> JobOutcome:
        """Run a job that is already marked processing.

        Never raises: pipeline and finalization errors both end in a failed
        (or rescheduled) job, so no job is left processing.
        """
        logger.info(f"[{job.id}] Executing job of type: {job.type}")

        recorder = StepRecorder()
        try:
            recorder.run_id = await self.runs.start(job)
        except Exception as e:
            return await self._fail(job, recorder, f"Failed to start run: {e}")
        order_id = (job.payload_json or {}).get("order_id")

        try:
            pipeline = self.registry.build(job.type, self.deps)
            result = await pipeline.execute(job, recorder)
            if not recorder.has_step(pipeline.terminal_step):
                raise ContentFlowError(
                    f"Pipeline {job.type} finished without recording {pipeline.terminal_step.value}"
                )
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"[{job.id}] Job execution failed: {error}")
            return await self._fail(job, recorder, error)

        try:
            await self.jobs.complete(job.id)
        except Exception as e:
            return await self._fail(job, recorder, f"Failed to complete job: {str(e) or type(e).__name__}")

        try:
            await self.runs.finish(
                recorder.run_id,
                recorder,
                success=True,
                order_id=result.get("order_id") or order_id,
            )
        except Exception as e:
            logger.error(f"[{job.id}] Failed to write run {recorder.run_id}: {e}")
        logger.info(f"[{job.id}] Job completed ({recorder.elapsed_ms()}ms)")

        return JobOutcome(
            job_id=job.id,
            success=True,
            result=result,
            run_id=recorder.run_id,
            status=JobStatus.COMPLETED,
        )

    async def _fail(self, job: AgentJob, recorder: StepRecorder, error: str) -> JobOutcome:
        """Move the job out of processing, then write the failed run; both best effort."""
        status: JobStatus | None = None
        try:
            status = await self.jobs.fail(job.id, error, policy=self.retry_policy)
        except Exception as e:
            logger.error(f"[{job.id}] Failed to mark job failed: {e}")

        if recorder.run_id is not None:
            try:
                await self.runs.finish(recorder.run_id, recorder, success=False, error_message=error)
            except Exception as e:
                logger.error(f"[{job.id}] Failed to write run {recorder.run_id}: {e}")

        return JobOutcome(
            job_id=job.id,
            success=False,
            error=error,
            run_id=recorder.run_id,
            status=status,
        )

    async def aclose(self) -> None:
        """Close HTTP clients this executor created."""
        if not self._owns_clients:
            return
        await self.stages.aclose()
        if self.notifier is not None:
            await self.notifier.close()

    async def __aenter__(self) -> "JobExecutor":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
