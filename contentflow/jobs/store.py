"""Job Store: the durable work queue and its state machine.

States: pending -> processing -> completed | failed.
A failed attempt only goes back to pending when the retry policy still
allows another attempt; with the default policy (max_attempts=1) a failed
job stays failed until an external producer re-enqueues it.

Every status change is a single conditional UPDATE on the current status,
so two dispatchers racing for the same row cannot both claim it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from contentflow.config import Settings, get_settings
from contentflow.database.models import AgentJob, as_utc, utcnow
from contentflow.database.session import async_session_maker, get_session
from contentflow.errors import InvalidTransitionError, JobNotFoundError
from contentflow.schemas import JobStatus, JobType


logger = logging.getLogger(__name__)


# Transitions checked by _transition; force_claim writes processing directly and bypasses this table
ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.PENDING},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def can_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff capped by a maximum number of attempts."""

    max_attempts: int = 1
    base_seconds: int = 60
    max_seconds: int = 3600

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.job_max_attempts,
            base_seconds=settings.retry_backoff_base_seconds,
            max_seconds=settings.retry_backoff_max_seconds,
        )

    def should_retry(self, attempts: int) -> bool:
        return attempts < self.max_attempts

    def backoff(self, attempts: int) -> timedelta:
        exponent = max(attempts - 1, 0)
        return timedelta(seconds=min(self.max_seconds, self.base_seconds * 2 ** exponent))


class JobStore:
    """Async access to the agent_job table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None):
        self._session_maker = session_maker or async_session_maker

    # -------------------------------------------------------------------------
    # Producers
    # -------------------------------------------------------------------------

    async def enqueue(
        self,
        job_type: JobType | str,
        payload: dict[str, Any],
        user_id: str,
        run_at: datetime | None = None,
        schedule_type: str | None = None,
    ) -> AgentJob:
        job = AgentJob(
            type=JobType(job_type).value,
            payload_json=payload,
            user_id=user_id,
            status=JobStatus.PENDING.value,
            run_at=as_utc(run_at or utcnow()),
            schedule_type=schedule_type,
        )
        async with get_session(self._session_maker) as session:
            session.add(job)
        logger.info(f"[{job.id}] Enqueued {job.type} job for user {user_id}")
        return job

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get(self, job_id: str) -> AgentJob | None:
        async with get_session(self._session_maker) as session:
            return await session.get(AgentJob, job_id)

    async def due_job_ids(self, limit: int, now: datetime | None = None) -> list[str]:
        """Ids of pending jobs eligible to run, oldest run_at first."""
        now = as_utc(now or utcnow())
        async with get_session(self._session_maker) as session:
            result = await session.execute(
                select(AgentJob.id)
                .where(AgentJob.status == JobStatus.PENDING.value)
                .where(AgentJob.run_at <= now)
                .order_by(AgentJob.run_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        user_id: str | None = None,
        limit: int = 50,
    ) -> list[AgentJob]:
        query = select(AgentJob)
        if status is not None:
            query = query.where(AgentJob.status == status.value)
        if user_id is not None:
            query = query.where(AgentJob.user_id == user_id)
        query = query.order_by(AgentJob.created_at.desc()).limit(limit)
        async with get_session(self._session_maker) as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def counts(self) -> dict[str, int]:
        out = {status.value: 0 for status in JobStatus}
        async with get_session(self._session_maker) as session:
            result = await session.execute(
                select(AgentJob.status, func.count(AgentJob.id)).group_by(AgentJob.status)
            )
            for status, count in result.all():
                out[status] = count
        return out

    # -------------------------------------------------------------------------
    # Claiming
    # -------------------------------------------------------------------------

    async def claim(self, job_id: str, now: datetime | None = None) -> AgentJob | None:
        """Atomically move a pending job to processing.

        Returns None when the row is no longer pending (another dispatcher
        won the race, or the job finished in the meantime).
        """
        now = as_utc(now or utcnow())
        async with get_session(self._session_maker) as session:
            result = await session.execute(
                update(AgentJob)
                .where(AgentJob.id == job_id)
                .where(AgentJob.status == JobStatus.PENDING.value)
                .values(
                    status=JobStatus.PROCESSING.value,
                    started_at=now,
                    attempts=AgentJob.attempts + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info(f"[{job_id}] Claim lost: job is no longer pending")
                return None
            return await session.get(AgentJob, job_id)

    async def force_claim(self, job_id: str, now: datetime | None = None) -> AgentJob | None:
        """Mark a job processing regardless of its current status.

        Used by single-job dispatch; completed and failed jobs may be re-run,
        so this skips ALLOWED_TRANSITIONS. Returns None when the job does not exist.
        """
        now = as_utc(now or utcnow())
        async with get_session(self._session_maker) as session:
            result = await session.execute(
                update(AgentJob)
                .where(AgentJob.id == job_id)
                .values(
                    status=JobStatus.PROCESSING.value,
                    started_at=now,
                    completed_at=None,
                    attempts=AgentJob.attempts + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            return await session.get(AgentJob, job_id)

    # -------------------------------------------------------------------------
    # Finalizing
    # -------------------------------------------------------------------------

    async def complete(self, job_id: str, now: datetime | None = None) -> None:
        await self._transition(
            job_id,
            JobStatus.PROCESSING,
            JobStatus.COMPLETED,
            completed_at=as_utc(now or utcnow()),
            error_message=None,
        )

    async def fail(
        self,
        job_id: str,
        error: str,
        now: datetime | None = None,
        policy: RetryPolicy | None = None,
    ) -> JobStatus:
        """Record a failed attempt; returns the status the job ended in."""
        now = as_utc(now or utcnow())
        policy = policy or RetryPolicy()

        job = await self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if policy.should_retry(job.attempts):
            run_at = now + policy.backoff(job.attempts)
            await self._transition(
                job_id,
                JobStatus.PROCESSING,
                JobStatus.PENDING,
                run_at=run_at,
                error_message=error,
                completed_at=None,
            )
            logger.warning(
                f"[{job_id}] Attempt {job.attempts}/{policy.max_attempts} failed, "
                f"retrying at {run_at.isoformat()}"
            )
            return JobStatus.PENDING

        await self._transition(
            job_id,
            JobStatus.PROCESSING,
            JobStatus.FAILED,
            error_message=error,
            completed_at=now,
        )
        return JobStatus.FAILED

    async def _transition(
        self,
        job_id: str,
        from_status: JobStatus,
        to_status: JobStatus,
        **values: Any,
    ) -> None:
        if not can_transition(from_status, to_status):
            raise InvalidTransitionError(job_id, from_status.value, to_status.value)

        async with get_session(self._session_maker) as session:
            result = await session.execute(
                update(AgentJob)
                .where(AgentJob.id == job_id)
                .where(AgentJob.status == from_status.value)
                .values(status=to_status.value, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return

            job = await session.get(AgentJob, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            raise InvalidTransitionError(job_id, job.status, to_status.value)
