"""Run Recorder: per-attempt execution traces.

A `StepRecorder` lives for exactly one job execution and is passed to the
pipeline explicitly, so concurrent executions never share a step log. The
log is written to the `agent_run` row once, at finalization.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from contentflow.database.models import AgentJob, AgentRun
from contentflow.database.session import async_session_maker, get_session
from contentflow.schemas import StepName


logger = logging.getLogger(__name__)


class StepRecorder:
    """Append-only, time-ordered step log for one execution."""

    def __init__(self, run_id: str | None = None):
        self.run_id = run_id
        self._steps: list[dict[str, Any]] = []
        self._last_ts: datetime | None = None
        self._started = time.perf_counter()
        self.cost_cents = 0

    def _timestamp(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_ts is not None and now < self._last_ts:
            now = self._last_ts
        self._last_ts = now
        return now

    def record(self, step: StepName | str, **data: Any) -> dict[str, Any]:
        name = step.value if isinstance(step, StepName) else step
        entry = {"step": name, **data, "timestamp": self._timestamp().isoformat()}
        self._steps.append(entry)
        return entry

    def error(self, message: str, **data: Any) -> dict[str, Any]:
        return self.record(StepName.ERROR, error=message, **data)

    def add_cost(self, cents: int) -> None:
        self.cost_cents += int(cents)

    def has_step(self, step: StepName | str) -> bool:
        name = step.value if isinstance(step, StepName) else step
        return any(s["step"] == name for s in self._steps)

    @property
    def last_step(self) -> str | None:
        return self._steps[-1]["step"] if self._steps else None

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._started) * 1000)

    def as_list(self) -> list[dict[str, Any]]:
        return [dict(s) for s in self._steps]

    def __len__(self) -> int:
        return len(self._steps)


class RunStore:
    """Async access to the agent_run table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None):
        self._session_maker = session_maker or async_session_maker

    async def start(self, job: AgentJob) -> str:
        """Create a fresh run row for this attempt and return its id."""
        run = AgentRun(
            user_id=job.user_id,
            job_id=job.id,
            order_id=(job.payload_json or {}).get("order_id"),
            steps_json=[],
            timings_json={},
            cost_cents=0,
            success=False,
        )
        async with get_session(self._session_maker) as session:
            session.add(run)
        logger.info(f"[{job.id}] Started run {run.id}")
        return run.id

    async def finish(
        self,
        run_id: str,
        recorder: StepRecorder,
        success: bool,
        error_message: str | None = None,
        order_id: str | None = None,
    ) -> None:
        """Persist the full step log and the outcome in one write."""
        if not success and recorder.last_step != StepName.ERROR.value:
            recorder.error(error_message or "unknown error")

        async with get_session(self._session_maker) as session:
            run = await session.get(AgentRun, run_id)
            if run is None:
                logger.error(f"Run {run_id} disappeared before finalization")
                return
            run.steps_json = recorder.as_list()
            run.timings_json = {"total_ms": recorder.elapsed_ms()}
            run.cost_cents = recorder.cost_cents
            run.success = success
            run.error_message = None if success else error_message
            if order_id is not None:
                run.order_id = order_id
            session.add(run)

    async def get(self, run_id: str) -> AgentRun | None:
        async with get_session(self._session_maker) as session:
            return await session.get(AgentRun, run_id)

    async def list_for_job(self, job_id: str) -> list[AgentRun]:
        async with get_session(self._session_maker) as session:
            result = await session.execute(
                select(AgentRun)
                .where(AgentRun.job_id == job_id)
                .order_by(AgentRun.created_at.asc())
            )
            return list(result.scalars().all())
