"""FastAPI routes for the ContentFlow job runner.

Endpoints:
- POST /job-runner          - Run one job, or drain a batch of pending jobs
- POST /jobs                - Enqueue a job
- GET  /jobs                - List jobs (optional status / user filter)
- GET  /jobs/stats          - Job counts per status
- GET  /jobs/{id}           - Get job status
- GET  /jobs/{id}/runs      - Get the run traces of a job
- GET  /pacing-scheduler    - Which schedules are due today
- POST /pacing-scheduler    - Create today's pacing jobs
"""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from contentflow.config import get_settings
from contentflow.database.models import AgentJob, AgentRun
from contentflow.database.session import async_session_maker, get_db
from contentflow.dispatcher import Dispatcher
from contentflow.errors import JobNotFoundError
from contentflow.executor import JobExecutor
from contentflow.jobs.store import JobStore
from contentflow import scheduler
from contentflow.schemas import (
    DispatchRequest,
    JobCreateRequest,
    JobResponse,
    JobStatus,
    RunResponse,
)


logger = logging.getLogger(__name__)
router = APIRouter()

settings = get_settings()


# =============================================================================
# Dependencies
# =============================================================================

def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return async_session_maker


def get_job_store(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> JobStore:
    return JobStore(session_maker)


async def get_dispatcher(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> AsyncGenerator[Dispatcher, None]:
    """One executor per request; its HTTP clients close with the request."""
    async with JobExecutor(session_maker) as executor:
        yield Dispatcher(executor)


def job_response(job: AgentJob) -> JobResponse:
    return JobResponse(
        id=job.id,
        type=job.type,
        user_id=job.user_id,
        status=JobStatus(job.status),
        attempts=job.attempts,
        payload=job.payload_json or {},
        run_at=job.run_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        error_message=job.error_message,
    )


def run_response(run: AgentRun) -> RunResponse:
    return RunResponse(
        id=run.id,
        job_id=run.job_id,
        user_id=run.user_id,
        order_id=run.order_id,
        steps=run.steps_json or [],
        timings=run.timings_json or {},
        cost_cents=run.cost_cents,
        success=run.success,
        error_message=run.error_message,
        created_at=run.created_at,
    )


# =============================================================================
# Health Check
# =============================================================================

@router.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": settings.app_version,
        "environment": settings.environment,
    }


# =============================================================================
# Dispatcher
# =============================================================================

@router.post("/job-runner")
async def job_runner(
    request: DispatchRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Run a specific job or drain pending jobs.

    Job failures are reported in the body with a 200; only an unknown
    `job_id` or a malformed request produces an error status.
    """
    if request.job_id:
        try:
            result = await dispatcher.run_job(request.job_id)
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return result.model_dump(mode="json", exclude_none=True)

    batch = await dispatcher.run_batch(request.max_jobs)
    return batch.model_dump(mode="json", exclude_none=True)


# =============================================================================
# Jobs Endpoints
# =============================================================================

@router.post("/jobs", response_model=JobResponse, status_code=201)
async def create_job(
    request: JobCreateRequest,
    jobs: JobStore = Depends(get_job_store),
) -> JobResponse:
    """Enqueue a job for a later dispatcher run."""
    job = await jobs.enqueue(
        request.type,
        payload=request.payload,
        user_id=request.user_id,
        run_at=request.run_at,
    )
    return job_response(job)


@router.get("/jobs", response_model=list[JobResponse])
async def list_jobs(
    status: JobStatus | None = None,
    user_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    jobs: JobStore = Depends(get_job_store),
) -> list[JobResponse]:
    """List jobs, newest first."""
    rows = await jobs.list_jobs(status=status, user_id=user_id, limit=limit)
    return [job_response(job) for job in rows]


@router.get("/jobs/stats")
async def job_stats(jobs: JobStore = Depends(get_job_store)) -> dict[str, int]:
    """Number of jobs per status."""
    return await jobs.counts()


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    """Get job status by ID."""
    job = await db.get(AgentJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job_response(job)


@router.get("/jobs/{job_id}/runs", response_model=list[RunResponse])
async def get_job_runs(
    job_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[RunResponse]:
    """Get every run recorded for a job, oldest first."""
    job = await db.get(AgentJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    result = await db.execute(
        select(AgentRun)
        .where(AgentRun.job_id == job_id)
        .order_by(AgentRun.created_at.asc())
    )
    return [run_response(run) for run in result.scalars().all()]


# =============================================================================
# Pacing Scheduler
# =============================================================================

@router.get("/pacing-scheduler")
async def check_pacing_schedules(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> dict[str, Any]:
    """Report which active schedules are due today."""
    return await scheduler.check_schedules(session_maker=session_maker)


@router.post("/pacing-scheduler")
async def create_pacing_jobs(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> dict[str, Any]:
    """Create today's pacing content generation jobs."""
    return await scheduler.create_scheduled_jobs(session_maker=session_maker)
