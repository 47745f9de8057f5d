"""Pacing scheduler: turn posting cadences into content generation jobs.

A schedule is due when today's weekday name is one of its `selected_days`.
At most one pacing job is created per user per day.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from contentflow.database.models import AgentJob, PacingSchedule, as_utc, utcnow
from contentflow.database.session import async_session_maker, get_session
from contentflow.jobs.store import JobStore
from contentflow.schemas import JobType


logger = logging.getLogger(__name__)

PACING_SCHEDULE_TYPE = "pacing"

# Indexed by datetime.weekday()
DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def day_name(moment: datetime) -> str:
    return DAY_NAMES[moment.weekday()]


def is_due(schedule: PacingSchedule, today_name: str) -> bool:
    return today_name in {d.strip().lower() for d in (schedule.selected_days or [])}


async def _active_schedules(session_maker: async_sessionmaker[AsyncSession]) -> list[PacingSchedule]:
    async with get_session(session_maker) as session:
        result = await session.execute(
            select(PacingSchedule).where(PacingSchedule.is_active == True)  # noqa: E712
        )
        return list(result.scalars().all())


async def check_schedules(
    today: datetime | None = None,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> dict[str, Any]:
    """Report which active schedules should generate content today."""
    today = as_utc(today or utcnow())
    today_name = day_name(today)
    schedules = await _active_schedules(session_maker or async_session_maker)

    if not schedules:
        logger.info("No active pacing schedules found")
        return {"message": "No active schedules", "schedules": [], "today": today_name}

    results = []
    for schedule in schedules:
        should_generate = is_due(schedule, today_name)
        results.append({
            "user_id": schedule.user_id,
            "schedule_id": schedule.id,
            "should_generate": should_generate,
            "reason": f"Scheduled for {today_name}" if should_generate else f"Not scheduled for {today_name}",
        })

    return {
        "message": "Schedule check completed",
        "schedules": results,
        "today": today_name,
        "total_schedules": len(schedules),
        "active_today": sum(1 for r in results if r["should_generate"]),
    }


async def _has_job_today(
    session_maker: async_sessionmaker[AsyncSession],
    user_id: str,
    day_start: datetime,
) -> bool:
    async with get_session(session_maker) as session:
        result = await session.execute(
            select(AgentJob.id)
            .where(AgentJob.user_id == user_id)
            .where(AgentJob.type == JobType.PACING_CONTENT_GENERATION.value)
            .where(AgentJob.schedule_type == PACING_SCHEDULE_TYPE)
            .where(AgentJob.created_at >= day_start)
            .limit(1)
        )
        return result.first() is not None


async def _mark_triggered(
    session_maker: async_sessionmaker[AsyncSession],
    schedule_id: str,
    moment: datetime,
) -> None:
    async with get_session(session_maker) as session:
        schedule = await session.get(PacingSchedule, schedule_id)
        if schedule is not None:
            schedule.last_triggered_at = moment
            session.add(schedule)


async def create_scheduled_jobs(
    today: datetime | None = None,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> dict[str, Any]:
    """Enqueue one pacing_content_generation job per schedule due today."""
    session_maker = session_maker or async_session_maker
    today = as_utc(today or utcnow())
    today_name = day_name(today)
    day_start = datetime.combine(today.date(), time.min, tzinfo=timezone.utc)

    due = [s for s in await _active_schedules(session_maker) if is_due(s, today_name)]
    if not due:
        logger.info("No schedules active for today")
        return {
            "message": "No schedules active for today",
            "jobs_created": 0,
            "job_ids": [],
            "total_schedules": 0,
        }

    logger.info(f"Found {len(due)} schedules active for {today_name}")
    jobs = JobStore(session_maker)
    job_ids: list[str] = []

    for schedule in due:
        try:
            if await _has_job_today(session_maker, schedule.user_id, day_start):
                logger.info(f"Job already exists for user {schedule.user_id} today")
                continue

            job = await jobs.enqueue(
                JobType.PACING_CONTENT_GENERATION,
                payload={
                    "schedule_id": schedule.id,
                    "frequency": schedule.frequency,
                    "selected_days": list(schedule.selected_days or []),
                    "preferred_time": schedule.preferred_time,
                    "trigger_date": today.isoformat(),
                },
                user_id=schedule.user_id,
                run_at=today,
                schedule_type=PACING_SCHEDULE_TYPE,
            )
            await _mark_triggered(session_maker, schedule.id, today)
            job_ids.append(job.id)
        except Exception as e:
            logger.error(f"Failed to create job for user {schedule.user_id}: {e}")

    return {
        "message": f"Created {len(job_ids)} content generation jobs",
        "jobs_created": len(job_ids),
        "job_ids": job_ids,
        "total_schedules": len(due),
    }
