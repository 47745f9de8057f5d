"""SQLModel database tables for the job orchestration pipeline.

Tables:
- AgentJob: durable work queue (pending/processing/completed/failed)
- AgentRun: one execution trace per job attempt
- ContentOrder: content creation request consumed by the pipelines
- SavedDraft: generated draft written on pipeline success
- Profile: user profile fields read by the personalizer
- KnowledgeBaseFile: uploaded reference files (personalization input)
- PacingSchedule: per-user posting cadence read by the pacing scheduler
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp; every datetime column is timezone-aware."""
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Normalize a datetime to aware UTC, treating naive values as UTC.

    Backends without native timezone storage (SQLite) may hand back naive values.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# Job queue
# =============================================================================

class AgentJob(SQLModel, table=True):
    """A durable unit of deferred work."""

    __tablename__ = "agent_job"
    __table_args__ = (
        Index("idx_agent_job_status_run_at", "status", "run_at"),
        Index("idx_agent_job_user_id_created_at", "user_id", "created_at"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    type: str = Field(index=True)  # Use JobType enum values
    payload_json: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    user_id: str = Field(index=True)

    status: str = Field(default="pending")  # Use JobStatus enum values
    attempts: int = Field(default=0)
    run_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    started_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    completed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    error_message: str | None = Field(default=None, sa_column=Column(Text))

    # Producer tag (e.g. "pacing" for scheduler-created jobs)
    schedule_type: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# =============================================================================
# Run traces
# =============================================================================

class AgentRun(SQLModel, table=True):
    """One execution attempt of a job."""

    __tablename__ = "agent_run"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    job_id: str = Field(foreign_key="agent_job.id", index=True)
    order_id: str | None = Field(default=None, index=True)

    steps_json: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    timings_json: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    cost_cents: int = Field(default=0)

    success: bool = Field(default=False)
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# =============================================================================
# Pipeline inputs and outputs
# =============================================================================

class ContentOrder(SQLModel, table=True):
    """A content creation request."""

    __tablename__ = "content_order"
    __table_args__ = (
        Index("idx_content_order_user_id_created_at", "user_id", "created_at"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str
    source: str = Field(default="app")  # whatsapp, app, pacing, api
    triggered_by: str = Field(default="manual")  # whatsapp, pacing, manual, api
    params_json: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class SavedDraft(SQLModel, table=True):
    """A generated draft ready for the user to review."""

    __tablename__ = "saved_drafts"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    order_id: str | None = Field(default=None, index=True)
    title: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    citations_json: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    quality_score: float | None = Field(default=None)
    status: str = Field(default="draft")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# =============================================================================
# Personalization inputs
# =============================================================================

class Profile(SQLModel, table=True):
    """The subset of a user profile the personalizer reads."""

    __tablename__ = "profiles"

    user_id: str = Field(primary_key=True)
    full_name: str | None = Field(default=None)
    role: str | None = Field(default=None)
    skills: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    primary_goal: str | None = Field(default=None)
    content_pillars: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    whatsapp_number: str | None = Field(default=None)


class KnowledgeBaseFile(SQLModel, table=True):
    """A reference file uploaded to the user's knowledge base."""

    __tablename__ = "knowledge_base_files"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    file_name: str
    extraction_status: str = Field(default="pending")  # pending, completed, failed
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# =============================================================================
# Scheduling
# =============================================================================

class PacingSchedule(SQLModel, table=True):
    """How often a user wants content generated."""

    __tablename__ = "pacing_schedules"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    frequency: str = Field(default="weekly")
    selected_days: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    preferred_time: str = Field(default="09:00")
    is_active: bool = Field(default=True)
    last_triggered_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
