"""Pydantic schemas for the job pipeline I/O contracts.

These schemas define the strict contracts between:
- The dispatcher HTTP endpoint and its callers
- The executor and the remote pipeline stages
- Job payloads written by producers and read by pipelines
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enums
# =============================================================================

class JobType(str, Enum):
    """Closed set of job types; each maps to one registered pipeline."""
    PROCESS_ORDER = "process_order"
    PACING_CONTENT_GENERATION = "pacing_content_generation"
    PACING_CHECK = "pacing_check"
    DRAFT_REVIEW = "draft_review"


class JobStatus(str, Enum):
    """Status of a queued job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StepName(str, Enum):
    """Names of entries in a run's step log."""
    START = "start"
    ORDER_RETRIEVED = "order_retrieved"
    PERSONALIZED = "personalized"
    ORDER_CREATED = "order_created"
    CALLING_BRIEF_BUILDER = "calling_brief_builder"
    BRIEF_BUILDER_COMPLETED = "brief_builder_completed"
    CALLING_RETRIEVER = "calling_retriever"
    RETRIEVER_COMPLETED = "retriever_completed"
    CALLING_DRAFTER = "calling_drafter"
    DRAFTER_COMPLETED = "drafter_completed"
    CALLING_EDITOR = "calling_editor"
    EDITOR_COMPLETED = "editor_completed"
    DRAFT_SAVED = "draft_saved"
    NOTIFICATION_SENT = "notification_sent"
    NOTIFICATION_SKIPPED = "notification_skipped"
    NOTIFICATION_FAILED = "notification_failed"
    PACING_CHECK = "pacing_check"
    DRAFT_REVIEW = "draft_review"
    ERROR = "error"


# =============================================================================
# Stage Schemas
# =============================================================================

class Brief(BaseModel):
    """Output of the Brief Builder stage."""
    model_config = ConfigDict(extra="allow")

    topic: str = Field(..., description="What the content is about")
    platform: str = Field(default="linkedin")
    angle: str = Field(default="insight")
    tone: str = Field(default="Professional")
    length: str = Field(default="Medium")


class Citation(BaseModel):
    """A ranked piece of supporting material from the Retriever stage."""
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    title: str | None = None
    content: str | None = None
    source: str | None = None
    score: float | None = None


class Draft(BaseModel):
    """Output of the Drafter stage."""
    model_config = ConfigDict(extra="allow")

    title: str = Field(..., description="Draft headline")
    content: str = Field(..., description="Draft body")


class FinalDraft(Draft):
    """Output of the Editor stage."""
    quality_score: float | None = Field(default=None, description="Editor quality score")


# =============================================================================
# Enrichment Context
# =============================================================================

class RecentMeeting(BaseModel):
    """A recent meeting summary attached to a pacing job."""
    model_config = ConfigDict(extra="allow")

    title: str | None = None
    summary: str | None = None
    key_insights: str | None = None
    topics_discussed: list[Any] = Field(default_factory=list)
    action_items: list[Any] = Field(default_factory=list)
    meeting_date: str | None = None

    def topic_texts(self) -> list[str]:
        """Topics as plain strings; producers send either strings or {"text": ...}."""
        texts = []
        for topic in self.topics_discussed:
            if isinstance(topic, dict):
                text = topic.get("text") or topic.get("name")
            else:
                text = topic
            if text:
                texts.append(str(text))
        return texts


class MeetingContext(BaseModel):
    """Zero or more recent meetings."""
    model_config = ConfigDict(extra="allow")

    recent_meetings: list[RecentMeeting] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"recent_meetings": data}
        return data


class KnowledgeFileRef(BaseModel):
    """A recently available knowledge-base file."""
    model_config = ConfigDict(extra="allow")

    name: str
    extraction_status: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_file_name_key(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        if isinstance(data, dict) and "name" not in data and "file_name" in data:
            data = {**data, "name": data["file_name"]}
        return data


class KnowledgeBaseContext(BaseModel):
    """Recently available reference files and their extraction status."""
    model_config = ConfigDict(extra="allow")

    recent_files: list[KnowledgeFileRef] = Field(default_factory=list)
    total_files: int | None = None


class EnrichmentContext(BaseModel):
    """Immutable optional context threaded through every stage call."""
    model_config = ConfigDict(frozen=True)

    meeting_context: MeetingContext | None = None
    knowledge_base_context: KnowledgeBaseContext | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "EnrichmentContext":
        return cls(
            meeting_context=payload.get("meeting_context") or None,
            knowledge_base_context=payload.get("knowledge_base_context") or None,
        )

    @property
    def is_empty(self) -> bool:
        return self.meeting_context is None and self.knowledge_base_context is None

    @property
    def latest_meeting(self) -> RecentMeeting | None:
        if self.meeting_context and self.meeting_context.recent_meetings:
            return self.meeting_context.recent_meetings[0]
        return None

    def to_request(self) -> dict[str, Any]:
        """Fields to merge into a stage request; empty when there is no enrichment."""
        return self.model_dump(mode="json", exclude_none=True)


# =============================================================================
# Job Payloads
# =============================================================================

class ProcessOrderPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    order_id: str


class PacingGenerationPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    schedule_id: str | None = None
    frequency: str | None = None
    selected_days: list[str] = Field(default_factory=list)
    preferred_time: str | None = None
    # Raw blobs; EnrichmentContext.from_payload parses them and drops malformed ones
    meeting_context: Any = None
    knowledge_base_context: Any = None
    trigger_date: str | None = None


# =============================================================================
# API Request/Response Schemas
# =============================================================================

class DispatchRequest(BaseModel):
    """Body of the job-runner endpoint."""
    job_id: str | None = Field(default=None, description="Run exactly this job")
    max_jobs: int | None = Field(default=None, ge=1, description="Claim up to this many pending jobs")


class JobResult(BaseModel):
    """Outcome of one job execution."""
    job_id: str
    success: bool
    result: Any | None = None
    error: str | None = None


class BatchResponse(BaseModel):
    """Outcome of a batch dispatch."""
    processed: int
    results: list[JobResult] | None = None
    message: str | None = None


class JobCreateRequest(BaseModel):
    """API request to enqueue a job."""
    type: JobType
    user_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    run_at: datetime | None = None


class JobResponse(BaseModel):
    """API response for job status."""
    id: str
    type: str
    user_id: str
    status: JobStatus
    attempts: int
    payload: dict[str, Any]
    run_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None


class RunResponse(BaseModel):
    """API response for a run trace."""
    id: str
    job_id: str
    user_id: str
    order_id: str | None = None
    steps: list[dict[str, Any]]
    timings: dict[str, Any]
    cost_cents: int
    success: bool
    error_message: str | None = None
    created_at: datetime
