"""Job types that are accepted but not implemented yet."""

from __future__ import annotations

from typing import Any

from contentflow.database.models import AgentJob
from contentflow.pipelines.base import Pipeline
from contentflow.runs.recorder import StepRecorder
from contentflow.schemas import JobType, StepName


class PacingCheckPipeline(Pipeline):
    job_type = JobType.PACING_CHECK
    terminal_step = StepName.PACING_CHECK

    async def execute(self, job: AgentJob, recorder: StepRecorder) -> dict[str, Any]:
        # TODO: compare posted drafts against the schedule cadence
        recorder.record(StepName.PACING_CHECK, message="Not implemented yet")
        return {"message": "Pacing check not implemented yet"}


class DraftReviewPipeline(Pipeline):
    job_type = JobType.DRAFT_REVIEW
    terminal_step = StepName.DRAFT_REVIEW

    async def execute(self, job: AgentJob, recorder: StepRecorder) -> dict[str, Any]:
        recorder.record(StepName.DRAFT_REVIEW, message="Not implemented yet")
        return {"message": "Draft review not implemented yet"}
