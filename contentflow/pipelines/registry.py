"""Module-level pipeline registry with the built-in job types wired in."""

from __future__ import annotations

from contentflow.pipelines.base import PipelineRegistry
from contentflow.pipelines.pacing import PacingContentPipeline
from contentflow.pipelines.process_order import ProcessOrderPipeline
from contentflow.pipelines.stubs import DraftReviewPipeline, PacingCheckPipeline


# Singleton
REGISTRY = PipelineRegistry()

# ---- Built-in registrations -------------------------------------------------

for _pipeline in (
    ProcessOrderPipeline,
    PacingContentPipeline,
    PacingCheckPipeline,
    DraftReviewPipeline,
):
    REGISTRY.register(_pipeline.job_type, _pipeline)
