"""LangGraph workflow for the four-stage content generation sequence.

Graph structure:
START → build_brief → retrieve → write_draft → edit → save → END

Each node calls one remote stage with the previous node's output. A stage
error propagates out of `ainvoke`, so no later node runs.
"""

from __future__ import annotations

import logging
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentflow.database.models import SavedDraft
from contentflow.database.session import get_session
from contentflow.errors import PersistenceError
from contentflow.runs.recorder import StepRecorder
from contentflow.schemas import Brief, Citation, Draft, EnrichmentContext, FinalDraft, StepName
from contentflow.stages.clients import StageClients


logger = logging.getLogger(__name__)


# =============================================================================
# State Definition
# =============================================================================

class GenerationState(TypedDict, total=False):
    """State threaded through the generation graph.

    Attributes:
        job_id: Job being executed (for log prefixes)
        user_id: Acting user sent to every stage
        owner_id: User the saved draft belongs to
        order_id: Content order driving the generation
        enrichment: Optional meeting / knowledge-base context
        recorder: Step log of the current execution
        brief: Brief Builder output
        citations: Retriever output
        draft: Drafter output
        final_draft: Editor output
        draft_id: Id of the persisted draft
    """
    job_id: str
    user_id: str
    owner_id: str
    order_id: str
    enrichment: EnrichmentContext
    recorder: StepRecorder
    brief: Brief
    citations: list[Citation]
    draft: Draft
    final_draft: FinalDraft
    draft_id: str


class ContentGenerationGraph:
    """brief → retrieve → draft → edit → save, compiled once per instance."""

    def __init__(
        self,
        stages: StageClients,
        session_maker: async_sessionmaker[AsyncSession],
    ):
        self.stages = stages
        self.session_maker = session_maker
        self._workflow = self._build().compile()

    # =========================================================================
    # Nodes
    # =========================================================================

    async def brief_node(self, state: GenerationState) -> dict[str, Any]:
        recorder = state["recorder"]
        recorder.record(StepName.CALLING_BRIEF_BUILDER, order_id=state["order_id"])

        brief = await self.stages.brief_builder.build(state["order_id"], state["user_id"], recorder)

        recorder.record(StepName.BRIEF_BUILDER_COMPLETED, topic=brief.topic, platform=brief.platform)
        return {"brief": brief}

    async def retrieve_node(self, state: GenerationState) -> dict[str, Any]:
        recorder = state["recorder"]
        brief = state["brief"]
        recorder.record(StepName.CALLING_RETRIEVER, topic=brief.topic, platform=brief.platform)

        citations = await self.stages.retriever.retrieve(
            state["user_id"],
            brief.topic,
            brief.platform,
            state.get("enrichment"),
            recorder,
        )

        recorder.record(StepName.RETRIEVER_COMPLETED, citations_count=len(citations))
        return {"citations": citations}

    async def draft_node(self, state: GenerationState) -> dict[str, Any]:
        recorder = state["recorder"]
        recorder.record(StepName.CALLING_DRAFTER)

        draft = await self.stages.drafter.draft(
            state["brief"],
            state["citations"],
            state["user_id"],
            state.get("enrichment"),
            recorder,
        )

        recorder.record(StepName.DRAFTER_COMPLETED, title=draft.title)
        return {"draft": draft}

    async def edit_node(self, state: GenerationState) -> dict[str, Any]:
        recorder = state["recorder"]
        recorder.record(StepName.CALLING_EDITOR)

        final_draft = await self.stages.editor.edit(
            state["draft"],
            state["brief"],
            state["user_id"],
            state.get("enrichment"),
            recorder,
        )

        recorder.record(StepName.EDITOR_COMPLETED, quality_score=final_draft.quality_score)
        return {"final_draft": final_draft}

    async def save_node(self, state: GenerationState) -> dict[str, Any]:
        final_draft = state["final_draft"]
        saved = SavedDraft(
            user_id=state.get("owner_id") or state["user_id"],
            order_id=state["order_id"],
            title=final_draft.title,
            content=final_draft.content,
            citations_json=[c.model_dump(mode="json", exclude_none=True) for c in state["citations"]],
            quality_score=final_draft.quality_score,
            status="draft",
        )
        try:
            async with get_session(self.session_maker) as session:
                session.add(saved)
        except Exception as e:
            raise PersistenceError(f"Failed to save draft: {e}") from e

        state["recorder"].record(StepName.DRAFT_SAVED, draft_id=saved.id)
        logger.info(f"[{state['job_id']}] Saved draft {saved.id}")
        return {"draft_id": saved.id}

    # =========================================================================
    # Workflow Builder
    # =========================================================================

    def _build(self) -> StateGraph:
        workflow = StateGraph(GenerationState)

        workflow.add_node("build_brief", self.brief_node)
        workflow.add_node("retrieve", self.retrieve_node)
        workflow.add_node("write_draft", self.draft_node)
        workflow.add_node("edit", self.edit_node)
        workflow.add_node("save", self.save_node)

        workflow.set_entry_point("build_brief")
        workflow.add_edge("build_brief", "retrieve")
        workflow.add_edge("retrieve", "write_draft")
        workflow.add_edge("write_draft", "edit")
        workflow.add_edge("edit", "save")
        workflow.add_edge("save", END)

        return workflow

    # =========================================================================
    # Public API
    # =========================================================================

    async def run(
        self,
        job_id: str,
        user_id: str,
        order_id: str,
        recorder: StepRecorder,
        enrichment: EnrichmentContext | None = None,
        owner_id: str | None = None,
    ) -> dict[str, Any]:
        """Run all five nodes and return `{draft_id, title, citations_count}`."""
        state: GenerationState = {
            "job_id": job_id,
            "user_id": user_id,
            "owner_id": owner_id or user_id,
            "order_id": order_id,
            "recorder": recorder,
        }
        if enrichment is not None and not enrichment.is_empty:
            state["enrichment"] = enrichment

        final_state = await self._workflow.ainvoke(state)

        return {
            "draft_id": final_state["draft_id"],
            "title": final_state["final_draft"].title,
            "citations_count": len(final_state["citations"]),
        }
