"""pacing_content_generation: create a personalized order, then generate.

The scheduler enqueues these jobs with the user's cadence and optional
enrichment (recent meetings, knowledge-base files). This pipeline:

1. derives a topic and angle with the Context Personalizer
2. persists a new content order carrying both the raw enrichment and the
   derived fields
3. runs the generation graph against that order
4. notifies the user (failures only become a step)
"""

from __future__ import annotations

import logging
from typing import Any

from contentflow.database.models import AgentJob, ContentOrder
from contentflow.database.session import get_session
from contentflow.errors import PersistenceError
from contentflow.notifier import notify_safely
from contentflow.personalization.context import load_personalization_inputs
from contentflow.personalization.personalizer import Personalization, personalize
from contentflow.pipelines.base import Pipeline, PipelineDeps, enrichment_from_payload
from contentflow.pipelines.graph import ContentGenerationGraph
from contentflow.runs.recorder import StepRecorder
from contentflow.schemas import JobType, PacingGenerationPayload, StepName


logger = logging.getLogger(__name__)

PACING_SOURCE = "pacing"
DEFAULT_PLATFORM = "linkedin"


class PacingContentPipeline(Pipeline):
    job_type = JobType.PACING_CONTENT_GENERATION
    terminal_step = StepName.DRAFT_SAVED

    def __init__(self, deps: PipelineDeps):
        super().__init__(deps)
        self.graph = ContentGenerationGraph(deps.stages, deps.session_maker)

    async def create_order(
        self,
        job: AgentJob,
        payload: PacingGenerationPayload,
        personalization: Personalization,
    ) -> ContentOrder:
        params: dict[str, Any] = {
            "topic": personalization.topic,
            "angle": personalization.angle,
            "platform": DEFAULT_PLATFORM,
            "personalization_source": {
                "topic": personalization.topic_source,
                "angle": personalization.angle_source,
            },
            "schedule_id": payload.schedule_id,
            "frequency": payload.frequency,
            "selected_days": payload.selected_days,
            "preferred_time": payload.preferred_time,
            "trigger_date": payload.trigger_date,
            "meeting_context": payload.meeting_context,
            "knowledge_base_context": payload.knowledge_base_context,
            "job_id": job.id,
        }
        order = ContentOrder(
            user_id=job.user_id,
            source=PACING_SOURCE,
            triggered_by=PACING_SOURCE,
            params_json=params,
        )
        try:
            async with get_session(self.deps.session_maker) as session:
                session.add(order)
        except Exception as e:
            raise PersistenceError(f"Failed to create content order: {e}") from e
        return order

    async def execute(self, job: AgentJob, recorder: StepRecorder) -> dict[str, Any]:
        payload = PacingGenerationPayload.model_validate(job.payload_json or {})
        recorder.record(
            StepName.START,
            schedule_id=payload.schedule_id,
            trigger_date=payload.trigger_date,
        )

        enrichment = enrichment_from_payload(job)
        inputs = await load_personalization_inputs(job.user_id, enrichment, self.deps.session_maker)
        personalization = personalize(inputs, self.deps.rng)
        recorder.record(
            StepName.PERSONALIZED,
            topic=personalization.topic,
            angle=personalization.angle,
            topic_source=personalization.topic_source,
            angle_source=personalization.angle_source,
        )

        order = await self.create_order(job, payload, personalization)
        recorder.record(StepName.ORDER_CREATED, order_id=order.id)
        logger.info(f"[{job.id}] Created pacing order {order.id}: {personalization.topic}")

        result = await self.graph.run(
            job_id=job.id,
            user_id=job.user_id,
            order_id=order.id,
            recorder=recorder,
            enrichment=enrichment,
        )

        await notify_safely(
            self.deps.notifier,
            recorder,
            user_id=job.user_id,
            draft_id=result["draft_id"],
            title=result["title"],
            enrichment=enrichment,
        )

        return {"order_id": order.id, **result}
