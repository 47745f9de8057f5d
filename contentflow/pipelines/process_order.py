"""process_order: generate a draft for an existing content order."""

from __future__ import annotations

import logging
from typing import Any

from contentflow.database.models import AgentJob, ContentOrder
from contentflow.database.session import get_session
from contentflow.errors import OrderNotFoundError
from contentflow.pipelines.base import Pipeline, PipelineDeps, enrichment_from_payload
from contentflow.pipelines.graph import ContentGenerationGraph
from contentflow.runs.recorder import StepRecorder
from contentflow.schemas import JobType, StepName


logger = logging.getLogger(__name__)


class ProcessOrderPipeline(Pipeline):
    job_type = JobType.PROCESS_ORDER
    terminal_step = StepName.DRAFT_SAVED

    def __init__(self, deps: PipelineDeps):
        super().__init__(deps)
        self.graph = ContentGenerationGraph(deps.stages, deps.session_maker)

    async def load_order(self, order_id: str | None) -> ContentOrder:
        if not order_id:
            raise OrderNotFoundError(order_id)
        async with get_session(self.deps.session_maker) as session:
            order = await session.get(ContentOrder, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def execute(self, job: AgentJob, recorder: StepRecorder) -> dict[str, Any]:
        order_id = (job.payload_json or {}).get("order_id")
        recorder.record(StepName.START, order_id=order_id)

        order = await self.load_order(order_id)
        recorder.record(
            StepName.ORDER_RETRIEVED,
            order_id=order.id,
            source=order.source,
            triggered_by=order.triggered_by,
        )

        return await self.graph.run(
            job_id=job.id,
            user_id=order.user_id,
            order_id=order.id,
            recorder=recorder,
            enrichment=enrichment_from_payload(job),
            owner_id=job.user_id,
        )
