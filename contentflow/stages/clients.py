"""Typed clients for the remote pipeline stages.

Each stage is an independently deployed function reached over HTTP:

- Brief Builder: order_id -> {"brief": {...}}
- Retriever:     user_id, topic, platform -> {"citations": [...]}
- Drafter:       brief, citations, user_id -> {"draft": {...}}
- Editor:        draft, brief, user_id -> {"draft": {..., "quality_score"}}

Every request carries the acting user id, plus the enrichment context when
there is one. A non-2xx response or a transport failure raises `StageError`.
A stage may report spend as `{"usage": {"cost_cents": n}}`; it is added to
the recorder passed with the call.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from contentflow.config import Settings, get_settings
from contentflow.errors import StageError
from contentflow.runs.recorder import StepRecorder
from contentflow.schemas import Brief, Citation, Draft, EnrichmentContext, FinalDraft


logger = logging.getLogger(__name__)


def usage_cost_cents(data: dict[str, Any]) -> int:
    """Cost reported in a stage response's `usage` block; 0 when absent or malformed."""
    usage = data.get("usage", {})
    if not isinstance(usage, dict):
        return 0
    cost = usage.get("cost_cents", 0)
    if isinstance(cost, bool) or not isinstance(cost, (int, float)) or cost < 0:
        return 0
    return int(cost)


class StageClient:
    """POST JSON to one stage endpoint."""

    stage_name: str = "Stage"

    def __init__(
        self,
        path: str,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        settings = settings or get_settings()
        self.path = path
        self.timeout = timeout or settings.stage_timeout_seconds

        self._client = httpx.AsyncClient(
            base_url=settings.functions_base_url,
            headers={
                "Authorization": f"Bearer {settings.service_role_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=transport,
        )

    async def call(self, payload: dict[str, Any], recorder: StepRecorder | None = None) -> dict[str, Any]:
        """Send one request and return the decoded body."""
        start_time = time.perf_counter()
        try:
            response = await self._client.post(self.path, json=payload)
        except httpx.HTTPError as e:
            raise StageError(self.stage_name, detail=str(e) or type(e).__name__) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        if not response.is_success:
            logger.warning(f"{self.stage_name} returned {response.status_code} after {latency_ms}ms")
            raise StageError(self.stage_name, status_code=response.status_code, detail=response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise StageError(self.stage_name, detail=f"invalid JSON response: {e}") from e
        if not isinstance(data, dict):
            raise StageError(self.stage_name, detail="response body is not an object")

        logger.debug(f"{self.stage_name} responded in {latency_ms}ms")
        if recorder is not None:
            recorder.add_cost(usage_cost_cents(data))
        return data

    def _expect(self, data: dict[str, Any], key: str) -> Any:
        if key not in data or data[key] is None:
            raise StageError(self.stage_name, detail=f"response missing '{key}'")
        return data[key]

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class BriefBuilderClient(StageClient):
    stage_name = "Brief Builder"

    async def build(self, order_id: str, user_id: str, recorder: StepRecorder | None = None) -> Brief:
        data = await self.call({"order_id": order_id, "user_id": user_id}, recorder)
        return Brief.model_validate(self._expect(data, "brief"))


class RetrieverClient(StageClient):
    stage_name = "Retriever"

    def __init__(self, path: str, max_results: int = 5, **kwargs: Any):
        super().__init__(path, **kwargs)
        self.max_results = max_results

    async def retrieve(
        self,
        user_id: str,
        topic: str,
        platform: str,
        enrichment: EnrichmentContext | None = None,
        recorder: StepRecorder | None = None,
    ) -> list[Citation]:
        payload: dict[str, Any] = {
            "user_id": user_id,
            "topic": topic,
            "platform": platform,
            "max_results": self.max_results,
        }
        if enrichment is not None:
            payload.update(enrichment.to_request())

        data = await self.call(payload, recorder)
        citations = self._expect(data, "citations")
        if not isinstance(citations, list):
            raise StageError(self.stage_name, detail="'citations' is not a list")
        return [Citation.model_validate(c) for c in citations]


class DrafterClient(StageClient):
    stage_name = "Drafter"

    async def draft(
        self,
        brief: Brief,
        citations: list[Citation],
        user_id: str,
        enrichment: EnrichmentContext | None = None,
        recorder: StepRecorder | None = None,
    ) -> Draft:
        payload: dict[str, Any] = {
            "brief": brief.model_dump(mode="json"),
            "citations": [c.model_dump(mode="json", exclude_none=True) for c in citations],
            "user_id": user_id,
        }
        if enrichment is not None:
            payload.update(enrichment.to_request())

        data = await self.call(payload, recorder)
        return Draft.model_validate(self._expect(data, "draft"))


class EditorClient(StageClient):
    stage_name = "Editor"

    async def edit(
        self,
        draft: Draft,
        brief: Brief,
        user_id: str,
        enrichment: EnrichmentContext | None = None,
        recorder: StepRecorder | None = None,
    ) -> FinalDraft:
        payload: dict[str, Any] = {
            "draft": draft.model_dump(mode="json"),
            "brief": brief.model_dump(mode="json"),
            "user_id": user_id,
        }
        if enrichment is not None:
            payload.update(enrichment.to_request())

        data = await self.call(payload, recorder)
        return FinalDraft.model_validate(self._expect(data, "draft"))


class StageClients:
    """The four stage clients, built from one settings object."""

    def __init__(
        self,
        brief_builder: BriefBuilderClient,
        retriever: RetrieverClient,
        drafter: DrafterClient,
        editor: EditorClient,
    ):
        self.brief_builder = brief_builder
        self.retriever = retriever
        self.drafter = drafter
        self.editor = editor

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "StageClients":
        settings = settings or get_settings()
        return cls(
            brief_builder=BriefBuilderClient(settings.brief_builder_path, settings=settings, transport=transport),
            retriever=RetrieverClient(
                settings.retriever_path,
                max_results=settings.retriever_max_results,
                settings=settings,
                transport=transport,
            ),
            drafter=DrafterClient(settings.drafter_path, settings=settings, transport=transport),
            editor=EditorClient(settings.editor_path, settings=settings, transport=transport),
        )

    async def aclose(self) -> None:
        for client in (self.brief_builder, self.retriever, self.drafter, self.editor):
            await client.close()
