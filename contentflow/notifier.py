"""Draft-ready notifications.

Delivery happens through the messaging function (WhatsApp in production).
Failures surface as exceptions here; callers decide whether they are fatal.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from contentflow.config import Settings, get_settings
from contentflow.errors import StageError
from contentflow.runs.recorder import StepRecorder
from contentflow.schemas import EnrichmentContext, StepName


logger = logging.getLogger(__name__)


class Notifier:
    """Tell a user that a new draft is waiting for review."""

    stage_name = "Notifier"

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = settings or get_settings()
        self.enabled = settings.notifications_enabled
        self.path = settings.notifier_path

        self._client = httpx.AsyncClient(
            base_url=settings.functions_base_url,
            headers={
                "Authorization": f"Bearer {settings.service_role_key}",
                "Content-Type": "application/json",
            },
            timeout=settings.notifier_timeout_seconds,
            transport=transport,
        )

    async def notify_draft_ready(
        self,
        user_id: str,
        draft_id: str,
        title: str | None = None,
        enrichment: EnrichmentContext | None = None,
    ) -> bool:
        """Send the notification. Returns False when notifications are disabled."""
        if not self.enabled:
            return False

        payload: dict[str, Any] = {
            "draftId": draft_id,
            "user_id": user_id,
            "title": title,
            "enhanced": enrichment is not None and not enrichment.is_empty,
        }
        try:
            response = await self._client.post(self.path, json=payload)
        except httpx.HTTPError as e:
            raise StageError(self.stage_name, detail=str(e) or type(e).__name__) from e
        if not response.is_success:
            raise StageError(self.stage_name, status_code=response.status_code, detail=response.text)
        return True

    async def close(self) -> None:
        await self._client.aclose()


async def notify_safely(
    notifier: Notifier | None,
    recorder: StepRecorder,
    user_id: str,
    draft_id: str,
    title: str | None = None,
    enrichment: EnrichmentContext | None = None,
) -> None:
    """Notify without ever failing the enclosing job; the outcome becomes a step."""
    if notifier is None:
        recorder.record(StepName.NOTIFICATION_SKIPPED, draft_id=draft_id)
        return
    try:
        sent = await notifier.notify_draft_ready(user_id, draft_id, title, enrichment)
    except Exception as e:
        logger.warning(f"Notification for draft {draft_id} failed: {e}")
        recorder.record(StepName.NOTIFICATION_FAILED, draft_id=draft_id, error=str(e))
        return

    if sent:
        recorder.record(StepName.NOTIFICATION_SENT, draft_id=draft_id)
    else:
        recorder.record(StepName.NOTIFICATION_SKIPPED, draft_id=draft_id, reason="disabled")
