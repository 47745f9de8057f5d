"""Shared fixtures: a per-test SQLite database and fake stage services."""

import json
import os
import random

# Settings are cached at import time; point them at SQLite before any import
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./contentflow-test.db")
os.environ.setdefault("ENVIRONMENT", "development")

import httpx
import pytest
import pytest_asyncio

from contentflow.config import Settings
from contentflow.database.models import ContentOrder
from contentflow.database.session import build_engine, build_session_maker, get_session, init_db
from contentflow.dispatcher import Dispatcher
from contentflow.executor import JobExecutor
from contentflow.jobs.store import JobStore
from contentflow.notifier import Notifier
from contentflow.runs.recorder import RunStore
from contentflow.stages.clients import StageClients


STAGE_BASE_URL = "http://stages.test/functions/v1"

BRIEF = {
    "topic": "X",
    "platform": "linkedin",
    "angle": "Y",
    "tone": "Professional",
    "length": "Medium",
}
CITATIONS = [
    {"id": "c1", "title": "First source", "content": "alpha", "score": 0.9},
    {"id": "c2", "title": "Second source", "content": "beta", "score": 0.8},
    {"id": "c3", "title": "Third source", "content": "gamma", "score": 0.7},
]
DRAFT = {"title": "Why X matters", "content": "A post about X."}


class FakeStageService:
    """Programmable stand-in for the remote stage functions.

    Every request is recorded; responses default to the happy path and can
    be replaced per path suffix with `fail()` or `respond()`.
    """

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.responses: dict[str, tuple[int, dict]] = {
            "/order-builder": (200, {"brief": dict(BRIEF)}),
            "/retrieval-agent": (200, {"citations": [dict(c) for c in CITATIONS]}),
            "/writer-agent": (200, {"draft": dict(DRAFT)}),
            "/editor-agent": (200, {"draft": {**DRAFT, "quality_score": 8}}),
            "/whatsapp-notifications": (200, {"success": True}),
        }
        self.errors: dict[str, Exception] = {}

    def respond(self, path: str, status: int, body: dict) -> None:
        self.responses[path] = (status, body)

    def fail(self, path: str, status: int = 500) -> None:
        self.responses[path] = (status, {"error": "boom"})

    def raise_error(self, path: str, exc: Exception) -> None:
        self.errors[path] = exc

    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]

    def body_for(self, path: str) -> dict:
        for called, body in self.calls:
            if called == path:
                return body
        raise AssertionError(f"{path} was never called")

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = next(p for p in self.responses if request.url.path.endswith(p))
        body = json.loads(request.content or b"{}")
        self.calls.append((path, body))
        assert request.headers["Authorization"] == "Bearer test-key"

        if path in self.errors:
            raise self.errors[path]
        status, payload = self.responses[path]
        return httpx.Response(status, json=payload)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        functions_base_url=STAGE_BASE_URL,
        service_role_key="test-key",
        notifications_enabled=True,
        job_max_attempts=1,
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = build_engine(settings.database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def job_store(session_maker):
    return JobStore(session_maker)


@pytest.fixture
def run_store(session_maker):
    return RunStore(session_maker)


@pytest.fixture
def stage_service():
    return FakeStageService()


@pytest_asyncio.fixture
async def stages(settings, stage_service):
    clients = StageClients.from_settings(settings, transport=httpx.MockTransport(stage_service.handler))
    yield clients
    await clients.aclose()


@pytest_asyncio.fixture
async def notifier(settings, stage_service):
    notifier = Notifier(settings, transport=httpx.MockTransport(stage_service.handler))
    yield notifier
    await notifier.close()


@pytest.fixture
def executor(session_maker, stages, notifier, settings):
    return JobExecutor(
        session_maker,
        stages=stages,
        notifier=notifier,
        rng=random.Random(7),
        settings=settings,
    )


@pytest.fixture
def dispatcher(executor, settings):
    return Dispatcher(executor, settings=settings)


@pytest.fixture
def create_order(session_maker):
    async def _create(order_id: str = "O1", user_id: str = "user-1", **params) -> ContentOrder:
        order = ContentOrder(id=order_id, user_id=user_id, source="app", triggered_by="manual", params_json=params)
        async with get_session(session_maker) as session:
            session.add(order)
        return order

    return _create
