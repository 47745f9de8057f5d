"""End-to-end pipeline runs through the executor with fake stages."""

from sqlmodel import select

from contentflow.database.models import ContentOrder, Profile, SavedDraft
from contentflow.database.session import get_session
from contentflow.pipelines.base import Pipeline, PipelineRegistry
from contentflow.pipelines.registry import REGISTRY
from contentflow.personalization.personalizer import GENERIC_ANGLE
from contentflow.schemas import JobStatus, JobType, StepName


async def saved_drafts(session_maker):
    async with get_session(session_maker) as session:
        result = await session.execute(select(SavedDraft))
        return list(result.scalars().all())


async def claimed(job_store, job_type, payload, user_id="user-1"):
    job = await job_store.enqueue(job_type, payload, user_id)
    return await job_store.claim(job.id)


# =============================================================================
# process_order
# =============================================================================

async def test_process_order_success(executor, job_store, run_store, session_maker, create_order, stage_service):
    await create_order("O1")
    job = await claimed(job_store, JobType.PROCESS_ORDER, {"order_id": "O1"})

    outcome = await executor.execute(job)

    assert outcome.success
    assert outcome.result["citations_count"] == 3
    assert outcome.result["title"] == "Why X matters"

    assert (await job_store.get(job.id)).status == JobStatus.COMPLETED.value

    run = await run_store.get(outcome.run_id)
    assert run.success is True
    assert run.order_id == "O1"
    steps = [s["step"] for s in run.steps_json]
    assert steps == [
        "start",
        "order_retrieved",
        "calling_brief_builder",
        "brief_builder_completed",
        "calling_retriever",
        "retriever_completed",
        "calling_drafter",
        "drafter_completed",
        "calling_editor",
        "editor_completed",
        "draft_saved",
    ]

    drafts = await saved_drafts(session_maker)
    assert len(drafts) == 1
    assert drafts[0].id == outcome.result["draft_id"]
    assert drafts[0].order_id == "O1"
    assert drafts[0].quality_score == 8
    assert len(drafts[0].citations_json) == 3
    assert drafts[0].status == "draft"

    assert stage_service.paths() == ["/order-builder", "/retrieval-agent", "/writer-agent", "/editor-agent"]


async def test_editor_failure_fails_job_without_draft(executor, job_store, run_store, session_maker, create_order, stage_service):
    await create_order("O1")
    stage_service.fail("/editor-agent", 500)
    job = await claimed(job_store, JobType.PROCESS_ORDER, {"order_id": "O1"})

    outcome = await executor.execute(job)

    assert not outcome.success
    assert outcome.status == JobStatus.FAILED
    stored = await job_store.get(job.id)
    assert stored.status == JobStatus.FAILED.value
    assert "Editor" in stored.error_message and "500" in stored.error_message
    assert stored.completed_at is not None

    run = await run_store.get(outcome.run_id)
    assert run.success is False
    assert run.error_message == "Editor failed: 500"
    assert run.steps_json[-1]["step"] == "error"
    assert await saved_drafts(session_maker) == []


async def test_drafter_failure_never_calls_editor(executor, job_store, run_store, create_order, stage_service):
    await create_order("O1")
    stage_service.fail("/writer-agent", 502)
    job = await claimed(job_store, JobType.PROCESS_ORDER, {"order_id": "O1"})

    outcome = await executor.execute(job)

    assert not outcome.success
    assert "/editor-agent" not in stage_service.paths()
    run = await run_store.get(outcome.run_id)
    steps = [s["step"] for s in run.steps_json]
    assert steps[-2:] == ["calling_drafter", "error"]
    assert "calling_editor" not in steps


async def test_missing_order_fails_cleanly(executor, job_store, run_store, stage_service):
    job = await claimed(job_store, JobType.PROCESS_ORDER, {"order_id": "missing"})

    outcome = await executor.execute(job)

    assert not outcome.success
    assert outcome.error == "Content order not found: missing"
    stored = await job_store.get(job.id)
    assert stored.status == JobStatus.FAILED.value

    run = await run_store.get(outcome.run_id)
    assert run.success is False
    assert [s["step"] for s in run.steps_json] == ["start", "error"]
    assert "total_ms" in run.timings_json
    assert stage_service.calls == []


async def test_unknown_job_type_is_fatal_for_that_job(executor, job_store):
    job = await job_store.enqueue(JobType.PACING_CHECK, {}, "user-1")
    job = await job_store.claim(job.id)
    job.type = "publish_everywhere"

    outcome = await executor.execute(job)

    assert not outcome.success
    assert outcome.error == "Unknown job type: publish_everywhere"


async def test_stub_pipelines_complete(executor, job_store):
    job = await claimed(job_store, JobType.DRAFT_REVIEW, {})

    outcome = await executor.execute(job)

    assert outcome.success
    assert outcome.result == {"message": "Draft review not implemented yet"}


async def test_pipeline_without_terminal_step_fails(session_maker, stages, settings, job_store):
    from contentflow.executor import JobExecutor

    class SilentPipeline(Pipeline):
        job_type = JobType.PACING_CHECK
        terminal_step = StepName.PACING_CHECK

        async def execute(self, job, recorder):
            return {"message": "did nothing"}

    registry = PipelineRegistry()
    registry.register(JobType.PACING_CHECK, SilentPipeline)
    executor = JobExecutor(session_maker, stages=stages, registry=registry, settings=settings)
    job = await claimed(job_store, JobType.PACING_CHECK, {})

    outcome = await executor.execute(job)

    assert not outcome.success
    assert "without recording pacing_check" in outcome.error


def test_registry_has_builtin_job_types():
    assert REGISTRY.list() == sorted(t.value for t in JobType)


# =============================================================================
# pacing_content_generation
# =============================================================================

PACING_PAYLOAD = {
    "schedule_id": "s1",
    "frequency": "weekly",
    "selected_days": ["monday", "thursday"],
    "preferred_time": "09:00",
    "trigger_date": "2026-10-15T09:00:00",
}


async def test_pacing_without_context_uses_role_defaults(executor, job_store, session_maker, stage_service):
    job = await claimed(job_store, JobType.PACING_CONTENT_GENERATION, PACING_PAYLOAD)

    outcome = await executor.execute(job)

    assert outcome.success
    async with get_session(session_maker) as session:
        order = await session.get(ContentOrder, outcome.result["order_id"])
    assert order.source == "pacing"
    assert order.triggered_by == "pacing"
    assert order.user_id == "user-1"
    # No profile row: generic topic, default angle
    assert order.params_json["angle"] == GENERIC_ANGLE
    assert order.params_json["personalization_source"] == {"topic": "generic", "angle": "generic"}
    assert order.params_json["schedule_id"] == "s1"

    assert stage_service.body_for("/order-builder")["order_id"] == order.id
    assert "meeting_context" not in stage_service.body_for("/retrieval-agent")


async def test_pacing_with_meeting_context(executor, job_store, run_store, session_maker, stage_service):
    async with get_session(session_maker) as session:
        session.add(Profile(user_id="user-1", role="Founder", primary_goal="networking"))
    payload = {
        **PACING_PAYLOAD,
        "meeting_context": {
            "recent_meetings": [{"title": "Board review", "topics_discussed": ["runway", "hiring", "pricing"]}],
        },
    }
    job = await claimed(job_store, JobType.PACING_CONTENT_GENERATION, payload)

    outcome = await executor.execute(job)

    assert outcome.success
    async with get_session(session_maker) as session:
        order = await session.get(ContentOrder, outcome.result["order_id"])
    assert order.params_json["topic"] == "Insights from recent meeting: Board review"
    assert order.params_json["angle"] == "Meeting Insights: runway, hiring"
    assert order.params_json["meeting_context"] == payload["meeting_context"]

    retrieval_body = stage_service.body_for("/retrieval-agent")
    assert retrieval_body["meeting_context"]["recent_meetings"][0]["title"] == "Board review"

    run = await run_store.get(outcome.run_id)
    steps = [s["step"] for s in run.steps_json]
    assert steps[:3] == ["start", "personalized", "order_created"]
    assert steps[-2:] == ["draft_saved", "notification_sent"]
    assert run.order_id == order.id


async def test_pacing_notification_failure_is_not_fatal(executor, job_store, run_store, stage_service):
    stage_service.fail("/whatsapp-notifications", 500)
    job = await claimed(job_store, JobType.PACING_CONTENT_GENERATION, PACING_PAYLOAD)

    outcome = await executor.execute(job)

    assert outcome.success
    assert (await job_store.get(job.id)).status == JobStatus.COMPLETED.value
    run = await run_store.get(outcome.run_id)
    assert run.success is True
    assert run.steps_json[-1]["step"] == "notification_failed"


async def test_pacing_malformed_enrichment_is_ignored(executor, job_store, stage_service):
    payload = {**PACING_PAYLOAD, "meeting_context": {"recent_meetings": "not-a-list"}}
    job = await claimed(job_store, JobType.PACING_CONTENT_GENERATION, payload)

    outcome = await executor.execute(job)

    assert outcome.success
    assert "meeting_context" not in stage_service.body_for("/retrieval-agent")


async def test_pacing_non_object_enrichment_is_ignored(executor, job_store, session_maker, stage_service):
    payload = {**PACING_PAYLOAD, "meeting_context": "Board sync", "knowledge_base_context": "oops"}
    job = await claimed(job_store, JobType.PACING_CONTENT_GENERATION, payload)

    outcome = await executor.execute(job)

    assert outcome.success, outcome.error
    assert (await job_store.get(job.id)).status == JobStatus.COMPLETED.value
    async with get_session(session_maker) as session:
        order = await session.get(ContentOrder, outcome.result["order_id"])
    assert order.params_json["personalization_source"] == {"topic": "generic", "angle": "generic"}
    retrieval_body = stage_service.body_for("/retrieval-agent")
    assert "meeting_context" not in retrieval_body
    assert "knowledge_base_context" not in retrieval_body


# =============================================================================
# Finalization
# =============================================================================

async def test_failed_completion_fails_the_job(executor, job_store, run_store, monkeypatch):
    job = await claimed(job_store, JobType.DRAFT_REVIEW, {})

    async def broken_complete(job_id, now=None):
        raise RuntimeError("db write failed")

    monkeypatch.setattr(executor.jobs, "complete", broken_complete)

    outcome = await executor.execute(job)

    assert outcome.success is False
    assert outcome.error == "Failed to complete job: db write failed"
    assert outcome.status == JobStatus.FAILED
    stored = await job_store.get(job.id)
    assert stored.status == JobStatus.FAILED.value
    assert stored.error_message == "Failed to complete job: db write failed"
    run = await run_store.get(outcome.run_id)
    assert run.success is False
    assert run.steps_json[-1]["step"] == "error"


async def test_failed_run_start_fails_the_job(executor, job_store, monkeypatch):
    job = await claimed(job_store, JobType.DRAFT_REVIEW, {})

    async def broken_start(job):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(executor.runs, "start", broken_start)

    outcome = await executor.execute(job)

    assert outcome.success is False
    assert outcome.run_id is None
    assert (await job_store.get(job.id)).status == JobStatus.FAILED.value


async def test_stage_usage_cost_is_recorded(executor, job_store, run_store, create_order, stage_service):
    await create_order("O1")
    stage_service.respond("/writer-agent", 200, {
        "draft": {"title": "Why X matters", "content": "A post about X."},
        "usage": {"cost_cents": 7},
    })
    stage_service.respond("/editor-agent", 200, {
        "draft": {"title": "Why X matters", "content": "A post about X.", "quality_score": 8},
        "usage": {"cost_cents": 5},
    })
    job = await claimed(job_store, JobType.PROCESS_ORDER, {"order_id": "O1"})

    outcome = await executor.execute(job)

    assert outcome.success
    run = await run_store.get(outcome.run_id)
    assert run.cost_cents == 12
