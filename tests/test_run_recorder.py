"""Tests for the step recorder and run persistence."""

from contentflow.runs.recorder import StepRecorder
from contentflow.schemas import JobType, StepName


def test_recorder_appends_in_time_order():
    recorder = StepRecorder()
    recorder.record(StepName.START, order_id="O1")
    recorder.record(StepName.CALLING_BRIEF_BUILDER, order_id="O1")
    recorder.record("custom_step")

    steps = recorder.as_list()
    assert [s["step"] for s in steps] == ["start", "calling_brief_builder", "custom_step"]
    assert steps[0]["order_id"] == "O1"
    timestamps = [s["timestamp"] for s in steps]
    assert timestamps == sorted(timestamps)


def test_recorder_helpers():
    recorder = StepRecorder()
    assert recorder.last_step is None

    recorder.record(StepName.DRAFT_SAVED, draft_id="d1")
    recorder.add_cost(3)
    recorder.add_cost(2)

    assert recorder.has_step(StepName.DRAFT_SAVED)
    assert not recorder.has_step(StepName.ERROR)
    assert recorder.last_step == "draft_saved"
    assert recorder.cost_cents == 5
    assert len(recorder) == 1


def test_as_list_is_a_copy():
    recorder = StepRecorder()
    recorder.record(StepName.START)
    recorder.as_list()[0]["step"] = "tampered"
    assert recorder.last_step == "start"


async def test_each_start_creates_a_new_run(job_store, run_store):
    job = await job_store.enqueue(JobType.PROCESS_ORDER, {"order_id": "O1"}, "user-1")

    first = await run_store.start(job)
    second = await run_store.start(job)

    assert first != second
    runs = await run_store.list_for_job(job.id)
    assert [r.id for r in runs] == [first, second]
    assert all(r.order_id == "O1" and r.success is False for r in runs)


async def test_finish_success_writes_log_once(job_store, run_store):
    job = await job_store.enqueue(JobType.PACING_CHECK, {}, "user-1")
    run_id = await run_store.start(job)

    recorder = StepRecorder(run_id)
    recorder.record(StepName.PACING_CHECK, message="Not implemented yet")
    recorder.add_cost(4)
    await run_store.finish(run_id, recorder, success=True, order_id="O9")

    run = await run_store.get(run_id)
    assert run.success is True
    assert run.error_message is None
    assert run.order_id == "O9"
    assert run.cost_cents == 4
    assert [s["step"] for s in run.steps_json] == ["pacing_check"]
    assert "total_ms" in run.timings_json


async def test_finish_failure_ends_with_error_step(job_store, run_store):
    job = await job_store.enqueue(JobType.PROCESS_ORDER, {"order_id": "O1"}, "user-1")
    run_id = await run_store.start(job)

    recorder = StepRecorder(run_id)
    recorder.record(StepName.START, order_id="O1")
    await run_store.finish(run_id, recorder, success=False, error_message="Drafter failed: 502")

    run = await run_store.get(run_id)
    assert run.success is False
    assert run.error_message == "Drafter failed: 502"
    assert run.steps_json[-1]["step"] == "error"
    assert run.steps_json[-1]["error"] == "Drafter failed: 502"


async def test_finish_failure_does_not_duplicate_error_step(job_store, run_store):
    job = await job_store.enqueue(JobType.PACING_CHECK, {}, "user-1")
    run_id = await run_store.start(job)

    recorder = StepRecorder(run_id)
    recorder.error("boom")
    await run_store.finish(run_id, recorder, success=False, error_message="boom")

    run = await run_store.get(run_id)
    assert [s["step"] for s in run.steps_json] == ["error"]
