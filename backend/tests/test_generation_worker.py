import json

import pytest
from sqlalchemy.exc import IntegrityError

from app.exceptions import DependencyMissingError, ModelInvocationError
from app.config import Settings
from app.plan.generation import STORE_ERROR_MESSAGE, GenerationWorker, build_generation_worker, model_options
from app.schemas import PlanInputs

INPUTS = PlanInputs(industry="Coffee Shop", location="Austin, USA", language="en")


@pytest.mark.asyncio
async def test_successful_run_marks_plan_done(store, fake_model):
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, fake_model).run("plan-1", INPUTS)

    view = await store.get_plan_view("plan-1")
    assert view["status"] == "done"
    assert len(view["result"]["financialProjections"]) == 5
    assert len(fake_model.calls) == 1


@pytest.mark.asyncio
async def test_structured_run_requests_json_schema(store, fake_model):
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, fake_model, max_tokens=2048).run("plan-1", INPUTS)

    options = fake_model.calls[0]["options"]
    assert options["max_tokens"] == 2048
    assert options["response_format"]["type"] == "json_schema"


@pytest.mark.asyncio
async def test_structured_run_accepts_json_text(store, model_factory, structured_payload):
    client = model_factory(response="```json\n" + json.dumps(structured_payload) + "\n```")
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, client).run("plan-1", INPUTS)
    assert (await store.get_by_id("plan-1")).status == "done"


@pytest.mark.asyncio
async def test_model_failure_marks_plan_error(store, model_factory):
    client = model_factory(error=ModelInvocationError("Language model call failed with HTTP 503: busy"))
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, client).run("plan-1", INPUTS)

    plan = await store.get_by_id("plan-1")
    assert plan.status == "error"
    assert plan.error_message == "Language model call failed with HTTP 503: busy"


@pytest.mark.asyncio
async def test_unexpected_failure_is_recorded_with_type(store, model_factory):
    client = model_factory(error=RuntimeError("socket closed"))
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, client).run("plan-1", INPUTS)
    assert (await store.get_by_id("plan-1")).error_message == "RuntimeError: socket closed"


@pytest.mark.asyncio
async def test_unparseable_output_marks_plan_error(store, model_factory, structured_payload):
    structured_payload["financialProjections"] = structured_payload["financialProjections"][:4]
    client = model_factory(response=structured_payload)
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, client).run("plan-1", INPUTS)

    plan = await store.get_by_id("plan-1")
    assert plan.status == "error"
    assert "financialProjections" in plan.error_message


@pytest.mark.asyncio
async def test_failed_running_write_does_not_stop_generation(store, fake_model, monkeypatch):
    async def _broken_update_status(plan_id, status):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(store, "update_status", _broken_update_status)
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, fake_model).run("plan-1", INPUTS)
    assert (await store.get_by_id("plan-1")).status == "done"


@pytest.mark.asyncio
async def test_failed_terminal_write_does_not_escape(store, model_factory, monkeypatch):
    async def _broken_update_error(plan_id, status, error_message):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(store, "update_error", _broken_update_error)
    client = model_factory(error=ModelInvocationError("timed out"))
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, client).run("plan-1", INPUTS)
    assert (await store.get_by_id("plan-1")).status == "running"


@pytest.mark.asyncio
async def test_rerun_on_finished_plan_leaves_it_alone(store, fake_model, model_factory):
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, fake_model).run("plan-1", INPUTS)

    failing = model_factory(error=ModelInvocationError("late failure"))
    await GenerationWorker(store, failing).run("plan-1", INPUTS)

    plan = await store.get_by_id("plan-1")
    assert plan.status == "done"
    assert plan.error_message is None


@pytest.mark.asyncio
async def test_sectioned_run(store, model_factory, sectioned_text):
    client = model_factory(response=sectioned_text)
    await store.insert("plan-1", "queued", INPUTS, "sectioned")
    await GenerationWorker(store, client, plan_format="sectioned").run("plan-1", INPUTS)

    view = await store.get_plan_view("plan-1")
    assert view["status"] == "done"
    assert view["result"]["sections"]["financials"]["markdown"] == "Break-even in year two."
    assert "response_format" not in client.calls[0]["options"]


@pytest.mark.asyncio
async def test_sectioned_run_without_markers_fails(store, model_factory):
    client = model_factory(response="I cannot help with that.")
    await store.insert("plan-1", "queued", INPUTS, "sectioned")
    await GenerationWorker(store, client, plan_format="sectioned").run("plan-1", INPUTS)

    plan = await store.get_by_id("plan-1")
    assert plan.status == "error"
    assert "no sections detected" in plan.error_message


def test_unknown_plan_format_is_rejected(store, fake_model):
    with pytest.raises(ValueError):
        GenerationWorker(store, fake_model, plan_format="yaml")


def test_model_options_for_sectioned_format():
    assert model_options("sectioned", 512) == {"max_tokens": 512}


def test_build_generation_worker_requires_credentials(session_factory):
    settings = Settings(CF_ACCOUNT_ID="", CF_API_TOKEN="")
    with pytest.raises(DependencyMissingError):
        build_generation_worker(settings, session_factory)


def test_build_generation_worker_uses_configured_format(session_factory, fake_model):
    settings = Settings(PLAN_FORMAT="sectioned", MODEL_MAX_TOKENS=1000)
    worker = build_generation_worker(settings, session_factory, model_client=fake_model)
    assert worker.plan_format == "sectioned"
    assert worker.max_tokens == 1000


@pytest.mark.asyncio
async def test_nan_in_model_output_is_a_format_error(store, model_factory, structured_payload):
    structured_payload["tam"] = float("nan")
    client = model_factory(response=json.dumps(structured_payload))
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, client).run("plan-1", INPUTS)

    plan = await store.get_by_id("plan-1")
    assert plan.status == "error"
    assert plan.error_message.startswith("Model returned unexpected format: field 'tam'")


@pytest.mark.asyncio
async def test_result_write_failure_is_recorded_briefly(store, fake_model, monkeypatch):
    async def _broken_update_result(plan_id, status, result):
        raise IntegrityError("INSERT INTO market_analysis ...", {}, Exception("NOT NULL constraint failed"))

    monkeypatch.setattr(store, "update_result", _broken_update_result)
    await store.insert("plan-1", "queued", INPUTS, "structured")
    await GenerationWorker(store, fake_model).run("plan-1", INPUTS)

    plan = await store.get_by_id("plan-1")
    assert plan.status == "error"
    assert plan.error_message == STORE_ERROR_MESSAGE


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["done", "error"])
async def test_finished_plan_is_skipped_without_model_call(store, fake_model, status):
    await store.insert("plan-1", status, INPUTS, "structured")
    await GenerationWorker(store, fake_model).run("plan-1", INPUTS)

    assert fake_model.calls == []
    assert (await store.get_by_id("plan-1")).status == status


@pytest.mark.asyncio
async def test_unknown_plan_is_skipped_without_model_call(store, fake_model):
    await GenerationWorker(store, fake_model).run("missing", INPUTS)
    assert fake_model.calls == []


@pytest.mark.asyncio
async def test_redelivered_running_plan_still_generates(store, fake_model):
    await store.insert("plan-1", "running", INPUTS, "structured")
    await GenerationWorker(store, fake_model).run("plan-1", INPUTS)
    assert (await store.get_by_id("plan-1")).status == "done"
