"""
API tests for plan submission and polling
"""
import asyncio

import httpx
import pytest
from sqlalchemy import func, select

from app.exceptions import ModelInvocationError
from app.main import app
from app.models import BusinessPlan
from app.plan import dispatch as dispatch_module


async def _plan_count(session_factory) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(BusinessPlan))).scalar_one()


@pytest.mark.asyncio
async def test_health_check(api):
    response = await api.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_version(api):
    response = await api.get("/version")
    assert response.status_code == 200
    assert response.json()["version"] == app.version


@pytest.mark.asyncio
async def test_submit_then_poll_until_done(api, fake_model, supervisor):
    gate = asyncio.Event()
    fake_model.gate = gate

    response = await api.post("/api/generate", json={"industry": "Coffee Shop", "location": "Austin, USA"})
    assert response.status_code == 202
    job_id = response.json()["jobId"]

    pending = await api.get(f"/api/plan/{job_id}")
    assert pending.status_code == 200
    body = pending.json()
    assert body["status"] in ("queued", "running")
    assert body["industry"] == "Coffee Shop"
    assert "result" not in body

    gate.set()
    assert await supervisor.drain(timeout=5) is True

    done = await api.get(f"/api/plan/{job_id}")
    assert done.status_code == 200
    body = done.json()
    assert body["id"] == job_id
    assert body["status"] == "done"
    assert body["location"] == "Austin, USA"
    result = body["result"]
    assert [p["year"] for p in result["financialProjections"]] == [f"Year {i}" for i in range(1, 6)]
    assert len(result["roadmap"]) == 5
    assert set(result["swot"]) == {"strengths", "weaknesses", "opportunities", "threats"}
    assert result["swot"]["threats"] == []
    assert result["tam"] == 5000000000
    assert result["currency"] == "USD"


@pytest.mark.asyncio
async def test_failed_generation_is_reported_on_poll(api, fake_model, supervisor):
    fake_model.error = ModelInvocationError("Language model call timed out after 120.0s")

    response = await api.post("/api/generate", json={"industry": "Bakery", "location": "Jakarta"})
    job_id = response.json()["jobId"]
    await supervisor.drain(timeout=5)

    body = (await api.get(f"/api/plan/{job_id}")).json()
    assert body["status"] == "error"
    assert body["error_message"] == "Language model call timed out after 120.0s"
    assert "result" not in body


@pytest.mark.asyncio
async def test_inputs_are_trimmed_and_alias_accepted(api, store, supervisor):
    response = await api.post(
        "/api/generate",
        json={"industry": "  Coffee Shop  ", "location_or_budget": " $50,000 ", "language": "id"},
    )
    assert response.status_code == 202
    plan = await store.get_by_id(response.json()["jobId"])
    assert plan.industry == "Coffee Shop"
    assert plan.location == "$50,000"
    assert plan.language == "id"
    assert plan.vision is None


@pytest.mark.asyncio
async def test_unknown_plan_returns_404(api):
    response = await api.get("/api/plan/00000000-0000-4000-8000-000000000000")
    assert response.status_code == 404
    assert response.json()["error"] == "JOB_NOT_FOUND"


@pytest.mark.asyncio
async def test_oversized_industry_is_rejected_without_creating_a_plan(api, session_factory, fake_model):
    response = await api.post("/api/generate", json={"industry": "x" * 501, "location": "Austin, USA"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["field"] == "industry"
    assert body["message"] == "Field 'industry' is too long (max 500 chars)"
    assert await _plan_count(session_factory) == 0
    assert fake_model.calls == []


@pytest.mark.asyncio
async def test_industry_at_max_length_is_accepted(api):
    response = await api.post("/api/generate", json={"industry": "x" * 500, "location": "Austin, USA"})
    assert response.status_code == 202


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, field, message",
    [
        ({"industry": "   ", "location": "Austin"}, "industry", "Field 'industry' is required"),
        ({"industry": 42, "location": "Austin"}, "industry", "Field 'industry' must be a string"),
        ({"industry": "Coffee"}, "location", "Field 'location' is required"),
        ({"industry": "Coffee", "location": "Austin", "vision": "v" * 501}, "vision", "Field 'vision' is too long (max 500 chars)"),
    ],
)
async def test_invalid_fields_are_rejected(api, session_factory, payload, field, message):
    response = await api.post("/api/generate", json=payload)
    assert response.status_code == 400
    body = response.json()
    assert body["field"] == field
    assert body["message"] == message
    assert await _plan_count(session_factory) == 0


@pytest.mark.asyncio
async def test_missing_model_binding_returns_500_without_creating_a_plan(store, session_factory, monkeypatch):
    monkeypatch.setattr(dispatch_module.settings, "CF_ACCOUNT_ID", "")
    monkeypatch.setattr(dispatch_module.settings, "CF_API_TOKEN", "")
    app.dependency_overrides[dispatch_module.get_plan_store] = lambda: store
    try:
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/api/generate", json={"industry": "Coffee Shop", "location": "Austin"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json()["error"] == "DEPENDENCY_MISSING"
    assert await _plan_count(session_factory) == 0
