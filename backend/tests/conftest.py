import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.models import Base
from app.plan.dispatch import InProcessDispatcher, get_dispatcher, get_model_client, get_plan_store
from app.plan.generation import GenerationWorker
from app.plan.store import PlanStore
from app.plan.supervisor import JobSupervisor


class FakeModelClient:
    """Stands in for WorkersAIClient; records every call."""

    def __init__(self, response=None, error=None, chunks=None, gate=None):
        self.response = response
        self.error = error
        self.chunks = chunks or []
        self.gate = gate
        self.calls = []

    async def generate(self, messages, options=None):
        self.calls.append({"messages": messages, "options": options})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.response

    async def stream(self, messages, options=None):
        self.calls.append({"messages": messages, "options": options, "stream": True})
        if self.error is not None:
            raise self.error
        for chunk in self.chunks:
            yield chunk


def _structured_payload():
    return {
        "gap": "Downtown Austin lacks quiet specialty coffee spaces for remote workers.",
        "solution": "A work-friendly specialty coffee shop with bookable booths.",
        "vision": "Be Austin's favourite third place.",
        "mission": "Serve great coffee in a space built for focus.",
        "currency": "USD",
        "tam": 5000000000,
        "sam": 120000000,
        "som": 1500000,
        "swot": {
            "strengths": ["Prime location", "Experienced barista team"],
            "weaknesses": ["High rent"],
            "opportunities": ["Growing remote workforce"],
            "threats": [],
        },
        "pestel": [
            {"factor": "Economic", "description": "Rising disposable income downtown."},
            {"factor": "Social", "description": "Remote work is mainstream."},
        ],
        "porters": [{"force_name": "Competitive rivalry", "value": "High"}],
        "financialProjections": [
            {
                "year": f"Year {i}",
                "revenue": 250000 * i,
                "cogs": 80000 * i,
                "opex": 120000 * i,
                "netProfit": 50000 * i,
            }
            for i in range(1, 6)
        ],
        "roadmap": [
            {"year": f"Year {i}", "title": f"Milestone {i}", "description": f"Deliver phase {i}."}
            for i in range(1, 6)
        ],
        "risks": [{"risk_factor": "Lease renewal", "mitigation": "Negotiate a 10-year lease."}],
    }


SECTIONED_TEXT = """Here is your plan.
---SECTION: executive_summary---
A specialty coffee shop in Austin.
---SECTION: market---
Austin coffee demand keeps growing.
- **TAM:** $5B
SAM: $120M
SOM: $1.5M
---SECTION: go-to-market---
Launch with a remote-worker membership.
---SECTION: financials---
Break-even in year two.
"""


@pytest.fixture
def structured_payload():
    return _structured_payload()


@pytest.fixture
def sectioned_text():
    return SECTIONED_TEXT


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, class_=AsyncSession)
    yield factory
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return PlanStore(session_factory)


@pytest.fixture
def fake_model(structured_payload):
    return FakeModelClient(response=structured_payload)


@pytest.fixture
def supervisor():
    return JobSupervisor()


@pytest_asyncio.fixture
async def api(store, fake_model, supervisor):
    """HTTP client over the app with store, model and dispatcher bound to test doubles."""
    worker = GenerationWorker(store=store, model_client=fake_model, plan_format="structured")
    app.dependency_overrides[get_plan_store] = lambda: store
    app.dependency_overrides[get_model_client] = lambda: fake_model
    app.dependency_overrides[get_dispatcher] = lambda: InProcessDispatcher(supervisor, worker)
    try:
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        await supervisor.drain(timeout=5)
        app.dependency_overrides.clear()


@pytest.fixture
def model_factory():
    return FakeModelClient
