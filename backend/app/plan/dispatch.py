"""
Hand-off of a freshly inserted plan to whatever runs generation.

``inprocess``: the worker runs as an asyncio task owned by ``supervisor``.
``celery``: the plan is enqueued on the durable ``generation`` queue.
"""
from __future__ import annotations

from typing import Protocol

from ..config import settings
from ..db import AsyncSessionLocal
from ..exceptions import DependencyMissingError
from ..inference.workers_ai import WorkersAIClient, build_model_client
from ..logger import logger
from ..schemas import PlanInputs
from .generation import GenerationWorker
from .store import PlanStore
from .supervisor import JobSupervisor

supervisor = JobSupervisor()


class Dispatcher(Protocol):
    plan_format: str

    def dispatch(self, plan_id: str, inputs: PlanInputs) -> None: ...


class InProcessDispatcher:
    def __init__(self, supervisor: JobSupervisor, worker: GenerationWorker):
        self.supervisor = supervisor
        self.worker = worker
        self.plan_format = worker.plan_format

    def dispatch(self, plan_id: str, inputs: PlanInputs) -> None:
        self.supervisor.spawn(self.worker.run(plan_id, inputs), name=f"plan:{plan_id}")
        logger.info(f"Plan {plan_id} handed to in-process worker", extra={"plan_id": plan_id})


class CeleryDispatcher:
    def __init__(self, plan_format: str):
        self.plan_format = plan_format

    def dispatch(self, plan_id: str, inputs: PlanInputs) -> None:
        from ..tasks import generate_plan_task
        from ..workers import GENERATION_QUEUE

        payload = inputs.model_dump()
        try:
            generate_plan_task.apply_async(args=(plan_id, payload), queue=GENERATION_QUEUE)
        except Exception:
            generate_plan_task.delay(plan_id, payload)
        logger.info(f"Plan {plan_id} queued for generation", extra={"plan_id": plan_id})


def get_plan_store() -> PlanStore:
    return PlanStore(AsyncSessionLocal)


def get_model_client() -> WorkersAIClient:
    client = build_model_client(settings)
    if client is None:
        raise DependencyMissingError("Missing required bindings (AI). Set CF_ACCOUNT_ID and CF_API_TOKEN.")
    return client


def get_dispatcher() -> Dispatcher:
    client = get_model_client()
    if settings.JOB_BACKEND == "celery":
        return CeleryDispatcher(plan_format=settings.PLAN_FORMAT)
    worker = GenerationWorker(
        store=PlanStore(AsyncSessionLocal),
        model_client=client,
        plan_format=settings.PLAN_FORMAT,
        max_tokens=settings.MODEL_MAX_TOKENS,
    )
    return InProcessDispatcher(supervisor, worker)
