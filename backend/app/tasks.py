import asyncio
from typing import Any, Dict

from .workers import celery_app
from .config import settings
from .db import AsyncSessionLocal, engine
from .exceptions import DependencyMissingError
from .schemas import PlanInputs
from .services.plan_status import PLAN_STATUS_ERROR
from .plan.generation import build_generation_worker
from .plan.store import PlanStore
from .logger import logger

@celery_app.task(bind=True, acks_late=True)
def generate_plan_task(self, plan_id: str, inputs: Dict[str, Any]):
    """
    Celery task running one plan through the generation worker.

    No retries: a failed generation is recorded on the plan row and the caller
    submits a new plan to try again.
    """
    async def _run():
        logger.info(f"Celery generation task received plan: {plan_id}", extra={"plan_id": plan_id})
        try:
            try:
                worker = build_generation_worker(settings, AsyncSessionLocal)
            except DependencyMissingError as e:
                logger.error(f"Cannot run plan {plan_id}: {e.message}", extra={"plan_id": plan_id})
                await PlanStore(AsyncSessionLocal).update_error(plan_id, PLAN_STATUS_ERROR, e.message)
                return
            await worker.run(plan_id, PlanInputs.model_validate(inputs))
        finally:
            # connections are bound to this task's event loop
            await engine.dispose()

    return asyncio.run(_run())

@celery_app.task(bind=True, acks_late=True)
def sweep_stale_plans_task(self):
    """
    Fail plans stuck in queued/running past JOB_MAX_RUNNING_SECONDS.
    """
    async def _run():
        try:
            return await PlanStore(AsyncSessionLocal).fail_stale(settings.JOB_MAX_RUNNING_SECONDS)
        finally:
            await engine.dispose()

    return asyncio.run(_run())
