r"""
Generation worker: drives one plan from ``queued`` to ``done`` or ``error``.

    queued --> running --> done
                      \--> error

The running write is best-effort, but a plan that is already done or error is
skipped without calling the model. The terminal write is always attempted, and
failures never escape ``run``: they become the plan's ``error_message``.
"""
from __future__ import annotations

import traceback
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..exceptions import BizPlanBaseException, DependencyMissingError
from ..inference.workers_ai import build_model_client
from ..logger import logger
from ..schemas import PlanInputs
from ..services.plan_status import PLAN_STATUS_DONE, PLAN_STATUS_ERROR, PLAN_STATUS_RUNNING, is_terminal
from .prompts import build_messages
from .sections import parse_sectioned_plan
from .store import PlanResult, PlanStore, SessionFactory
from .structured import parse_structured_plan, plan_json_schema


class ModelClient(Protocol):
    async def generate(self, messages: Any, options: Optional[Dict[str, Any]] = None) -> Any: ...


STORE_ERROR_MESSAGE = "Failed to store generated plan"

PARSERS: Dict[str, Callable[[Any], PlanResult]] = {
    "structured": parse_structured_plan,
    "sectioned": parse_sectioned_plan,
}


def model_options(plan_format: str, max_tokens: int) -> Dict[str, Any]:
    options: Dict[str, Any] = {"max_tokens": max_tokens}
    if plan_format == "structured":
        options["response_format"] = {"type": "json_schema", "json_schema": plan_json_schema()}
    return options


class GenerationWorker:
    def __init__(self, store: PlanStore, model_client: ModelClient, plan_format: str = "structured", max_tokens: int = 4096):
        if plan_format not in PARSERS:
            raise ValueError(f"Unknown plan format: {plan_format}")
        self.store = store
        self.model_client = model_client
        self.plan_format = plan_format
        self.max_tokens = max_tokens

    async def _mark_running(self, plan_id: str) -> bool:
        """False when the plan is gone or already finished and must not be generated."""
        try:
            if await self.store.update_status(plan_id, PLAN_STATUS_RUNNING):
                return True
            plan = await self.store.get_by_id(plan_id)
        except Exception as e:
            logger.warning(
                f"Could not mark plan {plan_id} running, continuing: {e}",
                extra={"plan_id": plan_id, "error": str(e)},
            )
            return True

        if plan is None or is_terminal(plan.status):
            logger.warning(
                f"Skipping plan {plan_id}: no longer pending",
                extra={"plan_id": plan_id, "status": plan.status if plan else None},
            )
            return False
        return True

    async def _generate(self, plan_id: str, inputs: PlanInputs) -> None:
        messages = build_messages(inputs, self.plan_format)
        raw = await self.model_client.generate(messages, model_options(self.plan_format, self.max_tokens))
        logger.info(f"Model output received for plan {plan_id}", extra={"plan_id": plan_id})
        result = PARSERS[self.plan_format](raw)
        await self.store.update_result(plan_id, PLAN_STATUS_DONE, result)

    async def run(self, plan_id: str, inputs: PlanInputs) -> None:
        logger.info(
            f"Starting plan generation: {plan_id}",
            extra={"plan_id": plan_id, "plan_format": self.plan_format},
        )
        if not await self._mark_running(plan_id):
            return

        try:
            await self._generate(plan_id, inputs)
            return
        except BizPlanBaseException as e:
            error_message = e.message
        except SQLAlchemyError as e:
            error_message = STORE_ERROR_MESSAGE
            logger.error(
                f"Could not store result for plan {plan_id}: {e}",
                extra={"plan_id": plan_id, "traceback": traceback.format_exc()},
            )
        except Exception as e:
            error_message = f"{type(e).__name__}: {e}"
            logger.error(
                f"Generation failed for plan {plan_id}: {e}",
                extra={"plan_id": plan_id, "traceback": traceback.format_exc()},
            )

        try:
            await self.store.update_error(plan_id, PLAN_STATUS_ERROR, error_message or "Generation failed")
        except Exception as e:
            # Row stays running; the stale sweeper will fail it later.
            logger.error(
                f"Could not record failure for plan {plan_id}: {e}",
                extra={"plan_id": plan_id, "error": str(e)},
            )


def build_generation_worker(
    settings: Settings,
    session_factory: SessionFactory,
    model_client: Optional[ModelClient] = None,
) -> GenerationWorker:
    client = model_client or build_model_client(settings)
    if client is None:
        raise DependencyMissingError("Missing required bindings (AI). Set CF_ACCOUNT_ID and CF_API_TOKEN.")
    return GenerationWorker(
        store=PlanStore(session_factory),
        model_client=client,
        plan_format=settings.PLAN_FORMAT,
        max_tokens=settings.MODEL_MAX_TOKENS,
    )
