"""
Mentor routes - chat with a consultant model about a finished plan
"""
from fastapi import APIRouter, Depends

from ..exceptions import InvalidJobStateError, JobNotFoundError, ModelInvocationError
from ..inference.workers_ai import WorkersAIClient
from ..logger import logger
from ..plan.dispatch import get_model_client, get_plan_store
from ..plan.prompts import build_mentor_messages
from ..plan.store import PlanStore
from ..schemas import MentorReply, MentorRequest
from ..services.plan_status import PLAN_STATUS_DONE

router = APIRouter(prefix="/api", tags=["Mentor"])

MENTOR_MAX_TOKENS = 1024

@router.post("/plan/{plan_id}/mentor", response_model=MentorReply)
async def mentor_chat(
    plan_id: str,
    request: MentorRequest,
    store: PlanStore = Depends(get_plan_store),
    client: WorkersAIClient = Depends(get_model_client),
):
    plan = await store.get_by_id(plan_id)
    if plan is None:
        raise JobNotFoundError(plan_id)
    if plan.status != PLAN_STATUS_DONE:
        raise InvalidJobStateError(plan_id, plan.status, PLAN_STATUS_DONE)

    view = await store.get_plan_view(plan_id)
    context = {"industry": plan.industry, "location": plan.location, **(view or {}).get("result", {})}

    reply = await client.generate(
        build_mentor_messages(context, request.history, request.message),
        {"max_tokens": MENTOR_MAX_TOKENS},
    )
    if not isinstance(reply, str) or not reply.strip():
        raise ModelInvocationError("Language model returned an empty reply")

    logger.info(f"Mentor reply generated for plan {plan_id}", extra={"plan_id": plan_id})
    return MentorReply(reply=reply.strip())
