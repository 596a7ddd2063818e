"""
Plan routes - submit, poll and stream business plan generation
"""
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
import uuid

from ..config import settings
from ..exceptions import BizPlanBaseException, JobNotFoundError
from ..inference.workers_ai import WorkersAIClient
from ..logger import logger
from ..plan.dispatch import Dispatcher, get_dispatcher, get_model_client, get_plan_store
from ..plan.prompts import build_sectioned_messages
from ..plan.store import PlanStore
from ..schemas import GenerateRequest, JobAccepted
from ..services.plan_status import PLAN_STATUS_ERROR, PLAN_STATUS_QUEUED

router = APIRouter(prefix="/api", tags=["Plans"])

# last line of a stream that failed after the first chunk
STREAM_ERROR_MARKER = "---STREAM ERROR---"

@router.post("/generate", response_model=JobAccepted, status_code=202)
async def generate_plan(
    request: GenerateRequest,
    store: PlanStore = Depends(get_plan_store),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Enqueue a business plan generation job and return its id immediately.
    """
    inputs = request.to_inputs()
    plan_id = str(uuid.uuid4())

    logger.info(
        "Generate request received",
        extra={"plan_id": plan_id, "industry": inputs.industry, "language": inputs.language},
    )

    await store.insert(plan_id, PLAN_STATUS_QUEUED, inputs, dispatcher.plan_format)

    try:
        dispatcher.dispatch(plan_id, inputs)
    except Exception as e:
        logger.error(f"Failed to dispatch plan {plan_id}: {e}", extra={"plan_id": plan_id})
        await store.update_error(plan_id, PLAN_STATUS_ERROR, f"Failed to enqueue generation job: {e}")
        raise

    return JobAccepted(jobId=plan_id)

@router.get("/plan/{plan_id}")
async def get_plan(plan_id: str, store: PlanStore = Depends(get_plan_store)):
    """
    Get the status of a plan, with the assembled result once it is done.
    """
    view = await store.get_plan_view(plan_id)
    if view is None:
        logger.warning(f"Plan not found: {plan_id}")
        raise JobNotFoundError(plan_id)
    return view

@router.post("/generate/stream")
async def stream_plan(
    request: GenerateRequest,
    client: WorkersAIClient = Depends(get_model_client),
):
    """
    Stream raw sectioned plan text as it is generated. Nothing is stored.
    """
    inputs = request.to_inputs()
    chunks = client.stream(build_sectioned_messages(inputs), {"max_tokens": settings.MODEL_MAX_TOKENS})

    # Pull the first chunk before responding so a failing model call still
    # surfaces as an HTTP error instead of an empty 200.
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        first = ""

    async def _body():
        if first:
            yield first
        try:
            async for chunk in chunks:
                yield chunk
        except Exception as e:
            logger.error(f"Plan stream aborted: {e}", extra={"industry": inputs.industry})
            reason = e.message if isinstance(e, BizPlanBaseException) else "Generation stream interrupted"
            yield f"\n{STREAM_ERROR_MARKER} {reason}\n"

    return StreamingResponse(_body(), media_type="text/plain; charset=utf-8")
