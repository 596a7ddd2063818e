from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
import time
from .config import settings
from .db import AsyncSessionLocal, init_db
from .logger import logger
from .plan.dispatch import supervisor
from .plan.store import PlanStore
from .routes import mentor, plans
from .schemas import HealthResponse, VersionResponse
from .exceptions import (
    BizPlanBaseException,
    bizplan_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)

app = FastAPI(
    title="BizPlanGen API",
    version=settings.APP_VERSION,
    description="Queued business plan generation on a hosted language model"
)

app.add_exception_handler(BizPlanBaseException, bizplan_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ALLOW_ORIGINS.split(",")],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        f"Request: {request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
        }
    )

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Response: {response.status_code}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
    )

    return response

app.include_router(plans.router)
app.include_router(mentor.router)

@app.on_event("startup")
async def startup():
    logger.info("Starting BizPlanGen API", extra={"job_backend": settings.JOB_BACKEND, "plan_format": settings.PLAN_FORMAT})
    try:
        await init_db()
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    store = PlanStore(AsyncSessionLocal)
    await store.fail_stale(settings.JOB_MAX_RUNNING_SECONDS)
    if settings.JOB_BACKEND == "inprocess":
        supervisor.start_sweeper(
            lambda: store.fail_stale(settings.JOB_MAX_RUNNING_SECONDS),
            settings.JOB_SWEEP_INTERVAL_SECONDS,
        )

@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down BizPlanGen API", extra={"outstanding_jobs": supervisor.outstanding})
    await supervisor.drain(timeout=settings.JOB_DRAIN_TIMEOUT_SECONDS)

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@app.get("/version", response_model=VersionResponse)
async def version():
    return {"version": settings.APP_VERSION}
