from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Optional
import traceback
from .logger import logger


class BizPlanBaseException(Exception):
    """Base exception for the business plan generator"""
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class PlanValidationError(BizPlanBaseException):
    """Raised when a request field fails validation"""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, "VALIDATION_ERROR", 400)
        self.field = field


class DependencyMissingError(BizPlanBaseException):
    """Raised when a required collaborator (database, model) is not configured"""
    def __init__(self, message: str = "Missing required bindings (DB or AI). Check configuration."):
        super().__init__(message, "DEPENDENCY_MISSING", 500)


class ModelInvocationError(BizPlanBaseException):
    """Raised when the hosted language model call fails"""
    def __init__(self, message: str = "Language model call failed"):
        super().__init__(message, "MODEL_INVOCATION_ERROR", 502)


class PlanFormatError(BizPlanBaseException):
    """Raised when model output cannot be parsed into a business plan"""
    def __init__(self, message: str = "Model returned unexpected format"):
        super().__init__(message, "PLAN_FORMAT_ERROR", 422)


class JobNotFoundError(BizPlanBaseException):
    """Raised when job is not found"""
    def __init__(self, job_id: str):
        super().__init__(f"Plan {job_id} not found", "JOB_NOT_FOUND", 404)


class InvalidJobStateError(BizPlanBaseException):
    """Raised when job is in invalid state for operation"""
    def __init__(self, job_id: str, current_state: str, expected_state: str):
        super().__init__(
            f"Plan {job_id} is in state '{current_state}', expected '{expected_state}'",
            "INVALID_JOB_STATE",
            409,
        )


async def bizplan_exception_handler(request: Request, exc: BizPlanBaseException):
    """Handle custom application exceptions"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    content = {
        "error": exc.code,
        "message": exc.message,
        "status_code": exc.status_code,
    }
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field
    return JSONResponse(status_code=exc.status_code, content=content)


def _validation_error_from_request(exc: RequestValidationError) -> PlanValidationError:
    errors = exc.errors()
    if not errors:
        return PlanValidationError("Invalid request body")

    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = loc[-1] if loc else None
    msg = str(first.get("msg", "Invalid value"))
    # pydantic prefixes messages raised from field validators
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    elif field:
        if first.get("type") == "missing":
            msg = f"Field '{field}' is required"
        else:
            msg = f"Field '{field}': {msg}"
    return PlanValidationError(msg, field=field)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Map request validation failures to a field-specific 400"""
    return await bizplan_exception_handler(request, _validation_error_from_request(exc))


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "http_status_code": exc.status_code,
            "http_detail": exc.detail,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP_ERROR",
            "message": exc.detail,
            "status_code": exc.status_code,
        }
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
            "request_path": request.url.path,
            "exc_traceback": traceback.format_exc(),
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_SERVER_ERROR",
            "details": str(exc),
        }
    )
