import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from leadkit.config.logging import get_logger

logger = get_logger(__name__)


class LeadKitException(Exception):
    """Base exception for Lead Kit application."""

    envelope_status = "error"
    headers: dict[str, str] | None = None

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
        job_id: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.job_id = job_id
        super().__init__(self.message)


class ValidationError(LeadKitException):
    """Raised when a submission does not match the site schema."""

    envelope_status = "invalid"

    def __init__(self, errors: list[dict[str, str]], message: str = "Invalid submission"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, {"errors": errors})
        self.errors = errors


class BadRequestError(LeadKitException):
    """Raised when a request body cannot be parsed."""

    def __init__(self, message: str = "Invalid request body"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class NotFoundError(LeadKitException):
    """Raised when a job id does not reference a record."""

    def __init__(
        self,
        message: str = "Not found",
        job_id: str | None = None,
        status_code: int = status.HTTP_404_NOT_FOUND,
    ):
        super().__init__(message, status_code, job_id=job_id)


class InvalidIdentifierError(NotFoundError):
    """Raised when a job id is missing or malformed."""

    def __init__(self, message: str = "Invalid leadId", job_id: str | None = None):
        super().__init__(message, job_id=job_id, status_code=status.HTTP_400_BAD_REQUEST)


class EnqueueError(LeadKitException):
    """Raised when the background trigger could not be delivered."""

    def __init__(self, message: str = "Background enqueue failed", job_id: str | None = None):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR, job_id=job_id)


class RetryLimitError(LeadKitException):
    """Raised when a job has used up its processing attempts."""

    def __init__(self, job_id: str | None = None, message: str = "Retry limit reached"):
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS, job_id=job_id)


class AdapterError(Exception):
    """Raised when a site adapter is missing a required capability."""


class PipelineError(Exception):
    """A fatal processing failure tagged with the stage it happened in."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage
        self.message = message


class StageObserverError(Exception):
    """The stage observer raised while a pipeline event was being reported.

    Never carries a render/send tag: the event being reported is kept in
    ``event`` and ``stage`` stays ``None``.
    """

    stage = None

    def __init__(self, event: str, cause: BaseException):
        super().__init__(f"Stage observer failed at {event}: {cause}")
        self.event = event
        self.message = str(cause) or cause.__class__.__name__


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
    job_id: str | None = None,
    envelope_status: str = "error",
) -> dict[str, Any]:
    """Create standardized error response envelope."""
    return {
        "ok": False,
        "status": envelope_status,
        "message": message,
        "id": job_id,
        "error": {
            "message": message,
            "code": status_code,
            "details": details or {},
        },
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_success_response(
    data: Any, message: str | None = None, request_id: str | None = None
) -> dict[str, Any]:
    """Create standardized success response envelope."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def lead_kit_exception_handler(
    request: Request, exc: LeadKitException
) -> JSONResponse:
    """Handle Lead Kit specific exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.error(
        "Application exception",
        exception=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        job_id=exc.job_id,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            status_code=exc.status_code,
            message=exc.message,
            details=exc.details,
            request_id=request_id,
            job_id=exc.job_id,
            envelope_status=exc.envelope_status,
        ),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            status_code=exc.status_code,
            message=str(exc.detail),
            request_id=request_id,
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.error(
        "Unhandled exception",
        exception=exc.__class__.__name__,
        message=str(exc),
        request_id=request_id,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal server error",
            request_id=request_id,
        ),
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to add request context and correlation IDs."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        from leadkit.config.logging import add_request_context

        add_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        return response
