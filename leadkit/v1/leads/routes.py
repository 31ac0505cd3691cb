"""
Lead API endpoints: submit, background processing, status and retry.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse

from leadkit.config.logging import get_logger
from leadkit.v1.core.exceptions import (
    BadRequestError,
    LeadKitException,
    create_success_response,
)
from leadkit.v1.core.http import extract_job_id, parse_request_body
from leadkit.v1.leads.context import WorkerContext, get_worker_context
from leadkit.v1.leads.schemas import LeadActionResponse, LeadQueuedResponse
from leadkit.v1.leads.service import LeadService

logger = get_logger(__name__)
router = APIRouter(prefix="/leads", tags=["leads"])

NO_STORE = {"Cache-Control": "no-store"}


def get_lead_service(
    context: WorkerContext = Depends(get_worker_context),
) -> LeadService:
    return LeadService(context)


LeadServiceDep = Depends(get_lead_service)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def _status_snapshot(service: LeadService, job_id: str | None):
    try:
        return await service.status(job_id)
    except LeadKitException as e:
        e.headers = {**(e.headers or {}), **NO_STORE}
        raise


def _envelope(
    request: Request,
    data: Any,
    status_code: int = status.HTTP_200_OK,
    headers: dict[str, str] | None = None,
    message: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=create_success_response(
            data=data, message=message, request_id=_request_id(request)
        ),
        headers=headers,
    )


@router.post("", response_model=dict)
async def submit_lead(request: Request, service: LeadService = LeadServiceDep):
    """Accept a form submission and queue it for background processing."""
    body = await parse_request_body(request)
    queued = await service.submit(body, request.headers)

    return _envelope(
        request,
        queued.to_document(),
        status_code=status.HTTP_202_ACCEPTED,
        headers={"X-Correlation-Id": queued.correlation_id},
        message="Lead queued",
    )


@router.post("/background", response_model=dict)
async def process_lead(
    request: Request,
    background_tasks: BackgroundTasks,
    service: LeadService = LeadServiceDep,
):
    """Worker endpoint hit by the background trigger.

    The job is checked before answering; the pipeline itself runs after the
    response has been sent.
    """
    body = await parse_request_body(request)
    job_id = extract_job_id(body, None, request.headers)

    record, payload = await service.prepare(job_id)
    background_tasks.add_task(service.run_in_background, record, payload)

    logger.info("Lead processing accepted", job_id=record.id, attempts=record.attempts)
    return _envelope(
        request,
        LeadActionResponse(status="accepted", id=record.id).to_document(),
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.get("/status", response_model=dict)
async def lead_status(request: Request, service: LeadService = LeadServiceDep):
    """Current state of a lead, never cached."""
    job_id = extract_job_id(None, request.query_params, request.headers)
    snapshot = await _status_snapshot(service, job_id)
    return _envelope(request, snapshot.to_document(), headers=NO_STORE)


@router.post("/retry", response_model=dict)
async def retry_lead(request: Request, service: LeadService = LeadServiceDep):
    """Re-queue a failed lead if it has attempts left."""
    try:
        body = await parse_request_body(request)
    except BadRequestError:
        body = {}
    job_id = extract_job_id(body, request.query_params, request.headers)

    outcome = await service.retry(job_id, request.headers)
    if isinstance(outcome, LeadQueuedResponse):
        return _envelope(
            request,
            outcome.to_document(),
            status_code=status.HTTP_202_ACCEPTED,
            message="Lead re-queued",
        )
    return _envelope(request, outcome.to_document(), message=outcome.message)


@router.post("/submission-created", response_model=dict)
async def submission_created(request: Request, service: LeadService = LeadServiceDep):
    """Form platform event hook; always answers 200."""
    try:
        body = await parse_request_body(request)
    except BadRequestError:
        return _envelope(request, {"status": "ignored", "reason": "invalid body"})

    outcome = await service.handle_submission_created(body, request.headers)
    return _envelope(request, outcome.model_dump(mode="json", by_alias=True, exclude_none=True))


@router.get("/{job_id}", response_model=dict)
async def get_lead(job_id: str, request: Request, service: LeadService = LeadServiceDep):
    """Current state of a lead by path id, never cached."""
    snapshot = await _status_snapshot(service, job_id)
    return _envelope(request, snapshot.to_document(), headers=NO_STORE)
