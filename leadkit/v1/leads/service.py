"""
Lead service: intake, background processing, retry and status.

The service is the only writer of lead records. The pipeline reports stage
events to a ``RecordStageObserver`` which turns them into record patches.
"""

import time
import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from leadkit.config.logging import get_logger
from leadkit.v1.core.exceptions import (
    EnqueueError,
    InvalidIdentifierError,
    NotFoundError,
    RetryLimitError,
    ValidationError,
)
from leadkit.v1.core.http import (
    CORRELATION_HEADER,
    format_validation_errors,
    is_valid_job_id,
    resolve_origin,
    safe_trim,
)
from leadkit.v1.leads.context import WorkerContext
from leadkit.v1.leads.models import JobStatus, Stage, coerce_stage
from leadkit.v1.leads.pipeline import PipelineOptions, run_pipeline
from leadkit.v1.leads.schemas import (
    DeliveryResult,
    ErrorInfo,
    JobRecord,
    LeadActionResponse,
    LeadQueuedResponse,
    LeadStatusResponse,
    SubmissionCreatedResponse,
)
from leadkit.v1.leads.store import utcnow

logger = get_logger(__name__)


def _elapsed_ms(started: float) -> int:
    return round((time.monotonic() - started) * 1000)


class RecordStageObserver:
    """Persists every pipeline stage event onto the lead record."""

    def __init__(self, context: WorkerContext, job_id: str):
        self.store = context.store
        self.job_id = job_id
        self.last_stage: Stage | None = None

    async def on_stage(self, stage: Stage, meta: dict[str, Any]) -> None:
        self.last_stage = stage
        partial: dict[str, Any] = {"stage": stage}

        if stage == Stage.RENDER_FAILED:
            partial["render_error"] = ErrorInfo(
                message=safe_trim(meta.get("error")) or "PDF failed"
            )
        elif stage == Stage.RENDER_OK:
            partial["render_error"] = None
        elif stage == Stage.SEND_OK:
            message_id = safe_trim(meta.get("message_id"))
            if message_id:
                partial["result"] = DeliveryResult(
                    message_id=message_id,
                    accepted=list(meta.get("accepted") or []),
                    rejected=list(meta.get("rejected") or []),
                )
        elif stage == Stage.SEND_FAILED:
            partial["error"] = ErrorInfo(
                message=safe_trim(meta.get("error")) or "Email failed"
            )

        await self.store.patch(self.job_id, partial)


class LeadService:
    """Drives lead records through enqueue, processing and retry."""

    def __init__(self, context: WorkerContext):
        self.context = context
        self.settings = context.settings
        self.adapter = context.adapter
        self.store = context.store

    def validate_payload(self, data: Mapping[str, Any] | None) -> BaseModel:
        try:
            return self.adapter.payload_schema.model_validate(dict(data or {}))
        except PydanticValidationError as e:
            raise ValidationError(format_validation_errors(e)) from e

    def require_job_id(self, job_id: str | None) -> str:
        key = safe_trim(job_id)
        if not key:
            raise InvalidIdentifierError("Missing leadId")
        if not is_valid_job_id(key):
            raise InvalidIdentifierError("Invalid leadId", job_id=key)
        return key

    async def submit(
        self, body: Mapping[str, Any], headers: Mapping[str, str]
    ) -> LeadQueuedResponse:
        """Validate a submission, record it as queued and trigger the worker."""
        started = time.monotonic()
        job_id = str(uuid.uuid4())
        site = self.adapter.site_slug

        logger.info("Lead submission received", job_id=job_id, site=site)

        try:
            payload = self.validate_payload(body)
        except ValidationError as e:
            logger.info(
                "Lead submission invalid", job_id=job_id, error_count=len(e.errors)
            )
            raise

        now = utcnow()
        await self.store.set(
            job_id,
            JobRecord(
                id=job_id,
                correlation_id=job_id,
                site_slug=site,
                status=JobStatus.QUEUED,
                stage=Stage.ENQUEUE,
                attempts=0,
                created_at=now,
                updated_at=now,
                payload=payload.model_dump(mode="json"),
            ),
        )

        await self._trigger(job_id, headers, started)

        logger.info("Lead queued", job_id=job_id, duration_ms=_elapsed_ms(started))
        return LeadQueuedResponse(id=job_id, correlation_id=job_id)

    async def _trigger(
        self, job_id: str, headers: Mapping[str, str], started: float
    ) -> None:
        origin = resolve_origin(headers, self.settings)
        if not origin:
            await self.store.fail(job_id, "Missing WEBSITE_URL", Stage.ENQUEUE)
            logger.error("Lead enqueue failed", job_id=job_id, reason="missing origin")
            raise EnqueueError("Missing WEBSITE_URL", job_id=job_id)

        if not await self.context.trigger.fire(origin, job_id):
            await self.store.fail(job_id, "Background enqueue failed", Stage.ENQUEUE)
            logger.error(
                "Lead enqueue failed",
                job_id=job_id,
                duration_ms=_elapsed_ms(started),
            )
            raise EnqueueError(job_id=job_id)

    async def prepare(self, job_id: str | None) -> tuple[JobRecord, BaseModel]:
        """Check that a job can be processed and revalidate its payload.

        A malformed id, a missing record or a missing payload raises a
        NotFoundError; an existing record is marked failed at ``enqueue``.
        """
        key = safe_trim(job_id)
        try:
            key = self.require_job_id(key)
        except InvalidIdentifierError:
            if key and await self.store.get(key) is not None:
                await self.store.fail(key, "Invalid leadId", Stage.ENQUEUE)
            raise

        record = await self.store.get(key)
        if record is None:
            raise NotFoundError("Lead not found", job_id=key)
        if not record.payload:
            await self.store.fail(key, "Missing stored payload", Stage.ENQUEUE)
            raise NotFoundError("Lead not found", job_id=key)

        try:
            payload = self.validate_payload(record.payload)
        except ValidationError:
            await self.store.fail(key, "Stored payload invalid", Stage.ENQUEUE)
            logger.warning("Stored lead payload invalid", job_id=key)
            raise

        return record, payload

    async def execute(self, record: JobRecord, payload: BaseModel) -> JobRecord:
        """Run the pipeline for a prepared record and persist the outcome."""
        started = time.monotonic()
        job_id = record.id
        # Count from the stored record; it may have been processed since prepare()
        current = await self.store.get(job_id) or record
        attempt = current.attempts + 1

        await self.store.patch(
            job_id,
            {
                "status": JobStatus.PROCESSING,
                "stage": Stage.PLAN,
                "attempts": attempt,
                "started_at": utcnow(),
                "done_at": None,
                "error": None,
                "result": None,
            },
        )
        logger.info(
            "Lead processing started",
            job_id=job_id,
            attempt=attempt,
            site=self.adapter.site_slug,
        )

        observer = RecordStageObserver(self.context, job_id)
        try:
            await run_pipeline(
                self.context.capabilities,
                payload,
                self.settings,
                PipelineOptions(
                    need_render=self.settings.pdf_enabled,
                    also_send=True,
                    correlation_id=job_id,
                    observer=observer,
                ),
            )
        except Exception as e:
            stage = self._failure_stage(e, observer, record)
            failed = await self.store.fail(job_id, e, stage)
            logger.error(
                "Lead processing failed",
                job_id=job_id,
                stage=stage.value,
                error=failed.error.message if failed.error else str(e),
                attempt=attempt,
                duration_ms=_elapsed_ms(started),
            )
            return failed

        sent = await self.store.patch(
            job_id,
            {"status": JobStatus.SENT, "stage": Stage.DONE, "done_at": utcnow()},
        )
        logger.info(
            "Lead sent",
            job_id=job_id,
            attempt=attempt,
            duration_ms=_elapsed_ms(started),
        )
        return sent

    @staticmethod
    def _failure_stage(
        exc: BaseException, observer: RecordStageObserver, record: JobRecord
    ) -> Stage:
        tagged = getattr(exc, "stage", None)
        if tagged:
            return coerce_stage(tagged)
        if observer.last_stage is not None:
            return observer.last_stage
        if record.stage:
            return record.stage
        return Stage.UNKNOWN

    async def process(self, job_id: str | None) -> JobRecord:
        record, payload = await self.prepare(job_id)
        return await self.execute(record, payload)

    async def run_in_background(self, record: JobRecord, payload: BaseModel) -> None:
        """Entry point for a deferred worker run; failures end up on the record."""
        try:
            await self.execute(record, payload)
        except Exception:
            logger.error("Lead worker crashed", job_id=record.id, exc_info=True)
            if await self.store.get(record.id) is not None:
                await self.store.fail(record.id, "Background failed", Stage.UNKNOWN)

    async def retry(
        self, job_id: str | None, headers: Mapping[str, str]
    ) -> LeadActionResponse | LeadQueuedResponse:
        """Re-arm a failed job and trigger the worker again, within the limit."""
        started = time.monotonic()
        key = self.require_job_id(job_id)

        record = await self.store.get(key)
        if record is None:
            raise NotFoundError("Not found", job_id=key)

        if record.status == JobStatus.SENT:
            logger.info("Lead retry skipped", job_id=key, reason="already sent")
            return LeadActionResponse(status="ok", id=key, message="Already sent")

        limit = self.settings.lead_max_attempts
        if record.attempts >= limit:
            await self.store.fail(
                key, "Retry limit reached", record.stage or Stage.UNKNOWN
            )
            logger.warning(
                "Lead retry limit reached",
                job_id=key,
                attempts=record.attempts,
                max_attempts=limit,
            )
            raise RetryLimitError(job_id=key)

        await self.store.patch(
            key,
            {"status": JobStatus.QUEUED, "stage": Stage.ENQUEUE, "error": None},
        )
        await self._trigger(key, headers, started)

        logger.info(
            "Lead retry queued",
            job_id=key,
            attempts=record.attempts,
            duration_ms=_elapsed_ms(started),
        )
        return LeadQueuedResponse(id=key, correlation_id=key)

    async def status(self, job_id: str | None) -> LeadStatusResponse:
        key = self.require_job_id(job_id)
        record = await self.store.get(key)
        if record is None:
            raise NotFoundError("Not found", job_id=key)
        return LeadStatusResponse.from_record(record)

    async def handle_submission_created(
        self, body: Mapping[str, Any], headers: Mapping[str, str]
    ) -> SubmissionCreatedResponse:
        """Process a form-platform submission event inline, without a record."""
        submission_data, submission_id = extract_submission(body)

        try:
            payload = self.validate_payload(submission_data)
        except ValidationError as e:
            return SubmissionCreatedResponse(
                status="ignored", reason="invalid", errors=e.errors
            )

        correlation_id = (
            submission_id
            or safe_trim(headers.get(CORRELATION_HEADER))
            or str(uuid.uuid4())
        )

        try:
            await run_pipeline(
                self.context.capabilities,
                payload,
                self.settings,
                PipelineOptions(
                    need_render=self.settings.pdf_enabled,
                    also_send=True,
                    correlation_id=correlation_id,
                ),
            )
        except Exception as e:
            message = getattr(e, "message", None) or str(e) or "submission-created failed"
            logger.error(
                "Submission event failed", correlation_id=correlation_id, error=message
            )
            return SubmissionCreatedResponse(
                status="error", message=message, correlation_id=correlation_id
            )

        logger.info("Submission event processed", correlation_id=correlation_id)
        return SubmissionCreatedResponse(status="ok", correlation_id=correlation_id)


def extract_submission(body: Any) -> tuple[dict[str, Any], str]:
    """Pull ``(data, id)`` out of a submission event envelope."""
    envelope = body if isinstance(body, dict) else {}
    submission = envelope.get("payload")
    if not isinstance(submission, dict):
        submission = envelope

    data = submission.get("data")
    if not isinstance(data, dict):
        data = submission

    submission_id = submission.get("id")
    return data, safe_trim(submission_id) if submission_id is not None else ""

