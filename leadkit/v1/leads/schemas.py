"""
Lead record and response schemas.

Records are persisted and returned in camelCase (``createdAt``,
``renderError``); Python code uses the snake_case attribute names.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from leadkit.v1.leads.models import JobStatus, Stage, coerce_stage


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ErrorInfo(CamelModel):
    """Normalized error persisted on a record."""

    message: str
    code: str | None = None
    stack: str | None = None


class DeliveryResult(CamelModel):
    """Outcome of a successful transmission."""

    message_id: str = ""
    accepted: list[str] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list)


class JobRecord(CamelModel):
    """One tracked submission from intake to terminal outcome."""

    id: str
    correlation_id: str = ""
    site_slug: str = ""
    status: JobStatus = JobStatus.QUEUED
    stage: Stage = Stage.ENQUEUE
    attempts: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime | None = None
    started_at: datetime | None = None
    done_at: datetime | None = None
    payload: dict[str, Any] | None = None
    error: ErrorInfo | None = None
    render_error: ErrorInfo | None = None
    result: DeliveryResult | None = None

    @field_validator("stage", mode="before")
    @classmethod
    def _known_stage(cls, value: Any) -> Stage:
        return coerce_stage(value)


class ErrorMessage(CamelModel):
    message: str


class LeadStatusResponse(CamelModel):
    """Client-facing projection of a record; error internals are dropped."""

    id: str
    correlation_id: str
    status: JobStatus
    stage: Stage
    attempts: int
    created_at: datetime
    updated_at: datetime | None = None
    started_at: datetime | None = None
    done_at: datetime | None = None
    error: ErrorMessage | None = None
    render_error: ErrorMessage | None = None
    result: DeliveryResult | None = None

    @classmethod
    def from_record(cls, record: JobRecord) -> "LeadStatusResponse":
        return cls(
            id=record.id,
            correlation_id=record.correlation_id or record.id,
            status=record.status,
            stage=record.stage,
            attempts=record.attempts,
            created_at=record.created_at,
            updated_at=record.updated_at,
            started_at=record.started_at,
            done_at=record.done_at,
            error=ErrorMessage(message=record.error.message or "Failed")
            if record.error
            else None,
            render_error=ErrorMessage(message=record.render_error.message or "PDF failed")
            if record.render_error
            else None,
            result=record.result,
        )


class LeadQueuedResponse(CamelModel):
    status: str = "queued"
    id: str
    correlation_id: str


class LeadActionResponse(CamelModel):
    """Response for worker and retry outcomes that are not errors."""

    status: str
    id: str
    message: str | None = None


class SubmissionCreatedResponse(CamelModel):
    status: str
    correlation_id: str | None = None
    reason: str | None = None
    message: str | None = None
    errors: list[dict[str, str]] | None = None
