"""
Lead record models: status/stage enumerations and the record store table.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, TIMESTAMP, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadkit.infra.database import Base


class JobStatus(str, Enum):
    """Lead job status enumeration."""

    QUEUED = "queued"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


class Stage(str, Enum):
    """Pipeline checkpoint recorded on the lead record."""

    ENQUEUE = "enqueue"
    PLAN = "plan"
    RENDER_START = "render_start"
    RENDER_OK = "render_ok"
    RENDER_FAILED = "render_failed"
    SEND_START = "send_start"
    SEND_OK = "send_ok"
    SEND_FAILED = "send_failed"
    DONE = "done"
    UNKNOWN = "unknown"
    # Failure tags carried by a PipelineError
    RENDER = "render"
    SEND = "send"


TERMINAL_STATUSES = frozenset({JobStatus.SENT, JobStatus.FAILED})

# None is the state of a record that does not exist yet
STATUS_TRANSITIONS: dict[JobStatus | None, frozenset[JobStatus]] = {
    None: frozenset({JobStatus.QUEUED, JobStatus.FAILED}),
    JobStatus.QUEUED: frozenset(
        {JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.FAILED}
    ),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.PROCESSING, JobStatus.SENT, JobStatus.FAILED}
    ),
    JobStatus.FAILED: frozenset(
        {JobStatus.FAILED, JobStatus.QUEUED, JobStatus.PROCESSING}
    ),
    JobStatus.SENT: frozenset({JobStatus.SENT, JobStatus.PROCESSING}),
}


def is_allowed_transition(current: JobStatus | None, target: JobStatus) -> bool:
    return target in STATUS_TRANSITIONS[current]


def coerce_stage(value: Any) -> Stage:
    """Map any stage-like value onto a Stage, falling back to UNKNOWN."""
    if isinstance(value, Stage):
        return value
    try:
        return Stage(str(value or "").strip().lower())
    except ValueError:
        return Stage.UNKNOWN


class LeadRecordRow(Base):
    """One persisted lead record per (store, id)."""

    __tablename__ = "lead_records"
    __table_args__ = (Index("ix_lead_records_store_updated_at", "store", "updated_at"),)

    store: Mapped[str] = mapped_column(
        Text, primary_key=True, comment="Store namespace"
    )
    id: Mapped[str] = mapped_column(Text, primary_key=True, comment="Lead/job id")
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="Lead record document"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
