"""
Per-key lead record store.

One mutable JSON document per lead id. There is no locking and no
compare-and-swap: ``patch`` is a read-modify-write and concurrent patches to
the same id are last-writer-wins.
"""

import traceback
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import text

from leadkit.config.logging import get_logger
from leadkit.infra.database import Database
from leadkit.v1.leads.models import JobStatus, LeadRecordRow, Stage, is_allowed_transition
from leadkit.v1.leads.schemas import ErrorInfo, JobRecord

logger = get_logger(__name__)

STACK_LIMIT = 6000


def utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_error(err: BaseException | str | None) -> ErrorInfo | None:
    """Reduce an exception to ``{message, code?, stack?}``."""
    if err is None:
        return None
    if isinstance(err, str):
        message = err.strip()
        return ErrorInfo(message=message) if message else None

    message = str(getattr(err, "message", "") or err).strip() or err.__class__.__name__
    code = getattr(err, "code", None)
    code = code.strip() if isinstance(code, str) and code.strip() else None

    stack = None
    if err.__traceback__ is not None:
        stack = "".join(traceback.format_exception(err)).strip()[:STACK_LIMIT] or None

    return ErrorInfo(message=message, code=code, stack=stack)


class RecordBackend(Protocol):
    """Raw document persistence for one store namespace."""

    async def read(self, key: str) -> dict[str, Any] | None: ...

    async def write(self, key: str, document: dict[str, Any]) -> None: ...

    async def ping(self) -> bool: ...


class MemoryRecordBackend:
    """In-process backend for tests and single-process development."""

    def __init__(self):
        self._documents: dict[str, dict[str, Any]] = {}

    async def read(self, key: str) -> dict[str, Any] | None:
        document = self._documents.get(key)
        return dict(document) if document is not None else None

    async def write(self, key: str, document: dict[str, Any]) -> None:
        self._documents[key] = dict(document)

    async def ping(self) -> bool:
        return True


class SqlRecordBackend:
    """SQLAlchemy backend storing one row per (store, id)."""

    def __init__(self, database: Database, store_name: str):
        self.database = database
        self.store_name = store_name

    async def read(self, key: str) -> dict[str, Any] | None:
        async with self.database.SessionLocal() as session:
            row = await session.get(LeadRecordRow, (self.store_name, key))
            return dict(row.data) if row is not None else None

    async def write(self, key: str, document: dict[str, Any]) -> None:
        async with self.database.SessionLocal() as session:
            try:
                await session.merge(
                    LeadRecordRow(
                        store=self.store_name,
                        id=key,
                        data=document,
                        updated_at=utcnow(),
                    )
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        async with self.database.SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return True


class RecordStore:
    """get / set / patch / fail over a record backend."""

    def __init__(self, backend: RecordBackend, store_name: str):
        self.backend = backend
        self.store_name = store_name

    async def get(self, job_id: str) -> JobRecord | None:
        key = (job_id or "").strip()
        if not key:
            return None
        document = await self.backend.read(key)
        return JobRecord.model_validate(document) if document else None

    async def set(self, job_id: str, record: JobRecord) -> None:
        key = (job_id or "").strip()
        if not key:
            raise ValueError("Missing leadId")
        await self.backend.write(key, record.to_document())

    async def patch(self, job_id: str, partial: Mapping[str, Any]) -> JobRecord:
        """Merge ``partial`` onto the stored record and persist the result."""
        key = (job_id or "").strip()
        if not key:
            raise ValueError("Missing leadId")

        previous = await self.get(key)
        now = utcnow()
        merged: dict[str, Any] = (
            previous.model_dump() if previous else {"id": key, "created_at": now}
        )

        if previous is not None and "attempts" in partial:
            if int(partial["attempts"]) < previous.attempts:
                raise ValueError(
                    f"attempts may not decrease ({previous.attempts} -> {partial['attempts']})"
                )

        if "status" in partial:
            target = JobStatus(partial["status"])
            current = previous.status if previous else None
            if not is_allowed_transition(current, target):
                logger.warning(
                    "Unexpected status transition",
                    job_id=key,
                    from_status=current.value if current else None,
                    to_status=target.value,
                )

        merged.update(partial)
        merged["id"] = key
        merged["correlation_id"] = (previous.correlation_id if previous else "") or key
        merged["updated_at"] = now

        record = JobRecord.model_validate(merged)
        await self.set(key, record)
        return record

    async def fail(
        self, job_id: str, err: BaseException | str | None, stage: Stage | str
    ) -> JobRecord:
        return await self.patch(
            job_id,
            {
                "status": JobStatus.FAILED,
                "stage": stage or Stage.UNKNOWN,
                "error": normalize_error(err) or ErrorInfo(message="Unknown error"),
                "done_at": utcnow(),
            },
        )

    async def ping(self) -> bool:
        return await self.backend.ping()
