import uuid

import pytest

from leadkit.v1.core.exceptions import InvalidIdentifierError, NotFoundError, ValidationError
from leadkit.v1.leads.models import JobStatus, Stage
from leadkit.v1.leads.schemas import JobRecord
from leadkit.v1.leads.service import LeadService
from leadkit.v1.leads.store import utcnow


async def _queue(service: LeadService, payload: dict | None) -> str:
    job_id = str(uuid.uuid4())
    now = utcnow()
    await service.store.set(
        job_id,
        JobRecord(
            id=job_id,
            correlation_id=job_id,
            site_slug="contact",
            created_at=now,
            updated_at=now,
            payload=payload,
        ),
    )
    return job_id


@pytest.mark.asyncio
async def test_process_success(service: LeadService, valid_payload, transmitter):
    job_id = await _queue(service, valid_payload)

    record = await service.process(job_id)

    assert record.status == JobStatus.SENT
    assert record.stage == Stage.DONE
    assert record.attempts == 1
    assert record.started_at is not None
    assert record.done_at is not None
    assert record.error is None
    assert record.result.message_id == f"<contact-{job_id}@example.com>"
    assert record.result.accepted == ["owner@example.com"]
    assert len(transmitter.messages) == 1


@pytest.mark.asyncio
async def test_process_records_render_error_and_continues(
    service: LeadService, valid_payload, renderer
):
    renderer.error = "font missing"
    job_id = await _queue(service, valid_payload)

    record = await service.process(job_id)

    assert record.status == JobStatus.SENT
    assert record.render_error.message == "font missing"


@pytest.mark.asyncio
async def test_process_send_failure(service: LeadService, valid_payload, transmitter):
    transmitter.error = "channel timeout"
    job_id = await _queue(service, valid_payload)

    record = await service.process(job_id)

    assert record.status == JobStatus.FAILED
    assert record.stage == Stage.SEND
    assert record.error.message == "channel timeout"
    assert record.error.stack
    assert record.attempts == 1


@pytest.mark.asyncio
async def test_process_fatal_render_failure(service: LeadService, valid_payload, renderer, settings):
    settings.email_allow_without_pdf = False
    renderer.error = "font missing"
    job_id = await _queue(service, valid_payload)

    record = await service.process(job_id)

    assert record.status == JobStatus.FAILED
    assert record.stage == Stage.RENDER
    assert record.render_error.message == "font missing"


@pytest.mark.asyncio
async def test_observer_failure_uses_last_observed_stage(
    service: LeadService, valid_payload, store, monkeypatch
):
    job_id = await _queue(service, valid_payload)
    original_patch = store.patch

    async def flaky_patch(key, partial):
        if partial.get("stage") == Stage.SEND_START and "status" not in partial:
            raise RuntimeError("store unavailable")
        return await original_patch(key, partial)

    monkeypatch.setattr(store, "patch", flaky_patch)

    record = await service.process(job_id)

    assert record.status == JobStatus.FAILED
    assert record.stage == Stage.SEND_START
    assert "store unavailable" in record.error.message


@pytest.mark.asyncio
async def test_reinvocation_reruns_and_counts_attempts(
    service: LeadService, valid_payload, transmitter
):
    """Duplicate worker calls rerun the pipeline; nothing deduplicates them."""
    job_id = await _queue(service, valid_payload)

    await service.process(job_id)
    record = await service.process(job_id)

    assert record.attempts == 2
    assert record.status == JobStatus.SENT
    assert len(transmitter.messages) == 2


@pytest.mark.asyncio
async def test_process_clears_previous_failure(service: LeadService, valid_payload, transmitter):
    transmitter.error = "channel timeout"
    job_id = await _queue(service, valid_payload)
    await service.process(job_id)

    transmitter.error = None
    record = await service.process(job_id)

    assert record.status == JobStatus.SENT
    assert record.error is None
    assert record.attempts == 2


@pytest.mark.asyncio
async def test_process_rejects_malformed_id(service: LeadService):
    with pytest.raises(InvalidIdentifierError) as exc_info:
        await service.process("not-a-uuid")

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Invalid leadId"


@pytest.mark.asyncio
async def test_process_rejects_missing_id(service: LeadService):
    with pytest.raises(InvalidIdentifierError, match="Missing leadId"):
        await service.process("")


@pytest.mark.asyncio
async def test_process_unknown_id_creates_nothing(service: LeadService):
    job_id = str(uuid.uuid4())

    with pytest.raises(NotFoundError) as exc_info:
        await service.process(job_id)

    assert exc_info.value.status_code == 404
    assert await service.store.get(job_id) is None


@pytest.mark.asyncio
async def test_process_missing_payload_marks_failed(service: LeadService):
    job_id = await _queue(service, None)

    with pytest.raises(NotFoundError):
        await service.process(job_id)

    record = await service.store.get(job_id)
    assert record.status == JobStatus.FAILED
    assert record.stage == Stage.ENQUEUE
    assert record.attempts == 0


@pytest.mark.asyncio
async def test_process_invalid_stored_payload_marks_failed(service: LeadService):
    job_id = await _queue(service, {"name": "Jo", "email": "not-an-email"})

    with pytest.raises(ValidationError) as exc_info:
        await service.process(job_id)

    assert exc_info.value.errors[0]["path"] == "email"
    record = await service.store.get(job_id)
    assert record.status == JobStatus.FAILED
    assert record.stage == Stage.ENQUEUE
    assert record.error.message == "Stored payload invalid"


@pytest.mark.asyncio
async def test_run_in_background_marks_crash_failed(
    service: LeadService, valid_payload, monkeypatch
):
    job_id = await _queue(service, valid_payload)
    record, payload = await service.prepare(job_id)

    async def crash(*args, **kwargs):
        raise RuntimeError("worker crashed")

    monkeypatch.setattr(service, "execute", crash)

    await service.run_in_background(record, payload)

    stored = await service.store.get(job_id)
    assert stored.status == JobStatus.FAILED
    assert stored.error.message == "Background failed"


@pytest.mark.asyncio
async def test_queued_duplicate_runs_each_count_an_attempt(
    service: LeadService, valid_payload, transmitter
):
    """Two triggers prepared before either run still consume two attempts."""
    job_id = await _queue(service, valid_payload)
    first = await service.prepare(job_id)
    second = await service.prepare(job_id)

    await service.execute(*first)
    final = await service.execute(*second)

    assert len(transmitter.messages) == 2
    assert final.attempts == 2
    assert (await service.store.get(job_id)).attempts == 2
