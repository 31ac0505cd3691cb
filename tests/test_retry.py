import uuid

import pytest

from leadkit.v1.core.exceptions import (
    EnqueueError,
    InvalidIdentifierError,
    NotFoundError,
    RetryLimitError,
)
from leadkit.v1.leads.models import JobStatus, Stage
from leadkit.v1.leads.schemas import LeadActionResponse, LeadQueuedResponse
from leadkit.v1.leads.service import LeadService


async def _failed_lead(service: LeadService, payload: dict, transmitter) -> str:
    queued = await service.submit(payload, {})
    transmitter.error = "channel timeout"
    await service.process(queued.id)
    transmitter.error = None
    return queued.id


@pytest.mark.asyncio
async def test_retry_requeues_failed_lead(
    service: LeadService, valid_payload, transmitter, trigger_recorder
):
    job_id = await _failed_lead(service, valid_payload, transmitter)

    outcome = await service.retry(job_id, {})

    assert isinstance(outcome, LeadQueuedResponse)
    assert outcome.id == job_id
    record = await service.store.get(job_id)
    assert record.status == JobStatus.QUEUED
    assert record.stage == Stage.ENQUEUE
    assert record.error is None
    assert record.attempts == 1
    assert trigger_recorder.lead_ids == [job_id, job_id]


@pytest.mark.asyncio
async def test_retry_on_sent_is_noop(service: LeadService, valid_payload, trigger_recorder):
    queued = await service.submit(valid_payload, {})
    await service.process(queued.id)
    before = await service.store.get(queued.id)

    outcome = await service.retry(queued.id, {})

    assert isinstance(outcome, LeadActionResponse)
    assert outcome.status == "ok"
    assert await service.store.get(queued.id) == before
    assert len(trigger_recorder.requests) == 1


@pytest.mark.asyncio
async def test_retry_at_limit_is_rate_limited(
    service: LeadService, valid_payload, transmitter, trigger_recorder
):
    """With three attempts consumed the retry is refused and the lead stays failed."""
    job_id = await _failed_lead(service, valid_payload, transmitter)
    transmitter.error = "channel timeout"
    await service.process(job_id)
    await service.process(job_id)
    assert (await service.store.get(job_id)).attempts == 3
    sent_triggers = len(trigger_recorder.requests)

    with pytest.raises(RetryLimitError) as exc_info:
        await service.retry(job_id, {})

    assert exc_info.value.status_code == 429
    record = await service.store.get(job_id)
    assert record.status == JobStatus.FAILED
    assert record.error.message == "Retry limit reached"
    assert len(trigger_recorder.requests) == sent_triggers


@pytest.mark.asyncio
async def test_retry_limit_is_configurable(
    service: LeadService, settings, valid_payload, transmitter
):
    settings.lead_max_attempts = 1
    job_id = await _failed_lead(service, valid_payload, transmitter)

    with pytest.raises(RetryLimitError):
        await service.retry(job_id, {})


@pytest.mark.asyncio
async def test_retry_does_not_count_attempts(service: LeadService, valid_payload, transmitter):
    job_id = await _failed_lead(service, valid_payload, transmitter)

    await service.retry(job_id, {})
    await service.retry(job_id, {})

    assert (await service.store.get(job_id)).attempts == 1


@pytest.mark.asyncio
async def test_retry_trigger_failure(
    service: LeadService, valid_payload, transmitter, trigger_recorder
):
    job_id = await _failed_lead(service, valid_payload, transmitter)
    trigger_recorder.status_code = 503

    with pytest.raises(EnqueueError):
        await service.retry(job_id, {})

    record = await service.store.get(job_id)
    assert record.status == JobStatus.FAILED
    assert record.stage == Stage.ENQUEUE


@pytest.mark.asyncio
async def test_retry_unknown_id(service: LeadService):
    with pytest.raises(NotFoundError) as exc_info:
        await service.retry(str(uuid.uuid4()), {})

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_retry_malformed_id(service: LeadService):
    with pytest.raises(InvalidIdentifierError):
        await service.retry("12345", {})
