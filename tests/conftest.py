import json
from collections.abc import Generator
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from leadkit.config.settings import RecordBackend, Settings
from leadkit.main import create_app
from leadkit.v1.leads.contact import ContactFormAdapter
from leadkit.v1.leads.context import WorkerContext
from leadkit.v1.leads.messages import OutboundMessage
from leadkit.v1.leads.rendering import RenderError
from leadkit.v1.leads.schemas import DeliveryResult
from leadkit.v1.leads.service import LeadService
from leadkit.v1.leads.store import MemoryRecordBackend, RecordStore
from leadkit.v1.leads.transmission import TransmissionError
from leadkit.v1.leads.trigger import BackgroundTrigger

VALID_PAYLOAD = {
    "name": "Jo Bloggs",
    "email": "jo@example.com",
    "phone": "021 555 0101",
    "business_name": "Acme Ltd",
    "message": "Please call me back.",
}


class FakeRenderer:
    """DocumentRenderer that returns fixed bytes or fails on demand."""

    def __init__(self, content: bytes = b"%PDF-1.4 fake", error: str | None = None):
        self.content = content
        self.error = error
        self.calls: list[tuple[str, dict[str, Any], str]] = []
        self.closed = False

    async def render(self, template: str, model: dict[str, Any], correlation_id: str) -> bytes:
        self.calls.append((template, model, correlation_id))
        if self.error:
            raise RenderError(self.error)
        return self.content

    async def close(self) -> None:
        self.closed = True


class FakeTransmitter:
    """MessageTransmitter that records messages instead of sending them."""

    def __init__(self, error: str | None = None):
        self.error = error
        self.messages: list[OutboundMessage] = []
        self.closed = False

    async def send(self, message: OutboundMessage) -> DeliveryResult:
        self.messages.append(message)
        if self.error:
            raise TransmissionError(self.error)
        return DeliveryResult(
            message_id=message.message_id or "<fake@example.com>",
            accepted=list(message.recipients),
            rejected=[],
        )

    async def close(self) -> None:
        self.closed = True


class TriggerRecorder:
    """httpx MockTransport handler standing in for the worker endpoint."""

    def __init__(self, status_code: int = 202):
        self.status_code = status_code
        self.error: Exception | None = None
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"ok": True})

    @property
    def lead_ids(self) -> list[str]:
        return [json.loads(r.content)["leadId"] for r in self.requests]


@pytest.fixture
def settings() -> Settings:
    """Settings for an in-memory store with addresses configured."""
    return Settings(
        record_backend=RecordBackend.MEMORY,
        website_url="http://testserver",
        lead_to_email="owner@example.com",
        lead_from_email="leads@example.com",
        lead_email_inline_logo=False,
        database_auto_create=False,
    )


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def transmitter() -> FakeTransmitter:
    return FakeTransmitter()


@pytest.fixture
def trigger_recorder() -> TriggerRecorder:
    return TriggerRecorder()


@pytest.fixture
def store() -> RecordStore:
    return RecordStore(MemoryRecordBackend(), "lead-kit-test")


@pytest.fixture
def context(
    settings: Settings,
    store: RecordStore,
    renderer: FakeRenderer,
    transmitter: FakeTransmitter,
    trigger_recorder: TriggerRecorder,
) -> WorkerContext:
    trigger = BackgroundTrigger(
        settings, client=httpx.AsyncClient(transport=httpx.MockTransport(trigger_recorder))
    )
    return WorkerContext(
        settings=settings,
        adapter=ContactFormAdapter(),
        store=store,
        renderer=renderer,
        transmitter=transmitter,
        trigger=trigger,
    )


@pytest.fixture
def service(context: WorkerContext) -> LeadService:
    return LeadService(context)


@pytest.fixture
def client(context: WorkerContext) -> Generator[TestClient, None, None]:
    """Test client wired to the fake worker context."""
    app = create_app(context=context)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def valid_payload() -> dict[str, Any]:
    return dict(VALID_PAYLOAD)
