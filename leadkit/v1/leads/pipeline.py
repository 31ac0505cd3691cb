"""
Lead processing pipeline: plan, render, send, done.

A single, non-resumable pass. Each transition is reported to an optional
stage observer and awaited before the pipeline moves on. The pipeline never
writes the lead record itself.

A render failure is recoverable only when sending was requested and
``email_allow_without_pdf`` is set; every other failure ends the run with a
``PipelineError`` tagged ``render`` or ``send``. An exception raised by the
observer ends the run with a ``StageObserverError``, which carries no tag.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel

from leadkit.config.logging import get_logger
from leadkit.config.settings import Settings
from leadkit.v1.core.exceptions import PipelineError, StageObserverError
from leadkit.v1.core.registries import SiteAdapter
from leadkit.v1.leads.messages import compose_lead_message
from leadkit.v1.leads.models import Stage
from leadkit.v1.leads.rendering import DocumentRenderer
from leadkit.v1.leads.schemas import DeliveryResult
from leadkit.v1.leads.transmission import MessageTransmitter

logger = get_logger(__name__)


class StageObserver(Protocol):
    async def on_stage(self, stage: Stage, meta: dict[str, Any]) -> None: ...


@dataclass
class PipelineCapabilities:
    adapter: SiteAdapter
    renderer: DocumentRenderer
    transmitter: MessageTransmitter


@dataclass
class PipelineOptions:
    need_render: bool = True
    also_send: bool = True
    correlation_id: str | None = None
    observer: StageObserver | None = None


@dataclass
class PipelineResult:
    correlation_id: str
    document: bytes | None
    delivery: DeliveryResult | None

    @property
    def artifact_bytes(self) -> int:
        return len(self.document) if self.document else 0


async def _emit(
    observer: StageObserver | None, stage: Stage, meta: dict[str, Any] | None = None
) -> None:
    if observer is None:
        return
    try:
        await observer.on_stage(stage, meta or {})
    except Exception as e:
        raise StageObserverError(stage.value, e) from e


async def run_pipeline(
    capabilities: PipelineCapabilities,
    payload: BaseModel,
    settings: Settings,
    options: PipelineOptions,
) -> PipelineResult:
    correlation_id = (options.correlation_id or "").strip() or str(uuid.uuid4())
    observer = options.observer
    adapter = capabilities.adapter

    await _emit(
        observer,
        Stage.PLAN,
        {"need_render": options.need_render, "also_send": options.also_send},
    )

    document: bytes | None = None
    delivery: DeliveryResult | None = None

    if options.need_render:
        await _emit(observer, Stage.RENDER_START)
        render_exc: Exception | None = None
        try:
            model = adapter.build_document_model(payload)
            document = await capabilities.renderer.render(
                adapter.template_path, model, correlation_id
            )
        except Exception as e:
            render_exc = e

        if render_exc is None:
            await _emit(observer, Stage.RENDER_OK, {"bytes": len(document or b"")})
        else:
            message = str(render_exc) or "PDF render failed"
            document = None
            await _emit(observer, Stage.RENDER_FAILED, {"error": message})

            recoverable = options.also_send and settings.email_allow_without_pdf
            logger.warning(
                "Document render failed",
                correlation_id=correlation_id,
                error=message,
                continuing=recoverable,
            )
            if not recoverable:
                raise PipelineError(Stage.RENDER.value, message) from render_exc

    if options.also_send:
        await _emit(observer, Stage.SEND_START)
        send_exc: Exception | None = None
        try:
            outbound = compose_lead_message(
                adapter, payload, document, settings, correlation_id
            )
            delivery = await capabilities.transmitter.send(outbound)
        except Exception as e:
            send_exc = e

        if send_exc is not None:
            message = str(send_exc) or "Email failed"
            await _emit(observer, Stage.SEND_FAILED, {"error": message})
            raise PipelineError(Stage.SEND.value, message) from send_exc

        await _emit(
            observer,
            Stage.SEND_OK,
            {
                "has_document": document is not None,
                "message_id": delivery.message_id if delivery else "",
                "accepted": list(delivery.accepted) if delivery else [],
                "rejected": list(delivery.rejected) if delivery else [],
            },
        )

    await _emit(observer, Stage.DONE, {"has_document": document is not None})

    return PipelineResult(correlation_id=correlation_id, document=document, delivery=delivery)
