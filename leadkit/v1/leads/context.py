"""
Long-lived worker context owning the shared lead resources.
"""

from fastapi import Request

from leadkit.config.logging import get_logger
from leadkit.config.settings import RecordBackend, Settings
from leadkit.infra.database import Database
from leadkit.v1.core.registries import SiteAdapter, adapter_registry, validate_adapter
from leadkit.v1.leads.pipeline import PipelineCapabilities
from leadkit.v1.leads.rendering import DocumentRenderer, ReportLabRenderer
from leadkit.v1.leads.store import MemoryRecordBackend, RecordStore, SqlRecordBackend
from leadkit.v1.leads.transmission import MessageTransmitter, SmtpTransmitter
from leadkit.v1.leads.trigger import BackgroundTrigger

logger = get_logger(__name__)


def store_name_for(settings: Settings, adapter: SiteAdapter) -> str:
    explicit = (settings.lead_store_name or "").strip()
    if explicit:
        return explicit
    return f"lead-kit-{adapter.site_slug.strip()}"


class WorkerContext:
    """Settings, adapter, store and the lazily opened renderer/transmitter."""

    def __init__(
        self,
        settings: Settings,
        adapter: SiteAdapter,
        store: RecordStore,
        renderer: DocumentRenderer,
        transmitter: MessageTransmitter,
        trigger: BackgroundTrigger,
        database: Database | None = None,
    ):
        self.settings = settings
        self.adapter = validate_adapter(adapter)
        self.store = store
        self.renderer = renderer
        self.transmitter = transmitter
        self.trigger = trigger
        self.database = database

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkerContext":
        # Importing registers the built-in adapters
        from leadkit.v1.leads import registry_init  # noqa: F401

        adapter = adapter_registry.get(settings.site_adapter)
        name = store_name_for(settings, adapter)

        database = None
        if settings.record_backend == RecordBackend.SQL:
            database = Database(settings)
            backend = SqlRecordBackend(database, name)
        else:
            backend = MemoryRecordBackend()

        return cls(
            settings=settings,
            adapter=adapter,
            store=RecordStore(backend, name),
            renderer=ReportLabRenderer(settings),
            transmitter=SmtpTransmitter(settings),
            trigger=BackgroundTrigger(settings),
            database=database,
        )

    @property
    def capabilities(self) -> PipelineCapabilities:
        return PipelineCapabilities(
            adapter=self.adapter, renderer=self.renderer, transmitter=self.transmitter
        )

    async def startup(self) -> None:
        if self.database is not None and self.settings.database_auto_create:
            await self.database.create_all()
        logger.info(
            "Worker context started",
            site=self.adapter.site_slug,
            store=self.store.store_name,
            backend=self.settings.record_backend.value,
        )

    async def shutdown(self) -> None:
        """Release every shared resource; the next use re-initializes."""
        await self.renderer.close()
        await self.transmitter.close()
        await self.trigger.aclose()
        if self.database is not None:
            await self.database.close()
        logger.info("Worker context stopped", site=self.adapter.site_slug)


def get_worker_context(request: Request) -> WorkerContext:
    """Dependency returning the context created by the app lifespan."""
    return request.app.state.worker_context
