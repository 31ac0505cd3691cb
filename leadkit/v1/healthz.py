import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from leadkit.v1.core.exceptions import create_success_response
from leadkit.v1.leads.context import WorkerContext, get_worker_context

router = APIRouter()


class StoreHealth(BaseModel):
    """Record store health status."""

    connected: bool
    name: str
    backend: str
    response_time_ms: float | None = None
    error: str | None = None


class ResourceHealth(BaseModel):
    """Lazily opened worker resources."""

    renderer_ready: bool
    transmitter_ready: bool


@router.get("/healthz", response_model=dict)
async def health_check(context: WorkerContext = Depends(get_worker_context)):
    """Health check with record store connectivity and resource state."""

    settings = context.settings
    store_health = await _check_store_health(context)

    health_data = {
        "ok": store_health.connected,
        "version": settings.version,
        "environment": settings.environment,
        "site": context.adapter.site_slug,
        "timestamp": datetime.now(UTC).isoformat(),
        "store": store_health.model_dump(),
        "resources": _resource_health(context).model_dump(),
    }

    return create_success_response(data=health_data)


async def _check_store_health(context: WorkerContext) -> StoreHealth:
    """Ping the record store and time the round trip."""
    started = time.monotonic()
    backend = context.settings.record_backend.value

    try:
        await context.store.ping()
        return StoreHealth(
            connected=True,
            name=context.store.store_name,
            backend=backend,
            response_time_ms=round((time.monotonic() - started) * 1000, 2),
        )
    except Exception as e:
        return StoreHealth(
            connected=False, name=context.store.store_name, backend=backend, error=str(e)
        )


def _resource_health(context: WorkerContext) -> ResourceHealth:
    def ready(component) -> bool:
        for attr in ("engine", "channel"):
            handle = getattr(component, attr, None)
            if handle is not None:
                return handle.initialized
        return False

    return ResourceHealth(
        renderer_ready=ready(context.renderer),
        transmitter_ready=ready(context.transmitter),
    )
