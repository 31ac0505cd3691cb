from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from leadkit.config.logging import get_logger, setup_logging
from leadkit.config.settings import Settings, get_settings
from leadkit.v1.core.exceptions import (
    LeadKitException,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    lead_kit_exception_handler,
)
from leadkit.v1.core.registries import adapter_registry
from leadkit.v1.healthz import router as health_router
from leadkit.v1.leads.context import WorkerContext
from leadkit.v1.leads.routes import router as leads_router

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None, context: WorkerContext | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    A prebuilt ``context`` (tests) is used as is; otherwise one is built from
    the settings when the app starts and shut down when it stops.
    """
    settings = settings or (context.settings if context else get_settings())

    # Initialize structured logging
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        worker_context = context or WorkerContext.from_settings(settings)
        app.state.worker_context = worker_context
        await worker_context.startup()
        try:
            yield
        finally:
            await worker_context.shutdown()

    app = FastAPI(
        title=settings.app_name,
        description="Lead intake with background document rendering and delivery",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    if context is not None:
        app.state.worker_context = context

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Browser forms post cross-origin in development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Correlation-Id", "X-Request-ID"],
        )

    # Add exception handlers
    app.add_exception_handler(LeadKitException, lead_kit_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(leads_router, prefix="/v1")

    # Freeze registries in non-development environments to prevent runtime modifications
    if settings.environment != "development":
        from leadkit.v1.leads import registry_init  # noqa: F401

        adapter_registry.freeze()

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "leadkit.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
