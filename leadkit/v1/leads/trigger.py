"""
Fire-and-forget trigger of the background worker endpoint.
"""

import time

import httpx

from leadkit.config.logging import get_logger
from leadkit.config.settings import Settings
from leadkit.v1.core.http import CORRELATION_HEADER

logger = get_logger(__name__)

ACCEPTED_STATUS_CODES = frozenset({200, 202})


class BackgroundTrigger:
    """POSTs ``{"leadId": id}`` to the worker path and reads only the status."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    def url_for(self, origin: str) -> str:
        path = self.settings.lead_background_path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{origin.rstrip('/')}{path}"

    async def fire(self, origin: str, job_id: str) -> bool:
        """Return True when the worker answered 200 or 202 within the timeout."""
        timeout_ms = self.settings.lead_enqueue_timeout_ms
        started = time.monotonic()
        try:
            response = await self.client.post(
                self.url_for(origin),
                json={"leadId": job_id},
                headers={CORRELATION_HEADER: job_id},
                timeout=timeout_ms / 1000,
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Background trigger failed",
                job_id=job_id,
                error=str(e) or e.__class__.__name__,
                timeout_ms=timeout_ms,
            )
            return False

        ok = response.status_code in ACCEPTED_STATUS_CODES
        logger.info(
            "Background trigger sent",
            job_id=job_id,
            status_code=response.status_code,
            accepted=ok,
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return ok

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
