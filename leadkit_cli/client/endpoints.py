"""API Endpoint Wrappers - Typed Lead Kit calls"""

from typing import Any

import httpx

from ..utils.config_manager import config
from .base import APIClient


class LeadKitClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_headers = headers or api_config.get("headers", {})

        self.api = APIClient(
            base_url=final_base_url,
            timeout=api_config.get("timeout", 30),
            headers=final_headers,
            transport=transport,
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    def close(self) -> None:
        self.api.close()

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Leads Endpoints
    def submit_lead(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Submit a form payload; returns ``{status, id, correlationId}``"""
        data = self.api.post("/leads", json=fields)
        if not data.get("correlationId"):
            header_cid = self.api.last_headers.get("x-correlation-id")
            data["correlationId"] = header_cid or data.get("id", "")
        return data

    def get_status(self, lead_id: str) -> dict[str, Any]:
        """Current status snapshot for a lead"""
        return self.api.get(
            "/leads/status",
            params={"leadId": lead_id},
            headers={"Cache-Control": "no-cache"},
        )

    def retry_lead(self, lead_id: str) -> dict[str, Any]:
        """Ask the API to re-queue a failed lead"""
        return self.api.post("/leads/retry", json={"leadId": lead_id})
