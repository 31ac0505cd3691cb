"""Base HTTP Client for the Lead Kit API"""

from typing import Any

import httpx


class LeadKitError(Exception):
    """Base exception for Lead Kit API errors"""

    def __init__(self, message: str, status_code: int | None = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data


class APIClient:
    """HTTP client for the Lead Kit API"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 30,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.default_headers = headers or {}
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers=self.default_headers,
            transport=transport,
        )
        self.last_headers: httpx.Headers = httpx.Headers()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self.client.close()

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Handle API response and extract data"""
        self.last_headers = response.headers
        try:
            data = response.json()
        except ValueError:
            raise LeadKitError(
                f"Invalid JSON response: {response.status_code}", response.status_code
            ) from None

        if not isinstance(data, dict):
            raise LeadKitError("Unexpected response shape", response.status_code, data)

        if response.status_code >= 400:
            error = data.get("error") or {}
            error_msg = error.get("message") or data.get("message") or "Unknown error"
            raise LeadKitError(error_msg, response.status_code, data)

        # Handle envelope format (with "ok" field)
        if "ok" in data:
            if not data.get("ok", False):
                error_msg = (data.get("error") or {}).get("message", "Request failed")
                raise LeadKitError(error_msg, response.status_code, data)
            return data.get("data") or {}

        # Handle direct response format (no envelope)
        return data

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            # Merge request-specific headers with default headers
            request_headers = {**self.default_headers, **(headers or {})}
            response = self.client.request(
                method, f"/v1{path}", params=params, json=json, headers=request_headers
            )
        except httpx.RequestError as e:
            raise LeadKitError(f"Connection failed: {e}") from e
        return self._handle_response(response)

    def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make GET request"""
        return self.request("GET", path, params=params, headers=headers)

    def post(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make POST request"""
        return self.request("POST", path, json=json, headers=headers)
