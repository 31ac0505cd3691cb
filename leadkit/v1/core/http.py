"""
Request helpers shared by the lead endpoints.
"""

import json
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl

from fastapi import Request
from pydantic import ValidationError as PydanticValidationError

from leadkit.config.settings import Settings
from leadkit.v1.core.exceptions import BadRequestError

CORRELATION_HEADER = "x-correlation-id"

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

BODY_ID_KEYS = ("leadId", "cid", "correlationId", "lead", "id", "jobId")
QUERY_ID_KEYS = ("leadId", "cid", "correlationId", "lead", "id")


def safe_trim(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def is_valid_job_id(value: Any) -> bool:
    return bool(_UUID_RE.match(safe_trim(value)))


def parse_body_bytes(raw: bytes, content_type: str) -> dict[str, Any]:
    """Decode a JSON or form-urlencoded body into a dict."""
    text = raw.decode("utf-8", errors="replace") if raw else ""
    if not text.strip():
        return {}

    ct = content_type.lower()
    if "application/json" in ct:
        try:
            value = json.loads(text)
        except json.JSONDecodeError:
            raise BadRequestError("Invalid JSON") from None
        if not isinstance(value, dict):
            raise BadRequestError("Invalid JSON")
        return value

    if "application/x-www-form-urlencoded" in ct:
        return dict(parse_qsl(text, keep_blank_values=True))

    # Unknown content type: accept a JSON object, ignore anything else
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


async def parse_request_body(request: Request) -> dict[str, Any]:
    return parse_body_bytes(
        await request.body(), request.headers.get("content-type", "")
    )


def first_present(source: Mapping[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = safe_trim(source.get(key))
        if value:
            return value
    return ""


def extract_job_id(
    body: Mapping[str, Any] | None = None,
    query: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> str:
    """Find a job id in the body, then the query string, then the headers."""
    if body:
        found = first_present(body, BODY_ID_KEYS)
        if found:
            return found
    if query:
        found = first_present(query, QUERY_ID_KEYS)
        if found:
            return found
    if headers:
        return safe_trim(headers.get(CORRELATION_HEADER))
    return ""


def resolve_origin(headers: Mapping[str, str], settings: Settings) -> str:
    """Origin used to address the background worker.

    A configured ``website_url`` always wins over the request host.
    """
    configured = safe_trim(settings.website_url).rstrip("/")
    if configured:
        return configured

    host = safe_trim(headers.get("x-forwarded-host") or headers.get("host"))
    if not host:
        return ""
    proto = safe_trim(headers.get("x-forwarded-proto")) or (
        "http" if "localhost" in host or host.startswith("127.") else "https"
    )
    return f"{proto}://{host}".rstrip("/")


def format_validation_errors(exc: PydanticValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors into ``[{path, message}]``."""
    return [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg") or "Invalid",
        }
        for error in exc.errors()
    ]
