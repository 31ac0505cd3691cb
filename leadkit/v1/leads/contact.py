"""
Built-in contact form adapter.
"""

from html import escape
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

from leadkit.config.settings import Settings


class ContactPayload(BaseModel):
    """Submission accepted by the contact form."""

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str | None = Field(None, max_length=50)
    business_name: str | None = Field(None, max_length=200)
    message: str | None = Field(None, max_length=5000)

    @field_validator("name", "email", "phone", "business_name", "message", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


def _rows(payload: ContactPayload) -> list[tuple[str, str | None]]:
    return [
        ("Name", payload.name),
        ("Email", payload.email),
        ("Phone", payload.phone),
        ("Business", payload.business_name),
    ]


class ContactFormAdapter:
    site_slug = "contact"
    template_path = "lead-summary"
    payload_schema = ContactPayload

    def build_document_model(self, payload: ContactPayload) -> dict[str, Any]:
        return {
            "title": "New enquiry",
            "subtitle": payload.business_name or payload.name,
            "sections": [{"heading": "Contact", "rows": _rows(payload)}],
            "notes": payload.message,
        }

    def render_email_html(self, payload: ContactPayload, settings: Settings) -> str:
        rows = "".join(
            f"<tr><th align='left'>{escape(label)}</th><td>{escape(value)}</td></tr>"
            for label, value in _rows(payload)
            if value
        )
        message = (
            f"<p>{escape(payload.message).replace(chr(10), '<br>')}</p>"
            if payload.message
            else ""
        )
        site = escape((settings.website_url or "").rstrip("/"))
        footer = f"<p style='color:#888'>Sent from {site}</p>" if site else ""
        return f"<h2>New enquiry</h2><table>{rows}</table>{message}{footer}"

    def render_email_text(self, payload: ContactPayload, settings: Settings) -> str:
        lines = ["New enquiry", ""]
        lines += [f"{label}: {value}" for label, value in _rows(payload) if value]
        if payload.message:
            lines += ["", payload.message]
        return "\n".join(lines)
