"""
Composition of the outbound lead email.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from leadkit.config.settings import Settings
from leadkit.v1.core.registries import SiteAdapter


class MessageCompositionError(ValueError):
    """Raised when the lead email cannot be addressed or assembled."""


@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: str
    content_id: str | None = None
    inline: bool = False


@dataclass
class OutboundMessage:
    sender: str
    recipients: list[str]
    subject: str
    text: str
    html: str | None = None
    reply_to: str | None = None
    message_id: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    attachments: list[Attachment] = field(default_factory=list)


def split_emails(value: str | None) -> list[str]:
    return [part.strip() for part in re.split(r"[,;]+", value or "") if part.strip()]


def domain_from_email(email: str | None) -> str:
    v = (email or "").strip()
    at = v.rfind("@")
    if at == -1:
        return ""
    domain = v[at + 1 :].strip().rstrip(">")
    return domain if "." in domain else ""


def build_message_id(correlation_id: str, sender: str, site_slug: str) -> str | None:
    if not correlation_id:
        return None
    domain = domain_from_email(sender) or "local"
    return f"<{site_slug or 'lead'}-{correlation_id}@{domain}>"


def _first(data: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = data.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def best_business_name(data: dict[str, Any]) -> str:
    return _first(data, ("business_name", "company_name", "business", "company", "name"))


def best_reply_to(data: dict[str, Any]) -> str:
    return _first(data, ("email", "contact_email"))


def subject_for(data: dict[str, Any], settings: Settings, site_slug: str) -> str:
    if settings.lead_email_subject and settings.lead_email_subject.strip():
        return settings.lead_email_subject.strip()

    prefix = (
        (settings.lead_email_subject_prefix or "").strip()
        or site_slug.strip().upper()
        or "Lead"
    )
    name = best_business_name(data)
    return f"{prefix} - {name}" if name else f"{prefix} Lead"


def read_inline_logo(settings: Settings) -> bytes | None:
    if not settings.lead_email_inline_logo:
        return None

    if settings.lead_email_logo_path:
        candidates = [Path.cwd() / settings.lead_email_logo_path, Path(settings.lead_email_logo_path)]
    else:
        candidates = [Path.cwd() / "public" / "logo.png"]

    for candidate in candidates:
        try:
            if candidate.is_file():
                content = candidate.read_bytes()
                if content:
                    return content
        except OSError:
            continue
    return None


def compose_lead_message(
    adapter: SiteAdapter,
    payload: BaseModel,
    document: bytes | None,
    settings: Settings,
    correlation_id: str,
) -> OutboundMessage:
    """Address and assemble the lead email, attaching the PDF when present."""
    recipients = split_emails(settings.lead_to_email)
    sender = (settings.lead_from_email or "").strip()

    if not recipients:
        raise MessageCompositionError("Missing LEAD_TO_EMAIL")
    if not sender:
        raise MessageCompositionError("Missing LEAD_FROM_EMAIL")
    if settings.email_require_pdf and not document:
        raise MessageCompositionError("Missing PDF for email attachment")

    data = payload.model_dump()
    attachments: list[Attachment] = []

    logo = read_inline_logo(settings)
    if logo:
        attachments.append(
            Attachment(
                filename="logo.png",
                content=logo,
                content_type="image/png",
                content_id="logo@lead",
                inline=True,
            )
        )

    if document:
        filename = (settings.lead_pdf_filename or "").strip() or f"{adapter.site_slug}-lead.pdf"
        attachments.append(
            Attachment(filename=filename, content=bytes(document), content_type="application/pdf")
        )

    html = (adapter.render_email_html(payload, settings) or "").strip()
    return OutboundMessage(
        sender=sender,
        recipients=recipients,
        subject=subject_for(data, settings, adapter.site_slug),
        text=(adapter.render_email_text(payload, settings) or "").strip(),
        html=html or None,
        reply_to=best_reply_to(data) or None,
        message_id=build_message_id(correlation_id, sender, adapter.site_slug),
        headers={"X-Correlation-Id": correlation_id} if correlation_id else {},
        attachments=attachments,
    )
