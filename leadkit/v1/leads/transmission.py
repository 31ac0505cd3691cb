"""
SMTP delivery of lead emails over a long-lived, lazily opened channel.
"""

import asyncio
import smtplib
import ssl
from email.message import EmailMessage
from typing import Protocol

from leadkit.config.logging import get_logger
from leadkit.config.settings import Settings
from leadkit.v1.leads.messages import OutboundMessage
from leadkit.v1.leads.resources import ResourceHandle
from leadkit.v1.leads.schemas import DeliveryResult

logger = get_logger(__name__)


class TransmissionError(Exception):
    """Raised when the message could not be handed to the mail server."""


class MessageTransmitter(Protocol):
    """Given recipients, content and attachments, deliver a message."""

    async def send(self, message: OutboundMessage) -> DeliveryResult: ...

    async def close(self) -> None: ...


class _PhasedTimeouts:
    """Separate connect and greeting timeouts for smtplib clients."""

    connect_timeout: float = 8.0
    greeting_timeout: float = 8.0

    def _get_socket(self, host, port, timeout):
        sock = super()._get_socket(host, port, self.connect_timeout)
        sock.settimeout(self.greeting_timeout)
        return sock


class TimedSMTP(_PhasedTimeouts, smtplib.SMTP):
    pass


class TimedSMTPSSL(_PhasedTimeouts, smtplib.SMTP_SSL):
    pass


def tls_context(settings: Settings) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not settings.smtp_tls_reject_unauthorized:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def open_smtp_channel(settings: Settings) -> smtplib.SMTP:
    """Connect, greet, upgrade to TLS and authenticate. Blocking."""
    host = (settings.smtp_host or "").strip()
    if not host:
        raise TransmissionError("Missing SMTP_HOST")

    socket_timeout = settings.smtp_socket_timeout_ms / 1000
    context = tls_context(settings)
    if settings.smtp_implicit_tls:
        client: smtplib.SMTP = TimedSMTPSSL(timeout=socket_timeout, context=context)
    else:
        client = TimedSMTP(timeout=socket_timeout)
    client.connect_timeout = settings.smtp_connection_timeout_ms / 1000
    client.greeting_timeout = settings.smtp_greeting_timeout_ms / 1000

    try:
        client.connect(host, settings.smtp_port)
        client.sock.settimeout(socket_timeout)
        client.ehlo()
        if not settings.smtp_implicit_tls and client.has_extn("starttls"):
            client.starttls(context=context)
            client.ehlo()
        if settings.smtp_user or settings.smtp_pass:
            client.login(settings.smtp_user or "", settings.smtp_pass or "")
    except Exception:
        client.close()
        raise
    return client


def close_smtp_channel(client: smtplib.SMTP) -> None:
    try:
        client.quit()
    except (smtplib.SMTPException, OSError):
        client.close()


def build_email(message: OutboundMessage) -> EmailMessage:
    email = EmailMessage()
    email["From"] = message.sender
    email["To"] = ", ".join(message.recipients)
    email["Subject"] = message.subject
    if message.reply_to:
        email["Reply-To"] = message.reply_to
    if message.message_id:
        email["Message-ID"] = message.message_id
    for name, value in message.headers.items():
        email[name] = value

    email.set_content(message.text or "")
    if message.html:
        email.add_alternative(message.html, subtype="html")

    html_part = email.get_body(("html",)) if message.html else None
    for attachment in message.attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        if attachment.inline and html_part is not None:
            html_part.add_related(
                attachment.content,
                maintype=maintype,
                subtype=subtype,
                cid=f"<{attachment.content_id}>",
                filename=attachment.filename,
            )
        else:
            email.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype,
                filename=attachment.filename,
                disposition="inline" if attachment.inline else "attachment",
            )
    return email


class SmtpTransmitter:
    """Sends through one shared SMTP channel, one message at a time."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.channel: ResourceHandle[smtplib.SMTP] = ResourceHandle(
            "smtp-channel", self._open, self._close
        )
        self._lock = asyncio.Lock()

    async def _open(self) -> smtplib.SMTP:
        return await asyncio.to_thread(open_smtp_channel, self.settings)

    async def _close(self, client: smtplib.SMTP) -> None:
        await asyncio.to_thread(close_smtp_channel, client)

    async def send(self, message: OutboundMessage) -> DeliveryResult:
        correlation_id = message.headers.get("X-Correlation-Id", "")
        suffix = f" ({correlation_id})" if correlation_id else ""
        email = build_email(message)

        logger.info(
            "SMTP send attempt",
            correlation_id=correlation_id,
            to_count=len(message.recipients),
            sender=message.sender,
            reply_to=message.reply_to,
            smtp_host=self.settings.smtp_host,
            smtp_port=self.settings.smtp_port,
            has_pdf=any(a.content_type == "application/pdf" for a in message.attachments),
            has_logo=any(a.inline for a in message.attachments),
        )

        async with self._lock:
            try:
                channel = await self.channel.get()
                if self.settings.smtp_verify:
                    code, _ = await asyncio.to_thread(channel.noop)
                    if code != 250:
                        raise TransmissionError(f"SMTP verify failed with {code}")
                refused = await asyncio.to_thread(
                    channel.send_message, email, message.sender, message.recipients
                )
            except Exception as e:
                # The channel state is unknown after a failure
                await self.channel.reset()
                logger.error(
                    "SMTP send failed",
                    correlation_id=correlation_id,
                    error=str(e),
                    exc_info=True,
                )
                raise TransmissionError(f"{e or 'SMTP send failed'}{suffix}") from e

        result = DeliveryResult(
            message_id=message.message_id or "",
            accepted=[r for r in message.recipients if r not in refused],
            rejected=list(refused),
        )
        logger.info(
            "SMTP send ok",
            correlation_id=correlation_id,
            message_id=result.message_id,
            accepted=len(result.accepted),
            rejected=len(result.rejected),
        )
        return result

    async def close(self) -> None:
        await self.channel.reset()
