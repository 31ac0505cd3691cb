import pytest

from leadkit.v1.leads.contact import ContactFormAdapter, ContactPayload
from leadkit.v1.leads.messages import (
    MessageCompositionError,
    build_message_id,
    compose_lead_message,
    domain_from_email,
    split_emails,
    subject_for,
)
from leadkit.v1.leads.transmission import build_email


@pytest.fixture
def adapter() -> ContactFormAdapter:
    return ContactFormAdapter()


@pytest.fixture
def payload(valid_payload) -> ContactPayload:
    return ContactPayload.model_validate(valid_payload)


def test_split_emails():
    assert split_emails("a@example.com, b@example.com;c@example.com ,") == [
        "a@example.com",
        "b@example.com",
        "c@example.com",
    ]
    assert split_emails(None) == []
    assert split_emails("  ") == []


@pytest.mark.parametrize(
    "email,domain",
    [
        ("leads@example.com", "example.com"),
        ("Leads <leads@mail.example.org>", "mail.example.org"),
        ("no-at-sign", ""),
        ("user@localhost", ""),
    ],
)
def test_domain_from_email(email, domain):
    assert domain_from_email(email) == domain


def test_message_id():
    assert build_message_id("abc", "leads@example.com", "contact") == "<contact-abc@example.com>"
    assert build_message_id("abc", "broken", "") == "<lead-abc@local>"
    assert build_message_id("", "leads@example.com", "contact") is None


def test_subject_uses_business_name(settings):
    assert subject_for({"business_name": "Acme Ltd"}, settings, "contact") == "CONTACT - Acme Ltd"
    assert subject_for({"name": "Jo"}, settings, "contact") == "CONTACT - Jo"
    assert subject_for({}, settings, "contact") == "CONTACT Lead"


def test_subject_overrides(settings):
    settings.lead_email_subject_prefix = "Website"
    assert subject_for({"company": "Initech"}, settings, "contact") == "Website - Initech"

    settings.lead_email_subject = "  Fixed subject "
    assert subject_for({"company": "Initech"}, settings, "contact") == "Fixed subject"


def test_compose_addresses_message(adapter, payload, settings):
    settings.lead_to_email = "owner@example.com, sales@example.com"

    message = compose_lead_message(adapter, payload, b"%PDF-1.4", settings, "cid-1")

    assert message.sender == "leads@example.com"
    assert message.recipients == ["owner@example.com", "sales@example.com"]
    assert message.reply_to == "jo@example.com"
    assert message.subject == "CONTACT - Acme Ltd"
    assert message.message_id == "<contact-cid-1@example.com>"
    assert message.headers == {"X-Correlation-Id": "cid-1"}
    assert message.text.startswith("New enquiry")
    assert "Acme Ltd" in message.html


def test_compose_attaches_document(adapter, payload, settings):
    message = compose_lead_message(adapter, payload, b"%PDF-1.4", settings, "cid-1")

    assert [(a.filename, a.content_type) for a in message.attachments] == [
        ("contact-lead.pdf", "application/pdf")
    ]

    settings.lead_pdf_filename = "enquiry.pdf"
    renamed = compose_lead_message(adapter, payload, b"%PDF-1.4", settings, "cid-1")
    assert renamed.attachments[0].filename == "enquiry.pdf"


def test_compose_without_document(adapter, payload, settings):
    message = compose_lead_message(adapter, payload, None, settings, "cid-1")

    assert message.attachments == []


def test_compose_inline_logo(adapter, payload, settings, tmp_path):
    logo = tmp_path / "logo.png"
    logo.write_bytes(b"\x89PNG fake")
    settings.lead_email_inline_logo = True
    settings.lead_email_logo_path = str(logo)

    message = compose_lead_message(adapter, payload, b"%PDF-1.4", settings, "cid-1")

    inline = [a for a in message.attachments if a.inline]
    assert len(inline) == 1
    assert inline[0].content_id == "logo@lead"


def test_compose_skips_missing_logo(adapter, payload, settings, tmp_path):
    settings.lead_email_inline_logo = True
    settings.lead_email_logo_path = str(tmp_path / "missing.png")

    message = compose_lead_message(adapter, payload, None, settings, "cid-1")

    assert message.attachments == []


@pytest.mark.parametrize(
    "field,error",
    [("lead_to_email", "Missing LEAD_TO_EMAIL"), ("lead_from_email", "Missing LEAD_FROM_EMAIL")],
)
def test_compose_requires_addresses(adapter, payload, settings, field, error):
    setattr(settings, field, " ")

    with pytest.raises(MessageCompositionError, match=error):
        compose_lead_message(adapter, payload, None, settings, "cid-1")


def test_compose_require_pdf(adapter, payload, settings):
    settings.email_require_pdf = True

    with pytest.raises(MessageCompositionError, match="Missing PDF"):
        compose_lead_message(adapter, payload, None, settings, "cid-1")


def test_html_is_escaped(adapter, settings):
    payload = ContactPayload(name="<script>", email="x@example.com", message="a\nb")

    html = adapter.render_email_html(payload, settings)

    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "a<br>b" in html


def test_build_email_structure(adapter, payload, settings, tmp_path):
    logo = tmp_path / "logo.png"
    logo.write_bytes(b"\x89PNG fake")
    settings.lead_email_inline_logo = True
    settings.lead_email_logo_path = str(logo)
    message = compose_lead_message(adapter, payload, b"%PDF-1.4", settings, "cid-1")

    email = build_email(message)

    assert email["From"] == "leads@example.com"
    assert email["To"] == "owner@example.com"
    assert email["Reply-To"] == "jo@example.com"
    assert email["Message-ID"] == "<contact-cid-1@example.com>"
    assert email["X-Correlation-Id"] == "cid-1"
    attachments = [part.get_filename() for part in email.iter_attachments()]
    assert "contact-lead.pdf" in attachments
    html_part = email.get_body(("html",))
    assert html_part is not None
