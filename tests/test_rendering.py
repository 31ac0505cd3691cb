import time

import pytest

from leadkit.v1.leads.contact import ContactFormAdapter, ContactPayload
from leadkit.v1.leads.rendering import DocumentEngine, RenderError, ReportLabRenderer


@pytest.fixture
def document_model(valid_payload) -> dict:
    payload = ContactPayload.model_validate(valid_payload)
    return ContactFormAdapter().build_document_model(payload)


@pytest.mark.asyncio
async def test_render_produces_pdf(settings, document_model):
    renderer = ReportLabRenderer(settings)

    pdf = await renderer.render("lead-summary", document_model, "cid-1")

    assert pdf.startswith(b"%PDF")
    assert renderer.engine.initialized
    await renderer.close()
    assert not renderer.engine.initialized


@pytest.mark.asyncio
async def test_engine_created_once(settings, document_model):
    renderer = ReportLabRenderer(settings)

    await renderer.render("lead-summary", document_model, "cid-1")
    await renderer.render("lead-summary.pdf", document_model, "cid-2")

    assert renderer.engine.init_count == 1


@pytest.mark.asyncio
async def test_unknown_template(settings, document_model):
    renderer = ReportLabRenderer(settings)

    with pytest.raises(RenderError, match=r"Unknown document template.*\(cid-1\)"):
        await renderer.render("invoice", document_model, "cid-1")


@pytest.mark.asyncio
async def test_render_timeout(settings, document_model, monkeypatch):
    settings.pdf_render_timeout_ms = 50

    def slow_build(self, template, model):
        time.sleep(0.5)
        return b"%PDF-late"

    monkeypatch.setattr(DocumentEngine, "build", slow_build)
    renderer = ReportLabRenderer(settings)

    with pytest.raises(RenderError, match="timed out after 50ms"):
        await renderer.render("lead-summary", document_model, "cid-1")


def test_engine_skips_empty_rows():
    engine = DocumentEngine()

    pdf = engine.build(
        "lead-summary",
        {"title": "New enquiry", "sections": [{"heading": "Empty", "rows": [["Phone", None]]}]},
    )

    assert pdf.startswith(b"%PDF")
