"""
PDF rendering with ReportLab.

The renderer receives a template name and a data model built by the site
adapter:

    {
        "title": "New enquiry",
        "subtitle": "Acme Ltd",
        "sections": [{"heading": "Contact", "rows": [["Name", "Jo"], ...]}],
        "notes": "free text"
    }
"""

import asyncio
import io
from dataclasses import dataclass
from typing import Any, Protocol
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from leadkit.config.logging import get_logger
from leadkit.config.settings import Settings
from leadkit.v1.leads.resources import ResourceHandle

logger = get_logger(__name__)


class RenderError(Exception):
    """Raised when a document cannot be produced."""


class DocumentRenderer(Protocol):
    """Given a template reference and a data model, return document bytes."""

    async def render(
        self, template: str, model: dict[str, Any], correlation_id: str
    ) -> bytes: ...

    async def close(self) -> None: ...


@dataclass(frozen=True)
class DocumentLayout:
    pagesize: tuple[float, float]
    margin: float


LAYOUTS = {
    "lead-summary": DocumentLayout(pagesize=A4, margin=14 * mm),
    "lead-summary-letter": DocumentLayout(pagesize=letter, margin=14 * mm),
}


def _text(value: Any) -> str:
    return escape("" if value is None else str(value))


class DocumentEngine:
    """Stylesheet and named layouts shared by every render."""

    def __init__(self, layouts: dict[str, DocumentLayout] | None = None):
        self.styles = getSampleStyleSheet()
        self.layouts = dict(layouts or LAYOUTS)

    def layout_for(self, template: str) -> DocumentLayout:
        name = template.strip().lstrip("/")
        if name.endswith(".pdf"):
            name = name[: -len(".pdf")]
        if name not in self.layouts:
            raise RenderError(f"Unknown document template: {template}")
        return self.layouts[name]

    def build(self, template: str, model: dict[str, Any]) -> bytes:
        layout = self.layout_for(template)
        buf = io.BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=layout.pagesize,
            topMargin=layout.margin,
            bottomMargin=layout.margin,
            leftMargin=layout.margin,
            rightMargin=layout.margin,
            title=str(model.get("title") or "Lead"),
        )
        styles = self.styles
        story: list[Any] = [Paragraph(_text(model.get("title") or "Lead"), styles["Title"])]

        if model.get("subtitle"):
            story.append(Paragraph(_text(model["subtitle"]), styles["Heading2"]))
        story.append(Spacer(1, 6 * mm))

        for section in model.get("sections") or []:
            rows = [
                [Paragraph(_text(label), styles["Normal"]), Paragraph(_text(value), styles["Normal"])]
                for label, value in section.get("rows") or []
                if value not in (None, "")
            ]
            if not rows:
                continue
            if section.get("heading"):
                story.append(Paragraph(_text(section["heading"]), styles["Heading3"]))
            table = Table(rows, colWidths=[55 * mm, None])
            table.setStyle(
                TableStyle(
                    [
                        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                        ("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke),
                        ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ]
                )
            )
            story.append(table)
            story.append(Spacer(1, 4 * mm))

        if model.get("notes"):
            story.append(Paragraph(_text(model["notes"]), styles["Normal"]))

        doc.build(story)
        return buf.getvalue()


class ReportLabRenderer:
    """Renders lead documents on a worker thread with a hard timeout."""

    def __init__(self, settings: Settings, layouts: dict[str, DocumentLayout] | None = None):
        self.settings = settings
        self._layouts = layouts
        self.engine: ResourceHandle[DocumentEngine] = ResourceHandle(
            "pdf-engine", self._create_engine
        )

    async def _create_engine(self) -> DocumentEngine:
        return await asyncio.to_thread(DocumentEngine, self._layouts)

    async def render(
        self, template: str, model: dict[str, Any], correlation_id: str
    ) -> bytes:
        timeout_ms = self.settings.pdf_render_timeout_ms
        suffix = f" ({correlation_id})" if correlation_id else ""
        logger.info(
            "PDF render started",
            correlation_id=correlation_id,
            template=template,
            timeout_ms=timeout_ms,
        )

        engine = await self.engine.get()
        try:
            pdf = await asyncio.wait_for(
                asyncio.to_thread(engine.build, template, model), timeout_ms / 1000
            )
        except TimeoutError:
            logger.error("PDF render timed out", correlation_id=correlation_id)
            raise RenderError(f"PDF render timed out after {timeout_ms}ms{suffix}") from None
        except Exception as e:
            logger.error(
                "PDF render failed",
                correlation_id=correlation_id,
                error=str(e),
                exc_info=True,
            )
            raise RenderError(f"{e or 'PDF render failed'}{suffix}") from e

        logger.info("PDF render finished", correlation_id=correlation_id, bytes=len(pdf))
        return pdf

    async def close(self) -> None:
        await self.engine.reset()
