"""
Transcript PDF Report

Renders a voice transcript, its template name and the extracted field
values onto US Letter pages with reportlab.
"""

from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional
from uuid import UUID
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Flowable, Paragraph, SimpleDocTemplate, Spacer


MARGIN = 50
SECTION_SPACING = 30
TITLE = "Voice Transcript Report"


def _styles() -> Dict[str, ParagraphStyle]:
    sample = getSampleStyleSheet()
    body = ParagraphStyle("Body", parent=sample["Normal"], fontName="Helvetica", fontSize=10, leading=14)
    return {
        "title": ParagraphStyle("Title", parent=body, fontName="Helvetica-Bold", fontSize=20, leading=24),
        "meta": body,
        "template": ParagraphStyle("Template", parent=body, fontName="Helvetica-Bold", fontSize=12),
        "section": ParagraphStyle("Section", parent=body, fontName="Helvetica-Bold", fontSize=14, leading=18),
        "label": ParagraphStyle("Label", parent=body, fontName="Helvetica-Bold", fontSize=11),
        "body": body,
        "value": ParagraphStyle("Value", parent=body, leftIndent=20),
    }


def field_label(key: str) -> str:
    """``units_sold`` -> ``Units sold``."""
    return (key[:1].upper() + key[1:]).replace("_", " ")


def field_value(value: Any) -> str:
    return "N/A" if value is None else str(value)


def pdf_filename(transcript_id: UUID) -> str:
    return f"transcript-{str(transcript_id)[:8]}.pdf"


def render_transcript_pdf(
    transcript: str,
    created_at: datetime,
    template_name: Optional[str] = None,
    filled_data: Optional[Dict[str, Any]] = None,
) -> bytes:
    """
    Build the report PDF.

    Long transcripts wrap and flow onto further pages. The filled data
    section is omitted when nothing was extracted.

    Returns:
        The PDF document as bytes
    """
    styles = _styles()
    story: List[Flowable] = [
        Paragraph(TITLE, styles["title"]),
        Spacer(1, SECTION_SPACING),
        Paragraph(escape(f"Generated: {created_at:%Y-%m-%d %H:%M}"), styles["meta"]),
        Spacer(1, SECTION_SPACING),
    ]
    if template_name:
        story += [
            Paragraph(escape(f"Template: {template_name}"), styles["template"]),
            Spacer(1, SECTION_SPACING),
        ]

    story += [
        Paragraph("Transcript:", styles["section"]),
        Spacer(1, 10),
        Paragraph(escape(transcript), styles["body"]),
        Spacer(1, SECTION_SPACING),
    ]

    if filled_data:
        story += [Paragraph("Filled Template Data:", styles["section"]), Spacer(1, 10)]
        for key, value in filled_data.items():
            story += [
                Paragraph(escape(f"{field_label(key)}:"), styles["label"]),
                Paragraph(escape(field_value(value)), styles["value"]),
                Spacer(1, 5),
            ]

    buffer = BytesIO()
    document = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=TITLE,
    )
    document.build(story)
    return buffer.getvalue()
