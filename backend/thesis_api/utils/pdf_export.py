"""Render a thesis draft to PDF with reportlab.

The document has a cover page (title, author, institution, generation
date) followed by the draft body. Rich-text markup is reduced to plain
paragraphs, and every page carries a "Page i / N" footer.
"""

from __future__ import annotations

import html
import io
import re
from datetime import date
from typing import Optional

from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.pdfgen import canvas
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer

_TAG_RE = re.compile(r"<[^>]*>?")
_BLANK_RUN_RE = re.compile(r"\n\s*\n")

MARGIN = 50


class NumberedCanvas(canvas.Canvas):
    """Canvas that defers page output so the total page count is known."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int):
        self.setFont("Helvetica", 10)
        self.drawCentredString(A4[0] / 2, MARGIN / 2, f"Page {self._pageNumber} / {total}")


def strip_markup(content: str) -> list[str]:
    """Turn HTML-ish editor output into a list of plain paragraphs."""
    text = _TAG_RE.sub("\n", content)
    text = html.unescape(text)
    blocks = _BLANK_RUN_RE.split(text)
    return [" ".join(b.split()) for b in blocks if b.strip()]


def export_filename(last_name: str) -> str:
    return "Memoire_" + re.sub(r"\s+", "_", last_name.strip()) + ".pdf"


def render_memoire_pdf(
    title: str,
    content: str,
    author: str,
    institution: Optional[str] = None,
    generated_on: Optional[date] = None,
) -> bytes:
    styles = getSampleStyleSheet()
    brand = ParagraphStyle("Brand", parent=styles["Title"], fontSize=24, leading=30, alignment=TA_CENTER)
    heading = ParagraphStyle("CoverTitle", parent=styles["Title"], fontSize=20, leading=26, alignment=TA_CENTER)
    centered = ParagraphStyle("Centered", parent=styles["Normal"], fontSize=14, leading=18, alignment=TA_CENTER)
    small = ParagraphStyle("Small", parent=centered, fontSize=12)
    body = ParagraphStyle("Body", parent=styles["Normal"], fontSize=12, leading=16, alignment=TA_JUSTIFY, spaceAfter=8)

    generated_on = generated_on or date.today()
    story = [
        Paragraph("Clé du Mémoire", brand),
        Spacer(1, 40),
        Paragraph(html.escape(title), heading),
        Spacer(1, 80),
        Paragraph(f"Auteur : {html.escape(author)}", centered),
        Spacer(1, 16),
        Paragraph(f"Institution : {html.escape(institution or 'Université')}", centered),
        Spacer(1, 140),
        Paragraph(f"Généré le : {generated_on.strftime('%d/%m/%Y')}", small),
        PageBreak(),
    ]
    for paragraph in strip_markup(content):
        story.append(Paragraph(html.escape(paragraph), body))

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=title,
        author=author,
    )
    doc.build(story, canvasmaker=NumberedCanvas)
    return buf.getvalue()
