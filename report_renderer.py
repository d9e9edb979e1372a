"""
report_renderer.py
------------------
Clinical Trial Screener - Eligibility Report Renderer
-----------------------------------------------------
Renders the patient attributes and eligibility result into a downloadable
report.

Two renderings share one context (patient fields, labs, cleaned analysis
text, generation time):
  • HTML  Jinja2 template templates/eligibility_report.html, autoescaped.
  • PDF   ReportLab platypus story, A4 with 20/15 mm margins.

render_report() tries the PDF first. If ReportLab raises for any reason it
logs the failure and returns the HTML document instead, with an auto-print
script, a text/html media type and a .html filename. This is a degraded
success: callers see the difference only in the media type and filename.

The result text passes through text_sanitizer.clean_export_artifacts()
before it is embedded in either rendering.

Project: Clinical Trial Screener
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

from jinja2 import Environment, FileSystemLoader, select_autoescape

from schemas import PatientData
from text_sanitizer import clean_export_artifacts

logger = logging.getLogger(__name__)

_TEMPLATE_ROOT = Path(__file__).parent / "templates"
_TEMPLATE_NAME = "eligibility_report.html"

_ENV = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_ROOT)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

PDF_MEDIA_TYPE = "application/pdf"
HTML_MEDIA_TYPE = "text/html"
PDF_FILENAME = "eligibility-report.pdf"
HTML_FILENAME = "eligibility-report.html"

_MISSING = "N/A"


@dataclass(frozen=True)
class RenderedReport:
    """A rendered report ready to be sent as an attachment."""

    content: bytes
    media_type: str
    filename: str

    @property
    def is_pdf(self) -> bool:
        return self.media_type == PDF_MEDIA_TYPE


# ── Context ───────────────────────────────────────────────────────────────────

def _display(value: Any) -> str:
    if value is None or value == "":
        return _MISSING
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_report_context(
    patient: PatientData,
    result_text: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Assemble the values shared by the HTML and PDF renderings.

    Returns:
        dict: patient_fields, labs, analysis, generated_on.
    """
    now = now or datetime.now(timezone.utc)
    patient_fields: List[Tuple[str, str]] = [
        ("Age", _display(patient.age)),
        ("Disease", _display(patient.disease)),
        ("Stage", _display(patient.stage)),
        ("Geography", _display(patient.geography)),
    ]
    labs = [(name, _display(value)) for name, value in patient.labs.items()]
    return {
        "patient_fields": patient_fields,
        "labs": labs,
        "analysis": clean_export_artifacts(result_text),
        "generated_on": now.strftime("%Y-%m-%d %H:%M:%S %Z").strip(),
    }


# ── HTML ──────────────────────────────────────────────────────────────────────

def render_html(context: Dict[str, Any], *, auto_print: bool = False) -> str:
    """Render the report context through the Jinja2 template."""
    template = _ENV.get_template(_TEMPLATE_NAME)
    return template.render(auto_print=auto_print, **context)


# ── PDF ───────────────────────────────────────────────────────────────────────

def _render_pdf(context: Dict[str, Any]) -> bytes:
    """Build the PDF with ReportLab and return its bytes."""
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
    from reportlab.lib.units import mm
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        title="Clinical Trial Eligibility Report",
    )

    blue = colors.HexColor("#2563eb")
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle("ReportTitle", parent=styles["Title"], textColor=blue, fontSize=22, leading=26))
    styles.add(ParagraphStyle(
        "ReportHeading", parent=styles["Heading2"], textColor=colors.HexColor("#1e40af"),
        spaceBefore=14, spaceAfter=8,
    ))
    styles.add(ParagraphStyle("Analysis", parent=styles["Code"], fontSize=9, leading=12))
    styles.add(ParagraphStyle(
        "Stamp", parent=styles["BodyText"], fontSize=8, textColor=colors.HexColor("#64748b"),
        alignment=2,
    ))

    grid = TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#d1d5db")),
        ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#f8fafc")),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LEFTPADDING", (0, 0), (-1, -1), 6),
    ])

    def _rows(pairs: List[Tuple[str, str]]) -> List[List[Any]]:
        return [
            [Paragraph(f"<b>{escape(label)}:</b>", styles["BodyText"]), Paragraph(escape(value), styles["BodyText"])]
            for label, value in pairs
        ]

    story: List[Any] = [
        Paragraph("Clinical Trial Eligibility Report", styles["ReportTitle"]),
        Spacer(1, 8),
        Paragraph("Patient Information", styles["ReportHeading"]),
    ]
    patient_table = Table(_rows(context["patient_fields"]), colWidths=[40 * mm, 130 * mm])
    patient_table.setStyle(grid)
    story.append(patient_table)

    story.append(Paragraph("Laboratory Values", styles["ReportHeading"]))
    if context["labs"]:
        lab_table = Table(_rows(context["labs"]), colWidths=[40 * mm, 130 * mm])
        lab_table.setStyle(grid)
        story.append(lab_table)
    else:
        story.append(Paragraph(_MISSING, styles["BodyText"]))

    story.append(Paragraph("Clinical Trial Eligibility Analysis", styles["ReportHeading"]))
    for line in context["analysis"].split("\n"):
        if line.strip():
            story.append(Paragraph(escape(line), styles["Analysis"]))
        else:
            story.append(Spacer(1, 6))

    story.append(Spacer(1, 24))
    story.append(Paragraph(f"Generated on: {escape(context['generated_on'])}", styles["Stamp"]))

    doc.build(story)
    return buf.getvalue()


# ── Public API ────────────────────────────────────────────────────────────────

def render_report(
    patient: PatientData,
    result_text: str,
    *,
    now: Optional[datetime] = None,
) -> RenderedReport:
    """
    Render the eligibility report, preferring PDF.

    Args:
        patient:     Patient attributes from the screening form.
        result_text: Eligibility result text (cleaned here before embedding).
        now:         Generation time shown in the footer. Defaults to now.

    Returns:
        RenderedReport: PDF bytes, or the HTML document when PDF rendering
                        fails.

    Raises:
        jinja2.TemplateError: only if the HTML template itself cannot render.
    """
    context = build_report_context(patient, result_text, now)
    try:
        pdf = _render_pdf(context)
        logger.info("report_renderer: rendered PDF report (%d bytes).", len(pdf))
        return RenderedReport(content=pdf, media_type=PDF_MEDIA_TYPE, filename=PDF_FILENAME)
    except Exception as exc:
        logger.warning("report_renderer: PDF generation failed, falling back to HTML: %s", exc)

    html = render_html(context, auto_print=True)
    return RenderedReport(
        content=html.encode("utf-8"),
        media_type=HTML_MEDIA_TYPE,
        filename=HTML_FILENAME,
    )
