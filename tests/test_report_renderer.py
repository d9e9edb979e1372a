"""
test_report_renderer.py
-----------------------
Clinical Trial Screener - Tests for report_renderer.py
------------------------------------------------------
Tests cover:
    - report context: N/A defaults, integer display, export-artifact cleanup
    - HTML rendering: patient fields, labs, autoescaping, auto-print toggle
    - PDF rendering via ReportLab
    - HTML fallback when PDF rendering fails

Run:
    pytest tests/test_report_renderer.py -v --tb=short

Project: Clinical Trial Screener
"""

import os
import sys
from datetime import datetime, timezone
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from report_renderer import (  # noqa: E402
    HTML_FILENAME,
    HTML_MEDIA_TYPE,
    PDF_FILENAME,
    PDF_MEDIA_TYPE,
    build_report_context,
    render_html,
    render_report,
)
from schemas import PatientData  # noqa: E402

_NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)
_PATIENT = PatientData(
    age=58,
    disease="breast cancer",
    stage="IIIA",
    geography="Boston, MA",
    labs={"WBC": 6.1, "Platelets": 250},
)
_RESULT = "Eligible trials:\n)\nNCT00000001 Phase II (HER2+)NCT00000002"


# ── build_report_context ───────────────────────────────────────────────────────

def test_context_patient_fields():
    """Patient fields are labelled and whole-number ages lose the decimal."""
    context = build_report_context(_PATIENT, _RESULT, _NOW)
    assert context["patient_fields"] == [
        ("Age", "58"),
        ("Disease", "breast cancer"),
        ("Stage", "IIIA"),
        ("Geography", "Boston, MA"),
    ]
    assert context["labs"] == [("WBC", "6.1"), ("Platelets", "250")]


def test_context_missing_fields_are_na():
    """Missing patient attributes display as N/A."""
    context = build_report_context(PatientData(), "x", _NOW)
    assert all(value == "N/A" for _, value in context["patient_fields"])
    assert context["labs"] == []


def test_context_cleans_export_artifacts():
    """The analysis text is passed through the export-artifact cleaner."""
    context = build_report_context(_PATIENT, _RESULT, _NOW)
    assert context["analysis"] == "Eligible trials:\n\nNCT00000001 Phase II (HER2+ NCT00000002"


def test_context_generated_on():
    """The footer timestamp is formatted from the given time."""
    assert build_report_context(_PATIENT, "x", _NOW)["generated_on"] == "2026-10-19 09:30:00 UTC"


# ── render_html ────────────────────────────────────────────────────────────────

def test_render_html_contains_patient_and_labs():
    """The HTML embeds the patient grid, labs and analysis."""
    html = render_html(build_report_context(_PATIENT, _RESULT, _NOW))
    assert "<!DOCTYPE html>" in html
    assert "Clinical Trial Eligibility Report" in html
    assert "<strong>Disease:</strong> breast cancer" in html
    assert "<strong>WBC:</strong> 6.1" in html
    assert "NCT00000001 Phase II" in html
    assert "Generated on: 2026-10-19 09:30:00 UTC" in html


def test_render_html_escapes_result_text():
    """Result text is HTML-escaped."""
    html = render_html(build_report_context(_PATIENT, "<script>alert(1)</script>", _NOW))
    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html


def test_render_html_auto_print_toggle():
    """The print script is only included when requested."""
    context = build_report_context(_PATIENT, "x", _NOW)
    assert "window.print" not in render_html(context)
    assert "window.print" in render_html(context, auto_print=True)


# ── render_report ──────────────────────────────────────────────────────────────

def test_render_report_produces_pdf():
    """With ReportLab available the report is a PDF."""
    report = render_report(_PATIENT, _RESULT, now=_NOW)
    assert report.media_type == PDF_MEDIA_TYPE
    assert report.filename == PDF_FILENAME
    assert report.is_pdf
    assert report.content.startswith(b"%PDF-")


def test_render_report_pdf_handles_markup_characters():
    """Characters meaningful to ReportLab markup do not break rendering."""
    report = render_report(PatientData(disease="<b>&"), "a < b & c > d\n\n<para>", now=_NOW)
    assert report.is_pdf


def test_render_report_falls_back_to_html():
    """A PDF renderer failure yields the HTML document, not an error."""
    with patch("report_renderer._render_pdf", side_effect=RuntimeError("renderer unavailable")):
        report = render_report(_PATIENT, _RESULT, now=_NOW)
    assert report.media_type == HTML_MEDIA_TYPE
    assert report.filename == HTML_FILENAME
    assert not report.is_pdf
    html = report.content.decode("utf-8")
    assert "<strong>Stage:</strong> IIIA" in html
    assert "window.print" in html
