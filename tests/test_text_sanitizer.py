"""
test_text_sanitizer.py
----------------------
Clinical Trial Screener - Tests for text_sanitizer.py
-----------------------------------------------------
Tests cover:
    - strip_display_markup: code, images, links, emphasis, blank-line runs
    - clean_export_artifacts: stray ")" lines, ")NCT" repairs
    - the two pipelines stay independent

Run:
    pytest tests/test_text_sanitizer.py -v --tb=short

Project: Clinical Trial Screener
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from text_sanitizer import clean_export_artifacts, strip_display_markup  # noqa: E402


# ── strip_display_markup ───────────────────────────────────────────────────────

def test_strip_display_markup_reference_example():
    """Emphasis, inline code and link syntax are removed; link text stays."""
    assert strip_display_markup("**bold** and `code` and [text](url)") == "bold and  and text"


def test_strip_display_markup_code_fence():
    """Fenced code blocks are removed entirely."""
    text = "Before\n```python\nprint('x')\n```\nAfter"
    assert "print" not in strip_display_markup(text)
    assert strip_display_markup(text).startswith("Before")
    assert strip_display_markup(text).endswith("After")


def test_strip_display_markup_image():
    """Image references are removed, not converted to alt text."""
    assert strip_display_markup("See ![chart](http://x/y.png) here") == "See  here"


def test_strip_display_markup_headings_and_quotes():
    """Heading and blockquote markers are stripped."""
    assert strip_display_markup("## Summary\n> quoted") == " Summary\n quoted".strip()


def test_strip_display_markup_collapses_blank_lines():
    """Runs of blank lines collapse to a single newline."""
    assert strip_display_markup("a\n\n\n\nb") == "a\nb"


def test_strip_display_markup_trims():
    """Leading and trailing whitespace is trimmed."""
    assert strip_display_markup("  \n _hello_ \n ") == "hello"


# ── clean_export_artifacts ─────────────────────────────────────────────────────

def test_clean_export_artifacts_reference_example():
    """A leading stray ')' line is dropped and the trial line preserved."""
    assert clean_export_artifacts("\n)\nNCT12345678 trial") == "NCT12345678 trial"


def test_clean_export_artifacts_leading_paren_before_nct():
    """A line starting with ')NCT' becomes 'NCT'."""
    assert clean_export_artifacts("Trials:\n) NCT00000001 match") == "Trials:\nNCT00000001 match"


def test_clean_export_artifacts_inline_paren_before_nct():
    """An inline ')NCT' break becomes ' NCT'."""
    assert clean_export_artifacts("(phase 2)NCT00000002") == "(phase 2 NCT00000002"


def test_clean_export_artifacts_keeps_markdown():
    """The export cleaner leaves Markdown markup alone."""
    text = "**Eligible** for [trial](http://x)"
    assert clean_export_artifacts(text) == text


def test_clean_export_artifacts_keeps_balanced_parentheses():
    """Parentheses that are not stray or before NCT survive."""
    assert clean_export_artifacts("Stage (IIIA) confirmed") == "Stage (IIIA) confirmed"


# ── Independence ───────────────────────────────────────────────────────────────

def test_pipelines_differ_on_same_input():
    """The display stripper and export cleaner are not interchangeable."""
    text = "**Match**\n)\nNCT00000003"
    assert strip_display_markup(text) != clean_export_artifacts(text)
    assert clean_export_artifacts(text) == "**Match**\n\nNCT00000003"
