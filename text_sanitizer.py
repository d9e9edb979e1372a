"""
text_sanitizer.py
-----------------
Clinical Trial Screener - Result Text Sanitizers
------------------------------------------------
Two independent cleanup pipelines for the eligibility result text. They have
different consumers and are intentionally not merged:

    strip_display_markup()    Plain-text rendering of the LLM's Markdown for
                              on-screen display. Aggressive: removes code,
                              images, emphasis, headings, quotes and dashes.
    clean_export_artifacts()  Narrow repair applied before the text is
                              embedded in the printable report. Only fixes
                              stray ")" lines and ")NCT" token breaks the flow
                              emits around trial identifiers.

Project: Clinical Trial Screener
"""

import re

# ── Display markup ────────────────────────────────────────────────────────────

_CODE_RE       = re.compile(r"`{1,3}[\s\S]*?`{1,3}")
_IMAGE_RE      = re.compile(r"!\[.*?\]\(.*?\)")
_LINK_RE       = re.compile(r"\[([^\]]+)\]\(.*?\)")
_MARKUP_RE     = re.compile(r"[*_~#>`-]+")
_BLANK_RUNS_RE = re.compile(r"\n{2,}")


def strip_display_markup(markdown: str) -> str:
    """
    Reduce Markdown to plain display text.

    Example::

        strip_display_markup("**bold** and `code` and [text](url)")
        # -> "bold and  and text"
    """
    text = _CODE_RE.sub("", markdown)
    text = _IMAGE_RE.sub("", text)
    text = _LINK_RE.sub(r"\1", text)
    text = _MARKUP_RE.sub("", text)
    text = _BLANK_RUNS_RE.sub("\n", text)
    return text.strip()


# ── Export artifacts ──────────────────────────────────────────────────────────

_STRAY_PAREN_LINE_RE = re.compile(r"^\s*\)\s*$", re.MULTILINE)
_LEADING_PAREN_NCT_RE = re.compile(r"^\s*\)\s*NCT", re.MULTILINE)
_INLINE_PAREN_NCT_RE = re.compile(r"\)\s*NCT")


def clean_export_artifacts(text: str) -> str:
    """
    Repair trial-identifier artifacts before embedding text in a report.

    Removes lines holding only ")", turns a line starting with ")NCT" into
    "NCT", and turns an inline ")NCT" break into " NCT".
    """
    text = _STRAY_PAREN_LINE_RE.sub("", text)
    text = _LEADING_PAREN_NCT_RE.sub("NCT", text)
    text = _INLINE_PAREN_NCT_RE.sub(" NCT", text)
    return text.strip()
