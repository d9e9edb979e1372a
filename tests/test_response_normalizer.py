"""
test_response_normalizer.py
---------------------------
Clinical Trial Screener - Tests for response_normalizer.py
----------------------------------------------------------
Covers the ordered extraction rules, the empty-output placeholders and the
never-raise guarantee.

Run:
    pytest tests/test_response_normalizer.py -v --tb=short

Project: Clinical Trial Screener
"""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from response_normalizer import (  # noqa: E402
    EMPTY_INNER_OUTPUTS_MESSAGE,
    EMPTY_OUTPUTS_MESSAGE,
    EXTRACTION_RULES,
    UNEXPECTED_STRUCTURE_PREFIX,
    extract_path,
    normalize,
)


# ── Helpers ────────────────────────────────────────────────────────────────────

def _body_for(path, value):
    """Build the smallest body where *path* resolves to *value*."""
    node = value
    for step in reversed(path):
        node = [node] if isinstance(step, int) else {step: node}
    return node


def _nested(**inner):
    return {"outputs": [{"outputs": [inner]}]}


# ── Single-rule extraction ─────────────────────────────────────────────────────

@pytest.mark.parametrize("name,path", EXTRACTION_RULES, ids=[r[0] for r in EXTRACTION_RULES])
def test_each_rule_extracts_its_path(name, path):
    """A body matching exactly one rule returns that rule's value."""
    body = _body_for(path, f"value for {name}")
    assert normalize(body) == f"value for {name}"


def test_rules_in_documented_order():
    """Nested rules come before the top-level fallbacks."""
    names = [name for name, _ in EXTRACTION_RULES]
    assert names[:7] == [
        "results.text.text",
        "results.text.data.text",
        "results.message.text",
        "results.text",
        "message.text",
        "text",
        "data.text",
    ]
    assert [path for _, path in EXTRACTION_RULES[7:]] == [
        ("result",), ("message",), ("text",), ("data", "text"),
    ]


def test_langflow_text_output_body():
    """The canonical Langflow text-output shape yields the text."""
    body = _nested(results={"text": {"text": "Eligible for NCT00000001"}})
    assert normalize(body) == "Eligible for NCT00000001"


# ── Priority ───────────────────────────────────────────────────────────────────

def test_nested_beats_top_level():
    """results.text.text wins over a top-level result."""
    body = _nested(results={"text": {"text": "nested"}})
    body["result"] = "top"
    assert normalize(body) == "nested"


def test_text_data_beats_message():
    """results.text.data.text is checked before results.message.text."""
    body = _nested(results={"text": {"data": {"text": "data"}}, "message": {"text": "msg"}})
    assert normalize(body) == "data"


def test_results_message_beats_plain_text():
    """results.message.text wins over the nested output's own text."""
    body = _nested(results={"message": {"text": "msg"}}, text="plain")
    assert normalize(body) == "msg"


def test_message_text_beats_text():
    """message.text is checked before text on the nested output."""
    body = _nested(message={"text": "M"}, text="T")
    assert normalize(body) == "M"


def test_top_level_result_beats_message():
    """Top-level result wins over top-level message and text."""
    assert normalize({"result": "R", "message": "M", "text": "T"}) == "R"


def test_results_text_object_is_not_used_as_string():
    """A dict at results.text is skipped by the string-only rule."""
    body = _nested(results={"text": {"other": 1}}, text="fallback")
    assert normalize(body) == "fallback"


def test_empty_strings_are_skipped():
    """An empty higher-priority value does not win."""
    body = _nested(results={"text": {"text": ""}, "message": {"text": "X"}})
    assert normalize(body) == "X"


def test_whitespace_only_is_skipped():
    """A whitespace-only value counts as empty."""
    assert normalize({"result": "   ", "text": "T"}) == "T"


def test_top_level_object_is_stringified():
    """A truthy non-string top-level value is returned as JSON text."""
    assert normalize({"message": {"a": 1}}) == json.dumps({"a": 1})


# ── Placeholders ───────────────────────────────────────────────────────────────

def test_empty_outputs_placeholder():
    """outputs: [] produces the empty-outputs placeholder."""
    assert normalize({"outputs": []}) == EMPTY_OUTPUTS_MESSAGE


def test_empty_inner_outputs_placeholder():
    """outputs: [{outputs: []}] produces the inner-empty placeholder."""
    assert normalize({"outputs": [{"outputs": []}]}) == EMPTY_INNER_OUTPUTS_MESSAGE


def test_placeholders_are_distinct():
    """The two empty-output conditions are distinguishable."""
    assert EMPTY_OUTPUTS_MESSAGE != EMPTY_INNER_OUTPUTS_MESSAGE


def test_unexpected_structure_echoes_body():
    """No outputs and no fallback field echoes the raw body."""
    body = {"session_id": "abc", "status": "done"}
    text = normalize(body)
    assert text.startswith(UNEXPECTED_STRUCTURE_PREFIX)
    assert json.loads(text[len(UNEXPECTED_STRUCTURE_PREFIX):]) == body


@pytest.mark.parametrize("body", [None, 42, "plain", [], [1, 2], {"outputs": "x"}, {"outputs": [None]},
                                  {"outputs": [{"outputs": [None]}]}, {"data": 5}])
def test_never_raises(body):
    """normalize returns a non-empty string for any input."""
    text = normalize(body)
    assert isinstance(text, str)
    assert text


# ── extract_path ───────────────────────────────────────────────────────────────

def test_extract_path_handles_mismatched_types():
    """Indexing a dict with an int or a list with a key yields None."""
    assert extract_path({"a": 1}, (0,)) is None
    assert extract_path([1], ("a",)) is None
    assert extract_path({"a": [{"b": "c"}]}, ("a", 0, "b")) == "c"
    assert extract_path({"a": []}, ("a", 0)) is None
