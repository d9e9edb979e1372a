"""
response_normalizer.py
----------------------
Clinical Trial Screener - Workflow Response Normalizer
------------------------------------------------------
Reduces the loosely-structured JSON returned by the Langflow run API to a
single display string.

Langflow nests the generated text at different depths depending on the
component that terminates the flow (Text Output, Chat Output, custom
components) and on the Langflow version. Rather than branching on every
shape, the lookups are one ordered table, EXTRACTION_RULES; the first rule
whose path resolves to a non-empty value wins.

normalize() never raises. When no rule matches it returns a diagnostic
placeholder, because the exporters downstream assume a non-empty result text.

Public API:
    EXTRACTION_RULES              Ordered (name, path) rules.
    EMPTY_OUTPUTS_MESSAGE         Placeholder for ``outputs: []``.
    EMPTY_INNER_OUTPUTS_MESSAGE   Placeholder for ``outputs: [{outputs: []}]``.
    extract_path()                Resolve a path against a parsed body.
    normalize()                   Parsed body -> result text.

Project: Clinical Trial Screener
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Tuple, Union

logger = logging.getLogger(__name__)

PathStep = Union[str, int]
Path = Tuple[PathStep, ...]

_NESTED: Path = ("outputs", 0, "outputs", 0)

# Highest priority first. Nested rules only accept strings; the top-level
# fallbacks accept any truthy value and stringify it.
EXTRACTION_RULES: Tuple[Tuple[str, Path], ...] = (
    ("results.text.text",       _NESTED + ("results", "text", "text")),
    ("results.text.data.text",  _NESTED + ("results", "text", "data", "text")),
    ("results.message.text",    _NESTED + ("results", "message", "text")),
    ("results.text",            _NESTED + ("results", "text")),
    ("message.text",            _NESTED + ("message", "text")),
    ("text",                    _NESTED + ("text",)),
    ("data.text",               _NESTED + ("data", "text")),
    ("result",                  ("result",)),
    ("message",                 ("message",)),
    ("text (top level)",        ("text",)),
    ("data.text (top level)",   ("data", "text")),
)

EMPTY_OUTPUTS_MESSAGE = (
    "The Langflow returned an empty response. This might indicate an issue "
    "with the flow configuration or the input data format."
)
EMPTY_INNER_OUTPUTS_MESSAGE = (
    "The Langflow flow completed but produced no output. Please check your "
    "flow configuration."
)
UNEXPECTED_STRUCTURE_PREFIX = "Unexpected response structure: "


def extract_path(body: Any, path: Path) -> Any:
    """
    Walk *path* through nested dicts and lists.

    String steps index dicts, integer steps index lists. Any step that does
    not apply to the current node yields ``None`` instead of raising.
    """
    node = body
    for step in path:
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                return None
            node = node[step]
        else:
            if not isinstance(node, dict):
                return None
            node = node.get(step)
        if node is None:
            return None
    return node


def _as_text(value: Any, *, nested: bool) -> Optional[str]:
    if isinstance(value, str):
        return value if value.strip() else None
    if nested or not value or isinstance(value, bool):
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _dump(body: Any) -> str:
    try:
        return json.dumps(body, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(body)


def normalize(body: Any) -> str:
    """
    Return the result text carried by a parsed Langflow response.

    Args:
        body: Parsed JSON body of any shape.

    Returns:
        str: The first non-empty match from EXTRACTION_RULES, or a
             diagnostic placeholder describing why nothing matched.

    Raises:
        Never.
    """
    for name, path in EXTRACTION_RULES:
        text = _as_text(extract_path(body, path), nested=path[:1] == ("outputs",))
        if text is not None:
            logger.debug("normalize: matched rule '%s' (%d chars).", name, len(text))
            return text

    outputs = body.get("outputs") if isinstance(body, dict) else None
    if isinstance(outputs, list) and not outputs:
        logger.warning("normalize: upstream returned an empty outputs list.")
        return EMPTY_OUTPUTS_MESSAGE

    inner = extract_path(body, ("outputs", 0, "outputs"))
    if isinstance(inner, list) and not inner:
        logger.warning("normalize: upstream flow produced no inner outputs.")
        return EMPTY_INNER_OUTPUTS_MESSAGE

    logger.warning("normalize: no extraction rule matched the upstream body.")
    return UNEXPECTED_STRUCTURE_PREFIX + _dump(body)
