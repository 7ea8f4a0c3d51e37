"""Locate the JSON payload inside free-form model output.

Judge replies may wrap JSON in markdown fences, surround it with prose, or
return a bare top-level array. ``extract_json`` finds the payload by position:
a fenced block wins over bare JSON. Within the chosen text the first
outermost ``{...}`` span that parses is returned, then the first ``[...]``
span that parses. Brackets inside quoted strings are skipped by tracking
string and escape state.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any

MAX_NESTING_DEPTH = 256

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_CLOSERS = {"{": "}", "[": "]"}


class JsonExtractionError(ValueError):
    """Raised when no JSON payload can be located in a reply."""


class _ScanState(Enum):
    STRUCTURE = "structure"
    STRING = "string"
    ESCAPE = "escape"


def _match_span(text: str, begin: int) -> int | None:
    """Return the index closing the bracket opened at ``begin``, or None."""
    expected: list[str] = []
    state = _ScanState.STRUCTURE

    for index in range(begin, len(text)):
        char = text[index]

        if state is _ScanState.ESCAPE:
            state = _ScanState.STRING
            continue

        if state is _ScanState.STRING:
            if char == "\\":
                state = _ScanState.ESCAPE
            elif char == '"':
                state = _ScanState.STRUCTURE
            continue

        if char == '"':
            state = _ScanState.STRING
        elif char in _CLOSERS:
            if len(expected) >= MAX_NESTING_DEPTH:
                return None
            expected.append(_CLOSERS[char])
        elif char in "}]":
            if not expected or expected.pop() != char:
                return None
            if not expected:
                return index

    return None


def _balanced_spans(text: str):
    """Yield every outermost balanced span, left to right."""
    index = 0
    while index < len(text):
        if text[index] not in _CLOSERS:
            index += 1
            continue
        end = _match_span(text, index)
        if end is None:
            index += 1
            continue
        yield text[index : end + 1]
        index = end + 1


def _is_valid_json(candidate: str) -> bool:
    try:
        json.loads(candidate)
    except ValueError:
        return False
    return True


def _pick_span(text: str) -> str | None:
    # A parseable object wins over a parseable array, so a bracketed range or
    # citation in the prose does not shadow the reply. With neither, the first
    # balanced span is handed back for the caller to reject.
    first: str | None = None
    first_array: str | None = None
    for span in _balanced_spans(text):
        if first is None:
            first = span
        if not _is_valid_json(span):
            continue
        if span.startswith("{"):
            return span
        if first_array is None:
            first_array = span
    return first_array if first_array is not None else first


def extract_json(text: str | None) -> str | None:
    """Return the JSON substring embedded in ``text``, or None if there is none.

    Never raises.
    """
    if text is None or not text.strip():
        return None

    fenced = _FENCE_RE.search(text)
    if fenced:
        span = _pick_span(fenced.group(1))
        if span is not None:
            return span

    return _pick_span(text)


def parse_json_payload(text: str | None) -> Any:
    """Extract and decode the JSON payload of a reply.

    Raises:
        JsonExtractionError: no JSON span was found.
        json.JSONDecodeError: a span was found but is not valid JSON.
    """
    payload = extract_json(text)
    if payload is None:
        raise JsonExtractionError("No JSON found in response")
    return json.loads(payload)
