"""Recover a JSON object from free-form language-model output.

Models wrap JSON in prose, Markdown fences, or typographic quotes.
:func:`recover_json` undoes those habits and never raises.
"""

from __future__ import annotations

import json
import re
from typing import Any

_DOUBLE_QUOTES = re.compile("[\u201c\u201d\u201e\u201f\u2033]")
_SINGLE_QUOTES = re.compile("[\u2018\u2019\u201a\u201b\u2032]")
_OPENING_FENCE = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\n?[ \t]*```$")


def normalize_json_like_text(text: str) -> str:
    """Replace smart quotes and non-breaking spaces with ASCII equivalents."""
    text = text.replace("\u00a0", " ")
    text = _DOUBLE_QUOTES.sub('"', text)
    return _SINGLE_QUOTES.sub("'", text)


def strip_code_fences(text: str) -> str:
    """Remove one leading and one trailing Markdown fence, if present."""
    stripped = text.strip()
    stripped = _OPENING_FENCE.sub("", stripped, count=1)
    stripped = _CLOSING_FENCE.sub("", stripped, count=1)
    return stripped.strip()


def extract_first_json_object(text: str) -> str | None:
    """Return the first balanced top-level ``{...}`` span, or None.

    Braces inside string literals are ignored; backslash escapes inside a
    string are honoured so an escaped quote does not end it.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escape = False
    for index in range(start, len(text)):
        ch = text[index]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def recover_json(raw: str | None) -> Any | None:
    """Parse *raw* as JSON, falling back to the first embedded object.

    Returns None when nothing parseable is found.
    """
    if not raw or not isinstance(raw, str) or not raw.strip():
        return None

    text = strip_code_fences(normalize_json_like_text(raw))

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    candidate = extract_first_json_object(text)
    if candidate is None:
        return None
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return None
