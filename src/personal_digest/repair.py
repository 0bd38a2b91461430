"""Tolerant reading of JSON objects embedded in model output.

``parse_json_object`` first tries the raw text (``strict``), then re-tries
after the textual repairs in ``REPAIRS`` (``sanitized``). Each repair is a
pure, idempotent ``str -> str`` function and they always run in the order
listed. Nothing here guesses at field meaning; callers validate the shape.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import ParseError

Repair = Callable[[str], str]

_SMART_DOUBLE = re.compile("[“”„‟″]")
_SMART_SINGLE = re.compile("[‘’‚‛′]")
_TRAILING_COMMA = re.compile(r",\s*([\]}])")
_WHITESPACE_CONTROL = re.compile(r"[\t\n\r]")
_OTHER_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)\s*:")
_SINGLE_QUOTED_KEY = re.compile(r"([{,]\s*)'([^'\"]*)'\s*:")
_SINGLE_QUOTED_VALUE = re.compile(r"(:\s*)'([^']*)'")
_SINGLE_QUOTED_ITEM = re.compile(r"([\[,]\s*)'([^']*)'(?=\s*[,\]])")


def strip_backticks(text: str) -> str:
    return text.replace("`", "")


def normalize_smart_quotes(text: str) -> str:
    return _SMART_SINGLE.sub("'", _SMART_DOUBLE.sub('"', text))


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def strip_control_chars(text: str) -> str:
    # Tabs and newlines become spaces so adjacent words stay apart
    return _OTHER_CONTROL.sub("", _WHITESPACE_CONTROL.sub(" ", text))


def quote_bare_keys(text: str) -> str:
    text = _SINGLE_QUOTED_KEY.sub(r'\1"\2":', text)
    return _BARE_KEY.sub(r'\1"\2":', text)


def _double_quoted(match: "re.Match[str]") -> str:
    inner = match.group(2).replace('"', '\\"')
    return f'{match.group(1)}"{inner}"'


def single_to_double_quoted_values(text: str) -> str:
    text = _SINGLE_QUOTED_VALUE.sub(_double_quoted, text)
    return _SINGLE_QUOTED_ITEM.sub(_double_quoted, text)


REPAIRS: Tuple[Tuple[str, Repair], ...] = (
    ("strip_backticks", strip_backticks),
    ("normalize_smart_quotes", normalize_smart_quotes),
    ("remove_trailing_commas", remove_trailing_commas),
    ("strip_control_chars", strip_control_chars),
    ("quote_bare_keys", quote_bare_keys),
    ("single_to_double_quoted_values", single_to_double_quoted_values),
)


def sanitize(text: str) -> str:
    for _name, repair in REPAIRS:
        text = repair(text)
    return text


def find_json_block(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` block.

    Braces inside double-quoted strings are ignored. When no block closes,
    falls back to everything from the first ``{`` to the last ``}``.
    """
    if not text:
        return None
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
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
                return text[start:pos + 1]

    end = text.rfind("}")
    return text[start:end + 1] if end > start else None


def _loads_object(block: str) -> Dict[str, Any]:
    obj = json.loads(block)
    if not isinstance(obj, dict):
        raise ParseError(f"Expected a JSON object, got {type(obj).__name__}", raw_text=block)
    return obj


def parse_strict(text: str) -> Dict[str, Any]:
    block = find_json_block(text)
    if block is None:
        raise ParseError("No JSON object found in model output", raw_text=text or "")
    try:
        return _loads_object(block)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON: {exc}", raw_text=text) from exc


def parse_sanitized(text: str) -> Dict[str, Any]:
    cleaned = sanitize(text or "")
    block = find_json_block(cleaned)
    if block is None:
        raise ParseError("No JSON object found in model output", raw_text=text or "")
    try:
        return _loads_object(block)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON after repair: {exc}", raw_text=text) from exc


def parse_json_object(text: str) -> Tuple[Dict[str, Any], str]:
    """Parse the first JSON object in ``text``.

    Returns ``(obj, stage)`` where stage is ``"strict"`` or ``"sanitized"``;
    raises ``ParseError`` carrying the sanitized attempt's message.
    """
    try:
        return parse_strict(text), "strict"
    except ParseError:
        pass
    return parse_sanitized(text), "sanitized"
