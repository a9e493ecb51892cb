"""Extract, validate, and summarize model responses.

WHY: Chat models wrap JSON in prose, markdown fences, or truncate it
mid-array. Features need a best-effort parse that either yields data or
raises a typed error the orchestrator can log as a batch issue.

HOW: extract_json() tries, in order: a direct parse, a fenced code block,
the first balanced {...} or [...] in the text, and a lenient pass that
strips trailing commas and closes dangling brackets. Validation uses
jsonschema against each feature's response schema.

RULES:
- Parse failures raise AIParseError carrying the first 100 characters
- Schema failures raise AIValidationError with one message per violation
- extract_array_items() never raises; it returns the complete leading items
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from typing import Any

import jsonschema

from transcript_editor.ai.errors import AIError, AIParseError, AIValidationError

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?([\s\S]*?)\n?```")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)(\w+)(\s*:)")

MAX_DEPTH = 10


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _find_matching_bracket(text: str, start: int, open_char: str, close_char: str) -> int:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == open_char:
            depth += 1
            if depth > MAX_DEPTH:
                return -1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return i
    return -1


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _from_fence(text: str) -> Any:
    match = _FENCE_RE.search(text)
    if match is None:
        return None
    return _loads(match.group(1).strip())


def _from_brackets(text: str) -> Any:
    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        return None
    start = min(starts)
    open_char = text[start]
    close_char = "}" if open_char == "{" else "]"
    end = _find_matching_bracket(text, start, open_char, close_char)
    if end < 0:
        return None
    return _loads(text[start: end + 1])


def _lenient(text: str) -> Any:
    fixed = _TRAILING_COMMA_RE.sub(r"\1", text)
    if fixed.count("{") > fixed.count("}"):
        fixed += "}" * (fixed.count("{") - fixed.count("}"))
    if fixed.count("[") > fixed.count("]"):
        fixed += "]" * (fixed.count("[") - fixed.count("]"))
    if '"' not in fixed and "'" in fixed:
        fixed = fixed.replace("'", '"')
    fixed = _UNQUOTED_KEY_RE.sub(r'\1"\2"\3', fixed)
    return _loads(fixed)


def extract_json(response: str) -> Any:
    """Pull the first JSON document out of a model response.

    Raises:
        AIParseError: If the response is empty or contains no usable JSON.
    """
    if not response or not response.strip():
        raise AIParseError("Empty response", raw_response=response)
    text = response.strip()
    for strategy in (_loads, _from_fence, _from_brackets, _lenient):
        result = strategy(text)
        if result is not None:
            return result
    raise AIParseError("No valid JSON found in response", raw_response=text[:100])


def extract_array_items(response: str) -> list[Any]:
    """Recover the complete leading items of a possibly truncated JSON array."""
    start = response.find("[")
    if start < 0:
        return []
    items: list[Any] = []
    decoder = json.JSONDecoder()
    i = start + 1
    while i < len(response):
        while i < len(response) and response[i] in " \t\r\n,":
            i += 1
        if i >= len(response) or response[i] == "]":
            break
        try:
            item, i = decoder.raw_decode(response, i)
        except ValueError:
            break
        items.append(item)
    return items


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_response(data: Any, schema: dict[str, Any]) -> Any:
    """Validate parsed data against a JSON schema and return it unchanged.

    Raises:
        AIValidationError: With every violation found, not just the first.
    """
    validator = jsonschema.Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        messages = [_format_error(e) for e in errors]
        raise AIValidationError(f"Validation failed: {', '.join(messages)}", messages)
    return data


def validate_item(item: Any, schema: dict[str, Any]) -> tuple[bool, list[str]]:
    """Check one array item; returns (valid, messages) instead of raising."""
    validator = jsonschema.Draft7Validator(schema)
    messages = [_format_error(e) for e in validator.iter_errors(item)]
    return not messages, messages


def _format_error(error: jsonschema.ValidationError) -> str:
    path = ".".join(str(p) for p in error.absolute_path)
    return f"{path}: {error.message}" if path else error.message


def parse_response(response: str, schema: dict[str, Any] | None = None) -> Any:
    data = extract_json(response)
    if schema is not None:
        validate_response(data, schema)
    return data


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def truncate_text(text: str | None, max_length: int = 600, ellipsis: str = "…") -> str:
    if not text:
        return "<empty>"
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ellipsis)] + ellipsis


def _message_of(issue: Any) -> str:
    if isinstance(issue, str):
        return issue
    message = getattr(issue, "message", None)
    if isinstance(message, str):
        return message
    if isinstance(issue, dict):
        for key in ("message", "msg", "error"):
            if isinstance(issue.get(key), str):
                return issue[key]
        return json.dumps(issue)
    return str(issue)


def summarize_messages(issues: Iterable[Any] | None, max_messages: int = 3) -> str:
    """Collapse repeated issue messages into "2x msg; other (+N more)"."""
    messages = [m.strip() for m in map(_message_of, issues or ()) if m.strip()]
    if not messages:
        return ""
    counts: dict[str, int] = {}
    for message in messages:
        counts[message] = counts.get(message, 0) + 1
    formatted = [f"{n}x {m}" if n > 1 else m for m, n in counts.items()]
    if len(formatted) <= max_messages:
        return "; ".join(formatted)
    shown = "; ".join(formatted[:max_messages])
    return f"{shown} (+{len(formatted) - max_messages} more)"


def summarize_error(error: BaseException) -> str:
    message = error.message if isinstance(error, AIError) else (str(error) or type(error).__name__)
    if isinstance(error, AIError):
        summary = summarize_messages(error.details.get("issues"))
        if summary:
            return f"{message}: {summary}"
    return message
