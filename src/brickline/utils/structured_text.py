"""
brickline — tolerant structured-text parsing

File: src/brickline/utils/structured_text.py
Last updated: 2026-10-19

Purpose
- Recover JSON or YAML documents embedded in free-form model output.

What should be included in this file
- Ordered strategy tables for JSON (fenced, generic fence, balanced braces,
  balanced brackets, raw) and YAML (fenced, generic fence, raw key/value text).
- Sanitation of invisible characters and trailing commas before JSON decoding.

Functional requirements
- Never raise on malformed input; report failure through ``ParseOutcome``.

Non-functional requirements
- Pure functions; no logging, no IO.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Final, Literal

import yaml

_JSON_FENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"```json[ \t]*\n?(.*?)\n?[ \t]*```", re.I | re.S
)
_YAML_FENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"```ya?ml[ \t]*\n?(.*?)\n?[ \t]*```", re.I | re.S
)
_GENERIC_FENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"```[A-Za-z0-9_+-]*[ \t]*\n?(.*?)\n?[ \t]*```", re.S
)
_LEADING_FENCE_RE: Final[re.Pattern[str]] = re.compile(r"^\s*```[A-Za-z0-9_+-]*[ \t]*\n?")
_TRAILING_FENCE_RE: Final[re.Pattern[str]] = re.compile(r"\n?[ \t]*```\s*$")
_YAML_KEY_LINE_RE: Final[re.Pattern[str]] = re.compile(r"^[\w-]+:\s*.+$", re.M)
_TRAILING_COMMA_RE: Final[re.Pattern[str]] = re.compile(r",(\s*[}\]])")
_INVISIBLE_CHARS_RE: Final[re.Pattern[str]] = re.compile("[\ufeff\u200b\u200c\u200d\u2060]")

_JSON_ERRORS: Final = (ValueError, RecursionError)
_YAML_ERRORS: Final = (yaml.YAMLError, ValueError, TypeError, OverflowError, RecursionError)

Preference = Literal["json", "yaml"]


@dataclass(frozen=True, slots=True)
class ParseOutcome:
    """Result of a tolerant parse: the decoded value and the strategy that produced it."""

    value: object | None = None
    strategy: str | None = None

    @property
    def ok(self) -> bool:
        return self.strategy is not None

    def as_mapping(self) -> Mapping[str, object] | None:
        if self.ok and isinstance(self.value, Mapping):
            return self.value
        return None


_FAILED: Final[ParseOutcome] = ParseOutcome()


def sanitize_json_text(text: str) -> str:
    """Drop BOM/zero-width characters and trailing commas that break ``json.loads``."""

    cleaned = _INVISIBLE_CHARS_RE.sub("", text).strip()
    return _TRAILING_COMMA_RE.sub(r"\1", cleaned)


def strip_code_fence(text: str) -> str:
    """Remove one surrounding markdown code fence, if present."""

    without_lead = _LEADING_FENCE_RE.sub("", text, count=1)
    return _TRAILING_FENCE_RE.sub("", without_lead, count=1).strip()


def find_balanced(text: str, open_char: str, close_char: str) -> str | None:
    """Return the first balanced ``open_char``..``close_char`` span, ignoring quoted text.

    Unbalanced input falls back to the span ending at the last ``close_char``.
    """

    start = text.find(open_char)
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start : index + 1]

    end = text.rfind(close_char)
    if end > start:
        return text[start : end + 1]
    return None


def _fenced(pattern: re.Pattern[str]) -> Callable[[str], str | None]:
    def candidate(text: str) -> str | None:
        match = pattern.search(text)
        return match.group(1) if match is not None else None

    return candidate


def _raw(text: str) -> str | None:
    return text


_JSON_STRATEGIES: Final[tuple[tuple[str, Callable[[str], str | None]], ...]] = (
    ("json_fence", _fenced(_JSON_FENCE_RE)),
    ("generic_fence", _fenced(_GENERIC_FENCE_RE)),
    ("brace_match", lambda text: find_balanced(text, "{", "}")),
    ("bracket_match", lambda text: find_balanced(text, "[", "]")),
    ("raw", _raw),
)

_YAML_FENCED_STRATEGIES: Final[tuple[tuple[str, Callable[[str], str | None]], ...]] = (
    ("yaml_fence", _fenced(_YAML_FENCE_RE)),
    ("generic_fence", _fenced(_GENERIC_FENCE_RE)),
)


def extract_json(text: str) -> ParseOutcome:
    """Decode the first JSON document found by the ordered strategy table."""

    if not isinstance(text, str) or not text.strip():
        return _FAILED
    for name, locate in _JSON_STRATEGIES:
        candidate = locate(text)
        if candidate is None or not candidate.strip():
            continue
        try:
            return ParseOutcome(value=json.loads(sanitize_json_text(candidate)), strategy=name)
        except _JSON_ERRORS:
            continue
    return _FAILED


def extract_yaml(text: str) -> ParseOutcome:
    """Decode YAML from a fence, or from raw text that looks like ``key: value`` lines."""

    if not isinstance(text, str) or not text.strip():
        return _FAILED
    for name, locate in _YAML_FENCED_STRATEGIES:
        candidate = locate(text)
        if candidate is None or not candidate.strip():
            continue
        try:
            parsed = yaml.safe_load(candidate)
        except _YAML_ERRORS:
            continue
        if isinstance(parsed, (Mapping, list)):
            return ParseOutcome(value=parsed, strategy=name)

    if _YAML_KEY_LINE_RE.search(text) is None:
        return _FAILED
    try:
        parsed = yaml.safe_load(text)
    except _YAML_ERRORS:
        return _FAILED
    if isinstance(parsed, Mapping) and parsed:
        return ParseOutcome(value=parsed, strategy="raw")
    return _FAILED


def extract_with_preference(text: str, prefer: Preference = "yaml") -> ParseOutcome:
    """Try the preferred format first, then the other one."""

    if prefer == "json":
        outcome = extract_json(text)
        return outcome if outcome.ok else extract_yaml(text)
    outcome = extract_yaml(text)
    return outcome if outcome.ok else extract_json(text)


__all__ = [
    "ParseOutcome",
    "extract_json",
    "extract_with_preference",
    "extract_yaml",
    "find_balanced",
    "sanitize_json_text",
    "strip_code_fence",
]
