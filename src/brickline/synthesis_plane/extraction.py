"""
brickline — generation output extractor

File: src/brickline/synthesis_plane/extraction.py
Last updated: 2026-10-19

Purpose
- Turn raw generated text into a ``GenerationRecord`` with trace, delta, and
  deliverable channels, without ever failing.

What should be included in this file
- Section segmentation by ``###`` header tokens, anchored on the deliverable header.
- Delta recognition through an ordered table of serialization tiers
  (YAML, then JSON), followed by heuristic line classification.
- Whole-object mode for generators asked to emit a single JSON/YAML object.
- Sentinel detection for unresolved (UNKNOWN) and contradictory (CONFLICT) input.

Functional requirements
- Total over all inputs: empty strings, non-text values, and header-less text
  all yield a well-formed record with every delta sequence present.
- Extraction mode is an explicit caller flag.

Non-functional requirements
- Pure functions; each tier is independently testable.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Final

from brickline.domain.models import Delta, DeltaFormat, ExtractionMode, GenerationRecord
from brickline.utils.structured_text import (
    extract_json,
    extract_with_preference,
    extract_yaml,
    strip_code_fence,
)

HEURISTIC_EXCERPT_CHARS: Final[int] = 100

_SECTION_LABELS: Final[tuple[tuple[str, str], ...]] = (
    ("trace", r"TRACE|REASONING"),
    ("delta", r"BLACKBOARD[ \t]+DELTA|DELTA"),
    ("deliverable", r"ARTIFACT|DELIVERABLE"),
)
_SECTION_HEADER_RES: Final[dict[str, re.Pattern[str]]] = {
    name: re.compile(rf"^[ \t]*###[ \t]*(?:{labels})[ \t]*:?[ \t]*(?:\n|$)", re.I | re.M)
    for name, labels in _SECTION_LABELS
}
_BULLET_RE: Final[re.Pattern[str]] = re.compile(r"^\s*[-*]\s+(.+?)\s*$")
_UNKNOWN_RE: Final[re.Pattern[str]] = re.compile(r"\[UNKNOWN:", re.I)
_CONFLICT_RE: Final[re.Pattern[str]] = re.compile(r"\[CONFLICT:", re.I)

_ENVELOPE_KEYS: Final[tuple[str, ...]] = ("data", "payload", "response", "result", "output")
_DELIVERABLE_KEYS: Final[tuple[str, ...]] = ("deliverable", "artifact")
_DELTA_KEYS: Final[tuple[str, ...]] = ("delta", "blackboardDelta", "blackboard_delta")
_TRACE_KEYS: Final[tuple[str, ...]] = ("trace", "reasoning")


@dataclass(frozen=True, slots=True)
class Sections:
    """Raw section bodies located in a labeled-section response."""

    trace: str
    delta: str
    deliverable: str
    has_deliverable_header: bool


@dataclass(frozen=True, slots=True)
class DeltaTier:
    name: DeltaFormat
    parse: Callable[[str], Delta | None]


def parse_delta_yaml(text: str) -> Delta | None:
    """Tier A: a mapping-of-sequences document with known delta keys."""

    mapping = extract_yaml(text).as_mapping()
    if mapping is None or not Delta.recognizes(mapping):
        return None
    return Delta.from_mapping(mapping)


def parse_delta_json(text: str) -> Delta | None:
    """Tier B: an embedded (optionally fenced) object literal with known delta keys."""

    mapping = extract_json(text).as_mapping()
    if mapping is None or not Delta.recognizes(mapping):
        return None
    return Delta.from_mapping(mapping)


def parse_delta_heuristic(text: str) -> Delta:
    """Tier C: every bulleted line becomes a warning, after one synthetic parse warning."""

    stripped = text.strip()
    if not stripped:
        return Delta()
    warnings = [
        "Delta format issue (could not parse YAML/JSON): "
        f"{stripped[:HEURISTIC_EXCERPT_CHARS]}..."
    ]
    for line in stripped.splitlines():
        match = _BULLET_RE.match(line)
        if match is not None:
            warnings.append(match.group(1))
    return Delta(warnings=tuple(warnings))


DELTA_TIERS: Final[tuple[DeltaTier, ...]] = (
    DeltaTier(DeltaFormat.YAML, parse_delta_yaml),
    DeltaTier(DeltaFormat.JSON, parse_delta_json),
)


def parse_delta(text: str, tiers: tuple[DeltaTier, ...] = DELTA_TIERS) -> tuple[Delta, DeltaFormat]:
    """Run the tier cascade; the heuristic tier terminates it."""

    body = strip_code_fence(text) if text.strip() else ""
    if not body:
        return Delta(), DeltaFormat.EMPTY
    for tier in tiers:
        parsed = tier.parse(body)
        if parsed is not None:
            return parsed, tier.name
    return parse_delta_heuristic(body), DeltaFormat.HEURISTIC


def segment_sections(text: str) -> Sections:
    """Locate the deliverable header, then trace and delta headers ahead of it.

    Subheadings inside the deliverable body never open another section.
    """

    spans: dict[str, tuple[int, int]] = {}
    deliverable = _SECTION_HEADER_RES["deliverable"].search(text)
    limit = len(text)
    if deliverable is not None:
        spans["deliverable"] = (deliverable.start(), deliverable.end())
        limit = deliverable.start()

    cursor = 0
    for name in ("trace", "delta"):
        match = _SECTION_HEADER_RES[name].search(text, cursor, limit)
        if match is None:
            continue
        spans[name] = (match.start(), match.end())
        cursor = match.end()

    starts = sorted(start for start, _ in spans.values())

    def body(name: str) -> str:
        span = spans.get(name)
        if span is None:
            return ""
        _, content_start = span
        following = [start for start in starts if start >= content_start]
        content_end = following[0] if following else len(text)
        return text[content_start:content_end].strip()

    return Sections(
        trace=body("trace"),
        delta=body("delta"),
        deliverable=body("deliverable"),
        has_deliverable_header="deliverable" in spans,
    )


def detect_markers(deliverable: str, raw: str) -> tuple[bool, bool]:
    """Return ``(has_unknown, has_conflict)`` for the deliverable or full raw text."""

    has_unknown = bool(_UNKNOWN_RE.search(deliverable) or _UNKNOWN_RE.search(raw))
    has_conflict = bool(_CONFLICT_RE.search(deliverable) or _CONFLICT_RE.search(raw))
    return has_unknown, has_conflict


def extract_sections(raw: str, *, model_used: str = "") -> GenerationRecord:
    sections = segment_sections(raw)
    deliverable = sections.deliverable if sections.has_deliverable_header else raw.strip()
    delta, delta_format = parse_delta(sections.delta)
    has_unknown, has_conflict = detect_markers(deliverable, raw)
    return GenerationRecord(
        trace=sections.trace,
        delta=delta,
        deliverable=deliverable,
        raw_response=raw,
        has_unknown=has_unknown,
        has_conflict=has_conflict,
        model_used=model_used,
        delta_format=delta_format,
    )


def extract_whole_object(raw: str, *, model_used: str = "") -> GenerationRecord | None:
    """Parse the whole response as one object; ``None`` when it lacks delta or deliverable."""

    mapping = _unwrap_envelope(extract_with_preference(raw, "json").as_mapping())
    if mapping is None:
        return None
    deliverable_value = _first_present(mapping, _DELIVERABLE_KEYS)
    delta_value = _first_present(mapping, _DELTA_KEYS)
    if deliverable_value is None or delta_value is None:
        return None

    deliverable = force_text(deliverable_value)
    delta = Delta.from_mapping(delta_value) if isinstance(delta_value, Mapping) else Delta()
    has_unknown, has_conflict = detect_markers(deliverable, raw)
    return GenerationRecord(
        trace=force_text(_first_present(mapping, _TRACE_KEYS)),
        delta=delta,
        deliverable=deliverable,
        raw_response=raw,
        has_unknown=has_unknown,
        has_conflict=has_conflict,
        model_used=model_used,
        delta_format=DeltaFormat.WHOLE_OBJECT,
    )


def extract_generation(
    raw: object,
    *,
    mode: ExtractionMode | str = ExtractionMode.SECTIONS,
    model_used: str = "",
) -> GenerationRecord:
    """Extract a ``GenerationRecord`` from arbitrary generator output. Never raises."""

    text = coerce_raw_text(raw)
    model = model_used if isinstance(model_used, str) else str(model_used)
    if _resolve_mode(mode) is ExtractionMode.WHOLE_OBJECT:
        record = extract_whole_object(text, model_used=model)
        if record is not None:
            return record
    return extract_sections(text, model_used=model)


def coerce_raw_text(raw: object) -> str:
    if isinstance(raw, str):
        return raw
    if raw is None:
        return ""
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    return force_text(raw)


def force_text(value: object) -> str:
    """Serialize non-text payloads instead of dropping them."""

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, indent=2, default=str)
    except (TypeError, ValueError, RecursionError):
        return str(value)


def _resolve_mode(mode: ExtractionMode | str) -> ExtractionMode:
    if isinstance(mode, ExtractionMode):
        return mode
    try:
        return ExtractionMode(str(mode).strip().lower())
    except ValueError:
        return ExtractionMode.SECTIONS


def _first_present(mapping: Mapping[str, object], keys: tuple[str, ...]) -> object | None:
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def _unwrap_envelope(mapping: Mapping[str, object] | None) -> Mapping[str, object] | None:
    current = mapping
    for _ in range(len(_ENVELOPE_KEYS)):
        if current is None or _first_present(current, _DELIVERABLE_KEYS) is not None:
            return current
        nested = next(
            (current[key] for key in _ENVELOPE_KEYS if isinstance(current.get(key), Mapping)),
            None,
        )
        if nested is None:
            return current
        current = nested
    return current


__all__ = [
    "DELTA_TIERS",
    "DeltaTier",
    "Sections",
    "coerce_raw_text",
    "detect_markers",
    "extract_generation",
    "extract_sections",
    "extract_whole_object",
    "force_text",
    "parse_delta",
    "parse_delta_heuristic",
    "parse_delta_json",
    "parse_delta_yaml",
    "segment_sections",
]
