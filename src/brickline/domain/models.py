"""Immutable pipeline records with strict validation and wire-shape serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import Final, NoReturn, TypeVar

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TEnum = TypeVar("TEnum", bound=Enum)

_DELTA_KEY_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "new_constraints": ("newConstraints", "new_constraints", "constraints"),
    "decisions": ("decisions",),
    "warnings": ("warnings",),
}


class ExtractionMode(StrEnum):
    SECTIONS = "sections"
    WHOLE_OBJECT = "whole_object"


class DeltaFormat(StrEnum):
    """Which extraction tier produced a record's delta."""

    YAML = "yaml"
    JSON = "json"
    HEURISTIC = "heuristic"
    EMPTY = "empty"
    WHOLE_OBJECT = "whole_object"


class FlawSeverity(StrEnum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class ReflexionState(StrEnum):
    REPAIRED = "repaired"
    SKIPPED = "skipped"


class SecuritySeverity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class SecurityCategory(StrEnum):
    INPUT_VALIDATION = "input_validation"
    UNSAFE_OPERATION = "unsafe_operation"
    ARCHITECTURAL = "architectural"
    DROPPED_WARNING = "dropped_warning"
    CODE_GENERATION = "code_generation"
    OTHER = "other"


class GateRecommendation(StrEnum):
    PROCEED = "proceed"
    ADD_ADDENDUM = "add_addendum"
    REJECT = "reject"


class OutputMode(StrEnum):
    FLAT = "flat"
    RAW = "raw"
    CATEGORIZED = "categorized"


_OUTPUT_MODE_ALIASES: Final[dict[str, OutputMode]] = {
    "markdown": OutputMode.FLAT,
    "json": OutputMode.RAW,
    "structured": OutputMode.CATEGORIZED,
}


def coerce_output_mode(value: OutputMode | str) -> OutputMode:
    """Accept enum members, canonical names, and the legacy markdown/json/structured names."""

    if isinstance(value, OutputMode):
        return value
    if not isinstance(value, str):
        raise TypeError(f"output mode must be a string, got {type(value).__name__}")
    normalized = value.strip().lower()
    if normalized in _OUTPUT_MODE_ALIASES:
        return _OUTPUT_MODE_ALIASES[normalized]
    return _as_enum(OutputMode, normalized, "output_mode")


def format_timestamp(value: datetime) -> str:
    """Render an aware datetime as millisecond ISO-8601 with a ``Z`` suffix."""

    normalized = _as_datetime(value, "timestamp")
    return normalized.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def coerce_text_items(value: object) -> tuple[str, ...]:
    """Normalize a loosely-typed list value into a tuple of non-empty strings."""

    if value is None:
        return ()
    if isinstance(value, str):
        stripped = value.strip()
        return (stripped,) if stripped else ()
    if isinstance(value, Mapping) or not isinstance(value, Sequence):
        rendered = _render_item(value)
        return (rendered,) if rendered else ()
    items: list[str] = []
    for item in value:
        rendered = _render_item(item)
        if rendered:
            items.append(rendered)
    return tuple(items)


@dataclass(frozen=True, slots=True)
class Delta:
    """Proposed additions to shared project context emitted alongside a deliverable."""

    new_constraints: tuple[str, ...] = ()
    decisions: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "new_constraints", _as_str_tuple(self.new_constraints, "Delta.new_constraints")
        )
        object.__setattr__(self, "decisions", _as_str_tuple(self.decisions, "Delta.decisions"))
        object.__setattr__(self, "warnings", _as_str_tuple(self.warnings, "Delta.warnings"))

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> Delta:
        """Build a delta from a parsed document, accepting camelCase and legacy key names."""

        values: dict[str, tuple[str, ...]] = {}
        for attr, aliases in _DELTA_KEY_ALIASES.items():
            for alias in aliases:
                if alias in data:
                    values[attr] = coerce_text_items(data[alias])
                    break
        return cls(**values)

    @staticmethod
    def recognizes(data: Mapping[str, object]) -> bool:
        """Return True when ``data`` carries at least one known delta key."""

        return any(alias in data for aliases in _DELTA_KEY_ALIASES.values() for alias in aliases)

    @property
    def is_empty(self) -> bool:
        return not (self.new_constraints or self.decisions or self.warnings)

    def combine(self, other: Delta) -> Delta:
        """Concatenate ``other`` after this delta; neither input is modified."""

        return Delta(
            new_constraints=self.new_constraints + other.new_constraints,
            decisions=self.decisions + other.decisions,
            warnings=self.warnings + other.warnings,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "newConstraints": list(self.new_constraints),
            "decisions": list(self.decisions),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True, slots=True)
class GenerationRecord:
    trace: str
    delta: Delta
    deliverable: str
    raw_response: str
    has_unknown: bool = False
    has_conflict: bool = False
    model_used: str = ""
    delta_format: DeltaFormat = DeltaFormat.EMPTY

    def __post_init__(self) -> None:
        _as_text(self.trace, "GenerationRecord.trace")
        _as_text(self.deliverable, "GenerationRecord.deliverable")
        _as_text(self.raw_response, "GenerationRecord.raw_response")
        _as_text(self.model_used, "GenerationRecord.model_used")
        if not isinstance(self.delta, Delta):
            _fail("GenerationRecord.delta", f"expected Delta, got {type(self.delta).__name__}")
        object.__setattr__(
            self,
            "delta_format",
            _as_enum(DeltaFormat, self.delta_format, "GenerationRecord.delta_format"),
        )

    def with_repair(self, deliverable: str, note: str) -> GenerationRecord:
        """Return a copy carrying a repaired deliverable and a provenance note in the trace."""

        trace = f"{self.trace}\n\n{note}" if self.trace else note
        return replace(self, deliverable=deliverable, trace=trace)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "trace": self.trace,
            "delta": self.delta.to_dict(),
            "deliverable": self.deliverable,
            "rawResponse": self.raw_response,
            "hasUnknown": self.has_unknown,
            "hasConflict": self.has_conflict,
            "modelUsed": self.model_used,
            "deltaFormat": self.delta_format.value,
        }


@dataclass(frozen=True, slots=True)
class Flaw:
    description: str
    severity: FlawSeverity
    suggested_fix: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "severity", _as_enum(FlawSeverity, self.severity, "Flaw.severity"))
        _as_text(self.description, "Flaw.description")
        _as_text(self.suggested_fix, "Flaw.suggested_fix")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "description": self.description,
            "severity": self.severity.value,
            "suggestedFix": self.suggested_fix,
        }


@dataclass(frozen=True, slots=True)
class CritiqueResult:
    flaws: tuple[Flaw, ...]
    needs_repair: bool
    quality_score: int
    raw_critique: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "flaws", tuple(self.flaws))
        for index, flaw in enumerate(self.flaws):
            if not isinstance(flaw, Flaw):
                _fail(f"CritiqueResult.flaws[{index}]", "expected Flaw")
        _as_int(self.quality_score, "CritiqueResult.quality_score", minimum=1, maximum=10)

    @classmethod
    def neutral(cls, raw_critique: str = "") -> CritiqueResult:
        """Default used whenever a critique cannot be obtained or parsed."""

        return cls(flaws=(), needs_repair=False, quality_score=5, raw_critique=raw_critique)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "flaws": [flaw.to_dict() for flaw in self.flaws],
            "needsRepair": self.needs_repair,
            "qualityScore": self.quality_score,
            "rawCritique": self.raw_critique,
        }


@dataclass(frozen=True, slots=True)
class RepairResult:
    repaired_deliverable: str
    changes_made: tuple[str, ...]
    success: bool
    raw_response: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "changes_made", _as_str_tuple(self.changes_made, "RepairResult.changes_made")
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "repairedDeliverable": self.repaired_deliverable,
            "changesMade": list(self.changes_made),
            "success": self.success,
            "rawResponse": self.raw_response,
        }


@dataclass(frozen=True, slots=True)
class ReflexionResult:
    original_output: GenerationRecord
    critique: CritiqueResult
    repair: RepairResult | None
    final_output: GenerationRecord
    was_repaired: bool
    critique_model: str
    state: ReflexionState
    error: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "originalOutput": self.original_output.to_dict(),
            "critique": self.critique.to_dict(),
            "repair": self.repair.to_dict() if self.repair is not None else None,
            "finalOutput": self.final_output.to_dict(),
            "wasRepaired": self.was_repaired,
            "critiqueModel": self.critique_model,
            "state": self.state.value,
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class VerifiedFragment:
    """One audited unit of output. Consumed read-only by the gate and assembler."""

    id: str
    persona: str
    instruction: str
    confidence: int
    verified_at: datetime
    deliverable: str
    delta: Delta = field(default_factory=Delta)

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_non_empty_str(self.id, "VerifiedFragment.id"))
        _as_text(self.persona, "VerifiedFragment.persona")
        _as_text(self.instruction, "VerifiedFragment.instruction")
        _as_text(self.deliverable, "VerifiedFragment.deliverable")
        _as_int(self.confidence, "VerifiedFragment.confidence", minimum=0, maximum=100)
        object.__setattr__(
            self, "verified_at", _as_datetime(self.verified_at, "VerifiedFragment.verified_at")
        )
        if not isinstance(self.delta, Delta):
            _fail("VerifiedFragment.delta", f"expected Delta, got {type(self.delta).__name__}")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> VerifiedFragment:
        if not isinstance(data, Mapping):
            _fail("VerifiedFragment", f"expected object, got {type(data).__name__}")
        deliverable = data.get("deliverable", data.get("artifact"))
        verified_raw = data.get("verifiedAt", data.get("verified_at"))
        raw_delta = data.get("delta")
        return cls(
            id=_as_non_empty_str(data.get("id"), "VerifiedFragment.id"),
            persona=_as_text(data.get("persona", ""), "VerifiedFragment.persona"),
            instruction=_as_text(data.get("instruction", ""), "VerifiedFragment.instruction"),
            confidence=_as_int(
                data.get("confidence", 0), "VerifiedFragment.confidence", minimum=0, maximum=100
            ),
            verified_at=_as_datetime(verified_raw, "VerifiedFragment.verified_at"),
            deliverable=_as_text(deliverable, "VerifiedFragment.deliverable"),
            delta=Delta.from_mapping(raw_delta) if isinstance(raw_delta, Mapping) else Delta(),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "persona": self.persona,
            "instruction": self.instruction,
            "confidence": self.confidence,
            "verifiedAt": format_timestamp(self.verified_at),
            "deliverable": self.deliverable,
        }


@dataclass(frozen=True, slots=True)
class SecurityIssue:
    id: str
    severity: SecuritySeverity
    category: SecurityCategory
    description: str
    affected_fragments: tuple[str, ...] = ()
    recommendation: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_non_empty_str(self.id, "SecurityIssue.id"))
        object.__setattr__(
            self, "severity", _as_enum(SecuritySeverity, self.severity, "SecurityIssue.severity")
        )
        object.__setattr__(
            self, "category", _as_enum(SecurityCategory, self.category, "SecurityIssue.category")
        )
        object.__setattr__(
            self,
            "affected_fragments",
            _as_str_tuple(self.affected_fragments, "SecurityIssue.affected_fragments"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "category": self.category.value,
            "description": self.description,
            "affectedFragments": list(self.affected_fragments),
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True, slots=True)
class SecurityAddendum:
    id: str
    title: str
    content: str
    addressed_issues: tuple[str, ...]
    generated_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_non_empty_str(self.id, "SecurityAddendum.id"))
        object.__setattr__(
            self,
            "addressed_issues",
            _as_str_tuple(self.addressed_issues, "SecurityAddendum.addressed_issues"),
        )
        object.__setattr__(
            self, "generated_at", _as_datetime(self.generated_at, "SecurityAddendum.generated_at")
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "addressedIssues": list(self.addressed_issues),
            "generatedAt": format_timestamp(self.generated_at),
        }


class SecurityRejectedError(RuntimeError):
    """Raised when a caller asks to surface a ``reject`` decision as an exception."""

    def __init__(self, result: SecurityScanResult) -> None:
        self.result = result
        blocking = [
            issue.id for issue in result.issues if issue.severity is SecuritySeverity.CRITICAL
        ]
        super().__init__(
            f"security gate rejected fragment set (score={result.score}, "
            f"critical={len(blocking)}): {', '.join(blocking) or 'no critical ids'}"
        )


@dataclass(frozen=True, slots=True)
class SecurityScanResult:
    passed: bool
    score: int
    issues: tuple[SecurityIssue, ...]
    issue_counts: Mapping[SecuritySeverity, int]
    recommendation: GateRecommendation
    addendum: SecurityAddendum | None = None
    raw_response: str | None = None

    def __post_init__(self) -> None:
        _as_int(self.score, "SecurityScanResult.score", minimum=0, maximum=100)
        object.__setattr__(self, "issues", tuple(self.issues))
        object.__setattr__(
            self,
            "issue_counts",
            {severity: int(self.issue_counts.get(severity, 0)) for severity in SecuritySeverity},
        )
        object.__setattr__(
            self,
            "recommendation",
            _as_enum(GateRecommendation, self.recommendation, "SecurityScanResult.recommendation"),
        )

    def raise_for_rejection(self) -> None:
        if self.recommendation is GateRecommendation.REJECT:
            raise SecurityRejectedError(self)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "passed": self.passed,
            "score": self.score,
            "issues": [issue.to_dict() for issue in self.issues],
            "issueCounts": {
                severity.value: count for severity, count in self.issue_counts.items()
            },
            "recommendation": self.recommendation.value,
            "addendum": self.addendum.to_dict() if self.addendum is not None else None,
        }


@dataclass(frozen=True, slots=True)
class ProjectMetadata:
    name: str | None = None
    domain: str | None = None
    original_prompt: str | None = None
    generated_at: datetime | None = None
    tech_stack: tuple[str, ...] = ()
    constraints: tuple[str, ...] = ()
    decisions: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in ("tech_stack", "constraints", "decisions", "warnings"):
            object.__setattr__(
                self, name, _as_str_tuple(getattr(self, name), f"ProjectMetadata.{name}")
            )
        if self.generated_at is not None:
            object.__setattr__(
                self,
                "generated_at",
                _as_datetime(self.generated_at, "ProjectMetadata.generated_at"),
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ProjectMetadata:
        if not isinstance(data, Mapping):
            _fail("ProjectMetadata", f"expected object, got {type(data).__name__}")
        generated_raw = data.get("generatedAt", data.get("generated_at"))
        return cls(
            name=_as_optional_text(data.get("name"), "ProjectMetadata.name"),
            domain=_as_optional_text(data.get("domain"), "ProjectMetadata.domain"),
            original_prompt=_as_optional_text(
                data.get("originalPrompt", data.get("original_prompt")),
                "ProjectMetadata.original_prompt",
            ),
            generated_at=(
                _as_datetime(generated_raw, "ProjectMetadata.generated_at")
                if generated_raw is not None
                else None
            ),
            tech_stack=coerce_text_items(data.get("techStack", data.get("tech_stack"))),
            constraints=coerce_text_items(data.get("constraints")),
            decisions=coerce_text_items(data.get("decisions")),
            warnings=coerce_text_items(data.get("warnings")),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "domain": self.domain,
            "originalPrompt": self.original_prompt,
            "generatedAt": (
                format_timestamp(self.generated_at) if self.generated_at is not None else None
            ),
            "techStack": list(self.tech_stack),
            "constraints": list(self.constraints),
            "decisions": list(self.decisions),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True, slots=True)
class AssemblyVerification:
    original_char_count: int
    assembled_char_count: int
    preservation_ratio: float

    def __post_init__(self) -> None:
        _as_int(self.original_char_count, "AssemblyVerification.original_char_count", minimum=0)
        _as_int(self.assembled_char_count, "AssemblyVerification.assembled_char_count", minimum=0)
        if not math.isfinite(self.preservation_ratio) or self.preservation_ratio < 0:
            _fail("AssemblyVerification.preservation_ratio", "must be a finite number >= 0")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "originalCharCount": self.original_char_count,
            "assembledCharCount": self.assembled_char_count,
            "preservationRatio": self.preservation_ratio,
        }


@dataclass(frozen=True, slots=True)
class FinalDocument:
    body: str
    included_fragment_ids: tuple[str, ...]
    verification: AssemblyVerification
    compiled_at: datetime
    output_mode: OutputMode
    metadata: ProjectMetadata = field(default_factory=ProjectMetadata)
    reformatted: bool = False
    skipped_fragment_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "included_fragment_ids",
            _as_str_tuple(self.included_fragment_ids, "FinalDocument.included_fragment_ids"),
        )
        if self.skipped_fragment_ids:
            _fail("FinalDocument.skipped_fragment_ids", "assembly never skips fragments")
        object.__setattr__(self, "skipped_fragment_ids", ())
        object.__setattr__(
            self, "compiled_at", _as_datetime(self.compiled_at, "FinalDocument.compiled_at")
        )
        object.__setattr__(self, "output_mode", coerce_output_mode(self.output_mode))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "body": self.body,
            "includedFragmentIds": list(self.included_fragment_ids),
            "skippedFragmentIds": list(self.skipped_fragment_ids),
            "verification": self.verification.to_dict(),
            "compiledAt": format_timestamp(self.compiled_at),
            "outputMode": self.output_mode.value,
            "reformatted": self.reformatted,
        }


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _render_item(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (bool, int, float)):
        return json.dumps(value)
    try:
        return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return str(value)


def _as_text(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    return value


def _as_optional_text(value: object, path: str) -> str | None:
    if value is None:
        return None
    text = _as_text(value, path).strip()
    return text or None


def _as_non_empty_str(value: object, path: str) -> str:
    text = _as_text(value, path).strip()
    if not text:
        _fail(path, "must not be empty")
    return text


def _as_int(
    value: object,
    path: str,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    if maximum is not None and value > maximum:
        _fail(path, f"must be <= {maximum}")
    return value


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        _fail(path, f"expected array of strings, got {type(value).__name__}")
    for index, item in enumerate(value):
        if not isinstance(item, str):
            _fail(f"{path}[{index}]", f"expected string, got {type(item).__name__}")
    return tuple(value)


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
    else:
        _fail(path, f"expected datetime, ISO-8601 string or epoch ms, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware")
    return parsed.astimezone(UTC)


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(str(item.value) for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


__all__ = [
    "AssemblyVerification",
    "CritiqueResult",
    "Delta",
    "DeltaFormat",
    "ExtractionMode",
    "FinalDocument",
    "Flaw",
    "FlawSeverity",
    "GateRecommendation",
    "GenerationRecord",
    "JSONScalar",
    "JSONValue",
    "OutputMode",
    "ProjectMetadata",
    "ReflexionResult",
    "ReflexionState",
    "RepairResult",
    "SecurityAddendum",
    "SecurityCategory",
    "SecurityIssue",
    "SecurityRejectedError",
    "SecurityScanResult",
    "SecuritySeverity",
    "VerifiedFragment",
    "coerce_output_mode",
    "coerce_text_items",
    "format_timestamp",
]
