"""
brickline — self-critique and repair loop

File: src/brickline/synthesis_plane/reflexion.py
Last updated: 2026-10-19

Purpose
- Cheaply filter low-quality generations before the expensive external audit:
  one critique call, then at most one scoped repair call.

What should be included in this file
- Critique and repair prompt construction via the template engine.
- Tolerant parsers for critique (YAML preferred, JSON fallback) and repair
  (labeled sections) responses.
- The fixed repair trigger policy.
- A zero-cost ``quick_reflexion`` pre-filter.

Functional requirements
- Parse failures degrade to documented defaults; they never raise.
- Transport failures leave the original record untouched (state ``skipped``).
- The original record is always retained next to the final one.

Non-functional requirements
- Calls for one record are strictly sequential; no shared mutable state.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

import structlog

from brickline.config.settings import ReflexionSettings, resolve_reflexion_settings
from brickline.domain.models import (
    CritiqueResult,
    Flaw,
    FlawSeverity,
    GenerationRecord,
    ReflexionResult,
    ReflexionState,
    RepairResult,
)
from brickline.synthesis_plane.prompt_templates import PromptTemplateEngine
from brickline.synthesis_plane.providers.base import (
    GenerationClient,
    GenerationConfig,
    GenerationRequest,
    ProviderError,
    invoke_generation,
)
from brickline.utils.structured_text import extract_with_preference

REPAIR_SCORE_THRESHOLD: Final[int] = 5
NEUTRAL_QUALITY_SCORE: Final[int] = 5
REPAIR_NOTE_HEADER: Final[str] = "[REPAIR APPLIED]"

_DEFAULT_FLAW_DESCRIPTION: Final[str] = "Unknown flaw"
_DEFAULT_FLAW_FIX: Final[str] = "No fix suggested"
_BLOCKING_SEVERITIES: Final[frozenset[FlawSeverity]] = frozenset(
    {FlawSeverity.CRITICAL, FlawSeverity.MAJOR}
)

_CHANGES_RE: Final[re.Pattern[str]] = re.compile(
    r"###[ \t]*CHANGES_MADE[ \t]*:?[ \t]*(?:\n|$)(.*?)"
    r"(?=###[ \t]*REPAIRED_(?:ARTIFACT|DELIVERABLE)|\Z)",
    re.I | re.S,
)
_REPAIRED_RE: Final[re.Pattern[str]] = re.compile(
    r"###[ \t]*REPAIRED_(?:ARTIFACT|DELIVERABLE)[ \t]*:?[ \t]*(?:\n|$)(.*)\Z", re.I | re.S
)
_LIST_MARKER_RE: Final[re.Pattern[str]] = re.compile(r"^(?:[-*•]|\d+[.)])\s+")

_QUICK_MIN_CHARS: Final[int] = 50
_QUICK_ERROR_WINDOW: Final[int] = 200
_PLACEHOLDER_RE: Final[re.Pattern[str]] = re.compile(r"\b(TODO|FIXME|XXX|PLACEHOLDER)\b", re.I)
_ERROR_WORD_RE: Final[re.Pattern[str]] = re.compile(
    r"\b(error|exception|failed|undefined|null)\b", re.I
)
_APOLOGY_RE: Final[re.Pattern[str]] = re.compile(
    r"^(I'm sorry|I apologize|Unfortunately|I cannot)", re.I
)


@dataclass(frozen=True, slots=True)
class QuickCheck:
    """Outcome of the zero-cost pre-filter."""

    issues: tuple[str, ...] = ()

    @property
    def needs_full_reflexion(self) -> bool:
        return bool(self.issues)

    @property
    def reason(self) -> str:
        return self.issues[0] if self.issues else ""


def quick_reflexion(deliverable: str) -> QuickCheck:
    """Flag obviously weak deliverables without a generation call."""

    issues: list[str] = []
    if len(deliverable) < _QUICK_MIN_CHARS:
        issues.append(f"Output is suspiciously short (< {_QUICK_MIN_CHARS} chars)")
    if _PLACEHOLDER_RE.search(deliverable):
        issues.append("Output contains TODO/placeholder markers")
    if _ERROR_WORD_RE.search(deliverable[:_QUICK_ERROR_WINDOW]):
        issues.append("Output may contain error indicators")
    if _APOLOGY_RE.search(deliverable):
        issues.append("Output starts with apology/refusal pattern")
    return QuickCheck(issues=tuple(issues))


def normalize_flaw_severity(value: object) -> FlawSeverity:
    normalized = value.strip().lower() if isinstance(value, str) else ""
    if normalized == FlawSeverity.CRITICAL.value:
        return FlawSeverity.CRITICAL
    if normalized == FlawSeverity.MAJOR.value:
        return FlawSeverity.MAJOR
    return FlawSeverity.MINOR


def needs_repair(critique: CritiqueResult) -> bool:
    """Fixed trigger: any critical/major flaw, or a quality score below 5."""

    has_blocking = any(flaw.severity in _BLOCKING_SEVERITIES for flaw in critique.flaws)
    return has_blocking or critique.quality_score < REPAIR_SCORE_THRESHOLD


def parse_critique(text: str) -> CritiqueResult:
    """Parse a critique response; anything unparseable yields the neutral default."""

    if not isinstance(text, str):
        return CritiqueResult.neutral()
    document = extract_with_preference(text, "yaml").as_mapping()
    if document is None:
        return CritiqueResult.neutral(raw_critique=text)

    raw_flaws = document.get("flaws")
    flaws: list[Flaw] = []
    if isinstance(raw_flaws, Sequence) and not isinstance(raw_flaws, (str, bytes)):
        flaws = [_parse_flaw(item) for item in raw_flaws]

    score = _parse_quality_score(document.get("qualityScore", document.get("quality_score")))
    blocking = any(flaw.severity in _BLOCKING_SEVERITIES for flaw in flaws)
    return CritiqueResult(
        flaws=tuple(flaws),
        needs_repair=blocking or score < REPAIR_SCORE_THRESHOLD,
        quality_score=score,
        raw_critique=text,
    )


def parse_repair(text: str, original: str) -> RepairResult:
    """Read the change log and repaired deliverable; fall back to the original on failure."""

    changes_match = _CHANGES_RE.search(text)
    changes: list[str] = []
    if changes_match is not None:
        for line in changes_match.group(1).splitlines():
            cleaned = _LIST_MARKER_RE.sub("", line.strip()).strip()
            if cleaned:
                changes.append(cleaned)

    repaired_match = _REPAIRED_RE.search(text)
    repaired = repaired_match.group(1).strip() if repaired_match is not None else text.strip()
    success = bool(repaired) and repaired != original
    return RepairResult(
        repaired_deliverable=repaired if success else original,
        changes_made=tuple(changes),
        success=success,
        raw_response=text,
    )


def format_repair_flaws(flaws: Sequence[Flaw]) -> str:
    """Render only critical/major flaws, numbered, for the repair prompt."""

    blocking = [flaw for flaw in flaws if flaw.severity in _BLOCKING_SEVERITIES]
    return "\n".join(
        f"{index}. [{flaw.severity.value.upper()}] {flaw.description}\n   Fix: {flaw.suggested_fix}"
        for index, flaw in enumerate(blocking, start=1)
    )


def repair_note(changes: Sequence[str]) -> str:
    return f"{REPAIR_NOTE_HEADER}\nChanges: {', '.join(changes)}"


class ReflexionLoop:
    """Critique, decide, optionally repair, then select the final record."""

    def __init__(
        self,
        client: GenerationClient,
        *,
        settings: ReflexionSettings | Mapping[str, object] | None = None,
        templates: PromptTemplateEngine | None = None,
        logger: Any | None = None,
    ) -> None:
        self._client = client
        self._settings = resolve_reflexion_settings(settings)
        self._templates = templates if templates is not None else PromptTemplateEngine()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def settings(self) -> ReflexionSettings:
        return self._settings

    async def critique(
        self,
        record: GenerationRecord,
        task: str,
        context: str,
        prior_feedback: str | None = None,
    ) -> CritiqueResult:
        """One critique call. Raises ``ProviderError`` on transport failure."""

        rendered = self._templates.render(
            "critique",
            variables={
                "living_context": context,
                "task_instruction": task,
                "prior_feedback": prior_feedback or "",
                "deliverable": record.deliverable,
            },
        )
        response = await invoke_generation(
            self._client,
            GenerationRequest(
                model=self._settings.critique_model,
                contents=rendered.prompt,
                config=GenerationConfig(
                    temperature=self._settings.critique_temperature,
                    max_output_tokens=self._settings.critique_max_output_tokens,
                ),
            ),
            timeout_seconds=self._settings.timeout_seconds,
            provider="critique",
        )
        return parse_critique(response.text)

    async def repair(
        self,
        record: GenerationRecord,
        critique: CritiqueResult,
        task: str,
        context: str,
        prior_feedback: str | None = None,
    ) -> RepairResult:
        """One repair call scoped to critical/major flaws. Raises ``ProviderError``."""

        rendered = self._templates.render(
            "repair",
            variables={
                "living_context": context,
                "task_instruction": task,
                "prior_feedback": prior_feedback or "",
                "deliverable": record.deliverable,
                "flaws": format_repair_flaws(critique.flaws),
            },
        )
        response = await invoke_generation(
            self._client,
            GenerationRequest(
                model=self._settings.critique_model,
                contents=rendered.prompt,
                config=GenerationConfig(
                    temperature=self._settings.repair_temperature,
                    max_output_tokens=self._settings.repair_max_output_tokens,
                ),
            ),
            timeout_seconds=self._settings.timeout_seconds,
            provider="repair",
        )
        return parse_repair(response.text, record.deliverable)

    async def reflect(
        self,
        record: GenerationRecord,
        task: str,
        context: str,
        prior_feedback: str | None = None,
    ) -> ReflexionResult:
        model = self._settings.critique_model
        try:
            critique = await self.critique(record, task, context, prior_feedback)
        except ProviderError as exc:
            self._logger.warning(
                "reflexion_critique_failed", code=exc.code, retryable=exc.retryable, error=str(exc)
            )
            return self._skipped(record, CritiqueResult.neutral(), None, error=str(exc))

        if not critique.needs_repair:
            self._logger.info(
                "reflexion_repair_not_needed",
                quality_score=critique.quality_score,
                flaw_count=len(critique.flaws),
            )
            return self._skipped(record, critique, None)

        try:
            repair = await self.repair(record, critique, task, context, prior_feedback)
        except ProviderError as exc:
            self._logger.warning(
                "reflexion_repair_failed", code=exc.code, retryable=exc.retryable, error=str(exc)
            )
            return self._skipped(record, critique, None, error=str(exc))

        if not repair.success:
            self._logger.info("reflexion_repair_unchanged", quality_score=critique.quality_score)
            return self._skipped(record, critique, repair)

        final = record.with_repair(repair.repaired_deliverable, repair_note(repair.changes_made))
        self._logger.info(
            "reflexion_repair_applied",
            quality_score=critique.quality_score,
            change_count=len(repair.changes_made),
        )
        return ReflexionResult(
            original_output=record,
            critique=critique,
            repair=repair,
            final_output=final,
            was_repaired=True,
            critique_model=model,
            state=ReflexionState.REPAIRED,
        )

    def _skipped(
        self,
        record: GenerationRecord,
        critique: CritiqueResult,
        repair: RepairResult | None,
        *,
        error: str | None = None,
    ) -> ReflexionResult:
        return ReflexionResult(
            original_output=record,
            critique=critique,
            repair=repair,
            final_output=record,
            was_repaired=False,
            critique_model=self._settings.critique_model,
            state=ReflexionState.SKIPPED,
            error=error,
        )


def _parse_flaw(item: object) -> Flaw:
    if isinstance(item, Mapping):
        description = _text_or_default(item.get("description"), _DEFAULT_FLAW_DESCRIPTION)
        fix = _text_or_default(
            item.get("suggestedFix", item.get("suggested_fix", item.get("fix"))),
            _DEFAULT_FLAW_FIX,
        )
        return Flaw(
            description=description,
            severity=normalize_flaw_severity(item.get("severity")),
            suggested_fix=fix,
        )
    return Flaw(
        description=_text_or_default(item, _DEFAULT_FLAW_DESCRIPTION),
        severity=FlawSeverity.MINOR,
        suggested_fix=_DEFAULT_FLAW_FIX,
    )


def _text_or_default(value: object, default: str) -> str:
    if value is None:
        return default
    text = value.strip() if isinstance(value, str) else str(value).strip()
    return text or default


def _parse_quality_score(value: object) -> int:
    score: float | None = None
    if isinstance(value, bool):
        score = None
    elif isinstance(value, (int, float)):
        score = float(value)
    elif isinstance(value, str):
        try:
            score = float(value.strip())
        except ValueError:
            score = None
    if score is None or not math.isfinite(score) or score == 0:
        return NEUTRAL_QUALITY_SCORE
    return max(1, min(10, round(score)))


__all__ = [
    "NEUTRAL_QUALITY_SCORE",
    "QuickCheck",
    "REPAIR_NOTE_HEADER",
    "REPAIR_SCORE_THRESHOLD",
    "ReflexionLoop",
    "format_repair_flaws",
    "needs_repair",
    "normalize_flaw_severity",
    "parse_critique",
    "parse_repair",
    "quick_reflexion",
    "repair_note",
]
