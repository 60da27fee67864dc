"""
brickline — specialist generation stage

File: src/brickline/synthesis_plane/specialist.py
Last updated: 2026-10-19

Purpose
- Execute one atomic task against the generation service and extract a
  ``GenerationRecord`` from the response.

What should be included in this file
- ``AtomicTask`` input type.
- Pure construction of the shared project context from accumulated deltas.
- Prompt selection (labeled sections vs. compact whole-object).
- Post-extraction validation for conversational preambles and sentinel markers.

Functional requirements
- One call per execution; transport errors propagate (the caller owns retries).
- The project context is passed by value and rebuilt, never mutated.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

import structlog

from brickline.config.settings import SpecialistSettings, resolve_specialist_settings
from brickline.domain.models import Delta, ExtractionMode, GenerationRecord
from brickline.synthesis_plane.extraction import extract_generation
from brickline.synthesis_plane.prompt_templates import PromptTemplateEngine, RenderedPrompt
from brickline.synthesis_plane.providers.base import (
    GenerationClient,
    GenerationConfig,
    GenerationRequest,
    invoke_generation,
)

_PREAMBLE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(Here's|Here is|I've|I have|Sure|Certainly|Of course|Absolutely|Great|"
    r"Based on|As requested|Below is)\b",
    re.I,
)

_DEFAULT_TEMPLATES: PromptTemplateEngine | None = None


@dataclass(frozen=True, slots=True)
class AtomicTask:
    id: str
    persona: str
    instruction: str

    def __post_init__(self) -> None:
        for name in ("id", "persona", "instruction"):
            value = getattr(self, name)
            if not isinstance(value, str):
                raise TypeError(f"AtomicTask.{name} must be a string")
            if not value.strip():
                raise ValueError(f"AtomicTask.{name} cannot be empty")


@dataclass(frozen=True, slots=True)
class ValidationReport:
    valid: bool
    issues: tuple[str, ...] = ()


def build_living_context(
    requirements: str,
    domain: str,
    tech_stack: Sequence[str],
    deltas: Sequence[Delta],
    *,
    base_constraints: Sequence[str] = (),
) -> str:
    """Render the project context: base facts followed by every accumulated delta."""

    combined = Delta(new_constraints=tuple(base_constraints))
    for delta in deltas:
        combined = combined.combine(delta)

    def bullets(items: Sequence[str], empty: str, prefix: str = "") -> str:
        return "\n".join(f"- {prefix}{item}" for item in items) or f"- {empty}"

    return "\n".join(
        [
            "## ORIGINAL REQUIREMENTS",
            requirements,
            "",
            "## PROJECT DOMAIN",
            domain,
            "",
            "## TECH STACK",
            bullets(tech_stack, "None specified"),
            "",
            "## CONSTRAINTS (BINDING)",
            bullets(combined.new_constraints, "None specified"),
            "",
            "## DECISIONS MADE (IMMUTABLE)",
            bullets(combined.decisions, "None yet"),
            "",
            "## WARNINGS (FROM PREVIOUS TASKS)",
            bullets(combined.warnings, "None", prefix="WARNING: "),
            "",
            "## SYSTEM CONSTRAINTS",
            "- Produce architecture, strategy and plans only; no implementation code",
            "- One atomic task, one deliverable",
        ]
    )


def build_specialist_prompt(
    task: AtomicTask,
    living_context: str,
    *,
    compact: bool = False,
    templates: PromptTemplateEngine | None = None,
) -> RenderedPrompt:
    engine = templates if templates is not None else _default_templates()
    return engine.render(
        "specialist_compact" if compact else "specialist",
        variables={
            "persona": task.persona,
            "living_context": living_context,
            "task_instruction": task.instruction,
        },
    )


def validate_generation(record: GenerationRecord) -> ValidationReport:
    """Advisory checks on an extracted record; never raises."""

    issues: list[str] = []
    if not record.deliverable.strip():
        issues.append("Deliverable is empty")
    if record.has_unknown:
        issues.append("Deliverable contains an [UNKNOWN: ...] marker")
    if record.has_conflict:
        issues.append("Deliverable contains a [CONFLICT: ...] marker")
    if _PREAMBLE_RE.search(record.deliverable.lstrip()):
        issues.append("Deliverable starts with a conversational preamble")
    return ValidationReport(valid=not issues, issues=tuple(issues))


class Specialist:
    """Single-call executor for one atomic task."""

    def __init__(
        self,
        client: GenerationClient,
        *,
        settings: SpecialistSettings | Mapping[str, object] | None = None,
        templates: PromptTemplateEngine | None = None,
        logger: Any | None = None,
    ) -> None:
        self._client = client
        self._settings = resolve_specialist_settings(settings)
        self._templates = templates if templates is not None else _default_templates()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def settings(self) -> SpecialistSettings:
        return self._settings

    async def execute(
        self,
        task: AtomicTask,
        living_context: str,
        *,
        extraction_mode: ExtractionMode | str | None = None,
    ) -> GenerationRecord:
        mode = (
            ExtractionMode(extraction_mode)
            if extraction_mode is not None
            else self._settings.extraction_mode
        )
        rendered = build_specialist_prompt(
            task,
            living_context,
            compact=mode is ExtractionMode.WHOLE_OBJECT,
            templates=self._templates,
        )
        response = await invoke_generation(
            self._client,
            GenerationRequest(
                model=self._settings.model,
                contents=rendered.prompt,
                config=GenerationConfig(
                    temperature=self._settings.temperature,
                    max_output_tokens=self._settings.max_output_tokens,
                ),
            ),
            timeout_seconds=self._settings.timeout_seconds,
            provider="specialist",
        )
        record = extract_generation(response.text, mode=mode, model_used=response.model_used)
        self._logger.info(
            "specialist_generation_extracted",
            task_id=task.id,
            model=response.model_used,
            delta_format=record.delta_format.value,
            has_unknown=record.has_unknown,
            has_conflict=record.has_conflict,
            prompt_hash=rendered.prompt_hash,
        )
        return record


def _default_templates() -> PromptTemplateEngine:
    global _DEFAULT_TEMPLATES
    if _DEFAULT_TEMPLATES is None:
        _DEFAULT_TEMPLATES = PromptTemplateEngine()
    return _DEFAULT_TEMPLATES


__all__ = [
    "AtomicTask",
    "Specialist",
    "ValidationReport",
    "build_living_context",
    "build_specialist_prompt",
    "validate_generation",
]
