"""
brickline — lossless assembler

File: src/brickline/integration_plane/assembler.py
Last updated: 2026-10-19

Purpose
- Stitch verified fragments (plus an optional security addendum) into one final
  document without rewriting any deliverable.

What should be included in this file
- Flat, raw (JSON) and categorized renderers.
- Optional formatting-only reformat pass guarded by a preservation check.
- Character-count verification and a post-hoc compilation check.

Functional requirements
- Every input fragment is included; nothing is skipped.
- Flat and raw modes carry deliverables byte-for-byte.
- Any reformat failure (transport, empty text, preservation miss) returns the
  pre-reformat body.
- Raw output is never reformatted.

Non-functional requirements
- Rendering is a pure function of inputs and the injected clock.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Final

import structlog

from brickline.config.settings import AssemblerSettings, resolve_assembler_settings
from brickline.constants import COMPILER_NAME, COMPILER_VERSION
from brickline.domain.ids import Clock, IdFactory
from brickline.domain.models import (
    AssemblyVerification,
    FinalDocument,
    JSONValue,
    OutputMode,
    ProjectMetadata,
    SecurityAddendum,
    VerifiedFragment,
    coerce_output_mode,
    format_timestamp,
)
from brickline.integration_plane.categories import (
    group_by_category,
    sanitize_deliverable,
    sanitize_persona,
)
from brickline.integration_plane.metadata_backfill import backfill_metadata, clean_tech_stack
from brickline.synthesis_plane.prompt_templates import PromptTemplateEngine
from brickline.synthesis_plane.providers.base import (
    GenerationClient,
    GenerationConfig,
    GenerationRequest,
    ProviderError,
    invoke_generation,
)

DEFAULT_TITLE: Final[str] = "Project Manifestation"
TOC_TITLE_LIMIT: Final[int] = 60
PRESERVATION_SAMPLE_CHARS: Final[int] = 200
PRESERVATION_SAMPLE_WORDS: Final[int] = 10
COMPILATION_SAMPLE_CHARS: Final[int] = 100
MIN_SAMPLE_LENGTH: Final[int] = 20
REFORMAT_PREVIEW_CHARS: Final[int] = 50

_WHITESPACE_RE: Final[re.Pattern[str]] = re.compile(r"\s+")
_BRACKET_PREFIX_RE: Final[re.Pattern[str]] = re.compile(r"^\[.*?\]\s*")

_CATEGORIZED_BLURB: Final[str] = (
    "This document represents the compiled architectural reference for the project. "
    "It defines the core axioms, structural requirements, and security invariants "
    "that must be preserved throughout the project's lifecycle."
)


@dataclass(frozen=True, slots=True)
class CompilationReport:
    all_preserved: bool
    preserved_count: int
    missing_fragment_ids: tuple[str, ...] = ()


def _normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text)


def check_preservation(
    text: str,
    fragments: Sequence[VerifiedFragment],
    *,
    strict: bool = False,
) -> bool:
    """Return True when every fragment's opening words survive in ``text``.

    The probe is the first ten whitespace-normalized words of the first 200
    characters; probes of 20 characters or fewer are not checked. With
    ``strict`` the whole normalized deliverable must appear as well.
    """

    target = _normalize_whitespace(text)
    for fragment in fragments:
        sample = _normalize_whitespace(fragment.deliverable[:PRESERVATION_SAMPLE_CHARS]).strip()
        first_words = " ".join(sample.split(" ")[:PRESERVATION_SAMPLE_WORDS])
        if len(first_words) > MIN_SAMPLE_LENGTH and first_words not in target:
            return False
        if strict:
            whole = _normalize_whitespace(fragment.deliverable).strip()
            if whole and whole not in target:
                return False
    return True


def compute_verification(
    fragments: Sequence[VerifiedFragment],
    addendum: SecurityAddendum | None,
    assembled: str,
) -> AssemblyVerification:
    original = sum(len(fragment.deliverable) for fragment in fragments)
    if addendum is not None:
        original += len(addendum.content)
    assembled_count = len(assembled)
    return AssemblyVerification(
        original_char_count=original,
        assembled_char_count=assembled_count,
        preservation_ratio=assembled_count / original if original > 0 else 1.0,
    )


def verify_compilation(body: str, fragments: Sequence[VerifiedFragment]) -> CompilationReport:
    """Post-hoc check that each deliverable's first 100 characters appear verbatim."""

    missing: list[str] = []
    for fragment in fragments:
        chunk = fragment.deliverable[:COMPILATION_SAMPLE_CHARS].strip()
        if len(chunk) > MIN_SAMPLE_LENGTH and chunk not in body:
            missing.append(fragment.id)
    return CompilationReport(
        all_preserved=not missing,
        preserved_count=len(fragments) - len(missing),
        missing_fragment_ids=tuple(missing),
    )


def render_flat(
    fragments: Sequence[VerifiedFragment],
    metadata: ProjectMetadata,
    addendum: SecurityAddendum | None,
    *,
    compiled_at: datetime,
) -> str:
    generated_at = metadata.generated_at or compiled_at
    stack = clean_tech_stack(metadata.tech_stack)
    lines = [
        f"# {metadata.name or DEFAULT_TITLE}",
        "",
        f"**Domain:** {metadata.domain or 'Unknown'}",
    ]
    if metadata.original_prompt:
        lines.append(f'**Original Request:** "{metadata.original_prompt}"')
    lines.extend(
        [
            f"**Generated:** {format_timestamp(generated_at)}",
            f"**Verified Fragments:** {len(fragments)}",
            f"**Tech Stack:** {', '.join(stack) if stack else 'None'}",
            "",
            "---",
            "",
            "## Table of Contents",
            "",
        ]
    )
    for index, fragment in enumerate(fragments, start=1):
        lines.append(f"{index}. [{_toc_title(fragment.instruction)}](#fragment-{index})")
    if addendum is not None:
        lines.append(f"{len(fragments) + 1}. [Security Addendum](#security-addendum)")
    lines.extend(["", "---", ""])

    for index, fragment in enumerate(fragments, start=1):
        lines.extend(
            [
                f'<a id="fragment-{index}"></a>',
                f"## {index}. {fragment.instruction}",
                "",
                f"**Specialist:** {fragment.persona}",
                f"**Confidence:** {fragment.confidence}%",
                f"**Verified:** {format_timestamp(fragment.verified_at)}",
                "",
                fragment.deliverable,
                "",
                "---",
                "",
            ]
        )

    if addendum is not None:
        lines.extend(['<a id="security-addendum"></a>', addendum.content, ""])

    lines.extend(
        [
            "---",
            "",
            "*This document was assembled by the lossless assembler.*",
            "*All deliverable content has been preserved exactly as verified.*",
            f"*Compilation timestamp: {format_timestamp(compiled_at)}*",
        ]
    )
    return "\n".join(lines)


def render_raw(
    fragments: Sequence[VerifiedFragment],
    metadata: ProjectMetadata,
    addendum: SecurityAddendum | None,
    *,
    compiled_at: datetime,
) -> str:
    meta_payload: dict[str, JSONValue] = dict(metadata.to_dict())
    if meta_payload.get("generatedAt") is None:
        meta_payload["generatedAt"] = format_timestamp(compiled_at)
    meta_payload["fragmentCount"] = len(fragments)
    meta_payload["compiledAt"] = format_timestamp(compiled_at)
    meta_payload["compiler"] = COMPILER_NAME
    meta_payload["compilerVersion"] = COMPILER_VERSION

    payload: dict[str, JSONValue] = {
        "metadata": meta_payload,
        "fragments": [fragment.to_dict() for fragment in fragments],
        "securityAddendum": (
            {
                "id": addendum.id,
                "title": addendum.title,
                "content": addendum.content,
                "generatedAt": format_timestamp(addendum.generated_at),
            }
            if addendum is not None
            else None
        ),
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def render_categorized(
    fragments: Sequence[VerifiedFragment],
    metadata: ProjectMetadata,
    addendum: SecurityAddendum | None,
    *,
    compiled_at: datetime,
) -> str:
    generated_at = metadata.generated_at or compiled_at
    stack = clean_tech_stack(metadata.tech_stack)
    lines = [
        f"# {metadata.name or DEFAULT_TITLE}",
        "",
        "> Generated by brickline - Categorized Mode",
        "",
        "## Executive Summary",
        "",
        f"**Domain:** {metadata.domain or 'Not Specified'}",
    ]
    if metadata.original_prompt:
        lines.append(f'**Original Request:** "{metadata.original_prompt}"')
    lines.extend(
        [
            f"**Verified Fragments:** {len(fragments)}",
            f"**Tech Stack:** {', '.join(stack) if stack else 'Not Specified'}",
            f"**Compilation Timestamp:** {format_timestamp(generated_at)}",
            "",
            _CATEGORIZED_BLURB,
            "",
        ]
    )

    summary_sections = (
        ("### Core Constraints & Axioms", metadata.constraints, False),
        ("### Decisions Made", metadata.decisions, True),
        ("### Warnings & Risks", metadata.warnings, True),
    )
    for header, items, strip_prefix in summary_sections:
        if not items:
            continue
        lines.append(header)
        lines.extend(
            f"- {_BRACKET_PREFIX_RE.sub('', item, count=1) if strip_prefix else item}"
            for item in items
        )
        lines.append("")
    lines.extend(["---", ""])

    for category, groups in group_by_category(fragments):
        lines.extend([f"## {category}", ""])
        for group in groups:
            lines.extend([f"### {group.title}", ""])
            for index, fragment in enumerate(group.fragments):
                label = group.perspective_label(index)
                persona = sanitize_persona(fragment.persona)
                suffix = f" - {label}" if label else ""
                lines.extend(
                    [
                        f"*{persona}{suffix} | Confidence: {fragment.confidence}%*",
                        "",
                        sanitize_deliverable(fragment.deliverable),
                        "",
                        "---",
                        "",
                    ]
                )

    if addendum is not None:
        lines.extend(["## Security Addendum", "", addendum.content, ""])

    lines.extend(
        [
            "*This document was assembled by the lossless assembler (categorized mode).*",
            f"*Compilation timestamp: {format_timestamp(compiled_at)}*",
        ]
    )
    return "\n".join(lines)


_RENDERERS: Final = {
    OutputMode.FLAT: render_flat,
    OutputMode.RAW: render_raw,
    OutputMode.CATEGORIZED: render_categorized,
}


class Assembler:
    """Lossless stitcher: assembly, never synthesis."""

    def __init__(
        self,
        client: GenerationClient | None = None,
        *,
        settings: AssemblerSettings | Mapping[str, object] | None = None,
        clock: Clock | None = None,
        templates: PromptTemplateEngine | None = None,
        logger: Any | None = None,
    ) -> None:
        self._client = client
        self._settings = resolve_assembler_settings(settings)
        self._ids = IdFactory(clock=clock) if clock is not None else IdFactory()
        self._templates = templates
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def settings(self) -> AssemblerSettings:
        return self._settings

    async def assemble(
        self,
        fragments: Sequence[VerifiedFragment],
        metadata: ProjectMetadata | None = None,
        addendum: SecurityAddendum | None = None,
        *,
        output_mode: OutputMode | str | None = None,
    ) -> FinalDocument:
        mode = (
            coerce_output_mode(output_mode)
            if output_mode is not None
            else self._settings.output_mode
        )
        fragment_list = tuple(fragments)
        resolved = backfill_metadata(metadata or ProjectMetadata(), fragment_list)
        compiled_at = self._ids.now()

        body = _RENDERERS[mode](fragment_list, resolved, addendum, compiled_at=compiled_at)
        reformatted = False
        client = self._client
        if mode is not OutputMode.RAW and self._settings.use_reformatting and client is not None:
            body, reformatted = await self._reformat(client, body, fragment_list, mode)

        verification = compute_verification(fragment_list, addendum, body)
        self._logger.info(
            "assembly_completed",
            output_mode=mode.value,
            fragment_count=len(fragment_list),
            has_addendum=addendum is not None,
            reformatted=reformatted,
            preservation_ratio=round(verification.preservation_ratio, 4),
        )
        return FinalDocument(
            body=body,
            included_fragment_ids=tuple(fragment.id for fragment in fragment_list),
            verification=verification,
            compiled_at=compiled_at,
            output_mode=mode,
            metadata=resolved,
            reformatted=reformatted,
        )

    async def _reformat(
        self,
        client: GenerationClient,
        raw_body: str,
        fragments: Sequence[VerifiedFragment],
        mode: OutputMode,
    ) -> tuple[str, bool]:
        previews = "\n".join(
            f'{index}. "{fragment.deliverable[:REFORMAT_PREVIEW_CHARS]}..."'
            for index, fragment in enumerate(fragments, start=1)
        )
        rendered = self._template_engine().render(
            "reformat",
            variables={
                "fragment_count": len(fragments),
                "fragment_previews": previews,
                "raw_assembly": raw_body,
            },
        )
        try:
            response = await invoke_generation(
                client,
                GenerationRequest(
                    model=self._settings.formatting_model,
                    contents=rendered.prompt,
                    config=GenerationConfig(
                        temperature=self._settings.reformat_temperature,
                        max_output_tokens=self._settings.reformat_max_output_tokens,
                    ),
                ),
                timeout_seconds=self._settings.timeout_seconds,
                provider="reformat",
            )
        except ProviderError as exc:
            self._logger.warning(
                "assembly_reformat_failed",
                code=exc.code,
                retryable=exc.retryable,
                error=str(exc),
            )
            return raw_body, False

        # Categorized bodies carry sanitized deliverables.
        expected = fragments
        if mode is OutputMode.CATEGORIZED:
            expected = tuple(
                replace(fragment, deliverable=sanitize_deliverable(fragment.deliverable))
                for fragment in fragments
            )
        if not check_preservation(
            response.text, expected, strict=self._settings.strict_preservation
        ):
            self._logger.warning(
                "assembly_reformat_rejected",
                reason="preservation_check_failed",
                model=response.model_used,
            )
            return raw_body, False
        return response.text, True

    def _template_engine(self) -> PromptTemplateEngine:
        if self._templates is None:
            self._templates = PromptTemplateEngine()
        return self._templates


def _toc_title(instruction: str) -> str:
    if len(instruction) > TOC_TITLE_LIMIT:
        return instruction[:TOC_TITLE_LIMIT] + "..."
    return instruction


__all__ = [
    "Assembler",
    "CompilationReport",
    "DEFAULT_TITLE",
    "check_preservation",
    "compute_verification",
    "render_categorized",
    "render_flat",
    "render_raw",
    "verify_compilation",
]
