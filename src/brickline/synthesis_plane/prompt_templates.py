"""
brickline — prompt template engine

File: src/brickline/synthesis_plane/prompt_templates.py
Last updated: 2026-10-19

Purpose
- Loads and renders role prompt templates shipped in ``synthesis_plane/templates/``
  with strict placeholders.

What should be included in this file
- Template rendering rules and allowed variables.
- Prompt versioning and hashing (for reproducibility of generation calls).

Functional requirements
- Must render prompts deterministically for same inputs.
- Missing or unexpected variables are errors, never silently blank.

Non-functional requirements
- Templates are package data; no network or user-path lookups by default.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import Environment, StrictUndefined, Template, meta

from brickline.utils.hashing import sha256_text

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping


_ROLE_NAME_RE = re.compile(r"^[A-Za-z0-9_]+(?:\.md)?$")
_LAST_UPDATED_RE = re.compile(r"(?im)^\s*Last updated:\s*(.+?)\s*$")


class PromptTemplateError(RuntimeError):
    """Base error for prompt template loading and rendering."""


class PromptTemplateNotFoundError(PromptTemplateError, FileNotFoundError):
    """Raised when a role template file does not exist."""


class PromptTemplateVariableError(PromptTemplateError, ValueError):
    """Raised for missing/extra variables or whitelist violations."""


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    """Rendered prompt and deterministic hashes."""

    prompt: str
    prompt_hash: str
    template_name: str
    template_version: str
    template_hash: str
    declared_variables: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class _LoadedTemplate:
    source: str
    template: Template
    declared_variables: tuple[str, ...]


class PromptTemplateEngine:
    """Deterministic role prompt template loader + renderer."""

    def __init__(self, *, template_root: Path | str | None = None) -> None:
        root = Path(template_root) if template_root is not None else _default_template_root()
        resolved_root = root.resolve()
        if not resolved_root.exists():
            raise PromptTemplateNotFoundError(f"template root does not exist: {resolved_root}")
        if not resolved_root.is_dir():
            raise NotADirectoryError(f"template root is not a directory: {resolved_root}")

        self._template_root = resolved_root
        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=False,
            lstrip_blocks=False,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )
        self._cache: dict[str, _LoadedTemplate] = {}

    @property
    def template_root(self) -> Path:
        """Resolved template root path."""

        return self._template_root

    def declared_variables(self, role: str) -> tuple[str, ...]:
        return self._load(_normalize_role_to_template_name(role)).declared_variables

    def render(
        self,
        role: str,
        *,
        variables: Mapping[str, object],
        allowed_variables: Collection[str] | None = None,
    ) -> RenderedPrompt:
        """Render one role template with strict variable/whitelist checks.

        When ``allowed_variables`` is omitted the template's own declared variables
        form the whitelist, so every provided variable must be used and vice versa.
        """

        template_name = _normalize_role_to_template_name(role)
        loaded = self._load(template_name)

        if allowed_variables is None:
            allowed: tuple[str, ...] = loaded.declared_variables
        else:
            allowed = _normalize_variable_names(allowed_variables, field_name="allowed_variables")
        allowed_set = set(allowed)

        unexpected_in_template = sorted(set(loaded.declared_variables) - allowed_set)
        if unexpected_in_template:
            raise PromptTemplateVariableError(
                "template uses variables not allowed by whitelist: "
                + ", ".join(unexpected_in_template)
            )

        variable_payload = _normalize_variable_mapping(variables)
        unexpected_inputs = sorted(set(variable_payload) - allowed_set)
        if unexpected_inputs:
            raise PromptTemplateVariableError(
                "unexpected variables were provided: " + ", ".join(unexpected_inputs)
            )

        missing_required = sorted(set(loaded.declared_variables) - set(variable_payload))
        if missing_required:
            raise PromptTemplateVariableError(
                "missing required template variables: " + ", ".join(missing_required)
            )

        rendered_values = {
            key: _prepare_variable_value(value) for key, value in sorted(variable_payload.items())
        }
        rendered_prompt = _normalize_newlines(loaded.template.render(**rendered_values))
        return RenderedPrompt(
            prompt=rendered_prompt,
            prompt_hash=sha256_text(rendered_prompt, encoding="utf-8"),
            template_name=template_name,
            template_version=_extract_template_version(loaded.source),
            template_hash=sha256_text(loaded.source, encoding="utf-8"),
            declared_variables=loaded.declared_variables,
        )

    def _load(self, template_name: str) -> _LoadedTemplate:
        cached = self._cache.get(template_name)
        if cached is not None:
            return cached

        template_path = self._resolve_template_path(template_name)
        source = _normalize_newlines(template_path.read_text(encoding="utf-8"))
        declared = tuple(sorted(meta.find_undeclared_variables(self._environment.parse(source))))
        loaded = _LoadedTemplate(
            source=source,
            template=self._environment.from_string(source),
            declared_variables=declared,
        )
        self._cache[template_name] = loaded
        return loaded

    def _resolve_template_path(self, template_name: str) -> Path:
        candidate = (self._template_root / template_name).resolve()
        try:
            candidate.relative_to(self._template_root)
        except ValueError as exc:
            raise PromptTemplateError(
                f"template path escapes template root: {template_name!r}"
            ) from exc

        if not candidate.exists() or not candidate.is_file():
            raise PromptTemplateNotFoundError(
                f"template not found for role: {template_name!r} under {self._template_root}"
            )
        return candidate


def render_prompt_template(
    role: str,
    *,
    variables: Mapping[str, object],
    allowed_variables: Collection[str] | None = None,
    template_root: Path | str | None = None,
) -> RenderedPrompt:
    """Convenience one-shot renderer."""

    engine = PromptTemplateEngine(template_root=template_root)
    return engine.render(role, variables=variables, allowed_variables=allowed_variables)


def _default_template_root() -> Path:
    return Path(__file__).resolve().parent / "templates"


def _normalize_role_to_template_name(role: str) -> str:
    if not isinstance(role, str):
        raise TypeError("role must be a string")

    cleaned = role.strip()
    if not cleaned:
        raise ValueError("role must not be empty")
    if not _ROLE_NAME_RE.fullmatch(cleaned):
        raise ValueError(f"invalid role name: {role!r}")

    stem = cleaned[:-3] if cleaned.lower().endswith(".md") else cleaned
    return f"{stem.upper()}.md"


def _normalize_variable_mapping(variables: Mapping[str, object]) -> dict[str, object]:
    normalized: dict[str, object] = {}
    for key, value in variables.items():
        if not isinstance(key, str):
            raise TypeError("variable names must be strings")
        cleaned = key.strip()
        if not cleaned:
            raise ValueError("variable names must not be empty")
        normalized[cleaned] = value
    return normalized


def _normalize_variable_names(
    names: Collection[str],
    *,
    field_name: str,
) -> tuple[str, ...]:
    normalized: set[str] = set()
    for item in names:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} entries must be strings")
        cleaned = item.strip()
        if not cleaned:
            raise ValueError(f"{field_name} entries must not be empty")
        normalized.add(cleaned)
    return tuple(sorted(normalized))


def _prepare_variable_value(value: object) -> object:
    # Scalars stay native so templates can branch on flags and counts.
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _normalize_newlines(value)
    if isinstance(value, bytes):
        return _normalize_newlines(value.decode("utf-8", errors="replace"))
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), sort_keys=True)
    except TypeError:
        return str(value)


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _extract_template_version(template_source: str) -> str:
    match = _LAST_UPDATED_RE.search(template_source)
    if match is None:
        return "unversioned"
    return match.group(1).strip()


__all__ = [
    "PromptTemplateEngine",
    "PromptTemplateError",
    "PromptTemplateNotFoundError",
    "PromptTemplateVariableError",
    "RenderedPrompt",
    "render_prompt_template",
]
