"""
brickline — per-stage settings resolution.

File: src/brickline/config/settings.py
Last updated: 2026-10-19

Purpose
- Turn sparse option mappings into fully populated, immutable settings for each
  pipeline stage (specialist, reflexion, security gate, assembler).

What should be included in this file
- Frozen settings dataclasses with defaults and ``__post_init__`` validation.
- Pure ``resolve_*`` functions, called once at component construction.
- ``settings_from_config`` bridging a loaded ``brickline.toml`` to all stages.

Functional requirements
- Unknown keys are rejected with ``ConfigValidationError``.
- ``None`` values in a sparse mapping mean "use the default".

Non-functional requirements
- No IO; no global state.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any, TypeVar

from brickline.config.schema import ConfigValidationError, ConfigValidationIssue
from brickline.domain.models import ExtractionMode, OutputMode, coerce_output_mode

TSettings = TypeVar("TSettings")


def _check_model(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


def _check_temperature(value: object, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{field_name} must be a number")
    if not math.isfinite(value) or not 0.0 <= value <= 2.0:
        raise ValueError(f"{field_name} must be within 0.0..2.0")
    return float(value)


def _check_tokens(value: object, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field_name} must be an integer")
    if value <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return value


def _check_timeout(value: object) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError("timeout_seconds must be a number")
    if not math.isfinite(value) or value <= 0:
        raise ValueError("timeout_seconds must be > 0")
    return float(value)


def _check_bool(value: object, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"{field_name} must be a boolean")
    return value


@dataclass(frozen=True, slots=True)
class SpecialistSettings:
    model: str = "gpt-4o"
    temperature: float = 0.7
    max_output_tokens: int = 4096
    extraction_mode: ExtractionMode = ExtractionMode.SECTIONS
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "model", _check_model(self.model, "model"))
        object.__setattr__(self, "temperature", _check_temperature(self.temperature, "temperature"))
        _check_tokens(self.max_output_tokens, "max_output_tokens")
        object.__setattr__(self, "extraction_mode", ExtractionMode(self.extraction_mode))
        object.__setattr__(self, "timeout_seconds", _check_timeout(self.timeout_seconds))


@dataclass(frozen=True, slots=True)
class ReflexionSettings:
    """Critique and repair call parameters; both calls use ``critique_model``."""

    critique_model: str = "gpt-4o-mini"
    critique_temperature: float = 0.3
    critique_max_output_tokens: int = 1024
    repair_temperature: float = 0.5
    repair_max_output_tokens: int = 4096
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "critique_model", _check_model(self.critique_model, "critique_model")
        )
        object.__setattr__(
            self,
            "critique_temperature",
            _check_temperature(self.critique_temperature, "critique_temperature"),
        )
        object.__setattr__(
            self,
            "repair_temperature",
            _check_temperature(self.repair_temperature, "repair_temperature"),
        )
        _check_tokens(self.critique_max_output_tokens, "critique_max_output_tokens")
        _check_tokens(self.repair_max_output_tokens, "repair_max_output_tokens")
        object.__setattr__(self, "timeout_seconds", _check_timeout(self.timeout_seconds))


@dataclass(frozen=True, slots=True)
class SecuritySettings:
    model: str = "gpt-4o-mini"
    deep_analysis: bool = True
    allow_code_generation: bool = False
    temperature: float = 0.3
    max_output_tokens: int = 2048
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "model", _check_model(self.model, "model"))
        _check_bool(self.deep_analysis, "deep_analysis")
        _check_bool(self.allow_code_generation, "allow_code_generation")
        object.__setattr__(self, "temperature", _check_temperature(self.temperature, "temperature"))
        _check_tokens(self.max_output_tokens, "max_output_tokens")
        object.__setattr__(self, "timeout_seconds", _check_timeout(self.timeout_seconds))


@dataclass(frozen=True, slots=True)
class AssemblerSettings:
    output_mode: OutputMode = OutputMode.FLAT
    use_reformatting: bool = False
    formatting_model: str = "gpt-4o-mini"
    reformat_temperature: float = 0.1
    reformat_max_output_tokens: int = 8192
    strict_preservation: bool = False
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "output_mode", coerce_output_mode(self.output_mode))
        _check_bool(self.use_reformatting, "use_reformatting")
        _check_bool(self.strict_preservation, "strict_preservation")
        object.__setattr__(
            self, "formatting_model", _check_model(self.formatting_model, "formatting_model")
        )
        object.__setattr__(
            self,
            "reformat_temperature",
            _check_temperature(self.reformat_temperature, "reformat_temperature"),
        )
        _check_tokens(self.reformat_max_output_tokens, "reformat_max_output_tokens")
        object.__setattr__(self, "timeout_seconds", _check_timeout(self.timeout_seconds))


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """All stage settings derived from one loaded config."""

    specialist: SpecialistSettings
    reflexion: ReflexionSettings
    security: SecuritySettings
    assembler: AssemblerSettings


def resolve_specialist_settings(
    options: Mapping[str, object] | SpecialistSettings | None = None,
) -> SpecialistSettings:
    return _resolve(SpecialistSettings, options, section="specialist")


def resolve_reflexion_settings(
    options: Mapping[str, object] | ReflexionSettings | None = None,
) -> ReflexionSettings:
    return _resolve(ReflexionSettings, options, section="reflexion")


def resolve_security_settings(
    options: Mapping[str, object] | SecuritySettings | None = None,
) -> SecuritySettings:
    return _resolve(SecuritySettings, options, section="security")


def resolve_assembler_settings(
    options: Mapping[str, object] | AssemblerSettings | None = None,
) -> AssemblerSettings:
    return _resolve(AssemblerSettings, options, section="assembly")


def settings_from_config(config: Mapping[str, Any]) -> PipelineSettings:
    """Build every stage's settings from a validated config (see ``load_config``)."""

    timeout = config["provider"]["timeout_seconds"]
    return PipelineSettings(
        specialist=resolve_specialist_settings(
            {**config["specialist"], "timeout_seconds": timeout}
        ),
        reflexion=resolve_reflexion_settings({**config["reflexion"], "timeout_seconds": timeout}),
        security=resolve_security_settings({**config["security"], "timeout_seconds": timeout}),
        assembler=resolve_assembler_settings({**config["assembly"], "timeout_seconds": timeout}),
    )


def _resolve(
    settings_type: type[TSettings],
    options: Mapping[str, object] | TSettings | None,
    *,
    section: str,
) -> TSettings:
    if options is None:
        return settings_type()
    if isinstance(options, settings_type):
        return options
    if not isinstance(options, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(section, f"expected object, got {type(options).__name__}"),)
        )

    known = {item.name for item in fields(settings_type)}  # type: ignore[arg-type]
    issues: list[ConfigValidationIssue] = []
    values: dict[str, object] = {}
    for key in sorted(options):
        if key not in known:
            issues.append(ConfigValidationIssue(f"{section}.{key}", "unknown field"))
            continue
        if options[key] is not None:
            values[key] = options[key]
    if issues:
        raise ConfigValidationError(issues)

    try:
        return settings_type(**values)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError((ConfigValidationIssue(section, str(exc)),)) from exc


__all__ = [
    "AssemblerSettings",
    "PipelineSettings",
    "ReflexionSettings",
    "SecuritySettings",
    "SpecialistSettings",
    "resolve_assembler_settings",
    "resolve_reflexion_settings",
    "resolve_security_settings",
    "resolve_specialist_settings",
    "settings_from_config",
]
