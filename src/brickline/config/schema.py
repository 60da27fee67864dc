"""
brickline — configuration schema and validation.

File: src/brickline/config/schema.py
Last updated: 2026-10-19

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Defaults for every pipeline stage (specialist, reflexion, security, assembly),
  the generation provider, and observability.
- A field table driving type/range validation with structured issue paths.
- Deterministic deep-merge and redaction helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject embedded secrets; only env var names may be configured.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from brickline.constants import CONFIG_SCHEMA_VERSION

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "apikey", "credential", "credentials"}
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = ("api_key", "access_token", "private_key")

FieldKind = Literal["str", "optional_str", "env", "bool", "int", "float", "enum"]


class MetaConfig(TypedDict):
    schema_version: int


class SpecialistConfig(TypedDict):
    model: str
    temperature: float
    max_output_tokens: int
    extraction_mode: Literal["sections", "whole_object"]


class ReflexionConfig(TypedDict):
    critique_model: str
    critique_temperature: float
    critique_max_output_tokens: int
    repair_temperature: float
    repair_max_output_tokens: int


class SecurityConfig(TypedDict):
    model: str
    deep_analysis: bool
    allow_code_generation: bool
    temperature: float
    max_output_tokens: int


class AssemblyConfig(TypedDict):
    output_mode: Literal["flat", "raw", "categorized"]
    use_reformatting: bool
    formatting_model: str
    reformat_temperature: float
    reformat_max_output_tokens: int
    strict_preservation: bool


class ProviderConfig(TypedDict):
    name: Literal["openai"]
    api_key_env: str
    base_url: str
    timeout_seconds: float


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "console"]
    redact_secrets: bool


class BricklineConfig(TypedDict):
    meta: MetaConfig
    specialist: SpecialistConfig
    reflexion: ReflexionConfig
    security: SecurityConfig
    assembly: AssemblyConfig
    provider: ProviderConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[BricklineConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "specialist": {
        "model": "gpt-4o",
        "temperature": 0.7,
        "max_output_tokens": 4096,
        "extraction_mode": "sections",
    },
    "reflexion": {
        "critique_model": "gpt-4o-mini",
        "critique_temperature": 0.3,
        "critique_max_output_tokens": 1024,
        "repair_temperature": 0.5,
        "repair_max_output_tokens": 4096,
    },
    "security": {
        "model": "gpt-4o-mini",
        "deep_analysis": True,
        "allow_code_generation": False,
        "temperature": 0.3,
        "max_output_tokens": 2048,
    },
    "assembly": {
        "output_mode": "flat",
        "use_reformatting": False,
        "formatting_model": "gpt-4o-mini",
        "reformat_temperature": 0.1,
        "reformat_max_output_tokens": 8192,
        "strict_preservation": False,
    },
    "provider": {
        "name": "openai",
        "api_key_env": "BRICKLINE_OPENAI_API_KEY",
        "base_url": "",
        "timeout_seconds": 120.0,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class _FieldSpec:
    kind: FieldKind
    minimum: float | None = None
    maximum: float | None = None
    choices: tuple[str, ...] = ()


_TEMPERATURE: Final[_FieldSpec] = _FieldSpec("float", minimum=0.0, maximum=2.0)
_TOKENS: Final[_FieldSpec] = _FieldSpec("int", minimum=1)

_SCHEMA: Final[dict[str, dict[str, _FieldSpec]]] = {
    "meta": {"schema_version": _FieldSpec("int", minimum=1)},
    "specialist": {
        "model": _FieldSpec("str"),
        "temperature": _TEMPERATURE,
        "max_output_tokens": _TOKENS,
        "extraction_mode": _FieldSpec("enum", choices=("sections", "whole_object")),
    },
    "reflexion": {
        "critique_model": _FieldSpec("str"),
        "critique_temperature": _TEMPERATURE,
        "critique_max_output_tokens": _TOKENS,
        "repair_temperature": _TEMPERATURE,
        "repair_max_output_tokens": _TOKENS,
    },
    "security": {
        "model": _FieldSpec("str"),
        "deep_analysis": _FieldSpec("bool"),
        "allow_code_generation": _FieldSpec("bool"),
        "temperature": _TEMPERATURE,
        "max_output_tokens": _TOKENS,
    },
    "assembly": {
        "output_mode": _FieldSpec("enum", choices=("flat", "raw", "categorized")),
        "use_reformatting": _FieldSpec("bool"),
        "formatting_model": _FieldSpec("str"),
        "reformat_temperature": _TEMPERATURE,
        "reformat_max_output_tokens": _TOKENS,
        "strict_preservation": _FieldSpec("bool"),
    },
    "provider": {
        "name": _FieldSpec("enum", choices=("openai",)),
        "api_key_env": _FieldSpec("env"),
        "base_url": _FieldSpec("optional_str"),
        "timeout_seconds": _FieldSpec("float", minimum=0.001),
    },
    "observability": {
        "log_level": _FieldSpec("enum", choices=("DEBUG", "INFO", "WARNING", "ERROR")),
        "log_format": _FieldSpec("enum", choices=("json", "console")),
        "redact_secrets": _FieldSpec("bool"),
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> BricklineConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate a full config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized: dict[str, Any] = {}
    for section in sorted(config):
        if section not in _SCHEMA:
            issues.add(str(section), "unknown section")
    for section in _SCHEMA:
        payload = config.get(section)
        if not isinstance(payload, Mapping):
            message = "missing required section" if payload is None else "expected object"
            issues.add(section, message)
            continue
        normalized[section] = validate_section(section, payload, issues=issues, partial=False)

    if not issues.has_issues:
        version = normalized["meta"]["schema_version"]
        if version != ConfigSchemaVersion:
            issues.add("meta.schema_version", migration_guidance(version))

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def validate_section(
    section: str,
    payload: Mapping[str, object],
    *,
    issues: _IssueCollector | None = None,
    partial: bool = True,
) -> dict[str, Any]:
    """Validate one section; with ``partial=True`` absent keys are allowed."""

    collector = issues if issues is not None else _IssueCollector()
    field_specs = _SCHEMA.get(section)
    if field_specs is None:
        collector.add(section, "unknown section")
        if issues is None:
            raise ConfigValidationError(collector.items())
        return {}

    out: dict[str, Any] = {}
    for key in sorted(payload):
        path = f"{section}.{key}"
        spec = field_specs.get(key)
        if spec is None:
            if _looks_sensitive_key(str(key)):
                collector.add(path, "embedded secret values are forbidden; use an *_env key")
            else:
                collector.add(path, "unknown field")
            continue
        parsed = _parse_field(payload[key], spec, path, collector)
        if parsed is not _INVALID:
            out[key] = parsed
    if not partial:
        for key in sorted(field_specs):
            if key not in payload:
                collector.add(f"{section}.{key}", "missing required field")

    if issues is None and collector.has_issues:
        raise ConfigValidationError(collector.items())
    return out


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade brickline.toml to the current schema"
        )
    return (
        f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
        "upgrade the brickline runtime"
    )


def redact_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Return a redacted copy where env-var bindings and secret-like keys are masked."""

    out: dict[str, Any] = {}
    for key in sorted(config):
        value = config[key]
        if isinstance(value, Mapping):
            out[key] = redact_config(value)
        elif _key_is_sensitive_for_redaction(str(key)):
            out[key] = "<redacted>"
        else:
            out[key] = _deep_copy_value(value)
    return out


_INVALID: Final = object()


def _parse_field(value: object, spec: _FieldSpec, path: str, issues: _IssueCollector) -> object:
    if spec.kind == "bool":
        if isinstance(value, bool):
            return value
        issues.add(path, f"expected boolean, got {type(value).__name__}")
        return _INVALID

    if spec.kind in {"int", "float"}:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            expected = "integer" if spec.kind == "int" else "number"
            issues.add(path, f"expected {expected}, got {type(value).__name__}")
            return _INVALID
        if spec.kind == "int" and not isinstance(value, int):
            issues.add(path, f"expected integer, got {type(value).__name__}")
            return _INVALID
        number = value if spec.kind == "int" else float(value)
        if not math.isfinite(number):
            issues.add(path, "must be finite")
            return _INVALID
        if spec.minimum is not None and number < spec.minimum:
            issues.add(path, f"must be >= {spec.minimum}")
            return _INVALID
        if spec.maximum is not None and number > spec.maximum:
            issues.add(path, f"must be <= {spec.maximum}")
            return _INVALID
        return number

    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return _INVALID
    text = value.strip()
    if spec.kind == "optional_str":
        return text
    if not text:
        issues.add(path, "must not be empty")
        return _INVALID
    if spec.kind == "env" and not _ENV_NAME_PATTERN.fullmatch(text):
        issues.add(path, "must be an env var name (example: BRICKLINE_OPENAI_API_KEY)")
        return _INVALID
    if spec.kind == "enum" and text not in spec.choices:
        expected = ", ".join(sorted(spec.choices))
        issues.add(path, f"invalid value {text!r}; expected one of: {expected}")
        return _INVALID
    return text


def _looks_sensitive_key(key: str) -> bool:
    normalized = key.strip().lower().replace("-", "_")
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    return any(token in _SENSITIVE_KEY_TOKENS for token in normalized.split("_") if token)


def _key_is_sensitive_for_redaction(key: str) -> bool:
    normalized = key.strip().lower()
    return normalized.endswith("_env") or _looks_sensitive_key(normalized)


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested = existing if isinstance(existing, dict) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


__all__ = [
    "DEFAULT_CONFIG",
    "AssemblyConfig",
    "BricklineConfig",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "ObservabilityConfig",
    "ProviderConfig",
    "ReflexionConfig",
    "SecurityConfig",
    "SpecialistConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
    "validate_section",
]
