"""
brickline config package public API.

File: src/brickline/config/__init__.py
Last updated: 2026-10-19

Purpose
- Export config loading/validation entrypoints, per-stage settings, and public error types.

What should be included in this file
- Public schema constants and validation/report types.
- Loader APIs for effective runtime config and redacted dumps.
- Settings resolvers used by pipeline components.

Functional requirements
- Support loading from ``brickline.toml`` + ``BRICKLINE_`` env overrides.
- Fail fast with clear structured validation/load errors.

Non-functional requirements
- Keep import-time surface small and deterministic.
"""

from brickline.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    effective_config,
    load_config,
)
from brickline.config.schema import (
    DEFAULT_CONFIG,
    BricklineConfig,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)
from brickline.config.settings import (
    AssemblerSettings,
    PipelineSettings,
    ReflexionSettings,
    SecuritySettings,
    SpecialistSettings,
    resolve_assembler_settings,
    resolve_reflexion_settings,
    resolve_security_settings,
    resolve_specialist_settings,
    settings_from_config,
)

__all__ = [
    "AssemblerSettings",
    "BricklineConfig",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PipelineSettings",
    "ReflexionSettings",
    "SecuritySettings",
    "SpecialistSettings",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "effective_config",
    "load_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "resolve_assembler_settings",
    "resolve_reflexion_settings",
    "resolve_security_settings",
    "resolve_specialist_settings",
    "settings_from_config",
    "validate_config",
]
