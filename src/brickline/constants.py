"""Stable constants shared across pipeline planes."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Identity stamped into raw-mode output.
COMPILER_NAME: Final[str] = "brickline-assembler"
COMPILER_VERSION: Final[str] = "2.4"

DEFAULT_CONFIG_FILENAME: Final[str] = "brickline.toml"

# Sentinel markers emitted by generators when they cannot resolve a requirement.
UNKNOWN_MARKER: Final[str] = "[UNKNOWN:"
CONFLICT_MARKER: Final[str] = "[CONFLICT:"

# Severity ordering for deterministic sorting and rendering.
SECURITY_SEVERITY_ORDER: Final[tuple[str, ...]] = ("critical", "high", "medium", "low", "info")

__all__ = [
    "COMPILER_NAME",
    "COMPILER_VERSION",
    "CONFIG_SCHEMA_VERSION",
    "CONFLICT_MARKER",
    "DEFAULT_CONFIG_FILENAME",
    "SECURITY_SEVERITY_ORDER",
    "UNKNOWN_MARKER",
]
