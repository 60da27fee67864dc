"""Structured logging setup: structlog over stdlib with JSON-lines output and redaction."""

from __future__ import annotations

import logging
import math
import re
import sys
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import IO, Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_REDACTED_VALUE: Final[str] = "***REDACTED***"
_DEFAULT_LOGGER_NAME: Final[str] = "brickline"

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
    "client_secret",
)

# Token counts are metrics, not credentials.
_NON_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset(
    {"max_output_tokens", "max_tokens", "token_count", "tokens"}
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|client_secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_OPENAI_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"\bsk-[A-Za-z0-9]{12,}\b")

# Keys structlog itself manages; never redacted.
_RESERVED_EVENT_KEYS: Final[frozenset[str]] = frozenset(
    {"event", "level", "logger", "timestamp", "exception", "stack"}
)


def configure_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    stream: IO[str] | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Wire structlog to a stdlib handler and return the configured package logger.

    Parameters
    ----------
    observability_config:
        Mapping compatible with the ``[observability]`` section of ``brickline.toml``
        (``log_level``, ``log_format``, ``redact_secrets``).
    stream:
        Output stream; defaults to ``sys.stderr``.
    logger_name:
        Stdlib logger that receives every ``brickline.*`` record.
    """

    cfg = dict(observability_config or {})
    level = _parse_log_level(cfg.get("log_level", "INFO"))
    log_format = str(cfg.get("log_format", "json")).strip().lower()
    if log_format not in {"json", "console"}:
        raise ValueError(f"unsupported log_format {log_format!r}; expected json or console")
    redact_enabled = bool(cfg.get("redact_secrets", True))

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if redact_enabled:
        shared_processors.append(redact_event_dict)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def get_correlation_context() -> dict[str, str]:
    return {
        key: value
        for key, value in structlog.contextvars.get_contextvars().items()
        if isinstance(value, str)
    }


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind non-empty correlation fields (run id, fragment id, ...) for the block."""

    bound: dict[str, str] = {}
    for key, value in fields.items():
        if value is None:
            continue
        name = _validate_correlation_part(key, "key")
        bound[name] = _validate_correlation_part(value, "value")
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def redact_event_dict(
    logger: object, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking secret-like keys and credential-looking strings."""

    for key in list(event_dict):
        if key in _RESERVED_EVENT_KEYS:
            value = event_dict[key]
            if isinstance(value, str):
                event_dict[key] = _redact_string(value)
            continue
        event_dict[key] = _redact_value(_normalize_json_value(event_dict[key]), key_context=key)
    return event_dict


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Default deep redaction for secrets."""
    return _redact_value(value, key_context=None)


def _parse_log_level(value: object) -> int:
    if isinstance(value, bool):
        raise ValueError("level must be int or str, got bool")
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")

    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _validate_correlation_part(value: object, kind: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"correlation {kind} must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"correlation {kind} must not be empty")
    return normalized


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else _REDACTED_VALUE
    if isinstance(value, datetime):
        normalized = value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
        return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_normalize_json_value(item) for item in value]
    return str(value)


def _redact_value(value: JSONValue, *, key_context: str | None) -> JSONValue:
    if key_context is not None and _requires_redaction_for_key(key_context):
        return _REDACTED_VALUE
    if isinstance(value, str):
        return _redact_string(value)
    if isinstance(value, list):
        return [_redact_value(item, key_context=None) for item in value]
    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=key) for key, item in value.items()}
    return value


def _requires_redaction_for_key(key: str) -> bool:
    normalized = key.strip().lower().replace("-", "_")
    if normalized in _NON_SENSITIVE_KEYS or normalized.endswith("_env"):
        return False
    return any(term in normalized for term in _SENSITIVE_KEY_TERMS)


def _redact_string(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", text
    )
    redacted = _BEARER_TOKEN_PATTERN.sub(f"Bearer {_REDACTED_VALUE}", redacted)
    return _OPENAI_KEY_PATTERN.sub(_REDACTED_VALUE, redacted)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "configure_logging",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "redact_event_dict",
]
