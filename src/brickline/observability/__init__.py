"""Observability exports: structlog configuration, correlation scopes, redaction."""

from brickline.observability.logging import (
    configure_logging,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    redact_event_dict,
)

__all__ = [
    "configure_logging",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "redact_event_dict",
]
