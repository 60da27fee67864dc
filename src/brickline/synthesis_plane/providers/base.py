"""
brickline — generation service contract and error taxonomy

File: src/brickline/synthesis_plane/providers/base.py
Last updated: 2026-10-19

Purpose
- Define the single-operation generation contract consumed by every pipeline
  stage: ``{model, contents, config}`` in, ``{text, model_used}`` out.

What should be included in this file
- Request/response dataclasses and the ``GenerationClient`` protocol.
- Normalized transport error taxonomy with retryability classification.
- A single-attempt invocation helper that maps timeouts and arbitrary
  adapter exceptions into the taxonomy.

Functional requirements
- No retries: retry policy belongs to the external caller.
- Empty responses surface as ``ProviderResponseError`` so callers can degrade.

Non-functional requirements
- Must make it easy to add new adapters without touching stage logic.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


def _validate_non_empty_str(value: str, field_name: str, *, strip: bool = True) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip() if strip else value
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


def _normalize_detail(detail: str) -> str:
    text = " ".join(str(detail).split())
    return text or "unspecified provider failure"


@dataclass(frozen=True, slots=True)
class GenerationConfig:
    temperature: float = 0.7
    max_output_tokens: int = 4096

    def __post_init__(self) -> None:
        if isinstance(self.temperature, bool) or not isinstance(self.temperature, (int, float)):
            raise TypeError("temperature must be a number")
        if not math.isfinite(self.temperature) or not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be within 0.0..2.0")
        if isinstance(self.max_output_tokens, bool) or not isinstance(self.max_output_tokens, int):
            raise TypeError("max_output_tokens must be an integer")
        if self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be > 0")
        object.__setattr__(self, "temperature", float(self.temperature))


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    model: str
    contents: str
    config: GenerationConfig = field(default_factory=GenerationConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "model", _validate_non_empty_str(self.model, "model"))
        if not isinstance(self.contents, str):
            raise TypeError("contents must be a string")
        if not isinstance(self.config, GenerationConfig):
            raise TypeError("config must be a GenerationConfig")


@dataclass(frozen=True, slots=True)
class GenerationResponse:
    text: str
    model_used: str

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise TypeError("text must be a string")
        if not isinstance(self.model_used, str):
            raise TypeError("model_used must be a string")


@runtime_checkable
class GenerationClient(Protocol):
    """Protocol implemented by concrete generation adapters."""

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Issue one generation call and return the raw text."""


class ProviderError(RuntimeError):
    """Base normalized transport error with deterministic machine-readable fields."""

    def __init__(
        self,
        *,
        provider: str,
        code: str,
        detail: str,
        retryable: bool,
        http_status: int | None = None,
    ) -> None:
        self.provider = _validate_non_empty_str(provider, "provider")
        self.code = _validate_non_empty_str(code, "code")
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        self.http_status = http_status

        parts = [
            f"provider={self.provider}",
            f"code={self.code}",
            f"retryable={str(self.retryable).lower()}",
        ]
        if self.http_status is not None:
            parts.append(f"http_status={self.http_status}")
        parts.append(f"detail={self.detail}")
        super().__init__(" ".join(parts))


class ProviderUnavailableError(ProviderError):
    """Raised when the adapter runtime/SDK is unavailable."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="unavailable", detail=detail, retryable=False)


class ProviderAuthenticationError(ProviderError):
    """Authentication/authorization failures."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="auth",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderRateLimitError(ProviderError):
    """Rate-limit responses (retryable by the caller)."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = 429,
    ) -> None:
        super().__init__(
            provider=provider,
            code="rate_limit",
            detail=detail,
            retryable=True,
            http_status=http_status,
        )


class ProviderTimeoutError(ProviderError):
    """Timeout failures (retryable by the caller)."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="timeout", detail=detail, retryable=True)


class ProviderServiceError(ProviderError):
    """Service/API failures and unclassified adapter exceptions."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        retryable: bool = True,
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="service",
            detail=detail,
            retryable=retryable,
            http_status=http_status,
        )


class ProviderResponseError(ProviderError):
    """Raised when a response is empty or cannot be normalized."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="response_invalid", detail=detail, retryable=False)


async def invoke_generation(
    client: GenerationClient,
    request: GenerationRequest,
    *,
    timeout_seconds: float | None = None,
    provider: str = "generation",
) -> GenerationResponse:
    """Issue exactly one call and normalize every failure into ``ProviderError``."""

    if timeout_seconds is not None and timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be > 0")
    try:
        if timeout_seconds is None:
            response = await client.generate(request)
        else:
            response = await asyncio.wait_for(client.generate(request), timeout=timeout_seconds)
    except ProviderError:
        raise
    except TimeoutError as exc:
        raise ProviderTimeoutError(
            f"generation call exceeded {timeout_seconds}s", provider=provider
        ) from exc
    except Exception as exc:  # noqa: BLE001
        raise ProviderServiceError(
            f"{type(exc).__name__}: {exc}", provider=provider, retryable=True
        ) from exc

    if not isinstance(response, GenerationResponse):
        raise ProviderResponseError(
            f"adapter returned {type(response).__name__}, expected GenerationResponse",
            provider=provider,
        )
    if not response.text.strip():
        raise ProviderResponseError("generation returned empty text", provider=provider)
    return response


__all__ = [
    "GenerationClient",
    "GenerationConfig",
    "GenerationRequest",
    "GenerationResponse",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderResponseError",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "invoke_generation",
]
