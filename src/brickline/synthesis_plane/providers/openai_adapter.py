"""
brickline — OpenAI generation adapter

File: src/brickline/synthesis_plane/providers/openai_adapter.py
Last updated: 2026-10-19

Purpose
- Implement ``GenerationClient`` on top of the OpenAI chat completions API.

What should be included in this file
- Lazy SDK import with injected-client support for tests.
- API key resolution from a configured environment variable.
- Exception mapping into the provider error taxonomy.

Non-functional requirements
- Must be configurable and safe; do not hardcode endpoints/keys.
"""

from __future__ import annotations

import importlib
import os
from collections.abc import Mapping, Sequence
from typing import Protocol, cast

from brickline.synthesis_plane.providers.base import (
    GenerationRequest,
    GenerationResponse,
    ProviderAuthenticationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)

DEFAULT_API_KEY_ENV = "BRICKLINE_OPENAI_API_KEY"


class _ChatCompletionsAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _ChatAPI(Protocol):
    completions: _ChatCompletionsAPI


class _OpenAIClient(Protocol):
    chat: _ChatAPI


class OpenAIGenerationClient:
    """Chat-completions adapter with optional SDK dependency and injected client support."""

    provider_name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_key_env: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: _OpenAIClient | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._api_key = api_key.strip() if isinstance(api_key, str) and api_key.strip() else None
        self._api_key_env = api_key_env or DEFAULT_API_KEY_ENV
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._environ = environ

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        client = self._ensure_client()
        try:
            raw = await client.chat.completions.create(
                model=request.model,
                messages=[{"role": "user", "content": request.contents}],
                temperature=request.config.temperature,
                max_tokens=request.config.max_output_tokens,
            )
        except Exception as exc:  # noqa: BLE001
            raise self._map_exception(exc) from exc
        return _normalize_response(raw, requested_model=request.model)

    def _ensure_client(self) -> _OpenAIClient:
        if self._client is None:
            self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _OpenAIClient:
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise ProviderUnavailableError(
                "openai SDK is not installed; install the 'openai' extra",
                provider=self.provider_name,
            ) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise ProviderUnavailableError(
                "openai SDK does not expose AsyncOpenAI", provider=self.provider_name
            )

        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._base_url is not None:
            init_kwargs["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_OpenAIClient", async_openai(**init_kwargs))

    def _resolve_api_key(self) -> str:
        if self._api_key is not None:
            return self._api_key
        environ = os.environ if self._environ is None else self._environ
        configured = environ.get(self._api_key_env)
        if configured is None or not configured.strip():
            raise ProviderAuthenticationError(
                f"missing OpenAI API key in env var {self._api_key_env}",
                provider=self.provider_name,
                http_status=401,
            )
        return configured.strip()

    def _map_exception(self, exc: Exception) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc

        status_code = _read_status_code(exc)
        class_name = exc.__class__.__name__.lower()
        detail = " ".join(str(exc).split()) or exc.__class__.__name__

        if status_code in {401, 403} or "auth" in class_name or "permission" in class_name:
            return ProviderAuthenticationError(
                detail, provider=self.provider_name, http_status=status_code
            )
        if status_code == 429 or "ratelimit" in class_name:
            return ProviderRateLimitError(detail, provider=self.provider_name, http_status=429)
        if isinstance(exc, TimeoutError) or "timeout" in class_name:
            return ProviderTimeoutError(detail, provider=self.provider_name)
        if status_code is not None and 400 <= status_code < 500:
            return ProviderServiceError(
                detail, provider=self.provider_name, retryable=False, http_status=status_code
            )
        return ProviderServiceError(detail, provider=self.provider_name, http_status=status_code)


def _normalize_response(raw: object, *, requested_model: str) -> GenerationResponse:
    choices = _read_value(raw, "choices")
    if not isinstance(choices, Sequence) or isinstance(choices, (str, bytes)) or not choices:
        raise ProviderResponseError("response contained no choices", provider="openai")
    message = _read_value(choices[0], "message")
    content = _read_value(message, "content") if message is not None else None
    if not isinstance(content, str):
        raise ProviderResponseError("first choice has no text content", provider="openai")
    model = _read_value(raw, "model")
    return GenerationResponse(
        text=content,
        model_used=model if isinstance(model, str) and model else requested_model,
    )


def _read_status_code(exc: BaseException) -> int | None:
    for key in ("status_code", "status", "http_status"):
        value = getattr(exc, key, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    nested = getattr(response, "status_code", None) if response is not None else None
    return nested if isinstance(nested, int) else None


def _read_value(value: object, key: str) -> object | None:
    if isinstance(value, Mapping):
        return cast("object | None", value.get(key))
    return cast("object | None", getattr(value, key, None))


__all__ = ["DEFAULT_API_KEY_ENV", "OpenAIGenerationClient"]
