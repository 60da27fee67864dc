"""
brickline — generation adapters package

File: src/brickline/synthesis_plane/providers/__init__.py
Last updated: 2026-10-19

Purpose
- Export the generation contract, error taxonomy, and concrete adapters.
"""

from brickline.synthesis_plane.providers.base import (
    GenerationClient,
    GenerationConfig,
    GenerationRequest,
    GenerationResponse,
    ProviderAuthenticationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    invoke_generation,
)
from brickline.synthesis_plane.providers.openai_adapter import OpenAIGenerationClient

__all__ = [
    "GenerationClient",
    "GenerationConfig",
    "GenerationRequest",
    "GenerationResponse",
    "OpenAIGenerationClient",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderResponseError",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "invoke_generation",
]
