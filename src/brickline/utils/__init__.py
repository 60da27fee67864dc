"""Utility exports for hashing and tolerant structured-text parsing."""

from brickline.utils.hashing import sha256_bytes, sha256_text
from brickline.utils.structured_text import (
    ParseOutcome,
    extract_json,
    extract_with_preference,
    extract_yaml,
    strip_code_fence,
)

__all__ = [
    "ParseOutcome",
    "extract_json",
    "extract_with_preference",
    "extract_yaml",
    "sha256_bytes",
    "sha256_text",
    "strip_code_fence",
]
