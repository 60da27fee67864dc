"""Identifier and timestamp generation with injectable clock and entropy."""

from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
ULID_RANDOM_BYTES: Final[int] = 10
ULID_MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1
_PREFIX_SEPARATOR: Final[str] = "-"

# Stable entity ID prefixes.
ISSUE_ID_PREFIX: Final[str] = "issue"
ADDENDUM_ID_PREFIX: Final[str] = "addendum"
DOCUMENT_ID_PREFIX: Final[str] = "doc"

_DECODE_TABLE: Final[dict[str, int]] = {
    char: index for index, char in enumerate(CROCKFORD_BASE32_ALPHABET)
}

Clock = Callable[[], datetime]
RandBytes = Callable[[int], bytes]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def generate_ulid(*, timestamp_ms: int, randbytes: RandBytes = secrets.token_bytes) -> str:
    """Generate a ULID as a 26-character uppercase Crockford Base32 string."""
    if isinstance(timestamp_ms, bool) or not isinstance(timestamp_ms, int):
        raise ValueError(f"timestamp_ms must be an int, got {type(timestamp_ms).__name__}")
    if not 0 <= timestamp_ms <= ULID_MAX_TIMESTAMP_MS:
        raise ValueError(
            f"timestamp_ms out of range: expected 0..{ULID_MAX_TIMESTAMP_MS}, got {timestamp_ms}"
        )
    raw = randbytes(ULID_RANDOM_BYTES)
    if not isinstance(raw, (bytes, bytearray, memoryview)):
        raise ValueError("randbytes must return a bytes-like object")
    entropy = bytes(raw)
    if len(entropy) != ULID_RANDOM_BYTES:
        raise ValueError(f"randbytes must return exactly {ULID_RANDOM_BYTES} bytes")
    value = (timestamp_ms << 80) | int.from_bytes(entropy, "big")
    return _encode_crockford_base32(value, ULID_LENGTH)


def parse_ulid_timestamp_ms(value: str) -> int:
    """Extract the 48-bit millisecond timestamp from a ULID."""
    if not isinstance(value, str) or len(value) != ULID_LENGTH:
        raise ValueError(f"ulid must be a {ULID_LENGTH}-character string")
    decoded = 0
    for index, char in enumerate(value):
        digit = _DECODE_TABLE.get(char.upper())
        if digit is None:
            raise ValueError(f"invalid ULID character {char!r} at index {index}")
        decoded = (decoded << 5) | digit
    return decoded >> 80


def split_prefixed_id(id_str: str) -> tuple[str, str]:
    """Split ``<prefix>-<ulid>`` and validate the ULID part."""
    prefix, separator, ulid_part = id_str.partition(_PREFIX_SEPARATOR)
    if not separator or not prefix:
        raise ValueError(f"expected '<prefix>{_PREFIX_SEPARATOR}<ulid>', got {id_str!r}")
    parse_ulid_timestamp_ms(ulid_part)
    return prefix, ulid_part


@dataclass(frozen=True, slots=True)
class IdFactory:
    """Clock + entropy pair used wherever the pipeline stamps ids or timestamps.

    Both collaborators are injected so that tests can pin every generated id
    and timestamp.
    """

    clock: Clock = field(default=utc_now)
    randbytes: RandBytes = field(default=secrets.token_bytes)

    def now(self) -> datetime:
        current = self.clock()
        if current.tzinfo is None or current.utcoffset() is None:
            return current.replace(tzinfo=UTC)
        return current.astimezone(UTC)

    def new_id(self, prefix: str) -> str:
        _validate_prefix(prefix)
        timestamp_ms = int(self.now().timestamp() * 1000)
        ulid = generate_ulid(timestamp_ms=timestamp_ms, randbytes=self.randbytes)
        return f"{prefix}{_PREFIX_SEPARATOR}{ulid}"


def _encode_crockford_base32(value: int, length: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")

    chars = ["0"] * length
    working = value
    for index in range(length - 1, -1, -1):
        chars[index] = CROCKFORD_BASE32_ALPHABET[working & 0b11111]
        working >>= 5

    if working != 0:
        raise ValueError(f"value does not fit into {length} Crockford Base32 characters")
    return "".join(chars)


def _validate_prefix(prefix: str) -> None:
    if not isinstance(prefix, str):
        raise ValueError(f"prefix must be a string, got {type(prefix).__name__}")
    if not prefix:
        raise ValueError("prefix must be non-empty")
    if _PREFIX_SEPARATOR in prefix:
        raise ValueError(f"prefix must not contain '{_PREFIX_SEPARATOR}'")


__all__ = [
    "ADDENDUM_ID_PREFIX",
    "CROCKFORD_BASE32_ALPHABET",
    "DOCUMENT_ID_PREFIX",
    "ISSUE_ID_PREFIX",
    "ULID_LENGTH",
    "Clock",
    "IdFactory",
    "RandBytes",
    "generate_ulid",
    "parse_ulid_timestamp_ms",
    "split_prefixed_id",
    "utc_now",
]
