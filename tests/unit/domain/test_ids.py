"""Unit tests for canonical ID helpers."""

from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta, timezone

import pytest

from brickline.domain import ids

FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC)


def _zero_bytes(size: int) -> bytes:
    return b"\x00" * size


def _ff_bytes(size: int) -> bytes:
    return b"\xff" * size


def test_generate_ulid_charset_and_length() -> None:
    ulid_value = ids.generate_ulid(timestamp_ms=123_456, randbytes=_ff_bytes)

    assert len(ulid_value) == ids.ULID_LENGTH
    assert ulid_value == ulid_value.upper()
    assert all(char in ids.CROCKFORD_BASE32_ALPHABET for char in ulid_value)
    assert ids.parse_ulid_timestamp_ms(ulid_value) == 123_456


def test_generate_ulid_no_collision_with_default_entropy() -> None:
    generated = {ids.generate_ulid(timestamp_ms=1_000) for _ in range(5_000)}
    assert len(generated) == 5_000


def test_timestamp_boundaries() -> None:
    assert ids.parse_ulid_timestamp_ms("0" * 26) == 0
    top = ids.generate_ulid(timestamp_ms=ids.ULID_MAX_TIMESTAMP_MS, randbytes=_zero_bytes)
    assert ids.parse_ulid_timestamp_ms(top) == ids.ULID_MAX_TIMESTAMP_MS

    with pytest.raises(ValueError, match="out of range"):
        ids.generate_ulid(timestamp_ms=ids.ULID_MAX_TIMESTAMP_MS + 1)
    with pytest.raises(ValueError, match="must be an int"):
        ids.generate_ulid(timestamp_ms=True)


def test_entropy_source_is_validated() -> None:
    with pytest.raises(ValueError, match="exactly 10 bytes"):
        ids.generate_ulid(timestamp_ms=0, randbytes=lambda size: b"\x00" * (size - 1))


def test_ulids_sort_by_timestamp() -> None:
    rng = random.Random(7)
    timestamps = sorted(rng.randrange(0, ids.ULID_MAX_TIMESTAMP_MS) for _ in range(50))
    generated = [
        ids.generate_ulid(timestamp_ms=value, randbytes=_zero_bytes) for value in timestamps
    ]

    assert generated == sorted(generated)


def test_id_factory_uses_injected_clock_and_entropy() -> None:
    factory = ids.IdFactory(clock=lambda: FIXED_NOW, randbytes=_zero_bytes)

    issue_id = factory.new_id(ids.ISSUE_ID_PREFIX)
    prefix, ulid_part = ids.split_prefixed_id(issue_id)

    assert prefix == "issue"
    assert ids.parse_ulid_timestamp_ms(ulid_part) == int(FIXED_NOW.timestamp() * 1000)
    assert issue_id == factory.new_id(ids.ISSUE_ID_PREFIX)


def test_id_factory_normalizes_clock_to_utc() -> None:
    naive = ids.IdFactory(clock=lambda: datetime(2026, 1, 1, 8, 0, 0))
    offset = ids.IdFactory(
        clock=lambda: datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    )

    assert naive.now() == datetime(2026, 1, 1, 8, 0, 0, tzinfo=UTC)
    assert offset.now() == datetime(2026, 1, 1, 8, 0, 0, tzinfo=UTC)


@pytest.mark.parametrize("prefix", ["", "bad-prefix"])
def test_invalid_prefixes_are_rejected(prefix: str) -> None:
    with pytest.raises(ValueError, match="prefix"):
        ids.IdFactory().new_id(prefix)


def test_split_prefixed_id_rejects_malformed_values() -> None:
    with pytest.raises(ValueError, match="expected"):
        ids.split_prefixed_id("no_separator")
    with pytest.raises(ValueError, match="invalid ULID character"):
        ids.split_prefixed_id("issue-" + "U" * 26)
