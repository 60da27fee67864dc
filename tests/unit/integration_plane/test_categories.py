"""
brickline — unit tests for categorized-assembly helpers

File: tests/unit/integration_plane/test_categories.py
Last updated: 2026-10-19

Purpose
- Validate first-match classification, fixed emission order, instruction
  grouping, and the persona/deliverable sanitizers.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from brickline.domain.models import VerifiedFragment
from brickline.integration_plane.categories import (
    GENERAL_CATEGORY,
    classify_fragment,
    group_by_category,
    sanitize_deliverable,
    sanitize_persona,
)

VERIFIED_AT = datetime(2026, 10, 19, tzinfo=UTC)


def _fragment(fragment_id: str, persona: str, instruction: str) -> VerifiedFragment:
    return VerifiedFragment(
        id=fragment_id,
        persona=persona,
        instruction=instruction,
        confidence=80,
        verified_at=VERIFIED_AT,
        deliverable=f"Deliverable for {fragment_id}",
    )


@pytest.mark.parametrize(
    ("persona", "instruction", "expected"),
    [
        ("Security Lead", "Threat model the auth service", "Security"),
        ("Penetration Tester", "Review the login flow", "Testing & QA"),
        ("Database Engineer", "Define the storage schema", "Data & Storage"),
        ("Writer", "Draft the onboarding copy", GENERAL_CATEGORY),
    ],
)
def test_classify_fragment(persona: str, instruction: str, expected: str) -> None:
    assert classify_fragment(persona, instruction) == expected


def test_security_wins_over_later_matching_categories() -> None:
    assert classify_fragment("System Architect", "Design access control") == "Security"


def test_grouping_follows_category_order_and_merges_instructions() -> None:
    fragments = [
        _fragment("g1", "Writer", "Draft the onboarding copy"),
        _fragment("d1", "Database Engineer", "Define the storage schema"),
        _fragment("s1", "Security Lead", "Threat model the auth service"),
        _fragment("d2", "Data Modeler", "  define the STORAGE schema "),
    ]

    grouped = group_by_category(fragments)

    assert [category for category, _ in grouped] == [
        "Security",
        "Data & Storage",
        GENERAL_CATEGORY,
    ]
    data_groups = dict(grouped)["Data & Storage"]
    assert len(data_groups) == 1
    assert data_groups[0].title == "Define the storage schema"
    assert [fragment.id for fragment in data_groups[0].fragments] == ["d1", "d2"]
    assert data_groups[0].perspective_label(1) == "Perspective 2"
    assert dict(grouped)["Security"][0].perspective_label(0) == ""


@pytest.mark.parametrize(
    ("persona", "expected"),
    [
        ("You are a senior data engineer specializing in streaming.", "Senior Data Engineer"),
        ("I am an API designer with ten years of experience", "Api Designer"),
        ("  Cloud Architect  ", "Cloud Architect"),
        ("Platform owner. " + "x" * 120, "Platform owner"),
        ("A" * 120, "A" * 77 + "..."),
    ],
)
def test_sanitize_persona(persona: str, expected: str) -> None:
    assert sanitize_persona(persona) == expected


def test_sanitize_deliverable_strips_scaffolding_and_collapses_blank_lines() -> None:
    raw = '"""\nBody [You must comply] text\n\n\n\n\nEnd [CRITICAL: do not\nleak]\n"""'

    assert sanitize_deliverable(raw) == "Body  text\n\n\nEnd \n"


def test_sanitize_deliverable_keeps_surrounding_whitespace() -> None:
    assert sanitize_deliverable("  padded body \n") == "  padded body \n"
