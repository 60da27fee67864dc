"""Unit tests for tech stack and domain recovery from fragment deliverables."""

from __future__ import annotations

from datetime import UTC, datetime

from brickline.domain.models import ProjectMetadata, VerifiedFragment
from brickline.integration_plane.metadata_backfill import (
    backfill_metadata,
    clean_tech_stack,
    scrape_domain,
    scrape_tech_stack,
)

VERIFIED_AT = datetime(2026, 10, 19, tzinfo=UTC)


def _fragment(
    fragment_id: str, deliverable: str, instruction: str = "Describe it"
) -> VerifiedFragment:
    return VerifiedFragment(
        id=fragment_id,
        persona="Architect",
        instruction=instruction,
        confidence=75,
        verified_at=VERIFIED_AT,
        deliverable=deliverable,
    )


STACK_FRAGMENT = _fragment(
    "f1",
    "Intro text\n## Tech Stack\n- Python\n- PostgreSQL: primary store\n- https://example.com\n"
    "\n## Next Section\n- Ignored",
)


def test_scrape_tech_stack_reads_labeled_section_only() -> None:
    assert scrape_tech_stack([STACK_FRAGMENT]) == ("Python", "PostgreSQL")


def test_scrape_tech_stack_dedupes_across_fragments() -> None:
    other = _fragment("f2", "**Technologies**\n- Python\n- Redis")

    assert scrape_tech_stack([STACK_FRAGMENT, other]) == ("Python", "PostgreSQL", "Redis")


def test_scrape_tech_stack_falls_back_to_foundation_fragment() -> None:
    foundation = _fragment(
        "f1",
        "- Rust\n- tokio runtime\n- Axum",
        instruction="Write the project constitution and tech foundation",
    )
    weaker = _fragment("f2", "- Go", instruction="Describe the stack")

    assert scrape_tech_stack([weaker, foundation]) == ("Rust", "Axum")
    assert scrape_tech_stack([_fragment("f3", "- Rust")]) == ()


def test_scrape_domain() -> None:
    assert scrape_domain([_fragment("f1", "Industry: Healthcare\nMore")]) == "Healthcare"
    assert scrape_domain([_fragment("f1", "No labels here")]) is None


def test_backfill_fills_only_missing_fields() -> None:
    metadata = ProjectMetadata(name="Ledger", domain="Unknown", tech_stack=("Go",))
    fragments = [STACK_FRAGMENT, _fragment("f2", "Domain: Fintech")]

    filled = backfill_metadata(metadata, fragments)

    assert filled.domain == "Fintech"
    assert filled.tech_stack == ("Go",)
    assert filled.name == "Ledger"
    assert metadata.domain == "Unknown"


def test_backfill_returns_input_when_nothing_is_found() -> None:
    metadata = ProjectMetadata()

    assert backfill_metadata(metadata, [_fragment("f1", "Plain prose")]) is metadata


def test_clean_tech_stack_drops_placeholders() -> None:
    assert clean_tech_stack(["Python", "", "None", "python", "Python", " null "]) == (
        "Python",
        "python",
    )
