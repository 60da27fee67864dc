"""Best-effort recovery of tech stack and domain metadata from fragment deliverables."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Final

from brickline.domain.models import ProjectMetadata, VerifiedFragment

TECH_SECTION_KEYWORDS: Final[tuple[str, ...]] = (
    "Tech Stack",
    "Technologies",
    "Technology Stack",
    "Core Technologies",
)

_SECTION_HEADER_RES: Final[tuple[re.Pattern[str], ...]] = tuple(
    re.compile(rf"(?:##|###|\*\*)\s*{re.escape(keyword)}", re.I)
    for keyword in TECH_SECTION_KEYWORDS
)
_LIST_ITEM_RE: Final[re.Pattern[str]] = re.compile(r"[-*]\s+([A-Za-z0-9\s.+/#]+?)(?::|\n|$)")
_FOUNDATION_RE: Final[re.Pattern[str]] = re.compile(r"constitution|foundation|tech|stack", re.I)
_DOMAIN_LINE_RE: Final[re.Pattern[str]] = re.compile(
    r"(?:Domain|Industry|Sector):\s*(.+?)(?:\n|$)", re.I
)
_CAPITALIZED_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Z]")

# Header text is skipped before looking for the next section break.
_SECTION_HEADER_SKIP: Final[int] = 10
_PLACEHOLDER_STACK_VALUES: Final[frozenset[str]] = frozenset({"none", "null", "unknown"})


def backfill_metadata(
    metadata: ProjectMetadata, fragments: Sequence[VerifiedFragment]
) -> ProjectMetadata:
    """Return a copy with tech stack and domain filled in where they are missing.

    The input is never mutated. Misses leave the original values in place.
    """

    updates: dict[str, object] = {}
    if not metadata.tech_stack:
        scraped = scrape_tech_stack(fragments)
        if scraped:
            updates["tech_stack"] = scraped
    if metadata.domain is None or metadata.domain.strip().lower() == "unknown":
        domain = scrape_domain(fragments)
        if domain is not None:
            updates["domain"] = domain
    return replace(metadata, **updates) if updates else metadata


def scrape_tech_stack(fragments: Sequence[VerifiedFragment]) -> tuple[str, ...]:
    stack: dict[str, None] = {}
    for fragment in fragments:
        content = fragment.deliverable
        for header_re in _SECTION_HEADER_RES:
            match = header_re.search(content)
            if match is None:
                continue
            start = match.start()
            end = content.find("\n##", start + _SECTION_HEADER_SKIP)
            section = content[start : end if end != -1 else len(content)]
            for item in _list_items(section):
                if 1 < len(item) < 40 and "http" not in item:
                    stack.setdefault(item, None)
    if stack:
        return tuple(stack)

    foundation = _best_foundation_fragment(fragments)
    if foundation is None:
        return ()
    for item in _list_items(foundation.deliverable):
        if 2 < len(item) < 30 and _CAPITALIZED_RE.match(item):
            stack.setdefault(item, None)
    return tuple(stack)


def scrape_domain(fragments: Sequence[VerifiedFragment]) -> str | None:
    for fragment in fragments:
        match = _DOMAIN_LINE_RE.search(fragment.deliverable)
        if match is not None and match.group(1).strip():
            return match.group(1).strip()
    return None


def clean_tech_stack(items: Iterable[str]) -> tuple[str, ...]:
    """Drop blank and placeholder entries, dedupe, keep first-seen order."""

    seen: dict[str, None] = {}
    for item in items:
        if not item or item.strip().lower() in _PLACEHOLDER_STACK_VALUES:
            continue
        seen.setdefault(item, None)
    return tuple(seen)


def _list_items(text: str) -> list[str]:
    return [match.group(1).strip() for match in _LIST_ITEM_RE.finditer(text)]


def _best_foundation_fragment(
    fragments: Sequence[VerifiedFragment],
) -> VerifiedFragment | None:
    best: VerifiedFragment | None = None
    best_score = 0
    for fragment in fragments:
        score = len(_FOUNDATION_RE.findall(fragment.instruction))
        if score > best_score:
            best, best_score = fragment, score
    return best


__all__ = [
    "TECH_SECTION_KEYWORDS",
    "backfill_metadata",
    "clean_tech_stack",
    "scrape_domain",
    "scrape_tech_stack",
]
