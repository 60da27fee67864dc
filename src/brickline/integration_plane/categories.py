"""
brickline — fragment categorization and sanitation for categorized assembly

File: src/brickline/integration_plane/categories.py
Last updated: 2026-10-19

Purpose
- Assign each fragment to exactly one category of a fixed ordered list and
  group near-identical tasks within a category.

What should be included in this file
- First-match category rule table over persona + instruction.
- Fixed category emission order.
- Instruction grouping keyed by case-folded, trimmed instruction text.
- Persona and deliverable sanitizers used only by categorized rendering.

Functional requirements
- Unmatched fragments fall into ``General``.
- Group and fragment order follow input order.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final

from brickline.domain.models import VerifiedFragment

GENERAL_CATEGORY: Final[str] = "General"

CATEGORY_ORDER: Final[tuple[str, ...]] = (
    "Architecture",
    "Security",
    "Data & Storage",
    "API & Interfaces",
    "Algorithm & Logic",
    "Testing & QA",
    "Infrastructure & DevOps",
    "Frontend & UI",
    "Backend & Services",
    GENERAL_CATEGORY,
)

# Match order differs from emission order; first hit wins.
CATEGORY_RULES: Final[tuple[tuple[str, re.Pattern[str]], ...]] = (
    (
        "Security",
        re.compile(
            r"security|auth|access|hardware|isolation|rust safety|risk assessment", re.I
        ),
    ),
    (
        "Algorithm & Logic",
        re.compile(r"algorithm|recursive|logic|intelligence density|halting problem", re.I),
    ),
    (
        "Testing & QA",
        re.compile(r"test|qa|quality|adversarial|verification|fuzzing|validation", re.I),
    ),
    ("Architecture", re.compile(r"architect|structure|system|design|pattern", re.I)),
    ("Data & Storage", re.compile(r"data|database|schema|storage|model", re.I)),
    ("API & Interfaces", re.compile(r"api|endpoint|interface|contract", re.I)),
    (
        "Infrastructure & DevOps",
        re.compile(
            r"infrastructure|deploy|cloud|devops|docker|kubernetes|container|rollback|recovery",
            re.I,
        ),
    ),
    ("Frontend & UI", re.compile(r"frontend|ui|ux|interface|react|component", re.I)),
    ("Backend & Services", re.compile(r"backend|server|service|microservice", re.I)),
)

_ROLE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?:You are|I am) (?:a|an)\s+([^.]+?)(?:\s+specializing|\s+with\s+|\s+who\s+|\.|$)",
    re.I,
)
_SHORT_PERSONA_LIMIT: Final[int] = 100
_SENTENCE_LIMIT: Final[int] = 80

_TRIPLE_QUOTE_OPEN_RE: Final[re.Pattern[str]] = re.compile(r'^"""\s*', re.M)
_TRIPLE_QUOTE_CLOSE_RE: Final[re.Pattern[str]] = re.compile(r'\s*"""$', re.M)
_INSTRUCTION_LEAK_RES: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\[You must.*?\]", re.S),
    re.compile(r"\[CRITICAL:.*?\]", re.S),
)
_EXCESS_BLANK_LINES_RE: Final[re.Pattern[str]] = re.compile(r"\n{4,}")


@dataclass(frozen=True, slots=True)
class InstructionGroup:
    """Fragments sharing one normalized instruction; the first one's text titles the group."""

    title: str
    fragments: tuple[VerifiedFragment, ...]

    def perspective_label(self, index: int) -> str:
        return f"Perspective {index + 1}" if len(self.fragments) > 1 else ""


def classify_fragment(persona: str, instruction: str) -> str:
    text = f"{persona} {instruction}".lower()
    for category, pattern in CATEGORY_RULES:
        if pattern.search(text):
            return category
    return GENERAL_CATEGORY


def instruction_key(instruction: str) -> str:
    return instruction.lower().strip()


def group_by_category(
    fragments: Iterable[VerifiedFragment],
) -> list[tuple[str, list[InstructionGroup]]]:
    """Bucket fragments by category, then by instruction, in fixed category order.

    Empty categories are omitted.
    """

    by_category: dict[str, dict[str, list[VerifiedFragment]]] = {}
    for fragment in fragments:
        category = classify_fragment(fragment.persona, fragment.instruction)
        groups = by_category.setdefault(category, {})
        groups.setdefault(instruction_key(fragment.instruction), []).append(fragment)

    ordered: list[tuple[str, list[InstructionGroup]]] = []
    for category in CATEGORY_ORDER:
        groups = by_category.get(category)
        if not groups:
            continue
        ordered.append(
            (
                category,
                [
                    InstructionGroup(title=members[0].instruction, fragments=tuple(members))
                    for members in groups.values()
                ],
            )
        )
    return ordered


def sanitize_persona(persona: str) -> str:
    """Reduce a role description ("You are a data engineer ...") to a short title."""

    match = _ROLE_RE.match(persona)
    if match is not None:
        return " ".join(word.capitalize() for word in match.group(1).strip().split(" "))
    if len(persona) < _SHORT_PERSONA_LIMIT:
        return persona.strip()
    first_sentence = persona.split(".")[0]
    if len(first_sentence) <= _SENTENCE_LIMIT:
        return first_sentence.strip()
    return first_sentence[: _SENTENCE_LIMIT - 3].strip() + "..."


def sanitize_deliverable(deliverable: str) -> str:
    """Strip leaked prompt scaffolding; surrounding whitespace is left untouched."""

    clean = _TRIPLE_QUOTE_OPEN_RE.sub("", deliverable)
    clean = _TRIPLE_QUOTE_CLOSE_RE.sub("", clean)
    for pattern in _INSTRUCTION_LEAK_RES:
        clean = pattern.sub("", clean)
    return _EXCESS_BLANK_LINES_RE.sub("\n\n\n", clean)


__all__ = [
    "CATEGORY_ORDER",
    "CATEGORY_RULES",
    "GENERAL_CATEGORY",
    "InstructionGroup",
    "classify_fragment",
    "group_by_category",
    "instruction_key",
    "sanitize_deliverable",
    "sanitize_persona",
]
