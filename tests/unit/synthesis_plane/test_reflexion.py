"""
brickline — unit tests for the critique/repair loop

File: tests/unit/synthesis_plane/test_reflexion.py
Last updated: 2026-10-19

Purpose
- Validate critique/repair parsing defaults, the repair trigger, and the
  loop's state transitions under scripted generation outcomes.

What this test file should cover
- Neutral critique on unparseable responses; JSON fallback.
- Repair parsing with and without section headers.
- Transport failures leave the record untouched with state ``skipped``.
- Quick pre-filter signals.

Functional requirements
- Offline; scripted clients only.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

import pytest

from brickline.domain.models import (
    CritiqueResult,
    Delta,
    Flaw,
    FlawSeverity,
    GenerationRecord,
    ReflexionState,
)
from brickline.synthesis_plane.providers.base import (
    GenerationRequest,
    GenerationResponse,
    ProviderRateLimitError,
)
from brickline.synthesis_plane.reflexion import (
    REPAIR_NOTE_HEADER,
    ReflexionLoop,
    format_repair_flaws,
    needs_repair,
    parse_critique,
    parse_repair,
    quick_reflexion,
)

GOOD_CRITIQUE = """```yaml
flaws:
  - description: "Missing retention policy"
    severity: minor
    suggestedFix: "State the retention window"
qualityScore: 8
```"""

BAD_CRITIQUE = """```yaml
flaws:
  - description: "No authentication model"
    severity: critical
    suggestedFix: "Add an auth section"
  - description: "Vague naming"
    severity: minor
    suggestedFix: "Rename entities"
qualityScore: 4
```"""

REPAIR_RESPONSE = """### CHANGES_MADE
- Added an authentication section
2. Clarified token lifetime

### REPAIRED_ARTIFACT
## Auth
Tokens expire after 15 minutes.
"""


@dataclass(slots=True)
class ScriptedClient:
    outcomes: deque[object | Exception]
    calls: list[GenerationRequest] = field(default_factory=list)

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.calls.append(request)
        if not self.outcomes:
            raise AssertionError("no scripted outcomes left")
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return GenerationResponse(text=str(outcome), model_used=request.model)


def _record(deliverable: str = "## Auth\nTODO") -> GenerationRecord:
    return GenerationRecord(
        trace="initial reasoning",
        delta=Delta(decisions=("Use JWT",)),
        deliverable=deliverable,
        raw_response=deliverable,
    )


def test_parse_critique_reads_flaws_and_score() -> None:
    critique = parse_critique(BAD_CRITIQUE)

    assert critique.quality_score == 4
    assert critique.needs_repair
    assert [flaw.severity for flaw in critique.flaws] == [
        FlawSeverity.CRITICAL,
        FlawSeverity.MINOR,
    ]
    assert critique.flaws[0].suggested_fix == "Add an auth section"


def test_parse_critique_falls_back_to_json() -> None:
    text = (
        'My review follows {"flaws": [{"description": "Thin", "severity": "MAJOR"}], '
        '"qualityScore": "7"}'
    )
    critique = parse_critique(text)

    assert critique.quality_score == 7
    assert critique.flaws[0].severity is FlawSeverity.MAJOR
    assert critique.flaws[0].suggested_fix == "No fix suggested"
    assert critique.needs_repair


def test_unparseable_critique_is_neutral() -> None:
    critique = parse_critique("I think it is fine overall")

    assert critique.flaws == ()
    assert critique.quality_score == 5
    assert not critique.needs_repair
    assert critique.raw_critique == "I think it is fine overall"


def test_unknown_severity_and_missing_fields_default() -> None:
    critique = parse_critique("flaws:\n  - severity: catastrophic\nqualityScore: 0")

    assert critique.flaws[0].description == "Unknown flaw"
    assert critique.flaws[0].severity is FlawSeverity.MINOR
    assert critique.quality_score == 5
    assert not critique.needs_repair


@pytest.mark.parametrize(
    ("score", "severity", "expected"),
    [
        (4, FlawSeverity.MINOR, True),
        (5, FlawSeverity.MINOR, False),
        (9, FlawSeverity.MAJOR, True),
        (9, FlawSeverity.CRITICAL, True),
    ],
)
def test_repair_trigger(score: int, severity: FlawSeverity, expected: bool) -> None:
    critique = CritiqueResult(
        flaws=(Flaw(description="d", severity=severity, suggested_fix="f"),),
        needs_repair=False,
        quality_score=score,
    )

    assert needs_repair(critique) is expected


def test_parse_repair_reads_changes_and_deliverable() -> None:
    repair = parse_repair(REPAIR_RESPONSE, "## Auth\nTODO")

    assert repair.success
    assert repair.changes_made == (
        "Added an authentication section",
        "Clarified token lifetime",
    )
    assert repair.repaired_deliverable == "## Auth\nTokens expire after 15 minutes."


def test_parse_repair_without_headers_uses_whole_text() -> None:
    repair = parse_repair("  Rewritten body  ", "Original body")

    assert repair.success
    assert repair.changes_made == ()
    assert repair.repaired_deliverable == "Rewritten body"


def test_parse_repair_identical_output_is_not_success() -> None:
    repair = parse_repair("### REPAIRED_ARTIFACT\nSame body", "Same body")

    assert not repair.success
    assert repair.repaired_deliverable == "Same body"


def test_format_repair_flaws_lists_only_blocking_flaws() -> None:
    flaws = parse_critique(BAD_CRITIQUE).flaws

    assert format_repair_flaws(flaws) == (
        "1. [CRITICAL] No authentication model\n   Fix: Add an auth section"
    )


@pytest.mark.asyncio
async def test_reflect_skips_repair_for_good_critique() -> None:
    client = ScriptedClient(outcomes=deque([GOOD_CRITIQUE]))
    loop = ReflexionLoop(client)
    record = _record()

    result = await loop.reflect(record, "Design auth", "No constraints yet")

    assert result.state is ReflexionState.SKIPPED
    assert not result.was_repaired
    assert result.final_output is record
    assert result.original_output is record
    assert result.repair is None
    assert len(client.calls) == 1
    assert client.calls[0].model == "gpt-4o-mini"
    assert client.calls[0].config.temperature == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_reflect_applies_successful_repair() -> None:
    client = ScriptedClient(outcomes=deque([BAD_CRITIQUE, REPAIR_RESPONSE]))
    loop = ReflexionLoop(client, settings={"repair_temperature": 0.2})
    record = _record()

    result = await loop.reflect(record, "Design auth", "Context", prior_feedback="Too thin")

    assert result.state is ReflexionState.REPAIRED
    assert result.was_repaired
    assert result.original_output is record
    assert result.final_output.deliverable == "## Auth\nTokens expire after 15 minutes."
    assert result.final_output.delta == record.delta
    assert result.final_output.trace.startswith("initial reasoning\n\n" + REPAIR_NOTE_HEADER)
    assert "Added an authentication section" in result.final_output.trace
    assert "No authentication model" in client.calls[1].contents
    assert "Vague naming" not in client.calls[1].contents
    assert "Too thin" in client.calls[1].contents
    assert client.calls[1].config.temperature == pytest.approx(0.2)


@pytest.mark.asyncio
async def test_reflect_keeps_original_when_critique_transport_fails() -> None:
    client = ScriptedClient(outcomes=deque([ProviderRateLimitError("slow down")]))
    loop = ReflexionLoop(client)
    record = _record()

    result = await loop.reflect(record, "Design auth", "Context")

    assert result.state is ReflexionState.SKIPPED
    assert result.final_output is record
    assert result.critique.quality_score == 5
    assert result.error is not None and "rate_limit" in result.error


@pytest.mark.asyncio
async def test_reflect_keeps_original_when_repair_transport_fails() -> None:
    client = ScriptedClient(outcomes=deque([BAD_CRITIQUE, RuntimeError("connection reset")]))
    loop = ReflexionLoop(client)
    record = _record()

    result = await loop.reflect(record, "Design auth", "Context")

    assert result.state is ReflexionState.SKIPPED
    assert result.final_output is record
    assert result.critique.needs_repair
    assert result.repair is None
    assert result.error is not None and "connection reset" in result.error


@pytest.mark.asyncio
async def test_reflect_treats_empty_critique_as_transport_failure() -> None:
    client = ScriptedClient(outcomes=deque(["   "]))
    loop = ReflexionLoop(client)

    result = await loop.reflect(_record(), "Design auth", "Context")

    assert result.state is ReflexionState.SKIPPED
    assert result.error is not None and "response_invalid" in result.error


def test_quick_reflexion_flags_weak_output() -> None:
    check = quick_reflexion("I'm sorry, TODO")

    assert check.needs_full_reflexion
    assert check.reason.startswith("Output is suspiciously short")
    assert len(check.issues) == 3


def test_quick_reflexion_passes_substantive_output() -> None:
    check = quick_reflexion(
        "The ingestion service validates every payload against the schema registry "
        "before it is written to the ledger."
    )

    assert not check.needs_full_reflexion
    assert check.reason == ""
