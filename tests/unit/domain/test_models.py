"""
brickline — unit tests for domain records

File: tests/unit/domain/test_models.py
Last updated: 2026-10-19

Purpose
- Validate construction-time checks, wire-shape serialization, and the lenient
  ``from_dict`` readers used for fragment bundles.

What this test file should cover
- Delta alias handling, coercion, and combination.
- Fragment/metadata parsing from camelCase and snake_case payloads.
- Timestamp normalization and output-mode aliases.
- Assembly never reports skipped fragments.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from brickline.domain.models import (
    AssemblyVerification,
    CritiqueResult,
    Delta,
    DeltaFormat,
    FinalDocument,
    Flaw,
    FlawSeverity,
    GateRecommendation,
    GenerationRecord,
    OutputMode,
    ProjectMetadata,
    SecurityIssue,
    SecurityRejectedError,
    SecurityScanResult,
    SecuritySeverity,
    VerifiedFragment,
    coerce_output_mode,
    coerce_text_items,
    format_timestamp,
)

NOW = datetime(2026, 10, 19, 12, 30, 0, 123456, tzinfo=UTC)


def test_delta_from_mapping_accepts_aliases_and_coerces_items() -> None:
    delta = Delta.from_mapping(
        {"constraints": ["Use TLS", "  "], "decisions": "Adopt ULIDs", "warnings": [3, None]}
    )

    assert delta.new_constraints == ("Use TLS",)
    assert delta.decisions == ("Adopt ULIDs",)
    assert delta.warnings == ("3",)
    assert Delta.recognizes({"newConstraints": []})
    assert not Delta.recognizes({"summary": "x"})


def test_delta_prefers_camel_case_key_over_legacy_alias() -> None:
    delta = Delta.from_mapping({"newConstraints": ["A"], "constraints": ["B"]})

    assert delta.new_constraints == ("A",)


def test_delta_combine_and_serialization() -> None:
    first = Delta(decisions=("one",))
    second = Delta(decisions=("two",), warnings=("careful",))

    combined = first.combine(second)

    assert combined.decisions == ("one", "two")
    assert first.decisions == ("one",)
    assert combined.to_dict() == {
        "newConstraints": [],
        "decisions": ["one", "two"],
        "warnings": ["careful"],
    }
    assert Delta().is_empty
    assert not combined.is_empty


def test_delta_rejects_non_string_items() -> None:
    with pytest.raises(ValueError, match=r"Delta.decisions\[0\]"):
        Delta(decisions=(1,))  # type: ignore[arg-type]


def test_coerce_text_items_renders_mappings_as_json() -> None:
    assert coerce_text_items({"b": 1, "a": 2}) == ('{"a": 2, "b": 1}',)
    assert coerce_text_items(None) == ()
    assert coerce_text_items([True, 1.5]) == ("true", "1.5")


def test_generation_record_with_repair_appends_note() -> None:
    record = GenerationRecord(
        trace="reasoning",
        delta=Delta(),
        deliverable="old",
        raw_response="raw",
        delta_format="yaml",  # type: ignore[arg-type]
    )

    repaired = record.with_repair("new", "[REPAIR APPLIED]")

    assert record.delta_format is DeltaFormat.YAML
    assert repaired.deliverable == "new"
    assert repaired.trace == "reasoning\n\n[REPAIR APPLIED]"
    assert record.deliverable == "old"
    assert record.with_repair("x", "note").trace == "reasoning\n\nnote"
    assert GenerationRecord("", Delta(), "d", "r").with_repair("x", "note").trace == "note"


def test_critique_result_bounds_and_neutral_default() -> None:
    neutral = CritiqueResult.neutral("unparseable")

    assert neutral.quality_score == 5
    assert not neutral.needs_repair
    assert neutral.raw_critique == "unparseable"
    with pytest.raises(ValueError, match="must be <= 10"):
        CritiqueResult(flaws=(), needs_repair=False, quality_score=11)


def test_flaw_coerces_severity() -> None:
    flaw = Flaw(description="d", severity="major", suggested_fix="f")  # type: ignore[arg-type]

    assert flaw.severity is FlawSeverity.MAJOR
    assert flaw.to_dict() == {"description": "d", "severity": "major", "suggestedFix": "f"}
    with pytest.raises(ValueError, match="expected one of: critical, major, minor"):
        Flaw(description="d", severity="fatal", suggested_fix="f")  # type: ignore[arg-type]


def test_verified_fragment_from_dict_reads_wire_shape() -> None:
    fragment = VerifiedFragment.from_dict(
        {
            "id": " frag-1 ",
            "persona": "Architect",
            "instruction": "Design the API",
            "confidence": 90,
            "verifiedAt": "2026-10-19T12:30:00.123Z",
            "artifact": "Body text",
            "delta": {"decisions": ["REST"]},
        }
    )

    assert fragment.id == "frag-1"
    assert fragment.deliverable == "Body text"
    assert fragment.verified_at == datetime(2026, 10, 19, 12, 30, 0, 123000, tzinfo=UTC)
    assert fragment.delta.decisions == ("REST",)
    assert fragment.to_dict()["verifiedAt"] == "2026-10-19T12:30:00.123Z"


def test_verified_fragment_accepts_epoch_millis_and_offsets() -> None:
    from_epoch = VerifiedFragment.from_dict(
        {"id": "f", "verified_at": 0, "deliverable": "x"}
    )
    offset = timezone(timedelta(hours=2))
    from_offset = VerifiedFragment(
        id="g",
        persona="",
        instruction="",
        confidence=0,
        verified_at=datetime(2026, 10, 19, 14, 0, tzinfo=offset),
        deliverable="y",
    )

    assert from_epoch.verified_at == datetime(1970, 1, 1, tzinfo=UTC)
    assert from_offset.verified_at == datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"id": "", "verifiedAt": "2026-10-19T00:00:00Z", "deliverable": "x"}, "must not be empty"),
        ({"id": "f", "verifiedAt": "2026-10-19T00:00:00", "deliverable": "x"}, "timezone-aware"),
        ({"id": "f", "verifiedAt": "yesterday", "deliverable": "x"}, "invalid ISO-8601"),
        ({"id": "f", "verifiedAt": "2026-10-19T00:00:00Z"}, "expected string, got NoneType"),
        (
            {
                "id": "f",
                "verifiedAt": "2026-10-19T00:00:00Z",
                "deliverable": "x",
                "confidence": 999,
            },
            "must be <= 100",
        ),
    ],
)
def test_verified_fragment_validation(payload: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        VerifiedFragment.from_dict(payload)


def test_project_metadata_from_dict_and_round_trip_shape() -> None:
    metadata = ProjectMetadata.from_dict(
        {
            "name": "  Ledger ",
            "domain": "",
            "originalPrompt": "Build a ledger",
            "generatedAt": "2026-10-19T12:30:00Z",
            "techStack": ["Python", "PostgreSQL"],
            "decisions": "Use UUID keys",
        }
    )

    assert metadata.name == "Ledger"
    assert metadata.domain is None
    assert metadata.tech_stack == ("Python", "PostgreSQL")
    assert metadata.decisions == ("Use UUID keys",)
    assert metadata.to_dict()["generatedAt"] == "2026-10-19T12:30:00.000Z"
    assert ProjectMetadata().to_dict()["generatedAt"] is None


def test_format_timestamp_truncates_to_milliseconds() -> None:
    assert format_timestamp(NOW) == "2026-10-19T12:30:00.123Z"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("flat", OutputMode.FLAT),
        ("markdown", OutputMode.FLAT),
        (" JSON ", OutputMode.RAW),
        ("structured", OutputMode.CATEGORIZED),
        (OutputMode.RAW, OutputMode.RAW),
    ],
)
def test_coerce_output_mode(value: OutputMode | str, expected: OutputMode) -> None:
    assert coerce_output_mode(value) is expected


def test_coerce_output_mode_rejects_unknown_values() -> None:
    with pytest.raises(ValueError, match="output_mode"):
        coerce_output_mode("pdf")
    with pytest.raises(TypeError):
        coerce_output_mode(3)  # type: ignore[arg-type]


def _scan(recommendation: GateRecommendation) -> SecurityScanResult:
    issue = SecurityIssue(
        id="sec-1",
        severity=SecuritySeverity.CRITICAL,
        category="unsafe_operation",  # type: ignore[arg-type]
        description="eval",
        affected_fragments=("f1",),
    )
    return SecurityScanResult(
        passed=recommendation is not GateRecommendation.REJECT,
        score=70,
        issues=(issue,),
        issue_counts={SecuritySeverity.CRITICAL: 1},
        recommendation=recommendation,
    )


def test_scan_result_fills_every_severity_count() -> None:
    result = _scan(GateRecommendation.ADD_ADDENDUM)

    assert result.issue_counts == {
        SecuritySeverity.CRITICAL: 1,
        SecuritySeverity.HIGH: 0,
        SecuritySeverity.MEDIUM: 0,
        SecuritySeverity.LOW: 0,
        SecuritySeverity.INFO: 0,
    }
    assert result.to_dict()["issueCounts"] == {
        "critical": 1,
        "high": 0,
        "medium": 0,
        "low": 0,
        "info": 0,
    }
    result.raise_for_rejection()


def test_scan_result_raise_for_rejection() -> None:
    with pytest.raises(SecurityRejectedError, match="score=70, critical=1\\): sec-1"):
        _scan(GateRecommendation.REJECT).raise_for_rejection()


def test_final_document_never_carries_skipped_ids() -> None:
    verification = AssemblyVerification(
        original_char_count=10, assembled_char_count=12, preservation_ratio=1.2
    )

    document = FinalDocument(
        body="x",
        included_fragment_ids=("f1",),
        verification=verification,
        compiled_at=NOW,
        output_mode="json",  # type: ignore[arg-type]
    )

    assert document.output_mode is OutputMode.RAW
    assert document.to_dict()["skippedFragmentIds"] == []
    with pytest.raises(ValueError, match="never skips"):
        FinalDocument(
            body="x",
            included_fragment_ids=(),
            verification=verification,
            compiled_at=NOW,
            output_mode=OutputMode.FLAT,
            skipped_fragment_ids=("f1",),
        )


def test_assembly_verification_rejects_negative_ratio() -> None:
    with pytest.raises(ValueError, match="preservation_ratio"):
        AssemblyVerification(
            original_char_count=1, assembled_char_count=1, preservation_ratio=-0.5
        )
