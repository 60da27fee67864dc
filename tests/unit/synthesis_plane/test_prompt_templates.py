"""
brickline — prompt template renderer unit tests

File: tests/unit/synthesis_plane/test_prompt_templates.py
Last updated: 2026-10-19

Purpose
- Validate strict template variable controls, deterministic hashing, and the
  shipped role templates.

Functional requirements
- Offline only.

Non-functional requirements
- Deterministic output for equivalent inputs.
"""

from __future__ import annotations

import hashlib
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from brickline.synthesis_plane.prompt_templates import (
    PromptTemplateEngine,
    PromptTemplateNotFoundError,
    PromptTemplateVariableError,
)


def _write_template(tmp_path: Path, text: str) -> Path:
    root = tmp_path / "templates"
    root.mkdir(parents=True, exist_ok=True)
    template_path = root / "CRITIQUE.md"
    template_path.write_text(text, encoding="utf-8")
    return root


def test_missing_required_variables_raise_hard_error(tmp_path: Path) -> None:
    template_root = _write_template(tmp_path, "Review {{deliverable}} for {{task}}")
    engine = PromptTemplateEngine(template_root=template_root)

    with pytest.raises(PromptTemplateVariableError, match="missing required template variables"):
        engine.render(
            "critique",
            variables={"deliverable": "body"},
            allowed_variables={"deliverable", "task"},
        )


def test_unexpected_variables_raise_hard_error(tmp_path: Path) -> None:
    template_root = _write_template(tmp_path, "Review {{deliverable}}")
    engine = PromptTemplateEngine(template_root=template_root)

    with pytest.raises(PromptTemplateVariableError, match="unexpected variables were provided"):
        engine.render("CRITIQUE", variables={"deliverable": "body", "extra": "not allowed"})


def test_template_variables_must_be_whitelisted(tmp_path: Path) -> None:
    template_root = _write_template(tmp_path, "Review {{deliverable}} {{forbidden}}")
    engine = PromptTemplateEngine(template_root=template_root)

    with pytest.raises(
        PromptTemplateVariableError,
        match="template uses variables not allowed by whitelist",
    ):
        engine.render(
            "CRITIQUE",
            variables={"deliverable": "body", "forbidden": "x"},
            allowed_variables={"deliverable"},
        )


def test_unknown_role_raises_not_found(tmp_path: Path) -> None:
    engine = PromptTemplateEngine(template_root=_write_template(tmp_path, "x"))

    with pytest.raises(PromptTemplateNotFoundError):
        engine.render("repair", variables={})


def test_hashing_is_deterministic_and_utf8_based(tmp_path: Path) -> None:
    template_root = tmp_path / "templates"
    template_root.mkdir(parents=True, exist_ok=True)
    (template_root / "CRITIQUE.md").write_bytes(b"A={{a}}\r\nB={{b}}\r\n")

    engine = PromptTemplateEngine(template_root=template_root)

    result_one = engine.render("CRITIQUE", variables={"a": "one\r\ntwo", "b": "three"})
    result_two = engine.render("CRITIQUE", variables={"b": "three", "a": "one\r\ntwo"})

    assert result_one.prompt == result_two.prompt
    assert result_one.prompt_hash == result_two.prompt_hash
    assert "\r" not in result_one.prompt

    expected_template_hash = hashlib.sha256(b"A={{a}}\nB={{b}}\n").hexdigest()
    expected_prompt_hash = hashlib.sha256(result_one.prompt.encode("utf-8")).hexdigest()

    assert result_one.template_hash == expected_template_hash
    assert result_one.prompt_hash == expected_prompt_hash
    assert result_one.template_version == "unversioned"
    assert result_one.declared_variables == ("a", "b")


def test_template_version_is_parsed_from_header(tmp_path: Path) -> None:
    template_root = _write_template(
        tmp_path,
        "{#\nLast updated: 2026-10-19\n-#}\nReview {{deliverable}}\n",
    )
    engine = PromptTemplateEngine(template_root=template_root)
    result = engine.render("CRITIQUE", variables={"deliverable": "body"})

    assert result.template_version == "2026-10-19"
    assert result.prompt == "Review body\n"


def test_scalar_flags_drive_template_branches() -> None:
    engine = PromptTemplateEngine()

    denied = engine.render(
        "security_review",
        variables={"fragments_payload": "### Fragment: f1", "allow_code_generation": False},
    )
    allowed = engine.render(
        "security_review",
        variables={"fragments_payload": "### Fragment: f1", "allow_code_generation": True},
    )

    assert "Code generation violation" in denied.prompt
    assert "Code generation violation" not in allowed.prompt
    assert "### Fragment: f1" in allowed.prompt


def test_structured_values_are_serialized_as_sorted_json(tmp_path: Path) -> None:
    engine = PromptTemplateEngine(template_root=_write_template(tmp_path, "{{payload}}"))

    result = engine.render("CRITIQUE", variables={"payload": {"b": 1, "a": [1, 2]}})

    assert result.prompt == '{"a":[1,2],"b":1}'


@pytest.mark.parametrize(
    ("role", "variables"),
    [
        ("critique", ("deliverable", "living_context", "prior_feedback", "task_instruction")),
        (
            "repair",
            ("deliverable", "flaws", "living_context", "prior_feedback", "task_instruction"),
        ),
        ("reformat", ("fragment_count", "fragment_previews", "raw_assembly")),
        ("specialist", ("living_context", "persona", "task_instruction")),
        ("specialist_compact", ("living_context", "persona", "task_instruction")),
    ],
)
def test_shipped_templates_declare_expected_variables(
    role: str, variables: tuple[str, ...]
) -> None:
    assert PromptTemplateEngine().declared_variables(role) == variables


@given(payload=st.text(max_size=160))
@settings(max_examples=30, deadline=None)
def test_rendering_is_deterministic_for_same_input(payload: str) -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        template_root = _write_template(Path(temp_dir), "{{payload}}")
        engine = PromptTemplateEngine(template_root=template_root)

        first = engine.render("CRITIQUE", variables={"payload": payload})
        second = engine.render("CRITIQUE", variables={"payload": payload})

        assert first == second
        assert first.prompt_hash == hashlib.sha256(first.prompt.encode("utf-8")).hexdigest()
