"""
brickline — unit tests for config loader

File: tests/unit/config/test_loader.py
Last updated: 2026-10-19

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Missing-file and malformed-file handling.
- Redacted effective config dumping and offline behavior.

Functional requirements
- Works without provider keys or network.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from brickline.config import ConfigValidationError
from brickline.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    load_config,
)


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    default_path = tmp_path / "empty.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[reflexion]
critique_temperature = 0.4
""".strip(),
    )

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(
        config_path, environ={"BRICKLINE_REFLEXION_CRITIQUE_TEMPERATURE": "0.6"}
    )
    cli_loaded = load_config(
        config_path,
        environ={"BRICKLINE_REFLEXION_CRITIQUE_TEMPERATURE": "0.6"},
        cli_overrides={"reflexion.critique_temperature": 0.9},
    )

    assert default_loaded["reflexion"]["critique_temperature"] == 0.3
    assert file_loaded["reflexion"]["critique_temperature"] == 0.4
    assert env_loaded["reflexion"]["critique_temperature"] == 0.6
    assert cli_loaded["reflexion"]["critique_temperature"] == 0.9


def test_env_mapping_coerces_each_value_kind(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "BRICKLINE_SECURITY_DEEP_ANALYSIS": "off",
            "BRICKLINE_SPECIALIST_MAX_OUTPUT_TOKENS": "2048",
            "BRICKLINE_ASSEMBLY_OUTPUT_MODE": "categorized",
            "BRICKLINE_PROVIDER_TIMEOUT_SECONDS": "30",
            "UNRELATED_VARIABLE": "ignored",
        },
    )

    assert loaded["security"]["deep_analysis"] is False
    assert loaded["specialist"]["max_output_tokens"] == 2048
    assert loaded["assembly"]["output_mode"] == "categorized"
    assert loaded["provider"]["timeout_seconds"] == 30.0


def test_meta_section_is_not_env_overridable(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "")

    loaded = load_config(config_path, environ={"BRICKLINE_META_SCHEMA_VERSION": "9"})

    assert loaded["meta"]["schema_version"] == 1


@pytest.mark.parametrize(
    ("env_name", "raw", "message"),
    [
        ("BRICKLINE_SPECIALIST_MAX_OUTPUT_TOKENS", "many", "must be an integer"),
        ("BRICKLINE_SPECIALIST_TEMPERATURE", "warm", "must be a number"),
        ("BRICKLINE_ASSEMBLY_USE_REFORMATTING", "maybe", "must be a boolean"),
    ],
)
def test_invalid_env_coercion_raises_actionable_error(
    tmp_path: Path, env_name: str, raw: str, message: str
) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match=message):
        load_config(config_path, environ={env_name: raw})


def test_env_values_are_validated_after_coercion(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="specialist.temperature"):
        load_config(config_path, environ={"BRICKLINE_SPECIALIST_TEMPERATURE": "3.5"})


def test_missing_explicit_path_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_missing_default_file_falls_back_to_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    loaded = load_config(environ={})

    assert loaded["assembly"]["output_mode"] == "flat"
    assert loaded["specialist"]["model"] == "gpt-4o"


def test_malformed_toml_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "[specialist\nmodel = ")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_file_unknown_fields_are_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "[assembly]\ncolour = \"blue\"\n")

    with pytest.raises(ConfigValidationError, match="assembly.colour: unknown field"):
        load_config(config_path, environ={})


def test_cli_override_with_empty_key_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="invalid CLI override key"):
        load_config(config_path, environ={}, cli_overrides={"..": 1})


def test_cli_override_accepts_nested_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={},
        cli_overrides={"assembly": {"use_reformatting": True, "strict_preservation": True}},
    )

    assert loaded["assembly"]["use_reformatting"] is True
    assert loaded["assembly"]["strict_preservation"] is True
    assert loaded["assembly"]["output_mode"] == "flat"


def test_offline_provider_env_reference_does_not_crash_by_default(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "")

    loaded = load_config(config_path, environ={})

    assert loaded["provider"]["api_key_env"] == "BRICKLINE_OPENAI_API_KEY"


def test_strict_secret_env_mode_requires_secret_values(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="BRICKLINE_OPENAI_API_KEY"):
        load_config(config_path, environ={}, require_secret_env_values=True)

    loaded = load_config(
        config_path,
        environ={"BRICKLINE_OPENAI_API_KEY": "sk-test"},
        require_secret_env_values=True,
    )
    assert loaded["provider"]["name"] == "openai"


def test_dump_effective_config_is_redacted_and_deterministic(tmp_path: Path) -> None:
    config_path = tmp_path / "brickline.toml"
    _write_config(config_path, "")
    environ = {"BRICKLINE_OPENAI_API_KEY": "sk-secret-value"}

    first = dump_effective_config(load_config(config_path, environ=environ))
    second = dump_effective_config(load_config(config_path, environ=environ))

    assert first == second
    assert "sk-secret-value" not in first
    payload = json.loads(first)
    assert payload["provider"]["api_key_env"] == "<redacted>"
    assert payload["specialist"]["model"] == "gpt-4o"
