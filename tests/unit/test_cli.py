"""
brickline — unit tests for the command-line router

File: tests/unit/test_cli.py
Last updated: 2026-10-19

Purpose
- Validate offline ``assemble``, ``scan``, and ``config`` commands in-process,
  their exit codes, and fragment bundle parsing errors.

Functional requirements
- No network, no provider keys; the working directory has no brickline.toml.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from brickline.cli import CLIError, load_fragment_bundle, run_cli
from brickline.main import ExitCode, cli_entrypoint

FRAGMENT = {
    "id": "f1",
    "persona": "Backend Engineer",
    "instruction": "Design the queue consumer",
    "confidence": 87,
    "verifiedAt": "2026-10-19T10:00:00.000Z",
    "deliverable": "Consumers acknowledge after the write commits.",
}


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.chdir(tmp_path)
    for name in [key for key in os.environ if key.startswith("BRICKLINE_")]:
        monkeypatch.delenv(name)
    yield
    structlog.reset_defaults()
    package_logger = logging.getLogger("brickline")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)


def _write_bundle(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_assemble_writes_flat_document_to_stdout(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    bundle = _write_bundle(
        tmp_path / "fragments.json",
        {"fragments": [FRAGMENT], "metadata": {"name": "Queue Service"}},
    )

    exit_code = run_cli(["assemble", str(bundle)])

    captured = capsys.readouterr()
    assert exit_code == 0
    assert captured.out.startswith("# Queue Service\n")
    assert FRAGMENT["deliverable"] in captured.out


def test_assemble_raw_mode_to_output_file(tmp_path: Path) -> None:
    bundle = _write_bundle(tmp_path / "fragments.json", [FRAGMENT])
    output = tmp_path / "out.json"

    exit_code = run_cli(["assemble", str(bundle), "--mode", "raw", "--output", str(output)])

    assert exit_code == 0
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["fragments"][0]["deliverable"] == FRAGMENT["deliverable"]


def test_assemble_rejected_bundle_prints_scan_result_and_no_document(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    risky = {**FRAGMENT, "deliverable": "Parse filters with eval(userInput)."}
    bundle = _write_bundle(tmp_path / "fragments.json", [risky])
    output = tmp_path / "out.md"

    exit_code = run_cli(["assemble", str(bundle), "--output", str(output)])

    captured = capsys.readouterr()
    assert exit_code == 1
    assert "## Security Scan Result: REJECTED" in captured.out
    assert "rejected by the security gate" in captured.err
    assert not output.exists()


def test_assemble_appends_addendum_with_dropped_warnings(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    needs_addendum = {
        **FRAGMENT,
        "deliverable": "Webhooks are accepted and no validation is performed on headers.",
        "delta": {"decisions": ["Use HMAC signatures"]},
    }
    bundle = _write_bundle(
        tmp_path / "fragments.json",
        {
            "fragments": [needs_addendum],
            "metadata": {"name": "Webhook Relay"},
            "droppedWarnings": ["Replay window undefined"],
        },
    )

    exit_code = run_cli(["assemble", str(bundle)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "# SECURITY ADDENDUM" in out
    assert "Explicit mention of missing validation" in out
    assert "Replay window undefined" in out
    assert needs_addendum["deliverable"] in out


def test_scan_clean_bundle_passes(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bundle = _write_bundle(tmp_path / "fragments.json", [FRAGMENT])

    exit_code = run_cli(["scan", str(bundle)])

    assert exit_code == 0
    assert "## Security Scan Result: PASSED" in capsys.readouterr().out


def test_scan_rejected_bundle_exits_with_rejection_code(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    risky = {**FRAGMENT, "deliverable": "Decode messages with eval(body)."}
    bundle = _write_bundle(
        tmp_path / "fragments.json",
        {"fragments": [risky], "droppedWarnings": ["Retries unbounded"]},
    )

    exit_code = run_cli(["scan", str(bundle), "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert payload["recommendation"] == "reject"
    assert payload["issueCounts"]["critical"] == 1
    assert payload["issueCounts"]["medium"] == 1


def test_config_prints_redacted_effective_config(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_cli(["config"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["provider"]["api_key_env"] == "<redacted>"
    assert payload["assembly"]["output_mode"] == "flat"


def test_missing_config_file_is_a_usage_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["config", "--config", str(tmp_path / "absent.toml")])

    assert exit_code == 2
    assert "config file not found" in capsys.readouterr().err


def test_missing_fragments_file_is_a_usage_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["scan", str(tmp_path / "absent.json")])

    assert exit_code == 2
    assert "fragments file not found" in capsys.readouterr().err


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ("not json", "invalid JSON"),
        ({"fragments": {"id": "f1"}}, "'fragments' must be an array"),
        (42, "expected an object or an array"),
        ([{**FRAGMENT, "confidence": 150}], "VerifiedFragment.confidence"),
    ],
)
def test_load_fragment_bundle_errors(tmp_path: Path, payload: object, message: str) -> None:
    path = tmp_path / "fragments.json"
    if isinstance(payload, str):
        path.write_text(payload, encoding="utf-8")
    else:
        _write_bundle(path, payload)

    with pytest.raises(CLIError, match=message) as excinfo:
        load_fragment_bundle(path)

    assert excinfo.value.exit_code == 2


def test_load_fragment_bundle_reads_metadata_and_warnings(tmp_path: Path) -> None:
    path = _write_bundle(
        tmp_path / "fragments.json",
        {
            "fragments": [FRAGMENT],
            "metadata": {"name": "Queue Service", "techStack": ["Kafka"]},
            "dropped_warnings": ["Retries unbounded"],
        },
    )

    bundle = load_fragment_bundle(path)

    assert [fragment.id for fragment in bundle.fragments] == ["f1"]
    assert bundle.metadata.tech_stack == ("Kafka",)
    assert bundle.dropped_warnings == ("Retries unbounded",)


def test_entrypoint_normalizes_argparse_exit(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint([]) == int(ExitCode.CONFIG_ERROR)
    assert "usage: brickline" in capsys.readouterr().err
