"""Command-line interface router for brickline."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from brickline.config import (
    ConfigLoadError,
    ConfigValidationError,
    PipelineSettings,
    dump_effective_config,
    load_config,
    settings_from_config,
)
from brickline.domain.models import (
    GateRecommendation,
    OutputMode,
    ProjectMetadata,
    SecurityRejectedError,
    VerifiedFragment,
    coerce_text_items,
)
from brickline.integration_plane import Assembler
from brickline.observability import configure_logging
from brickline.pipeline import Pipeline
from brickline.verification_plane import SecurityGate, format_scan_result

EXIT_SUCCESS: Final[int] = 0
EXIT_REJECTED: Final[int] = 1
EXIT_USAGE: Final[int] = 2


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class FragmentBundle:
    """Parsed input file: fragments plus optional metadata and dropped warnings."""

    fragments: tuple[VerifiedFragment, ...]
    metadata: ProjectMetadata
    dropped_warnings: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="brickline",
        description=(
            "brickline — security gating and lossless assembly of verified fragments.\n\n"
            "Common workflows:\n"
            "  brickline scan fragments.json              Pattern-scan a fragment set\n"
            "  brickline assemble fragments.json --mode categorized\n"
            "  brickline config                           Show effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./brickline.toml if present).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    assemble_parser = subparsers.add_parser(
        "assemble",
        parents=[common],
        help="Gate and assemble a fragment set into the final document (offline).",
    )
    assemble_parser.add_argument("fragments_path", help="Path to a fragments JSON file")
    assemble_parser.add_argument(
        "--mode",
        choices=[mode.value for mode in OutputMode],
        default=None,
        help="Output mode (default: assembly.output_mode from config).",
    )
    assemble_parser.add_argument(
        "--output", default=None, help="Write the document to this path instead of stdout"
    )
    assemble_parser.set_defaults(handler=_cmd_assemble)

    scan_parser = subparsers.add_parser(
        "scan",
        parents=[common],
        help="Run the security gate over a fragment set (pattern scan only).",
    )
    scan_parser.add_argument("fragments_path", help="Path to a fragments JSON file")
    scan_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    scan_parser.set_defaults(handler=_cmd_scan)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the redacted effective config.",
    )
    config_parser.set_defaults(handler=_cmd_config)
    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_assemble(args: argparse.Namespace) -> int:
    overrides = {"assembly.output_mode": args.mode} if args.mode else None
    config = _load_effective_config(args, cli_overrides=overrides)
    settings = _settings(config)
    bundle = load_fragment_bundle(Path(args.fragments_path))

    pipeline = Pipeline(
        SecurityGate(settings=settings.security),
        Assembler(settings=settings.assembler),
    )
    try:
        document = asyncio.run(
            pipeline.finalize(
                bundle.fragments,
                bundle.metadata,
                bundle.dropped_warnings,
                output_mode=settings.assembler.output_mode,
            )
        )
    except SecurityRejectedError as exc:
        sys.stdout.write(format_scan_result(exc.result))
        print("error: fragment set rejected by the security gate", file=sys.stderr)
        return EXIT_REJECTED

    if args.output:
        Path(args.output).write_text(document.body, encoding="utf-8")
    else:
        sys.stdout.write(document.body)
        if not document.body.endswith("\n"):
            sys.stdout.write("\n")
    return EXIT_SUCCESS


def _cmd_scan(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    settings = _settings(config)
    bundle = load_fragment_bundle(Path(args.fragments_path))

    gate = SecurityGate(settings=settings.security)
    result = asyncio.run(gate.scan(bundle.fragments, bundle.dropped_warnings))

    if args.json:
        print(json.dumps(result.to_dict(), sort_keys=True, ensure_ascii=False, indent=2))
    else:
        sys.stdout.write(format_scan_result(result))
    return EXIT_REJECTED if result.recommendation is GateRecommendation.REJECT else EXIT_SUCCESS


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    print(dump_effective_config(config))
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def load_fragment_bundle(path: Path) -> FragmentBundle:
    """Read ``{"fragments": [...], "metadata": {...}, "droppedWarnings": [...]}`` or a bare list."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CLIError(f"fragments file not found: {path}", exit_code=EXIT_USAGE) from exc
    except json.JSONDecodeError as exc:
        raise CLIError(f"invalid JSON in {path}: {exc}", exit_code=EXIT_USAGE) from exc

    if isinstance(payload, list):
        payload = {"fragments": payload}
    if not isinstance(payload, Mapping):
        raise CLIError(f"{path}: expected an object or an array", exit_code=EXIT_USAGE)

    raw_fragments = payload.get("fragments", [])
    raw_metadata = payload.get("metadata") or {}
    if not isinstance(raw_fragments, list):
        raise CLIError(f"{path}: 'fragments' must be an array", exit_code=EXIT_USAGE)
    try:
        fragments = tuple(VerifiedFragment.from_dict(item) for item in raw_fragments)
        metadata = ProjectMetadata.from_dict(raw_metadata)
    except (TypeError, ValueError) as exc:
        raise CLIError(f"{path}: {exc}", exit_code=EXIT_USAGE) from exc

    warnings = payload.get("droppedWarnings", payload.get("dropped_warnings"))
    return FragmentBundle(
        fragments=fragments,
        metadata=metadata,
        dropped_warnings=coerce_text_items(warnings),
    )


def _load_effective_config(
    args: argparse.Namespace,
    *,
    cli_overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    try:
        config = load_config(args.config_path, cli_overrides=cli_overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_USAGE) from exc
    configure_logging(config["observability"])
    return config


def _settings(config: Mapping[str, Any]) -> PipelineSettings:
    try:
        return settings_from_config(config)
    except ConfigValidationError as exc:
        raise CLIError(str(exc), exit_code=EXIT_USAGE) from exc


__all__ = ["CLIError", "FragmentBundle", "build_parser", "load_fragment_bundle", "run_cli"]
