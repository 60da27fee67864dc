"""
brickline — post-verification pipeline glue

File: src/brickline/pipeline.py
Last updated: 2026-10-19

Purpose
- Run the security gate over a closed fragment set, then hand the set and any
  addendum to the assembler.

Functional requirements
- A ``reject`` decision raises ``SecurityRejectedError`` carrying the scan
  result; nothing is assembled.
- Metadata lists left empty by the caller are filled from the fragments'
  accumulated deltas.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Any

import structlog

from brickline.domain.models import (
    Delta,
    FinalDocument,
    GateRecommendation,
    OutputMode,
    ProjectMetadata,
    SecurityRejectedError,
    VerifiedFragment,
)
from brickline.integration_plane.assembler import Assembler
from brickline.observability.logging import correlation_scope
from brickline.verification_plane.security_gate import SecurityGate


def accumulate_deltas(fragments: Iterable[VerifiedFragment]) -> Delta:
    """Concatenate every fragment's delta in input order into a new value."""

    combined = Delta()
    for fragment in fragments:
        combined = combined.combine(fragment.delta)
    return combined


def with_context_lists(metadata: ProjectMetadata, delta: Delta) -> ProjectMetadata:
    updates: dict[str, tuple[str, ...]] = {}
    if not metadata.constraints and delta.new_constraints:
        updates["constraints"] = delta.new_constraints
    if not metadata.decisions and delta.decisions:
        updates["decisions"] = delta.decisions
    if not metadata.warnings and delta.warnings:
        updates["warnings"] = delta.warnings
    return replace(metadata, **updates) if updates else metadata


class Pipeline:
    def __init__(
        self,
        gate: SecurityGate,
        assembler: Assembler,
        *,
        logger: Any | None = None,
    ) -> None:
        self._gate = gate
        self._assembler = assembler
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def finalize(
        self,
        fragments: Sequence[VerifiedFragment],
        metadata: ProjectMetadata | None = None,
        dropped_warnings: Sequence[str] = (),
        output_mode: OutputMode | str | None = None,
        *,
        run_id: str | None = None,
    ) -> FinalDocument:
        fragment_list = tuple(fragments)
        with correlation_scope(run_id=run_id):
            scan = await self._gate.scan(fragment_list, dropped_warnings)
            if scan.recommendation is GateRecommendation.REJECT:
                self._logger.warning(
                    "pipeline_rejected",
                    score=scan.score,
                    issue_count=len(scan.issues),
                )
                raise SecurityRejectedError(scan)

            resolved = with_context_lists(
                metadata or ProjectMetadata(), accumulate_deltas(fragment_list)
            )
            document = await self._assembler.assemble(
                fragment_list, resolved, scan.addendum, output_mode=output_mode
            )
            self._logger.info(
                "pipeline_finalized",
                recommendation=scan.recommendation.value,
                fragment_count=len(fragment_list),
                output_mode=document.output_mode.value,
            )
            return document


__all__ = ["Pipeline", "accumulate_deltas", "with_context_lists"]
