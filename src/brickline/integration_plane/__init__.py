"""
brickline — integration plane public API

File: src/brickline/integration_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Lossless assembly of verified fragments into the final document.
"""

from brickline.integration_plane.assembler import (
    Assembler,
    CompilationReport,
    check_preservation,
    compute_verification,
    verify_compilation,
)
from brickline.integration_plane.categories import (
    CATEGORY_ORDER,
    classify_fragment,
    sanitize_deliverable,
    sanitize_persona,
)
from brickline.integration_plane.metadata_backfill import backfill_metadata

__all__ = [
    "Assembler",
    "CATEGORY_ORDER",
    "CompilationReport",
    "backfill_metadata",
    "check_preservation",
    "classify_fragment",
    "compute_verification",
    "sanitize_deliverable",
    "sanitize_persona",
    "verify_compilation",
]
