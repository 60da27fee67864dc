"""
brickline — verification plane public API

File: src/brickline/verification_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Exposes the pre-assembly security gate.
"""

from brickline.verification_plane.security_gate import (
    QuickSecurityCheck,
    SecurityGate,
    build_addendum,
    compute_score,
    count_issues,
    decide,
    format_scan_result,
    parse_deep_scan,
    quick_security_check,
)

__all__ = [
    "QuickSecurityCheck",
    "SecurityGate",
    "build_addendum",
    "compute_score",
    "count_issues",
    "decide",
    "format_scan_result",
    "parse_deep_scan",
    "quick_security_check",
]
