"""
brickline — public security rule utilities

File: src/brickline/security/__init__.py
Last updated: 2026-10-19

Purpose
- Pattern rules shared by the security gate and quick pre-checks.
"""

from brickline.security.rules import (
    DEFAULT_SECURITY_RULES,
    SecurityRule,
    iter_matching_rules,
    rules_for_policy,
)

__all__ = [
    "DEFAULT_SECURITY_RULES",
    "SecurityRule",
    "iter_matching_rules",
    "rules_for_policy",
]
