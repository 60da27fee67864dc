"""
brickline — package root

File: src/brickline/__init__.py
Last updated: 2026-10-19

Purpose
- Package root for the structured-output contract pipeline: extraction,
  critique/repair, security gating, and lossless assembly of verified fragments.

What should be included in this file
- Version export and a minimal public API surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).

Non-functional requirements
- Must keep import time fast; heavy submodules are imported by callers.
"""

from __future__ import annotations

__version__ = "0.4.0"

__all__ = ["__version__"]
