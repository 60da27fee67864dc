"""
brickline — domain package

File: src/brickline/domain/__init__.py
Last updated: 2026-10-19

Purpose
- Domain types shared across planes: GenerationRecord, Delta, VerifiedFragment,
  SecurityScanResult, FinalDocument and friends.

What should be included in this file
- Re-export of core domain entities for convenience.
- Keep domain layer free of IO side effects.

Non-functional requirements
- Domain layer should have minimal dependencies.
"""

from brickline.domain.ids import IdFactory
from brickline.domain.models import (
    AssemblyVerification,
    CritiqueResult,
    Delta,
    DeltaFormat,
    ExtractionMode,
    FinalDocument,
    Flaw,
    FlawSeverity,
    GateRecommendation,
    GenerationRecord,
    OutputMode,
    ProjectMetadata,
    ReflexionResult,
    ReflexionState,
    RepairResult,
    SecurityAddendum,
    SecurityCategory,
    SecurityIssue,
    SecurityRejectedError,
    SecurityScanResult,
    SecuritySeverity,
    VerifiedFragment,
)

__all__ = [
    "AssemblyVerification",
    "CritiqueResult",
    "Delta",
    "DeltaFormat",
    "ExtractionMode",
    "FinalDocument",
    "Flaw",
    "FlawSeverity",
    "GateRecommendation",
    "GenerationRecord",
    "IdFactory",
    "OutputMode",
    "ProjectMetadata",
    "ReflexionResult",
    "ReflexionState",
    "RepairResult",
    "SecurityAddendum",
    "SecurityCategory",
    "SecurityIssue",
    "SecurityRejectedError",
    "SecurityScanResult",
    "SecuritySeverity",
    "VerifiedFragment",
]
