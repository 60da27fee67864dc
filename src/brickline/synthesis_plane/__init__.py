"""
brickline — synthesis plane

File: src/brickline/synthesis_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Generation-side stages: specialist prompting, output extraction, and the
  critique/repair loop, all on top of the ``GenerationClient`` contract.
"""

from brickline.synthesis_plane.extraction import extract_generation
from brickline.synthesis_plane.prompt_templates import (
    PromptTemplateEngine,
    PromptTemplateError,
    RenderedPrompt,
)
from brickline.synthesis_plane.reflexion import ReflexionLoop, quick_reflexion
from brickline.synthesis_plane.specialist import (
    AtomicTask,
    Specialist,
    build_living_context,
    build_specialist_prompt,
    validate_generation,
)

__all__ = [
    "AtomicTask",
    "PromptTemplateEngine",
    "PromptTemplateError",
    "ReflexionLoop",
    "RenderedPrompt",
    "Specialist",
    "build_living_context",
    "build_specialist_prompt",
    "extract_generation",
    "quick_reflexion",
    "validate_generation",
]
