"""Suggestion pipeline - Deterministic multi-stage transform.

Philosophy: "Every candidate either survives with grounded evidence or
leaves with a typed drop reason."
"""

from note_suggestions.pipeline.context import CoverageSet, IdGenerator, RunContext
from note_suggestions.pipeline.orchestrator import PipelineError, run_pipeline
from note_suggestions.pipeline.stages.dedupe import compute_suggestion_key, normalize_title
from note_suggestions.pipeline.text import compute_note_hash, normalize_for_comparison

__all__ = [
    # Entry Points
    "run_pipeline",
    "PipelineError",
    # Run State
    "CoverageSet",
    "IdGenerator",
    "RunContext",
    # Identity
    "compute_note_hash",
    "compute_suggestion_key",
    "normalize_for_comparison",
    "normalize_title",
]
