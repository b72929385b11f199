"""Pipeline stages, in execution order."""

from note_suggestions.pipeline.stages.preprocessor import preprocess_note, PreprocessingResult
from note_suggestions.pipeline.stages.classifier import classify_section, classify_sections
from note_suggestions.pipeline.stages.signal_seeding import seed_candidates
from note_suggestions.pipeline.stages.idea_extraction import extract_ideas
from note_suggestions.pipeline.stages.timeline_merge import merge_timeline
from note_suggestions.pipeline.stages.validators import run_validators
from note_suggestions.pipeline.stages.scoring import score_candidate, threshold_failure
from note_suggestions.pipeline.stages.consolidation import consolidate_sections
from note_suggestions.pipeline.stages.dedupe import dedupe_candidates, with_key
from note_suggestions.pipeline.stages.aggregation import aggregate

__all__ = [
    # Stage 1
    "preprocess_note",
    "PreprocessingResult",
    # Stage 2
    "classify_section",
    "classify_sections",
    # Stage 3
    "seed_candidates",
    "extract_ideas",
    "merge_timeline",
    # Stage 4
    "run_validators",
    # Stage 5
    "score_candidate",
    "threshold_failure",
    # Stage 5b
    "consolidate_sections",
    # Stage 6
    "dedupe_candidates",
    "with_key",
    # Stage 7
    "aggregate",
]
