"""Note Suggestions - Rule-based suggestion engine for meeting notes.

Turns free-form meeting-note text into a small, evidence-grounded,
de-duplicated set of scored suggestions (ideas, project updates, risks,
bugs). No model inference: every decision is a rule, so runs are
reproducible and auditable.

Usage:
    from note_suggestions import NoteInput, run_pipeline

    result, debug_run = run_pipeline(NoteInput(note_id="n1", raw_text=text))
    for suggestion in result.final_suggestions:
        print(suggestion.type.value, suggestion.title)
"""

__version__ = "0.1.0"

from note_suggestions.models import EngineConfig, NoteInput, RunResult, Suggestion
from note_suggestions.pipeline import PipelineError, compute_suggestion_key, run_pipeline

__all__ = [
    "__version__",
    "EngineConfig",
    "NoteInput",
    "PipelineError",
    "RunResult",
    "Suggestion",
    "compute_suggestion_key",
    "run_pipeline",
]
