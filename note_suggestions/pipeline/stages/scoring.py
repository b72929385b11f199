"""Stage 5: Scoring - Composite scores and the relevance threshold."""

from typing import Optional

import structlog

from note_suggestions.models import Section, Suggestion, SuggestionScores, ThresholdConfig

logger = structlog.get_logger(__name__)

OUT_OF_SCOPE_WEIGHT = 0.3
REFERENCE_BOOST = 0.1
LAUNCH_BOOST = 0.15
SHORT_SECTION_PENALTY = 0.15
SHORT_SECTION_LINES = 2


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def section_actionability(section: Section) -> float:
    features = section.structural_features
    score = section.actionable_signal - OUT_OF_SCOPE_WEIGHT * section.out_of_scope_signal
    if features.has_quarter_refs or features.has_version_refs:
        score += REFERENCE_BOOST
    if features.has_launch_keywords:
        score += LAUNCH_BOOST
    if features.num_lines <= SHORT_SECTION_LINES:
        score -= SHORT_SECTION_PENALTY
    return _clamp(score)


def score_candidate(candidate: Suggestion, section: Section) -> Suggestion:
    """Return a copy of the candidate with its score breakdown filled in.

    overall is the minimum of section actionability, type-choice
    confidence and synthesis confidence.
    """
    confidence = candidate.metadata.confidence
    actionability = section_actionability(section)
    if candidate.type == section.type_label:
        type_choice = max(confidence, section.type_score)
    else:
        type_choice = confidence
    synthesis = confidence

    scores = SuggestionScores(
        section_actionability=round(actionability, 4),
        type_choice_confidence=round(_clamp(type_choice), 4),
        synthesis_confidence=round(_clamp(synthesis), 4),
        overall=round(min(actionability, _clamp(type_choice), _clamp(synthesis)), 4),
    )
    return candidate.model_copy(update={"scores": scores})


def threshold_failure(scores: SuggestionScores, thresholds: ThresholdConfig) -> Optional[str]:
    """Describe why a scored candidate is below threshold, or None when it passes."""
    if scores.section_actionability < thresholds.T_section_min:
        return f"section_actionability {scores.section_actionability:.2f} < {thresholds.T_section_min:.2f}"
    if scores.overall < thresholds.T_overall_min:
        return f"overall {scores.overall:.2f} < {thresholds.T_overall_min:.2f}"
    return None
