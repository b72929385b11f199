"""Stage 7: Aggregation - Deterministic ordering, the per-note cap and run invariants."""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from note_suggestions.models import RunInvariants, Suggestion

logger = structlog.get_logger(__name__)


def rank_key(candidate: Suggestion) -> tuple[float, str]:
    """Score descending, then suggestion_id ascending."""
    return (-candidate.scores.overall, candidate.suggestion_id)


@dataclass
class AggregationResult:
    final: list[Suggestion]
    trimmed: list[Suggestion] = field(default_factory=list)
    invariants: RunInvariants = field(default_factory=RunInvariants)


def aggregate(
    candidates: list[Suggestion],
    max_suggestions: int,
    emitted_count: Optional[int] = None,
) -> AggregationResult:
    """Order survivors and apply the cap (0 = uncapped).

    max_respected and trimmed_to_max describe the pre-trim state:
    a trim means the cap was exceeded before aggregation.

    Args:
        candidates: Deduplicated survivors.
        max_suggestions: Per-note cap, 0 for none.
        emitted_count: Candidates that cleared scoring, before dedupe.
            aggregation_valid fails when these were nonzero and the
            final list is empty. Defaults to len(candidates).
    """
    ordered = sorted(candidates, key=rank_key)
    emitted = len(ordered) if emitted_count is None else emitted_count

    if max_suggestions > 0 and len(ordered) > max_suggestions:
        final, trimmed = ordered[:max_suggestions], ordered[max_suggestions:]
        invariants = RunInvariants(max_respected=False, trimmed_to_max=True)
    else:
        final, trimmed = ordered, []
        invariants = RunInvariants(max_respected=True, trimmed_to_max=False)

    invariants.aggregation_valid = not (emitted > 0 and len(final) == 0)
    if not invariants.aggregation_valid:
        logger.error("aggregation_invalid", emitted=emitted, final=len(final))

    logger.debug(
        "aggregation_complete",
        emitted=emitted,
        final=len(final),
        trimmed=len(trimmed),
    )
    return AggregationResult(final=final, trimmed=trimmed, invariants=invariants)
