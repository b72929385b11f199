"""Pipeline Orchestrator - Runs every stage over one note.

(NoteInput, EngineConfig) -> (RunResult, DebugRun | None)

The run is a pure transform: no I/O, no module-level state. Each call
builds its own RunContext (ids, coverage, drop log), so concurrent runs
never interfere. Extractor order is fixed and significant because the
extractors share one coverage set.

Stage Flow:
1. Preprocess  → lines, sections
2. Classify    → labelled sections, actionability
3. Extract     → candidates (signal seeding → idea semantic → timeline merge)
4. Validate    → V1 → V2 → V3
5. Score       → score breakdown, LOW_RELEVANCE threshold
5b. Consolidate → one idea per structured list section
6. Dedupe      → suggestion keys, duplicate removal
7. Aggregate   → ordering, cap, invariants
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Callable, Optional
from uuid import uuid4

import structlog

from note_suggestions.debug.recorder import DebugRecorder
from note_suggestions.models import (
    DROP_REASON_STAGE,
    DebugRun,
    DropReason,
    EngineConfig,
    ExtractorName,
    Line,
    NoteInput,
    RunInvariants,
    RunResult,
    Section,
    Suggestion,
    ValidatorOutcome,
)
from note_suggestions.pipeline.context import RunContext
from note_suggestions.pipeline.stages.aggregation import aggregate, rank_key
from note_suggestions.pipeline.stages.classifier import classify_sections
from note_suggestions.pipeline.stages.consolidation import consolidate_sections
from note_suggestions.pipeline.stages.dedupe import dedupe_candidates, with_key
from note_suggestions.pipeline.stages.idea_extraction import extract_ideas
from note_suggestions.pipeline.stages.preprocessor import preprocess_note
from note_suggestions.pipeline.stages.scoring import score_candidate, threshold_failure
from note_suggestions.pipeline.stages.signal_seeding import seed_candidates
from note_suggestions.pipeline.stages.timeline_merge import merge_timeline
from note_suggestions.pipeline.stages.validators import run_validators
from note_suggestions.pipeline.text import compute_note_hash

logger = structlog.get_logger(__name__)


class PipelineError(Exception):
    """Misuse of the pipeline API (never raised for note content)."""
    pass


Extractor = Callable[..., tuple[list[Suggestion], object]]

# Order matters: earlier extractors claim evidence first
EXTRACTORS: list[tuple[ExtractorName, Extractor]] = [
    (ExtractorName.SIGNAL_SEEDING, seed_candidates),
    (ExtractorName.IDEA_SEMANTIC, extract_ideas),
    (ExtractorName.TIMELINE_MERGE, merge_timeline),
]


@dataclass
class PipelineState:
    """Everything one run accumulates as it moves through the stages."""
    note: NoteInput
    ctx: RunContext
    recorder: Optional[DebugRecorder] = None
    lines: list[Line] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    candidates: list[Suggestion] = field(default_factory=list)
    final: list[Suggestion] = field(default_factory=list)
    scored_count: int = 0
    invariants: RunInvariants = field(default_factory=RunInvariants)
    stage_timings_ms: dict[str, float] = field(default_factory=dict)

    @property
    def section_index(self) -> dict[str, Section]:
        return {s.section_id: s for s in self.sections}


def run_pipeline(
    note: NoteInput,
    config: Optional[EngineConfig] = None,
) -> tuple[RunResult, Optional[DebugRun]]:
    """Run the complete suggestion pipeline on one note.

    Args:
        note: The caller's note. Never modified.
        config: Run configuration. Defaults to EngineConfig().

    Returns:
        Tuple of (RunResult, DebugRun or None). The debug run shares the
        result's run_id and is None when debug is off.

    Raises:
        PipelineError: If called with something other than a NoteInput
            or an EngineConfig. Note content never raises.
    """
    if not isinstance(note, NoteInput):
        raise PipelineError(f"Expected NoteInput, got {type(note).__name__}")
    if config is None:
        config = EngineConfig()
    elif not isinstance(config, EngineConfig):
        raise PipelineError(f"Expected EngineConfig, got {type(config).__name__}")

    run_start = perf_counter()
    run_id = uuid4().hex
    created_at = datetime.now(timezone.utc)
    note_hash = compute_note_hash(note.raw_text)

    state = PipelineState(
        note=note,
        ctx=RunContext.create(config, note.note_id, note_hash),
        recorder=DebugRecorder.create(config, note, note_hash),
    )

    logger.info("pipeline_start", run_id=run_id, note_id=note.note_id, chars=len(note.raw_text))

    state = _run_preprocessing(state)
    state = _run_classification(state)
    state = _run_extraction(state)
    state = _run_validation(state)
    state = _run_scoring(state)
    state = _run_consolidation(state)
    state = _run_dedupe(state)
    state = _run_aggregation(state)

    total_ms = (perf_counter() - run_start) * 1000

    result = RunResult(
        run_id=run_id,
        note_id=note.note_id,
        note_hash=note_hash,
        created_at=created_at,
        line_count=len(state.lines),
        final_suggestions=state.final,
        invariants=state.invariants,
        config_snapshot=config,
        warnings=list(state.ctx.warnings),
    )

    debug_run = None
    if state.recorder is not None:
        debug_run = state.recorder.build(run_id, created_at, total_ms, config)
        result.debug_storage_skipped_reason = debug_run.storage_skipped_reason

    logger.info(
        "pipeline_complete",
        run_id=run_id,
        note_id=note.note_id,
        sections=len(state.sections),
        final=len(state.final),
        drops=len(state.ctx.drops),
        duration_ms=round(total_ms, 2),
    )
    return result, debug_run


# =============================================================================
# Drop Helpers
# =============================================================================

def _drop_candidate(state: PipelineState, candidate: Suggestion, reason: DropReason, detail: str = "") -> None:
    state.ctx.record_drop(
        reason,
        detail=detail,
        section_id=candidate.section_id,
        suggestion_id=candidate.suggestion_id,
    )
    if state.recorder is not None:
        state.recorder.drop_candidate(candidate.suggestion_id, reason, detail)
    logger.debug(
        "candidate_dropped",
        suggestion_id=candidate.suggestion_id,
        reason=reason.value,
    )


def _mark_section(state: PipelineState, section: Section, reason: DropReason, detail: str = "") -> Section:
    """Set the exit record on the section and mirror it onto the debug run."""
    if state.recorder is not None:
        state.recorder.drop_section(section.section_id, reason, detail)
    logger.debug("section_dropped", section_id=section.section_id, reason=reason.value)
    return section.model_copy(update={"drop_stage": DROP_REASON_STAGE[reason], "drop_reason": reason})


def _forward_section_drops(state: PipelineState, already_seen: int) -> None:
    """Mirror section drops recorded inside a stage onto the recorder."""
    if state.recorder is None:
        return
    for record in state.ctx.drops[already_seen:]:
        if record.section_id and record.suggestion_id is None:
            state.recorder.drop_section(record.section_id, record.reason, record.detail)


def _elapsed_ms(stage_start: float) -> float:
    return (perf_counter() - stage_start) * 1000


def _finish_stage(state: PipelineState, stage: str, stage_start: float) -> None:
    duration = _elapsed_ms(stage_start)
    state.stage_timings_ms[stage] = duration
    if state.recorder is not None:
        state.recorder.record_stage_timing(stage, duration)


# =============================================================================
# Stages
# =============================================================================

def _run_preprocessing(state: PipelineState) -> PipelineState:
    """Stage 1: Annotate lines and segment sections."""
    stage_start = perf_counter()
    drops_before = len(state.ctx.drops)

    result = preprocess_note(state.note, state.ctx)
    state.lines = result.lines
    state.sections = result.sections

    if not state.sections:
        state.ctx.warnings.append({"stage": "preprocess", "warning": "empty_note"})

    if state.recorder is not None:
        state.recorder.record_line_count(len(state.lines))
        for section in state.sections:
            state.recorder.record_section(section)
    _forward_section_drops(state, drops_before)

    _finish_stage(state, "preprocess", stage_start)
    return state


def _run_classification(state: PipelineState) -> PipelineState:
    """Stage 2: Label sections and decide actionability."""
    stage_start = perf_counter()
    drops_before = len(state.ctx.drops)

    state.sections = classify_sections(state.sections, state.ctx)

    if state.recorder is not None:
        for section in state.sections:
            state.recorder.record_classification(section)
    _forward_section_drops(state, drops_before)

    _finish_stage(state, "classify", stage_start)
    return state


def _run_extraction(state: PipelineState) -> PipelineState:
    """Stage 3: Run the extractors, in order, over each actionable section.

    An extractor that raises is contained to its own (section, extractor)
    pair: the failure becomes an INTERNAL_ERROR drop and the remaining
    extractors still run.
    """
    stage_start = perf_counter()
    ctx = state.ctx

    sections = []
    for section in state.sections:
        if section.is_dropped or not section.is_actionable:
            sections.append(section)
            continue

        emitted: list[Suggestion] = []
        failures: list[str] = []
        for name, extractor in EXTRACTORS:
            try:
                candidates, trace = extractor(section, ctx.coverage, ctx)
            except Exception as e:
                failures.append(name.value)
                ctx.record_drop(
                    DropReason.INTERNAL_ERROR,
                    detail=f"{name.value}: {type(e).__name__}",
                    section_id=section.section_id,
                )
                ctx.warnings.append({
                    "stage": "extract",
                    "extractor": name.value,
                    "section_id": section.section_id,
                    "error": type(e).__name__,
                })
                logger.error(
                    "extractor_failed",
                    extractor=name.value,
                    section_id=section.section_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if state.recorder is not None:
                    state.recorder.record_extractor_attempt(section.section_id, name, 0, error=type(e).__name__)
                continue

            emitted.extend(candidates)
            if state.recorder is not None:
                state.recorder.record_extractor_attempt(
                    section.section_id, name, len(candidates), trace=asdict(trace)
                )
                for candidate in candidates:
                    state.recorder.record_candidate(candidate)

        if not emitted and failures:
            # Already in the drop log, one record per failed extractor
            section = _mark_section(
                state, section, DropReason.INTERNAL_ERROR, f"extractor failed: {', '.join(failures)}"
            )
        elif not emitted:
            ctx.record_drop(DropReason.NO_CANDIDATES, detail="no extractor emitted", section_id=section.section_id)
            section = _mark_section(state, section, DropReason.NO_CANDIDATES, "no extractor emitted")
        state.candidates.extend(emitted)
        sections.append(section)

    state.sections = sections

    logger.info(
        "extraction_complete",
        candidates=len(state.candidates),
        covered_texts=len(ctx.coverage),
    )
    _finish_stage(state, "extract", stage_start)
    return state


def _run_validation(state: PipelineState) -> PipelineState:
    """Stage 4: V1 -> V2 -> V3 on every candidate."""
    stage_start = perf_counter()
    sections = state.section_index
    thresholds = state.ctx.config.thresholds

    survivors = []
    for candidate in state.candidates:
        passed, results = run_validators(candidate, sections.get(candidate.section_id), thresholds)
        if state.recorder is not None:
            state.recorder.record_validation(
                candidate.suggestion_id,
                [ValidatorOutcome(validator=r.validator, passed=r.passed, reason=r.reason) for r in results],
            )
        if passed:
            survivors.append(candidate)
        else:
            failed = results[-1]
            _drop_candidate(state, candidate, failed.drop_reason, failed.reason or "")

    logger.info("validation_complete", passed=len(survivors), failed=len(state.candidates) - len(survivors))
    state.candidates = survivors
    _finish_stage(state, "validate", stage_start)
    return state


def _run_scoring(state: PipelineState) -> PipelineState:
    """Stage 5: Score survivors and apply the relevance thresholds."""
    stage_start = perf_counter()
    sections = state.section_index
    thresholds = state.ctx.config.thresholds

    kept = []
    for candidate in state.candidates:
        scored = score_candidate(candidate, sections[candidate.section_id])
        if state.recorder is not None:
            state.recorder.record_scores(scored.suggestion_id, scored.scores)
        failure = threshold_failure(scored.scores, thresholds)
        if failure is not None:
            _drop_candidate(state, scored, DropReason.LOW_RELEVANCE, failure)
            continue
        kept.append(scored)

    state.candidates = kept
    state.scored_count = len(kept)
    _finish_stage(state, "score", stage_start)
    return state


def _run_consolidation(state: PipelineState) -> PipelineState:
    """Stage 5b: Merge fragmented ideas of a structured list section."""
    stage_start = perf_counter()

    result = consolidate_sections(state.candidates, state.section_index, state.ctx)
    for group in result.groups:
        consolidated = group.consolidated
        if state.recorder is not None:
            state.recorder.record_candidate(consolidated)
            state.recorder.record_validation(
                consolidated.suggestion_id,
                [ValidatorOutcome(validator=r.validator, passed=r.passed, reason=r.reason) for r in group.validation],
            )
            state.recorder.record_scores(consolidated.suggestion_id, consolidated.scores)
        for fragment in group.fragments:
            _drop_candidate(state, fragment, DropReason.CONSOLIDATED, f"merged into {consolidated.suggestion_id}")

    if result.groups:
        logger.info("consolidation_complete", groups=len(result.groups), candidates=len(result.candidates))
    state.candidates = result.candidates
    _finish_stage(state, "consolidate", stage_start)
    return state


def _run_dedupe(state: PipelineState) -> PipelineState:
    """Stage 6: Compute suggestion keys and drop duplicates, best-scored first."""
    stage_start = perf_counter()

    keyed = [with_key(c) for c in sorted(state.candidates, key=rank_key)]
    if state.recorder is not None:
        for candidate in keyed:
            state.recorder.record_key(candidate.suggestion_id, candidate.suggestion_key)

    kept, duplicates = dedupe_candidates(keyed)
    for duplicate in duplicates:
        _drop_candidate(state, duplicate.candidate, duplicate.reason, duplicate.detail)

    state.candidates = kept
    _finish_stage(state, "dedupe", stage_start)
    return state


def _run_aggregation(state: PipelineState) -> PipelineState:
    """Stage 7: Order, cap and check invariants."""
    stage_start = perf_counter()

    result = aggregate(
        state.candidates,
        state.ctx.config.max_suggestions_per_note,
        emitted_count=state.scored_count,
    )
    for candidate in result.trimmed:
        _drop_candidate(
            state,
            candidate,
            DropReason.TRIMMED_TO_CAP,
            f"cap {state.ctx.config.max_suggestions_per_note}",
        )

    state.final = result.final
    state.invariants = result.invariants
    state.candidates = []
    if state.recorder is not None:
        for suggestion in state.final:
            state.recorder.mark_emitted(suggestion)

    _finish_stage(state, "aggregate", stage_start)
    return state
