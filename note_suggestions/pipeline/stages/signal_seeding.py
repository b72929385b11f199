"""Stage 3a: Signal-Seeded Extraction - One candidate per strongly-signalled sentence.

Sentences are split on punctuation AND newlines so every bullet is scored
on its own; a bulleted list never becomes one run-on sentence. Each
sentence is matched against a table of signal families; a sentence that
clears a family's threshold seeds one candidate whose evidence is that
sentence alone.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog

from note_suggestions.models import (
    BugPayload,
    DisplayContext,
    EvidenceSpan,
    ExtractorName,
    IdeaPayload,
    ProjectUpdatePayload,
    RiskPayload,
    Section,
    Suggestion,
    SuggestionMetadata,
    SuggestionType,
)
from note_suggestions.pipeline.context import CoverageSet, RunContext
from note_suggestions.pipeline.stages.classifier import is_process_noise
from note_suggestions.pipeline.stages.timeline_merge import (
    PERSONAL_DATA_OBJECTS,
    SECURITY_LEXICAL_TOKENS,
    TIMELINE_DATE_TOKENS,
    is_timeline_owned,
    is_timeline_section,
)
from note_suggestions.pipeline.text import (
    SentenceRef,
    capitalize_first,
    sentences_from_lines,
    strip_label_prefix,
    truncate_at_word,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Signal Token Families
# =============================================================================

EXTERNAL_ACTORS = re.compile(r"\b(users?|customers?|cto|cs|sales|trial|prospects?|they|them|clients?)\b", re.IGNORECASE)
DESIRE_VERBS = re.compile(r"\b(need|needs|require|requires|want|wants|requesting|asking\s+for|screaming\s+for)\b", re.IGNORECASE)
DEMAND_AMPLIFIERS = re.compile(r"\b(blocker|failing|expansion|churn|renewal)\b", re.IGNORECASE)

TIME_MILESTONES = re.compile(r"\b(date|deadline|q[1-4]|launch|release|v1|beta|ga|milestone|sprint)\b", re.IGNORECASE)
SHIFT_VERBS = re.compile(
    r"\b(push(?:ing|ed)?|delay(?:ing|ed)?|mov(?:e|ing|ed)|slip(?:ping|ped)?|pull(?:ing|ed)?|postpon(?:e|ing|ed)|bring(?:ing)?\s+forward|brought\s+forward)\b",
    re.IGNORECASE,
)
PRIORITY_TOKENS = re.compile(
    r"\b((?:de|re)?prioriti[sz](?:e|ed|ing)|now\s+p[0-2]|top\s+priority|highest\s+priority)\b",
    re.IGNORECASE,
)
OWNERSHIP_TOKENS = re.compile(
    r"(\bowner\s*:\s*\S|\b(?:pm|eng|engineering|cs|qa|design|security|legal)\s+to\s+\w|\b(?:product\s+manager|customer\s+success)\s+to\s+\w|\btak(?:e|ing)\s+over\b|\btook\s+over\b)",
    re.IGNORECASE,
)

ACTIONABLE_CONDITIONALS = re.compile(
    r"\b(if we don't|if we do not|might need to be|could require|may force|might be pulled|could block)\b",
    re.IGNORECASE,
)
CONDITIONAL_TOKENS = re.compile(r"\b(if|unless)\b", re.IGNORECASE)
CONSEQUENCE_REFS = re.compile(r"\b(release|launch|rollout|scope|mobile app|pulled|app store|deadline)\b", re.IGNORECASE)
SUBJECTIVE_CONCERN_PREFIX = re.compile(r"^(some\s+)?(concern|risk|worry|worried|fear)\s+that\b", re.IGNORECASE)

BUG_TOKENS = re.compile(
    r"\b(failing|broken|latency|error|errors|regression|crash(?:es|ing)?|not behaving|doesn't work|does not work|bug)\b",
    re.IGNORECASE,
)
BUG_HEDGES = re.compile(r"\b(if|might|could|may|risk|concern)\b", re.IGNORECASE)

RISK_HEADING_PATTERN = re.compile(r"\b(security|compliance|risk|risks|considerations)\b", re.IGNORECASE)

# Object clause after a trigger verb, used for derived titles
OBJECT_TRIGGER = re.compile(
    r"\b(?:need|needs|require|requires|want|wants|requesting|asking\s+for|screaming\s+for|implement|build|add|fix"
    r"|push(?:ing|ed)?|pull(?:ing|ed)?|slip(?:ping|ped)?|mov(?:e|ing|ed)|delay(?:ing|ed)?|fail(?:ing|ed)?|block(?:ing|ed)?"
    r"|(?:de|re)?prioriti[sz](?:e|ed|ing))\s+([^.,;!?\n]{3,120})",
    re.IGNORECASE,
)
OBJECT_CUT = re.compile(r"\b(?:but|until|because|so|when|unless)\b", re.IGNORECASE)
LEADING_ARTICLES = re.compile(r"^(?:the|a|an|our|their|this|that)\s+", re.IGNORECASE)
OBJECT_MAX_CHARS = 50
SPECIFIC_RISK_CONFIDENCE = 0.85


# =============================================================================
# Signal Rule Table
# =============================================================================

@dataclass
class SignalRule:
    """One signal family: how to score a sentence and what it seeds."""
    family: str
    proposed_type: SuggestionType
    threshold: float
    score: Callable[[str], float]


def _score_feature_demand(sentence: str) -> float:
    if not EXTERNAL_ACTORS.search(sentence) or not DESIRE_VERBS.search(sentence):
        return 0.0
    return 0.75 if DEMAND_AMPLIFIERS.search(sentence) else 0.65


def _score_plan_change(sentence: str) -> float:
    return 0.75 if TIME_MILESTONES.search(sentence) and SHIFT_VERBS.search(sentence) else 0.0


def _score_priority_shift(sentence: str) -> float:
    return 0.7 if PRIORITY_TOKENS.search(sentence) else 0.0


def _score_ownership(sentence: str) -> float:
    return 0.7 if OWNERSHIP_TOKENS.search(sentence) else 0.0


def _score_scope_risk(sentence: str) -> float:
    if SUBJECTIVE_CONCERN_PREFIX.search(sentence.strip()):
        return 0.0
    if ACTIONABLE_CONDITIONALS.search(sentence):
        return 0.7
    if CONDITIONAL_TOKENS.search(sentence) and CONSEQUENCE_REFS.search(sentence):
        return 0.7
    return 0.0


def _score_pii_exposure(sentence: str) -> float:
    if SECURITY_LEXICAL_TOKENS.search(sentence) and PERSONAL_DATA_OBJECTS.search(sentence):
        return SPECIFIC_RISK_CONFIDENCE
    return 0.0


def _score_bug(sentence: str) -> float:
    if not BUG_TOKENS.search(sentence) or BUG_HEDGES.search(sentence):
        return 0.0
    return 0.7


SIGNAL_RULES: list[SignalRule] = [
    SignalRule("feature_demand", SuggestionType.IDEA, 0.6, _score_feature_demand),
    SignalRule("plan_change", SuggestionType.PROJECT_UPDATE, 0.7, _score_plan_change),
    SignalRule("priority_shift", SuggestionType.PROJECT_UPDATE, 0.7, _score_priority_shift),
    SignalRule("ownership", SuggestionType.PROJECT_UPDATE, 0.7, _score_ownership),
    SignalRule("scope_risk", SuggestionType.RISK, 0.7, _score_scope_risk),
    SignalRule("pii_exposure", SuggestionType.RISK, 0.8, _score_pii_exposure),
    SignalRule("bug", SuggestionType.BUG, 0.7, _score_bug),
]


@dataclass
class Signal:
    """A sentence that cleared a family threshold."""
    family: str
    proposed_type: SuggestionType
    confidence: float
    sentence: SentenceRef


@dataclass
class SignalSeedingTrace:
    """What the extractor saw and skipped for one section."""
    sentences: int = 0
    skipped_covered: int = 0
    skipped_process_noise: int = 0
    skipped_timeline_owned: int = 0
    signals: list[dict] = field(default_factory=list)
    suppressed_generic_risks: int = 0


# =============================================================================
# Helper Functions
# =============================================================================

def extract_object(sentence: str) -> Optional[str]:
    """Pull a short object clause out of a sentence, or None."""
    match = OBJECT_TRIGGER.search(sentence)
    if not match:
        return None
    obj = OBJECT_CUT.split(match.group(1))[0].strip()
    obj = LEADING_ARTICLES.sub("", obj).strip(" -:")
    if len(obj) < 3:
        return None
    return truncate_at_word(obj, OBJECT_MAX_CHARS)


def title_for_signal(signal: Signal, heading_text: str) -> str:
    """Deterministic title per family, with a family default when no object is found."""
    sentence = signal.sentence.text
    obj = extract_object(sentence)
    if signal.family == "feature_demand":
        return f"Implement {obj}" if obj else "Implement requested feature"
    if signal.family in ("plan_change", "priority_shift"):
        return f"Update: {obj}" if obj else "Update: project plan"
    if signal.family == "ownership":
        return f"Owner update: {truncate_at_word(strip_label_prefix(sentence), OBJECT_MAX_CHARS)}"
    if signal.family == "bug":
        return f"Fix {obj} issue" if obj else "Fix reported issue"
    # scope_risk / pii_exposure
    if heading_text and RISK_HEADING_PATTERN.search(heading_text):
        return f"Risk: {heading_text}"
    if obj:
        return f"Risk: {obj}"
    clause = truncate_at_word(strip_label_prefix(sentence), OBJECT_MAX_CHARS)
    return f"Risk: {capitalize_first(clause)}" if clause else "Mitigate release risk"


def _payload_for(signal: Signal):
    sentence = signal.sentence.text
    if signal.proposed_type == SuggestionType.PROJECT_UPDATE:
        refs = [m.group(0) for m in TIMELINE_DATE_TOKENS.finditer(sentence)]
        return ProjectUpdatePayload(after_description=sentence, timeline_refs=refs)
    if signal.proposed_type == SuggestionType.RISK:
        tokens = sorted({m.group(0).lower() for m in SECURITY_LEXICAL_TOKENS.finditer(sentence)}
                        | {m.group(0).lower() for m in PERSONAL_DATA_OBJECTS.finditer(sentence)})
        return RiskPayload(description=sentence, risk_tokens=tokens, specificity=len(tokens))
    if signal.proposed_type == SuggestionType.BUG:
        tokens = sorted({m.group(0).lower() for m in BUG_TOKENS.finditer(sentence)})
        return BugPayload(description=sentence, symptom_tokens=tokens)
    return IdeaPayload(description=sentence)


def _dedupe_signals(signals: list[Signal]) -> list[Signal]:
    """Keep the highest-confidence signal per (sentence, type)."""
    best: dict[tuple[int, SuggestionType], Signal] = {}
    for signal in signals:
        key = (signal.sentence.index, signal.proposed_type)
        existing = best.get(key)
        if existing is None or signal.confidence > existing.confidence:
            best[key] = signal
    return sorted(best.values(), key=lambda s: (s.sentence.index, s.proposed_type.value))


def candidate_from_signal(signal: Signal, section: Section, ctx: RunContext) -> Suggestion:
    heading = (section.heading_text or "").strip()
    title = title_for_signal(signal, heading)
    sentence = signal.sentence
    return Suggestion(
        suggestion_id=ctx.ids.next_suggestion_id(),
        note_id=section.note_id,
        section_id=section.section_id,
        type=signal.proposed_type,
        title=title,
        payload=_payload_for(signal),
        evidence_spans=[EvidenceSpan(
            start_line=sentence.line_index,
            end_line=sentence.line_index,
            text=sentence.text,
        )],
        metadata=SuggestionMetadata(
            source_extractor=ExtractorName.SIGNAL_SEEDING,
            confidence=signal.confidence,
            signal_family=signal.family,
            title_source="heading" if title == f"Risk: {heading}" and heading else "signal",
        ),
        display_context=DisplayContext(
            title=title,
            body=sentence.text,
            evidence_preview=[sentence.text],
            source_section_id=section.section_id,
            source_heading=heading,
        ),
    )


# =============================================================================
# Extractor
# =============================================================================

def seed_candidates(
    section: Section,
    coverage: CoverageSet,
    ctx: RunContext,
) -> tuple[list[Suggestion], SignalSeedingTrace]:
    """Seed candidates from signal-bearing sentences of one actionable section.

    Args:
        section: A classified, actionable section.
        coverage: Shared coverage set; accepted evidence is claimed here.
        ctx: Run context (ids).

    Returns:
        Tuple of (candidates, trace).
    """
    trace = SignalSeedingTrace()
    sentences = sentences_from_lines(section.body_lines)
    trace.sentences = len(sentences)
    timeline_section = is_timeline_section(section)

    signals: list[Signal] = []
    for sentence in sentences:
        if coverage.is_covered(sentence.text):
            trace.skipped_covered += 1
            continue
        if is_process_noise(sentence.text):
            trace.skipped_process_noise += 1
            continue
        if timeline_section and is_timeline_owned(sentence.text):
            trace.skipped_timeline_owned += 1
            continue

        for rule in SIGNAL_RULES:
            confidence = rule.score(sentence.text)
            if confidence >= rule.threshold:
                signals.append(Signal(rule.family, rule.proposed_type, confidence, sentence))

    # Specific personal-data risks suppress generic risks in the same section
    if any(s.proposed_type == SuggestionType.RISK and s.confidence >= SPECIFIC_RISK_CONFIDENCE for s in signals):
        before = len(signals)
        signals = [
            s for s in signals
            if s.proposed_type != SuggestionType.RISK or s.confidence >= SPECIFIC_RISK_CONFIDENCE
        ]
        trace.suppressed_generic_risks = before - len(signals)

    candidates = []
    for signal in _dedupe_signals(signals):
        candidate = candidate_from_signal(signal, section, ctx)
        coverage.claim(signal.sentence.text)
        candidates.append(candidate)
        trace.signals.append({
            "family": signal.family,
            "type": signal.proposed_type.value,
            "confidence": signal.confidence,
            "line": signal.sentence.line_index,
        })

    logger.debug(
        "signal_seeding_complete",
        section_id=section.section_id,
        sentences=trace.sentences,
        candidates=len(candidates),
    )
    return candidates, trace
