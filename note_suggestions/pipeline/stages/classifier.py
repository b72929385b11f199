"""Stage 2: Classifier - Intent, type and actionability for every section.

Rule-based and total: every section receives exactly one intent label and
one type label, whatever its content. Sections that fail actionability
are marked with a CLASSIFICATION drop and never reach extraction.

SIGNALS:
- Actionable signal: max sentence score over the rule table below
- Out-of-scope signal: calendar / communication / micro-admin markers
- Intent distribution: plan_change vs new_workstream, derived from which rules fired
"""

import re
from dataclasses import dataclass, field

import structlog

from note_suggestions.models import (
    DropReason,
    DropStage,
    IntentLabel,
    Section,
    SuggestionType,
    ThresholdConfig,
)
from note_suggestions.pipeline.context import RunContext
from note_suggestions.pipeline.text import normalize_quotes, strip_list_marker

logger = structlog.get_logger(__name__)


# =============================================================================
# Actionability Rule Tables
# =============================================================================

REQUEST_STEMS = [
    "please", "can you", "could you", "would you", "i want you to",
    "i'd like you to", "i would like you to", "i would really like you to",
    "we should", "we probably should", "should", "let's", "lets", "need to",
    "we need to", "maybe we need", "we may need to", "it would be good to",
    "asking for", "requested", "want to", "would like",
]

ACTION_VERBS = [
    "add", "implement", "build", "create", "enable", "disable", "remove",
    "delete", "fix", "update", "change", "refactor", "improve", "support",
    "integrate", "adjust", "modify", "revise", "launch", "ship", "introduce",
]

CHANGE_OPERATORS = [
    "move", "moving", "moved", "push", "pushing", "pushed", "delay", "delaying",
    "delayed", "slip", "slipping", "slipped", "bring forward", "bringing forward",
    "brought forward", "postpone", "postponing", "postponed", "deprioritize",
    "deprioritizing", "deprioritized", "prioritize", "prioritizing", "prioritized",
    "shift", "shifting", "shifted", "pivot", "pivoting", "pivoted", "reframe",
    "reframing", "reframed", "reprioritize", "reprioritizing", "reprioritized",
    "defer", "deferring", "deferred", "accelerate", "accelerating", "accelerated",
    "narrow", "narrowing", "narrowed", "expand", "expanding", "expanded",
    "refocus", "refocusing", "refocused", "adjust", "adjusting", "adjusted",
    "modify", "modifying", "modified", "revise", "revising", "revised",
    "take over", "taking over", "took over", "instead of", "now p0", "now p1", "now p2",
]

STATUS_MARKERS = [
    "done", "shipped", "deployed", "released", "implemented", "merged",
    "blocked", "waiting on", "in progress",
]

PRODUCT_NOUNS = [
    "onboarding", "signup", "flow", "ui", "api", "integration", "pricing",
    "dashboard", "tracking", "analytics",
]

BULLET_ACTION_VERBS = [
    "add", "verify", "update", "share", "remove", "fix", "create", "build",
    "implement", "test", "review", "check", "ensure", "set up", "deploy",
    "migrate", "refactor", "integrate", "move", "send", "confirm", "finalize",
]

HEDGED_DIRECTIVES = [
    "we should", "we probably should", "maybe we need", "we may need to",
    "it would be good to", "let's", "lets", "we plan to", "we want to",
]

NEGATION_PATTERNS = ["don't", "do not", "no need to", "not necessary to"]

ROLE_ASSIGNMENTS = [
    "pm to", "cs to", "eng to", "design to", "designer to", "project manager to",
    "product manager to", "engineering to", "customer success to",
]

DECISION_MARKERS = [
    "will be logged", "will be", "no near-term", "near-term", "revisit",
    "decided", "agreed", "approved",
]

STRUCTURED_TASK_MARKERS = ["- [ ]", "* [ ]", "todo:", "action:", "owner:"]

# Schedule commitments: "3-month window", "target January", "Q3 2025", "deadline"
SCHEDULE_PATTERN = re.compile(
    r"\b(\d+-(?:week|day|month|year|sprint)s?"
    r"|target(?:ed|ing)?\s+(?:early\s+|mid\s+|late\s+|end\s+of\s+)?"
    r"(?:jan|feb|mar|apr|jun|jul|aug|sep|oct|nov|dec|q[1-4]|\d)\w*"
    r"|q[1-4]\s*\d{4}|deadline|eta)\b",
    re.IGNORECASE,
)

# Out-of-scope markers (whole-word for single words)
CALENDAR_MARKERS = [
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday",
    "sunday", "next week", "this week", "next month",
]
COMMUNICATION_MARKERS = ["email", "send", "slack", "follow up", "reach out", "ping"]
MICRO_ADMIN_MARKERS = ["rename file", "update doc link", "fix typo"]

# Implicit idea: need + capability + purpose, no schedule/completion
IMPLICIT_NEED_SIGNALS = [
    "we need", "we don't have", "users can't", "it's hard to", "missing",
    "no way to", "can't", "lack of", "lacking",
]
IMPLICIT_PURPOSE_SIGNALS = [
    "so we can", "so we", "so that", "to help", "to see", "because",
    "in order to", "so users can",
]
IMPLICIT_CAPABILITY_NOUNS = [
    "boundary detection", "dashboard", "errors", "visibility", "alerts",
    "tracking", "monitoring", "reporting", "analytics", "notifications",
    "logging", "metrics", "search", "filtering", "sorting", "pagination",
]
COMPLETION_MARKERS = ["done", "completed", "finished", "shipped"]

# Implicit feature request: pain + product context
PAIN_SIGNALS = [
    "dissatisfied", "too many clicks", "number of clicks", "confusing",
    "frustrating", "usability issue", "hard to use", "difficult to", "painful",
    "annoying", "slow", "inefficient", "broken", "impacting",
]
CONTEXT_SIGNALS = [
    "workflow", "attestation", "completion", "usability", "customer satisfaction",
    "user experience", "productivity", "efficiency", "employees",
]

# Process / ownership ambiguity noise
PROCESS_NOISE_PATTERNS = [
    r"(?i)\bwho\s+owns?\b",
    r"(?i)\bunclear\s+who\b",
    r"(?i)\bambiguity\s+around\b",
    r"(?i)\bambiguous\b",
    r"(?i)\bhandover\b|\bhand[-\s]over\b",
    r"(?i)\bsign.?off\b",
    r"(?i)\bfinal\s+qa\b",
    r"(?i)\bprocess\s+ownership\b",
    r"(?i)\bownership\s+(?:of|around|for|issue|question|ambiguity|gap|problem|concern)\b",
]
DELIVERY_OWNERSHIP_ALLOWLIST = [
    r"(?i)\bowner\s*:\s*\S",
    r"(?i)\b(?:pm|eng|engineering|cs|qa|design|security|legal)\s+to\s+\w",
    r"(?i)\b(?:product\s+manager|customer\s+success)\s+to\s+\w",
]

# =============================================================================
# Type Rule Tables
# =============================================================================

PLAN_MUTATION_PATTERNS = [
    r"(?i)\b(narrow|expand|shift|reframe|reprioritize|defer|adjust|revise|update)\b",
    r"(?i)\b(current|existing|today's|our\s+current|the\s+current)\b",
    r"(?i)\b(from\s+.+\s+to|instead of|rather than|no longer|previously)\b",
    r"(?i)\b(descope|add to|remove from|in scope|out of scope)\b",
]
EXECUTION_ARTIFACT_PATTERNS = [
    r"(?i)\b(new|launch|spin up|kick off|create|build|start|introduce)\b",
    r"(?i)\b(initiative|project|workstream|program|effort|track)\b",
    r"(?i)\b(objective|goal|mission)\s*:",
    r"(?i)\b(from scratch|greenfield|net new|brand new)\b",
]
RISK_TYPE_PATTERN = re.compile(
    r"\b(risk|security|compliance|gdpr|privacy|pii|vulnerability|exposure|blocker)\b", re.IGNORECASE
)
BUG_TYPE_PATTERN = re.compile(
    r"\b(bug|failing|broken|latency|error|regression|crash(?:es|ing)?|doesn't work|does not work)\b",
    re.IGNORECASE,
)

SHORT_SECTION_PENALTY = 0.15
BORDERLINE_MARGIN = 0.1


# =============================================================================
# Classification Trace
# =============================================================================

@dataclass
class IntentScores:
    """Per-label intent distribution for one section."""
    plan_change: float = 0.0
    new_workstream: float = 0.0
    status_informational: float = 0.0
    communication: float = 0.0
    calendar: float = 0.0
    micro_tasks: float = 0.0
    force_project_update: bool = False
    has_imperative: bool = False
    matched_rules: list[str] = field(default_factory=list)

    @property
    def actionable_signal(self) -> float:
        return max(self.plan_change, self.new_workstream)

    @property
    def out_of_scope_signal(self) -> float:
        return max(self.calendar, self.communication, self.micro_tasks)

    def by_label(self) -> dict[str, float]:
        return {
            "plan_change": self.plan_change,
            "new_workstream": self.new_workstream,
            "status_informational": self.status_informational,
            "communication": self.communication,
            "calendar": self.calendar,
            "micro_tasks": self.micro_tasks,
        }


# =============================================================================
# Helper Functions
# =============================================================================

def _has_word(text: str, word: str) -> bool:
    """Whole-word match for plain words, substring for phrases and markers."""
    if not re.fullmatch(r"[\w']+", word):
        return word in text
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


def _contains_any(text: str, phrases: list[str]) -> bool:
    return any(_has_word(text, phrase) for phrase in phrases)


def _has_action_verb(text: str) -> bool:
    return any(_has_word(text, verb) for verb in ACTION_VERBS)


def _starts_with_action_verb(sentence: str) -> bool:
    return any(re.match(rf"{re.escape(verb)}\b", sentence) for verb in ACTION_VERBS)


def _prepare_line(text: str) -> str:
    """Lower-case, normalize quotes, strip list markers, collapse whitespace."""
    lowered = normalize_quotes(text).lower().strip()
    return re.sub(r"\s+", " ", strip_list_marker(lowered))


def _split_fragments(line: str) -> list[str]:
    fragments = re.split(r"[.!?]\s+|\.{3,}\s*", line)
    return [f.strip() for f in fragments if f.strip()]


def is_process_noise(text: str) -> bool:
    """True for ownership/handover ambiguity that is not a delivery assignment."""
    if any(re.search(p, text) for p in DELIVERY_OWNERSHIP_ALLOWLIST):
        return False
    return any(re.search(p, text) for p in PROCESS_NOISE_PATTERNS)


def _score_sentence(sentence: str, scores: IntentScores) -> tuple[float, float]:
    """Score one sentence; returns (score, non_hedged_score)."""
    score = 0.0

    if _contains_any(sentence, REQUEST_STEMS) and _has_action_verb(sentence):
        score = max(score, 1.0)
        scores.matched_rules.append("strong_request")
    if _starts_with_action_verb(sentence):
        score = max(score, 0.9)
        scores.has_imperative = True
        scores.matched_rules.append("imperative")
    if _contains_any(sentence, CHANGE_OPERATORS):
        score = max(score, 0.8)
        scores.matched_rules.append("change_operator")
    if _contains_any(sentence, STATUS_MARKERS):
        score = max(score, 0.7)
        scores.matched_rules.append("status_marker")
    if SCHEDULE_PATTERN.search(sentence):
        score = max(score, 0.7)
        scores.matched_rules.append("schedule_marker")
    if _contains_any(sentence, ROLE_ASSIGNMENTS):
        score = max(score, 0.85)
        scores.force_project_update = True
        scores.matched_rules.append("role_assignment")
    if _contains_any(sentence, DECISION_MARKERS):
        score = max(score, 0.7)
        scores.force_project_update = True
        scores.matched_rules.append("decision_marker")

    non_hedged = score
    if _contains_any(sentence, HEDGED_DIRECTIVES):
        score = max(score, 0.9)
        scores.matched_rules.append("hedged_directive")

    if score >= 0.6 and any(_has_word(sentence, noun) for noun in PRODUCT_NOUNS):
        score += 0.2

    if _contains_any(sentence, NEGATION_PATTERNS) and _has_action_verb(sentence):
        score = 0.0
        non_hedged = 0.0

    return min(1.0, max(0.0, score)), non_hedged


def _out_of_scope_for_line(line: str) -> tuple[float, set[str]]:
    score = 0.0
    families: set[str] = set()
    if any(_has_word(line, m) for m in CALENDAR_MARKERS):
        score = max(score, 0.6)
        families.add("calendar")
    if any(_has_word(line, m) for m in COMMUNICATION_MARKERS):
        score = max(score, 0.6)
        families.add("communication")
    if any(_has_word(line, m) for m in MICRO_ADMIN_MARKERS):
        score = max(score, 0.4)
        families.add("micro_tasks")
    return score, families


def _matches_implicit_idea(text: str) -> bool:
    return (
        _contains_any(text, IMPLICIT_NEED_SIGNALS)
        and _contains_any(text, IMPLICIT_PURPOSE_SIGNALS)
        and any(_has_word(text, noun) for noun in IMPLICIT_CAPABILITY_NOUNS)
        and not any(_has_word(text, m) for m in CALENDAR_MARKERS)
        and not _contains_any(text, COMPLETION_MARKERS)
    )


def _matches_implicit_feature_request(text: str) -> bool:
    return _contains_any(text, PAIN_SIGNALS) and _contains_any(text, CONTEXT_SIGNALS)


# =============================================================================
# Intent
# =============================================================================

def classify_intent(section: Section) -> IntentScores:
    """Compute the intent distribution for a section."""
    scores = IntentScores()
    actionable = 0.0
    non_hedged_max = 0.0
    out_of_scope = 0.0
    oos_families: set[str] = set()

    for body_line in section.body_lines:
        # Checkbox syntax is lost once list markers are stripped
        raw_lower = body_line.text.strip().lower()
        if _contains_any(raw_lower, STRUCTURED_TASK_MARKERS):
            actionable = max(actionable, 0.8)
            non_hedged_max = max(non_hedged_max, 0.8)
            scores.matched_rules.append("structured_task")

        line = _prepare_line(body_line.text)
        if len(line) < 5:
            continue
        for sentence in _split_fragments(line):
            if len(sentence) < 5:
                continue
            score, non_hedged = _score_sentence(sentence, scores)
            actionable = max(actionable, score)
            non_hedged_max = max(non_hedged_max, non_hedged)

        line_oos, families = _out_of_scope_for_line(line)
        out_of_scope = max(out_of_scope, line_oos)
        oos_families |= families

    lower_text = normalize_quotes(section.raw_text).lower()
    action_verb_hits = sum(
        1 for verb in BULLET_ACTION_VERBS if re.search(rf"\b{re.escape(verb)}\s+\w", lower_text)
    )
    multiple_action_verbs = action_verb_hits >= 2
    if multiple_action_verbs and out_of_scope < 0.4:
        actionable = max(actionable, 0.8)
        non_hedged_max = max(non_hedged_max, 0.8)
        scores.matched_rules.append("multiple_action_verbs")

    if _matches_implicit_idea(lower_text):
        actionable = max(actionable, 0.61)
        scores.matched_rules.append("implicit_idea")

    heading_and_body = f"{section.heading_text or ''} {lower_text}".lower()
    if _matches_implicit_feature_request(heading_and_body):
        actionable = max(actionable, 0.76)
        scores.matched_rules.append("implicit_feature_request")

    has_change_operator = "change_operator" in scores.matched_rules
    substantial = section.structural_features.num_lines >= 5
    if has_change_operator or multiple_action_verbs or (non_hedged_max >= 0.8 and substantial):
        out_of_scope = min(0.3, out_of_scope)

    plan_dominant = has_change_operator or scores.force_project_update or any(
        rule in scores.matched_rules for rule in ("structured_task", "schedule_marker")
    )
    if plan_dominant:
        scores.plan_change = actionable
        scores.new_workstream = actionable * 0.4
    else:
        scores.new_workstream = actionable
        scores.plan_change = actionable * 0.4

    if out_of_scope > 0:
        if not oos_families:
            oos_families.add("calendar")
        for family in oos_families:
            setattr(scores, family, out_of_scope)

    scores.status_informational = max(0.0, 0.5 - actionable + out_of_scope * 0.3)
    return scores


def _intent_label(scores: IntentScores, section: Section) -> tuple[IntentLabel, float]:
    body = [line.text for line in section.body_lines if line.text.strip()]
    if body and all(is_process_noise(text) for text in body):
        return IntentLabel.GENERIC_HYGIENE, 1.0

    by_label = scores.by_label()
    top = max(by_label, key=lambda k: by_label[k])
    mapping = {
        "plan_change": IntentLabel.PLAN_CHANGE,
        "new_workstream": IntentLabel.NEW_WORKSTREAM,
        "status_informational": IntentLabel.DISCUSSION,
        "communication": IntentLabel.OUT_OF_SCOPE,
        "calendar": IntentLabel.OUT_OF_SCOPE,
        "micro_tasks": IntentLabel.GENERIC_HYGIENE,
    }
    return mapping[top], min(1.0, by_label[top])


# =============================================================================
# Actionability
# =============================================================================

def decide_actionability(
    scores: IntentScores,
    intent_label: IntentLabel,
    section: Section,
    thresholds: ThresholdConfig,
) -> tuple[bool, DropReason | None, str]:
    """Apply the ordered actionability gates.

    Returns:
        (is_actionable, drop_reason, human-readable reason)
    """
    actionable = scores.actionable_signal
    out_of_scope = scores.out_of_scope_signal
    num_lines = section.structural_features.num_lines

    if not section.raw_text.strip():
        return False, DropReason.NOT_ACTIONABLE, "empty section body"

    if intent_label == IntentLabel.GENERIC_HYGIENE:
        return False, DropReason.SUPPRESSED_SECTION, "process/ownership noise only"

    if intent_label == IntentLabel.PLAN_CHANGE:
        return True, None, f"plan_change intent (signal={actionable:.3f}, out_of_scope={out_of_scope:.3f})"

    if out_of_scope >= thresholds.T_out_of_scope:
        return False, DropReason.SUPPRESSED_SECTION, (
            f"out of scope: {out_of_scope:.3f} >= {thresholds.T_out_of_scope}"
        )

    if scores.has_imperative:
        return True, None, f"imperative floor (signal={actionable:.3f})"

    penalty = SHORT_SECTION_PENALTY if num_lines <= 2 else 0.0
    effective = thresholds.T_action + penalty
    if actionable < effective:
        return False, DropReason.NOT_ACTIONABLE, (
            f"action signal too low: {actionable:.3f} < {effective:.3f}"
        )

    if actionable - effective < BORDERLINE_MARGIN and num_lines <= 3:
        return False, DropReason.NOT_ACTIONABLE, (
            f"borderline signal in short section: margin={actionable - effective:.3f}, lines={num_lines}"
        )

    return True, None, f"actionable: {actionable:.3f} >= {effective:.3f}"


# =============================================================================
# Type
# =============================================================================

def classify_type(section: Section, scores: IntentScores, intent_label: IntentLabel) -> tuple[SuggestionType, float]:
    """Pick exactly one suggestion type for the section."""
    text = f"{section.heading_text or ''} {section.raw_text}"

    p_mutation = sum(1 for p in PLAN_MUTATION_PATTERNS if re.search(p, text)) / len(PLAN_MUTATION_PATTERNS)
    p_artifact = sum(1 for p in EXECUTION_ARTIFACT_PATTERNS if re.search(p, text)) / len(EXECUTION_ARTIFACT_PATTERNS)
    p_mutation = min(1.0, p_mutation + scores.plan_change * 0.3)
    p_artifact = min(1.0, p_artifact + scores.new_workstream * 0.3)

    risk_hits = len({m.lower() for m in RISK_TYPE_PATTERN.findall(text)})
    bug_hits = len({m.lower() for m in BUG_TYPE_PATTERN.findall(text)})
    p_risk = min(1.0, risk_hits * 0.25)
    p_bug = min(1.0, bug_hits * 0.3)

    if scores.force_project_update or intent_label == IntentLabel.PLAN_CHANGE:
        p_mutation = max(p_mutation, 0.8)
        ranked = sorted([p_artifact, p_risk, p_bug], reverse=True)
        return SuggestionType.PROJECT_UPDATE, min(1.0, 0.5 + max(0.0, p_mutation - ranked[0]))

    candidates = {
        SuggestionType.IDEA: p_artifact,
        SuggestionType.RISK: p_risk,
        SuggestionType.BUG: p_bug,
    }
    ordered = sorted(candidates.items(), key=lambda kv: kv[1], reverse=True)
    winner, best = ordered[0]
    if best < 0.2:
        return SuggestionType.IDEA, 0.5
    # Ties resolve to idea since the dict order puts it first
    return winner, min(1.0, 0.5 + (best - ordered[1][1]))


# =============================================================================
# Section Classification
# =============================================================================

def classify_section(section: Section, thresholds: ThresholdConfig) -> tuple[Section, IntentScores]:
    """Label one section. Returns a new Section; the input is untouched."""
    scores = classify_intent(section)
    intent_label, intent_score = _intent_label(scores, section)
    is_actionable, drop_reason, reason = decide_actionability(scores, intent_label, section, thresholds)
    type_label, type_score = classify_type(section, scores, intent_label)

    update = {
        "intent_label": intent_label,
        "intent_score": round(intent_score, 4),
        "type_label": type_label,
        "type_score": round(type_score, 4),
        "is_actionable": is_actionable,
        "actionable_signal": round(scores.actionable_signal, 4),
        "out_of_scope_signal": round(scores.out_of_scope_signal, 4),
        "actionability_reason": reason,
    }
    if drop_reason is not None:
        update["drop_stage"] = DropStage.CLASSIFICATION
        update["drop_reason"] = drop_reason
    return section.model_copy(update=update), scores


def classify_sections(sections: list[Section], ctx: RunContext) -> list[Section]:
    """Classify every section; previously dropped sections pass through unchanged."""
    classified = []
    for section in sections:
        if section.is_dropped:
            classified.append(section)
            continue

        labelled, scores = classify_section(section, ctx.config.thresholds)
        if labelled.drop_reason is not None:
            ctx.record_drop(
                labelled.drop_reason,
                detail=labelled.actionability_reason,
                section_id=labelled.section_id,
            )
            logger.debug(
                "section_dropped",
                section_id=labelled.section_id,
                reason=labelled.drop_reason.value,
            )
        classified.append(labelled)

    logger.info(
        "classification_complete",
        sections=len(classified),
        actionable=sum(1 for s in classified if s.is_actionable),
    )
    return classified
