"""Unit tests for the V1 -> V2 -> V3 validator chain."""

from note_suggestions.models import DropReason, IntentLabel, ProjectUpdatePayload, ThresholdConfig
from note_suggestions.pipeline.stages.validators import (
    domain_nouns,
    generic_ratio,
    is_grounded,
    run_validators,
    validate_grounding,
    validate_semantics,
    validate_structure,
)

SECTION_TEXT = (
    "## Reporting\n"
    "\n"
    "- Finance needs a bulk export of invoices for the quarterly close\n"
    "- Export should include the vendor tax identifiers\n"
)


class TestStructural:
    """Tests for V1."""

    def test_valid_candidate(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        result = validate_structure(make_suggestion(sections[0]), sections[0])
        assert result.passed

    def test_blank_title(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        result = validate_structure(make_suggestion(sections[0], title="   "), sections[0])
        assert result.drop_reason == DropReason.VALIDATION_V1_MALFORMED

    def test_unknown_section(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        result = validate_structure(make_suggestion(sections[0]), None)
        assert result.drop_reason == DropReason.VALIDATION_V1_MALFORMED

    def test_span_outside_section(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        result = validate_structure(make_suggestion(sections[0], start_line=40), sections[0])
        assert not result.passed
        assert "outside section" in result.reason

    def test_payload_type_mismatch(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        candidate = make_suggestion(sections[0]).model_copy(
            update={"payload": ProjectUpdatePayload(after_description="Move close to day 3")}
        )
        assert validate_structure(candidate, sections[0]).drop_reason == DropReason.VALIDATION_V1_MALFORMED


class TestSemantic:
    """Tests for V2."""

    def test_review_title_banned(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        candidate = make_suggestion(sections[0], title="Review: Reporting")
        result = validate_semantics(candidate, sections[0], ThresholdConfig())
        assert result.drop_reason == DropReason.VALIDATION_V2_BANNED_PATTERN

    def test_fallback_id_banned(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        candidate = make_suggestion(sections[0], suggestion_id="sug_fallback_001")
        result = validate_semantics(candidate, sections[0], ThresholdConfig())
        assert result.drop_reason == DropReason.VALIDATION_V2_BANNED_PATTERN

    def test_management_speak_is_too_generic(self, sections_for, make_suggestion):
        sections, _ = sections_for("## Sync\n\n- Improve alignment\n", classify=False)
        candidate = make_suggestion(sections[0], title="Improve process alignment")
        result = validate_semantics(candidate, sections[0], ThresholdConfig())
        assert result.drop_reason == DropReason.VALIDATION_V2_TOO_GENERIC

    def test_specific_candidate_passes(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        result = validate_semantics(make_suggestion(sections[0]), sections[0], ThresholdConfig())
        assert result.passed

    def test_lexical_helpers(self):
        assert generic_ratio("improve alignment") == 1.0
        assert generic_ratio("") == 0.0
        assert "invoices" in domain_nouns("Finance needs a bulk export of invoices")


class TestGrounding:
    """Tests for V3."""

    def test_verbatim_span_grounded(self):
        section = "- Finance needs a bulk export of invoices"
        assert is_grounded("finance needs a BULK export of invoices!", section, 120)

    def test_long_span_prefix_match(self):
        section = "x " * 5 + "a" * 60
        span = "a" * 60 + " plus words that never appear anywhere in the section text at all"
        assert is_grounded(span, section, 10)
        assert not is_grounded(span, section, 500)

    def test_ungrounded_span(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        candidate = make_suggestion(sections[0], span_text="Rewrite the mobile checkout in Kotlin")
        result = validate_grounding(candidate, sections[0], ThresholdConfig())
        assert result.drop_reason == DropReason.VALIDATION_V3_UNGROUNDED

    def test_tiny_section_and_evidence_too_weak(self, sections_for, make_suggestion):
        sections, _ = sections_for("## Misc\n\n- Fix login\n", classify=False)
        candidate = make_suggestion(sections[0], title="Fix login bug")
        result = validate_grounding(candidate, sections[0], ThresholdConfig())
        assert result.drop_reason == DropReason.VALIDATION_V3_EVIDENCE_TOO_WEAK

    def test_short_plan_change_has_no_length_floor(self, sections_for, make_suggestion):
        sections, _ = sections_for("## Beta\n\n- Delay beta to Q3\n")
        assert sections[0].intent_label == IntentLabel.PLAN_CHANGE
        candidate = make_suggestion(sections[0], title="Update: beta to Q3")
        assert validate_grounding(candidate, sections[0], ThresholdConfig()).passed


class TestChain:
    """Tests for run_validators ordering."""

    def test_stops_at_first_failure(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        candidate = make_suggestion(sections[0], title="Review: Reporting")
        passed, results = run_validators(candidate, sections[0], ThresholdConfig())
        assert not passed
        assert [r.validator for r in results] == ["V1_structural", "V2_semantic"]

    def test_all_pass(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        passed, results = run_validators(make_suggestion(sections[0]), sections[0], ThresholdConfig())
        assert passed
        assert [r.validator for r in results] == ["V1_structural", "V2_semantic", "V3_grounding"]
