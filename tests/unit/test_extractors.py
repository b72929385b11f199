"""Unit tests for the three candidate extractors."""

import pytest

from note_suggestions.models import ExtractorName, SuggestionType
from note_suggestions.pipeline.stages.idea_extraction import (
    count_tokens,
    derive_title,
    extract_ideas,
    idea_confidence,
    is_generic_heading,
)
from note_suggestions.pipeline.stages.signal_seeding import (
    extract_object,
    seed_candidates,
)
from note_suggestions.pipeline.stages.timeline_merge import (
    BulletLine,
    choose_risk_line,
    is_schedule_only,
    is_timeline_owned,
    merge_timeline,
    risk_specificity,
)


class TestIdeaGate:
    """Tests for the idea token gate."""

    def test_strategy_and_mechanism_pass(self):
        matches = count_tokens("We plan to use a scoring framework to automate prioritization.")
        assert matches.passes_gate
        assert set(matches.strategy) == {"scoring", "framework", "prioritization"}
        assert set(matches.mechanism) == {"use", "automate"}

    def test_single_strategy_token_fails(self):
        matches = count_tokens("We discussed the approach to handling customer feedback at the meeting.")
        assert matches.total == 1
        assert not matches.passes_gate

    def test_construct_counts_double(self):
        matches = count_tokens("Photo upload for field reports")
        assert matches.constructs == ["photo upload"]
        assert matches.total == 3
        assert matches.passes_gate

    def test_mechanism_without_anchor_fails(self):
        assert not count_tokens("Use it and extend it").passes_gate

    def test_confidence_capped(self):
        matches = count_tokens("We plan to use a scoring framework to automate prioritization.")
        assert idea_confidence(matches) == 0.75


class TestIdeaTitles:
    """Tests for heading usability and derived titles."""

    @pytest.mark.parametrize("heading", ["Notes", "Status", "Misc:", "Q3", "Project Status > Updates"])
    def test_generic_headings(self, heading):
        assert is_generic_heading(heading)

    def test_specific_heading(self):
        assert not is_generic_heading("Field Report Automation")

    def test_derived_title_drops_noise_and_mechanism(self):
        title = derive_title("We plan to use a scoring framework to automate prioritization.")
        assert title == "Scoring framework to automate prioritization"

    def test_derived_title_from_verb_phrase(self):
        assert derive_title("Ops would like to introduce a photo upload flow.") == "Photo upload flow"


class TestIdeaExtraction:
    """Tests for extract_ideas."""

    def test_gated_sentence_emits_idea(self, sections_for, idea_note_text):
        sections, ctx = sections_for(idea_note_text)
        candidates, trace = extract_ideas(sections[0], ctx.coverage, ctx)
        assert len(candidates) == 1
        idea = candidates[0]
        assert idea.type == SuggestionType.IDEA
        assert idea.title == "Scoring framework to automate prioritization"
        assert idea.metadata.source_extractor == ExtractorName.IDEA_SEMANTIC
        assert idea.metadata.title_source == "derived"
        assert idea.evidence_spans[0].start_line == 0
        assert trace.mode == "section"
        assert ctx.coverage.is_covered(idea_note_text)

    def test_weak_sentence_emits_nothing(self, sections_for):
        text = "We discussed the approach to handling customer feedback at the meeting."
        sections, ctx = sections_for(text, classify=False)
        candidates, trace = extract_ideas(sections[0], ctx.coverage, ctx)
        assert candidates == []
        assert trace.gated_out == 1

    def test_specific_heading_is_title(self, sections_for):
        text = "## Field Report Automation\n\nIntroduce a scoring model to rank incoming field reports.\n"
        sections, ctx = sections_for(text, classify=False)
        candidates, _ = extract_ideas(sections[0], ctx.coverage, ctx)
        assert candidates[0].title == "Field Report Automation"
        assert candidates[0].metadata.title_source == "heading"

    def test_covered_sentences_skipped(self, sections_for, idea_note_text):
        sections, ctx = sections_for(idea_note_text)
        ctx.coverage.claim(idea_note_text)
        candidates, trace = extract_ideas(sections[0], ctx.coverage, ctx)
        assert candidates == []
        assert trace.skipped_covered == 1


class TestSignalSeeding:
    """Tests for seed_candidates."""

    def test_each_bullet_is_its_own_candidate(self, sections_for, signal_note_text):
        sections, ctx = sections_for(signal_note_text, classify=False)
        candidates, trace = seed_candidates(sections[0], ctx.coverage, ctx)

        by_family = {c.metadata.signal_family: c for c in candidates}
        assert set(by_family) == {"feature_demand", "bug", "plan_change"}
        assert by_family["feature_demand"].type == SuggestionType.IDEA
        assert by_family["bug"].type == SuggestionType.BUG
        assert by_family["plan_change"].type == SuggestionType.PROJECT_UPDATE

        lines = sorted(c.evidence_spans[0].start_line for c in candidates)
        assert lines == [2, 3, 4]
        for candidate in candidates:
            assert len(candidate.evidence_spans) == 1
            assert candidate.metadata.source_extractor == ExtractorName.SIGNAL_SEEDING

    def test_titles(self, sections_for, signal_note_text):
        sections, ctx = sections_for(signal_note_text, classify=False)
        candidates, _ = seed_candidates(sections[0], ctx.coverage, ctx)
        titles = {c.metadata.signal_family: c.title for c in candidates}
        assert titles["feature_demand"] == "Implement bulk export for renewal discussions"
        assert titles["plan_change"] == "Update: beta release to next sprint"
        assert titles["bug"] == "Fix reported issue"

    def test_claims_coverage_for_later_extractors(self, sections_for, signal_note_text):
        sections, ctx = sections_for(signal_note_text, classify=False)
        seed_candidates(sections[0], ctx.coverage, ctx)
        assert ctx.coverage.is_covered("Checkout page is broken on Safari")

        _, trace = extract_ideas(sections[0], ctx.coverage, ctx)
        assert trace.skipped_covered == 3

    def test_hedged_bug_is_ignored(self, sections_for):
        sections, ctx = sections_for("## QA\n\n- The export might be broken on Safari\n", classify=False)
        candidates, _ = seed_candidates(sections[0], ctx.coverage, ctx)
        assert all(c.type != SuggestionType.BUG for c in candidates)

    def test_extract_object(self):
        assert extract_object("Customers need the bulk export before renewal") == "bulk export before renewal"
        assert extract_object("Nothing to see") is None


class TestTimelineMerge:
    """Tests for merge_timeline."""

    def test_one_update_and_one_risk(self, sections_for, timeline_note_text):
        sections, ctx = sections_for(timeline_note_text)
        candidates, trace = merge_timeline(sections[0], ctx.coverage, ctx)

        updates = [c for c in candidates if c.type == SuggestionType.PROJECT_UPDATE]
        risks = [c for c in candidates if c.type == SuggestionType.RISK]
        assert len(updates) == 1
        assert len(risks) == 1
        assert trace.fired

        update, risk = updates[0], risks[0]
        assert update.title == "Update: Ham Light deployment (3-month window, target January)"
        assert "3-month" in update.body
        assert "user id" not in update.body.lower()

        assert risk.title == "Risk: Security considerations"
        assert "logging" in risk.body.lower()
        assert "ham light" not in risk.body.lower()
        assert risk.metadata.confidence == 0.85
        assert risk.metadata.signal_family == "pii_exposure"
        assert trace.chosen_risk_line == 6
        assert trace.suppressed_risk_lines == [7]

    def test_update_merges_every_date_line(self, sections_for):
        text = (
            "## Implementation Timeline\n"
            "\n"
            "- Ham Light deployment: 3-month window\n"
            "- Target early January for launch\n"
            "- Database logging includes user IDs, which is a PII exposure risk\n"
        )
        sections, ctx = sections_for(text)
        candidates, _ = merge_timeline(sections[0], ctx.coverage, ctx)
        update = next(c for c in candidates if c.type == SuggestionType.PROJECT_UPDATE)
        risk = next(c for c in candidates if c.type == SuggestionType.RISK)

        assert update.title == "Update: Ham Light deployment (3-month window)"
        assert [s.start_line for s in update.evidence_spans] == [2, 3]
        assert "January" in update.body
        assert "PII" not in update.body
        assert [s.start_line for s in risk.evidence_spans] == [4]
        assert "3-month" not in risk.body

    def test_date_and_security_line_in_neither_pool(self, sections_for):
        text = "## Timeline\n\n- GDPR audit due in 2-week window\n- Beta in 3-month window\n"
        sections, ctx = sections_for(text, classify=False)
        candidates, trace = merge_timeline(sections[0], ctx.coverage, ctx)
        assert trace.ambiguous_lines == [2]
        assert [c.type for c in candidates] == [SuggestionType.PROJECT_UPDATE]
        assert "GDPR" not in candidates[0].body

    def test_non_timeline_section_does_not_fire(self, sections_for, signal_note_text):
        sections, ctx = sections_for(signal_note_text, classify=False)
        candidates, trace = merge_timeline(sections[0], ctx.coverage, ctx)
        assert candidates == []
        assert not trace.fired

    def test_other_extractors_leave_timeline_lines_alone(self, sections_for, timeline_note_text):
        sections, ctx = sections_for(timeline_note_text)
        seeded, _ = seed_candidates(sections[0], ctx.coverage, ctx)
        ideas, _ = extract_ideas(sections[0], ctx.coverage, ctx)
        assert seeded == []
        assert ideas == []

    def test_schedule_only_clause(self):
        assert is_schedule_only("3-month window")
        assert is_schedule_only("target early January")
        assert not is_schedule_only("Ham Light deployment (3-month window, target January)")


class TestRiskSelection:
    """Tests for risk specificity and tie-breaking."""

    def test_specificity_counts_tokens_and_objects(self):
        assert risk_specificity("Database logging includes user IDs which raises privacy and PII risk") == 5
        assert risk_specificity("Need to mask user IDs before logging goes live") == 2

    def test_ties_go_to_earliest_line(self):
        lines = [BulletLine(line_index=5, text="security review"), BulletLine(line_index=3, text="privacy review")]
        assert choose_risk_line(lines).line_index == 3

    def test_empty_pool(self):
        assert choose_risk_line([]) is None

    def test_may_is_not_a_month(self):
        assert not is_timeline_owned("We may revisit this")
        assert is_timeline_owned("Target June for the beta")
