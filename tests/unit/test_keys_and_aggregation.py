"""Unit tests for suggestion keys, scoring, dedupe and aggregation."""

from note_suggestions.models import DropReason, SuggestionScores, SuggestionType, ThresholdConfig
from note_suggestions.pipeline.stages.aggregation import aggregate, rank_key
from note_suggestions.pipeline.stages.dedupe import (
    compute_suggestion_key,
    dedupe_candidates,
    normalize_title,
    with_key,
)
from note_suggestions.pipeline.stages.scoring import (
    score_candidate,
    section_actionability,
    threshold_failure,
)

SECTION_TEXT = (
    "## Reporting\n"
    "\n"
    "- Finance needs a bulk export of invoices for the quarterly close\n"
    "- Export should include the vendor tax identifiers\n"
    "- Launch the export screen in Q3\n"
)


class TestSuggestionKey:
    """Tests for the stable suggestion key."""

    def test_title_normalization_gives_equal_keys(self):
        first = compute_suggestion_key("note-1", "section_001", SuggestionType.IDEA, "Build User Dashboard!")
        second = compute_suggestion_key("note-1", "section_001", SuggestionType.IDEA, "Build   user  dashboard")
        assert first == second

    def test_string_type_matches_enum(self):
        assert compute_suggestion_key("n", "s", "idea", "Title") == compute_suggestion_key(
            "n", "s", SuggestionType.IDEA, "Title"
        )

    def test_each_component_matters(self):
        base = compute_suggestion_key("note-1", "section_001", SuggestionType.IDEA, "Dashboard")
        assert base != compute_suggestion_key("note-2", "section_001", SuggestionType.IDEA, "Dashboard")
        assert base != compute_suggestion_key("note-1", "section_002", SuggestionType.IDEA, "Dashboard")
        assert base != compute_suggestion_key("note-1", "section_001", SuggestionType.RISK, "Dashboard")
        assert base != compute_suggestion_key("note-1", "section_001", SuggestionType.IDEA, "Dashboards")

    def test_sha1_hex(self):
        key = compute_suggestion_key("note-1", "section_001", SuggestionType.IDEA, "Dashboard")
        assert len(key) == 40

    def test_normalize_title_capped(self):
        assert len(normalize_title("word " * 100)) <= 120


class TestScoring:
    """Tests for the score breakdown and thresholds."""

    def test_overall_is_minimum(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT)
        scored = score_candidate(make_suggestion(sections[0]), sections[0])
        scores = scored.scores
        assert scores.overall == min(
            scores.section_actionability,
            scores.type_choice_confidence,
            scores.synthesis_confidence,
        )
        assert scores.synthesis_confidence == 0.7

    def test_short_section_penalty(self, sections_for):
        sections, _ = sections_for("## Plan\n\n- Add invoices\n- Fix totals\n- Remove stale rows\n")
        longer = section_actionability(sections[0])
        shorter_sections, _ = sections_for("## Plan\n\n- Add invoices\n- Fix totals\n")
        assert section_actionability(shorter_sections[0]) < longer

    def test_threshold_failure(self):
        thresholds = ThresholdConfig()
        assert threshold_failure(SuggestionScores(section_actionability=0.5, overall=0.5), thresholds).startswith(
            "section_actionability"
        )
        assert threshold_failure(SuggestionScores(section_actionability=0.9, overall=0.6), thresholds).startswith(
            "overall"
        )
        assert threshold_failure(SuggestionScores(section_actionability=0.9, overall=0.8), thresholds) is None


class TestDedupe:
    """Tests for duplicate removal."""

    def test_same_key_keeps_first(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        first = with_key(make_suggestion(sections[0], title="Bulk export", suggestion_id="sug_x_001"))
        second = with_key(make_suggestion(
            sections[0],
            title="Bulk   Export!",
            span_text="Export should include the vendor tax identifiers",
            start_line=3,
            suggestion_id="sug_x_002",
        ))
        kept, dropped = dedupe_candidates([first, second])
        assert kept == [first]
        assert dropped[0].reason == DropReason.DUPLICATE_KEY

    def test_same_evidence(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        first = with_key(make_suggestion(sections[0], title="Bulk export of invoices", suggestion_id="sug_x_001"))
        second = with_key(make_suggestion(sections[0], title="Quarterly close tooling", suggestion_id="sug_x_002"))
        kept, dropped = dedupe_candidates([first, second])
        assert [c.suggestion_id for c in kept] == ["sug_x_001"]
        assert dropped[0].reason == DropReason.DUPLICATE_EVIDENCE

    def test_near_identical_titles(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        first = with_key(make_suggestion(sections[0], title="Bulk export of vendor invoices", suggestion_id="sug_x_001"))
        second = with_key(make_suggestion(
            sections[0],
            title="Bulk export of vendor invoice",
            span_text="Export should include the vendor tax identifiers",
            start_line=3,
            suggestion_id="sug_x_002",
        ))
        kept, dropped = dedupe_candidates([first, second])
        assert len(kept) == 1
        assert dropped[0].reason == DropReason.DUPLICATE_KEY

    def test_distinct_candidates_kept(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        first = with_key(make_suggestion(sections[0], title="Bulk export of invoices", suggestion_id="sug_x_001"))
        second = with_key(make_suggestion(
            sections[0],
            title="Vendor tax identifiers in export",
            span_text="Export should include the vendor tax identifiers",
            start_line=3,
            suggestion_id="sug_x_002",
        ))
        kept, dropped = dedupe_candidates([first, second])
        assert len(kept) == 2
        assert dropped == []


class TestAggregation:
    """Tests for ordering and the cap."""

    def _candidates(self, sections_for, make_suggestion):
        sections, _ = sections_for(SECTION_TEXT, classify=False)
        return [
            make_suggestion(sections[0], title="Low", suggestion_id="sug_x_001", overall=0.7),
            make_suggestion(sections[0], title="High", suggestion_id="sug_x_003", overall=0.9),
            make_suggestion(sections[0], title="Tie", suggestion_id="sug_x_002", overall=0.9),
        ]

    def test_order_by_score_then_id(self, sections_for, make_suggestion):
        candidates = self._candidates(sections_for, make_suggestion)
        ordered = sorted(candidates, key=rank_key)
        assert [c.suggestion_id for c in ordered] == ["sug_x_002", "sug_x_003", "sug_x_001"]

    def test_cap_trims_lowest(self, sections_for, make_suggestion):
        result = aggregate(self._candidates(sections_for, make_suggestion), 2)
        assert [c.suggestion_id for c in result.final] == ["sug_x_002", "sug_x_003"]
        assert [c.suggestion_id for c in result.trimmed] == ["sug_x_001"]
        assert result.invariants.trimmed_to_max
        assert not result.invariants.max_respected
        assert result.invariants.aggregation_valid

    def test_under_cap(self, sections_for, make_suggestion):
        result = aggregate(self._candidates(sections_for, make_suggestion), 100)
        assert len(result.final) == 3
        assert result.invariants.max_respected
        assert not result.invariants.trimmed_to_max

    def test_zero_is_uncapped(self, sections_for, make_suggestion):
        result = aggregate(self._candidates(sections_for, make_suggestion), 0)
        assert len(result.final) == 3
        assert result.trimmed == []

    def test_empty(self):
        result = aggregate([], 5)
        assert result.final == []
        assert result.invariants.aggregation_valid

    def test_total_loss_after_scoring_is_invalid(self):
        result = aggregate([], 5, emitted_count=2)
        assert result.final == []
        assert not result.invariants.aggregation_valid

    def test_dedupe_shrinkage_is_valid(self, sections_for, make_suggestion):
        result = aggregate(self._candidates(sections_for, make_suggestion), 5, emitted_count=6)
        assert len(result.final) == 3
        assert result.invariants.aggregation_valid
