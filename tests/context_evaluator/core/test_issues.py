"""Tests for issue construction and identity."""
from dataclasses import replace

import pytest

from context_evaluator.core.domain.issues import (
    ErrorIssue,
    Issue,
    IssueIdSequence,
    Location,
    SuggestionIssue,
    create_deduplication_id_set,
    create_issue,
    issue_severity,
    issue_to_dict,
    parse_locations,
)


class TestCreateIssue:
    """Tests for create_issue."""

    def test_error_issue_from_raw_object(self):
        ids = IssueIdSequence()
        issue = create_issue(
            {"category": "Security", "severity": 8, "problem": "Secret in file", "location": {"start": 3, "end": 5}},
            issue_type="error",
            evaluator_name="security",
            ids=ids,
        )

        assert isinstance(issue, ErrorIssue)
        assert issue.dedup_id == "issue_1"
        assert issue.severity == 8
        assert issue.location == (Location(start=3, end=5),)
        assert issue.evaluator_name == "security"

    def test_ids_are_unique_across_one_sequence(self):
        ids = IssueIdSequence()
        raw = {"category": "X", "severity": 5}
        first = create_issue(raw, issue_type="error", evaluator_name="a", ids=ids)
        second = create_issue(raw, issue_type="error", evaluator_name="b", ids=ids)

        assert first.dedup_id == "issue_1"
        assert second.dedup_id == "issue_2"

    def test_object_without_severity_or_impact_is_dropped(self):
        issue = create_issue({"category": "X", "problem": "p"}, issue_type="error", evaluator_name=None, ids=IssueIdSequence())
        assert issue is None

    def test_error_issue_with_impact_level_only(self):
        issue = create_issue({"category": "X", "impactLevel": "high"}, issue_type="error", evaluator_name=None, ids=IssueIdSequence())
        assert isinstance(issue, ErrorIssue)
        assert issue.severity == 9

    def test_suggestion_issue_derives_impact_from_severity(self):
        issue = create_issue({"category": "X", "severity": 8}, issue_type="suggestion", evaluator_name=None, ids=IssueIdSequence())
        assert isinstance(issue, SuggestionIssue)
        assert issue.impact_level == "High"

    def test_severity_is_coerced_and_clamped(self):
        ids = IssueIdSequence()
        as_string = create_issue({"category": "X", "severity": "7"}, issue_type="error", evaluator_name=None, ids=ids)
        too_big = create_issue({"category": "X", "severity": 14}, issue_type="error", evaluator_name=None, ids=ids)

        assert as_string.severity == 7
        assert too_big.severity == 10

    def test_missing_category_defaults(self):
        issue = create_issue({"severity": 6}, issue_type="error", evaluator_name=None, ids=IssueIdSequence())
        assert issue.category == "Uncategorized"

    def test_affected_files(self):
        issue = create_issue(
            {"category": "X", "severity": 6, "affectedFiles": ["AGENTS.md", "api/AGENTS.md", 3]},
            issue_type="error",
            evaluator_name=None,
            ids=IssueIdSequence(),
        )
        assert issue.affected_files == ("AGENTS.md", "api/AGENTS.md")
        assert issue.is_cross_file is True


class TestIssueInvariants:
    """Tests for issue validation and identity."""

    def test_base_issue_is_abstract(self):
        with pytest.raises(TypeError):
            Issue(dedup_id="issue_1", category="X")

    def test_error_severity_range(self):
        with pytest.raises(ValueError):
            ErrorIssue(dedup_id="issue_1", category="X", severity=11)

    def test_error_severity_must_be_int(self):
        with pytest.raises(TypeError):
            ErrorIssue(dedup_id="issue_1", category="X", severity=True)

    def test_suggestion_impact_level(self):
        with pytest.raises(ValueError):
            SuggestionIssue(dedup_id="issue_1", category="X", impact_level="Huge")

    def test_dedup_id_required(self):
        with pytest.raises(ValueError):
            ErrorIssue(dedup_id="", category="X", severity=3)

    def test_copies_keep_their_id(self):
        issue = ErrorIssue(dedup_id="issue_7", category="X", severity=3)

        copy = replace(issue, snippet="line")
        tagged = replace(issue, evaluator_name="security")

        assert copy.dedup_id == "issue_7"
        assert tagged.dedup_id == "issue_7"
        assert tagged.evaluator_name == "security"
        assert create_deduplication_id_set([issue, copy, tagged]) == {"issue_7"}


class TestLocations:
    """Tests for location parsing."""

    def test_string_location(self):
        assert parse_locations("AGENTS.md:23-27") == (Location(start=23, end=27, file="AGENTS.md"),)

    def test_single_line_string_location(self):
        assert parse_locations("docs/AGENTS.md:4") == (Location(start=4, end=4, file="docs/AGENTS.md"),)

    def test_list_skips_invalid_entries(self):
        parsed = parse_locations([{"start": 1, "end": 2, "file": "a.md"}, {"end": 3}, 42])
        assert parsed == (Location(start=1, end=2, file="a.md"),)

    def test_missing_end_defaults_to_start(self):
        assert parse_locations({"start": 9}) == (Location(start=9, end=9),)

    def test_cross_file_by_location(self):
        issue = ErrorIssue(
            dedup_id="issue_1",
            category="X",
            severity=5,
            location=(Location(1, 1, "AGENTS.md"), Location(2, 2, "api/AGENTS.md")),
        )
        assert issue.is_cross_file is True
        assert issue.files() == ["AGENTS.md", "api/AGENTS.md"]


class TestSeverityBuckets:
    """Tests for issue_severity."""

    @pytest.mark.parametrize("severity,bucket", [(10, "high"), (8, "high"), (7, "medium"), (6, "medium"), (5, "low")])
    def test_error_buckets(self, severity, bucket):
        assert issue_severity(ErrorIssue(dedup_id="i", category="X", severity=severity)) == bucket

    def test_suggestion_bucket_follows_impact(self):
        assert issue_severity(SuggestionIssue(dedup_id="i", category="X", impact_level="High")) == "high"


def test_issue_to_dict_emits_type_and_drops_none():
    issue = ErrorIssue(dedup_id="issue_1", category="X", severity=5, location=(Location(1, 2),))
    data = issue_to_dict(issue)

    assert data["issue_type"] == "error"
    assert data["location"] == [{"start": 1, "end": 2}]
    assert "problem" not in data
    assert "affected_files" not in data
