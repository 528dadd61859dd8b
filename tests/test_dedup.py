"""Temporal merge and group collapse of same-type, same-axis issues."""

from __future__ import annotations

import pytest
from builders import make_issue

from quadtune.engine.dedup import MERGE_GAP_US, deduplicate, deduplicate_with_remap
from quadtune.models import Axis, IssueType, Severity

SECOND = 1_000_000


def _spread(confidences: list[float], *, spacing: int = 2 * SECOND, **kwargs):
    return [
        make_issue(confidence=c, start=i * spacing, end=i * spacing + 100_000, **kwargs)
        for i, c in enumerate(confidences)
    ]


# ---------------------------------------------------------------------------
# Pass-through and empty input
# ---------------------------------------------------------------------------


class TestTrivialInputs:
    def test_empty_input_returns_empty_list(self) -> None:
        assert deduplicate([]) == []
        assert deduplicate_with_remap([]) == ([], {})

    def test_single_issue_passes_through_unchanged(self) -> None:
        issue = make_issue()
        assert deduplicate([issue]) == [issue]

    def test_different_axes_are_kept_apart(self) -> None:
        roll = make_issue(axis=Axis.ROLL)
        pitch = make_issue(axis=Axis.PITCH)
        out = deduplicate([roll, pitch])
        assert {issue.axis for issue in out} == {Axis.ROLL, Axis.PITCH}
        assert out[0] is roll
        assert out[1] is pitch

    def test_different_types_are_kept_apart(self) -> None:
        a = make_issue(issue_type=IssueType.GYRO_NOISE)
        b = make_issue(issue_type=IssueType.DTERM_NOISE)
        assert len(deduplicate([a, b])) == 2


# ---------------------------------------------------------------------------
# Pass 1: temporal merge
# ---------------------------------------------------------------------------


class TestTemporalMerge:
    def test_overlapping_issues_merge_into_spanning_issue(self) -> None:
        a = make_issue(start=0, end=100_000, confidence=0.4, severity=Severity.LOW)
        b = make_issue(start=50_000, end=150_000, confidence=0.8, severity=Severity.HIGH)
        out = deduplicate([b, a])
        assert len(out) == 1
        merged = out[0]
        assert merged.time_range == (0, 150_000)
        assert merged.severity is Severity.HIGH
        assert merged.confidence == pytest.approx(0.6)
        assert merged.occurrences is None

    def test_gap_just_under_threshold_merges(self) -> None:
        a = make_issue(start=0, end=100_000)
        b = make_issue(start=100_000 + MERGE_GAP_US - 1, end=300_000)
        assert len(deduplicate([a, b])) == 1

    def test_gap_at_threshold_starts_new_issue_then_collapses(self) -> None:
        a = make_issue(start=0, end=100_000)
        b = make_issue(start=100_000 + MERGE_GAP_US, end=300_000)
        out = deduplicate([a, b])
        assert len(out) == 1
        assert out[0].occurrences == ((0, 100_000), (200_000, 300_000))

    def test_representative_is_higher_confidence_issue(self) -> None:
        a = make_issue(start=0, confidence=0.9, description="first", issue_id="a")
        b = make_issue(start=50_000, confidence=0.3, description="second", issue_id="b")
        out, remap = deduplicate_with_remap([a, b])
        assert out[0].id == "a"
        assert out[0].description == "first"
        assert remap == {"b": "a"}

    def test_confidence_tie_favours_later_issue(self) -> None:
        a = make_issue(start=0, confidence=0.5, issue_id="a")
        b = make_issue(start=50_000, confidence=0.5, issue_id="b")
        out, remap = deduplicate_with_remap([a, b])
        assert out[0].id == "b"
        assert remap == {"a": "b"}

    def test_peak_time_falls_back_to_other_issue(self) -> None:
        a = make_issue(start=0, confidence=0.3, peak_time=42_000.0)
        b = make_issue(start=50_000, confidence=0.9)
        merged = deduplicate([a, b])[0]
        assert merged.id == b.id
        assert merged.metrics.peak_time == 42_000.0


# ---------------------------------------------------------------------------
# Pass 2: group collapse
# ---------------------------------------------------------------------------


class TestGroupCollapse:
    @pytest.mark.smoke
    def test_eight_issue_example_keeps_top_five_chronologically(self) -> None:
        confidences = [0.3, 0.9, 0.5, 0.8, 0.2, 0.95, 0.4, 0.7]
        issues = _spread(confidences)
        out = deduplicate(issues)
        assert len(out) == 1
        collapsed = out[0]
        assert collapsed.total_occurrences == 8
        assert collapsed.occurrences is not None
        assert [start for start, _ in collapsed.occurrences] == [
            2 * SECOND,
            4 * SECOND,
            6 * SECOND,
            10 * SECOND,
            14 * SECOND,
        ]
        assert "(×8)" in collapsed.description

    def test_small_group_lists_every_member_without_total(self) -> None:
        issues = _spread([0.5, 0.6, 0.7])
        collapsed = deduplicate(issues)[0]
        assert collapsed.occurrences is not None
        assert len(collapsed.occurrences) == 3
        assert collapsed.total_occurrences is None
        assert collapsed.description.endswith(" (×3)")

    def test_exactly_five_members_has_no_total(self) -> None:
        collapsed = deduplicate(_spread([0.5] * 5))[0]
        assert collapsed.occurrences is not None
        assert len(collapsed.occurrences) == 5
        assert collapsed.total_occurrences is None

    def test_severity_is_max_over_whole_group(self) -> None:
        issues = _spread([0.9, 0.8, 0.7, 0.6, 0.5, 0.4])
        # The only high-severity member has the lowest confidence and is not displayed.
        issues[-1] = make_issue(
            confidence=0.1, severity=Severity.HIGH, start=20 * SECOND, end=20 * SECOND + 1
        )
        collapsed = deduplicate(issues)[0]
        assert collapsed.severity is Severity.HIGH
        assert (20 * SECOND, 20 * SECOND + 1) not in collapsed.occurrences

    def test_time_range_spans_whole_group(self) -> None:
        issues = _spread([0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7])
        collapsed = deduplicate(issues)[0]
        assert collapsed.time_range == (0, 12 * SECOND + 100_000)

    def test_confidence_is_group_mean(self) -> None:
        collapsed = deduplicate(_spread([0.2, 0.4, 0.9]))[0]
        assert collapsed.confidence == pytest.approx(0.5)

    def test_representative_prefers_severity_then_confidence(self) -> None:
        issues = [
            make_issue(start=0, confidence=0.9, severity=Severity.LOW, description="low"),
            make_issue(
                start=2 * SECOND, confidence=0.4, severity=Severity.MEDIUM, description="med-a"
            ),
            make_issue(
                start=4 * SECOND, confidence=0.6, severity=Severity.MEDIUM, description="med-b"
            ),
        ]
        collapsed = deduplicate(issues)[0]
        assert collapsed.description == "med-b (×3)"
        assert collapsed.id == issues[2].id

    def test_worst_case_metrics_take_group_maximum(self) -> None:
        issues = [
            make_issue(start=0, confidence=0.9, overshoot=10.0, frequency=80.0),
            make_issue(start=2 * SECOND, confidence=0.5, overshoot=30.0, noise_floor=4.0),
            make_issue(start=4 * SECOND, confidence=0.4),
        ]
        collapsed = deduplicate(issues)[0]
        assert collapsed.metrics.overshoot == 30.0
        assert collapsed.metrics.noise_floor == 4.0
        # Not a worst-case field: stays the representative's own value.
        assert collapsed.metrics.frequency == 80.0
        assert collapsed.metrics.settling_time is None

    def test_peak_times_fall_back_to_midpoint(self) -> None:
        issues = [
            make_issue(start=0, end=100_000, peak_time=10_000.0),
            make_issue(start=2 * SECOND, end=2 * SECOND + 100_000),
        ]
        collapsed = deduplicate(issues)[0]
        assert collapsed.peak_times == (10_000.0, 2 * SECOND + 50_000.0)

    def test_confidence_ties_break_by_detection_order(self) -> None:
        issues = _spread([0.5] * 7)
        collapsed = deduplicate(issues)[0]
        assert collapsed.occurrences is not None
        assert [start for start, _ in collapsed.occurrences] == [
            0,
            2 * SECOND,
            4 * SECOND,
            6 * SECOND,
            8 * SECOND,
        ]

    def test_input_issues_are_not_mutated(self) -> None:
        issues = _spread([0.3, 0.6])
        before = list(issues)
        deduplicate(issues)
        assert issues == before
        assert all(issue.occurrences is None for issue in issues)


# ---------------------------------------------------------------------------
# Remap table
# ---------------------------------------------------------------------------


class TestRemap:
    def test_every_dropped_id_maps_to_a_survivor(self) -> None:
        issues = _spread([0.3, 0.9, 0.5])
        out, remap = deduplicate_with_remap(issues)
        survivor_ids = {issue.id for issue in out}
        dropped = {issue.id for issue in issues} - survivor_ids
        assert set(remap) == dropped
        assert set(remap.values()) <= survivor_ids

    def test_chains_across_passes_are_resolved(self) -> None:
        # a+b merge in pass 1 (b survives), then the pair collapses with c.
        a = make_issue(start=0, confidence=0.2, issue_id="a")
        b = make_issue(start=50_000, confidence=0.4, issue_id="b")
        c = make_issue(start=5 * SECOND, confidence=0.9, issue_id="c")
        out, remap = deduplicate_with_remap([a, b, c])
        assert [issue.id for issue in out] == ["c"]
        assert remap == {"a": "c", "b": "c"}
