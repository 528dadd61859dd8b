from __future__ import annotations

import math
from dataclasses import FrozenInstanceError, replace

import pytest
from builders import make_issue, make_rec

from quadtune.models import (
    Axis,
    AxisValues,
    CrossAxisContext,
    IssueKey,
    IssueMetrics,
    IssueType,
    LogFrame,
    LogMetadata,
    Severity,
)


class TestSeverity:
    def test_rank_orders_low_to_high(self) -> None:
        assert Severity.LOW.rank < Severity.MEDIUM.rank < Severity.HIGH.rank

    def test_max_uses_rank_not_string_order(self) -> None:
        # "medium" > "high" as strings.
        assert Severity.max(Severity.MEDIUM, Severity.HIGH) is Severity.HIGH
        assert Severity.max(Severity.LOW) is Severity.LOW


class TestAxisValues:
    def test_from_list_pads_missing_axes(self) -> None:
        assert AxisValues.from_any([1, "2"]) == AxisValues(1.0, 2.0, 0.0)

    def test_from_dict_ignores_garbage(self) -> None:
        values = AxisValues.from_any({"roll": "x", "pitch": math.nan, "yaw": 3})
        assert values == AxisValues(0.0, 0.0, 3.0)

    def test_unknown_shape_is_zero(self) -> None:
        assert AxisValues.from_any("nope") == AxisValues()


class TestLogFrame:
    def test_from_dict_reads_decoder_keys(self) -> None:
        frame = LogFrame.from_dict(
            {
                "time": 1500,
                "loopIteration": 7,
                "gyroADC": {"roll": 1.5, "pitch": -2.0, "yaw": 0.25},
                "pidD": [4.0, 5.0, 6.0],
                "motor": [1100, 1200, 1300, 1400],
                "rcCommand": {"throttle": 1350},
                "throttle": 1350,
            }
        )
        assert frame.time == 1500
        assert frame.loop_iteration == 7
        assert frame.gyro.get(Axis.PITCH) == -2.0
        assert frame.pid_d == AxisValues(4.0, 5.0, 6.0)
        assert frame.motor == (1100.0, 1200.0, 1300.0, 1400.0)
        assert frame.rc_command.throttle == 1350.0

    def test_to_dict_round_trips_through_from_dict(self) -> None:
        frame = LogFrame(time=10, gyro=AxisValues(1.0, 2.0, 3.0), motor=(1500.0,), throttle=1400.0)
        assert LogFrame.from_dict(frame.to_dict()) == frame

    def test_frames_are_immutable(self) -> None:
        with pytest.raises(FrozenInstanceError):
            LogFrame(time=0).time = 5  # type: ignore[misc]


class TestLogMetadata:
    def test_defaults_for_missing_header_fields(self) -> None:
        metadata = LogMetadata.from_dict({})
        assert metadata.looptime == 8000.0
        assert metadata.motor_count == 4
        assert metadata.craft_name is None
        assert metadata.pid_profile is None

    def test_nested_sections_are_parsed(self) -> None:
        metadata = LogMetadata.from_dict(
            {
                "looptime": 4000,
                "craftName": "Tiny",
                "pidProfile": {"rollP": 45, "rollD": 40},
                "filterSettings": {"gyroLpf1Cutoff": 300, "dynamicNotchCount": 2},
            }
        )
        assert metadata.looptime == 4000.0
        assert metadata.pid_profile is not None
        assert metadata.pid_profile.roll_d == 40.0
        assert metadata.filter_settings is not None
        assert metadata.filter_settings.dynamic_notch_count == 2
        assert LogMetadata.from_dict(metadata.to_dict()) == metadata


class TestDetectedIssue:
    def test_key_groups_by_type_and_axis(self) -> None:
        issue = make_issue(issue_type=IssueType.PROPWASH, axis=Axis.PITCH)
        assert issue.key == IssueKey(IssueType.PROPWASH, Axis.PITCH)

    def test_to_dict_omits_unset_optional_fields(self) -> None:
        out = make_issue(frequency=120.0).to_dict()
        assert out["metrics"] == {"frequency": 120.0}
        assert out["timeRange"] == [0, 100_000]
        for key in ("occurrences", "peakTimes", "totalOccurrences", "crossAxisContext"):
            assert key not in out

    def test_to_dict_includes_collapse_and_context_fields(self) -> None:
        issue = replace(
            make_issue(motor_index=2),
            occurrences=((0, 10), (20, 30)),
            peak_times=(5.0, 25.0),
            total_occurrences=7,
            cross_axis_context=CrossAxisContext("allAxes", (Axis.ROLL, Axis.YAW), "desc"),
        )
        out = issue.to_dict()
        assert out["occurrences"] == [[0, 10], [20, 30]]
        assert out["totalOccurrences"] == 7
        assert out["metrics"] == {"motorIndex": 2}
        assert out["crossAxisContext"]["affectedAxes"] == ["roll", "yaw"]

    def test_metrics_default_is_empty(self) -> None:
        assert IssueMetrics().to_dict() == {}


class TestRecommendation:
    def test_referenced_ids_include_related(self) -> None:
        assert make_rec("a", ["b", "c"]).referenced_ids() == ("a", "b", "c")
        assert make_rec("a").referenced_ids() == ("a",)

    def test_to_dict_includes_related_only_when_set(self) -> None:
        assert "relatedIssueIds" not in make_rec("a").to_dict()
        assert make_rec("a", ["b"]).to_dict()["relatedIssueIds"] == ["b"]
