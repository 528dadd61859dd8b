"""End-to-end analysis over synthetic logs."""

from __future__ import annotations

from pathlib import Path

import pytest
from builders import (
    RESONANCE_HZ,
    RESONANCE_LOOPTIME,
    make_frames,
    make_metadata,
    noisy_frames,
    resonance_frames,
)

from quadtune.config import AppConfig, load_config
from quadtune.engine.frequency_merge import PATTERN_ALL_AXES
from quadtune.json_utils import safe_json_dumps
from quadtune.models import Axis, FlightPhase, IssueType
from quadtune.pipeline import analyze_log, resolve_profile
from quadtune.profiles import PROFILES


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return load_config(tmp_path / "absent.yaml")


def _assert_references_resolve(result) -> None:
    ids = {issue.id for issue in result.issues}
    assert len(ids) == len(result.issues)
    for rec in result.recommendations:
        assert rec.issue_id in ids
        if rec.related_issue_ids is not None:
            assert rec.related_issue_ids
            assert rec.issue_id not in rec.related_issue_ids
            assert set(rec.related_issue_ids) <= ids


# ---------------------------------------------------------------------------
# analyze_log
# ---------------------------------------------------------------------------


class TestAnalyzeLog:
    @pytest.mark.smoke
    def test_quiet_flight_is_excellent(self, quiet_frames, metadata) -> None:
        result = analyze_log(quiet_frames, metadata)
        assert result.issues == []
        assert result.recommendations == []
        assert result.summary.overall_health == "excellent"
        assert result.profile_id == "five_inch"
        assert result.level is None
        assert [s.phase for s in result.segments] == [FlightPhase.HOVER]

    def test_empty_log(self, metadata) -> None:
        result = analyze_log([], metadata)
        assert result.issues == []
        assert result.segments == []
        assert result.summary.overall_health == "excellent"

    def test_one_issue_per_type_and_axis(self, gyro_noise_frames, metadata) -> None:
        result = analyze_log(gyro_noise_frames, metadata)
        keys = [issue.key for issue in result.issues]
        assert len(keys) == len(set(keys))
        noise_axes = {i.axis for i in result.issues if i.type is IssueType.GYRO_NOISE}
        assert noise_axes == {Axis.ROLL, Axis.PITCH, Axis.YAW}

    def test_every_recommendation_points_at_a_surviving_issue(
        self, gyro_noise_frames, metadata
    ) -> None:
        result = analyze_log(gyro_noise_frames, metadata)
        assert result.recommendations
        _assert_references_resolve(result)

    def test_recommendations_sorted_by_priority(self, gyro_noise_frames, metadata) -> None:
        result = analyze_log(gyro_noise_frames, metadata)
        priorities = [rec.priority for rec in result.recommendations]
        assert priorities == sorted(priorities, reverse=True)
        assert list(result.summary.top_priorities) == [
            rec.title for rec in result.recommendations[:3]
        ]

    def test_level_is_reflected_in_profile_id(self, gyro_noise_frames, metadata) -> None:
        result = analyze_log(gyro_noise_frames, metadata, PROFILES["five_inch"], "expert")
        assert result.profile_id == "five_inch@expert"
        assert result.level == "expert"

    def test_unknown_level_raises(self, quiet_frames, metadata) -> None:
        with pytest.raises(ValueError, match="Unknown analysis level"):
            analyze_log(quiet_frames, metadata, level="godlike")

    def test_result_serialises_to_strict_json(self, gyro_noise_frames, metadata) -> None:
        text = safe_json_dumps(analyze_log(gyro_noise_frames, metadata).to_dict())
        assert '"overallHealth"' in text
        assert "NaN" not in text

    def test_cross_axis_resonance_is_merged(self) -> None:
        metadata = make_metadata(looptime=RESONANCE_LOOPTIME)
        result = analyze_log(resonance_frames(), metadata)
        resonance = [i for i in result.issues if i.type is IssueType.FRAME_RESONANCE]
        assert len(resonance) == 1
        merged = resonance[0]
        assert merged.metrics.frequency == pytest.approx(RESONANCE_HZ)
        assert merged.cross_axis_context is not None
        assert merged.cross_axis_context.pattern == PATTERN_ALL_AXES
        bearing = [i for i in result.issues if i.type is IssueType.BEARING_NOISE]
        assert len(bearing) == 1
        _assert_references_resolve(result)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfiguredAnalysis:
    def test_config_level_applies_when_none_given(
        self, gyro_noise_frames, metadata, config
    ) -> None:
        config.analysis.level = "basic"
        result = analyze_log(gyro_noise_frames, metadata, config=config)
        assert result.profile_id == "five_inch@basic"

    def test_explicit_level_beats_config(self, quiet_frames, metadata, config) -> None:
        config.analysis.level = "basic"
        result = analyze_log(quiet_frames, metadata, level="expert", config=config)
        assert result.level == "expert"

    def test_threshold_override_silences_detector(
        self, gyro_noise_frames, metadata, config
    ) -> None:
        config.analysis.threshold_overrides = {"gyro_noise": 20.0}
        result = analyze_log(gyro_noise_frames, metadata, config=config)
        assert not [i for i in result.issues if i.type is IssueType.GYRO_NOISE]

    def test_segment_size_comes_from_config(self, metadata, config) -> None:
        config.analysis.segment_size_frames = 100
        frames = make_frames(400, throttle=lambda i: 1200.0 if i < 200 else 1800.0)
        result = analyze_log(frames, metadata, config=config)
        assert [s.id for s in result.segments] == ["segment-0", "segment-200"]


class TestResolveProfile:
    def test_explicit_profile_wins(self, config) -> None:
        config.analysis.profile = "xclass"
        assert resolve_profile(make_metadata(), PROFILES["whoop"], config).id == "whoop"

    def test_configured_profile(self, config) -> None:
        config.analysis.profile = "seven_inch"
        assert resolve_profile(make_metadata(), None, config).id == "seven_inch"

    def test_auto_detect_from_craft_name(self, config) -> None:
        config.analysis.auto_detect_profile = True
        metadata = make_metadata(craft_name="whoop")
        assert resolve_profile(metadata, None, config).id == "whoop"
        result = analyze_log(noisy_frames(300), metadata, config=config)
        assert result.profile_id == "whoop"

    def test_no_config_uses_default(self) -> None:
        assert resolve_profile(make_metadata(craft_name="whoop"), None, None).id == "five_inch"
