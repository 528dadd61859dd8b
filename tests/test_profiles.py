from __future__ import annotations

import pytest
from builders import make_metadata

from quadtune.models import FilterSettings, PidProfile
from quadtune.profiles import (
    ANALYSIS_LEVEL_MULTIPLIERS,
    DEFAULT_PROFILE,
    PROFILES,
    QUAD_SIZE_ORDER,
    apply_threshold_overrides,
    detect_quad_size,
    get_profile,
    scale_profile,
)

# ---------------------------------------------------------------------------
# Presets and level scaling
# ---------------------------------------------------------------------------


class TestPresets:
    def test_every_size_has_a_profile(self) -> None:
        assert set(PROFILES) == set(QUAD_SIZE_ORDER)

    def test_default_is_five_inch_baseline(self) -> None:
        assert DEFAULT_PROFILE.id == "five_inch"
        assert set(DEFAULT_PROFILE.thresholds.as_dict().values()) == {1.0}

    def test_unknown_profile_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown quad profile"):
            get_profile("nine_inch")


class TestScaleProfile:
    @pytest.mark.parametrize("level", list(ANALYSIS_LEVEL_MULTIPLIERS))
    def test_every_threshold_is_multiplied(self, level: str) -> None:
        base = PROFILES["seven_inch"]
        scaled = scale_profile(base, level)
        multiplier = ANALYSIS_LEVEL_MULTIPLIERS[level]
        for name, value in base.thresholds.as_dict().items():
            assert scaled.thresholds.as_dict()[name] == pytest.approx(value * multiplier)
        assert scaled.id == f"seven_inch@{level}"

    def test_input_profile_is_not_modified(self) -> None:
        before = DEFAULT_PROFILE.thresholds.as_dict()
        scale_profile(DEFAULT_PROFILE, "basic")
        assert DEFAULT_PROFILE.thresholds.as_dict() == before
        assert DEFAULT_PROFILE.id == "five_inch"

    def test_expert_is_strictest(self) -> None:
        expert = scale_profile(DEFAULT_PROFILE, "expert").thresholds.gyro_noise
        average = scale_profile(DEFAULT_PROFILE, "average").thresholds.gyro_noise
        basic = scale_profile(DEFAULT_PROFILE, "basic").thresholds.gyro_noise
        assert expert < average < basic

    def test_unknown_level_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown analysis level"):
            scale_profile(DEFAULT_PROFILE, "godlike")


class TestThresholdOverrides:
    def test_known_overrides_replace_values(self) -> None:
        out = apply_threshold_overrides(DEFAULT_PROFILE, {"gyro_noise": 2.0, "bogus": 9.0})
        assert out.thresholds.gyro_noise == 2.0
        assert out.thresholds.dterm_noise == 1.0
        assert DEFAULT_PROFILE.thresholds.gyro_noise == 1.0

    def test_empty_overrides_return_same_profile(self) -> None:
        assert apply_threshold_overrides(DEFAULT_PROFILE, {}) is DEFAULT_PROFILE


# ---------------------------------------------------------------------------
# Auto-detection
# ---------------------------------------------------------------------------


class TestDetectQuadSize:
    def test_no_signal_defaults_to_five_inch(self) -> None:
        detection = detect_quad_size(make_metadata(looptime=6000.0))
        assert detection.suggested_size == "five_inch"
        assert detection.confidence == pytest.approx(0.2)
        assert detection.reasoning

    @pytest.mark.parametrize(
        ("craft_name", "size"),
        [
            ("Meteor75", "whoop"),
            ("Chimera LR", "seven_inch"),
            ("Heavy Lift X", "xclass"),
            ("Toothpick build", "toothpick3"),
        ],
    )
    def test_craft_name_keywords(self, craft_name: str, size: str) -> None:
        detection = detect_quad_size(make_metadata(looptime=6000.0, craft_name=craft_name))
        assert detection.suggested_size == size

    def test_whoop_name_on_fast_loop(self) -> None:
        detection = detect_quad_size(make_metadata(craft_name="whoop"))
        assert detection.suggested_size == "whoop"
        assert detection.confidence > 0.5

    def test_low_d_to_p_and_low_cutoff_suggest_large_quad(self) -> None:
        metadata = make_metadata(
            looptime=6000.0,
            pid_profile=PidProfile(roll_p=60.0, roll_d=20.0, dynamic_idle=45.0),
            filter_settings=FilterSettings(gyro_lpf1_cutoff=120.0),
        )
        assert detect_quad_size(metadata).suggested_size == "xclass"

    def test_ties_resolve_in_size_order(self) -> None:
        # D:P 0.8 scores toothpick3 and five_inch equally.
        metadata = make_metadata(
            looptime=6000.0, pid_profile=PidProfile(roll_p=50.0, roll_d=40.0)
        )
        assert detect_quad_size(metadata).suggested_size == "toothpick3"
