"""Control-response rules: how well gyro follows setpoint.

Covers stick-release bounceback, propwash after throttle chops, hands-off
wobble, tracking quality during manoeuvres and high-throttle oscillation.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..models import (
    AnalysisWindow,
    Axis,
    DetectedIssue,
    IssueMetrics,
    IssueType,
    ParameterChange,
    Recommendation,
    RecommendationType,
    Severity,
)
from ..processing.spectrum import (
    analyze_frequency,
    derive_sample_rate,
    peak_to_peak,
    rms,
    std_dev,
    tracking_error,
)
from ..profiles import QuadProfile
from .base import (
    TuningRule,
    WindowContext,
    band_severity,
    make_issue,
    make_recommendation,
    worst_issue,
)

_ROLL_PITCH = (Axis.ROLL, Axis.PITCH)
_ALL_AXES = (Axis.ROLL, Axis.PITCH, Axis.YAW)


# ---------------------------------------------------------------------------
# Bounceback
# ---------------------------------------------------------------------------

_RELEASE_SETPOINT = 50.0  # deg/s, a "significant move"
_SETTLE_RUN = 10


@dataclass(frozen=True, slots=True)
class BouncebackMeasurement:
    overshoot: float
    settling_time_ms: float
    peak_time_us: float


def measure_bounceback(
    gyro: np.ndarray, setpoint: np.ndarray, time: np.ndarray, sample_rate: float
) -> BouncebackMeasurement | None:
    """Opposite-direction overshoot after the first stick release in the slice.

    Returns ``None`` when no release is found or the post-release span is too
    short to judge.
    """
    n = setpoint.size
    if n < 21:
        return None
    idx = np.arange(10, n - 10)
    prev, curr = setpoint[idx - 1], setpoint[idx]
    released = (
        (np.abs(prev) > _RELEASE_SETPOINT)
        & (np.sign(prev) != np.sign(curr))
        & (np.abs(curr) < _RELEASE_SETPOINT)
    )
    hits = np.nonzero(released)[0]
    if hits.size == 0:
        return None
    release = int(idx[hits[0]])

    span = max(50, int(sample_rate * 0.2))
    stop = min(n, release + span)
    if stop - release < max(20, int(sample_rate * 0.015)):
        return None
    err = gyro[release:stop] - setpoint[release:stop]
    abs_err = np.abs(err)

    initial_direction = np.sign(gyro[release - 5])
    candidates = np.where(np.sign(err[5:]) == -initial_direction, abs_err[5:], -1.0)
    peak_index = 0
    peak_overshoot = 0.0
    if candidates.size and float(np.max(candidates)) > 0:
        peak_index = int(np.argmax(candidates)) + 5
        peak_overshoot = float(abs_err[peak_index])

    band = max(5.0, abs(float(gyro[release - 5])) * 0.05)
    release_time = float(time[release])
    settle_time = float(time[stop - 1])
    if err.size > _SETTLE_RUN:
        within = abs_err <= band
        settled = np.lib.stride_tricks.sliding_window_view(within, _SETTLE_RUN).all(axis=1)
        settled_idx = np.nonzero(settled[peak_index : err.size - _SETTLE_RUN])[0]
        if settled_idx.size:
            settle_time = float(time[release + peak_index + int(settled_idx[0])])

    return BouncebackMeasurement(
        overshoot=peak_overshoot,
        settling_time_ms=(settle_time - release_time) / 1000.0,
        peak_time_us=float(time[release + peak_index]),
    )


class BouncebackRule(TuningRule):
    id = "bounceback-detection"
    name = "Bounceback Detection"
    issue_types = frozenset({IssueType.BOUNCEBACK})
    axes = _ROLL_PITCH

    _BANDS: tuple[tuple[float, float, Severity], ...] = (
        (40.0, 150.0, Severity.HIGH),
        (25.0, 100.0, Severity.MEDIUM),
        (15.0, 75.0, Severity.LOW),
    )

    def condition(self, window: AnalysisWindow) -> bool:
        return window.metadata.max_setpoint > 50 and window.metadata.has_stick_input

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.bounceback_overshoot

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        measured = measure_bounceback(ctx.gyro, ctx.setpoint, ctx.time, ctx.sample_rate)
        if measured is None or measured.overshoot <= 10:
            return []
        s = self.scale(ctx.profile)
        severity = next(
            (
                sev
                for overshoot_limit, settle_limit, sev in self._BANDS
                if measured.overshoot > overshoot_limit * s
                or measured.settling_time_ms > settle_limit * s
            ),
            None,
        )
        if severity is None:
            return []
        snr = abs(measured.overshoot) / (std_dev(ctx.gyro) + 1.0)
        return [
            make_issue(
                ctx,
                IssueType.BOUNCEBACK,
                severity,
                min(0.95, 0.6 + snr * 0.1),
                f"Bounceback detected: {measured.overshoot:.1f}° overshoot, "
                f"settling in {measured.settling_time_ms:.0f}ms",
                IssueMetrics(
                    overshoot=measured.overshoot,
                    settling_time=measured.settling_time_ms,
                    amplitude=measured.overshoot,
                    peak_time=measured.peak_time_us,
                ),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        axis = worst.axis.value
        recs = [
            make_recommendation(
                issues,
                rec_type=RecommendationType.DECREASE_PID,
                priority=8,
                title=f"Reduce P on {axis}",
                description="Overshoot after stick release points at too much P authority",
                rationale=worst.description,
                changes=[
                    ParameterChange(
                        "pidPGain", "-0.3", "Less P reduces overshoot past setpoint", worst.axis
                    )
                ],
                risks=["Slightly softer stick feel"],
                expected_improvement="Cleaner stops after flips and rolls",
            )
        ]
        if worst.metrics.settling_time is not None and worst.metrics.settling_time > 100:
            recs.append(
                make_recommendation(
                    issues,
                    rec_type=RecommendationType.INCREASE_PID,
                    priority=7,
                    title=f"Increase D_min on {axis}",
                    description="Slow settling after release needs more damping",
                    rationale=worst.description,
                    changes=[
                        ParameterChange(
                            "pidDMinGain", "+0.2", "More damping during fast moves", worst.axis
                        )
                    ],
                    risks=["Warmer motors"],
                    expected_improvement="Faster settling after stick release",
                )
            )
        return recs


# ---------------------------------------------------------------------------
# Propwash
# ---------------------------------------------------------------------------

_PROPWASH_DROP = 100.0


@dataclass(frozen=True, slots=True)
class PropwashMeasurement:
    frequency: float
    amplitude: float
    duration_ms: float
    dterm_activity: float
    error_rms: float
    drop_time_us: float


def measure_propwash(
    gyro: np.ndarray,
    setpoint: np.ndarray,
    pid_d: np.ndarray,
    throttle: np.ndarray,
    time: np.ndarray,
    sample_rate: float,
) -> PropwashMeasurement | None:
    """Error oscillation in the 150 ms following the first sharp throttle chop."""
    lookback = max(10, int(sample_rate * 0.03))
    trailing = max(50, int(sample_rate * 0.05))
    n = throttle.size
    if n - trailing <= lookback:
        return None
    idx = np.arange(lookback, n - trailing)
    drops = np.nonzero(throttle[idx - lookback] - throttle[idx] > _PROPWASH_DROP)[0]
    if drops.size == 0:
        return None
    start = int(idx[drops[0]])
    stop = min(n, start + max(50, int(sample_rate * 0.15)))
    if stop - start < max(20, int(sample_rate * 0.015)):
        return None
    if rms(setpoint[start:stop]) > 50:
        return None
    err = gyro[start:stop] - setpoint[start:stop]
    spectrum = analyze_frequency(err, sample_rate)
    return PropwashMeasurement(
        frequency=spectrum.dominant_frequency,
        amplitude=peak_to_peak(err),
        duration_ms=float(time[stop - 1] - time[start]) / 1000.0,
        dterm_activity=rms(pid_d[start:stop]),
        error_rms=rms(err),
        drop_time_us=float(time[start]),
    )


class PropwashRule(TuningRule):
    id = "propwash-detection"
    name = "Propwash Detection"
    issue_types = frozenset({IssueType.PROPWASH})
    axes = _ROLL_PITCH

    def condition(self, window: AnalysisWindow) -> bool:
        return window.metadata.avg_throttle < 1500

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.propwash_amplitude

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        # Include the half window before this one so a chop right at the edge is seen.
        first = ctx.window.start
        lookback = min(first, ctx.window.size // 2)
        sl = slice(first - lookback, ctx.window.stop)
        arrays = ctx.arrays
        time = arrays.time[sl]
        measured = measure_propwash(
            arrays.gyro[ctx.axis][sl],
            arrays.setpoint[ctx.axis][sl],
            arrays.pid_d[ctx.axis][sl],
            arrays.throttle[sl],
            time,
            derive_sample_rate(time),
        )
        if measured is None:
            return []
        if not (measured.error_rms > 5 and 3 < measured.frequency < 80):
            return []
        s = self.scale(ctx.profile)
        if measured.amplitude > 50 * s or measured.duration_ms > 120 * s:
            severity = Severity.HIGH
        elif measured.amplitude > 30 * s or measured.duration_ms > 80 * s:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.PROPWASH,
                severity,
                0.9 if 10 < measured.frequency < 30 else 0.7,
                f"Propwash oscillation: {measured.frequency:.1f} Hz, "
                f"{measured.amplitude:.1f}° amplitude",
                IssueMetrics(
                    frequency=measured.frequency,
                    amplitude=measured.amplitude,
                    dterm_activity=measured.dterm_activity,
                    peak_time=measured.drop_time_us,
                ),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        axis = worst.axis.value
        recs = [
            make_recommendation(
                issues,
                rec_type=RecommendationType.INCREASE_PID,
                priority=9 if worst.severity is Severity.HIGH else 8,
                title=f"Increase D_min on {axis}",
                description="Propwash needs stronger low-throttle damping",
                rationale=worst.description,
                changes=[
                    ParameterChange(
                        "pidDMinGain", "+0.4", "More D during throttle transitions", worst.axis
                    )
                ],
                risks=["Warmer motors", "More D-term noise"],
                expected_improvement="Reduced oscillation amplitude during throttle drops",
            ),
            make_recommendation(
                issues,
                rec_type=RecommendationType.ADJUST_DYNAMIC_IDLE,
                priority=7,
                title="Increase Dynamic Idle",
                description="Higher idle RPM keeps props biting in dirty air",
                rationale=worst.description,
                changes=[ParameterChange("dynamicIdle", "+3", "Raise minimum motor RPM")],
                risks=["Slightly floatier descents"],
                expected_improvement="Better prop authority during dives and chops",
            ),
        ]
        return recs


# ---------------------------------------------------------------------------
# Wobble
# ---------------------------------------------------------------------------


class WobbleRule(TuningRule):
    id = "wobble-detection"
    name = "Mid-Throttle Wobble Detection"
    issue_types = frozenset({IssueType.LOW_FREQUENCY_OSCILLATION, IssueType.MID_THROTTLE_WOBBLE})
    axes = _ROLL_PITCH

    _BANDS = ((25.0, Severity.HIGH), (15.0, Severity.MEDIUM))

    def condition(self, window: AnalysisWindow) -> bool:
        md = window.metadata
        return 1200 <= md.avg_throttle <= 1800 and not md.has_stick_input

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.wobble_amplitude

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        if rms(ctx.setpoint) > 30:
            return []
        amplitude = rms(ctx.gyro)
        frequency = ctx.gyro_spectrum.dominant_frequency
        # Peaks at 100 Hz and above belong to the gyro noise rule.
        if not (amplitude > 8 and 5 < frequency < 100):
            return []
        if frequency < 30:
            issue_type, band = IssueType.LOW_FREQUENCY_OSCILLATION, "low"
        else:
            issue_type, band = IssueType.MID_THROTTLE_WOBBLE, "mid"
        severity = band_severity(amplitude, self._BANDS, self.scale(ctx.profile)) or Severity.LOW
        return [
            make_issue(
                ctx,
                issue_type,
                severity,
                0.85,
                f"{band.upper()}-frequency wobble: {frequency:.1f} Hz, {amplitude:.1f}° RMS",
                IssueMetrics(frequency=frequency, amplitude=amplitude),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        axis = worst.axis.value
        if worst.type is IssueType.LOW_FREQUENCY_OSCILLATION:
            return [
                make_recommendation(
                    issues,
                    rec_type=RecommendationType.INCREASE_PID,
                    priority=8,
                    title=f"Increase P on {axis}",
                    description="Low-frequency oscillation indicates insufficient P gain",
                    rationale=worst.description,
                    changes=[ParameterChange("pidPGain", "+0.3", "Stiffer hold", worst.axis)],
                    expected_improvement="More locked-in feel during cruise",
                )
            ]
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.INCREASE_PID,
                priority=7,
                title=f"Increase D on {axis}",
                description="Mid-throttle wobble is damped by more D",
                rationale=worst.description,
                changes=[ParameterChange("pidDGain", "+0.2", "More damping", worst.axis)],
                risks=["Warmer motors"],
                expected_improvement="Steadier hover and cruise",
            )
        ]


# ---------------------------------------------------------------------------
# Tracking quality
# ---------------------------------------------------------------------------


class TrackingQualityRule(TuningRule):
    id = "tracking-quality-detection"
    name = "Tracking Quality Analysis"
    issue_types = frozenset(
        {IssueType.UNDERDAMPED, IssueType.OVERDAMPED, IssueType.LOW_FREQUENCY_OSCILLATION}
    )
    axes = _ROLL_PITCH

    _BANDS = ((40.0, Severity.HIGH), (25.0, Severity.MEDIUM), (12.0, Severity.LOW))

    def condition(self, window: AnalysisWindow) -> bool:
        md = window.metadata
        return (
            md.rms_setpoint > 10
            and md.max_setpoint > 30
            and 1100 <= md.avg_throttle <= 1900
            and window.size >= 50
        )

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.tracking_error

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        rms_setpoint = ctx.window.metadata.rms_setpoint
        err = tracking_error(ctx.setpoint, ctx.gyro)
        rms_error = rms(err)
        if rms_error < 5:
            return []
        normalized_error = rms_error / rms_setpoint * 100.0
        # The "critical" band of the legacy scale folds into high.
        severity = band_severity(normalized_error, self._BANDS, self.scale(ctx.profile))
        if severity is None:
            return []
        amplitude_ratio = rms(ctx.gyro) / rms_setpoint * 100.0
        gyro_std = std_dev(ctx.gyro)
        snr = rms_error / gyro_std if gyro_std > 0 else 10.0
        if amplitude_ratio < 90 and normalized_error > 25:
            issue_type = IssueType.UNDERDAMPED
            detail = f"{amplitude_ratio:.1f}% amplitude (insufficient P gain)"
        elif amplitude_ratio > 105:
            issue_type = IssueType.OVERDAMPED
            detail = f"{amplitude_ratio:.1f}% amplitude (too much P or not enough D)"
        else:
            issue_type = IssueType.LOW_FREQUENCY_OSCILLATION
            detail = "during active flight"
        return [
            make_issue(
                ctx,
                issue_type,
                severity,
                min(0.95, 0.6 + snr * 0.05),
                f"Poor tracking: {normalized_error:.1f}% error, {detail}",
                IssueMetrics(
                    rms_error=rms_error,
                    normalized_error=normalized_error,
                    amplitude_ratio=amplitude_ratio,
                    signal_to_noise=snr,
                ),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        axis = worst.axis.value
        if worst.type is IssueType.OVERDAMPED:
            return [
                make_recommendation(
                    issues,
                    rec_type=RecommendationType.DECREASE_PID,
                    priority=7,
                    title=f"Reduce P gain on {axis}",
                    description="Gyro overshooting setpoint, too much P or insufficient D",
                    rationale=worst.description,
                    changes=[ParameterChange("pidPGain", "-0.2", "Less overshoot", worst.axis)],
                    expected_improvement="Smoother response with less overshoot",
                )
            ]
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.INCREASE_PID,
                priority=8,
                title=f"Increase P gain on {axis}",
                description="Gyro not reaching setpoint, insufficient P gain",
                rationale=worst.description,
                changes=[ParameterChange("pidPGain", "+0.2", "Tighter tracking", worst.axis)],
                expected_improvement="Gyro will follow setpoint more closely during maneuvers",
            )
        ]


# ---------------------------------------------------------------------------
# High-throttle oscillation
# ---------------------------------------------------------------------------


class HighThrottleOscillationRule(TuningRule):
    id = "high-throttle-oscillation"
    name = "High-Throttle Oscillation Detection"
    issue_types = frozenset({IssueType.HIGH_THROTTLE_OSCILLATION})
    axes = _ALL_AXES

    _BANDS = ((50.0, Severity.HIGH), (30.0, Severity.MEDIUM))

    def condition(self, window: AnalysisWindow) -> bool:
        return window.metadata.avg_throttle > 1600

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.high_throttle_oscillation

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        s = self.scale(ctx.profile)
        err = tracking_error(ctx.setpoint, ctx.gyro)
        error_rms = rms(err)
        frequency = analyze_frequency(err, ctx.sample_rate).dominant_frequency
        if error_rms <= 8 * s or not 5 <= frequency <= 100:
            return []
        amplitude = peak_to_peak(err)
        severity = band_severity(amplitude, self._BANDS, s) or Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.HIGH_THROTTLE_OSCILLATION,
                severity,
                min(0.95, 0.6 + error_rms * 0.01 + (0.1 if frequency > 10 else 0.0)),
                f"High-throttle oscillation: {frequency:.1f} Hz, amplitude {amplitude:.1f}°/s",
                IssueMetrics(frequency=frequency, amplitude=amplitude, rms_error=error_rms),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.ADJUST_TPA,
                priority=8,
                title="Increase TPA rate",
                description="Oscillations at high throttle indicate TPA is not attenuating PIDs enough",
                rationale=worst.description,
                changes=[ParameterChange("tpaRate", "+10", "More PID attenuation at high throttle")],
                expected_improvement="Eliminated oscillations during punches and high-throttle flight",
            )
        ]
