"""Hardware rules driven by motor outputs and sharp gyro spectral peaks.

Motor-based rules are whole-craft problems and only run on roll windows so a
single event is reported once rather than per axis.  Spectral-peak rules run
on every axis; the frequency merge stage later folds same-frequency peaks on
several axes into one issue.
"""

from __future__ import annotations

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
from ..processing.spectrum import find_spectral_peaks, peak_prominence
from ..profiles import QuadProfile
from .base import (
    TuningRule,
    WindowContext,
    band_severity,
    make_issue,
    make_recommendation,
    worst_issue,
)

_ROLL_ONLY = (Axis.ROLL,)
_ALL_AXES = (Axis.ROLL, Axis.PITCH, Axis.YAW)

MOTOR_MAX_OUTPUT = 1990.0


def _motor_averages(ctx: WindowContext) -> np.ndarray:
    motor = ctx.motor
    if motor.ndim != 2 or motor.shape[0] == 0:
        return np.zeros(0)
    return motor.mean(axis=0)


# ---------------------------------------------------------------------------
# Motor saturation
# ---------------------------------------------------------------------------


class MotorSaturationRule(TuningRule):
    id = "motor-saturation-detection"
    name = "Motor Saturation Detection"
    issue_types = frozenset({IssueType.MOTOR_SATURATION})
    axes = _ROLL_ONLY

    # "critical" saturation is reported as high.
    _BANDS = ((15.0, Severity.HIGH), (8.0, Severity.MEDIUM))

    def condition(self, window: AnalysisWindow) -> bool:
        return window.metadata.avg_throttle > 1300

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.motor_saturation

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        motor = ctx.motor
        if motor.ndim != 2 or motor.shape[1] == 0 or motor.shape[0] == 0:
            return []
        s = self.scale(ctx.profile)
        saturated = np.any(motor >= MOTOR_MAX_OUTPUT, axis=1)
        pct = float(np.mean(saturated)) * 100.0
        if pct <= 5 * s:
            return []
        averages = motor.mean(axis=0)
        mean = float(np.mean(averages))
        asymmetry = float(np.std(averages)) / mean if mean > 0 else 0.0
        severity = band_severity(pct, self._BANDS, s) or Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.MOTOR_SATURATION,
                severity,
                min(0.95, 0.7 + pct * 0.005),
                f"Motor saturation: {pct:.1f}% at max output, asymmetry: {asymmetry * 100:.1f}%",
                IssueMetrics(motor_saturation=pct),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        s = self.scale(profile)
        saturation = worst.metrics.motor_saturation or 0.0
        if saturation > 15 * s:
            return [
                make_recommendation(
                    issues,
                    rec_type=RecommendationType.ADJUST_MASTER_MULTIPLIER,
                    priority=9,
                    title="Reduce PID master multiplier",
                    description=(
                        "Significant motor saturation: PIDs are demanding more than "
                        "motors can deliver"
                    ),
                    rationale=worst.description,
                    changes=[
                        ParameterChange(
                            "pidMasterMultiplier", "-10%", "Give motors headroom"
                        )
                    ],
                    risks=["Reduced responsiveness and tracking precision"],
                    expected_improvement="Motors stay within operating range",
                ),
                make_recommendation(
                    issues,
                    rec_type=RecommendationType.ADJUST_TPA,
                    priority=7,
                    title="Increase TPA rate",
                    description="TPA reduces PID gains at high throttle where saturation occurs",
                    rationale=worst.description,
                    changes=[
                        ParameterChange("tpaRate", "+10", "Less PID authority at high throttle")
                    ],
                    risks=["Reduced tracking at high throttle"],
                    expected_improvement="Less motor saturation during high-throttle manoeuvres",
                ),
            ]
        if saturation > 8 * s:
            return [
                make_recommendation(
                    issues,
                    rec_type=RecommendationType.DECREASE_PID,
                    priority=6,
                    title="Reduce P and D gains",
                    description="Moderate motor saturation; a slight PID reduction may help",
                    rationale=worst.description,
                    changes=[
                        ParameterChange("pidPGain", "-0.2", "Lower motor demand", Axis.ROLL),
                        ParameterChange("pidDGain", "-0.1", "Lower motor demand", Axis.ROLL),
                    ],
                    risks=["Slightly reduced tracking and damping"],
                    expected_improvement="Reduced motor saturation with minimal performance impact",
                )
            ]
        return []


# ---------------------------------------------------------------------------
# Spectral peaks
# ---------------------------------------------------------------------------


class FrameResonanceRule(TuningRule):
    id = "frame-resonance-detection"
    name = "Frame Resonance Detection"
    issue_types = frozenset({IssueType.FRAME_RESONANCE})
    axes = _ALL_AXES

    def condition(self, window: AnalysisWindow) -> bool:
        md = window.metadata
        return 1200 <= md.avg_throttle <= 1800 and not md.has_stick_input

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.gyro_noise

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        s = self.scale(ctx.profile)
        spectrum = ctx.gyro_spectrum
        peaks = find_spectral_peaks(
            spectrum.frequencies, spectrum.magnitudes, top_n=3, min_hz=20, max_hz=300
        )
        if not peaks:
            return []
        peak = peaks[0]
        prominence = peak_prominence(spectrum.magnitudes, peak.bin_index)
        if prominence < 3:
            return []
        mid_high = spectrum.band_energy.mid + spectrum.band_energy.high
        concentration = peak.magnitude**2 / mid_high if mid_high > 0 else 0.0
        if concentration < 0.15 * s:
            return []
        if concentration > 0.4 * s:
            severity = Severity.HIGH
        elif concentration > 0.25 * s:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.FRAME_RESONANCE,
                severity,
                min(0.9, 0.55 + concentration + prominence * 0.03),
                f"Frame resonance: {peak.frequency:.0f} Hz with "
                f"{concentration * 100:.0f}% energy concentration",
                IssueMetrics(
                    frequency=peak.frequency,
                    amplitude=peak.magnitude,
                    signal_to_noise=prominence,
                ),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        freq = worst.metrics.frequency or 0.0
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.ADJUST_FILTERING,
                priority=7,
                title=f"Target dynamic notch at {freq:.0f} Hz",
                description=f"Frame resonance at {freq:.0f} Hz; adjust the dynamic notch range",
                rationale=worst.description,
                changes=[
                    ParameterChange(
                        "dynamicNotchMinHz",
                        str(max(50, int(freq - 30))),
                        f"Cover the {freq:.0f} Hz resonance",
                    )
                ],
                risks=["Does not fix the underlying structural issue"],
                expected_improvement="Reduced resonant vibration with minimal latency impact",
            ),
            make_recommendation(
                issues,
                rec_type=RecommendationType.HARDWARE_CHECK,
                priority=6,
                title="Check frame and mounting hardware",
                description=(
                    f"Structural resonance at {freq:.0f} Hz; may indicate loose hardware "
                    "or frame flex"
                ),
                rationale=worst.description,
                risks=["Requires physical inspection"],
                expected_improvement="Less filtering needed once the resonance is removed",
                category="hardware",
            ),
        ]


class BearingNoiseRule(TuningRule):
    id = "bearing-noise-detection"
    name = "Bearing Noise Detection"
    issue_types = frozenset({IssueType.BEARING_NOISE})
    axes = _ALL_AXES

    _BANDS = ((6.0, Severity.HIGH), (4.0, Severity.MEDIUM))

    def condition(self, window: AnalysisWindow) -> bool:
        md = window.metadata
        return 1150 <= md.avg_throttle <= 1800 and not md.has_stick_input

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.gyro_noise

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        s = self.scale(ctx.profile)
        spectrum = ctx.gyro_spectrum
        peaks = find_spectral_peaks(
            spectrum.frequencies, spectrum.magnitudes, top_n=3, min_hz=30, max_hz=500
        )
        if not peaks:
            return []
        peak = peaks[0]
        prominence = peak_prominence(spectrum.magnitudes, peak.bin_index)
        if prominence < 3 * s:
            return []
        throttle_pct = (ctx.window.metadata.avg_throttle - 1000) / 10
        severity = band_severity(prominence, self._BANDS, s) or Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.BEARING_NOISE,
                severity,
                min(0.85, 0.5 + prominence * 0.05),
                f"Bearing noise: peak at {peak.frequency:.0f} Hz "
                f"({prominence:.1f}x prominence) at {throttle_pct:.0f}% throttle",
                IssueMetrics(
                    frequency=peak.frequency,
                    amplitude=peak.magnitude,
                    signal_to_noise=prominence,
                ),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        freq = worst.metrics.frequency or 0.0
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.HARDWARE_CHECK,
                priority=8,
                title="Inspect motor bearings and shafts",
                description=f"Prominent noise peak at {freq:.0f} Hz, likely a mechanical source",
                rationale=worst.description,
                risks=["Continued operation accelerates bearing wear"],
                expected_improvement="Reduced gyro noise at all throttle levels",
                category="hardware",
            )
        ]


# ---------------------------------------------------------------------------
# Motor balance
# ---------------------------------------------------------------------------


class MotorImbalanceRule(TuningRule):
    id = "motor-health-detection"
    name = "Motor Health Detection"
    issue_types = frozenset({IssueType.MOTOR_IMBALANCE})
    axes = _ROLL_ONLY

    _BANDS = ((0.35, Severity.HIGH), (0.25, Severity.MEDIUM))
    # A pair of hot motors points at CG offset, not a single bad motor.
    _PAIR_DEVIATION = 0.12

    def condition(self, window: AnalysisWindow) -> bool:
        return window.metadata.avg_throttle > 1200 and not window.metadata.has_stick_input

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.motor_saturation

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        averages = _motor_averages(ctx)
        if averages.size < 4:
            return []
        mean = float(np.mean(averages))
        if mean <= 0:
            return []
        s = self.scale(ctx.profile)
        deviations = (averages - mean) / mean
        worst_motor = int(np.argmax(deviations))
        deviation = float(deviations[worst_motor])
        if deviation < 0.20 * s:
            return []
        if int(np.count_nonzero(deviations > self._PAIR_DEVIATION)) >= 2:
            return []
        severity = band_severity(deviation, self._BANDS, s) or Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.MOTOR_IMBALANCE,
                severity,
                min(0.9, 0.6 + deviation * 1.5),
                f"Motor imbalance: motor {worst_motor + 1} working {deviation * 100:.0f}% "
                "harder than average, possible damaged prop or failing motor",
                IssueMetrics(motor_saturation=deviation * 100, motor_index=worst_motor),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.HARDWARE_CHECK,
                priority=8,
                title="Inspect motor and prop",
                description=worst.description,
                rationale=(
                    "A single motor running consistently higher than the others points at "
                    "an efficiency problem with that motor or its prop"
                ),
                risks=["Flying with a damaged motor or prop risks loss of control"],
                expected_improvement="Even motor loading and reduced vibration",
                category="hardware",
            )
        ]


class CgOffsetRule(TuningRule):
    id = "cg-offset-detection"
    name = "CG Offset Detection"
    issue_types = frozenset({IssueType.CG_OFFSET})
    axes = _ROLL_ONLY

    _BANDS = ((0.20, Severity.HIGH), (0.15, Severity.MEDIUM))

    def condition(self, window: AnalysisWindow) -> bool:
        md = window.metadata
        return 1100 <= md.avg_throttle <= 1400 and not md.has_stick_input

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.motor_saturation

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        m = _motor_averages(ctx)
        if m.size < 4:
            return []
        # Betaflight numbering: motors 1+4 and 2+3 sit on the diagonals.
        pair_a = (m[0] + m[3]) / 2
        pair_b = (m[1] + m[2]) / 2
        overall = (pair_a + pair_b) / 2
        if overall <= 0:
            return []
        s = self.scale(ctx.profile)
        pair_diff = float(abs(pair_a - pair_b) / overall)
        if pair_diff < 0.10 * s:
            return []
        front = (m[0] + m[1]) / 2
        back = (m[2] + m[3]) / 2
        fb_diff = float(abs(front - back) / overall)
        if pair_diff > fb_diff:
            direction = "toward motors 1 & 4" if pair_a > pair_b else "toward motors 2 & 3"
        else:
            direction = "toward front" if front > back else "toward rear"
        max_diff = max(pair_diff, fb_diff)
        severity = band_severity(max_diff, self._BANDS, s) or Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.CG_OFFSET,
                severity,
                min(0.9, 0.6 + max_diff * 2),
                f"CG offset: {max_diff * 100:.0f}% motor imbalance {direction} during hover",
                IssueMetrics(motor_saturation=max_diff * 100),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.HARDWARE_CHECK,
                priority=7,
                title="Adjust center of gravity",
                description=worst.description,
                rationale=(
                    "One set of motors works harder than the opposite set during hover, "
                    "so the center of gravity is shifted"
                ),
                risks=["Requires repositioning the battery on the frame"],
                expected_improvement="Even motor loading and longer flight times",
                category="hardware",
            )
        ]


# ---------------------------------------------------------------------------
# Power system
# ---------------------------------------------------------------------------


class EscDesyncRule(TuningRule):
    id = "esc-desync-detection"
    name = "ESC Desync Detection"
    issue_types = frozenset({IssueType.ESC_DESYNC})
    axes = _ROLL_ONLY

    _SPIKE_DELTA = 500.0

    def condition(self, window: AnalysisWindow) -> bool:
        return window.metadata.avg_throttle > 1100

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.motor_saturation

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        motor = ctx.motor
        if motor.ndim != 2 or motor.shape[0] < 3 or motor.shape[1] < 2:
            return []
        s = self.scale(ctx.profile)
        jump = np.abs(motor[1:-1] - motor[:-2])
        back = np.abs(motor[2:] - motor[1:-1])
        others = (jump.sum(axis=1, keepdims=True) - jump) / (motor.shape[1] - 1)
        spikes = (
            (jump > self._SPIKE_DELTA * s)
            & (back > self._SPIKE_DELTA * 0.5 * s)
            & (jump > others * 3)
        )
        count = int(np.count_nonzero(spikes))
        if count == 0:
            return []
        hit_jumps = np.where(spikes, jump, 0.0)
        frame_idx, worst_motor = np.unravel_index(int(np.argmax(hit_jumps)), hit_jumps.shape)
        worst_delta = float(hit_jumps[frame_idx, worst_motor])
        if count > 3:
            severity = Severity.HIGH
        elif count > 1:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.ESC_DESYNC,
                severity,
                min(0.9, 0.6 + count * 0.1),
                f"ESC desync: {count} spike(s) detected, worst on motor {int(worst_motor) + 1} "
                f"({worst_delta:.0f} unit jump)",
                IssueMetrics(amplitude=worst_delta, motor_index=int(worst_motor)),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.HARDWARE_CHECK,
                priority=9,
                title="Investigate ESC desync",
                description=worst.description,
                rationale=(
                    "A single-motor spike that returns within a frame is the signature of an "
                    "ESC losing commutation sync"
                ),
                risks=[
                    "Repeated desyncs can damage motors and ESCs",
                    "Risk of mid-air loss of control",
                ],
                expected_improvement="Smoother motor operation without desync events",
                category="hardware",
            )
        ]


class VoltageSagRule(TuningRule):
    id = "voltage-sag-detection"
    name = "Voltage Sag Detection"
    issue_types = frozenset({IssueType.VOLTAGE_SAG})
    axes = _ROLL_ONLY

    _BANDS = ((150.0, Severity.HIGH), (100.0, Severity.MEDIUM))
    _LATE_FLIGHT = 0.75

    def condition(self, window: AnalysisWindow) -> bool:
        md = window.metadata
        return 1200 <= md.avg_throttle <= 1600 and not md.has_stick_input

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.motor_saturation

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        total = ctx.arrays.size
        if total == 0 or ctx.window.start / total < self._LATE_FLIGHT:
            return []
        averages = _motor_averages(ctx)
        if averages.size == 0:
            return []
        s = self.scale(ctx.profile)
        excess = float(np.mean(averages)) - ctx.window.metadata.avg_throttle
        if excess < 50 * s:
            return []
        severity = band_severity(excess, self._BANDS, s) or Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.VOLTAGE_SAG,
                severity,
                min(0.85, 0.5 + excess * 0.002),
                f"Voltage sag: motors running {excess:.0f} units above throttle command "
                "in last quarter of flight",
                IssueMetrics(motor_saturation=excess),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.HARDWARE_CHECK,
                priority=5,
                title="Battery voltage sag detected",
                description=worst.description,
                rationale=(
                    "Motor output rises over the flight for the same throttle position, "
                    "so the battery voltage is dropping"
                ),
                risks=["Battery may be worn or undersized for the quad"],
                expected_improvement="A fresher battery restores full authority late in the flight",
                category="hardware",
            )
        ]
