"""Noise rules: gyro and D-term noise, idle electrical noise and filter cutoff mismatch."""

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
from ..processing.spectrum import analyze_frequency, rms
from ..profiles import QuadProfile
from .base import (
    TuningRule,
    WindowContext,
    band_severity,
    make_issue,
    make_recommendation,
    worst_issue,
)


class GyroNoiseRule(TuningRule):
    id = "gyro-noise-detection"
    name = "Gyro Noise Detection"
    issue_types = frozenset({IssueType.GYRO_NOISE})
    axes = (Axis.ROLL, Axis.PITCH, Axis.YAW)

    _BANDS = ((15.0, Severity.HIGH), (10.0, Severity.MEDIUM))

    def condition(self, window: AnalysisWindow) -> bool:
        md = window.metadata
        return 1200 <= md.avg_throttle <= 1600 and not md.has_stick_input

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.gyro_noise

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        s = self.scale(ctx.profile)
        gyro_rms = rms(ctx.gyro)
        high_ratio = ctx.gyro_spectrum.band_energy.high_ratio
        if gyro_rms <= 5 * s or (high_ratio <= 0.3 and gyro_rms <= 10 * s):
            return []
        severity = band_severity(gyro_rms, self._BANDS, s) or Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.GYRO_NOISE,
                severity,
                min(0.95, 0.6 + gyro_rms * 0.02 + high_ratio * 0.2),
                f"Gyro noise: {gyro_rms:.1f}°/s RMS, {high_ratio * 100:.0f}% high-freq energy "
                f"on {ctx.axis.value}",
                IssueMetrics(noise_floor=gyro_rms, frequency=ctx.gyro_spectrum.dominant_frequency),
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
                rec_type=RecommendationType.ADJUST_FILTERING,
                priority=8,
                title=f"Increase gyro filtering on {axis}",
                description="Gyro noise is passing through to the PID loop",
                rationale=worst.description,
                changes=[
                    ParameterChange("gyroFilterMultiplier", "-10", "Lower gyro filter cutoffs")
                ],
                risks=["Slightly more filter latency"],
                expected_improvement="Cooler motors and a cleaner D-term",
            ),
            make_recommendation(
                issues,
                rec_type=RecommendationType.ADJUST_FILTERING,
                priority=7,
                title="Adjust dynamic notch filter",
                description="More notches track the dominant noise peaks",
                rationale=worst.description,
                changes=[ParameterChange("dynamicNotchCount", "2", "Track two noise peaks")],
                expected_improvement="Noise peaks removed with less broadband latency",
            ),
        ]
        if worst.metrics.noise_floor is not None and worst.metrics.noise_floor > 12:
            recs.append(
                make_recommendation(
                    issues,
                    rec_type=RecommendationType.HARDWARE_CHECK,
                    priority=5,
                    title="Check for hardware vibration issues",
                    description="Noise this high usually has a mechanical source",
                    rationale=worst.description,
                    expected_improvement="Less filtering needed once the source is fixed",
                    category="hardware",
                )
            )
        return recs


class DTermNoiseRule(TuningRule):
    id = "dterm-noise-detection"
    name = "D-Term Noise Detection"
    issue_types = frozenset({IssueType.DTERM_NOISE})
    axes = (Axis.ROLL, Axis.PITCH)

    def condition(self, window: AnalysisWindow) -> bool:
        return window.metadata.avg_throttle > 1100 and not window.metadata.has_stick_input

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.dterm_noise

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        s = self.scale(ctx.profile)
        dterm_rms = rms(ctx.pid_d)
        ratio = dterm_rms / (rms(ctx.gyro) + 1.0)
        high_ratio = analyze_frequency(ctx.pid_d, ctx.sample_rate).band_energy.high_ratio
        if ratio <= 0.5 * s or high_ratio <= 0.3:
            return []
        severity = Severity.HIGH if ratio > 2.0 * s else Severity.MEDIUM
        return [
            make_issue(
                ctx,
                IssueType.DTERM_NOISE,
                severity,
                min(0.95, 0.65 + high_ratio * 0.3 + ratio * 0.05),
                f"D-term noise: ratio {ratio:.2f}x gyro, {high_ratio * 100:.0f}% high-freq energy",
                IssueMetrics(dterm_activity=dterm_rms, noise_floor=dterm_rms),
            )
        ]

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        axis = worst.axis.value
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.ADJUST_FILTERING,
                priority=8,
                title=f"Increase D-term filtering on {axis}",
                description="D-term is amplifying high-frequency noise",
                rationale=worst.description,
                changes=[
                    ParameterChange("dtermFilterMultiplier", "-10", "Lower D-term filter cutoffs")
                ],
                expected_improvement="Quieter motors, reduced D-term noise without losing control",
            ),
            make_recommendation(
                issues,
                rec_type=RecommendationType.DECREASE_PID,
                priority=7,
                title=f"Reduce D gain on {axis}",
                description="Lower D gain to reduce noise amplification",
                rationale=worst.description,
                changes=[ParameterChange("pidDGain", "-0.2", "Less noise gain", worst.axis)],
                risks=["More propwash"],
                expected_improvement="Reduced motor noise and heat from D-term",
            ),
        ]


class ElectricalNoiseRule(TuningRule):
    id = "electrical-noise-detection"
    name = "Electrical Noise Detection"
    issue_types = frozenset({IssueType.ELECTRICAL_NOISE})
    axes = (Axis.ROLL, Axis.PITCH, Axis.YAW)

    _BANDS = ((10.0, Severity.HIGH), (6.0, Severity.MEDIUM))

    def condition(self, window: AnalysisWindow) -> bool:
        return window.metadata.avg_throttle < 1050

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.gyro_noise

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        s = self.scale(ctx.profile)
        gyro_rms = rms(ctx.gyro)
        if gyro_rms <= 3 * s:
            return []
        high_ratio = ctx.gyro_spectrum.band_energy.high_ratio
        severity = band_severity(gyro_rms, self._BANDS, s) or Severity.LOW
        return [
            make_issue(
                ctx,
                IssueType.ELECTRICAL_NOISE,
                severity,
                min(0.95, 0.7 + gyro_rms * 0.02),
                f"Electrical noise at idle: {gyro_rms:.1f}°/s RMS, "
                f"{high_ratio * 100:.0f}% high-freq",
                IssueMetrics(noise_floor=gyro_rms),
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
                title=f"Check wiring and shielding on {worst.axis.value}",
                description=(
                    "Gyro noise detected at idle when motors are barely spinning, "
                    "so the source is electrical rather than mechanical"
                ),
                rationale=worst.description,
                expected_improvement=(
                    "Cleaner gyro signal at all throttle levels, allowing less aggressive filtering"
                ),
                category="hardware",
            )
        ]


def _energy_crossing(frequencies: np.ndarray, energy: np.ndarray, fraction: float) -> float:
    """Lowest frequency at which cumulative spectral energy reaches *fraction* of the total."""
    cumulative = np.cumsum(energy)
    idx = int(np.searchsorted(cumulative, cumulative[-1] * fraction))
    return float(frequencies[min(idx, frequencies.size - 1)])


class FilterNoiseComparisonRule(TuningRule):
    """Compare where gyro noise actually lives with the configured low-pass cutoffs.

    Over-filtering: the cutoff sits well below the noise onset, so the filter
    only adds latency.  Under-filtering: most of the energy is high-frequency
    and extends well past the cutoff.  D-term filters are meant to be
    aggressive, so only D-term under-filtering is reported.
    """

    id = "filter-noise-comparison"
    name = "Filter vs Noise Comparison"
    issue_types = frozenset({IssueType.FILTER_MISMATCH})
    axes = (Axis.ROLL, Axis.PITCH)

    _BANDS = ((100.0, Severity.HIGH), (75.0, Severity.MEDIUM), (50.0, Severity.LOW))
    ONSET_FRACTION = 0.10
    DROPOFF_FRACTION = 0.90
    MIN_FRAMES = 64

    def condition(self, window: AnalysisWindow) -> bool:
        md = window.metadata
        return (
            not md.has_stick_input
            and 1200 <= md.avg_throttle <= 1600
            and window.size >= self.MIN_FRAMES
        )

    def scale(self, profile: QuadProfile) -> float:
        return profile.thresholds.dterm_noise

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        settings = ctx.metadata.filter_settings
        if settings is None:
            return []
        gyro_cutoff = settings.gyro_lpf1_cutoff
        dterm_cutoff = settings.dterm_lpf1_cutoff
        if gyro_cutoff is None and dterm_cutoff is None:
            return []

        spectrum = ctx.gyro_spectrum
        energy = np.square(spectrum.magnitudes)
        if energy.size == 0 or float(np.sum(energy)) <= 0:
            return []
        onset = _energy_crossing(spectrum.frequencies, energy, self.ONSET_FRACTION)
        dropoff = _energy_crossing(spectrum.frequencies, energy, self.DROPOFF_FRACTION)
        high_ratio = spectrum.band_energy.high_ratio
        s = self.scale(ctx.profile)

        issues: list[DetectedIssue] = []
        if gyro_cutoff is not None:
            candidates = [
                issue
                for issue in (
                    self._over_filtering(ctx, "Gyro", gyro_cutoff, onset, s),
                    self._under_filtering(ctx, "Gyro", gyro_cutoff, dropoff, high_ratio, s),
                )
                if issue is not None
            ]
            if candidates:
                # Both directions can trip at once; keep the worse, over-filtering on ties.
                issues.append(max(candidates, key=lambda issue: issue.severity.rank))
        if dterm_cutoff is not None:
            under = self._under_filtering(ctx, "D-term", dterm_cutoff, dropoff, high_ratio, s)
            if under is not None:
                issues.append(under)
        return issues

    def _over_filtering(
        self, ctx: WindowContext, label: str, cutoff: float, onset: float, s: float
    ) -> DetectedIssue | None:
        gap = onset - cutoff
        severity = band_severity(gap, self._BANDS, s)
        if severity is None:
            return None
        return make_issue(
            ctx,
            IssueType.FILTER_MISMATCH,
            severity,
            min(0.90, 0.55 + gap * 0.002),
            f"{label} over-filtering: LPF cutoff {cutoff:.0f} Hz is {gap:.0f} Hz below "
            f"noise onset ({onset:.0f} Hz)",
            IssueMetrics(
                frequency=onset,
                current_cutoff_hz=cutoff,
                suggested_cutoff_hz=onset,
                filter_direction="over",
            ),
        )

    def _under_filtering(
        self,
        ctx: WindowContext,
        label: str,
        cutoff: float,
        dropoff: float,
        high_ratio: float,
        s: float,
    ) -> DetectedIssue | None:
        if high_ratio <= 0.25:
            return None
        gap = dropoff - cutoff
        severity = band_severity(gap, self._BANDS, s)
        if severity is None:
            return None
        return make_issue(
            ctx,
            IssueType.FILTER_MISMATCH,
            severity,
            min(0.90, 0.50 + high_ratio * 0.5 + gap * 0.001),
            f"{label} under-filtering: noise extends to {dropoff:.0f} Hz, {gap:.0f} Hz past "
            f"LPF cutoff ({cutoff:.0f} Hz)",
            IssueMetrics(
                frequency=dropoff,
                current_cutoff_hz=cutoff,
                suggested_cutoff_hz=dropoff,
                filter_direction="under",
            ),
        )

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        worst = worst_issue(issues)
        if worst.type is not IssueType.FILTER_MISMATCH:
            return []
        current = worst.metrics.current_cutoff_hz or 0.0
        suggested = worst.metrics.suggested_cutoff_hz or 0.0
        step = min(20, int(abs(suggested - current) / 10 + 0.5) * 5)

        if worst.metrics.filter_direction == "over":
            return [
                make_recommendation(
                    issues,
                    rec_type=RecommendationType.ADJUST_FILTERING,
                    priority=7,
                    title=f"Raise gyro filter: noise starts at {suggested:.0f} Hz",
                    description=(
                        f"Gyro LPF cutoff ({current:.0f} Hz) is well below where noise "
                        f"begins ({suggested:.0f} Hz), so the filter only adds latency"
                    ),
                    rationale=worst.description,
                    changes=[
                        ParameterChange(
                            "gyroFilterMultiplier",
                            f"+{step}",
                            f"Raise gyro filter multiplier (noise onset at {suggested:.0f} Hz)",
                        )
                    ],
                    risks=[
                        "May slightly increase noise if the noise floor changes with throttle",
                        "Monitor motor temperatures after adjustment",
                    ],
                    expected_improvement="Reduced filter delay, more responsive tracking",
                )
            ]

        is_gyro = worst.description.startswith("Gyro")
        parameter = "gyroFilterMultiplier" if is_gyro else "dtermFilterMultiplier"
        label = "gyro" if is_gyro else "D-term"
        return [
            make_recommendation(
                issues,
                rec_type=RecommendationType.ADJUST_FILTERING,
                priority=7,
                title=f"Lower {label} filter: noise above {current:.0f} Hz",
                description=(
                    f"Significant noise energy above the {label} LPF cutoff ({current:.0f} Hz) "
                    "is getting through"
                ),
                rationale=worst.description,
                changes=[
                    ParameterChange(
                        parameter,
                        f"-{step}",
                        f"Lower {label} filter multiplier to block noise above {current:.0f} Hz",
                    )
                ],
                risks=["Adds phase delay", 'May feel "mushy" if overdone'],
                expected_improvement="Quieter motors, less noise-driven motor heat",
            )
        ]
