"""Headline summary and flight-phase timeline for a finished analysis."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from ..models import (
    AnalysisSummary,
    DetectedIssue,
    FlightPhase,
    FlightSegment,
    LogFrame,
    Recommendation,
    Severity,
)

DEFAULT_SEGMENT_FRAMES = 1000
TOP_PRIORITY_COUNT = 3


def overall_health(high: int, medium: int, low: int) -> str:
    if high > 3:
        return "poor"
    if high > 0 or medium > 5:
        return "needsWork"
    if medium > 0 or low > 3:
        return "good"
    return "excellent"


def build_summary(
    issues: Sequence[DetectedIssue], recommendations: Sequence[Recommendation]
) -> AnalysisSummary:
    counts = {severity: 0 for severity in Severity}
    for issue in issues:
        counts[issue.severity] += 1
    high = counts[Severity.HIGH]
    medium = counts[Severity.MEDIUM]
    low = counts[Severity.LOW]
    return AnalysisSummary(
        overall_health=overall_health(high, medium, low),
        high_issue_count=high,
        medium_issue_count=medium,
        low_issue_count=low,
        top_priorities=tuple(rec.title for rec in recommendations[:TOP_PRIORITY_COUNT]),
    )


def segment_phase(avg_throttle: float) -> FlightPhase:
    if avg_throttle < 1050:
        return FlightPhase.IDLE
    if avg_throttle > 1700:
        return FlightPhase.PUNCH
    if avg_throttle < 1300:
        return FlightPhase.HOVER
    return FlightPhase.CRUISE


def format_duration(start_us: int, end_us: int) -> str:
    seconds = (end_us - start_us) / 1_000_000
    if seconds >= 60:
        return f"{int(seconds // 60)}m:{int(seconds % 60):02d}s"
    return f"{seconds:.1f}s"


def _describe(phase: FlightPhase, start_us: int, end_us: int) -> str:
    return f"{phase.value.capitalize()} ({format_duration(start_us, end_us)})"


def _overlap_count(issues: Sequence[DetectedIssue], start_us: int, end_us: int) -> int:
    count = 0
    for issue in issues:
        ranges = issue.occurrences if issue.occurrences is not None else (issue.time_range,)
        count += sum(1 for lo, hi in ranges if lo <= end_us and hi >= start_us)
    return count


def build_flight_segments(
    frames: Sequence[LogFrame],
    issues: Sequence[DetectedIssue],
    segment_size: int = DEFAULT_SEGMENT_FRAMES,
) -> list[FlightSegment]:
    """Timeline of fixed-size frame blocks, with adjacent same-phase blocks joined.

    Issue counts expand collapsed issues into their displayed occurrences, so
    a segment counts each occurrence that overlaps it.
    """
    if not frames:
        return []
    segment_size = max(1, segment_size)
    throttle = np.fromiter((f.throttle for f in frames), dtype=np.float64, count=len(frames))

    spans: list[tuple[int, int, int, FlightPhase]] = []
    for start in range(0, len(frames), segment_size):
        stop = min(start + segment_size, len(frames))
        phase = segment_phase(float(np.mean(throttle[start:stop])))
        start_us = frames[start].time
        end_us = frames[stop - 1].time
        if spans and spans[-1][3] is phase:
            first, first_us, _, _ = spans[-1]
            spans[-1] = (first, first_us, end_us, phase)
        else:
            spans.append((start, start_us, end_us, phase))

    return [
        FlightSegment(
            id=f"segment-{first}",
            start_time=start_us,
            end_time=end_us,
            phase=phase,
            description=_describe(phase, start_us, end_us),
            issue_count=_overlap_count(issues, start_us, end_us),
        )
        for first, start_us, end_us, phase in spans
    ]
