"""Shared building blocks for tuning rules.

A rule owns a cheap ``condition`` on window metadata, a ``detect`` step that
turns one window into zero or more issues, and a ``recommend`` step that
turns the issues it produced into recommendations.  Rules never see each
other's output.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import cached_property
from typing import ClassVar

import numpy as np

from ..models import (
    AnalysisWindow,
    Axis,
    DetectedIssue,
    IssueKey,
    IssueMetrics,
    IssueType,
    LogMetadata,
    ParameterChange,
    Recommendation,
    RecommendationType,
    Severity,
    new_id,
)
from ..processing.frames import FrameArrays
from ..processing.spectrum import FrequencySpectrum, analyze_frequency, derive_sample_rate
from ..profiles import QuadProfile

SeverityBands = Sequence[tuple[float, Severity]]


@dataclass(frozen=True)
class WindowContext:
    """Everything a detector may read for one window.  Slices are views, never copies."""

    window: AnalysisWindow
    arrays: FrameArrays
    profile: QuadProfile
    metadata: LogMetadata

    @property
    def axis(self) -> Axis:
        return self.window.axis

    @property
    def time_range(self) -> tuple[int, int]:
        return (self.window.start_time, self.window.end_time)

    def _slice(self, values: np.ndarray) -> np.ndarray:
        return values[self.window.start : self.window.stop]

    @cached_property
    def time(self) -> np.ndarray:
        return self._slice(self.arrays.time)

    @cached_property
    def throttle(self) -> np.ndarray:
        return self._slice(self.arrays.throttle)

    @cached_property
    def gyro(self) -> np.ndarray:
        return self._slice(self.arrays.gyro[self.axis])

    @cached_property
    def setpoint(self) -> np.ndarray:
        return self._slice(self.arrays.setpoint[self.axis])

    @cached_property
    def pid_d(self) -> np.ndarray:
        return self._slice(self.arrays.pid_d[self.axis])

    @cached_property
    def motor(self) -> np.ndarray:
        return self._slice(self.arrays.motor)

    @cached_property
    def sample_rate(self) -> float:
        return derive_sample_rate(self.time)

    @cached_property
    def gyro_spectrum(self) -> FrequencySpectrum:
        return analyze_frequency(self.gyro, self.sample_rate)


def band_severity(value: float, bands: SeverityBands, scale: float) -> Severity | None:
    """First severity whose ``threshold * scale`` *value* exceeds; bands run high to low."""
    for threshold, severity in bands:
        if value > threshold * scale:
            return severity
    return None


def clamp_confidence(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def make_issue(
    ctx: WindowContext,
    issue_type: IssueType,
    severity: Severity,
    confidence: float,
    description: str,
    metrics: IssueMetrics,
    *,
    time_range: tuple[int, int] | None = None,
) -> DetectedIssue:
    return DetectedIssue(
        id=new_id(),
        type=issue_type,
        axis=ctx.axis,
        severity=severity,
        confidence=clamp_confidence(confidence),
        time_range=time_range or ctx.time_range,
        description=description,
        metrics=metrics,
    )


def group_by_key(issues: Iterable[DetectedIssue]) -> dict[IssueKey, list[DetectedIssue]]:
    groups: dict[IssueKey, list[DetectedIssue]] = defaultdict(list)
    for issue in issues:
        groups[issue.key].append(issue)
    return dict(groups)


def worst_issue(issues: Sequence[DetectedIssue]) -> DetectedIssue:
    """Highest severity, then highest confidence; the first wins exact ties."""
    best = issues[0]
    for issue in issues[1:]:
        if (issue.severity.rank, issue.confidence) > (best.severity.rank, best.confidence):
            best = issue
    return best


def make_recommendation(
    issues: Sequence[DetectedIssue],
    *,
    rec_type: RecommendationType,
    priority: int,
    title: str,
    description: str,
    rationale: str,
    changes: Sequence[ParameterChange] = (),
    risks: Sequence[str] = (),
    expected_improvement: str = "",
    category: str = "software",
) -> Recommendation:
    """Recommendation anchored on the worst of *issues*; the rest become related ids."""
    anchor = worst_issue(issues)
    related = tuple(issue.id for issue in issues if issue.id != anchor.id)
    return Recommendation(
        id=new_id(),
        issue_id=anchor.id,
        type=rec_type,
        priority=priority,
        confidence=anchor.confidence,
        title=title,
        description=description,
        rationale=rationale,
        risks=tuple(risks),
        changes=tuple(changes),
        expected_improvement=expected_improvement,
        related_issue_ids=related or None,
        category=category,
    )


class TuningRule:
    """Base class for detectors.  Subclasses set the class attributes and override ``detect``."""

    id: ClassVar[str]
    name: ClassVar[str]
    issue_types: ClassVar[frozenset[IssueType]]
    axes: ClassVar[tuple[Axis, ...]]

    def applies_to(self, window: AnalysisWindow) -> bool:
        return window.axis in self.axes and self.condition(window)

    def condition(self, window: AnalysisWindow) -> bool:
        return True

    def scale(self, profile: QuadProfile) -> float:
        raise NotImplementedError

    def detect(self, ctx: WindowContext) -> list[DetectedIssue]:
        raise NotImplementedError

    def recommend_group(
        self, issues: list[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        return []

    def recommend(
        self, issues: Sequence[DetectedIssue], profile: QuadProfile
    ) -> list[Recommendation]:
        """Group *issues* by ``(type, axis)`` and build recommendations per group."""
        out: list[Recommendation] = []
        for group in group_by_key(issues).values():
            out.extend(self.recommend_group(group, profile))
        return out

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"
