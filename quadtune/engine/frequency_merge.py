"""Fold same-frequency structural issues detected on several axes into one.

Frame resonance and bearing noise are properties of the airframe, so the
same peak shows up on roll, pitch and yaw.  Issues of those types are
clustered by frequency; each cluster keeps its strongest member, annotated
with which axes saw it, and recommendations are rewritten to point at it.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, replace

from ..models import (
    AXIS_ORDER,
    Axis,
    CrossAxisContext,
    DetectedIssue,
    IssueType,
    Recommendation,
)
from .remap import remap_recommendations

LOGGER = logging.getLogger(__name__)

MERGEABLE_TYPES: frozenset[IssueType] = frozenset(
    {IssueType.FRAME_RESONANCE, IssueType.BEARING_NOISE}
)
FREQUENCY_TOLERANCE = 0.10

PATTERN_ALL_AXES = "allAxes"
PATTERN_ROLL_PITCH_ONLY = "rollPitchOnly"
PATTERN_ASYMMETRIC = "asymmetric"


@dataclass(frozen=True, slots=True)
class FrequencyMergeResult:
    merged_issues: list[DetectedIssue]
    updated_recommendations: list[Recommendation]


def is_candidate(issue: DetectedIssue) -> bool:
    """Mergeable type with a usable frequency; zero, negative and non-finite are excluded."""
    if issue.type not in MERGEABLE_TYPES:
        return False
    freq = issue.metrics.frequency
    return freq is not None and math.isfinite(freq) and freq > 0


def _winner_key(issue: DetectedIssue) -> tuple[int, float, float]:
    amplitude = issue.metrics.amplitude
    return (issue.severity.rank, amplitude if amplitude is not None else 0.0, issue.confidence)


def _cluster(candidates: Sequence[DetectedIssue]) -> list[list[DetectedIssue]]:
    ordered = sorted(candidates, key=lambda issue: issue.metrics.frequency)
    clusters: list[list[DetectedIssue]] = []
    current: list[DetectedIssue] = []
    mean = 0.0
    for issue in ordered:
        freq = issue.metrics.frequency
        if current and abs(freq - mean) / mean <= FREQUENCY_TOLERANCE:
            current.append(issue)
            mean = sum(member.metrics.frequency for member in current) / len(current)
            continue
        if current:
            clusters.append(current)
        current = [issue]
        mean = freq
    if current:
        clusters.append(current)
    return clusters


def cross_axis_context(winner_axis: Axis, axes: Sequence[Axis]) -> CrossAxisContext:
    affected = tuple(axis for axis in AXIS_ORDER if axis in set(axes))
    if len(affected) == len(AXIS_ORDER):
        pattern = PATTERN_ALL_AXES
        description = f"Strongest on {winner_axis.value}, but present on all axes"
    else:
        pattern = (
            PATTERN_ROLL_PITCH_ONLY
            if set(affected) == {Axis.ROLL, Axis.PITCH}
            else PATTERN_ASYMMETRIC
        )
        others = ", ".join(axis.value for axis in affected if axis is not winner_axis)
        if others:
            description = f"Strongest on {winner_axis.value}, also on {others}"
        else:
            description = f"Only seen on {winner_axis.value}"
    return CrossAxisContext(pattern=pattern, affected_axes=affected, description=description)


def merge_frequency(
    issues: list[DetectedIssue], recommendations: list[Recommendation]
) -> FrequencyMergeResult:
    candidates = [issue for issue in issues if is_candidate(issue)]
    if not candidates:
        return FrequencyMergeResult(issues, recommendations)

    by_type: dict[IssueType, list[DetectedIssue]] = {}
    for issue in candidates:
        by_type.setdefault(issue.type, []).append(issue)

    merged: list[DetectedIssue] = [issue for issue in issues if not is_candidate(issue)]
    remap: dict[str, str] = {}
    for group in by_type.values():
        for cluster in _cluster(group):
            if len(cluster) == 1:
                merged.append(cluster[0])
                continue
            # max() keeps the earliest of exactly tied candidates.
            winner = max(cluster, key=_winner_key)
            context = cross_axis_context(winner.axis, [issue.axis for issue in cluster])
            merged.append(replace(winner, cross_axis_context=context))
            for issue in cluster:
                if issue.id != winner.id:
                    remap[issue.id] = winner.id

    LOGGER.debug(
        "Frequency merge: %d candidates, %d issues dropped", len(candidates), len(remap)
    )
    return FrequencyMergeResult(merged, remap_recommendations(recommendations, remap))
