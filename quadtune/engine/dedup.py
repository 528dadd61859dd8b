"""Temporal de-duplication of raw detector output.

Detectors fire once per overlapping window, so one physical problem shows up
as a run of near-identical issues.  Two passes reduce that to one issue per
``(type, axis)`` key:

1. *Temporal merge*: within a key, issues whose gap is under
   :data:`MERGE_GAP_US` are folded into one spanning issue.
2. *Group collapse*: whatever survives pass 1 for a key collapses into a
   single representative that carries a capped occurrence history.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace

from ..models import (
    MAX_DISPLAYED_OCCURRENCES,
    DetectedIssue,
    IssueKey,
    IssueMetrics,
    Severity,
)

LOGGER = logging.getLogger(__name__)

MERGE_GAP_US = 100_000

# Metrics replaced by the group maximum when a group collapses.
WORST_CASE_METRICS: tuple[str, ...] = (
    "overshoot",
    "settling_time",
    "amplitude",
    "rms_error",
    "dterm_activity",
    "motor_saturation",
    "noise_floor",
)


def _partition(issues: Iterable[DetectedIssue]) -> dict[IssueKey, list[DetectedIssue]]:
    groups: dict[IssueKey, list[DetectedIssue]] = {}
    for issue in issues:
        groups.setdefault(issue.key, []).append(issue)
    return groups


def _merge_pair(current: DetectedIssue, nxt: DetectedIssue) -> DetectedIssue:
    rep, other = (nxt, current) if nxt.confidence >= current.confidence else (current, nxt)
    metrics = rep.metrics
    if metrics.peak_time is None and other.metrics.peak_time is not None:
        metrics = replace(metrics, peak_time=other.metrics.peak_time)
    return replace(
        rep,
        time_range=(current.start, max(current.end, nxt.end)),
        severity=Severity.max(current.severity, nxt.severity),
        confidence=(current.confidence + nxt.confidence) / 2.0,
        metrics=metrics,
    )


def _temporal_merge(
    partition: Sequence[DetectedIssue], remap: dict[str, str]
) -> list[DetectedIssue]:
    ordered = sorted(partition, key=lambda issue: issue.start)
    merged: list[DetectedIssue] = []
    current = ordered[0]
    absorbed = [current.id]
    for nxt in ordered[1:]:
        if nxt.start - current.end < MERGE_GAP_US:
            current = _merge_pair(current, nxt)
            absorbed.append(nxt.id)
            continue
        _record(remap, absorbed, current.id)
        merged.append(current)
        current = nxt
        absorbed = [nxt.id]
    _record(remap, absorbed, current.id)
    merged.append(current)
    return merged


def _record(remap: dict[str, str], ids: Iterable[str], survivor_id: str) -> None:
    for issue_id in ids:
        if issue_id != survivor_id:
            remap[issue_id] = survivor_id


def _worst_case_metrics(base: IssueMetrics, members: Sequence[DetectedIssue]) -> IssueMetrics:
    updates: dict[str, float] = {}
    for name in WORST_CASE_METRICS:
        values = [
            value for value in (getattr(m.metrics, name) for m in members) if value is not None
        ]
        if values:
            updates[name] = max(values)
    return replace(base, **updates) if updates else base


def _peak_time(issue: DetectedIssue) -> float:
    if issue.metrics.peak_time is not None:
        return float(issue.metrics.peak_time)
    return (issue.start + issue.end) / 2.0


def _collapse_group(
    members: Sequence[DetectedIssue], detection_order: dict[str, int]
) -> DetectedIssue:
    # max() keeps the first of equal candidates.
    rep = max(members, key=lambda issue: (issue.severity.rank, issue.confidence))
    total = len(members)

    shown: Sequence[DetectedIssue] = members
    total_occurrences: int | None = None
    if total > MAX_DISPLAYED_OCCURRENCES:
        by_confidence = sorted(
            members,
            key=lambda issue: (-issue.confidence, detection_order.get(issue.id, 0)),
        )
        shown = by_confidence[:MAX_DISPLAYED_OCCURRENCES]
        total_occurrences = total
    shown = sorted(shown, key=lambda issue: (issue.start, issue.end))

    return replace(
        rep,
        severity=Severity.max(*(m.severity for m in members)),
        confidence=sum(m.confidence for m in members) / total,
        time_range=(min(m.start for m in members), max(m.end for m in members)),
        metrics=_worst_case_metrics(rep.metrics, members),
        description=f"{rep.description} (×{total})",
        occurrences=tuple((m.start, m.end) for m in shown),
        peak_times=tuple(_peak_time(m) for m in shown),
        total_occurrences=total_occurrences,
    )


def _resolve(remap: dict[str, str]) -> dict[str, str]:
    resolved: dict[str, str] = {}
    for source in remap:
        target = remap[source]
        seen = {source}
        while target in remap and target not in seen:
            seen.add(target)
            target = remap[target]
        if target != source:
            resolved[source] = target
    return resolved


def deduplicate_with_remap(
    issues: Sequence[DetectedIssue],
) -> tuple[list[DetectedIssue], dict[str, str]]:
    """Deduplicate *issues* and report which dropped id each survivor replaced.

    The returned mapping sends every dropped issue id to the id of the issue
    that now stands for it, with multi-step chains already resolved.
    """
    if not issues:
        return [], {}
    detection_order = {issue.id: index for index, issue in enumerate(issues)}
    remap: dict[str, str] = {}
    out: list[DetectedIssue] = []
    for partition in _partition(issues).values():
        survivors = _temporal_merge(partition, remap)
        if len(survivors) == 1:
            out.append(survivors[0])
            continue
        collapsed = _collapse_group(survivors, detection_order)
        _record(remap, (issue.id for issue in survivors), collapsed.id)
        out.append(collapsed)
    LOGGER.debug("Deduplicated %d issues into %d", len(issues), len(out))
    return out, _resolve(remap)


def deduplicate(issues: Sequence[DetectedIssue]) -> list[DetectedIssue]:
    return deduplicate_with_remap(issues)[0]
