"""Evaluate every tuning rule over every analysis window of a log."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..models import DetectedIssue, LogFrame, LogMetadata, Recommendation
from ..processing.frames import FrameArrays
from ..profiles import DEFAULT_PROFILE, QuadProfile
from ..rules import ALL_RULES, TuningRule, WindowContext
from .segmenter import segment_log

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngineResult:
    issues: list[DetectedIssue] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)


def analyze(
    frames: Sequence[LogFrame],
    metadata: LogMetadata,
    profile: QuadProfile = DEFAULT_PROFILE,
    rules: Sequence[TuningRule] = ALL_RULES,
) -> EngineResult:
    """Raw, un-merged issues and recommendations for *frames* under *profile*.

    Each rule only ever sees the windows it applies to, and only builds
    recommendations from the issues it produced itself.
    """
    if not frames:
        return EngineResult()
    arrays = FrameArrays.from_frames(frames)
    windows = segment_log(arrays, metadata)

    per_rule: dict[str, list[DetectedIssue]] = {rule.id: [] for rule in rules}
    for window in windows:
        ctx: WindowContext | None = None
        for rule in rules:
            if not rule.applies_to(window):
                continue
            if ctx is None:
                ctx = WindowContext(window, arrays, profile, metadata)
            per_rule[rule.id].extend(rule.detect(ctx))

    issues: list[DetectedIssue] = []
    recommendations: list[Recommendation] = []
    for rule in rules:
        found = per_rule[rule.id]
        if not found:
            continue
        issues.extend(found)
        recommendations.extend(rule.recommend(found, profile))
        LOGGER.debug("Rule %s emitted %d issues", rule.id, len(found))

    LOGGER.debug(
        "Rule engine: %d windows, %d issues, %d recommendations (profile=%s)",
        len(windows),
        len(issues),
        len(recommendations),
        profile.id,
    )
    return EngineResult(issues=issues, recommendations=recommendations)
