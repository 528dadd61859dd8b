"""End-to-end analysis: rule engine, de-duplication, cross-axis merge, summary."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .config import AppConfig
from .engine.dedup import deduplicate_with_remap
from .engine.frequency_merge import merge_frequency
from .engine.remap import remap_recommendations
from .engine.rule_engine import analyze
from .engine.summary import DEFAULT_SEGMENT_FRAMES, build_flight_segments, build_summary
from .models import AnalysisResult, LogFrame, LogMetadata
from .profiles import (
    DEFAULT_PROFILE,
    QuadProfile,
    apply_threshold_overrides,
    detect_quad_size,
    get_profile,
    scale_profile,
)

LOGGER = logging.getLogger(__name__)


def resolve_profile(
    metadata: LogMetadata,
    profile: QuadProfile | None,
    config: AppConfig | None,
) -> QuadProfile:
    """Explicit profile, else configured id, else auto-detected size, else the default."""
    if profile is not None:
        return profile
    if config is None:
        return DEFAULT_PROFILE
    if config.analysis.profile is not None:
        return get_profile(config.analysis.profile)
    if config.analysis.auto_detect_profile:
        detection = detect_quad_size(metadata)
        LOGGER.info(
            "Auto-detected quad size %s (confidence %.2f)",
            detection.suggested_size,
            detection.confidence,
        )
        return get_profile(detection.suggested_size)
    return DEFAULT_PROFILE


def analyze_log(
    frames: Sequence[LogFrame],
    metadata: LogMetadata,
    profile: QuadProfile | None = None,
    level: str | None = None,
    *,
    config: AppConfig | None = None,
) -> AnalysisResult:
    """Analyse one decoded log and return consolidated issues and recommendations.

    Every recommendation in the result references a surviving issue id.
    Recommendations are ordered by descending priority.
    """
    effective = resolve_profile(metadata, profile, config)
    if config is not None:
        effective = apply_threshold_overrides(effective, config.analysis.threshold_overrides)
        if level is None:
            level = config.analysis.level
    if level is not None:
        effective = scale_profile(effective, level)

    raw = analyze(frames, metadata, effective)
    issues, remap = deduplicate_with_remap(raw.issues)
    recommendations = remap_recommendations(raw.recommendations, remap)
    merged = merge_frequency(issues, recommendations)
    ranked = sorted(merged.updated_recommendations, key=lambda rec: -rec.priority)

    segment_size = (
        config.analysis.segment_size_frames if config is not None else DEFAULT_SEGMENT_FRAMES
    )
    LOGGER.info(
        "Analysed %d frames with profile %s: %d raw issues, %d after merge",
        len(frames),
        effective.id,
        len(raw.issues),
        len(merged.merged_issues),
    )
    return AnalysisResult(
        issues=merged.merged_issues,
        recommendations=ranked,
        summary=build_summary(merged.merged_issues, ranked),
        segments=build_flight_segments(frames, merged.merged_issues, segment_size),
        profile_id=effective.id,
        level=level,
    )
