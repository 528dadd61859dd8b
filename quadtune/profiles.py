"""Quad-size threshold presets, analysis-level scaling and size auto-detection.

A :class:`QuadProfile` carries one scale factor per detector family.  A
detector multiplies every threshold it compares against by that factor, so a
factor below 1.0 makes it more sensitive and a factor above 1.0 more tolerant.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields, replace

from .models import LogMetadata

LOGGER = logging.getLogger(__name__)

__all__ = [
    "ANALYSIS_LEVEL_MULTIPLIERS",
    "DEFAULT_PROFILE",
    "PROFILES",
    "QUAD_SIZE_ORDER",
    "ProfileThresholds",
    "QuadProfile",
    "QuadSizeDetection",
    "apply_threshold_overrides",
    "detect_quad_size",
    "get_profile",
    "scale_profile",
]


@dataclass(frozen=True, slots=True)
class ProfileThresholds:
    gyro_noise: float = 1.0
    dterm_noise: float = 1.0
    propwash_amplitude: float = 1.0
    bounceback_overshoot: float = 1.0
    wobble_amplitude: float = 1.0
    motor_saturation: float = 1.0
    tracking_error: float = 1.0
    high_throttle_oscillation: float = 1.0

    def scaled(self, multiplier: float) -> ProfileThresholds:
        return ProfileThresholds(
            **{f.name: getattr(self, f.name) * multiplier for f in fields(self)}
        )

    def as_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True, slots=True)
class QuadProfile:
    id: str
    label: str
    description: str
    thresholds: ProfileThresholds


PROFILES: dict[str, QuadProfile] = {
    "whoop": QuadProfile(
        id="whoop",
        label="Whoop",
        description="65-85mm brushless whoops (1S-2S)",
        thresholds=ProfileThresholds(
            gyro_noise=2.5,
            dterm_noise=2.0,
            propwash_amplitude=1.5,
            bounceback_overshoot=1.3,
            wobble_amplitude=1.3,
            motor_saturation=1.8,
            tracking_error=1.3,
            high_throttle_oscillation=1.5,
        ),
    ),
    "toothpick3": QuadProfile(
        id="toothpick3",
        label='3"',
        description="3 inch toothpicks and micro quads (2S-4S)",
        thresholds=ProfileThresholds(
            gyro_noise=1.5,
            dterm_noise=1.3,
            propwash_amplitude=1.2,
            bounceback_overshoot=1.1,
            wobble_amplitude=1.1,
            motor_saturation=1.3,
            tracking_error=1.1,
            high_throttle_oscillation=1.2,
        ),
    ),
    "five_inch": QuadProfile(
        id="five_inch",
        label='5"',
        description="5 inch freestyle and racing quads (4S-6S)",
        thresholds=ProfileThresholds(),
    ),
    "seven_inch": QuadProfile(
        id="seven_inch",
        label='7"',
        description="7 inch long-range quads (4S-6S)",
        thresholds=ProfileThresholds(
            gyro_noise=0.8,
            dterm_noise=0.9,
            propwash_amplitude=1.3,
            bounceback_overshoot=1.2,
            wobble_amplitude=1.2,
            motor_saturation=1.5,
            tracking_error=1.2,
            high_throttle_oscillation=1.3,
        ),
    ),
    "xclass": QuadProfile(
        id="xclass",
        label="X-Class",
        description="10 inch and larger heavy-lift frames",
        thresholds=ProfileThresholds(
            gyro_noise=0.7,
            dterm_noise=0.8,
            propwash_amplitude=1.5,
            bounceback_overshoot=1.4,
            wobble_amplitude=1.4,
            motor_saturation=2.0,
            tracking_error=1.4,
            high_throttle_oscillation=1.5,
        ),
    ),
}

QUAD_SIZE_ORDER: tuple[str, ...] = ("whoop", "toothpick3", "five_inch", "seven_inch", "xclass")

DEFAULT_PROFILE: QuadProfile = PROFILES["five_inch"]

# Lower multiplier -> stricter -> more sensitive.
ANALYSIS_LEVEL_MULTIPLIERS: dict[str, float] = {
    "basic": 4.0,
    "average": 1.25,
    "expert": 0.5,
}


def get_profile(profile_id: str) -> QuadProfile:
    try:
        return PROFILES[profile_id]
    except KeyError:
        raise ValueError(
            f"Unknown quad profile {profile_id!r}; expected one of {', '.join(QUAD_SIZE_ORDER)}"
        ) from None


def scale_profile(profile: QuadProfile, level: str) -> QuadProfile:
    """Return a derived profile whose thresholds are multiplied for *level*.

    The input profile is never modified.
    """
    multiplier = ANALYSIS_LEVEL_MULTIPLIERS.get(level)
    if multiplier is None:
        raise ValueError(
            f"Unknown analysis level {level!r}; expected one of "
            f"{', '.join(ANALYSIS_LEVEL_MULTIPLIERS)}"
        )
    return replace(
        profile,
        id=f"{profile.id}@{level}",
        thresholds=profile.thresholds.scaled(multiplier),
    )


def apply_threshold_overrides(profile: QuadProfile, overrides: dict[str, float]) -> QuadProfile:
    """Return *profile* with individual thresholds replaced by sanitized *overrides*."""
    if not overrides:
        return profile
    known = profile.thresholds.as_dict()
    applied = {k: v for k, v in overrides.items() if k in known}
    if not applied:
        return profile
    return replace(profile, thresholds=replace(profile.thresholds, **applied))


# ---------------------------------------------------------------------------
# Quad-size auto-detection
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class QuadSizeDetection:
    suggested_size: str
    confidence: float
    reasoning: tuple[str, ...]


_NAME_PATTERNS: tuple[tuple[str, re.Pattern[str], str], ...] = (
    ("whoop", re.compile(r"whoop|tiny|mob|meteor|65|75"), "whoop"),
    ("toothpick3", re.compile(r'tooth|3"|3 inch|micro|cinewhoop'), '3"'),
    ("five_inch", re.compile(r'5"|five|5 inch|freestyle|race|apex|source'), '5"'),
    ("seven_inch", re.compile(r'7"|seven|7 inch|long.?range|lr|chimera'), '7"'),
    ("xclass", re.compile(r'x.?class|10"|12"|heavy|lift'), "X-Class"),
)


def detect_quad_size(metadata: LogMetadata) -> QuadSizeDetection:
    """Suggest a quad-size profile from header metadata using a scoring heuristic.

    Falls back to ``five_inch`` with low confidence when no signal is found.
    Ties resolve to the first size in :data:`QUAD_SIZE_ORDER`.
    """
    scores = dict.fromkeys(QUAD_SIZE_ORDER, 0)
    reasoning: list[str] = []

    name = (metadata.craft_name or "").lower()
    if name:
        for size, pattern, label in _NAME_PATTERNS:
            if pattern.search(name):
                scores[size] += 3
                reasoning.append(f'Craft name "{metadata.craft_name}" matches {label} keywords')

    pid = metadata.pid_profile
    if pid is not None and pid.roll_p and pid.roll_d:
        d_to_p = pid.roll_d / pid.roll_p
        if d_to_p > 0.9:
            scores["whoop"] += 2
            reasoning.append(f"D:P ratio {d_to_p:.2f} is high (typical for whoops)")
        elif d_to_p > 0.7:
            scores["toothpick3"] += 1
            scores["five_inch"] += 1
        elif d_to_p < 0.45:
            scores["seven_inch"] += 1
            scores["xclass"] += 2
            reasoning.append(f"D:P ratio {d_to_p:.2f} is low (typical for large quads)")

    filters = metadata.filter_settings
    if filters is not None and filters.gyro_lpf1_cutoff:
        cutoff = filters.gyro_lpf1_cutoff
        if cutoff >= 300:
            scores["whoop"] += 1
            scores["toothpick3"] += 1
        elif cutoff <= 150:
            scores["seven_inch"] += 1
            scores["xclass"] += 1
            reasoning.append(f"Low gyro LPF1 cutoff ({cutoff:g} Hz) suggests larger quad")

    if metadata.looptime:
        if metadata.looptime <= 4000:
            scores["whoop"] += 1
        elif metadata.looptime >= 8000:
            scores["five_inch"] += 1

    if pid is not None and pid.dynamic_idle:
        if pid.dynamic_idle >= 40:
            scores["seven_inch"] += 1
            scores["xclass"] += 1
        elif pid.dynamic_idle <= 20:
            scores["whoop"] += 1

    best_size = "five_inch"
    best_score = 0
    for size in QUAD_SIZE_ORDER:
        if scores[size] > best_score:
            best_score = scores[size]
            best_size = size

    total = sum(scores.values())
    if total == 0:
        reasoning.append('No strong signals found, defaulting to 5"')
        return QuadSizeDetection("five_inch", 0.2, tuple(reasoning))

    confidence = min(0.95, 0.3 + (best_score / total) * 0.6 + best_score * 0.05)
    LOGGER.debug("Quad size scores %s -> %s (%.2f)", scores, best_size, confidence)
    return QuadSizeDetection(best_size, confidence, tuple(reasoning))
