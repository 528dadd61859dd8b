from __future__ import annotations

import logging
from math import isfinite

from .profiles import ProfileThresholds

LOGGER = logging.getLogger(__name__)

THRESHOLD_KEYS: tuple[str, ...] = tuple(ProfileThresholds().as_dict())

# Scale factors outside this range would either flag every window or none.
_BOUNDS: tuple[float, float] = (0.05, 20.0)


def sanitize_threshold_overrides(payload: dict[str, object]) -> dict[str, float]:
    """Validate per-threshold overrides, dropping invalid values with logging.

    Unknown keys, non-numeric, non-finite and non-positive values are dropped.
    Values outside the supported range are clamped.
    """
    out: dict[str, float] = {}
    for key, raw in payload.items():
        if key not in THRESHOLD_KEYS:
            LOGGER.debug("Dropping unknown threshold override %s=%r", key, raw)
            continue
        if raw is None or isinstance(raw, bool):
            continue
        try:
            value = float(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            LOGGER.debug("Dropping non-numeric threshold override %s=%r", key, raw)
            continue
        if not isfinite(value):
            LOGGER.debug("Dropping non-finite threshold override %s=%r", key, raw)
            continue
        if value <= 0:
            LOGGER.debug("Dropping non-positive threshold override %s=%r", key, value)
            continue
        low, high = _BOUNDS
        clamped = min(high, max(low, value))
        if clamped != value:
            LOGGER.debug("Clamping threshold override %s=%r to %r", key, value, clamped)
        out[key] = clamped
    return out
