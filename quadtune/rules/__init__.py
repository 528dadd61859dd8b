"""Tuning rules package.

- :mod:`~quadtune.rules.base` — :class:`TuningRule`, window context and issue helpers.
- :mod:`~quadtune.rules.response` — setpoint-tracking and oscillation rules.
- :mod:`~quadtune.rules.noise` — gyro, D-term, electrical noise and filter mismatch rules.
- :mod:`~quadtune.rules.hardware` — motor-output and spectral-peak hardware rules.

:data:`ALL_RULES` is the registry the rule engine evaluates by default, in a
fixed order so repeated runs emit issues in the same order.
"""

from .base import TuningRule, WindowContext
from .hardware import (
    BearingNoiseRule,
    CgOffsetRule,
    EscDesyncRule,
    FrameResonanceRule,
    MotorImbalanceRule,
    MotorSaturationRule,
    VoltageSagRule,
)
from .noise import (
    DTermNoiseRule,
    ElectricalNoiseRule,
    FilterNoiseComparisonRule,
    GyroNoiseRule,
)
from .response import (
    BouncebackRule,
    HighThrottleOscillationRule,
    PropwashRule,
    TrackingQualityRule,
    WobbleRule,
)

ALL_RULES: tuple[TuningRule, ...] = (
    BouncebackRule(),
    PropwashRule(),
    WobbleRule(),
    MotorSaturationRule(),
    GyroNoiseRule(),
    DTermNoiseRule(),
    HighThrottleOscillationRule(),
    TrackingQualityRule(),
    FrameResonanceRule(),
    BearingNoiseRule(),
    MotorImbalanceRule(),
    ElectricalNoiseRule(),
    EscDesyncRule(),
    VoltageSagRule(),
    CgOffsetRule(),
    FilterNoiseComparisonRule(),
)

__all__ = [
    "ALL_RULES",
    "BearingNoiseRule",
    "BouncebackRule",
    "CgOffsetRule",
    "DTermNoiseRule",
    "ElectricalNoiseRule",
    "FilterNoiseComparisonRule",
    "EscDesyncRule",
    "FrameResonanceRule",
    "GyroNoiseRule",
    "HighThrottleOscillationRule",
    "MotorImbalanceRule",
    "MotorSaturationRule",
    "PropwashRule",
    "TrackingQualityRule",
    "TuningRule",
    "VoltageSagRule",
    "WindowContext",
    "WobbleRule",
]
