"""Cut a decoded log into overlapping per-axis analysis windows.

Each window is classified into a :class:`~quadtune.models.FlightPhase` from
its throttle and stick activity so detectors can decide cheaply whether they
apply.
"""

from __future__ import annotations

import logging

import numpy as np

from ..models import AXIS_ORDER, AnalysisWindow, Axis, FlightPhase, LogMetadata, WindowMetadata
from ..processing.frames import FrameArrays
from ..processing.spectrum import rms

LOGGER = logging.getLogger(__name__)

WINDOW_DURATION_MS = 100
MIN_WINDOW_FRAMES = 50

# Below this max |setpoint| the log carries no real setpoint; fall back to rcCommand.
_SETPOINT_PRESENT_MIN = 5.0
_STICK_RMS_SETPOINT = 30.0
_STICK_RMS_RC_COMMAND = 10.0

_IDLE_THROTTLE = 1050.0
_HOVER_THROTTLE = 1300.0
_PUNCH_THROTTLE = 1700.0
_FLIP_SETPOINT = 400.0
_PROPWASH_THROTTLE_DROP = 80.0


def window_size_for(metadata: LogMetadata) -> int:
    return max(MIN_WINDOW_FRAMES, int(metadata.looptime * WINDOW_DURATION_MS // 1000))


def classify_flight_phase(
    avg_throttle: float,
    max_setpoint: float,
    has_stick_input: bool,
    max_throttle_drop: float,
    axis: Axis,
) -> FlightPhase:
    if avg_throttle < _IDLE_THROTTLE:
        return FlightPhase.IDLE
    if max_setpoint > _FLIP_SETPOINT:
        return FlightPhase.ROLL if axis is Axis.ROLL else FlightPhase.FLIP
    if avg_throttle > _PUNCH_THROTTLE and has_stick_input:
        return FlightPhase.PUNCH
    if max_throttle_drop > _PROPWASH_THROTTLE_DROP and not has_stick_input:
        return FlightPhase.PROPWASH
    if avg_throttle < _HOVER_THROTTLE:
        return FlightPhase.HOVER
    return FlightPhase.CRUISE


def _max_throttle_drop(throttle: np.ndarray) -> float:
    stride = max(1, throttle.size // 10)
    if throttle.size <= stride:
        return 0.0
    sampled = throttle[::stride]
    drops = sampled[:-1] - sampled[1:]
    return max(0.0, float(np.max(drops))) if drops.size else 0.0


def window_metadata(arrays: FrameArrays, start: int, stop: int, axis: Axis) -> WindowMetadata:
    throttle = arrays.throttle[start:stop]
    avg_throttle = float(np.mean(throttle))
    setpoint_abs = np.abs(arrays.setpoint[axis][start:stop])
    using_setpoint = float(np.max(setpoint_abs)) > _SETPOINT_PRESENT_MIN
    stick = setpoint_abs if using_setpoint else np.abs(arrays.rc_command[axis][start:stop])
    max_setpoint = float(np.max(stick))
    rms_setpoint = rms(stick)
    threshold = _STICK_RMS_SETPOINT if using_setpoint else _STICK_RMS_RC_COMMAND
    has_stick_input = rms_setpoint > threshold
    return WindowMetadata(
        avg_throttle=avg_throttle,
        max_setpoint=max_setpoint,
        rms_setpoint=rms_setpoint,
        has_stick_input=has_stick_input,
        flight_phase=classify_flight_phase(
            avg_throttle, max_setpoint, has_stick_input, _max_throttle_drop(throttle), axis
        ),
    )


def segment_log(arrays: FrameArrays, metadata: LogMetadata) -> list[AnalysisWindow]:
    """Return windows of ``max(50, looptime/10)`` frames at 50 % overlap, per axis."""
    size = window_size_for(metadata)
    step = max(1, size // 2)
    windows: list[AnalysisWindow] = []
    for axis in AXIS_ORDER:
        for start in range(0, arrays.size - size, step):
            stop = start + size
            windows.append(
                AnalysisWindow(
                    start_time=int(arrays.time[start]),
                    end_time=int(arrays.time[stop - 1]),
                    start=start,
                    stop=stop,
                    axis=axis,
                    metadata=window_metadata(arrays, start, stop, axis),
                )
            )
    LOGGER.debug("Segmented %d frames into %d windows (size=%d)", arrays.size, len(windows), size)
    return windows
