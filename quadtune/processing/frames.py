"""Columnar numpy view over a decoded frame sequence.

Detectors slice these arrays by window bounds instead of walking frame
objects, so the per-window cost stays a handful of vectorised operations.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ..models import AXIS_ORDER, Axis, LogFrame


@dataclass(frozen=True, slots=True)
class FrameArrays:
    time: np.ndarray
    throttle: np.ndarray
    gyro: dict[Axis, np.ndarray]
    setpoint: dict[Axis, np.ndarray]
    rc_command: dict[Axis, np.ndarray]
    pid_p: dict[Axis, np.ndarray]
    pid_d: dict[Axis, np.ndarray]
    motor: np.ndarray
    """``(n_frames, n_motors)``; zero columns when no motor data was logged."""

    @property
    def size(self) -> int:
        return int(self.time.size)

    @property
    def motor_count(self) -> int:
        return int(self.motor.shape[1]) if self.motor.ndim == 2 else 0

    @classmethod
    def from_frames(cls, frames: Sequence[LogFrame]) -> FrameArrays:
        n = len(frames)
        motor_count = max((len(f.motor) for f in frames), default=0)
        motor = np.zeros((n, motor_count), dtype=np.float64)
        for row, frame in enumerate(frames):
            if frame.motor:
                motor[row, : len(frame.motor)] = frame.motor

        def per_axis(getter) -> dict[Axis, np.ndarray]:
            return {
                axis: np.fromiter((getter(f).get(axis) for f in frames), dtype=np.float64, count=n)
                for axis in AXIS_ORDER
            }

        return cls(
            time=np.fromiter((f.time for f in frames), dtype=np.int64, count=n),
            throttle=np.fromiter((f.throttle for f in frames), dtype=np.float64, count=n),
            gyro=per_axis(lambda f: f.gyro),
            setpoint=per_axis(lambda f: f.setpoint),
            rc_command=per_axis(lambda f: f.rc_command),
            pid_p=per_axis(lambda f: f.pid_p),
            pid_d=per_axis(lambda f: f.pid_d),
            motor=motor,
        )
