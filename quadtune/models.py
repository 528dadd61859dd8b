"""Domain model objects for quadtune.

Typed, immutable dataclasses for decoded telemetry (input) and for the
issues / recommendations produced by the analysis pipeline (output).  The
``to_dict`` methods emit the camelCase JSON shape consumed by front-ends.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, NamedTuple

MAX_DISPLAYED_OCCURRENCES = 5
"""Upper bound on ``DetectedIssue.occurrences`` after group collapse."""

# ---------------------------------------------------------------------------
# Lenient value parsers
# ---------------------------------------------------------------------------


def _as_float_or_none(value: object) -> float | None:
    if value in (None, ""):
        return None
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


def _as_float(value: object, default: float = 0.0) -> float:
    out = _as_float_or_none(value)
    return default if out is None else out


def _as_int_or_none(value: object) -> int | None:
    out = _as_float_or_none(value)
    if out is None:
        return None
    return int(round(out))


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Axis(StrEnum):
    """Rotational control axis."""

    ROLL = "roll"
    PITCH = "pitch"
    YAW = "yaw"

    @property
    def order(self) -> int:
        return AXIS_ORDER.index(self)


AXIS_ORDER: tuple[Axis, ...] = (Axis.ROLL, Axis.PITCH, Axis.YAW)


class Severity(StrEnum):
    """Issue severity.  Compare with :attr:`rank`, never with ``<`` on the str value."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def max(cls, *severities: Severity) -> Severity:
        return max(severities, key=lambda s: s.rank)


_SEVERITY_RANK: dict[Severity, int] = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class IssueType(StrEnum):
    BOUNCEBACK = "bounceback"
    PROPWASH = "propwash"
    MID_THROTTLE_WOBBLE = "midThrottleWobble"
    LOW_FREQUENCY_OSCILLATION = "lowFrequencyOscillation"
    MOTOR_SATURATION = "motorSaturation"
    GYRO_NOISE = "gyroNoise"
    DTERM_NOISE = "dtermNoise"
    HIGH_THROTTLE_OSCILLATION = "highThrottleOscillation"
    UNDERDAMPED = "underdamped"
    OVERDAMPED = "overdamped"
    CG_OFFSET = "cgOffset"
    MOTOR_IMBALANCE = "motorImbalance"
    BEARING_NOISE = "bearingNoise"
    FRAME_RESONANCE = "frameResonance"
    ELECTRICAL_NOISE = "electricalNoise"
    ESC_DESYNC = "escDesync"
    VOLTAGE_SAG = "voltageSag"
    FILTER_MISMATCH = "filterMismatch"


class FlightPhase(StrEnum):
    HOVER = "hover"
    CRUISE = "cruise"
    FLIP = "flip"
    ROLL = "roll"
    PUNCH = "punch"
    PROPWASH = "propwash"
    IDLE = "idle"
    UNKNOWN = "unknown"


class RecommendationType(StrEnum):
    INCREASE_PID = "increasePID"
    DECREASE_PID = "decreasePID"
    ADJUST_FILTERING = "adjustFiltering"
    ADJUST_DYNAMIC_IDLE = "adjustDynamicIdle"
    ADJUST_TPA = "adjustTPA"
    ADJUST_MASTER_MULTIPLIER = "adjustMasterMultiplier"
    HARDWARE_CHECK = "hardwareCheck"


class IssueKey(NamedTuple):
    """Grouping key for same-type, same-axis issues."""

    type: IssueType
    axis: Axis


# ---------------------------------------------------------------------------
# Telemetry input
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AxisValues:
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0

    def get(self, axis: Axis) -> float:
        return getattr(self, axis.value)

    @classmethod
    def from_any(cls, raw: Any) -> AxisValues:
        if isinstance(raw, dict):
            return cls(
                roll=_as_float(raw.get("roll")),
                pitch=_as_float(raw.get("pitch")),
                yaw=_as_float(raw.get("yaw")),
            )
        if isinstance(raw, (list, tuple)):
            padded = [*raw, 0.0, 0.0, 0.0][:3]
            return cls(*(_as_float(v) for v in padded))
        return cls()


@dataclass(frozen=True, slots=True)
class RcCommand:
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    throttle: float = 0.0

    def get(self, axis: Axis) -> float:
        return getattr(self, axis.value)

    @classmethod
    def from_any(cls, raw: Any) -> RcCommand:
        if isinstance(raw, dict):
            return cls(
                roll=_as_float(raw.get("roll")),
                pitch=_as_float(raw.get("pitch")),
                yaw=_as_float(raw.get("yaw")),
                throttle=_as_float(raw.get("throttle")),
            )
        if isinstance(raw, (list, tuple)):
            padded = [*raw, 0.0, 0.0, 0.0, 0.0][:4]
            return cls(*(_as_float(v) for v in padded))
        return cls()


@dataclass(frozen=True, slots=True)
class LogFrame:
    """One decoded blackbox sample.  Values are in Betaflight native units."""

    time: int
    gyro: AxisValues = AxisValues()
    setpoint: AxisValues = AxisValues()
    pid_p: AxisValues = AxisValues()
    pid_i: AxisValues = AxisValues()
    pid_d: AxisValues = AxisValues()
    motor: tuple[float, ...] = ()
    rc_command: RcCommand = RcCommand()
    throttle: float = 0.0
    loop_iteration: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogFrame:
        raw_motor = data.get("motor")
        motor = (
            tuple(_as_float(v) for v in raw_motor) if isinstance(raw_motor, (list, tuple)) else ()
        )
        return cls(
            time=_as_int_or_none(data.get("time")) or 0,
            gyro=AxisValues.from_any(data.get("gyroADC", data.get("gyro"))),
            setpoint=AxisValues.from_any(data.get("setpoint")),
            pid_p=AxisValues.from_any(data.get("pidP")),
            pid_i=AxisValues.from_any(data.get("pidI")),
            pid_d=AxisValues.from_any(data.get("pidD")),
            motor=motor,
            rc_command=RcCommand.from_any(data.get("rcCommand")),
            throttle=_as_float(data.get("throttle")),
            loop_iteration=_as_int_or_none(data.get("loopIteration")) or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        def axes(v: AxisValues) -> dict[str, float]:
            return {"roll": v.roll, "pitch": v.pitch, "yaw": v.yaw}

        return {
            "time": self.time,
            "loopIteration": self.loop_iteration,
            "gyroADC": axes(self.gyro),
            "setpoint": axes(self.setpoint),
            "pidP": axes(self.pid_p),
            "pidI": axes(self.pid_i),
            "pidD": axes(self.pid_d),
            "motor": list(self.motor),
            "rcCommand": {
                "roll": self.rc_command.roll,
                "pitch": self.rc_command.pitch,
                "yaw": self.rc_command.yaw,
                "throttle": self.rc_command.throttle,
            },
            "throttle": self.throttle,
        }


@dataclass(frozen=True, slots=True)
class PidProfile:
    roll_p: float | None = None
    roll_i: float | None = None
    roll_d: float | None = None
    pitch_p: float | None = None
    pitch_d: float | None = None
    dynamic_idle: float | None = None
    tpa_rate: float | None = None
    master_multiplier: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PidProfile:
        return cls(
            roll_p=_as_float_or_none(data.get("rollP")),
            roll_i=_as_float_or_none(data.get("rollI")),
            roll_d=_as_float_or_none(data.get("rollD")),
            pitch_p=_as_float_or_none(data.get("pitchP")),
            pitch_d=_as_float_or_none(data.get("pitchD")),
            dynamic_idle=_as_float_or_none(data.get("dynamicIdle")),
            tpa_rate=_as_float_or_none(data.get("tpaRate")),
            master_multiplier=_as_float_or_none(data.get("masterMultiplier")),
        )


@dataclass(frozen=True, slots=True)
class FilterSettings:
    gyro_lpf1_cutoff: float | None = None
    gyro_lpf2_cutoff: float | None = None
    dterm_lpf1_cutoff: float | None = None
    dynamic_notch_count: int | None = None
    rpm_filter_harmonics: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterSettings:
        return cls(
            gyro_lpf1_cutoff=_as_float_or_none(data.get("gyroLpf1Cutoff")),
            gyro_lpf2_cutoff=_as_float_or_none(data.get("gyroLpf2Cutoff")),
            dterm_lpf1_cutoff=_as_float_or_none(data.get("dtermLpf1Cutoff")),
            dynamic_notch_count=_as_int_or_none(data.get("dynamicNotchCount")),
            rpm_filter_harmonics=_as_int_or_none(data.get("rpmFilterHarmonics")),
        )


@dataclass(frozen=True, slots=True)
class LogMetadata:
    """Header metadata of a decoded log.  ``looptime`` is the PID loop rate in Hz."""

    looptime: float = 8000.0
    firmware_version: str = ""
    firmware_type: str = "Betaflight"
    gyro_rate: float = 8000.0
    motor_count: int = 4
    craft_name: str | None = None
    pid_profile: PidProfile | None = None
    filter_settings: FilterSettings | None = None
    frame_count: int = 0
    duration: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogMetadata:
        raw_pid = data.get("pidProfile")
        raw_filters = data.get("filterSettings")
        craft_name = data.get("craftName")
        return cls(
            looptime=_as_float_or_none(data.get("looptime")) or 8000.0,
            firmware_version=str(data.get("firmwareVersion") or ""),
            firmware_type=str(data.get("firmwareType") or "Betaflight"),
            gyro_rate=_as_float_or_none(data.get("gyroRate")) or 8000.0,
            motor_count=_as_int_or_none(data.get("motorCount")) or 4,
            craft_name=str(craft_name) if craft_name else None,
            pid_profile=PidProfile.from_dict(raw_pid) if isinstance(raw_pid, dict) else None,
            filter_settings=(
                FilterSettings.from_dict(raw_filters) if isinstance(raw_filters, dict) else None
            ),
            frame_count=_as_int_or_none(data.get("frameCount")) or 0,
            duration=_as_float(data.get("duration")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "looptime": self.looptime,
            "firmwareVersion": self.firmware_version,
            "firmwareType": self.firmware_type,
            "gyroRate": self.gyro_rate,
            "motorCount": self.motor_count,
            "frameCount": self.frame_count,
            "duration": self.duration,
        }
        if self.craft_name:
            out["craftName"] = self.craft_name
        if self.pid_profile is not None:
            pid = self.pid_profile
            out["pidProfile"] = {
                "rollP": pid.roll_p,
                "rollI": pid.roll_i,
                "rollD": pid.roll_d,
                "pitchP": pid.pitch_p,
                "pitchD": pid.pitch_d,
                "dynamicIdle": pid.dynamic_idle,
                "tpaRate": pid.tpa_rate,
                "masterMultiplier": pid.master_multiplier,
            }
        if self.filter_settings is not None:
            fs = self.filter_settings
            out["filterSettings"] = {
                "gyroLpf1Cutoff": fs.gyro_lpf1_cutoff,
                "gyroLpf2Cutoff": fs.gyro_lpf2_cutoff,
                "dtermLpf1Cutoff": fs.dterm_lpf1_cutoff,
                "dynamicNotchCount": fs.dynamic_notch_count,
                "rpmFilterHarmonics": fs.rpm_filter_harmonics,
            }
        return out


# ---------------------------------------------------------------------------
# Analysis windows
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WindowMetadata:
    avg_throttle: float
    max_setpoint: float
    rms_setpoint: float
    has_stick_input: bool
    flight_phase: FlightPhase


@dataclass(frozen=True, slots=True)
class AnalysisWindow:
    """A contiguous run of frames ``[start, stop)`` evaluated on one axis."""

    start_time: int
    end_time: int
    start: int
    stop: int
    axis: Axis
    metadata: WindowMetadata

    @property
    def size(self) -> int:
        return self.stop - self.start


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------

_METRIC_JSON_NAMES: dict[str, str] = {
    "frequency": "frequency",
    "amplitude": "amplitude",
    "overshoot": "overshoot",
    "settling_time": "settlingTime",
    "rms_error": "rmsError",
    "dterm_activity": "dtermActivity",
    "motor_saturation": "motorSaturation",
    "noise_floor": "noiseFloor",
    "peak_time": "peakTime",
    "normalized_error": "normalizedError",
    "amplitude_ratio": "amplitudeRatio",
    "signal_to_noise": "signalToNoise",
    "motor_index": "motorIndex",
    "current_cutoff_hz": "currentCutoffHz",
    "suggested_cutoff_hz": "suggestedCutoffHz",
    "filter_direction": "filterDirection",
}


@dataclass(frozen=True, slots=True)
class IssueMetrics:
    """Sparse detector metrics; ``None`` means the detector did not measure it."""

    frequency: float | None = None
    amplitude: float | None = None
    overshoot: float | None = None
    settling_time: float | None = None
    rms_error: float | None = None
    dterm_activity: float | None = None
    motor_saturation: float | None = None
    noise_floor: float | None = None
    peak_time: float | None = None
    normalized_error: float | None = None
    amplitude_ratio: float | None = None
    signal_to_noise: float | None = None
    motor_index: int | None = None
    current_cutoff_hz: float | None = None
    suggested_cutoff_hz: float | None = None
    filter_direction: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for attr, name in _METRIC_JSON_NAMES.items():
            value = getattr(self, attr)
            if value is not None:
                out[name] = value
        return out


@dataclass(frozen=True, slots=True)
class CrossAxisContext:
    pattern: str
    affected_axes: tuple[Axis, ...]
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern,
            "affectedAxes": [axis.value for axis in self.affected_axes],
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class DetectedIssue:
    id: str
    type: IssueType
    axis: Axis
    severity: Severity
    confidence: float
    time_range: tuple[int, int]
    description: str
    metrics: IssueMetrics = IssueMetrics()
    occurrences: tuple[tuple[int, int], ...] | None = None
    peak_times: tuple[float, ...] | None = None
    total_occurrences: int | None = None
    cross_axis_context: CrossAxisContext | None = None

    @property
    def key(self) -> IssueKey:
        return IssueKey(self.type, self.axis)

    @property
    def start(self) -> int:
        return self.time_range[0]

    @property
    def end(self) -> int:
        return self.time_range[1]

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "axis": self.axis.value,
            "timeRange": [self.time_range[0], self.time_range[1]],
            "description": self.description,
            "metrics": self.metrics.to_dict(),
            "confidence": self.confidence,
        }
        if self.occurrences is not None:
            out["occurrences"] = [[start, end] for start, end in self.occurrences]
        if self.peak_times is not None:
            out["peakTimes"] = list(self.peak_times)
        if self.total_occurrences is not None:
            out["totalOccurrences"] = self.total_occurrences
        if self.cross_axis_context is not None:
            out["crossAxisContext"] = self.cross_axis_context.to_dict()
        return out


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParameterChange:
    parameter: str
    recommended_change: str
    explanation: str
    axis: Axis | None = None
    current_value: float | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "parameter": self.parameter,
            "recommendedChange": self.recommended_change,
            "explanation": self.explanation,
        }
        if self.axis is not None:
            out["axis"] = self.axis.value
        if self.current_value is not None:
            out["currentValue"] = self.current_value
        return out


@dataclass(frozen=True, slots=True)
class Recommendation:
    id: str
    issue_id: str
    type: RecommendationType
    priority: int
    confidence: float
    title: str
    description: str
    rationale: str = ""
    risks: tuple[str, ...] = ()
    changes: tuple[ParameterChange, ...] = ()
    expected_improvement: str = ""
    related_issue_ids: tuple[str, ...] | None = None
    category: str = "software"

    def referenced_ids(self) -> tuple[str, ...]:
        return (self.issue_id, *(self.related_issue_ids or ()))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "issueId": self.issue_id,
            "type": self.type.value,
            "priority": self.priority,
            "confidence": self.confidence,
            "title": self.title,
            "description": self.description,
            "rationale": self.rationale,
            "risks": list(self.risks),
            "changes": [change.to_dict() for change in self.changes],
            "expectedImprovement": self.expected_improvement,
            "category": self.category,
        }
        if self.related_issue_ids is not None:
            out["relatedIssueIds"] = list(self.related_issue_ids)
        return out


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AnalysisSummary:
    overall_health: str
    high_issue_count: int
    medium_issue_count: int
    low_issue_count: int
    top_priorities: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "overallHealth": self.overall_health,
            "highIssueCount": self.high_issue_count,
            "mediumIssueCount": self.medium_issue_count,
            "lowIssueCount": self.low_issue_count,
            "topPriorities": list(self.top_priorities),
        }


@dataclass(frozen=True, slots=True)
class FlightSegment:
    id: str
    start_time: int
    end_time: int
    phase: FlightPhase
    description: str
    issue_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "phase": self.phase.value,
            "description": self.description,
            "issueCount": self.issue_count,
        }


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    issues: list[DetectedIssue]
    recommendations: list[Recommendation]
    summary: AnalysisSummary
    segments: list[FlightSegment] = field(default_factory=list)
    profile_id: str = ""
    level: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile": self.profile_id,
            "level": self.level,
            "summary": self.summary.to_dict(),
            "issues": [issue.to_dict() for issue in self.issues],
            "recommendations": [rec.to_dict() for rec in self.recommendations],
            "segments": [segment.to_dict() for segment in self.segments],
        }
