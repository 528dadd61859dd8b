"""Decoded blackbox logs stored as JSON Lines.

The first ``log_metadata`` record carries the header; every ``frame`` record
is one telemetry sample in time order.  Other record types are ignored.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import LogFrame, LogMetadata

LOGGER = logging.getLogger(__name__)

__all__ = [
    "FRAME_TYPE",
    "LOG_METADATA_TYPE",
    "DecodedLog",
    "read_decoded_log",
    "write_decoded_log",
]

LOG_METADATA_TYPE = "log_metadata"
FRAME_TYPE = "frame"


@dataclass(slots=True)
class DecodedLog:
    metadata: LogMetadata
    frames: list[LogFrame]
    source_path: Path


def write_decoded_log(
    path: Path, metadata: LogMetadata, frames: Iterable[LogFrame]
) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write(_dumps({"record_type": LOG_METADATA_TYPE, **metadata.to_dict()}))
        f.write("\n")
        for frame in frames:
            f.write(_dumps({"record_type": FRAME_TYPE, **frame.to_dict()}))
            f.write("\n")


def _dumps(record: dict[str, Any]) -> str:
    return json.dumps(record, ensure_ascii=False, separators=(",", ":"))


def read_decoded_log(path: Path) -> DecodedLog:
    if not path.exists():
        raise FileNotFoundError(path)

    metadata: dict[str, Any] | None = None
    frames: list[LogFrame] = []
    skipped = 0
    with path.open("r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            text = line.strip()
            if not text:
                continue
            try:
                payload = json.loads(text)
            except json.JSONDecodeError as exc:
                LOGGER.warning("Skipping corrupt JSONL line %d in %s: %s", line_no, path, exc)
                skipped += 1
                continue
            if not isinstance(payload, dict):
                continue
            record_type = str(payload.get("record_type", ""))
            if record_type == LOG_METADATA_TYPE and metadata is None:
                metadata = payload
            elif record_type == FRAME_TYPE:
                frames.append(LogFrame.from_dict(payload))

    if skipped:
        LOGGER.warning("Skipped %d corrupt line(s) while reading %s", skipped, path)
    if metadata is None:
        raise ValueError(f"Log metadata missing in {path}")
    parsed = LogMetadata.from_dict(metadata)
    LOGGER.debug("Read %d frames from %s", len(frames), path)
    return DecodedLog(metadata=parsed, frames=_time_ordered(frames), source_path=path)


def _time_ordered(frames: Sequence[LogFrame]) -> list[LogFrame]:
    if all(a.time <= b.time for a, b in zip(frames, frames[1:])):
        return list(frames)
    LOGGER.warning("Frames out of time order; sorting %d frames by timestamp", len(frames))
    return sorted(frames, key=lambda frame: frame.time)
