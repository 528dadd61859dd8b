"""Issue consolidation pipeline stages.

- :mod:`~quadtune.engine.segmenter` — overlapping per-axis analysis windows.
- :mod:`~quadtune.engine.rule_engine` — runs every rule over every window.
- :mod:`~quadtune.engine.dedup` — temporal merge and per-key group collapse.
- :mod:`~quadtune.engine.frequency_merge` — cross-axis same-frequency merge.
- :mod:`~quadtune.engine.remap` — recommendation id rewrite after merges.
- :mod:`~quadtune.engine.summary` — health summary and flight timeline.
"""

from .dedup import MERGE_GAP_US, deduplicate, deduplicate_with_remap
from .frequency_merge import (
    FREQUENCY_TOLERANCE,
    MERGEABLE_TYPES,
    FrequencyMergeResult,
    merge_frequency,
)
from .remap import remap_recommendations
from .rule_engine import EngineResult, analyze
from .segmenter import segment_log
from .summary import build_flight_segments, build_summary

__all__ = [
    "EngineResult",
    "FREQUENCY_TOLERANCE",
    "FrequencyMergeResult",
    "MERGEABLE_TYPES",
    "MERGE_GAP_US",
    "analyze",
    "build_flight_segments",
    "build_summary",
    "deduplicate",
    "deduplicate_with_remap",
    "merge_frequency",
    "remap_recommendations",
    "segment_log",
]
