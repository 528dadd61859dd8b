from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .profiles import ANALYSIS_LEVEL_MULTIPLIERS, PROFILES
from .threshold_settings import sanitize_threshold_overrides

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("quadtune.yaml")
VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_CONFIG: dict[str, Any] = {
    "analysis": {
        "profile": None,
        "level": None,
        "auto_detect_profile": False,
        "threshold_overrides": {},
        "segment_size_frames": 1000,
    },
    "output": {
        "json_indent": 2,
        "output_dir": None,
    },
    "logging": {
        "level": "INFO",
    },
}


def documented_default_config() -> dict[str, Any]:
    """Return runtime defaults in the shape documented by quadtune.example.yaml."""
    return deepcopy(DEFAULT_CONFIG)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve_config_path(path_text: str, config_path: Path) -> Path:
    path = Path(path_text)
    if path.is_absolute():
        return path
    return config_path.resolve().parent / path


@dataclass(slots=True)
class AnalysisConfig:
    profile: str | None
    level: str | None
    auto_detect_profile: bool
    threshold_overrides: dict[str, float] = field(default_factory=dict)
    segment_size_frames: int = 1000

    def __post_init__(self) -> None:
        if self.profile is not None and self.profile not in PROFILES:
            raise ValueError(
                f"analysis.profile must be one of {sorted(PROFILES)}, got {self.profile!r}"
            )
        if self.level is not None and self.level not in ANALYSIS_LEVEL_MULTIPLIERS:
            raise ValueError(
                f"analysis.level must be one of {list(ANALYSIS_LEVEL_MULTIPLIERS)}, "
                f"got {self.level!r}"
            )
        if self.segment_size_frames < 10:
            LOGGER.warning(
                "analysis.segment_size_frames=%s is below minimum 10, clamped to 10",
                self.segment_size_frames,
            )
            self.segment_size_frames = 10


@dataclass(slots=True)
class OutputConfig:
    json_indent: int | None
    output_dir: Path | None

    def __post_init__(self) -> None:
        if self.json_indent is not None and self.json_indent < 0:
            LOGGER.warning("output.json_indent=%s is negative, clamped to 0", self.json_indent)
            self.json_indent = 0


@dataclass(slots=True)
class LoggingConfig:
    level: str

    def __post_init__(self) -> None:
        normalized = str(self.level).upper()
        if normalized not in VALID_LOG_LEVELS:
            LOGGER.warning("logging.level=%r is not a valid level, using INFO", self.level)
            normalized = "INFO"
        self.level = normalized


@dataclass(slots=True)
class AppConfig:
    analysis: AnalysisConfig
    output: OutputConfig
    logging: LoggingConfig
    config_path: Path | None = None


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML object at the top level.")
        return data


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_config(config_path: Path | None = None) -> AppConfig:
    path = (config_path or DEFAULT_CONFIG_PATH).resolve()
    override = _read_config_file(path)
    merged = _deep_merge(DEFAULT_CONFIG, override)

    for section in ("analysis", "output", "logging"):
        if not isinstance(merged.get(section), dict):
            raise ValueError(f"{section} must be a YAML mapping, got {merged.get(section)!r}")

    analysis_cfg = merged["analysis"]
    raw_overrides = analysis_cfg.get("threshold_overrides") or {}
    if not isinstance(raw_overrides, dict):
        raise ValueError(
            f"analysis.threshold_overrides must be a mapping, got {type(raw_overrides).__name__}"
        )

    output_cfg = merged["output"]
    output_dir_raw = _optional_str(output_cfg.get("output_dir"))
    indent_raw = output_cfg.get("json_indent")

    app_config = AppConfig(
        analysis=AnalysisConfig(
            profile=_optional_str(analysis_cfg.get("profile")),
            level=_optional_str(analysis_cfg.get("level")),
            auto_detect_profile=bool(analysis_cfg.get("auto_detect_profile", False)),
            threshold_overrides=sanitize_threshold_overrides(raw_overrides),
            segment_size_frames=int(analysis_cfg.get("segment_size_frames", 1000)),
        ),
        output=OutputConfig(
            json_indent=int(indent_raw) if indent_raw is not None else None,
            output_dir=_resolve_config_path(output_dir_raw, path) if output_dir_raw else None,
        ),
        logging=LoggingConfig(level=str(merged["logging"].get("level", "INFO"))),
        config_path=path if path.exists() else None,
    )
    LOGGER.info(
        "Loaded config=%s profile=%s level=%s",
        path if path.exists() else "<defaults>",
        app_config.analysis.profile,
        app_config.analysis.level,
    )
    return app_config
