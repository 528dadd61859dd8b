from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

import yaml

from .config import LoggingConfig, load_config
from .json_utils import safe_json_dumps
from .log_io import read_decoded_log
from .pipeline import analyze_log
from .profiles import ANALYSIS_LEVEL_MULTIPLIERS, PROFILES, get_profile


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Analyse a decoded blackbox log for tuning and hardware issues"
    )
    parser.add_argument("input", type=Path, help="Decoded log file (.jsonl)")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    parser.add_argument(
        "--profile",
        choices=sorted(PROFILES),
        default=None,
        help="Quad profile (default: from config, else five_inch)",
    )
    parser.add_argument(
        "--level",
        choices=list(ANALYSIS_LEVEL_MULTIPLIERS),
        default=None,
        help="Analysis level scaling all thresholds",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Optional path to write the analysis result JSON",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: from config)")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except (ValueError, yaml.YAMLError) as exc:
        print(f"Error: invalid config: {exc}", file=sys.stderr)
        return 1
    logging.basicConfig(
        level=LoggingConfig(args.log_level).level if args.log_level else config.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.input.exists():
        print(f"Error: input file not found: {args.input}", file=sys.stderr)
        return 1
    try:
        decoded = read_decoded_log(args.input)
        profile = get_profile(args.profile) if args.profile else None
        result = analyze_log(
            decoded.frames, decoded.metadata, profile, args.level, config=config
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    summary = result.summary
    print(
        f"{args.input.name}: {summary.overall_health} "
        f"({summary.high_issue_count} high, {summary.medium_issue_count} medium, "
        f"{summary.low_issue_count} low) profile={result.profile_id}"
    )

    out_path = args.output
    if out_path is None and config.output.output_dir is not None:
        out_path = config.output.output_dir / f"{args.input.stem}_analysis.json"
    if out_path is not None:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(
            safe_json_dumps(result.to_dict(), indent=config.output.json_indent),
            encoding="utf-8",
        )
        print(f"wrote analysis: {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
