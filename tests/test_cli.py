from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from builders import hover_frames, make_metadata, noisy_frames

from quadtune.cli import main
from quadtune.log_io import FRAME_TYPE, write_decoded_log


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep a stray quadtune.yaml in the working directory out of the tests.
    monkeypatch.chdir(tmp_path)


def _write_log(path: Path, frames=None) -> Path:
    write_decoded_log(path, make_metadata(), hover_frames() if frames is None else frames)
    return path


class TestMain:
    @pytest.mark.smoke
    def test_quiet_log_prints_summary(self, tmp_path: Path, capsys) -> None:
        log_path = _write_log(tmp_path / "quiet.jsonl")
        assert main([str(log_path)]) == 0
        out = capsys.readouterr().out
        assert "quiet.jsonl: excellent (0 high, 0 medium, 0 low) profile=five_inch" in out
        assert "wrote analysis" not in out

    def test_writes_result_to_output(self, tmp_path: Path, capsys) -> None:
        log_path = _write_log(tmp_path / "noisy.jsonl", noisy_frames())
        out_path = tmp_path / "reports" / "noisy.json"
        rc = main([str(log_path), "--output", str(out_path), "--level", "expert"])
        assert rc == 0
        assert f"wrote analysis: {out_path}" in capsys.readouterr().out
        payload = json.loads(out_path.read_text(encoding="utf-8"))
        assert payload["profile"] == "five_inch@expert"
        assert payload["issues"]
        assert payload["summary"]["overallHealth"] != "excellent"

    def test_output_dir_from_config(self, tmp_path: Path) -> None:
        log_path = _write_log(tmp_path / "flight.jsonl")
        config_path = tmp_path / "cfg" / "quadtune.yaml"
        config_path.parent.mkdir()
        config_path.write_text(
            yaml.safe_dump({"output": {"output_dir": "out", "json_indent": 0}}),
            encoding="utf-8",
        )
        assert main([str(log_path), "--config", str(config_path)]) == 0
        assert (tmp_path / "cfg" / "out" / "flight_analysis.json").exists()

    def test_profile_flag(self, tmp_path: Path, capsys) -> None:
        log_path = _write_log(tmp_path / "flight.jsonl")
        assert main([str(log_path), "--profile", "whoop"]) == 0
        assert "profile=whoop" in capsys.readouterr().out


class TestMainErrors:
    def test_missing_input(self, tmp_path: Path, capsys) -> None:
        assert main([str(tmp_path / "missing.jsonl")]) == 1
        assert "Error: input file not found" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path: Path, capsys) -> None:
        log_path = _write_log(tmp_path / "flight.jsonl")
        config_path = tmp_path / "bad.yaml"
        config_path.write_text(yaml.safe_dump({"analysis": {"profile": "nine_inch"}}))
        assert main([str(log_path), "--config", str(config_path)]) == 1
        assert "Error: invalid config" in capsys.readouterr().err

    def test_log_without_metadata(self, tmp_path: Path, capsys) -> None:
        log_path = tmp_path / "headless.jsonl"
        log_path.write_text(json.dumps({"record_type": FRAME_TYPE, "time": 0}) + "\n")
        assert main([str(log_path)]) == 1
        assert "Log metadata missing" in capsys.readouterr().err

    def test_unknown_profile_choice_exits(self, tmp_path: Path) -> None:
        log_path = _write_log(tmp_path / "flight.jsonl")
        with pytest.raises(SystemExit):
            main([str(log_path), "--profile", "nine_inch"])
