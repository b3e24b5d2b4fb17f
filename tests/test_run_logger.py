import json
from pathlib import Path

import pytest

from source_minimizer import logging as run_logging


def test_run_logger_creates_files(tmp_path: Path):
    logger = run_logging.RunLogger(base_dir=tmp_path, run_id="demo")
    path = logger.log_json("statistics", {"passes": 3})
    run_dir = tmp_path / "demo"
    assert path == run_dir / "statistics.json"
    assert json.loads(path.read_text()) == {"passes": 3}


def test_run_logger_events_stream_to_file(tmp_path: Path):
    logger = run_logging.RunLogger(base_dir=tmp_path, run_id="demo2", stream=False)
    logger.log_event("pass.result", pass_number=1, outcome="progressed")
    events = (tmp_path / "demo2" / "events.ndjson").read_text().splitlines()
    assert events and "\"kind\":\"pass.result\"" in events[0]
    assert json.loads(events[0])["data"] == {"pass_number": 1, "outcome": "progressed"}


def test_run_logger_without_directory_writes_nothing(tmp_path: Path, capsys):
    logger = run_logging.RunLogger(stream=False)
    assert logger.path_for("statistics", "json") is None
    assert logger.log_json("statistics", {}) is None
    logger.log_event("commit", size=10)
    assert capsys.readouterr().out == ""
    assert list(tmp_path.iterdir()) == []


def test_run_logger_echoes_selected_fields(capsys):
    logger = run_logging.RunLogger(stream=True)
    logger.log_event("pass.result", pass_number=4, outcome="no-progress", cleanup=False)
    out = capsys.readouterr().out
    assert "pass.result pass_number=4 outcome=no-progress" in out
    assert "cleanup" not in out


def test_stream_can_be_enabled_from_environment(monkeypatch: pytest.MonkeyPatch, capsys):
    monkeypatch.setenv("SOURCE_MINIMIZER_LOG_STREAM", "yes")
    run_logging.RunLogger().log_event("commit", size=12)
    assert "commit size=12" in capsys.readouterr().out
