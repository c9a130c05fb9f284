import json

from dtipipe.utils import interrupt
from dtipipe.utils.events import EVENTS_FILE, EventLog


def test_events_are_json_lines(tmp_path):
    """Verify each event is one JSON object with the standard keys."""
    ev = EventLog(tmp_path)
    ev.info("sub-001", "started")
    ev.warning("sub-001", "low disk", free_gb=3)
    ev.error(None, "run aborted")
    lines = (tmp_path / EVENTS_FILE).read_text().splitlines()
    assert len(lines) == 3
    first = json.loads(lines[0])
    assert set(first) >= {"ts", "level", "subject", "msg"}
    assert [json.loads(ln)["level"] for ln in lines] == ["INFO", "WARN", "ERROR"]
    assert json.loads(lines[1])["free_gb"] == 3


def test_timing_event(tmp_path):
    """Verify timing events carry the stage and duration."""
    ev = EventLog(tmp_path)
    rec = ev.timing("sub-001", "motion_correction", 12.3456)
    assert rec["level"] == "TIMING"
    assert rec["stage"] == "motion_correction"
    assert rec["duration_s"] == 12.346
    assert ev.read()[0]["stage"] == "motion_correction"


def test_reader_ignores_truncated_line(tmp_path):
    """Verify an interrupted final write does not break readers."""
    ev = EventLog(tmp_path)
    ev.info("sub-001", "ok")
    with open(tmp_path / EVENTS_FILE, "a") as fh:
        fh.write('{"ts": "2024-01-01", "lev')
    assert [e["msg"] for e in ev.read()] == ["ok"]


def test_progress_is_replaced_atomically(tmp_path):
    """Verify progress records are rewritten without leftovers."""
    ev = EventLog(tmp_path)
    assert ev.read_progress("sub-001") is None
    ev.write_progress("sub-001", stage="basic_preprocessing", state="running")
    ev.write_progress("sub-001", stage="basic_preprocessing", state="completed", note="x")
    rec = ev.read_progress("sub-001")
    assert rec["state"] == "completed" and rec["note"] == "x"
    assert [p.name for p in (tmp_path / "sub-001").iterdir()] == ["progress.json"]
    assert not interrupt._TEMP_PATHS


def test_event_after_torn_line_is_kept(tmp_path):
    """Verify a torn line neither corrupts the next event nor breaks reading."""
    ev = EventLog(tmp_path)
    ev.info("sub-001", "a")
    with open(tmp_path / EVENTS_FILE, "a") as fh:
        fh.write('{"ts": "x", "lev')
    ev.info("sub-001", "b")
    lines = (tmp_path / EVENTS_FILE).read_text().splitlines()
    assert lines[1] == '{"ts": "x", "lev'
    assert json.loads(lines[2])["msg"] == "b"
    assert [e["msg"] for e in ev.read()] == ["a", "b"]
