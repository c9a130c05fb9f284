"""Progress and event log.

Two artefacts live under ``<fast_root>/logs``:

* ``pipeline_events.jsonl`` – one JSON object per line with the keys
  ``ts``, ``level``, ``subject`` and ``msg``.  ``TIMING`` events add
  ``stage`` and ``duration_s``.  Each line is emitted with one ``write`` on
  an ``O_APPEND`` descriptor and starts on a fresh line even after a torn
  write; readers skip lines that do not parse.
* ``<subject>/progress.json`` – current stage and state, replaced
  atomically.
"""

from __future__ import annotations

import datetime as _dt
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import structlog

from .checkpoint import append_line
from .interrupt import register_temp, release_temp

log = structlog.get_logger()

EVENTS_FILE = "pipeline_events.jsonl"
PROGRESS_FILE = "progress.json"


def _now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


class EventLog:
    """Append structured events and maintain per-subject progress records.

    Args:
        log_root: Directory holding the event stream and subject folders.
    """

    def __init__(self, log_root: Path) -> None:
        self.log_root = Path(log_root)
        self.path = self.log_root / EVENTS_FILE

    # ------------------------------------------------------------------ #
    # Event stream                                                       #
    # ------------------------------------------------------------------ #
    def emit(self, level: str, subject: Optional[str], msg: str, **extra: Any) -> Dict[str, Any]:
        """Append one event and return the written record."""
        record: Dict[str, Any] = {"ts": _now(), "level": level, "subject": subject, "msg": msg}
        record.update(extra)
        line = (json.dumps(record, default=str) + "\n").encode("utf-8")
        self.log_root.mkdir(parents=True, exist_ok=True)
        append_line(self.path, line)
        return record

    def info(self, subject: Optional[str], msg: str, **extra: Any) -> Dict[str, Any]:
        return self.emit("INFO", subject, msg, **extra)

    def warning(self, subject: Optional[str], msg: str, **extra: Any) -> Dict[str, Any]:
        return self.emit("WARN", subject, msg, **extra)

    def error(self, subject: Optional[str], msg: str, **extra: Any) -> Dict[str, Any]:
        return self.emit("ERROR", subject, msg, **extra)

    def timing(self, subject: str, stage: str, duration_s: float) -> Dict[str, Any]:
        """Append a ``TIMING`` event for a finished stage."""
        return self.emit(
            "TIMING",
            subject,
            f"{stage} finished in {duration_s:.1f}s",
            stage=stage,
            duration_s=round(duration_s, 3),
        )

    def read(self) -> List[Dict[str, Any]]:
        """Return every complete event; torn or unterminated lines are skipped."""
        return list(self._iter())

    def _iter(self) -> Iterator[Dict[str, Any]]:
        if not self.path.exists():
            return
        text = self.path.read_text(encoding="utf-8")
        for lineno, line in enumerate(text.split("\n")[:-1], start=1):
            if not line.strip():
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                log.warning("events.malformed_line", path=str(self.path), line=lineno)

    # ------------------------------------------------------------------ #
    # Progress record                                                    #
    # ------------------------------------------------------------------ #
    def progress_path(self, subject: str) -> Path:
        return self.log_root / subject / PROGRESS_FILE

    def write_progress(self, subject: str, *, stage: Optional[str], state: str, **extra: Any) -> None:
        """Atomically replace the progress record of *subject*."""
        path = self.progress_path(subject)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"subject": subject, "stage": stage, "state": state, "updated": _now()}
        payload.update(extra)
        tmp = path.with_name(path.name + f".{os.getpid()}.tmp")
        register_temp(tmp)
        try:
            tmp.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
            os.replace(tmp, path)
        finally:
            release_temp(tmp)

    def read_progress(self, subject: str) -> Optional[Dict[str, Any]]:
        path = self.progress_path(subject)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))


__all__ = ["EventLog", "EVENTS_FILE", "PROGRESS_FILE"]
