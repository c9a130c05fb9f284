"""Append-only per-subject checkpoint store.

Each completed stage appends one ``<token>\\t<iso-timestamp>`` line to
``<fast_root>/logs/<subject>/checkpoints.txt``.  A line is written with a
single ``write`` and fsynced.  A line torn by a crash is closed off before
the next append, and readers ignore an unterminated or malformed line.
"""

from __future__ import annotations

import datetime as _dt
import os
from pathlib import Path
from typing import List, Tuple

import structlog

log = structlog.get_logger()

CHECKPOINT_FILE = "checkpoints.txt"


def append_line(path: Path, line: bytes, *, sync: bool = False) -> None:
    """Append *line* to *path* with one ``write`` on an ``O_APPEND`` descriptor.

    When the file does not end in a newline (a previous writer died
    mid-line) a newline is written first so *line* starts on its own.

    Args:
        path: Target file, created when missing.
        line: Newline-terminated record.
        sync: ``fsync`` before closing.
    """
    fd = os.open(path, os.O_RDWR | os.O_APPEND | os.O_CREAT, 0o644)
    try:
        size = os.fstat(fd).st_size
        if size and os.pread(fd, 1, size - 1) != b"\n":
            line = b"\n" + line
        os.write(fd, line)
        if sync:
            os.fsync(fd)
    finally:
        os.close(fd)


class CheckpointStore:
    """Record and query completed stages.

    Args:
        root: Directory containing per-subject folders.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, subject: str) -> Path:
        return self.root / subject / CHECKPOINT_FILE

    def entries(self, subject: str) -> List[Tuple[str, str]]:
        """Return ``(token, timestamp)`` pairs in recording order."""
        path = self.path_for(subject)
        if not path.exists():
            return []
        text = path.read_text(encoding="utf-8")
        out: List[Tuple[str, str]] = []
        for line in text.split("\n")[:-1]:
            token, sep, ts = line.partition("\t")
            if not sep or not token.strip():
                if line.strip():
                    log.debug("checkpoint.malformed_line", subject=subject, line=line)
                continue
            out.append((token.strip(), ts.strip()))
        return out

    def tokens(self, subject: str) -> set[str]:
        return {tok for tok, _ in self.entries(subject)}

    def has(self, subject: str, token: str) -> bool:
        """Return ``True`` when *token* was recorded for *subject*."""
        return token in self.tokens(subject)

    def record(self, subject: str, token: str) -> None:
        """Append *token* for *subject* (re-recording is harmless)."""
        path = self.path_for(subject)
        path.parent.mkdir(parents=True, exist_ok=True)
        ts = _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="seconds")
        line = f"{token}\t{ts}\n".encode("utf-8")
        append_line(path, line, sync=True)
        log.info("checkpoint.recorded", subject=subject, stage=token)


__all__ = ["CheckpointStore", "CHECKPOINT_FILE", "append_line"]
