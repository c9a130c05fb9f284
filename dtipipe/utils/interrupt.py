"""Operator-interrupt handling.

On ``SIGINT``/``SIGTERM`` the handler terminates running children, kills
stray long-running tools by name pattern, removes registered temporary
files and exits with ``128 + signum``.  A subject interrupted mid-stage has
no checkpoint for that stage and is treated as not yet done next time.
"""

from __future__ import annotations

import signal
import subprocess
import sys
from pathlib import Path
from typing import Iterable, Sequence

import structlog

log = structlog.get_logger()

# Temporary files removed on interrupt.
_TEMP_PATHS: "set[Path]" = set()


def register_temp(path: Path) -> None:
    """Track *path* for removal if the run is interrupted."""
    _TEMP_PATHS.add(Path(path))


def release_temp(path: Path) -> None:
    """Stop tracking *path*."""
    _TEMP_PATHS.discard(Path(path))


def remove_temp_files() -> int:
    """Delete every tracked temporary file and return how many were removed."""
    removed = 0
    for path in list(_TEMP_PATHS):
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            pass
        except OSError as exc:
            log.warning("interrupt.temp_remove_failed", path=str(path), error=str(exc))
        _TEMP_PATHS.discard(path)
    return removed


def exit_code_for(signum: int) -> int:
    """Return the conventional shell status for death by *signum*."""
    return 128 + int(signum)


class InterruptHandler:
    """Install signal handlers that clean up before exiting.

    Args:
        kill_patterns: ``pkill -f`` patterns for stray tool processes.
        pkill_exe: Executable used for pattern kills.
    """

    def __init__(self, kill_patterns: Sequence[str] = (), *, pkill_exe: str = "pkill") -> None:
        self.kill_patterns = tuple(kill_patterns)
        self.pkill_exe = pkill_exe
        self._previous: dict[int, object] = {}

    def install(self, signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM)) -> None:
        for sig in signals:
            self._previous[sig] = signal.signal(sig, self._handle)

    def uninstall(self) -> None:
        for sig, prev in self._previous.items():
            signal.signal(sig, prev)
        self._previous.clear()

    def cleanup(self) -> None:
        """Terminate children, pattern-kill tools and remove temp files."""
        from dtipipe.engines.native import active_processes

        for proc in active_processes():
            log.warning("interrupt.terminate", pid=proc.pid)
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
        for pattern in self.kill_patterns:
            try:
                subprocess.run(
                    [self.pkill_exe, "-f", pattern],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    check=False,
                )
            except OSError as exc:
                log.warning("interrupt.pkill_failed", pattern=pattern, error=str(exc))
        removed = remove_temp_files()
        log.info("interrupt.cleanup_done", temp_removed=removed)

    def _handle(self, signum, frame) -> None:  # noqa: ARG002
        log.error("interrupt.received", signal=signal.Signals(signum).name)
        try:
            self.cleanup()
        finally:
            sys.exit(exit_code_for(signum))


__all__ = [
    "InterruptHandler",
    "register_temp",
    "release_temp",
    "remove_temp_files",
    "exit_code_for",
]
