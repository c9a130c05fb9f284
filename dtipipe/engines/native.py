"""Native subprocess execution engine."""

from __future__ import annotations

import os
import subprocess
import time
from collections import deque
from pathlib import Path
from typing import List, Mapping, Sequence

import structlog

from .base import TIMEOUT_RETURNCODE, EngineResult, ExecutionEngine

log = structlog.get_logger()

# Children currently running; the interrupt handler terminates these.
_ACTIVE: "set[subprocess.Popen]" = set()


def active_processes() -> List[subprocess.Popen]:
    """Return a snapshot of child processes that have not exited yet."""
    return [p for p in _ACTIVE if p.poll() is None]


class NativeEngine(ExecutionEngine):
    """Run tools directly on the host."""

    def __init__(self, timeout_exe: str = "timeout", tail_lines: int = 200) -> None:
        """Configure the engine.

        Args:
            timeout_exe: Executable used to enforce per-call timeouts.
            tail_lines: Number of output lines retained for failure capture.
        """
        self.timeout_exe = timeout_exe
        self.tail_lines = tail_lines

    def wrap_timeout(self, cmd: Sequence[str], timeout: int | None) -> list[str]:
        """Return *cmd* prefixed with the timeout wrapper when requested."""
        cmd = [str(c) for c in cmd]
        if timeout is None:
            return cmd
        return [self.timeout_exe, "--kill-after=30", str(int(timeout)), *cmd]

    def run(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        timeout: int | None = None,
        image: str | None = None,
        volumes: Mapping[str, str] | None = None,
    ) -> EngineResult:
        """Execute *args*, streaming merged output into the debug log.

        Returns:
            :class:`EngineResult`; a missing executable yields return code
            127 instead of raising.
        """
        if image is not None:
            raise ValueError("NativeEngine cannot run container images")
        cmd = self.wrap_timeout(args, timeout)
        full_env = {**os.environ, **env} if env else None
        log.info("native.run", cmd=" ".join(cmd))

        tail: deque[str] = deque(maxlen=self.tail_lines)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                cwd=cwd,
                env=full_env,
            )
        except OSError as exc:
            log.error("native.launch_failed", cmd=cmd[0], error=str(exc))
            return EngineResult(127, [str(exc)], False, 0.0)

        _ACTIVE.add(proc)
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                line = line.rstrip("\n")
                tail.append(line)
                log.debug("native.output", line=line)
            rc = proc.wait()
        finally:
            _ACTIVE.discard(proc)

        duration = time.monotonic() - start
        timed_out = timeout is not None and rc == TIMEOUT_RETURNCODE
        if rc != 0:
            log.warning("native.failed", cmd=cmd[0], returncode=rc, timed_out=timed_out)
        return EngineResult(rc, list(tail), timed_out, duration)
