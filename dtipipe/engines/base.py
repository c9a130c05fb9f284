"""Execution back-ends for running external tools."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Sequence

# GNU coreutils ``timeout`` exits with 124 when the limit is hit.
TIMEOUT_RETURNCODE = 124


@dataclass
class EngineResult:
    """Outcome of a single process execution.

    Attributes:
        returncode: Process exit status.
        output: Tail of the merged stdout/stderr stream.
        timed_out: ``True`` when the timeout wrapper terminated the process.
        duration_s: Wall-clock runtime.
    """

    returncode: int
    output: List[str] = field(default_factory=list)
    timed_out: bool = False
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        """Return ``True`` for a zero exit status."""
        return self.returncode == 0


class ExecutionEngine(ABC):
    """Abstract execution engine.

    Concrete implementations launch processes (native subprocesses, Docker
    containers) that run external neuroimaging tools.  Every call blocks
    until the process exits.
    """

    @abstractmethod
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
        """Run *args* and wait for completion.

        Args:
            args: Command vector (executable first for native runs,
                container arguments for container runs).
            env: Extra environment variables for the process.
            cwd: Working directory.
            timeout: Optional limit in seconds enforced by a wrapper.
            image: Container image identifier (container engines only).
            volumes: Mapping of host paths → guest mount points.

        Returns:
            :class:`EngineResult` describing the execution.
        """
        raise NotImplementedError
