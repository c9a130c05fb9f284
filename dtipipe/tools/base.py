"""Base classes for external tool wrappers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Sequence

import structlog

from dtipipe.engines import EngineResult, ExecutionEngine
from dtipipe.utils.errors import ToolError

log = structlog.get_logger()


@dataclass
class ToolSpec:
    """Specification returned by :meth:`Tool.build_spec`.

    Attributes mirror the arguments of :meth:`ExecutionEngine.run`, plus the
    files whose existence defines success.
    """

    name: str
    args: Sequence[str]
    outputs: Sequence[Path] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: int | None = None
    image: str | None = None
    volumes: Mapping[str, str] = field(default_factory=dict)
    cwd: Path | None = None


class Tool:
    """Base class for wrappers around external utilities."""

    def execute(self, runner: "ToolRunner") -> EngineResult:
        """Build a :class:`ToolSpec` and execute it with *runner*."""
        return runner.run(self.build_spec())

    def build_spec(self) -> ToolSpec:
        """Return a :class:`ToolSpec` describing how to run this tool."""
        raise NotImplementedError


@dataclass
class CommandTool(Tool):
    """Run an arbitrary command with declared outputs."""

    name: str
    command: Sequence[str | Path]
    outputs: Sequence[Path] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: int | None = None

    def build_spec(self) -> ToolSpec:  # type: ignore[override]
        """Return the native ToolSpec for the configured command."""
        return ToolSpec(
            self.name,
            [str(c) for c in self.command],
            list(self.outputs),
            self.env,
            self.timeout,
        )


def thread_env(threads: int) -> dict[str, str]:
    """Return environment variables that cap tool-internal parallelism."""
    n = str(max(1, threads))
    return {
        "OMP_NUM_THREADS": n,
        "ITK_GLOBAL_DEFAULT_NUMBER_OF_THREADS": n,
        "MRTRIX_NTHREADS": n,
        "FS_OMP_NUM_THREADS": n,
        "OPENBLAS_NUM_THREADS": "1",
        "MKL_NUM_THREADS": "1",
    }


class ToolRunner:
    """Dispatch :class:`ToolSpec` objects to an engine and enforce success.

    A spec succeeds when the process exits with status 0 **and** every
    declared output exists.  All captured output is appended to
    :attr:`transcript` so the stage runner can persist a failure snippet.
    """

    def __init__(
        self,
        native: ExecutionEngine,
        container: ExecutionEngine | None = None,
        *,
        threads: int = 1,
    ) -> None:
        self.native = native
        self.container = container
        self.threads = threads
        self.transcript: List[str] = []

    def reset_transcript(self) -> None:
        """Start a fresh transcript (called at every stage boundary)."""
        self.transcript = []

    def run(self, spec: ToolSpec, *, allow_timeout: bool = False) -> EngineResult:
        """Execute *spec*.

        Args:
            spec: Tool specification.
            allow_timeout: Return a timed-out result instead of raising so the
                caller can fall back to an unmodified input.

        Returns:
            The :class:`EngineResult` of a successful run (or a timed-out one
            when *allow_timeout* is set).

        Raises:
            ToolError: Non-zero exit, timeout, or missing expected output.
        """
        if spec.image is not None:
            if self.container is None:
                raise ToolError(spec.name, "no container engine configured")
            engine = self.container
        else:
            engine = self.native

        env = {**thread_env(self.threads), **spec.env}
        self.transcript.append("$ " + " ".join(str(a) for a in spec.args))
        result = engine.run(
            spec.args,
            env=env,
            cwd=spec.cwd,
            timeout=spec.timeout,
            image=spec.image,
            volumes=spec.volumes,
        )
        self.transcript.extend(result.output)

        if result.timed_out:
            log.warning("tool.timeout", tool=spec.name, timeout=spec.timeout)
            if allow_timeout:
                return result
            raise ToolError(
                spec.name,
                f"timed out after {spec.timeout}s",
                returncode=result.returncode,
                output_tail=result.output,
            )
        if not result.ok:
            raise ToolError(
                spec.name,
                f"exited with status {result.returncode}",
                returncode=result.returncode,
                output_tail=result.output,
            )
        missing = [p for p in spec.outputs if not Path(p).exists()]
        if missing:
            msg = "expected output missing: " + ", ".join(str(p) for p in missing)
            self.transcript.append(msg)
            raise ToolError(spec.name, msg, returncode=0, output_tail=result.output)
        log.debug("tool.ok", tool=spec.name, duration_s=round(result.duration_s, 2))
        return result
