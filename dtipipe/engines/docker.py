"""Docker execution engine."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence

import structlog

from .base import EngineResult, ExecutionEngine
from .native import NativeEngine

log = structlog.get_logger()


class DockerEngine(ExecutionEngine):
    """Run tools inside Docker containers."""

    def __init__(
        self,
        docker_exe: str = "docker",
        platform: str | None = None,
        native: NativeEngine | None = None,
    ) -> None:
        """Configure the engine.

        Args:
            docker_exe: Resolved ``docker`` executable.
            platform: Optional ``docker --platform`` value.
            native: Engine used to launch the ``docker`` client process.
        """
        self.docker_exe = docker_exe
        self.platform = platform
        self.native = native or NativeEngine()

    def build_command(
        self,
        image: str,
        args: Sequence[str],
        *,
        volumes: Mapping[str, str],
        env: Mapping[str, str],
    ) -> list[str]:
        """Return the ``docker run`` command vector."""
        cmd: list[str] = [self.docker_exe, "run", "--rm"]
        if self.platform:
            cmd += ["--platform", self.platform]
        for host, guest in volumes.items():
            cmd += ["-v", f"{host}:{guest}"]
        for key, value in env.items():
            cmd += ["-e", f"{key}={value}"]
        cmd.append(image)
        cmd.extend(str(a) for a in args)
        return cmd

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
        """Execute *image* while propagating mounts and environment data.

        Raises:
            ValueError: When no image is given.
        """
        if image is None:
            raise ValueError("DockerEngine requires an image")
        cmd = self.build_command(image, args, volumes=volumes or {}, env=env or {})
        log.info("docker.run", image=image, args=list(args))
        result = self.native.run(cmd, cwd=cwd, timeout=timeout)
        if not result.ok:
            log.error("docker.failed", image=image, returncode=result.returncode)
        return result
