"""Exception taxonomy shared by every orchestration layer.

Stage work functions raise these; the stage runner converts them into a
definite failed :class:`~dtipipe.pipelines.types.StageResult` so a single
subject's failure never unwinds the multi-subject loop.
"""

from __future__ import annotations

from typing import Sequence


class DtipipeError(RuntimeError):
    """Base class for every error raised on purpose by dtipipe."""

    pass


class ConfigError(DtipipeError):
    """Raised when configuration or CLI values fail validation at startup."""

    pass


class PreconditionError(DtipipeError):
    """Raised when required inputs are missing or malformed.

    Preconditions are checked before any subprocess work starts.
    """

    pass


class ShapeMismatchError(PreconditionError):
    """Raised when registration inputs do not share a voxel grid."""

    pass


class ResourceError(DtipipeError):
    """Raised when a disk, memory or permission gate fails."""

    pass


class MigrationError(DtipipeError):
    """Raised when a verified storage transfer could not be completed."""

    pass


class ToolError(DtipipeError):
    """Raised when an external tool fails its success criterion.

    Attributes:
        tool: Logical tool name (``"eddy"``, ``"recon-all"`` …).
        returncode: Process exit status (``None`` when the tool never ran).
        output_tail: Last lines of the captured stdout/stderr.
    """

    def __init__(
        self,
        tool: str,
        message: str,
        *,
        returncode: int | None = None,
        output_tail: Sequence[str] = (),
    ) -> None:
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.returncode = returncode
        self.output_tail = list(output_tail)


__all__ = [
    "DtipipeError",
    "ConfigError",
    "PreconditionError",
    "ShapeMismatchError",
    "ResourceError",
    "MigrationError",
    "ToolError",
]
