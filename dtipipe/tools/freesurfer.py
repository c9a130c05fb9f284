"""Wrapper for FreeSurfer ``recon-all``."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .base import Tool, ToolSpec

# Files whose presence proves a reconstruction is usable downstream.
RECON_CRITICAL = (
    Path("mri") / "aparc+aseg.mgz",
    Path("mri") / "brain.mgz",
    Path("surf") / "lh.white",
    Path("surf") / "rh.white",
)


@dataclass
class ReconAllTool(Tool):
    """Full cortical reconstruction of one subject (multi-hour)."""

    exe: str
    subject: str
    t1: Path
    subjects_dir: Path
    threads: int = 1
    license_file: Path | None = None

    def build_spec(self) -> ToolSpec:  # type: ignore[override]
        """Return the native spec; outputs are the critical recon files."""
        env = {"SUBJECTS_DIR": str(self.subjects_dir)}
        if self.license_file is not None:
            env["FS_LICENSE"] = str(self.license_file)
        args = [
            self.exe,
            "-s",
            self.subject,
            "-i",
            str(self.t1),
            "-all",
            "-sd",
            str(self.subjects_dir),
            "-openmp",
            str(max(1, self.threads)),
        ]
        outputs = [self.subjects_dir / self.subject / rel for rel in RECON_CRITICAL]
        return ToolSpec("recon-all", args, outputs, env)
