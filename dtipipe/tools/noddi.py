"""Wrapper for the NODDI microstructure fitting tool."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .base import Tool, ToolSpec

NODDI_MAPS = ("NDI", "ODI", "FWF")


@dataclass
class NoddiTool(Tool):
    """Fit NODDI; writes ``<out_dir>/<prefix>_{NDI,ODI,FWF}.nii.gz``."""

    exe: str
    dwi: Path
    bval: Path
    bvec: Path
    mask: Path
    out_dir: Path
    prefix: str
    threads: int = 1

    def outputs(self) -> dict[str, Path]:
        """Return parameter name → output map."""
        return {m: self.out_dir / f"{self.prefix}_{m}.nii.gz" for m in NODDI_MAPS}

    def build_spec(self) -> ToolSpec:  # type: ignore[override]
        """Return the native spec for the fit."""
        args = [
            self.exe,
            "--dwi",
            str(self.dwi),
            "--bval",
            str(self.bval),
            "--bvec",
            str(self.bvec),
            "--mask",
            str(self.mask),
            "--out-dir",
            str(self.out_dir),
            "--prefix",
            self.prefix,
            "--nthreads",
            str(max(1, self.threads)),
        ]
        return ToolSpec("noddi", args, list(self.outputs().values()))
