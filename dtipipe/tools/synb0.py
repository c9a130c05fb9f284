"""Container wrapper for synthetic undistorted b0 generation (Synb0-DisCo)."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .base import Tool, ToolSpec


@dataclass
class Synb0Config:
    """Configuration for the Synb0 container."""

    image: str = "leonyichencai/synb0-disco:v3.1"
    license_file: Path | None = None


class Synb0Tool(Tool):
    """Build a container spec producing ``OUTPUTS/b0_u.nii.gz``.

    The container expects ``b0.nii.gz``, ``T1.nii.gz`` and
    ``acqparams.txt`` inside the mounted ``INPUTS`` directory.
    """

    def __init__(self, cfg: Synb0Config, inputs_dir: Path, outputs_dir: Path):
        """Store configuration and mount points."""
        self.cfg = cfg
        self.inputs_dir = inputs_dir
        self.outputs_dir = outputs_dir

    def build_spec(self) -> ToolSpec:  # type: ignore[override]
        """Return the container spec (topup is run separately)."""
        vols = {
            str(self.inputs_dir): "/INPUTS:ro",
            str(self.outputs_dir): "/OUTPUTS",
        }
        if self.cfg.license_file is not None:
            vols[str(self.cfg.license_file)] = "/extra/freesurfer/license.txt:ro"
        return ToolSpec(
            "synb0",
            ["--notopup"],
            [self.outputs_dir / "b0_u.nii.gz"],
            {},
            image=self.cfg.image,
            volumes=vols,
        )
