"""Builders for MRtrix3 command-line tools."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from .base import CommandTool


def _grad(bvec: Path, bval: Path) -> list:
    """Return the ``-fslgrad`` option pair."""
    return ["-fslgrad", bvec, bval]


def dwidenoise(exe: str, in_file: Path, out_file: Path, noise: Path) -> CommandTool:
    """MP-PCA denoising."""
    return CommandTool(
        "dwidenoise", [exe, in_file, out_file, "-noise", noise, "-force"], outputs=[out_file, noise]
    )


def mrdegibbs(exe: str, in_file: Path, out_file: Path) -> CommandTool:
    """Gibbs-ringing removal."""
    return CommandTool("mrdegibbs", [exe, in_file, out_file, "-force"], outputs=[out_file])


def dwiextract_b0(exe: str, in_file: Path, out_file: Path, bvec: Path, bval: Path) -> CommandTool:
    """Extract every b≈0 volume."""
    return CommandTool(
        "dwiextract",
        [exe, in_file, out_file, "-bzero", *_grad(bvec, bval), "-force"],
        outputs=[out_file],
    )


def mrmath_mean(exe: str, in_file: Path, out_file: Path) -> CommandTool:
    """Average along the volume axis."""
    return CommandTool(
        "mrmath", [exe, in_file, "mean", out_file, "-axis", "3", "-force"], outputs=[out_file]
    )


def dwibiascorrect(
    exe: str,
    in_file: Path,
    out_file: Path,
    bvec: Path,
    bval: Path,
    mask: Path,
    *,
    timeout: int | None = None,
) -> CommandTool:
    """ANTs N4 bias-field correction (may be bounded by *timeout*)."""
    return CommandTool(
        "dwibiascorrect",
        [exe, "ants", in_file, out_file, *_grad(bvec, bval), "-mask", mask, "-force"],
        outputs=[out_file],
        timeout=timeout,
    )


def dwi2tensor(
    exe: str, in_file: Path, out_file: Path, bvec: Path, bval: Path, mask: Path
) -> CommandTool:
    """Fit the diffusion tensor."""
    return CommandTool(
        "dwi2tensor",
        [exe, in_file, out_file, *_grad(bvec, bval), "-mask", mask, "-force"],
        outputs=[out_file],
    )


def tensor2metric(exe: str, tensor: Path, metrics: Mapping[str, Path], mask: Path) -> CommandTool:
    """Derive scalar maps; *metrics* maps ``FA``/``MD``/``AD``/``RD`` to outputs."""
    flags = {"FA": "-fa", "MD": "-adc", "AD": "-ad", "RD": "-rd"}
    cmd: list = [exe, tensor]
    for name, out in metrics.items():
        cmd += [flags[name], out]
    cmd += ["-mask", mask, "-force"]
    return CommandTool("tensor2metric", cmd, outputs=list(metrics.values()))


def fivettgen(exe: str, t1: Path, out_file: Path) -> CommandTool:
    """Five-tissue-type segmentation for anatomically constrained tracking."""
    return CommandTool("5ttgen", [exe, "fsl", t1, out_file, "-force"], outputs=[out_file])


def labelconvert(
    exe: str, parcellation: Path, in_lut: Path, out_lut: Path, out_file: Path
) -> CommandTool:
    """Convert a FreeSurfer parcellation into a node image."""
    return CommandTool(
        "labelconvert",
        [exe, parcellation, in_lut, out_lut, out_file, "-force"],
        outputs=[out_file],
    )


def dwi2response(
    exe: str, in_file: Path, out_file: Path, bvec: Path, bval: Path, mask: Path
) -> CommandTool:
    """Single-fibre response estimation."""
    return CommandTool(
        "dwi2response",
        [exe, "tournier", in_file, out_file, *_grad(bvec, bval), "-mask", mask, "-force"],
        outputs=[out_file],
    )


def dwi2fod(
    exe: str, in_file: Path, response: Path, out_file: Path, bvec: Path, bval: Path, mask: Path
) -> CommandTool:
    """Constrained spherical deconvolution."""
    return CommandTool(
        "dwi2fod",
        [exe, "csd", in_file, response, out_file, *_grad(bvec, bval), "-mask", mask, "-force"],
        outputs=[out_file],
    )


def tckgen(
    exe: str, fod: Path, out_file: Path, *, act: Path | None = None, select: int = 1_000_000
) -> CommandTool:
    """Probabilistic streamline tractography."""
    cmd: list = [exe, fod, out_file, "-select", select, "-seed_dynamic", fod, "-force"]
    if act is not None:
        cmd += ["-act", act, "-backtrack"]
    return CommandTool("tckgen", cmd, outputs=[out_file])


def tck2connectome(exe: str, tracks: Path, nodes: Path, out_file: Path) -> CommandTool:
    """Count streamlines between node pairs."""
    return CommandTool(
        "tck2connectome",
        [exe, tracks, nodes, out_file, "-symmetric", "-zero_diagonal", "-force"],
        outputs=[out_file],
    )


__all__ = [
    "dwidenoise",
    "mrdegibbs",
    "dwiextract_b0",
    "mrmath_mean",
    "dwibiascorrect",
    "dwi2tensor",
    "tensor2metric",
    "fivettgen",
    "labelconvert",
    "dwi2response",
    "dwi2fod",
    "tckgen",
    "tck2connectome",
]
