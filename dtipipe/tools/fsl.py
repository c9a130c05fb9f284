"""Builders for FSL command-line tools.

Each helper returns a :class:`CommandTool` whose declared outputs define
success; FSL writes ``.nii.gz`` for every basename argument.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from .base import CommandTool


def _nii(prefix: Path) -> Path:
    """Return the ``.nii.gz`` file FSL writes for *prefix*."""
    return prefix.with_name(prefix.name + ".nii.gz")


def bet(exe: str, in_file: Path, out_prefix: Path, frac: float = 0.3) -> CommandTool:
    """Brain extraction producing ``<prefix>.nii.gz`` and ``<prefix>_mask.nii.gz``."""
    mask = out_prefix.with_name(out_prefix.name + "_mask.nii.gz")
    return CommandTool(
        "bet",
        [exe, in_file, out_prefix, "-m", "-f", frac],
        outputs=[_nii(out_prefix), mask],
    )


def fslmerge(exe: str, out_prefix: Path, inputs: Sequence[Path]) -> CommandTool:
    """Concatenate *inputs* along time."""
    return CommandTool("fslmerge", [exe, "-t", out_prefix, *inputs], outputs=[_nii(out_prefix)])


def topup(
    exe: str, b0_all: Path, acqparams: Path, out_prefix: Path, *, config: str = "b02b0.cnf"
) -> CommandTool:
    """Estimate the susceptibility field from blip-up/blip-down (or synthetic) b0s."""
    return CommandTool(
        "topup",
        [
            exe,
            f"--imain={b0_all}",
            f"--datain={acqparams}",
            f"--config={config}",
            f"--out={out_prefix}",
        ],
        outputs=[
            out_prefix.with_name(out_prefix.name + "_fieldcoef.nii.gz"),
            out_prefix.with_name(out_prefix.name + "_movpar.txt"),
        ],
    )


def eddy(
    exe: str,
    *,
    dwi: Path,
    mask: Path,
    acqparams: Path,
    index: Path,
    bvec: Path,
    bval: Path,
    out_prefix: Path,
    topup_prefix: Path | None = None,
    threads: int = 1,
) -> CommandTool:
    """Eddy-current and motion correction.

    *topup_prefix* is optional; without it eddy runs without a field
    estimate (the fallback when distortion correction did not complete).
    """
    cmd: list = [
        exe,
        f"--imain={dwi}",
        f"--mask={mask}",
        f"--acqp={acqparams}",
        f"--index={index}",
        f"--bvecs={bvec}",
        f"--bvals={bval}",
        f"--out={out_prefix}",
        f"--nthr={max(1, threads)}",
    ]
    if topup_prefix is not None:
        cmd.append(f"--topup={topup_prefix}")
    return CommandTool(
        "eddy",
        cmd,
        outputs=[
            _nii(out_prefix),
            out_prefix.with_name(out_prefix.name + ".eddy_rotated_bvecs"),
        ],
    )


def flirt(
    exe: str, moving: Path, fixed: Path, out_file: Path, out_mat: Path, *, dof: int = 6
) -> CommandTool:
    """Linear registration of *moving* onto *fixed*."""
    return CommandTool(
        "flirt",
        [
            exe,
            "-in",
            moving,
            "-ref",
            fixed,
            "-out",
            out_file,
            "-omat",
            out_mat,
            "-dof",
            dof,
            "-cost",
            "mutualinfo",
        ],
        outputs=[out_file, out_mat],
    )


__all__ = ["bet", "fslmerge", "topup", "eddy", "flirt"]
