"""Builders for registration command-line tools.

Every builder writes the moved image to *out_file*, resampled onto the
fixed image grid.
"""

from __future__ import annotations

from pathlib import Path

from .base import CommandTool


def synthmorph(
    exe: str, moving: Path, fixed: Path, out_file: Path, warp: Path, *, quick: bool, threads: int
) -> CommandTool:
    """Contrast-agnostic learned registration (FreeSurfer SynthMorph)."""
    model = "affine" if quick else "joint"
    return CommandTool(
        "mri_synthmorph",
        [exe, "-m", model, "-j", max(1, threads), "-o", out_file, "-t", warp, moving, fixed],
        outputs=[out_file, warp],
    )


def voxelmorph(
    exe: str, moving: Path, fixed: Path, out_file: Path, warp: Path, model: Path
) -> CommandTool:
    """Learned deformable registration with trained VoxelMorph weights."""
    return CommandTool(
        "vxm_register",
        [
            exe,
            "--moving",
            moving,
            "--fixed",
            fixed,
            "--moved",
            out_file,
            "--model",
            model,
            "--warp",
            warp,
        ],
        outputs=[out_file, warp],
    )


def ants_syn(
    exe: str, moving: Path, fixed: Path, out_prefix: Path, *, threads: int
) -> CommandTool:
    """ANTs SyN registration; ``<prefix>Warped.nii.gz`` is the moved image."""
    warped = out_prefix.with_name(out_prefix.name + "Warped.nii.gz")
    affine = out_prefix.with_name(out_prefix.name + "0GenericAffine.mat")
    return CommandTool(
        "antsRegistrationSyN",
        [
            exe,
            "-d",
            "3",
            "-f",
            fixed,
            "-m",
            moving,
            "-o",
            out_prefix,
            "-t",
            "s",
            "-n",
            max(1, threads),
        ],
        outputs=[warped, affine],
    )


__all__ = ["synthmorph", "voxelmorph", "ants_syn"]
