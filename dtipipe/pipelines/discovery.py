"""Subject discovery and raw-input precondition checks."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import nibabel as nib
import numpy as np
import structlog

from dtipipe.config.schema import PipelineConfig
from dtipipe.utils.errors import PreconditionError

from .types import Subject, SubjectPaths

log = structlog.get_logger()

# b-values at or below this are treated as b≈0.
B0_THRESHOLD = 50.0
# Non-zero b-values are grouped into shells of this width.
SHELL_ROUNDING = 100.0


@dataclass(frozen=True)
class InputSummary:
    """Facts about a subject's validated raw inputs."""

    n_volumes: int
    n_b0: int
    shells: Tuple[float, ...]
    pe_lines: int
    has_t1w: bool


def discover_subjects(input_root: Path, selected: Optional[Iterable[str]] = None) -> List[str]:
    """Return sorted subject IDs.

    Args:
        input_root: Raw dataset root.
        selected: Explicit subject IDs (``sub-`` prefix optional).  When
            empty every ``sub-*`` folder with a ``dwi`` directory is used.
    """
    if selected:
        subs = {s if s.startswith("sub-") else f"sub-{s}" for s in selected}
        return sorted(subs)
    if not input_root.is_dir():
        return []
    return sorted(p.name for p in input_root.glob("sub-*") if (p / "dwi").is_dir())


def build_subject(cfg: PipelineConfig, sub: str) -> Subject:
    return Subject(id=sub, paths=SubjectPaths.build(cfg.paths, sub))


def shells_from_bvals(bvals: np.ndarray) -> Tuple[float, ...]:
    """Return the distinct non-zero shells after rounding."""
    nz = bvals[bvals > B0_THRESHOLD]
    return tuple(sorted({float(np.round(b / SHELL_ROUNDING) * SHELL_ROUNDING) for b in nz}))


def read_bvals(path: Path) -> np.ndarray:
    return np.atleast_1d(np.loadtxt(path, dtype=float).ravel())


def validate_inputs(subject: Subject, *, pe_axis: int = 1) -> InputSummary:
    """Check the raw inputs of *subject* before any tool runs.

    Raises:
        PreconditionError: Missing file or malformed gradient table.
    """
    p = subject.paths
    for f in (p.dwi, p.bval, p.bvec):
        if not f.is_file():
            raise PreconditionError(f"{subject.id}: missing input {f}")

    try:
        shape = nib.load(str(p.dwi)).shape
    except Exception as exc:  # nibabel raises several unrelated types
        raise PreconditionError(f"{subject.id}: unreadable diffusion volume: {exc}") from exc
    if len(shape) != 4:
        raise PreconditionError(f"{subject.id}: diffusion volume must be 4-D, got shape {shape}")
    n_vols = int(shape[3])

    try:
        bvals = read_bvals(p.bval)
        bvecs = np.atleast_2d(np.loadtxt(p.bvec, dtype=float))
    except ValueError as exc:
        raise PreconditionError(f"{subject.id}: unreadable gradient table: {exc}") from exc

    if bvecs.shape[0] != 3:
        raise PreconditionError(f"{subject.id}: bvec must have 3 rows, found {bvecs.shape[0]}")
    if bvals.size != n_vols or bvecs.shape[1] != n_vols:
        raise PreconditionError(
            f"{subject.id}: gradient table mismatch "
            f"(volumes={n_vols}, bvals={bvals.size}, bvec columns={bvecs.shape[1]})"
        )
    n_b0 = int((bvals <= B0_THRESHOLD).sum())
    if n_b0 == 0:
        raise PreconditionError(f"{subject.id}: no b≈0 volume found")

    summary = InputSummary(
        n_volumes=n_vols,
        n_b0=n_b0,
        shells=shells_from_bvals(bvals),
        pe_lines=int(shape[pe_axis]),
        has_t1w=subject.has_t1w,
    )
    log.info(
        "inputs.validated",
        subject=subject.id,
        volumes=n_vols,
        b0=n_b0,
        shells=list(summary.shells),
        t1w=summary.has_t1w,
    )
    return summary


__all__ = [
    "B0_THRESHOLD",
    "InputSummary",
    "discover_subjects",
    "build_subject",
    "shells_from_bvals",
    "read_bvals",
    "validate_inputs",
]
