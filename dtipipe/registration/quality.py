"""Image-similarity metrics and the registration quality gate."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import nibabel as nib
import numpy as np
import structlog

from dtipipe.config.schema import QualityThresholds
from dtipipe.utils.errors import ShapeMismatchError

log = structlog.get_logger()


class QualityClass(str, Enum):
    """Outcome of the quality gate."""

    GOOD = "good"
    ACCEPTABLE = "acceptable"
    POOR = "poor"
    UNCHECKED = "unchecked"

    @property
    def accepted(self) -> bool:
        return self is not QualityClass.POOR


@dataclass(frozen=True)
class SimilarityMetrics:
    """Similarity between a registered image and its target."""

    correlation: float
    mutual_information: float
    n_voxels: int


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def _as_volume(data: np.ndarray) -> np.ndarray:
    """Collapse a 4-D series to its mean volume."""
    data = np.asarray(data, dtype="float64")
    if data.ndim == 4:
        data = data.mean(axis=3)
    return data


def valid_mask(fixed: np.ndarray, moving: np.ndarray) -> np.ndarray:
    """Voxels that are finite and non-zero in both images."""
    return np.isfinite(fixed) & np.isfinite(moving) & (fixed != 0) & (moving != 0)


def pearson(a: np.ndarray, b: np.ndarray) -> float:
    """Pearson correlation; ``0.0`` for constant inputs."""
    if a.size < 2 or a.std() == 0 or b.std() == 0:
        return 0.0
    return float(np.corrcoef(a, b)[0, 1])


def mutual_information(a: np.ndarray, b: np.ndarray, bins: int = 32) -> float:
    """Mutual information (nats) from a joint intensity histogram."""
    if a.size < 2:
        return 0.0
    joint, _, _ = np.histogram2d(a, b, bins=bins)
    total = joint.sum()
    if total == 0:
        return 0.0
    pxy = joint / total
    px = pxy.sum(axis=1, keepdims=True)
    py = pxy.sum(axis=0, keepdims=True)
    nz = pxy > 0
    return float(np.sum(pxy[nz] * np.log(pxy[nz] / (px @ py)[nz])))


def compute_similarity(fixed: np.ndarray, moving: np.ndarray, *, bins: int = 32) -> SimilarityMetrics:
    """Return correlation and mutual information over the valid-voxel mask.

    Raises:
        ShapeMismatchError: The two volumes do not share a voxel grid.
    """
    fixed = _as_volume(fixed)
    moving = _as_volume(moving)
    if fixed.shape != moving.shape:
        raise ShapeMismatchError(
            f"registered image shape {moving.shape} does not match target {fixed.shape}"
        )
    mask = valid_mask(fixed, moving)
    a = fixed[mask]
    b = moving[mask]
    return SimilarityMetrics(
        correlation=pearson(a, b),
        mutual_information=mutual_information(a, b, bins=bins),
        n_voxels=int(mask.sum()),
    )


def image_similarity(fixed: Path, moving: Path, *, bins: int = 32) -> SimilarityMetrics:
    """Load two NIfTI files and compare them with :func:`compute_similarity`."""
    f = nib.load(str(fixed)).get_fdata(dtype="float32")
    m = nib.load(str(moving)).get_fdata(dtype="float32")
    return compute_similarity(f, m, bins=bins)


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

def classify(metrics: SimilarityMetrics, thresholds: QualityThresholds = QualityThresholds()) -> QualityClass:
    """Map *metrics* onto the inclusive good / acceptable / poor bands."""
    c, mi = metrics.correlation, metrics.mutual_information
    if c >= thresholds.good_correlation and mi >= thresholds.good_mi:
        return QualityClass.GOOD
    if c >= thresholds.acceptable_correlation and mi >= thresholds.acceptable_mi:
        return QualityClass.ACCEPTABLE
    return QualityClass.POOR


__all__ = [
    "QualityClass",
    "SimilarityMetrics",
    "valid_mask",
    "pearson",
    "mutual_information",
    "compute_similarity",
    "image_similarity",
    "classify",
]
