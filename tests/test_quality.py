import nibabel as nib
import numpy as np
import pytest

from dtipipe.config.schema import QualityThresholds
from dtipipe.registration.quality import (
    QualityClass,
    SimilarityMetrics,
    classify,
    compute_similarity,
    image_similarity,
    mutual_information,
    pearson,
)
from dtipipe.utils.errors import ShapeMismatchError


def _m(c: float, mi: float) -> SimilarityMetrics:
    return SimilarityMetrics(correlation=c, mutual_information=mi, n_voxels=100)


def test_classify_bands_are_inclusive():
    """Verify values exactly on a threshold fall into the higher band."""
    assert classify(_m(0.80, 0.50)) is QualityClass.GOOD
    assert classify(_m(0.79, 0.90)) is QualityClass.ACCEPTABLE
    assert classify(_m(0.60, 0.30)) is QualityClass.ACCEPTABLE
    assert classify(_m(0.59, 0.90)) is QualityClass.POOR
    assert classify(_m(0.95, 0.29)) is QualityClass.POOR


def test_classify_custom_thresholds():
    """Verify configured thresholds drive the bands."""
    strict = QualityThresholds(good_correlation=0.95, good_mi=1.0)
    assert classify(_m(0.9, 0.9), strict) is QualityClass.ACCEPTABLE


def test_thresholds_must_be_ordered():
    """Verify acceptable cut-offs above good ones are rejected."""
    with pytest.raises(ValueError):
        QualityThresholds(acceptable_correlation=0.9)


def test_accepted_property():
    """Verify only the poor class is rejected."""
    assert QualityClass.GOOD.accepted
    assert QualityClass.UNCHECKED.accepted
    assert not QualityClass.POOR.accepted


def test_identical_images_are_good():
    """Verify an image compared with itself scores as good."""
    rng = np.random.default_rng(1)
    img = rng.random((10, 10, 8)) + 0.1
    metrics = compute_similarity(img, img)
    assert metrics.correlation == pytest.approx(1.0)
    assert metrics.mutual_information > 0.5
    assert metrics.n_voxels == img.size
    assert classify(metrics) is QualityClass.GOOD


def test_zero_voxels_excluded():
    """Verify voxels that are zero in either image are ignored."""
    a = np.ones((4, 4, 4))
    b = np.ones((4, 4, 4))
    b[0] = 0
    a[1] = np.nan
    assert compute_similarity(a, b).n_voxels == 32


def test_four_d_input_uses_mean_volume():
    """Verify a 4-D series is compared through its mean volume."""
    rng = np.random.default_rng(2)
    vol = rng.random((5, 5, 5)) + 0.1
    series = np.stack([vol, vol], axis=3)
    assert compute_similarity(vol, series).correlation == pytest.approx(1.0)


def test_shape_mismatch_raises():
    """Verify different grids raise instead of producing a metric."""
    with pytest.raises(ShapeMismatchError):
        compute_similarity(np.ones((4, 4, 4)), np.ones((4, 4, 5)))


def test_degenerate_inputs():
    """Verify constant or empty inputs give zero similarity."""
    flat = np.ones(50)
    assert pearson(flat, np.arange(50.0)) == 0.0
    assert mutual_information(np.array([1.0]), np.array([2.0])) == 0.0


def test_image_similarity_reads_files(tmp_path):
    """Verify similarity can be computed from NIfTI files."""
    rng = np.random.default_rng(3)
    data = (rng.random((6, 6, 6)) + 0.1).astype("float32")
    a = tmp_path / "a.nii.gz"
    b = tmp_path / "b.nii.gz"
    nib.Nifti1Image(data, np.eye(4)).to_filename(a)
    nib.Nifti1Image(data * 2.0, np.eye(4)).to_filename(b)
    assert image_similarity(a, b).correlation == pytest.approx(1.0, abs=1e-5)
