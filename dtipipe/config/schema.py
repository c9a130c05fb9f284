"""
Pydantic models that mirror the YAML configuration consumed by *dtipipe*.

Every model is frozen: the configuration is built once at startup, validated,
and then passed explicitly into each component.  Nothing downstream mutates
it, so there is no process-wide mutable configuration state.

Notes:
* ``pe_dir`` follows the anatomical naming (``AP``/``PA``/``LR``/``RL``);
  the FSL phase-encoding vector is derived from it.
* Quality thresholds use inclusive comparisons (``>=``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

# --------------------------------------------------------------------------- #
# Constants                                                                   #
# --------------------------------------------------------------------------- #
STAGE_TOKENS: Tuple[str, ...] = (
    "distortion_correction",
    "basic_preprocessing",
    "motion_correction",
    "refinement",
    "connectivity",
    "microstructure",
)

# FSL acqparams phase-encoding vectors.
_PE_VECTORS: Dict[str, Tuple[int, int, int]] = {
    "AP": (0, -1, 0),
    "PA": (0, 1, 0),
    "LR": (-1, 0, 0),
    "RL": (1, 0, 0),
}

# Logical tool name → default executable.  Values may be overridden in YAML
# with absolute paths to prefer a specific installation.
_DEFAULT_TOOLS: Dict[str, str] = {
    "dwidenoise": "dwidenoise",
    "mrdegibbs": "mrdegibbs",
    "dwiextract": "dwiextract",
    "mrmath": "mrmath",
    "bet": "bet",
    "fslmerge": "fslmerge",
    "topup": "topup",
    "eddy": "eddy",
    "dwibiascorrect": "dwibiascorrect",
    "flirt": "flirt",
    "recon-all": "recon-all",
    "5ttgen": "5ttgen",
    "labelconvert": "labelconvert",
    "dwi2response": "dwi2response",
    "dwi2fod": "dwi2fod",
    "tckgen": "tckgen",
    "tck2connectome": "tck2connectome",
    "dwi2tensor": "dwi2tensor",
    "tensor2metric": "tensor2metric",
    "noddi": "amico_noddi",
    "mri_synthmorph": "mri_synthmorph",
    "vxm_register": "vxm_register",
    "antsRegistrationSyN": "antsRegistrationSyN.sh",
    "antsRegistrationSyNQuick": "antsRegistrationSyNQuick.sh",
    "rsync": "rsync",
    "timeout": "timeout",
    "docker": "docker",
}

# Tools without which no useful output exists (fatal stages + migration).
_REQUIRED_TOOLS: Tuple[str, ...] = (
    "dwidenoise",
    "mrdegibbs",
    "dwiextract",
    "mrmath",
    "bet",
    "eddy",
    "rsync",
)


# --------------------------------------------------------------------------- #
# 1.  Leaf models                                                             #
# --------------------------------------------------------------------------- #
class PathsConfig(BaseModel, frozen=True):
    """Filesystem roots.

    Attributes:
        input_root: Raw dataset root holding ``<subject>/dwi`` folders.
        work_root: Ephemeral scratch area.
        fast_root: Durable, frequently read tier.
        large_root: Durable, high-capacity tier for large reconstructions.
    """

    input_root: Path
    work_root: Path
    fast_root: Path
    large_root: Path

    @model_validator(mode="before")
    @classmethod
    def _default_tiers(cls, values):
        """Derive missing tier roots from ``input_root/derivatives``."""
        if isinstance(values, dict) and values.get("input_root") is not None:
            deriv = Path(values["input_root"]) / "derivatives" / "dtipipe"
            for key, sub in (
                ("work_root", "work"),
                ("fast_root", "fast"),
                ("large_root", "large"),
            ):
                if values.get(key) is None:
                    values = {**values, key: deriv / sub}
        return values


class AcquisitionConfig(BaseModel, frozen=True):
    """Phase-encoding metadata shared by distortion and eddy correction."""

    pe_dir: Literal["AP", "PA", "LR", "RL"] = "AP"
    echo_spacing: float = Field(0.00069, gt=0, description="Effective echo spacing in seconds")

    @property
    def pe_vector(self) -> Tuple[int, int, int]:
        """Return the FSL phase-encoding vector."""
        return _PE_VECTORS[self.pe_dir]

    @property
    def pe_axis(self) -> int:
        """Return the voxel axis along which phase encoding runs."""
        return 0 if self.pe_dir in ("LR", "RL") else 1


class StageToggles(BaseModel, frozen=True):
    """Optional stages that the operator may switch off."""

    distortion_correction: bool = True
    refinement: bool = True
    connectivity: bool = True
    microstructure: bool = True


class QualityThresholds(BaseModel, frozen=True):
    """Similarity cut-offs for the registration quality gate (inclusive)."""

    good_correlation: float = 0.8
    good_mi: float = 0.5
    acceptable_correlation: float = 0.6
    acceptable_mi: float = 0.3

    @model_validator(mode="after")
    def _ordered(self):
        """Ensure the *acceptable* band sits below the *good* band."""
        if (
            self.acceptable_correlation > self.good_correlation
            or self.acceptable_mi > self.good_mi
        ):
            raise ValueError("acceptable thresholds must not exceed good thresholds")
        return self


class RegistrationConfig(BaseModel, frozen=True):
    """Anatomical → diffusion registration settings.

    Attributes:
        enabled: Use ML-based registration.  When ``False`` the traditional
            FSL method runs without a quality gate.
        method: ``auto`` or an explicit method name.
        quick: Faster, lower-accuracy settings where a method offers them.
        skip_quality_check: Accept ML output without computing similarity.
        voxelmorph_model: Trained VoxelMorph weights; VoxelMorph is available
            only when this file exists.
    """

    enabled: bool = False
    method: Literal["auto", "voxelmorph", "synthmorph", "ants"] = "auto"
    quick: bool = True
    skip_quality_check: bool = False
    voxelmorph_model: Optional[Path] = None
    thresholds: QualityThresholds = Field(default_factory=QualityThresholds)
    mi_bins: int = Field(32, ge=2)


class StageResources(BaseModel, frozen=True):
    """Minimum free resources checked before a stage runs."""

    min_disk_gb: float = Field(5.0, ge=0)
    min_mem_gb: float = Field(0.0, ge=0)


def _default_stage_resources() -> Dict[str, StageResources]:
    """Return per-stage thresholds; larger for stages with big intermediates."""
    return {
        "distortion_correction": StageResources(min_disk_gb=5, min_mem_gb=4),
        "basic_preprocessing": StageResources(min_disk_gb=10, min_mem_gb=4),
        "motion_correction": StageResources(min_disk_gb=20, min_mem_gb=8),
        "refinement": StageResources(min_disk_gb=5, min_mem_gb=4),
        "connectivity": StageResources(min_disk_gb=50, min_mem_gb=16),
        "microstructure": StageResources(min_disk_gb=10, min_mem_gb=8),
    }


class ResourcesConfig(BaseModel, frozen=True):
    """Resource gates applied by the driver and the state machine."""

    subject_min_disk_gb: float = Field(20.0, ge=0)
    stages: Dict[str, StageResources] = Field(default_factory=_default_stage_resources)

    @model_validator(mode="after")
    def _known_stages(self):
        """Reject thresholds for stage names that do not exist."""
        unknown = set(self.stages) - set(STAGE_TOKENS)
        if unknown:
            raise ValueError("Unknown stage(s): " + ", ".join(sorted(unknown)))
        return self

    def for_stage(self, token: str) -> StageResources:
        """Return the thresholds for *token* (defaults when not configured)."""
        return self.stages.get(token) or _default_stage_resources()[token]


class StorageConfig(BaseModel, frozen=True):
    """Retry policy for verified transfers between tiers."""

    attempts: int = Field(3, ge=1)
    initial_delay_s: float = Field(5.0, ge=0)


class ToolsConfig(BaseModel, frozen=True):
    """Logical tool name → executable name or absolute path."""

    executables: Dict[str, str] = Field(default_factory=lambda: dict(_DEFAULT_TOOLS))
    required: Tuple[str, ...] = _REQUIRED_TOOLS
    synb0_image: Optional[str] = "leonyichencai/synb0-disco:v3.1"
    freesurfer_license: Optional[Path] = None
    freesurfer_lut: Optional[Path] = None
    connectome_lut: Optional[Path] = None

    @model_validator(mode="before")
    @classmethod
    def _merge_defaults(cls, values):
        """Overlay user-supplied executables on top of the defaults."""
        if isinstance(values, dict) and "executables" in values:
            merged = dict(_DEFAULT_TOOLS)
            merged.update(values["executables"] or {})
            values = {**values, "executables": merged}
        return values


# --------------------------------------------------------------------------- #
# 2.  Top-level model – complete validated config                             #
# --------------------------------------------------------------------------- #
class PipelineConfig(BaseModel, frozen=True):
    """Root configuration object consumed by the rest of *dtipipe*.

    Attributes:
        paths: Raw input root and storage tiers.
        acquisition: Phase-encoding direction and echo spacing.
        stages: Optional stage toggles.
        registration: Registration method selection and quality gate.
        resources: Disk/memory gates.
        storage: Transfer retry policy.
        tools: Executable locations.
        threads: Thread-count override; ``None`` derives it from the host.
        bias_timeout_s: Timeout for the bias-correction sub-step.
        kill_patterns: Process-name patterns terminated on operator abort.
        dry_run: Report planned work without side effects.
        resume: Honour recorded checkpoints.
    """

    version: str = "1"
    paths: PathsConfig
    acquisition: AcquisitionConfig = Field(default_factory=AcquisitionConfig)
    stages: StageToggles = Field(default_factory=StageToggles)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    resources: ResourcesConfig = Field(default_factory=ResourcesConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    threads: Optional[int] = Field(None, ge=1)
    bias_timeout_s: int = Field(1800, ge=1)
    kill_patterns: Tuple[str, ...] = ("recon-all", "eddy", "tckgen", "topup", "mri_synthmorph")
    dry_run: bool = False
    resume: bool = True


__all__ = [
    "STAGE_TOKENS",
    "PathsConfig",
    "AcquisitionConfig",
    "StageToggles",
    "QualityThresholds",
    "RegistrationConfig",
    "StageResources",
    "ResourcesConfig",
    "StorageConfig",
    "ToolsConfig",
    "PipelineConfig",
]
