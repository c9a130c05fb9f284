"""Registration strategies.

Every strategy shares one interface: :meth:`available` reports whether its
tools (and model weights) are present and :meth:`apply` writes the moving
image resampled onto the fixed grid, returning its path.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Dict

from dtipipe.config.schema import RegistrationConfig
from dtipipe.config.tools import ToolPaths
from dtipipe.tools import fsl, registration
from dtipipe.tools.base import CommandTool, ToolRunner


class RegistrationMethod(str, Enum):
    """Closed set of registration methods."""

    AUTO = "auto"
    VOXELMORPH = "voxelmorph"
    SYNTHMORPH = "synthmorph"
    ANTS = "ants"
    FSL = "fsl"
    NONE = "none"


class RegistrationStrategy(ABC):
    """Common interface for all registration methods."""

    method: RegistrationMethod
    #: Learned methods are subject to the quality gate.
    is_ml: bool = False

    def __init__(self, tools: ToolPaths, cfg: RegistrationConfig, threads: int = 1) -> None:
        self.tools = tools
        self.cfg = cfg
        self.threads = threads

    @abstractmethod
    def available(self) -> bool:
        """Return ``True`` when the runtime dependencies are present."""

    @abstractmethod
    def output_path(self, out_dir: Path) -> Path:
        """Return where the moved image is written."""

    @abstractmethod
    def build(self, fixed: Path, moving: Path, out_dir: Path) -> CommandTool:
        """Return the command performing the registration."""

    def apply(self, runner: ToolRunner, fixed: Path, moving: Path, out_dir: Path) -> Path:
        """Run the registration and return the moved image.

        Raises:
            ToolError: The tool failed or did not produce its outputs.
        """
        out_dir.mkdir(parents=True, exist_ok=True)
        self.build(fixed, moving, out_dir).execute(runner)
        return self.output_path(out_dir)


class SynthMorphStrategy(RegistrationStrategy):
    method = RegistrationMethod.SYNTHMORPH
    is_ml = True

    def available(self) -> bool:
        return self.tools.has("mri_synthmorph")

    def output_path(self, out_dir: Path) -> Path:
        return out_dir / "synthmorph_moved.nii.gz"

    def build(self, fixed: Path, moving: Path, out_dir: Path) -> CommandTool:
        return registration.synthmorph(
            self.tools.get("mri_synthmorph"),
            moving,
            fixed,
            self.output_path(out_dir),
            out_dir / "synthmorph_warp.nii.gz",
            quick=self.cfg.quick,
            threads=self.threads,
        )


class VoxelMorphStrategy(RegistrationStrategy):
    """Needs both the command and a trained model file."""

    method = RegistrationMethod.VOXELMORPH
    is_ml = True

    def available(self) -> bool:
        model = self.cfg.voxelmorph_model
        return self.tools.has("vxm_register") and model is not None and Path(model).is_file()

    def output_path(self, out_dir: Path) -> Path:
        return out_dir / "voxelmorph_moved.nii.gz"

    def build(self, fixed: Path, moving: Path, out_dir: Path) -> CommandTool:
        return registration.voxelmorph(
            self.tools.get("vxm_register"),
            moving,
            fixed,
            self.output_path(out_dir),
            out_dir / "voxelmorph_warp.nii.gz",
            Path(self.cfg.voxelmorph_model),
        )


class AntsStrategy(RegistrationStrategy):
    """Classical SyN optimisation; the quick script in quick mode."""

    method = RegistrationMethod.ANTS

    @property
    def _tool(self) -> str:
        return "antsRegistrationSyNQuick" if self.cfg.quick else "antsRegistrationSyN"

    def available(self) -> bool:
        return self.tools.has(self._tool)

    def output_path(self, out_dir: Path) -> Path:
        return out_dir / "ants_Warped.nii.gz"

    def build(self, fixed: Path, moving: Path, out_dir: Path) -> CommandTool:
        return registration.ants_syn(
            self.tools.get(self._tool),
            moving,
            fixed,
            out_dir / "ants_",
            threads=self.threads,
        )


class FslStrategy(RegistrationStrategy):
    """Traditional rigid-body FLIRT used when learned registration is off."""

    method = RegistrationMethod.FSL

    def available(self) -> bool:
        return self.tools.has("flirt")

    def output_path(self, out_dir: Path) -> Path:
        return out_dir / "flirt_moved.nii.gz"

    def build(self, fixed: Path, moving: Path, out_dir: Path) -> CommandTool:
        return fsl.flirt(
            self.tools.get("flirt"),
            moving,
            fixed,
            self.output_path(out_dir),
            out_dir / "flirt_moved.mat",
        )


_STRATEGIES = {
    RegistrationMethod.SYNTHMORPH: SynthMorphStrategy,
    RegistrationMethod.VOXELMORPH: VoxelMorphStrategy,
    RegistrationMethod.ANTS: AntsStrategy,
    RegistrationMethod.FSL: FslStrategy,
}


def build_strategies(
    tools: ToolPaths, cfg: RegistrationConfig, threads: int = 1
) -> Dict[RegistrationMethod, RegistrationStrategy]:
    """Instantiate every concrete strategy."""
    return {m: cls(tools, cfg, threads) for m, cls in _STRATEGIES.items()}


__all__ = [
    "RegistrationMethod",
    "RegistrationStrategy",
    "SynthMorphStrategy",
    "VoxelMorphStrategy",
    "AntsStrategy",
    "FslStrategy",
    "build_strategies",
]
