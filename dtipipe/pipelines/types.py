"""
Typed value objects that circulate between the orchestration layers.

Identity objects (:class:`SubjectPaths`, :class:`Subject`,
:class:`StageResult`) are frozen pydantic models; :class:`StageSpec` holds
callables and is a plain dataclass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel

from dtipipe.config.schema import PathsConfig, PipelineConfig
from dtipipe.registration.selector import RegistrationAttempt, RegistrationOutcome


class SubjectPaths(BaseModel, frozen=True):
    """Every location owned by one subject.

    Attributes
    ----------
    dwi, bval, bvec
        Raw diffusion series and gradient tables.
    t1w
        Raw anatomical image (may not exist).
    work
        Ephemeral scratch directory ``<work_root>/<sub>``.
    fast
        Durable fast-tier directory ``<fast_root>/<sub>``.
    large
        Durable large-tier directory ``<large_root>/<sub>``.
    logs
        Per-subject log folder ``<fast_root>/logs/<sub>`` holding the lock,
        checkpoints, progress record and failure captures.
    """

    dwi: Path
    bval: Path
    bvec: Path
    t1w: Path
    work: Path
    fast: Path
    large: Path
    logs: Path

    @classmethod
    def build(cls, paths: PathsConfig, sub: str) -> "SubjectPaths":
        raw = paths.input_root / sub
        return cls(
            dwi=raw / "dwi" / f"{sub}_dwi.nii.gz",
            bval=raw / "dwi" / f"{sub}_dwi.bval",
            bvec=raw / "dwi" / f"{sub}_dwi.bvec",
            t1w=raw / "anat" / f"{sub}_T1w.nii.gz",
            work=paths.work_root / sub,
            fast=paths.fast_root / sub,
            large=paths.large_root / sub,
            logs=paths.fast_root / "logs" / sub,
        )

    def failure_log(self, stage: str) -> Path:
        return self.logs / "failures" / f"{stage}.log"


class Subject(BaseModel, frozen=True):
    """A unit of processing."""

    id: str
    paths: SubjectPaths

    @property
    def has_t1w(self) -> bool:
        return self.paths.t1w.is_file()


class StageContract(str, Enum):
    """Error contract declared with every stage."""

    FATAL = "fatal"
    ADVISORY = "advisory"


class SubjectState(str, Enum):
    """States of the per-subject machine."""

    NOT_STARTED = "not_started"
    DISTORTION_CORRECTION = "distortion_correction"
    BASIC_PREPROCESSING = "basic_preprocessing"
    MOTION_CORRECTION = "motion_correction"
    REFINEMENT = "refinement"
    CONNECTIVITY = "connectivity"
    MICROSTRUCTURE = "microstructure"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SubjectState.DONE, SubjectState.FAILED)


@dataclass
class StageSpec:
    """Definition of one pipeline stage.

    Attributes:
        token: Checkpoint token and stage name.
        contract: Fatal or advisory; documented where the stage is defined.
        work: Callable doing the work for a subject; raises on failure.
        fallback: What dependants do when this advisory stage fails.
        enabled: Predicate over the configuration (``None`` = always on).
        outputs: Durable outputs used as a secondary integrity check.
    """

    token: str
    contract: StageContract
    work: Callable[["Subject"], Optional[bool]]
    fallback: str = ""
    enabled: Optional[Callable[[PipelineConfig], bool]] = None
    outputs: Callable[["Subject"], Sequence[Path]] = lambda _s: ()

    @property
    def fatal(self) -> bool:
        return self.contract is StageContract.FATAL

    def is_enabled(self, cfg: PipelineConfig) -> bool:
        return True if self.enabled is None else bool(self.enabled(cfg))


class StageResult(BaseModel, frozen=True):
    """Definite outcome of one stage for one subject.

    Attributes
    ----------
    success
        ``True`` when the stage completed (or was already checkpointed).
    skipped
        The work function did not run (disabled, checkpointed or gated).
    reason
        Short machine-friendly explanation for skips and failures.
    failure_log
        Captured-output snippet written for a failed stage.
    """

    stage: str
    contract: StageContract
    success: bool
    skipped: bool = False
    reason: str = ""
    duration_s: float = 0.0
    failure_log: Optional[Path] = None


@dataclass
class SubjectResult:
    """Aggregate outcome of one subject."""

    subject: str
    state: SubjectState
    stages: List[StageResult] = field(default_factory=list)
    failure_log: Optional[Path] = None
    error: str = ""

    @property
    def success(self) -> bool:
        return self.state is SubjectState.DONE

    def completed(self) -> List[str]:
        """Stage tokens that finished (run now or checkpointed earlier)."""
        return [r.stage for r in self.stages if r.success and r.reason != "disabled"]


__all__ = [
    "SubjectPaths",
    "Subject",
    "StageContract",
    "SubjectState",
    "StageSpec",
    "StageResult",
    "SubjectResult",
    "RegistrationAttempt",
    "RegistrationOutcome",
]
