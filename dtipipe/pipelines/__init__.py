"""Orchestration: stages, per-subject state machine and the driver."""

from .discovery import discover_subjects, validate_inputs
from .driver import PipelineDriver
from .types import (
    StageContract,
    StageResult,
    StageSpec,
    Subject,
    SubjectPaths,
    SubjectResult,
    SubjectState,
)

__all__ = [
    "discover_subjects",
    "validate_inputs",
    "PipelineDriver",
    "StageContract",
    "StageResult",
    "StageSpec",
    "Subject",
    "SubjectPaths",
    "SubjectResult",
    "SubjectState",
]
