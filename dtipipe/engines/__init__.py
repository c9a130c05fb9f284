"""Execution engines."""

from .base import EngineResult, ExecutionEngine, TIMEOUT_RETURNCODE
from .docker import DockerEngine
from .native import NativeEngine, active_processes

__all__ = [
    "EngineResult",
    "ExecutionEngine",
    "TIMEOUT_RETURNCODE",
    "DockerEngine",
    "NativeEngine",
    "active_processes",
]
