"""Infrastructure shared by the orchestration layers."""

from .checkpoint import CheckpointStore
from .errors import (
    ConfigError,
    DtipipeError,
    MigrationError,
    PreconditionError,
    ResourceError,
    ShapeMismatchError,
    ToolError,
)
from .events import EventLog
from .lock import SubjectLockManager
from .resources import ResourceGuard, default_thread_count

__all__ = [
    "CheckpointStore",
    "ConfigError",
    "DtipipeError",
    "MigrationError",
    "PreconditionError",
    "ResourceError",
    "ShapeMismatchError",
    "ToolError",
    "EventLog",
    "SubjectLockManager",
    "ResourceGuard",
    "default_thread_count",
]
