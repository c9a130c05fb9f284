"""Executable discovery.

Tool locations are resolved exactly once at startup into an immutable
:class:`ToolPaths` mapping that is handed to every subprocess helper.  The
process environment (``PATH`` and friends) is never mutated.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Dict, Tuple

import structlog
from pydantic import BaseModel

from dtipipe.utils.errors import ConfigError

from .schema import ToolsConfig

log = structlog.get_logger()


class ToolPaths(BaseModel, frozen=True):
    """Resolved executables keyed by logical tool name.

    Attributes:
        paths: Logical name → absolute executable path for every tool found.
        missing: Logical names that could not be resolved.
    """

    paths: Dict[str, Path]
    missing: Tuple[str, ...] = ()

    def has(self, name: str) -> bool:
        """Return ``True`` when *name* resolved to an executable."""
        return name in self.paths

    def get(self, name: str) -> str:
        """Return the executable for *name*.

        Raises:
            KeyError: When the tool was not found at startup.
        """
        try:
            return str(self.paths[name])
        except KeyError:
            raise KeyError(f"tool '{name}' is not available") from None


def _locate(executable: str) -> Path | None:
    """Return an absolute path for *executable* or ``None``."""
    candidate = Path(executable).expanduser()
    if candidate.is_absolute() or os.sep in executable:
        return candidate if candidate.is_file() and os.access(candidate, os.X_OK) else None
    found = shutil.which(executable)
    return Path(found) if found else None


def resolve_tools(cfg: ToolsConfig, *, strict: bool = True) -> ToolPaths:
    """Resolve every configured executable.

    Args:
        cfg: Tool section of the pipeline configuration.
        strict: Raise when a required tool is missing.  Dry runs pass
            ``False`` so plans can be inspected on machines without the
            toolchain.

    Returns:
        :class:`ToolPaths` for the run.

    Raises:
        ConfigError: When *strict* and a required tool is missing.
    """
    paths: dict[str, Path] = {}
    missing: list[str] = []
    for name, exe in sorted(cfg.executables.items()):
        resolved = _locate(exe)
        if resolved is None:
            missing.append(name)
        else:
            paths[name] = resolved

    absent_required = [name for name in cfg.required if name in missing]
    if absent_required:
        log.error("tools.missing_required", tools=absent_required)
        if strict:
            raise ConfigError(
                "Required tool(s) not found: " + ", ".join(absent_required)
            )
    optional = [name for name in missing if name not in cfg.required]
    if optional:
        log.info("tools.optional_missing", tools=optional)

    return ToolPaths(paths=paths, missing=tuple(missing))


__all__ = ["ToolPaths", "resolve_tools"]
