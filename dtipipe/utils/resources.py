"""Resource Guard and thread-count selection.

The guard is consulted before *every* stage, not just at start-up, because
multi-hour stages can exhaust space that was available when the run began.
Checks only inspect the host and log; they never raise, so callers decide
whether a failed gate is fatal (before a fatal stage) or a stage skip
(before an advisory stage).
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import structlog

log = structlog.get_logger()

_GB = 1024**3


# --------------------------------------------------------------------------- #
# Host probes                                                                 #
# --------------------------------------------------------------------------- #
def _existing_parent(path: Path) -> Path:
    """Return *path* or its closest existing ancestor."""
    path = Path(path).absolute()
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


def free_disk_gb(path: Path) -> float:
    """Return free space in GiB on the filesystem holding *path*."""
    return shutil.disk_usage(_existing_parent(path)).free / _GB


def available_memory_gb() -> float:
    """Return available physical memory in GiB.

    Falls back to total physical memory when the platform does not expose
    ``SC_AVPHYS_PAGES`` (macOS).
    """
    try:
        page = os.sysconf("SC_PAGE_SIZE")
        try:
            pages = os.sysconf("SC_AVPHYS_PAGES")
        except (ValueError, OSError):
            pages = os.sysconf("SC_PHYS_PAGES")
        return page * pages / _GB
    except (ValueError, OSError):
        return 8.0


# --------------------------------------------------------------------------- #
# Gate checks                                                                 #
# --------------------------------------------------------------------------- #
def check_disk(path: Path, min_gb: float, *, probe: Callable[[Path], float] = free_disk_gb) -> bool:
    """Return ``True`` when at least *min_gb* GiB are free under *path*."""
    free = probe(path)
    if free < min_gb:
        log.warning("resources.disk_low", path=str(path), free_gb=round(free, 2), min_gb=min_gb)
        return False
    log.debug("resources.disk_ok", path=str(path), free_gb=round(free, 2), min_gb=min_gb)
    return True


def check_memory(min_gb: float, *, probe: Callable[[], float] = available_memory_gb) -> bool:
    """Return ``True`` when at least *min_gb* GiB of memory are available."""
    if min_gb <= 0:
        return True
    avail = probe()
    if avail < min_gb:
        log.warning("resources.memory_low", available_gb=round(avail, 2), min_gb=min_gb)
        return False
    return True


def check_write_permission(directory: Path) -> bool:
    """Return ``True`` when *directory* (or its nearest ancestor) is writable."""
    target = _existing_parent(directory)
    ok = os.access(target, os.W_OK | os.X_OK)
    if not ok:
        log.error("resources.not_writable", path=str(directory), checked=str(target))
    return ok


@dataclass
class GateResult:
    """Outcome of a combined gate check."""

    ok: bool
    reason: str = ""


class ResourceGuard:
    """Bundle the three checks with injectable probes.

    Args:
        disk_probe: Callable returning free GiB for a path.
        mem_probe: Callable returning available memory in GiB.
    """

    def __init__(
        self,
        *,
        disk_probe: Callable[[Path], float] = free_disk_gb,
        mem_probe: Callable[[], float] = available_memory_gb,
    ) -> None:
        self.disk_probe = disk_probe
        self.mem_probe = mem_probe

    def check_disk(self, path: Path, min_gb: float) -> bool:
        return check_disk(path, min_gb, probe=self.disk_probe)

    def check_memory(self, min_gb: float) -> bool:
        return check_memory(min_gb, probe=self.mem_probe)

    def check_write_permission(self, directory: Path) -> bool:
        return check_write_permission(directory)

    def gate(self, directory: Path, *, min_disk_gb: float, min_mem_gb: float = 0.0) -> GateResult:
        """Run every check for *directory* and return the first failure."""
        if not self.check_write_permission(directory):
            return GateResult(False, f"{directory} is not writable")
        if not self.check_disk(directory, min_disk_gb):
            return GateResult(False, f"less than {min_disk_gb} GB free under {directory}")
        if not self.check_memory(min_mem_gb):
            return GateResult(False, f"less than {min_mem_gb} GB memory available")
        return GateResult(True)


# --------------------------------------------------------------------------- #
# Thread-count hint                                                           #
# --------------------------------------------------------------------------- #
def default_thread_count(
    override: Optional[int] = None,
    *,
    cpu_count: Optional[int] = None,
    load_avg: Optional[float] = None,
) -> int:
    """Return the thread count handed to multi-threaded external tools.

    Idle cores are ``cpu_count - floor(load_avg)``; when more than four are
    idle two are left for the system, otherwise all idle cores are used.

    Args:
        override: Explicit operator choice; always wins.
        cpu_count: Core count (probed when ``None``).
        load_avg: One-minute load average (probed when ``None``).
    """
    if override is not None:
        return max(1, int(override))
    cores = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    if load_avg is None:
        try:
            load_avg = os.getloadavg()[0]
        except (AttributeError, OSError):
            load_avg = 0.0
    available = max(1, cores - int(load_avg))
    threads = available - 2 if available > 4 else available
    log.info("resources.threads", cores=cores, load_avg=load_avg, threads=threads)
    return threads


__all__ = [
    "free_disk_gb",
    "available_memory_gb",
    "check_disk",
    "check_memory",
    "check_write_permission",
    "GateResult",
    "ResourceGuard",
    "default_thread_count",
]
