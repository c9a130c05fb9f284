"""Verified migration of stage outputs between storage tiers.

A transfer is considered successful only when ``rsync`` exits cleanly **and**
every critical file is present at the destination afterwards.  Only then is
the source removed; a failed migration always leaves the source intact.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Iterable, Sequence

import structlog

from dtipipe.tools.base import ToolRunner
from dtipipe.tools.rsync import rsync_copy

from .cleanup import delete_files, prune_empty_dirs
from .errors import ToolError

log = structlog.get_logger()


class StorageMigrator:
    """Copy, verify and then reclaim stage outputs.

    Args:
        runner: Tool runner used for the ``rsync`` call.
        rsync_exe: Resolved ``rsync`` executable.
        attempts: Total transfer attempts.
        initial_delay_s: Backoff before the second attempt; doubled after
            each further failure.
        sleep: Injectable sleep function.
    """

    def __init__(
        self,
        runner: ToolRunner,
        *,
        rsync_exe: str = "rsync",
        attempts: int = 3,
        initial_delay_s: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.runner = runner
        self.rsync_exe = rsync_exe
        self.attempts = max(1, attempts)
        self.initial_delay_s = initial_delay_s
        self.sleep = sleep

    @staticmethod
    def missing_critical(dest_dir: Path, critical: Iterable[Path | str]) -> list[Path]:
        """Return the critical files (relative to *dest_dir*) that are absent."""
        missing = []
        for rel in critical:
            p = Path(rel)
            target = p if p.is_absolute() else dest_dir / p
            if not target.is_file():
                missing.append(target)
        return missing

    def migrate(
        self,
        source_dir: Path,
        dest_dir: Path,
        description: str,
        *,
        critical: Sequence[Path | str] = (),
    ) -> bool:
        """Transfer *source_dir* into *dest_dir*.

        Args:
            source_dir: Directory holding freshly produced outputs.
            dest_dir: Durable destination directory.
            description: Short label for logs.
            critical: Files (relative to *dest_dir*) that must exist after
                the transfer.

        Returns:
            ``True`` on a verified transfer; the source is removed and empty
            directories pruned.  ``False`` otherwise, source untouched.
        """
        source_dir = Path(source_dir)
        dest_dir = Path(dest_dir)
        if not source_dir.is_dir():
            log.error("storage.source_missing", what=description, source=str(source_dir))
            return False
        if source_dir.resolve() == dest_dir.resolve():
            return not self.missing_critical(dest_dir, critical)

        delay = self.initial_delay_s
        for attempt in range(1, self.attempts + 1):
            try:
                dest_dir.mkdir(parents=True, exist_ok=True)
                rsync_copy(self.rsync_exe, source_dir, dest_dir).execute(self.runner)
                missing = self.missing_critical(dest_dir, critical)
                if not missing:
                    break
                log.warning(
                    "storage.verify_failed",
                    what=description,
                    attempt=attempt,
                    missing=[str(m) for m in missing],
                )
            except (ToolError, OSError) as exc:
                log.warning("storage.transfer_failed", what=description, attempt=attempt, error=str(exc))
            if attempt < self.attempts:
                log.info("storage.retry", what=description, delay_s=delay)
                self.sleep(delay)
                delay *= 2
        else:
            log.error(
                "storage.migration_failed",
                what=description,
                source=str(source_dir),
                dest=str(dest_dir),
                attempts=self.attempts,
            )
            return False

        files = [p for p in source_dir.rglob("*") if p.is_file()]
        delete_files(files)
        prune_empty_dirs(source_dir)
        log.info("storage.migrated", what=description, dest=str(dest_dir), files=len(files))
        return True


def tier_usage_gb(root: Path) -> float:
    """Return the total size of files under *root* in GiB."""
    if not root.exists():
        return 0.0
    total = sum(p.stat().st_size for p in root.rglob("*") if p.is_file())
    return total / 1024**3


__all__ = ["StorageMigrator", "tier_usage_gb"]
