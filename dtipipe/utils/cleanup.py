"""Utility helpers for removing scratch files and pruning empty folders.

The helpers perform filesystem deletions only and do not touch any other
external state.  Doing so keeps the functions trivial to test: unit-tests
simply create temporary files / folders, invoke the helpers, and assert on
the filesystem afterwards.

* **Informative logging** – each attempted deletion is emitted through the
  module logger at *INFO* or *ERROR* level.
* **Dry-run support** – callers can preview destructive actions by setting
  ``dry=True`` which converts all deletions into no-ops while still logging
  what *would* have happened.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List

log = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# _rm_file / _rm_dir – internal primitives
# ─────────────────────────────────────────────────────────────────────────────


def _rm_file(path: Path, *, dry: bool) -> bool:
    """Attempt to unlink *path* and report the outcome through *log*.

    Args:
        path: Path to the file slated for removal.
        dry: When *True* no deletion is performed – an *INFO* message is
            emitted instead.

    Returns:
        *True* when the file really vanished, *False* otherwise (including
        dry-run mode and any ``OSError`` raised by :py:meth:`Path.unlink`).
    """
    if dry:
        log.info("[dry-run] would delete %s", path)
        return False

    try:
        path.unlink(missing_ok=False)
        log.debug("Deleted %s", path)
        return True
    except OSError as exc:
        log.error("Could not delete %s: %s", path, exc)
        return False


def _rm_dir(path: Path, *, dry: bool) -> bool:
    """Recursively remove *path* via :pyfunc:`shutil.rmtree`."""
    if dry:
        log.info("[dry-run] would delete directory %s", path)
        return False

    try:
        shutil.rmtree(path)
        log.info("Deleted directory %s", path)
        return True
    except OSError as exc:
        log.error("Could not delete %s: %s", path, exc)
        return False


# ─────────────────────────────────────────────────────────────────────────────
# Public helpers
# ─────────────────────────────────────────────────────────────────────────────


def delete_files(paths: Iterable[Path], *, dry: bool = False) -> List[Path]:
    """Remove every file in *paths* and return those actually deleted.

    Paths that do not exist are skipped silently.
    """
    deleted: list[Path] = []
    for p in paths:
        if p.is_file() and _rm_file(p, dry=dry):
            deleted.append(p)
    return deleted


def prune_empty_dirs(root: Path, *, keep_root: bool = False) -> int:
    """Remove empty directories below *root*, deepest first.

    Args:
        root: Directory to prune.
        keep_root: Leave *root* itself in place even when it ends up empty.

    Returns:
        Number of directories removed.
    """
    if not root.is_dir():
        return 0
    removed = 0
    for dirpath, _dirnames, _files in sorted(os.walk(root), key=lambda t: -len(t[0])):
        d = Path(dirpath)
        if keep_root and d == root:
            continue
        try:
            d.rmdir()
            removed += 1
        except OSError:
            # Not empty.
            continue
    return removed


def remove_scratch(scratch_dir: Path, *, dry: bool = False) -> bool:
    """Delete a subject's working directory once its outputs are durable."""
    if not scratch_dir.exists():
        return False
    return _rm_dir(scratch_dir, dry=dry)


__all__ = ["delete_files", "prune_empty_dirs", "remove_scratch"]
