"""Wrapper for ``rsync`` transfers between storage tiers."""

from __future__ import annotations

from pathlib import Path

from .base import CommandTool


def rsync_copy(exe: str, source_dir: Path, dest_dir: Path) -> CommandTool:
    """Copy the *contents* of *source_dir* into *dest_dir*.

    Source files are never removed here; the storage migrator deletes them
    only after the destination passes critical-file verification.
    """
    return CommandTool(
        "rsync",
        [exe, "-a", "--partial", "--checksum", f"{source_dir}/", f"{dest_dir}/"],
    )


__all__ = ["rsync_copy"]
