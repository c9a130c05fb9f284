"""Per-subject advisory locking.

The lock file lives at ``<fast_root>/logs/<subject>/<subject>.lock`` and is
held with a non-blocking exclusive ``flock``.  The kernel drops the lock
when the descriptor closes, so abnormal exits release it too.
"""

from __future__ import annotations

import fcntl
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

import structlog

log = structlog.get_logger()


class SubjectLockManager:
    """Acquire and release one lock per subject.

    Args:
        lock_root: Directory containing per-subject lock folders.
    """

    def __init__(self, lock_root: Path) -> None:
        self.lock_root = Path(lock_root)
        self._held: Dict[str, int] = {}

    def lock_path(self, subject: str) -> Path:
        return self.lock_root / subject / f"{subject}.lock"

    def acquire(self, subject: str) -> bool:
        """Try to lock *subject* without waiting.

        Returns:
            ``True`` when this manager now holds the lock, ``False`` when
            another holder has it.
        """
        if subject in self._held:
            return True
        path = self.lock_path(subject)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            log.warning("lock.blocked", subject=subject, lock=str(path), holder=self.holder_pid(subject))
            return False
        except OSError:
            os.close(fd)
            raise
        try:
            os.ftruncate(fd, 0)
            os.write(fd, f"{os.getpid()}\n".encode())
        except OSError:
            os.close(fd)
            raise
        self._held[subject] = fd
        log.debug("lock.acquired", subject=subject)
        return True

    def holder_pid(self, subject: str) -> Optional[int]:
        """Return the PID recorded in the lock file, if readable."""
        try:
            text = self.lock_path(subject).read_text(encoding="utf-8").strip()
            return int(text) if text else None
        except (OSError, ValueError):
            return None

    def release(self, subject: str) -> None:
        """Release *subject*; calling it again is harmless."""
        fd = self._held.pop(subject, None)
        if fd is None:
            return
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        log.debug("lock.released", subject=subject)

    @contextmanager
    def hold(self, subject: str) -> Iterator[bool]:
        """Context manager yielding whether *subject* was acquired.

        The lock is released on every exit path when it was acquired.
        """
        acquired = self.acquire(subject)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(subject)


__all__ = ["SubjectLockManager"]
