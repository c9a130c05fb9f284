"""
Package-level logging configuration.

* Rich console output (colourised, nicely formatted).
* Rotating **JSON** log file inside ``<fast_root>/logs/`` when the fast tier
  is known (or ``$DTIPIPE_LOG_DIR`` when set).
* Optional plain-text mirror controlled via ``--save-logfile`` on the CLI.

The public helper :func:`setup_logging` wires everything and should be the
sole entry-point used by sub-commands.  The machine-readable per-run event
stream consumed by reporting lives in :mod:`dtipipe.utils.events`.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

import structlog
from rich.logging import RichHandler
from structlog.dev import ConsoleRenderer as StructlogConsoleRenderer
from structlog.stdlib import LoggerFactory

__all__ = ["setup_logging", "log_dir_for"]


def log_dir_for(fast_root: Path | None) -> Path:
    """Return the directory holding run logs.

    Args:
        fast_root: Fast-tier root; logs live under ``<fast_root>/logs``.

    Returns:
        ``$DTIPIPE_LOG_DIR`` when set, else ``<fast_root>/logs`` or the
        package-local ``logs/`` folder when no tier is known.
    """
    env_dir = os.environ.get("DTIPIPE_LOG_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    if fast_root is not None:
        return fast_root / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


# --------------------------------------------------------------------------- #
# Internal helpers – file-based handlers                                      #
# --------------------------------------------------------------------------- #
def _json_file_handler(fast_root: Path | None, level: int) -> logging.Handler:
    """Return a rotating *JSON* file handler.

    Args:
        fast_root: Fast-tier root; determines the log directory when
            ``DTIPIPE_LOG_DIR`` is not set.
        level: Log-level for the handler.
    """
    logdir = log_dir_for(fast_root)
    logdir.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        filename=logdir / "dtipipe.log",
        maxBytes=5_000_000,  # ~5 MB before rollover
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _plain_text_file_handler(
    path: Optional[Path], level: int
) -> logging.Handler | None:
    """Return a plain-text file handler or *None* when *path* is *None*."""
    if path is None:
        return None

    path = path.expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8", mode="a")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    # Ensure the buffer is flushed on interpreter exit.
    atexit.register(handler.close)
    return handler


# --------------------------------------------------------------------------- #
# Public API – main entry-point                                               #
# --------------------------------------------------------------------------- #
def setup_logging(
    *,
    fast_root: Path | None = None,
    verbose: bool = False,
    debug: bool = False,
    extra_text_log: Optional[Path] = None,
    file_log: bool = True,
) -> None:
    """Configure rich console logging and optional file mirrors.

    Args:
        fast_root: Fast-tier root used to determine the JSON log location.
        verbose: Emit INFO-level messages to the console.
        debug: Emit DEBUG-level messages plus rich tracebacks.
        extra_text_log: Optional path for a plain-text mirror of console output.
        file_log: Attach the rotating JSON file handler.  Dry runs disable
            it so that planning leaves the filesystem untouched.
    """
    console_lvl = (
        logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    )
    file_lvl = logging.DEBUG if debug else logging.INFO

    handlers: list[logging.Handler] = []

    console = RichHandler(
        level=console_lvl,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        markup=False,
        show_path=debug,
    )
    handlers.append(console)

    if file_log:
        handlers.append(_json_file_handler(fast_root, file_lvl))

    txt_handler = _plain_text_file_handler(extra_text_log, console_lvl)
    if txt_handler:
        handlers.append(txt_handler)

    logging.basicConfig(
        level=logging.DEBUG,  # root logger stays at DEBUG
        handlers=handlers,
        format="%(message)s",  # Rich/structlog handle formatting
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            (
                StructlogConsoleRenderer()
                if verbose or debug
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            min(console_lvl, file_lvl)
        ),
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=False,
    )
