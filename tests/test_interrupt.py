import signal
import subprocess

import pytest

from dtipipe.utils import interrupt
from dtipipe.utils.interrupt import (
    InterruptHandler,
    exit_code_for,
    register_temp,
    release_temp,
    remove_temp_files,
)


def test_exit_codes():
    """Verify the conventional 128 + signal status."""
    assert exit_code_for(signal.SIGINT) == 130
    assert exit_code_for(signal.SIGTERM) == 143


def test_temp_files_removed(tmp_path):
    """Verify registered temporaries are deleted and released ones kept."""
    keep = tmp_path / "keep.tmp"
    drop = tmp_path / "drop.tmp"
    keep.write_text("k")
    drop.write_text("d")
    register_temp(keep)
    register_temp(drop)
    register_temp(tmp_path / "never-created.tmp")
    release_temp(keep)
    assert remove_temp_files() == 1
    assert keep.exists() and not drop.exists()
    assert not interrupt._TEMP_PATHS


def test_handler_cleans_up_and_exits(tmp_path, monkeypatch):
    """Verify the signal handler kills tools by pattern and exits 128+signum."""
    calls = []
    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: calls.append(cmd))
    tmp = tmp_path / "progress.json.tmp"
    tmp.write_text("{}")
    register_temp(tmp)

    handler = InterruptHandler(["recon-all", "eddy"], pkill_exe="pkill")
    with pytest.raises(SystemExit) as info:
        handler._handle(signal.SIGTERM, None)
    assert info.value.code == 143
    assert calls == [["pkill", "-f", "recon-all"], ["pkill", "-f", "eddy"]]
    assert not tmp.exists()


def test_missing_pkill_is_tolerated(monkeypatch):
    """Verify cleanup continues when pkill cannot be launched."""

    def boom(cmd, **kw):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(subprocess, "run", boom)
    InterruptHandler(["eddy"], pkill_exe="/nonexistent/pkill").cleanup()


def test_install_and_uninstall_restore_handlers():
    """Verify previous signal handlers are restored."""
    before = signal.getsignal(signal.SIGTERM)
    handler = InterruptHandler()
    handler.install([signal.SIGTERM])
    assert signal.getsignal(signal.SIGTERM) == handler._handle
    handler.uninstall()
    assert signal.getsignal(signal.SIGTERM) == before
