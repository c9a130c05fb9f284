from types import SimpleNamespace

from dtipipe.utils import resources
from dtipipe.utils.resources import (
    ResourceGuard,
    check_disk,
    check_memory,
    default_thread_count,
)


def test_check_disk_threshold(tmp_path):
    """Verify disk check compares free space with the minimum."""
    assert check_disk(tmp_path, 10, probe=lambda _p: 10.0) is True
    assert check_disk(tmp_path, 10, probe=lambda _p: 9.9) is False


def test_check_memory_threshold():
    """Verify memory check and the zero-threshold shortcut."""
    assert check_memory(0, probe=lambda: 0.0) is True
    assert check_memory(4, probe=lambda: 8.0) is True
    assert check_memory(16, probe=lambda: 8.0) is False


def test_disk_low_logs_warning(tmp_path, monkeypatch):
    """Verify a failed disk gate is logged."""
    calls = {}

    def fake_warning(event, **kw):
        calls["event"] = event
        calls["kw"] = kw

    monkeypatch.setattr(resources, "log", SimpleNamespace(warning=fake_warning, debug=lambda *a, **k: None))
    check_disk(tmp_path, 50, probe=lambda _p: 1.0)
    assert calls["event"] == "resources.disk_low"
    assert calls["kw"]["min_gb"] == 50


def test_gate_reports_first_failure(tmp_path):
    """Verify the combined gate names the failing resource."""
    guard = ResourceGuard(disk_probe=lambda _p: 1.0, mem_probe=lambda: 64.0)
    res = guard.gate(tmp_path, min_disk_gb=5, min_mem_gb=4)
    assert not res.ok and "GB free" in res.reason

    guard = ResourceGuard(disk_probe=lambda _p: 100.0, mem_probe=lambda: 2.0)
    res = guard.gate(tmp_path, min_disk_gb=5, min_mem_gb=4)
    assert not res.ok and "memory" in res.reason

    guard = ResourceGuard(disk_probe=lambda _p: 100.0, mem_probe=lambda: 64.0)
    assert guard.gate(tmp_path / "not" / "yet", min_disk_gb=5).ok


def test_write_permission(tmp_path, monkeypatch):
    """Verify the write check consults the nearest existing directory."""
    assert resources.check_write_permission(tmp_path / "new" / "dir")
    monkeypatch.setattr(resources.os, "access", lambda _p, _m: False)
    assert not resources.check_write_permission(tmp_path)


def test_thread_count_rules():
    """Verify cores-minus-two above four idle cores, all cores otherwise."""
    assert default_thread_count(cpu_count=16, load_avg=0.0) == 14
    assert default_thread_count(cpu_count=4, load_avg=0.0) == 4
    assert default_thread_count(cpu_count=5, load_avg=0.0) == 3
    assert default_thread_count(cpu_count=8, load_avg=3.7) == 3
    assert default_thread_count(cpu_count=2, load_avg=9.0) == 1


def test_thread_count_override_wins():
    """Verify an explicit thread count bypasses the heuristic."""
    assert default_thread_count(3, cpu_count=64, load_avg=0.0) == 3
