"""Pytest configuration for dtipipe tests."""

# No manual modification of ``sys.path`` is required.  The tests rely solely on
# the standard Python import mechanism and the package installation performed by
# the test environment.

import pytest

# Skip the entire suite when optional heavy dependencies are unavailable.
pytest.importorskip("pandas")
pytest.importorskip("nibabel")


@pytest.fixture(autouse=True)
def _isolated_log_dir(tmp_path, monkeypatch):
    """Keep file logs of every test inside its temporary directory."""
    monkeypatch.setenv("DTIPIPE_LOG_DIR", str(tmp_path / "_logs"))
