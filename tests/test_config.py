"""Smoke tests for the config loader."""

from pathlib import Path

import pytest

from dtipipe import load_config
from dtipipe.config.loader import deep_merge, resolve_yaml
from dtipipe.config.schema import AcquisitionConfig, PipelineConfig, ToolsConfig
from dtipipe.config.tools import resolve_tools
from dtipipe.utils.errors import ConfigError


def test_default_yaml_loads(tmp_path):
    """Verify the packaged default validates once an input root is known."""
    cfg = load_config(input_root=tmp_path)
    assert cfg.paths.input_root == tmp_path.resolve()
    assert cfg.paths.fast_root == tmp_path.resolve() / "derivatives" / "dtipipe" / "fast"
    assert cfg.registration.enabled is False
    assert cfg.registration.thresholds.good_correlation == 0.8
    assert cfg.resources.for_stage("connectivity").min_disk_gb == 50
    assert cfg.storage.attempts == 3
    assert cfg.resume is True


def test_dataset_local_yaml_wins(tmp_path):
    """Verify <input_root>/code/config/dtipipe.yaml overrides the default."""
    cfg_dir = tmp_path / "code" / "config"
    cfg_dir.mkdir(parents=True)
    (cfg_dir / "dtipipe.yaml").write_text("acquisition:\n  pe_dir: LR\nbias_timeout_s: 60\n")
    cfg = load_config(input_root=tmp_path)
    assert cfg.acquisition.pe_dir == "LR"
    assert cfg.acquisition.pe_vector == (-1, 0, 0)
    assert cfg.acquisition.pe_axis == 0
    assert cfg.bias_timeout_s == 60


def test_explicit_yaml_and_overrides(tmp_path):
    """Verify explicit YAML is used and overrides are layered on top."""
    explicit = tmp_path / "custom.yaml"
    explicit.write_text("registration:\n  enabled: true\n  method: ants\n")
    cfg = load_config(
        config_path=explicit,
        input_root=tmp_path,
        overrides={"registration": {"method": "voxelmorph", "quick": None}},
    )
    assert cfg.registration.enabled is True
    assert cfg.registration.method == "voxelmorph"
    assert cfg.registration.quick is True


def test_missing_explicit_yaml(tmp_path):
    """Verify a missing explicit config is a configuration error."""
    with pytest.raises(ConfigError):
        resolve_yaml(tmp_path / "nope.yaml", None)


def test_invalid_values_rejected(tmp_path):
    """Verify schema violations surface as ConfigError."""
    with pytest.raises(ConfigError):
        load_config(input_root=tmp_path, overrides={"acquisition": {"echo_spacing": 0}})
    with pytest.raises(ConfigError):
        load_config(input_root=tmp_path, overrides={"resources": {"stages": {"bogus": {}}}})
    with pytest.raises(ConfigError):
        load_config(input_root=tmp_path, overrides={"registration": {"method": "elastix"}})


def test_invalid_yaml(tmp_path):
    """Verify malformed YAML is reported."""
    bad = tmp_path / "bad.yaml"
    bad.write_text("acquisition: [unclosed\n")
    with pytest.raises(ConfigError):
        load_config(config_path=bad, input_root=tmp_path)


def test_deep_merge_skips_none():
    """Verify None never replaces an existing value."""
    merged = deep_merge({"a": {"b": 1, "c": 2}, "d": 3}, {"a": {"b": None, "c": 5}, "d": None})
    assert merged == {"a": {"b": 1, "c": 5}, "d": 3}


def test_config_is_frozen(tmp_path):
    """Verify the configuration cannot be mutated after validation."""
    cfg = load_config(input_root=tmp_path)
    with pytest.raises(Exception):
        cfg.resume = False  # type: ignore[misc]
    assert isinstance(cfg, PipelineConfig)


def test_acquisition_defaults():
    """Verify AP phase encoding maps to the negative y vector."""
    acq = AcquisitionConfig()
    assert acq.pe_vector == (0, -1, 0)
    assert acq.pe_axis == 1


def test_tool_overrides_merge_with_defaults(tmp_path):
    """Verify user executables overlay the built-in table."""
    exe = tmp_path / "my-eddy"
    exe.write_text("#!/bin/sh\n")
    exe.chmod(0o755)
    cfg = ToolsConfig(executables={"eddy": str(exe)})
    assert cfg.executables["dwidenoise"] == "dwidenoise"
    paths = resolve_tools(cfg, strict=False)
    assert paths.get("eddy") == str(exe)


def test_strict_resolution_requires_tools(tmp_path):
    """Verify missing required tools abort a strict resolution."""
    cfg = ToolsConfig(executables={"eddy": str(tmp_path / "missing-eddy")})
    with pytest.raises(ConfigError):
        resolve_tools(cfg, strict=True)
    paths = resolve_tools(cfg, strict=False)
    assert not paths.has("eddy")
    assert "eddy" in paths.missing
    with pytest.raises(KeyError):
        paths.get("eddy")
