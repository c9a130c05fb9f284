"""
YAML configuration loader.

This helper locates, reads, merges, and validates the pipeline YAML before
returning a :class:`dtipipe.config.schema.PipelineConfig` instance.

Search precedence (first match wins)
1. An explicit path argument (``--config`` on the CLI).
2. ``<input_root>/code/config/dtipipe.yaml`` – project-local override.
3. The packaged default shipped inside the wheel.

CLI flags are layered on top of whichever YAML was selected.  All
resolution logic is concentrated here so the rest of *dtipipe* treats
configuration as an already-validated, immutable object.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from importlib.resources import as_file, files
from pydantic import ValidationError

from dtipipe.utils.errors import ConfigError

from .schema import PipelineConfig

# --------------------------------------------------------------------------- #
# Wheel-internal fallback (works even from a zipped wheel)                    #
# --------------------------------------------------------------------------- #
try:
    _DEFAULT_PIPELINE = files("dtipipe.resources") / "default_pipeline.yaml"
except ModuleNotFoundError:
    _DEFAULT_PIPELINE = (
        Path(__file__).resolve().parent.parent / "resources" / "default_pipeline.yaml"
    )

# --------------------------------------------------------------------------- #
# Helper functions                                                            #
# --------------------------------------------------------------------------- #


def _dataset_local(root: Optional[str | Path], name: str) -> Optional[Path]:
    """Return ``<root>/code/config/<name>`` or *None* if *root* is ``None``."""
    if root is None:
        return None
    return Path(root).expanduser().resolve() / "code" / "config" / name


def _first_existing(*candidates: Optional[Path]) -> Optional[Path]:
    """Return the first path in *candidates* that exists on disk."""
    for p in candidates:
        if p is not None and p.exists():
            return p
    return None


def _load_yaml(path: Path) -> dict:
    """Read a YAML file, returning an empty dict for empty documents."""
    return yaml.safe_load(path.read_text()) or {}


def resolve_yaml(
    explicit: Optional[Path],
    input_root: Optional[Path],
    fname: str = "dtipipe.yaml",
    fallback: Path = _DEFAULT_PIPELINE,
) -> Path:
    """Resolve the YAML path according to the documented precedence.

    Args:
        explicit: Path supplied by the caller (may be ``None``).
        input_root: Raw dataset root (may be ``None``).
        fname: Plain filename searched in the project-local config folder.
        fallback: Packaged default used when no other candidate exists.

    Returns:
        Path to the YAML that should be loaded.

    Raises:
        ConfigError: When *explicit* is given but does not exist.
    """
    if explicit is not None and not explicit.exists():
        raise ConfigError(f"Configuration file not found: {explicit}")
    resolved = _first_existing(explicit, _dataset_local(input_root, fname))
    if resolved is None:
        with as_file(fallback) as p:
            resolved = p
    return resolved


def deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict:
    """Return *base* updated recursively with *overrides*.

    ``None`` values in *overrides* are skipped so unset CLI flags never mask
    values coming from YAML.
    """
    merged: dict = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #
def load_config(
    *,
    config_path: Optional[str | Path] = None,
    input_root: Optional[str | Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> PipelineConfig:
    """Return a fully validated :class:`PipelineConfig`.

    Args:
        config_path: Explicit YAML path. ``None`` triggers the search
            sequence described in the module doc-string.
        input_root: Raw dataset root; also used for the project-local
            override lookup.
        overrides: Nested mapping layered over the YAML (CLI values).

    Returns:
        A frozen :class:`PipelineConfig` ready for downstream use.

    Raises:
        ConfigError: When the merged document fails validation.
    """
    input_root = Path(input_root).expanduser().resolve() if input_root else None
    config_path = Path(config_path).expanduser().resolve() if config_path else None

    yaml_path = resolve_yaml(config_path, input_root)
    try:
        data = _load_yaml(yaml_path)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {yaml_path} – {exc}") from exc

    if input_root is not None:
        data = deep_merge(data, {"paths": {"input_root": str(input_root)}})
    data = deep_merge(data, overrides or {})

    try:
        return PipelineConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration – {exc}") from exc
