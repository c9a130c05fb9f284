"""Test helpers for dtipipe modules."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence

import nibabel as nib
import numpy as np

from dtipipe.config import PipelineConfig, load_config
from dtipipe.config.schema import _DEFAULT_TOOLS
from dtipipe.config.tools import ToolPaths
from dtipipe.engines.base import TIMEOUT_RETURNCODE, EngineResult, ExecutionEngine
from dtipipe.tools.base import ToolRunner, ToolSpec
from dtipipe.utils.resources import ResourceGuard


def make_subject(
    root: Path,
    sub: str = "sub-001",
    *,
    n_vols: int = 32,
    n_b0: int = 2,
    shells: Sequence[int] = (1000,),
    t1w: bool = True,
    shape: tuple = (4, 4, 3),
) -> Path:
    """Create raw inputs for *sub* under *root*.

    Returns:
        The subject directory.
    """
    rng = np.random.default_rng(0)
    dwi_dir = root / sub / "dwi"
    dwi_dir.mkdir(parents=True, exist_ok=True)
    data = rng.random((*shape, n_vols)).astype("float32")
    nib.Nifti1Image(data, np.eye(4)).to_filename(dwi_dir / f"{sub}_dwi.nii.gz")

    bvals = np.zeros(n_vols)
    n_dw = n_vols - n_b0
    for i in range(n_dw):
        bvals[n_b0 + i] = shells[i % len(shells)]
    vecs = rng.normal(size=(3, n_vols))
    vecs /= np.linalg.norm(vecs, axis=0)
    vecs[:, :n_b0] = 0.0
    np.savetxt(dwi_dir / f"{sub}_dwi.bval", bvals[None, :], fmt="%d")
    np.savetxt(dwi_dir / f"{sub}_dwi.bvec", vecs, fmt="%.6f")

    if t1w:
        anat = root / sub / "anat"
        anat.mkdir(parents=True, exist_ok=True)
        t1 = rng.random((8, 8, 6)).astype("float32")
        nib.Nifti1Image(t1, np.eye(4)).to_filename(anat / f"{sub}_T1w.nii.gz")
    return root / sub


def make_config(tmp_path: Path, overrides: Optional[dict] = None) -> PipelineConfig:
    """Return a config rooted in *tmp_path* with fast retries."""
    base = {
        "paths": {
            "input_root": tmp_path / "raw",
            "work_root": tmp_path / "work",
            "fast_root": tmp_path / "fast",
            "large_root": tmp_path / "large",
        },
        "storage": {"attempts": 3, "initial_delay_s": 5.0},
    }
    cfg = load_config(overrides=base)
    if overrides:
        from dtipipe.config.loader import deep_merge

        cfg = PipelineConfig(**deep_merge(cfg.model_dump(), overrides))
    return cfg


def fake_tools(exclude: Iterable[str] = ()) -> ToolPaths:
    """Every default tool resolved to a fake path, minus *exclude*."""
    skip = set(exclude)
    paths = {n: Path("/opt/fake/bin") / exe for n, exe in _DEFAULT_TOOLS.items() if n not in skip}
    return ToolPaths(paths=paths, missing=tuple(sorted(skip)))


def roomy_guard() -> ResourceGuard:
    """A guard that always sees plenty of disk and memory."""
    return ResourceGuard(disk_probe=lambda _p: 1000.0, mem_probe=lambda: 1000.0)


class FakeEngine(ExecutionEngine):
    """Record tool specs and simulate their effects.

    Successful tools create their declared outputs; ``rsync`` really copies.

    Attributes:
        calls: Specs in execution order.
        fail: Tool name → return code to simulate.
        timeouts: Tool names that hit their timeout.
        no_outputs: Tool names that exit 0 without writing outputs.
        hooks: Tool name → callable run before the tool (e.g. to interrupt).
    """

    def __init__(self) -> None:
        self.calls: list[ToolSpec] = []
        self.fail: Dict[str, int] = {}
        self.timeouts: set[str] = set()
        self.no_outputs: set[str] = set()
        self.hooks: Dict[str, object] = {}
        self.current: Optional[ToolSpec] = None

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.calls]

    def run(self, args, *, env=None, cwd=None, timeout=None, image=None, volumes=None):
        spec = self.current
        assert spec is not None
        self.calls.append(spec)
        name = spec.name
        hook = self.hooks.get(name)
        if hook is not None:
            hook(spec)
        if name in self.timeouts and timeout is not None:
            return EngineResult(TIMEOUT_RETURNCODE, ["terminated"], True, 0.0)
        if name in self.fail:
            return EngineResult(self.fail[name], [f"{name}: simulated failure"], False, 0.0)
        if name == "rsync":
            src, dest = Path(args[-2].rstrip("/")), Path(args[-1].rstrip("/"))
            shutil.copytree(src, dest, dirs_exist_ok=True)
        elif name not in self.no_outputs:
            for out in spec.outputs:
                Path(out).parent.mkdir(parents=True, exist_ok=True)
                Path(out).touch()
        return EngineResult(0, [f"{name} ok"], False, 0.01)


class FakeRunner(ToolRunner):
    """Tool runner wired to a :class:`FakeEngine` for both engines."""

    def __init__(self, engine: FakeEngine) -> None:
        super().__init__(engine, engine, threads=1)
        self.engine = engine

    def run(self, spec, *, allow_timeout=False):
        self.engine.current = spec
        return super().run(spec, allow_timeout=allow_timeout)
