import json
import os

import pandas as pd
import pytest

from dtipipe.pipelines.driver import PipelineDriver
from dtipipe.pipelines.stages import Layout
from dtipipe.pipelines.discovery import build_subject
from dtipipe.tools.freesurfer import RECON_CRITICAL
from dtipipe.utils.lock import SubjectLockManager
from dtipipe.utils.resources import ResourceGuard

from .utils import FakeEngine, FakeRunner, fake_tools, make_config, make_subject, roomy_guard


def _driver(cfg, engine=None, *, tools=None, guard=None):
    engine = engine or FakeEngine()
    driver = PipelineDriver(
        cfg,
        tools=tools or fake_tools(),
        runner=FakeRunner(engine),
        guard=guard or roomy_guard(),
        sleep=lambda _s: None,
    )
    return driver, engine


def _no_connectivity(tmp_path, **extra):
    overrides = {"stages": {"connectivity": False}, "registration": {"enabled": False}}
    overrides.update(extra)
    return make_config(tmp_path, overrides)


def test_single_subject_happy_path(tmp_path):
    """Verify a full run produces tensor maps and no connectome."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root, "sub-001")
    driver, engine = _driver(cfg)

    ok, failed = driver.run(["sub-001"])
    assert (ok, failed) == (1, 0)

    lay = Layout(build_subject(cfg, "sub-001"))
    for metric in ("FA", "MD", "AD", "RD"):
        assert lay.metric_map(metric).is_file()
    assert not lay.connectome.exists()
    assert lay.topup_fieldcoef.is_file()
    assert lay.eddy_dwi.is_file() and lay.dwi_biascorr.is_file()

    tokens = driver.checkpoints.tokens("sub-001")
    assert "connectivity" not in tokens
    assert {"basic_preprocessing", "motion_correction", "refinement", "microstructure"} <= tokens

    record = json.loads(lay.registration_record.read_text())
    assert record["applied_method"] == "fsl"
    assert lay.t1w_in_dwi.is_file()

    # single shell: no NODDI
    assert "noddi" not in engine.names
    # scratch is reclaimed after success
    assert not (cfg.paths.work_root / "sub-001").exists()


def test_eddy_uses_susceptibility_field(tmp_path):
    """Verify eddy receives the topup field when distortion correction ran."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root)
    driver, engine = _driver(cfg)
    driver.run(["sub-001"])
    eddy = [s for s in engine.calls if s.name == "eddy"][0]
    assert any(str(a).startswith("--topup=") for a in eddy.args)
    assert engine.names.index("topup") < engine.names.index("eddy")


def test_distortion_failure_falls_back(tmp_path):
    """Verify a failed synthetic b0 leaves eddy running without a field."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root)
    engine = FakeEngine()
    engine.fail["synb0"] = 1
    driver, _ = _driver(cfg, engine)
    ok, failed = driver.run(["sub-001"])
    assert (ok, failed) == (1, 0)
    eddy = [s for s in engine.calls if s.name == "eddy"][0]
    assert not any(str(a).startswith("--topup=") for a in eddy.args)
    assert "distortion_correction" not in driver.checkpoints.tokens("sub-001")


def test_bias_timeout_keeps_input(tmp_path):
    """Verify a bias-correction timeout keeps the eddy output and the stage succeeds."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root)
    engine = FakeEngine()
    engine.timeouts.add("dwibiascorrect")
    driver, _ = _driver(cfg, engine)
    assert driver.run(["sub-001"]) == (1, 0)
    lay = Layout(build_subject(cfg, "sub-001"))
    assert not lay.dwi_biascorr.exists()
    assert "refinement" in driver.checkpoints.tokens("sub-001")
    tensor = [s for s in engine.calls if s.name == "dwi2tensor"][0]
    assert str(lay.eddy_dwi) in [str(a) for a in tensor.args]


def test_resume_after_interrupt(tmp_path):
    """Verify an interrupted run resumes at the interrupted stage."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root)
    engine = FakeEngine()

    def interrupt(_spec):
        raise SystemExit(130)

    engine.hooks["dwibiascorrect"] = interrupt
    driver, _ = _driver(cfg, engine)
    with pytest.raises(SystemExit):
        driver.run(["sub-001"])
    assert "refinement" not in driver.checkpoints.tokens("sub-001")
    assert "motion_correction" in driver.checkpoints.tokens("sub-001")

    driver2, engine2 = _driver(cfg)
    assert driver2.run(["sub-001"]) == (1, 0)
    assert "dwidenoise" not in engine2.names
    assert "eddy" not in engine2.names
    assert engine2.names[0] == "dwibiascorrect"


def test_lock_held_elsewhere_is_failure(tmp_path):
    """Verify a subject locked by another instance is counted as failed."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root)
    other = SubjectLockManager(cfg.paths.fast_root / "logs")
    assert other.acquire("sub-001")
    try:
        driver, engine = _driver(cfg)
        assert driver.run(["sub-001"]) == (0, 1)
        assert engine.calls == []
        capture = driver.summary.results[0].failure_log
        assert capture is not None and capture.name == "lock.log"
        text = capture.read_text()
        assert f"holder_pid: {os.getpid()}" in text
        assert str(other.lock_path("sub-001")) in text
    finally:
        other.release("sub-001")


def test_preflight_failure_does_not_stop_others(tmp_path):
    """Verify one subject with broken inputs does not affect the next."""
    cfg = _no_connectivity(tmp_path)
    bad = make_subject(cfg.paths.input_root, "sub-001")
    (bad / "dwi" / "sub-001_dwi.bval").unlink()
    make_subject(cfg.paths.input_root, "sub-002")
    driver, _ = _driver(cfg)

    assert driver.run(["sub-002", "sub-001"]) == (1, 1)
    failure = cfg.paths.fast_root / "logs" / "sub-001" / "failures" / "preflight.log"
    assert "missing input" in failure.read_text()

    table = pd.read_csv(cfg.paths.fast_root / "logs" / "run_summary.tsv", sep="\t")
    assert list(table["subject"]) == ["sub-001", "sub-002"]
    assert list(table["status"]) == ["failed", "done"]
    assert driver.summary.stage_counts["microstructure"] == 1


def test_subject_disk_gate(tmp_path):
    """Verify the per-subject disk gate fails the subject before any tool runs."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root)
    guard = ResourceGuard(disk_probe=lambda _p: 1.0, mem_probe=lambda: 64.0)
    driver, engine = _driver(cfg, guard=guard)
    assert driver.run(["sub-001"]) == (0, 1)
    assert engine.calls == []


def test_fatal_failure_reported(tmp_path):
    """Verify a fatal stage failure fails the subject and leaves a capture."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root)
    engine = FakeEngine()
    engine.fail["eddy"] = 1
    driver, _ = _driver(cfg, engine)
    assert driver.run(["sub-001"]) == (0, 1)
    assert "dwi2tensor" not in engine.names
    failure = driver.summary.failures[0]
    assert failure.failure_log.name == "motion_correction.log"
    # scratch kept for inspection
    assert (cfg.paths.work_root / "sub-001").exists()


def test_multishell_runs_noddi(tmp_path):
    """Verify two non-zero shells add NODDI maps."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root, shells=(1000, 2000))
    driver, engine = _driver(cfg)
    assert driver.run(["sub-001"]) == (1, 0)
    lay = Layout(build_subject(cfg, "sub-001"))
    for name in ("NDI", "ODI", "FWF"):
        assert lay.noddi_map(name).is_file()


def test_connectivity_produces_connectome(tmp_path):
    """Verify the connectivity stage writes the connectome and tractogram."""
    fs_lut = tmp_path / "FreeSurferColorLUT.txt"
    nodes_lut = tmp_path / "fs_default.txt"
    fs_lut.write_text("lut")
    nodes_lut.write_text("lut")
    cfg = make_config(
        tmp_path,
        {"tools": {"freesurfer_lut": fs_lut, "connectome_lut": nodes_lut}},
    )
    make_subject(cfg.paths.input_root)
    driver, engine = _driver(cfg)
    assert driver.run(["sub-001"]) == (1, 0)
    lay = Layout(build_subject(cfg, "sub-001"))
    assert lay.connectome.is_file()
    assert lay.tracks.is_file()
    assert (lay.freesurfer_subject / "mri" / "aparc+aseg.mgz").is_file()
    five_tt = [s for s in engine.calls if s.name == "5ttgen"][0]
    assert str(lay.t1w_in_dwi) in [str(a) for a in five_tt.args]


def test_existing_freesurfer_reconstruction_is_reused(tmp_path):
    """Verify recon-all is skipped when the large tier holds a reconstruction."""
    fs_lut = tmp_path / "FreeSurferColorLUT.txt"
    nodes_lut = tmp_path / "fs_default.txt"
    fs_lut.write_text("lut")
    nodes_lut.write_text("lut")
    cfg = make_config(
        tmp_path,
        {"tools": {"freesurfer_lut": fs_lut, "connectome_lut": nodes_lut}},
    )
    make_subject(cfg.paths.input_root)
    lay = Layout(build_subject(cfg, "sub-001"))
    for rel in RECON_CRITICAL:
        target = lay.freesurfer_subject / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("recon")

    driver, engine = _driver(cfg)
    assert driver.run(["sub-001"]) == (1, 0)
    assert "recon-all" not in engine.names
    assert lay.connectome.is_file()


def test_ml_registration_with_unreadable_images_falls_back(tmp_path):
    """Verify unreadable learned-registration images only cost that attempt."""
    cfg = _no_connectivity(tmp_path, registration={"enabled": True, "method": "auto"})
    make_subject(cfg.paths.input_root)
    driver, engine = _driver(cfg)
    assert driver.run(["sub-001"]) == (1, 0)

    tokens = driver.checkpoints.tokens("sub-001")
    assert {"refinement", "microstructure"} <= tokens
    lay = Layout(build_subject(cfg, "sub-001"))
    record = json.loads(lay.registration_record.read_text())
    assert record["applied_method"] == "ants"
    first = record["attempts"][0]
    assert first["method"] == "synthmorph" and first["success"] is False
    assert engine.names.index("mri_synthmorph") < engine.names.index("antsRegistrationSyN")
    assert not (cfg.paths.fast_root / "logs" / "sub-001" / "failures").exists()


def test_unexpected_refinement_error_is_advisory(tmp_path):
    """Verify an unexpected error inside refinement does not fail the subject."""
    cfg = _no_connectivity(tmp_path, registration={"enabled": True, "method": "auto"})
    make_subject(cfg.paths.input_root)
    engine = FakeEngine()

    def explode(_spec):
        raise RuntimeError("model weights corrupted")

    engine.hooks["mri_synthmorph"] = explode
    driver, _ = _driver(cfg, engine)
    assert driver.run(["sub-001"]) == (1, 0)

    tokens = driver.checkpoints.tokens("sub-001")
    assert "refinement" not in tokens
    assert "microstructure" in tokens
    capture = cfg.paths.fast_root / "logs" / "sub-001" / "failures" / "refinement.log"
    text = capture.read_text()
    assert "RuntimeError: model weights corrupted" in text
    assert "--- traceback ---" in text
    assert "dwi2tensor" in engine.names


def test_connectivity_without_t1w_is_advisory(tmp_path):
    """Verify a missing T1w only costs the anatomical stages."""
    cfg = make_config(tmp_path)
    make_subject(cfg.paths.input_root, t1w=False)
    driver, engine = _driver(cfg)
    assert driver.run(["sub-001"]) == (1, 0)
    tokens = driver.checkpoints.tokens("sub-001")
    assert "connectivity" not in tokens
    assert "distortion_correction" not in tokens
    assert "microstructure" in tokens
    lay = Layout(build_subject(cfg, "sub-001"))
    assert json.loads(lay.registration_record.read_text())["applied_method"] == "none"


def test_plan_has_no_side_effects(tmp_path):
    """Verify the dry-run plan reports actions without creating outputs."""
    cfg = _no_connectivity(tmp_path)
    make_subject(cfg.paths.input_root)
    driver, engine = _driver(cfg)
    driver.checkpoints.record("sub-001", "basic_preprocessing")
    plan = driver.plan(["sub-001"])
    actions = dict(plan["sub-001"])
    assert actions["basic_preprocessing"] == "skip-checkpoint"
    assert actions["connectivity"] == "skip-disabled"
    assert actions["motion_correction"] == "run"
    assert engine.calls == []
    assert not cfg.paths.work_root.exists()
