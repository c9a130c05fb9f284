from dtipipe.pipelines.discovery import build_subject
from dtipipe.pipelines.runner import StageRunner
from dtipipe.pipelines.subject import SubjectStateMachine
from dtipipe.pipelines.types import StageContract, StageSpec, SubjectState
from dtipipe.utils.checkpoint import CheckpointStore
from dtipipe.utils.errors import ToolError
from dtipipe.utils.events import EventLog

from .utils import FakeEngine, FakeRunner, make_config, roomy_guard

TOKENS = [
    ("distortion_correction", StageContract.ADVISORY),
    ("basic_preprocessing", StageContract.FATAL),
    ("motion_correction", StageContract.FATAL),
    ("refinement", StageContract.ADVISORY),
    ("connectivity", StageContract.ADVISORY),
    ("microstructure", StageContract.ADVISORY),
]


def _machine(tmp_path, failing=(), overrides=None):
    cfg = make_config(tmp_path, overrides)
    log_root = cfg.paths.fast_root / "logs"
    checkpoints = CheckpointStore(log_root)
    events = EventLog(log_root)
    runner = StageRunner(cfg, checkpoints, events, roomy_guard(), FakeRunner(FakeEngine()))
    ran = []

    def make_work(token):
        def work(_subject):
            ran.append(token)
            if token in failing:
                raise ToolError(token, "simulated")

        return work

    toggles = {
        "distortion_correction": lambda c: c.stages.distortion_correction,
        "connectivity": lambda c: c.stages.connectivity,
    }
    specs = [StageSpec(t, c, make_work(t), enabled=toggles.get(t)) for t, c in TOKENS]
    machine = SubjectStateMachine(cfg, runner, specs, events)
    return machine, build_subject(cfg, "sub-001"), ran, checkpoints, events


def test_all_stages_run_in_order(tmp_path):
    """Verify a clean subject ends in the done state."""
    machine, subject, ran, checkpoints, events = _machine(tmp_path)
    result = machine.run(subject)
    assert result.state is SubjectState.DONE and result.success
    assert ran == [t for t, _ in TOKENS]
    assert checkpoints.tokens("sub-001") == {t for t, _ in TOKENS}
    assert events.read_progress("sub-001")["state"] == "done"


def test_fatal_failure_stops_subject(tmp_path):
    """Verify a fatal failure skips every later stage."""
    machine, subject, ran, checkpoints, _events = _machine(tmp_path, failing={"motion_correction"})
    result = machine.run(subject)
    assert result.state is SubjectState.FAILED
    assert ran == ["distortion_correction", "basic_preprocessing", "motion_correction"]
    assert "refinement" not in checkpoints.tokens("sub-001")
    assert result.failure_log.name == "motion_correction.log"
    assert result.error.startswith("motion_correction:")


def test_advisory_failure_continues(tmp_path):
    """Verify advisory failures fall through to the next stage."""
    machine, subject, ran, checkpoints, _events = _machine(
        tmp_path, failing={"distortion_correction", "refinement"}
    )
    result = machine.run(subject)
    assert result.state is SubjectState.DONE
    assert ran == [t for t, _ in TOKENS]
    assert "distortion_correction" not in checkpoints.tokens("sub-001")
    assert "refinement" not in checkpoints.tokens("sub-001")
    assert "microstructure" in result.completed()
    assert "refinement" not in result.completed()


def test_disabled_stage_not_run_or_checkpointed(tmp_path):
    """Verify disabled stages pass through without a checkpoint."""
    machine, subject, ran, checkpoints, _events = _machine(
        tmp_path, overrides={"stages": {"connectivity": False}}
    )
    result = machine.run(subject)
    assert result.success
    assert "connectivity" not in ran
    assert "connectivity" not in checkpoints.tokens("sub-001")
    skipped = [r for r in result.stages if r.stage == "connectivity"][0]
    assert skipped.skipped and skipped.reason == "disabled"
    assert "connectivity" not in result.completed()


def test_rerun_resumes_after_failure(tmp_path):
    """Verify a rerun only executes stages that did not complete."""
    machine, subject, ran, _checkpoints, _events = _machine(tmp_path, failing={"motion_correction"})
    machine.run(subject)
    machine2, _subject, ran2, _c, _e = _machine(tmp_path)
    result = machine2.run(subject)
    assert result.success
    assert ran2 == ["motion_correction", "refinement", "connectivity", "microstructure"]
