import shutil

import pytest

from dtipipe.engines import DockerEngine, NativeEngine
from dtipipe.tools.base import CommandTool, ToolRunner, ToolSpec, thread_env
from dtipipe.utils.errors import ToolError

from .utils import FakeEngine, FakeRunner

needs_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="sh not available")


@needs_sh
def test_native_captures_output():
    """Verify native runs capture merged output and status."""
    res = NativeEngine().run(["sh", "-c", "echo hello; echo oops >&2; exit 3"])
    assert res.returncode == 3
    assert "hello" in res.output and "oops" in res.output
    assert not res.timed_out


def test_native_missing_executable():
    """Verify a missing executable yields 127 instead of raising."""
    res = NativeEngine().run(["/nonexistent/tool-xyz"])
    assert res.returncode == 127


def test_wrap_timeout():
    """Verify the timeout wrapper arguments."""
    eng = NativeEngine(timeout_exe="/usr/bin/timeout")
    assert eng.wrap_timeout(["a", "b"], None) == ["a", "b"]
    assert eng.wrap_timeout(["a"], 90) == ["/usr/bin/timeout", "--kill-after=30", "90", "a"]


def test_native_refuses_images():
    """Verify container specs cannot run natively."""
    with pytest.raises(ValueError):
        NativeEngine().run(["x"], image="img")


def test_docker_command():
    """Verify mounts, environment and image ordering of docker run."""
    eng = DockerEngine(docker_exe="/usr/bin/docker", platform="linux/amd64")
    cmd = eng.build_command("img:1", ["--notopup"], volumes={"/in": "/INPUTS:ro"}, env={"A": "1"})
    assert cmd[:5] == ["/usr/bin/docker", "run", "--rm", "--platform", "linux/amd64"]
    assert cmd[cmd.index("-v") + 1] == "/in:/INPUTS:ro"
    assert cmd[cmd.index("-e") + 1] == "A=1"
    assert cmd[-2:] == ["img:1", "--notopup"]


def test_thread_env():
    """Verify tool thread caps."""
    env = thread_env(4)
    assert env["OMP_NUM_THREADS"] == "4"
    assert env["MRTRIX_NTHREADS"] == "4"
    assert thread_env(0)["OMP_NUM_THREADS"] == "1"


def test_runner_requires_declared_outputs(tmp_path):
    """Verify a zero exit without outputs is a failure."""
    engine = FakeEngine()
    engine.no_outputs.add("bet")
    runner = FakeRunner(engine)
    with pytest.raises(ToolError) as info:
        CommandTool("bet", ["bet"], outputs=[tmp_path / "brain.nii.gz"]).execute(runner)
    assert "expected output missing" in str(info.value)
    assert info.value.returncode == 0


def test_runner_timeout_handling(tmp_path):
    """Verify timeouts raise unless the caller accepts them."""
    engine = FakeEngine()
    engine.timeouts.add("dwibiascorrect")
    runner = FakeRunner(engine)
    spec = ToolSpec("dwibiascorrect", ["dwibiascorrect"], [tmp_path / "o.nii.gz"], timeout=5)
    with pytest.raises(ToolError):
        runner.run(spec)
    assert runner.run(spec, allow_timeout=True).timed_out


def test_runner_without_container_engine():
    """Verify container specs need a container engine."""
    runner = ToolRunner(NativeEngine())
    with pytest.raises(ToolError):
        runner.run(ToolSpec("synb0", [], image="img"))


def test_runner_transcript(tmp_path):
    """Verify commands and output accumulate in the transcript."""
    runner = FakeRunner(FakeEngine())
    CommandTool("mrmath", ["mrmath", "a", "mean"], outputs=[tmp_path / "m.nii.gz"]).execute(runner)
    assert runner.transcript == ["$ mrmath a mean", "mrmath ok"]
    runner.reset_transcript()
    assert runner.transcript == []
