"""Entry-point for ``dtipipe-cli run``.

Validates every flag at start-up, builds the immutable configuration, and
hands the subject list to :class:`~dtipipe.pipelines.driver.PipelineDriver`.
Exit status is 0 when every subject succeeded, 1 when any failed, and
``128 + signum`` on operator interrupt.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
import structlog

from dtipipe.config import PipelineConfig, load_config, resolve_tools
from dtipipe.config.tools import ToolPaths
from dtipipe.engines import DockerEngine, NativeEngine
from dtipipe.pipelines.discovery import discover_subjects
from dtipipe.pipelines.driver import PipelineDriver
from dtipipe.tools.base import ToolRunner
from dtipipe.utils.errors import ConfigError
from dtipipe.utils.interrupt import InterruptHandler
from dtipipe.utils.logging import setup_logging
from dtipipe.utils.resources import default_thread_count

log = structlog.get_logger()

_PE_DIRS = ("AP", "PA", "LR", "RL")
_ML_METHODS = ("auto", "voxelmorph", "synthmorph", "ants")


def build_overrides(
    *,
    input_root: Optional[Path] = None,
    work_root: Optional[Path] = None,
    fast_root: Optional[Path] = None,
    large_root: Optional[Path] = None,
    pe_dir: Optional[str] = None,
    echo_spacing: Optional[float] = None,
    skip_distortion_correction: bool = False,
    skip_connectivity: bool = False,
    ml_registration: bool = False,
    ml_method: Optional[str] = None,
    quick: Optional[bool] = None,
    skip_quality_check: bool = False,
    dry_run: bool = False,
    resume: Optional[bool] = None,
    threads: Optional[int] = None,
) -> Dict[str, Any]:
    """Translate CLI values into a nested override mapping.

    Unset values are ``None`` and therefore never mask YAML settings.
    """
    return {
        "paths": {
            "input_root": input_root,
            "work_root": work_root,
            "fast_root": fast_root,
            "large_root": large_root,
        },
        "acquisition": {
            "pe_dir": pe_dir.upper() if pe_dir else None,
            "echo_spacing": echo_spacing,
        },
        "stages": {
            "distortion_correction": False if skip_distortion_correction else None,
            "connectivity": False if skip_connectivity else None,
        },
        "registration": {
            "enabled": True if ml_registration or ml_method else None,
            "method": ml_method,
            "quick": quick,
            "skip_quality_check": True if skip_quality_check else None,
        },
        "dry_run": True if dry_run else None,
        "resume": resume,
        "threads": threads,
    }


def build_runner(tools: ToolPaths, threads: int) -> ToolRunner:
    """Return a tool runner with native and (when available) Docker engines."""
    native = NativeEngine(timeout_exe=tools.get("timeout") if tools.has("timeout") else "timeout")
    container = (
        DockerEngine(docker_exe=tools.get("docker"), native=native) if tools.has("docker") else None
    )
    return ToolRunner(native, container, threads=threads)


def _load(config_path: Optional[Path], overrides: Dict[str, Any]) -> PipelineConfig:
    try:
        return load_config(
            config_path=config_path,
            input_root=overrides["paths"]["input_root"],
            overrides=overrides,
        )
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@click.command(name="run")
@click.option(
    "--input-root",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="DTIPIPE_INPUT_ROOT",
    help="Raw dataset root holding <subject>/dwi folders.",
)
@click.option("--work-root", type=click.Path(file_okay=False, path_type=Path), help="Ephemeral scratch root.")
@click.option("--fast-root", type=click.Path(file_okay=False, path_type=Path), help="Durable fast tier.")
@click.option("--large-root", type=click.Path(file_okay=False, path_type=Path), help="Durable large tier.")
@click.option("-s", "--subject", "subjects", multiple=True, metavar="<sub>", help="Process only these subjects.")
@click.option("--pe-dir", type=click.Choice(_PE_DIRS, case_sensitive=False), help="Phase-encoding direction.")
@click.option(
    "--echo-spacing",
    type=click.FloatRange(min=0, min_open=True),
    help="Effective echo spacing in seconds.",
)
@click.option("--skip-distortion-correction", is_flag=True, help="Do not run distortion correction.")
@click.option("--skip-connectivity", is_flag=True, help="Do not run connectivity analysis.")
@click.option("--ml-registration", is_flag=True, help="Use learned registration with quality-gated fallback.")
@click.option("--ml-method", type=click.Choice(_ML_METHODS), help="Registration method (implies --ml-registration).")
@click.option("--quick/--full", default=None, help="Registration speed/accuracy trade-off.")
@click.option("--skip-quality-check", is_flag=True, help="Accept learned registration without the quality gate.")
@click.option("--dry-run", is_flag=True, help="Print the planned stage executions and exit.")
@click.option("--resume/--no-resume", default=None, help="Honour recorded checkpoints.")
@click.option("--threads", type=click.IntRange(min=1), help="Thread count for external tools.")
@click.pass_context
def cli(
    ctx: click.Context,
    input_root: Optional[Path],
    work_root: Optional[Path],
    fast_root: Optional[Path],
    large_root: Optional[Path],
    subjects: Tuple[str, ...],
    pe_dir: Optional[str],
    echo_spacing: Optional[float],
    skip_distortion_correction: bool,
    skip_connectivity: bool,
    ml_registration: bool,
    ml_method: Optional[str],
    quick: Optional[bool],
    skip_quality_check: bool,
    dry_run: bool,
    resume: Optional[bool],
    threads: Optional[int],
) -> None:
    """Run the diffusion pipeline for every selected subject."""
    obj = ctx.obj or {}
    overrides = build_overrides(
        input_root=input_root,
        work_root=work_root,
        fast_root=fast_root,
        large_root=large_root,
        pe_dir=pe_dir,
        echo_spacing=echo_spacing,
        skip_distortion_correction=skip_distortion_correction,
        skip_connectivity=skip_connectivity,
        ml_registration=ml_registration,
        ml_method=ml_method,
        quick=quick,
        skip_quality_check=skip_quality_check,
        dry_run=dry_run,
        resume=resume,
        threads=threads,
    )
    cfg = _load(obj.get("config_path"), overrides)

    setup_logging(
        fast_root=cfg.paths.fast_root,
        verbose=obj.get("verbose", False),
        debug=obj.get("debug", False),
        extra_text_log=obj.get("save_logfile"),
        file_log=not cfg.dry_run,
    )

    subs = discover_subjects(cfg.paths.input_root, subjects)
    if not subs:
        raise click.ClickException(f"No subjects found under {cfg.paths.input_root}")

    try:
        tools = resolve_tools(cfg.tools, strict=not cfg.dry_run)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    n_threads = default_thread_count(cfg.threads)
    driver = PipelineDriver(cfg, tools=tools, runner=build_runner(tools, n_threads), threads=n_threads)

    if cfg.dry_run:
        driver.echo_plan(subs)
        ctx.exit(0)

    handler = InterruptHandler(cfg.kill_patterns)
    handler.install()
    try:
        _ok, failed = driver.run(subs)
    finally:
        handler.uninstall()
    driver.report()
    ctx.exit(1 if failed else 0)


__all__ = ["cli", "build_overrides", "build_runner"]
