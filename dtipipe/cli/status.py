"""Entry-point for ``dtipipe-cli status``: read-only checkpoint table."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import click

from dtipipe.config import STAGE_TOKENS, load_config
from dtipipe.pipelines.discovery import discover_subjects
from dtipipe.utils.checkpoint import CheckpointStore
from dtipipe.utils.errors import ConfigError
from dtipipe.utils.events import EventLog

_SHORT = {
    "distortion_correction": "dist",
    "basic_preprocessing": "basic",
    "motion_correction": "eddy",
    "refinement": "refine",
    "connectivity": "conn",
    "microstructure": "micro",
}


@click.command(name="status")
@click.option("--input-root", type=click.Path(file_okay=False, path_type=Path), envvar="DTIPIPE_INPUT_ROOT")
@click.option("--fast-root", type=click.Path(file_okay=False, path_type=Path))
@click.option("-s", "--subject", "subjects", multiple=True, metavar="<sub>")
@click.pass_context
def cli(
    ctx: click.Context,
    input_root: Optional[Path],
    fast_root: Optional[Path],
    subjects: Tuple[str, ...],
) -> None:
    """Show which stages have a checkpoint for each subject."""
    obj = ctx.obj or {}
    try:
        cfg = load_config(
            config_path=obj.get("config_path"),
            input_root=input_root,
            overrides={"paths": {"input_root": input_root, "fast_root": fast_root}},
        )
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    log_root = cfg.paths.fast_root / "logs"
    store = CheckpointStore(log_root)
    events = EventLog(log_root)
    subs = discover_subjects(cfg.paths.input_root, subjects)
    if not subs:
        raise click.ClickException(f"No subjects found under {cfg.paths.input_root}")

    header = f"{'subject':<16}" + "".join(f"{_SHORT[t]:>8}" for t in STAGE_TOKENS) + "  state"
    click.echo(header)
    for sub in subs:
        done = store.tokens(sub)
        marks = "".join(f"{('✓' if t in done else '·'):>8}" for t in STAGE_TOKENS)
        progress = events.read_progress(sub) or {}
        click.echo(f"{sub:<16}{marks}  {progress.get('state', '-')}")


__all__ = ["cli"]
