"""Expose the project-wide Click group for the ``dtipipe-cli`` script.

The module:

* declares a single Click *group* called :pyfunc:`main`;
* wires common global flags (YAML override, verbosity, log mirror);
* sets up console logging via :pyfunc:`dtipipe.utils.logging.setup_logging`
  (sub-commands re-run it once the storage tiers are known);
* registers every sub-command located in sibling modules lazily.
"""

from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, Dict

import click

from dtipipe import __version__
from dtipipe.utils.logging import setup_logging


class LazyGroup(click.Group):
    """Click group that imports sub-commands lazily."""

    def __init__(self, *args, **kwargs):
        """Initialise the base class and prepare the lazy registry."""
        self._lazy: dict[str, str] = {}
        super().__init__(*args, **kwargs)

    def set_lazy_command(self, name: str, target: str) -> None:
        """Register *name* to be imported from ``target`` on first use."""
        self._lazy[name] = target

    def list_commands(self, ctx):  # noqa: D401 - Click signature
        """Return eager and lazy command names."""
        return sorted(set(super().list_commands(ctx)) | set(self._lazy))

    def get_command(self, ctx, cmd_name):  # noqa: D401 - Click signature
        """Resolve *cmd_name* from the eager map or import table."""
        cmd = super().get_command(ctx, cmd_name)
        if cmd is not None:
            return cmd
        target = self._lazy.get(cmd_name)
        if not target:
            return None
        module_name, attr = target.split(":", 1)
        module = importlib.import_module(module_name)
        cmd = getattr(module, attr)
        self.add_command(cmd, name=cmd_name)
        return cmd


# ─────────────────────────────────────────────────────────────────────────────
# Context settings shared by the entire Click hierarchy
# ─────────────────────────────────────────────────────────────────────────────
_CTX: Dict[str, Any] = dict(
    help_option_names=["-h", "--help"],
    show_default=True,
    max_content_width=120,
)


@click.group(
    cls=LazyGroup,
    context_settings=_CTX,
    help="""\b
dtipipe-cli – diffusion MRI pipeline orchestrator.
""",
)
@click.version_option(__version__)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Pipeline YAML (defaults to <input-root>/code/config/dtipipe.yaml, then the packaged default).",
)
@click.option("-v", "--verbose", is_flag=True, help="INFO-level console output.")
@click.option("--debug", is_flag=True, help="DEBUG console output.")
@click.option(
    "--save-logfile",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Mirror console output into this plain-text file.",
)
@click.pass_context
def main(  # noqa: D401 – Click requires the callback to be named “main”.
    ctx: click.Context,
    config_path: Path | None,
    verbose: bool,
    debug: bool,
    save_logfile: Path | None,
) -> None:
    """Root command executed by *dtipipe-cli*.

    Args:
        ctx: Click runtime context that carries objects across sub-commands.
        config_path: Explicit YAML configuration.
        verbose: Emit INFO-level messages on the console.
        debug: Emit DEBUG-level messages.
        save_logfile: Optional plain-text mirror of console output.
    """
    # Console only until a sub-command knows where the fast tier lives.
    setup_logging(verbose=verbose, debug=debug, file_log=False)
    ctx.obj = {
        "config_path": config_path,
        "verbose": verbose,
        "debug": debug,
        "save_logfile": save_logfile,
    }


main.set_lazy_command("run", "dtipipe.cli.run:cli")
main.set_lazy_command("status", "dtipipe.cli.status:cli")

# The public symbol exported by this module.  Required for ``python -m`` entry-points.
cli = main
__all__: list[str] = ["main"]
