"""Utility functions to print formatted CLI messages for progress updates."""

from __future__ import annotations

import click

__all__ = [
    "echo_banner",
    "echo_subject",
    "echo_success",
    "echo_failure",
    "echo_section",
    "echo_plan",
]


def echo_banner(text: str) -> None:
    """Print a colourful banner announcing a processing step.

    Args:
        text: Banner text.
    """
    click.secho(f"\n=== {text} ===", fg="cyan")


def echo_subject(sub: str, detail: str | None = None) -> None:
    """Echo a bullet with the subject identifier and optional detail."""
    if detail:
        click.echo(f"  • {sub}: {detail}")
    else:
        click.echo(f"  • {sub}")


def echo_success(text: str) -> None:
    """Echo a green success message prefixed with a tick.

    Args:
        text: Message to display.
    """
    click.secho(f"✓ {text}", fg="green")


def echo_failure(text: str) -> None:
    """Echo a red failure message prefixed with a cross."""
    click.secho(f"✗ {text}", fg="red")


def echo_section(text: str) -> None:
    """Echo a purple section header."""
    click.secho(f"\n  — {text} —", fg="magenta")


def echo_plan(stage: str, action: str) -> None:
    """Echo one dry-run plan line (``run``, ``skip`` …) for a stage."""
    colour = {"run": "yellow", "skip-checkpoint": "green"}.get(action, "white")
    click.echo(f"    {stage:<24} ", nl=False)
    click.secho(action, fg=colour)
