"""Run-level summary: counts, stage completion, storage use and failures."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import click
import pandas as pd

from dtipipe.config.schema import STAGE_TOKENS, PipelineConfig
from dtipipe.utils.checkpoint import CheckpointStore
from dtipipe.utils.display import echo_banner, echo_failure, echo_section, echo_success
from dtipipe.utils.storage import tier_usage_gb

from .types import SubjectResult

SUMMARY_FILE = "run_summary.tsv"


@dataclass
class FailureEntry:
    subject: str
    reason: str
    failure_log: Optional[Path]


@dataclass
class RunSummary:
    """Aggregated outcome of a run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    stage_counts: Dict[str, int] = field(default_factory=dict)
    storage_gb: Dict[str, float] = field(default_factory=dict)
    failures: List[FailureEntry] = field(default_factory=list)
    results: List[SubjectResult] = field(default_factory=list)

    def to_frame(self) -> pd.DataFrame:
        """One row per subject."""
        rows = []
        for r in self.results:
            rows.append(
                {
                    "subject": r.subject,
                    "status": r.state.value,
                    "completed_stages": ",".join(r.completed()),
                    "error": r.error,
                    "failure_log": str(r.failure_log) if r.failure_log else "",
                }
            )
        return pd.DataFrame(
            rows, columns=["subject", "status", "completed_stages", "error", "failure_log"]
        )


def build_summary(
    cfg: PipelineConfig, results: Sequence[SubjectResult], checkpoints: CheckpointStore
) -> RunSummary:
    """Aggregate *results* and the checkpoint store into a :class:`RunSummary`."""
    summary = RunSummary(results=list(results))
    summary.total = len(results)
    summary.succeeded = sum(1 for r in results if r.success)
    summary.failed = summary.total - summary.succeeded
    tokens = {r.subject: checkpoints.tokens(r.subject) for r in results}
    summary.stage_counts = {t: sum(1 for s in tokens.values() if t in s) for t in STAGE_TOKENS}
    summary.storage_gb = {
        "work": tier_usage_gb(cfg.paths.work_root),
        "fast": tier_usage_gb(cfg.paths.fast_root),
        "large": tier_usage_gb(cfg.paths.large_root),
    }
    summary.failures = [
        FailureEntry(r.subject, r.error or r.state.value, r.failure_log)
        for r in results
        if not r.success
    ]
    return summary


def write_summary(summary: RunSummary, path: Path) -> Path:
    """Write the per-subject table as TSV."""
    path.parent.mkdir(parents=True, exist_ok=True)
    summary.to_frame().to_csv(path, sep="\t", index=False)
    return path


def echo_summary(summary: RunSummary) -> None:
    """Print the human-readable summary."""
    echo_banner("Run summary")
    click.echo(
        f"  subjects: {summary.total}  succeeded: {summary.succeeded}  failed: {summary.failed}"
    )
    echo_section("Stage completion")
    for token, n in summary.stage_counts.items():
        click.echo(f"    {token:<24} {n}/{summary.total}")
    echo_section("Storage")
    for tier, gb in summary.storage_gb.items():
        click.echo(f"    {tier:<8} {gb:.2f} GB")
    if summary.failures:
        echo_section("Failures")
        for f in summary.failures:
            where = f" (see {f.failure_log})" if f.failure_log else ""
            echo_failure(f"{f.subject}: {f.reason}{where}")
    else:
        echo_success("All subjects completed")


__all__ = [
    "SUMMARY_FILE",
    "FailureEntry",
    "RunSummary",
    "build_summary",
    "write_summary",
    "echo_summary",
]
