"""Pipeline Driver.

Processes subjects sequentially in sorted order.  Each subject gets a
pre-flight input check, a disk gate and its lock before the state machine
runs; no failure of one subject stops the loop.
"""

from __future__ import annotations

import time
import traceback
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from dtipipe.config.schema import PipelineConfig
from dtipipe.config.tools import ToolPaths
from dtipipe.registration.selector import RegistrationSelector
from dtipipe.tools.base import ToolRunner
from dtipipe.utils.checkpoint import CheckpointStore
from dtipipe.utils.cleanup import remove_scratch
from dtipipe.utils.display import echo_banner, echo_plan, echo_subject
from dtipipe.utils.errors import PreconditionError
from dtipipe.utils.events import EventLog
from dtipipe.utils.lock import SubjectLockManager
from dtipipe.utils.resources import ResourceGuard
from dtipipe.utils.storage import StorageMigrator

from .discovery import build_subject, validate_inputs
from .runner import StageRunner
from .stages import StageContext, build_stages
from .subject import SubjectStateMachine
from .summary import SUMMARY_FILE, RunSummary, build_summary, echo_summary, write_summary
from .types import StageSpec, Subject, SubjectResult, SubjectState

log = structlog.get_logger()

PlanRow = Tuple[str, str]


class PipelineDriver:
    """Run the pipeline for many subjects.

    Args:
        cfg: Validated configuration.
        tools: Resolved executables.
        runner: Tool runner shared by every stage.
        guard: Resource guard (probes injectable for tests).
        threads: Thread hint for external tools.
        sleep: Sleep used between storage retries.
    """

    def __init__(
        self,
        cfg: PipelineConfig,
        *,
        tools: ToolPaths,
        runner: ToolRunner,
        guard: Optional[ResourceGuard] = None,
        threads: int = 1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self.log_root = cfg.paths.fast_root / "logs"
        self.checkpoints = CheckpointStore(self.log_root)
        self.events = EventLog(self.log_root)
        self.locks = SubjectLockManager(self.log_root)
        self.guard = guard or ResourceGuard()
        self.runner = runner

        migrator = StorageMigrator(
            runner,
            rsync_exe=tools.get("rsync") if tools.has("rsync") else "rsync",
            attempts=cfg.storage.attempts,
            initial_delay_s=cfg.storage.initial_delay_s,
            sleep=sleep,
        )
        selector = RegistrationSelector(runner, tools, cfg.registration, threads=threads)
        self.context = StageContext(cfg, tools, runner, migrator, selector, threads)
        self.stages: List[StageSpec] = build_stages(self.context)
        self.stage_runner = StageRunner(cfg, self.checkpoints, self.events, self.guard, runner)
        self.machine = SubjectStateMachine(cfg, self.stage_runner, self.stages, self.events)
        self.summary: Optional[RunSummary] = None

    # ------------------------------------------------------------------ #
    # Dry run                                                            #
    # ------------------------------------------------------------------ #
    def plan(self, subjects: Iterable[str]) -> Dict[str, List[PlanRow]]:
        """Return ``{subject: [(stage, action), ...]}`` without side effects.

        Actions are ``run``, ``skip-checkpoint`` or ``skip-disabled``.
        """
        out: Dict[str, List[PlanRow]] = {}
        for sub in sorted(subjects):
            rows: List[PlanRow] = []
            for spec in self.stages:
                if not spec.is_enabled(self.cfg):
                    action = "skip-disabled"
                elif self.cfg.resume and self.checkpoints.has(sub, spec.token):
                    action = "skip-checkpoint"
                else:
                    action = "run"
                rows.append((spec.token, action))
            out[sub] = rows
        return out

    def echo_plan(self, subjects: Iterable[str]) -> Dict[str, List[PlanRow]]:
        """Print and return the dry-run plan."""
        plan = self.plan(subjects)
        echo_banner("Dry run: planned stage executions")
        for sub, rows in plan.items():
            echo_subject(sub)
            for token, action in rows:
                echo_plan(token, action)
        return plan

    # ------------------------------------------------------------------ #
    # Per subject                                                        #
    # ------------------------------------------------------------------ #
    def _preflight_failure(self, subject: Subject, reason: str) -> SubjectResult:
        path = subject.paths.failure_log("preflight")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"subject: {subject.id}\nstage: preflight\nreason: {reason}\n", encoding="utf-8")
        self.events.error(subject.id, f"preflight failed: {reason}", failure_log=str(path))
        log.error("subject.preflight_failed", subject=subject.id, reason=reason)
        return SubjectResult(subject.id, SubjectState.FAILED, failure_log=path, error=reason)

    def _lock_failure(self, subject: Subject) -> SubjectResult:
        reason = "subject is locked by another pipeline instance"
        lock_path = self.locks.lock_path(subject.id)
        holder = self.locks.holder_pid(subject.id)
        path = subject.paths.failure_log("lock")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            f"subject: {subject.id}\nstage: lock\nreason: {reason}\n"
            f"lock: {lock_path}\nholder_pid: {holder if holder is not None else 'unknown'}\n",
            encoding="utf-8",
        )
        self.events.error(subject.id, reason, failure_log=str(path), holder_pid=holder)
        log.error("subject.locked", subject=subject.id, lock=str(lock_path), holder_pid=holder)
        return SubjectResult(subject.id, SubjectState.FAILED, failure_log=path, error=reason)

    def process_subject(self, sub: str) -> SubjectResult:
        """Pre-flight, lock and run one subject."""
        subject = build_subject(self.cfg, sub)
        try:
            validate_inputs(subject, pe_axis=self.cfg.acquisition.pe_axis)
        except PreconditionError as exc:
            return self._preflight_failure(subject, str(exc))

        need = self.cfg.resources.subject_min_disk_gb
        if not self.guard.check_disk(self.cfg.paths.work_root, need):
            return self._preflight_failure(subject, f"less than {need} GB free for the subject")

        with self.locks.hold(sub) as acquired:
            if not acquired:
                return self._lock_failure(subject)
            self.events.info(sub, "subject started")
            result = self.machine.run(subject)

        if result.success:
            remove_scratch(subject.paths.work)
            self.events.info(sub, "subject completed")
        else:
            self.events.error(sub, f"subject failed: {result.error}")
        return result

    # ------------------------------------------------------------------ #
    # Run                                                                #
    # ------------------------------------------------------------------ #
    def run(self, subjects: Iterable[str]) -> Tuple[int, int]:
        """Process *subjects* and return ``(success_count, failure_count)``."""
        subs = sorted(subjects)
        self.events.info(None, "run started", subjects=subs)
        log.info("run.start", subjects=len(subs))
        results: List[SubjectResult] = []
        for sub in subs:
            try:
                result = self.process_subject(sub)
            except Exception as exc:
                log.exception("subject.crashed", subject=sub)
                result = self._crash(sub, exc)
            results.append(result)

        self.summary = build_summary(self.cfg, results, self.checkpoints)
        write_summary(self.summary, self.log_root / SUMMARY_FILE)
        self.events.info(
            None,
            "run finished",
            succeeded=self.summary.succeeded,
            failed=self.summary.failed,
        )
        log.info("run.done", succeeded=self.summary.succeeded, failed=self.summary.failed)
        return self.summary.succeeded, self.summary.failed

    def _crash(self, sub: str, exc: Exception) -> SubjectResult:
        subject = build_subject(self.cfg, sub)
        path: Path = subject.paths.failure_log("unexpected")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(traceback.format_exception(exc)), encoding="utf-8")
        self.events.error(sub, f"unexpected error: {exc}", failure_log=str(path))
        return SubjectResult(sub, SubjectState.FAILED, failure_log=path, error=str(exc))

    def report(self) -> None:
        """Print the summary of the last :meth:`run`."""
        if self.summary is not None:
            echo_summary(self.summary)


__all__ = ["PipelineDriver"]
