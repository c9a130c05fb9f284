"""Stage Runner.

Wraps one stage's work function with the checkpoint skip, the resource
gate, timing and failure capture, and turns every outcome into a definite
:class:`StageResult`.  Whether a failure stops the subject is decided by
the caller from the stage's declared contract.
"""

from __future__ import annotations

import time
import traceback
from pathlib import Path
from typing import Callable, Optional, Sequence

import structlog

from dtipipe.config.schema import PipelineConfig
from dtipipe.tools.base import ToolRunner
from dtipipe.utils.checkpoint import CheckpointStore
from dtipipe.utils.errors import DtipipeError, ToolError
from dtipipe.utils.events import EventLog
from dtipipe.utils.resources import ResourceGuard

from .types import StageContract, StageResult, StageSpec, Subject

log = structlog.get_logger()

# Lines of captured tool output persisted for a failed stage.
FAILURE_TAIL_LINES = 50


class StageRunner:
    """Run stages for subjects.

    Args:
        cfg: Pipeline configuration.
        checkpoints: Checkpoint store.
        events: Event log.
        guard: Resource guard consulted before every stage.
        tools: Tool runner whose transcript feeds failure captures.
    """

    def __init__(
        self,
        cfg: PipelineConfig,
        checkpoints: CheckpointStore,
        events: EventLog,
        guard: ResourceGuard,
        tools: ToolRunner,
    ) -> None:
        self.cfg = cfg
        self.checkpoints = checkpoints
        self.events = events
        self.guard = guard
        self.tools = tools

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #
    def _write_failure(self, subject: Subject, stage: str, exc: BaseException | None, reason: str) -> Path:
        """Persist the tail of the stage transcript plus the error."""
        path = subject.paths.failure_log(stage)
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = list(self.tools.transcript[-FAILURE_TAIL_LINES:])
        if isinstance(exc, ToolError) and exc.output_tail and not lines:
            lines = exc.output_tail[-FAILURE_TAIL_LINES:]
        header = [
            f"subject: {subject.id}",
            f"stage: {stage}",
            f"reason: {reason}",
        ]
        if exc is not None:
            header.append(f"error: {type(exc).__name__}: {exc}")
        body = header + ["", "--- captured output ---", *lines]
        if exc is not None and not isinstance(exc, DtipipeError):
            body += ["", "--- traceback ---", "".join(traceback.format_exception(exc)).rstrip("\n")]
        path.write_text("\n".join(body) + "\n", encoding="utf-8")
        return path

    def _gate(self, subject: Subject, token: str) -> Optional[str]:
        """Return a failure reason when the resource gate blocks *token*."""
        need = self.cfg.resources.for_stage(token)
        subject.paths.work.mkdir(parents=True, exist_ok=True)
        res = self.guard.gate(subject.paths.work, min_disk_gb=need.min_disk_gb, min_mem_gb=need.min_mem_gb)
        return None if res.ok else res.reason

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #
    def run_stage(
        self,
        subject: Subject,
        stage: str,
        is_fatal: bool,
        work_fn: Callable[[Subject], Optional[bool]],
        *,
        outputs: Sequence[Path] = (),
    ) -> StageResult:
        """Run *work_fn* for *subject* under the stage contract.

        Args:
            subject: Subject being processed.
            stage: Stage token.
            is_fatal: Declared contract, used for logging severity.
            work_fn: Does the work; raises a :class:`DtipipeError` (or
                returns ``False``) on failure.
            outputs: Durable outputs checked when a checkpoint is found.

        Returns:
            :class:`StageResult`; never raises for stage failures.
        """
        contract = StageContract.FATAL if is_fatal else StageContract.ADVISORY
        sid = subject.id

        if self.cfg.resume and self.checkpoints.has(sid, stage):
            missing = [str(p) for p in outputs if not Path(p).exists()]
            if missing:
                log.warning("stage.checkpoint_outputs_missing", subject=sid, stage=stage, missing=missing)
                self.events.warning(sid, f"{stage} checkpointed but outputs missing", stage=stage)
            log.info("stage.skip_checkpoint", subject=sid, stage=stage)
            self.events.info(sid, f"{stage} already complete (checkpoint)", stage=stage)
            return StageResult(stage=stage, contract=contract, success=True, skipped=True, reason="checkpoint")

        blocked = self._gate(subject, stage)
        if blocked:
            level = "ERROR" if is_fatal else "WARN"
            self.events.emit(level, sid, f"{stage} blocked: {blocked}", stage=stage)
            emit = log.error if is_fatal else log.warning
            emit("stage.resources_blocked", subject=sid, stage=stage, reason=blocked)
            failure = self._write_failure(subject, stage, None, blocked) if is_fatal else None
            return StageResult(
                stage=stage,
                contract=contract,
                success=False,
                skipped=True,
                reason="resources",
                failure_log=failure,
            )

        self.events.write_progress(sid, stage=stage, state="running")
        self.events.info(sid, f"{stage} started", stage=stage)
        log.info("stage.start", subject=sid, stage=stage, contract=contract.value)
        self.tools.reset_transcript()

        start = time.monotonic()
        error: Optional[BaseException] = None
        try:
            ok = work_fn(subject) is not False
        except DtipipeError as exc:
            ok = False
            error = exc
        except Exception as exc:
            log.exception("stage.unexpected_error", subject=sid, stage=stage)
            ok = False
            error = exc
        duration = time.monotonic() - start
        self.events.timing(sid, stage, duration)

        if ok:
            self.checkpoints.record(sid, stage)
            self.events.info(sid, f"{stage} completed", stage=stage)
            self.events.write_progress(sid, stage=stage, state="completed")
            log.info("stage.done", subject=sid, stage=stage, duration_s=round(duration, 1))
            return StageResult(stage=stage, contract=contract, success=True, duration_s=duration)

        reason = str(error) if error else "stage reported failure"
        failure = self._write_failure(subject, stage, error, reason)
        self.events.write_progress(sid, stage=stage, state="failed")
        if is_fatal:
            self.events.error(sid, f"{stage} failed: {reason}", stage=stage, failure_log=str(failure))
            log.error("stage.failed", subject=sid, stage=stage, error=reason, failure_log=str(failure))
        else:
            self.events.warning(sid, f"{stage} failed (advisory): {reason}", stage=stage, failure_log=str(failure))
            log.warning("stage.advisory_failed", subject=sid, stage=stage, error=reason, failure_log=str(failure))
        return StageResult(
            stage=stage,
            contract=contract,
            success=False,
            reason=reason,
            duration_s=duration,
            failure_log=failure,
        )

    def run_spec(self, subject: Subject, spec: StageSpec) -> StageResult:
        """Run a declared :class:`StageSpec`."""
        return self.run_stage(subject, spec.token, spec.fatal, spec.work, outputs=spec.outputs(subject))


__all__ = ["StageRunner", "FAILURE_TAIL_LINES"]
