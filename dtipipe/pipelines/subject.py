"""Subject State Machine.

``NotStarted → DistortionCorrection → BasicPreprocessing → MotionCorrection
→ Refinement → Connectivity → Microstructure → Done``.  A fatal-stage
failure goes straight to ``Failed``; an advisory failure moves on to the
next stage.  Disabled stages are passed through without running or
recording a checkpoint.
"""

from __future__ import annotations

from typing import Sequence

import structlog

from dtipipe.config.schema import PipelineConfig
from dtipipe.utils.events import EventLog

from .runner import StageRunner
from .types import StageResult, StageSpec, Subject, SubjectResult, SubjectState

log = structlog.get_logger()


class SubjectStateMachine:
    """Drive one subject through the ordered stages.

    Args:
        cfg: Pipeline configuration (stage toggles).
        runner: Stage runner.
        stages: Stage specs in pipeline order.
        events: Event log for state transitions.
    """

    def __init__(
        self,
        cfg: PipelineConfig,
        runner: StageRunner,
        stages: Sequence[StageSpec],
        events: EventLog,
    ) -> None:
        self.cfg = cfg
        self.runner = runner
        self.stages = list(stages)
        self.events = events

    def _transition(self, subject: Subject, state: SubjectState) -> SubjectState:
        log.debug("subject.state", subject=subject.id, state=state.value)
        if state.terminal:
            self.events.write_progress(subject.id, stage=None, state=state.value)
        return state

    def run(self, subject: Subject) -> SubjectResult:
        """Run every enabled stage in order and return the outcome."""
        result = SubjectResult(subject.id, SubjectState.NOT_STARTED)
        for spec in self.stages:
            result.state = self._transition(subject, SubjectState(spec.token))
            if not spec.is_enabled(self.cfg):
                log.info("stage.disabled", subject=subject.id, stage=spec.token)
                self.events.info(subject.id, f"{spec.token} disabled", stage=spec.token)
                result.stages.append(
                    StageResult(
                        stage=spec.token,
                        contract=spec.contract,
                        success=True,
                        skipped=True,
                        reason="disabled",
                    )
                )
                continue

            stage_result = self.runner.run_spec(subject, spec)
            result.stages.append(stage_result)
            if stage_result.success:
                continue
            if spec.fatal:
                result.failure_log = stage_result.failure_log
                result.error = f"{spec.token}: {stage_result.reason}"
                result.state = self._transition(subject, SubjectState.FAILED)
                log.error("subject.failed", subject=subject.id, stage=spec.token)
                return result
            log.warning(
                "subject.advisory_fallback",
                subject=subject.id,
                stage=spec.token,
                fallback=spec.fallback,
            )

        result.state = self._transition(subject, SubjectState.DONE)
        return result


__all__ = ["SubjectStateMachine"]
