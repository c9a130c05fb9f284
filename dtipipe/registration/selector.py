"""Registration strategy selection with quality-gated fallback.

``auto`` tries the available methods in a fixed preference order
(SynthMorph, VoxelMorph, ANTs) through one generic fallback runner; the
first attempt that produces output and passes the quality gate wins.  An
explicit method is run alone and its result is kept even when the gate
would reject it.  When learned registration is disabled the traditional
FLIRT method runs without a gate.  If nothing succeeds the result is an
unregistered passthrough, which downstream stages must tolerate.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Tuple, TypeVar

import structlog
from nibabel.filebasedimages import ImageFileError

from dtipipe.config.schema import RegistrationConfig
from dtipipe.config.tools import ToolPaths
from dtipipe.tools.base import ToolRunner
from dtipipe.utils.errors import PreconditionError, ShapeMismatchError, ToolError

from .methods import RegistrationMethod, RegistrationStrategy, build_strategies
from .quality import QualityClass, SimilarityMetrics, classify, image_similarity

log = structlog.get_logger()

AUTO_ORDER: Tuple[RegistrationMethod, ...] = (
    RegistrationMethod.SYNTHMORPH,
    RegistrationMethod.VOXELMORPH,
    RegistrationMethod.ANTS,
)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class RegistrationAttempt:
    """One method tried at a registration point."""

    method: RegistrationMethod
    success: bool
    quality: QualityClass = QualityClass.UNCHECKED
    correlation: Optional[float] = None
    mutual_information: Optional[float] = None
    error: Optional[str] = None


@dataclass
class RegistrationOutcome:
    """The canonical result of a registration point.

    Attributes:
        applied_method: Method whose output was accepted (``NONE`` for
            passthrough).
        success: Whether an output was accepted as a full success.
        quality: Quality classification of the accepted output.
        output: Moved image, or ``None`` for passthrough.
        attempts: Every attempt in the order it was made.
    """

    applied_method: RegistrationMethod
    success: bool
    quality: QualityClass
    output: Optional[Path] = None
    attempts: List[RegistrationAttempt] = field(default_factory=list)

    def as_tuple(self) -> Tuple[RegistrationMethod, bool, QualityClass]:
        return self.applied_method, self.success, self.quality

    @property
    def registered(self) -> bool:
        return self.applied_method is not RegistrationMethod.NONE and self.output is not None

    def to_dict(self) -> dict:
        return {
            "applied_method": self.applied_method.value,
            "success": self.success,
            "quality": self.quality.value,
            "output": str(self.output) if self.output else None,
            "attempts": [
                {**asdict(a), "method": a.method.value, "quality": a.quality.value}
                for a in self.attempts
            ],
        }

    def write(self, path: Path) -> None:
        """Persist the record read by downstream stages."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")


def load_outcome(path: Path) -> RegistrationOutcome:
    """Read a record written by :meth:`RegistrationOutcome.write`.

    A missing record means no registration was performed.
    """
    if not path.exists():
        return RegistrationOutcome(RegistrationMethod.NONE, False, QualityClass.UNCHECKED)
    data = json.loads(path.read_text(encoding="utf-8"))
    attempts = [
        RegistrationAttempt(
            method=RegistrationMethod(a["method"]),
            success=a["success"],
            quality=QualityClass(a["quality"]),
            correlation=a.get("correlation"),
            mutual_information=a.get("mutual_information"),
            error=a.get("error"),
        )
        for a in data.get("attempts", [])
    ]
    return RegistrationOutcome(
        applied_method=RegistrationMethod(data["applied_method"]),
        success=bool(data["success"]),
        quality=QualityClass(data["quality"]),
        output=Path(data["output"]) if data.get("output") else None,
        attempts=attempts,
    )


# ---------------------------------------------------------------------------
# Pure selection helpers
# ---------------------------------------------------------------------------

def plan_methods(
    requested: RegistrationMethod,
    available: Mapping[RegistrationMethod, bool],
    *,
    ml_enabled: bool = True,
) -> List[RegistrationMethod]:
    """Return the ordered methods to attempt.

    Args:
        requested: ``AUTO`` or an explicit method.
        available: Capability flags per method.
        ml_enabled: ``False`` selects the traditional method only.
    """
    if not ml_enabled:
        return [RegistrationMethod.FSL]
    if requested is not RegistrationMethod.AUTO:
        return [requested]
    chain = [m for m in AUTO_ORDER if available.get(m, False)]
    if RegistrationMethod.ANTS not in chain:
        # Last classical resort; a missing binary simply fails the attempt.
        chain.append(RegistrationMethod.ANTS)
    return chain


def first_success(
    candidates: Iterable[T], attempt: Callable[[T], Optional[R]]
) -> Optional[Tuple[T, R]]:
    """Return the first ``(candidate, result)`` whose *attempt* is not ``None``."""
    for cand in candidates:
        result = attempt(cand)
        if result is not None:
            return cand, result
    return None


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------

class RegistrationSelector:
    """Choose, run and gate registration methods.

    Args:
        runner: Tool runner executing the registration commands.
        tools: Resolved executables.
        cfg: Registration configuration.
        threads: Thread hint passed to multi-threaded methods.
        strategies: Override the strategy table (tests).
        similarity: Override the similarity function (tests).
    """

    def __init__(
        self,
        runner: ToolRunner,
        tools: ToolPaths,
        cfg: RegistrationConfig,
        *,
        threads: int = 1,
        strategies: Optional[Mapping[RegistrationMethod, RegistrationStrategy]] = None,
        similarity: Callable[..., SimilarityMetrics] = image_similarity,
    ) -> None:
        self.runner = runner
        self.cfg = cfg
        self.strategies = dict(strategies or build_strategies(tools, cfg, threads))
        self.similarity = similarity

    def availability(self) -> dict[RegistrationMethod, bool]:
        return {m: s.available() for m, s in self.strategies.items()}

    def select_and_apply(
        self,
        subject: str,
        fixed: Path,
        moving: Path,
        requested: RegistrationMethod | str | None = None,
        *,
        out_dir: Path,
    ) -> RegistrationOutcome:
        """Register *moving* onto *fixed* for *subject*.

        Args:
            subject: Subject identifier (logging only).
            fixed: Target image (e.g. the mean b0).
            moving: Image to align (e.g. the T1w).
            requested: Method; defaults to the configured one.
            out_dir: Directory receiving method outputs.

        Returns:
            :class:`RegistrationOutcome` describing the accepted result.
        """
        method = RegistrationMethod(requested or self.cfg.method)
        explicit = method is not RegistrationMethod.AUTO
        chain = plan_methods(method, self.availability(), ml_enabled=self.cfg.enabled)
        log.info(
            "registration.plan",
            subject=subject,
            requested=method.value,
            enabled=self.cfg.enabled,
            chain=[m.value for m in chain],
        )
        attempts: List[RegistrationAttempt] = []

        def _try(m: RegistrationMethod) -> Optional[Tuple[Path, QualityClass]]:
            return self._attempt(subject, m, fixed, moving, out_dir, attempts, explicit=explicit)

        found = first_success(chain, _try)
        if found is not None:
            m, (output, quality) = found
            log.info("registration.accepted", subject=subject, method=m.value, quality=quality.value)
            return RegistrationOutcome(m, True, quality, output, attempts)

        # Partial classical output is still preferable to nothing.
        for m in reversed(chain):
            strategy = self.strategies.get(m)
            if strategy is None or strategy.is_ml:
                continue
            partial = strategy.output_path(out_dir)
            if partial.is_file():
                log.warning("registration.partial", subject=subject, method=m.value)
                return RegistrationOutcome(m, False, QualityClass.UNCHECKED, partial, attempts)

        log.warning("registration.passthrough", subject=subject, tried=[m.value for m in chain])
        return RegistrationOutcome(
            RegistrationMethod.NONE, False, QualityClass.UNCHECKED, None, attempts
        )

    def _attempt(
        self,
        subject: str,
        method: RegistrationMethod,
        fixed: Path,
        moving: Path,
        out_dir: Path,
        attempts: List[RegistrationAttempt],
        *,
        explicit: bool,
    ) -> Optional[Tuple[Path, QualityClass]]:
        """Run one method and gate it; ``None`` means try the next one."""
        strategy = self.strategies.get(method)
        if strategy is None:
            attempts.append(RegistrationAttempt(method, False, error="unknown method"))
            return None
        try:
            output = strategy.apply(self.runner, fixed, moving, out_dir)
        except (ToolError, KeyError, OSError) as exc:
            log.warning("registration.attempt_failed", subject=subject, method=method.value, error=str(exc))
            attempts.append(RegistrationAttempt(method, False, error=str(exc)))
            return None

        if not strategy.is_ml or self.cfg.skip_quality_check:
            attempts.append(RegistrationAttempt(method, True))
            return output, QualityClass.UNCHECKED

        try:
            metrics = self.similarity(fixed, output, bins=self.cfg.mi_bins)
        except ShapeMismatchError as exc:
            log.warning("registration.shape_mismatch", subject=subject, method=method.value, error=str(exc))
            attempts.append(RegistrationAttempt(method, False, error=str(exc)))
            return None
        except (PreconditionError, ImageFileError, EOFError, OSError, ValueError) as exc:
            # unreadable or truncated images fail this attempt only
            log.warning("registration.metrics_failed", subject=subject, method=method.value, error=str(exc))
            attempts.append(RegistrationAttempt(method, False, error=str(exc)))
            return None

        quality = classify(metrics, self.cfg.thresholds)
        record = RegistrationAttempt(
            method,
            quality.accepted or explicit,
            quality,
            correlation=metrics.correlation,
            mutual_information=metrics.mutual_information,
        )
        attempts.append(record)
        log_kw = dict(
            subject=subject,
            method=method.value,
            quality=quality.value,
            correlation=round(metrics.correlation, 4),
            mi=round(metrics.mutual_information, 4),
        )
        if quality is QualityClass.POOR:
            if explicit:
                log.warning("registration.poor_quality_kept", **log_kw)
                return output, quality
            log.warning("registration.rejected", **log_kw)
            return None
        if quality is QualityClass.ACCEPTABLE:
            log.warning("registration.acceptable_quality", **log_kw)
        else:
            log.info("registration.good_quality", **log_kw)
        return output, quality


__all__ = [
    "AUTO_ORDER",
    "RegistrationAttempt",
    "RegistrationOutcome",
    "RegistrationSelector",
    "first_success",
    "load_outcome",
    "plan_methods",
]
