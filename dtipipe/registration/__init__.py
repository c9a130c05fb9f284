"""Anatomical-to-diffusion registration with quality-gated fallback."""

from .methods import RegistrationMethod, RegistrationStrategy, build_strategies
from .quality import QualityClass, SimilarityMetrics, classify, compute_similarity
from .selector import (
    RegistrationAttempt,
    RegistrationOutcome,
    RegistrationSelector,
    load_outcome,
    plan_methods,
)

__all__ = [
    "RegistrationMethod",
    "RegistrationStrategy",
    "build_strategies",
    "QualityClass",
    "SimilarityMetrics",
    "classify",
    "compute_similarity",
    "RegistrationAttempt",
    "RegistrationOutcome",
    "RegistrationSelector",
    "load_outcome",
    "plan_methods",
]
