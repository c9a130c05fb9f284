"""
Configuration package façade.

Exports the small, stable surface that external callers rely on:

* :func:`load_config` – Parse, merge, and validate the pipeline YAML into a
  single frozen :class:`PipelineConfig` instance.
* :class:`PipelineConfig` – Pydantic model representing the configuration.
* :func:`resolve_tools` / :class:`ToolPaths` – executable discovery done
  once at startup.
"""

from .loader import load_config  # noqa: F401
from .schema import STAGE_TOKENS, PipelineConfig  # noqa: F401
from .tools import ToolPaths, resolve_tools  # noqa: F401

__all__: list[str] = [
    "load_config",
    "PipelineConfig",
    "STAGE_TOKENS",
    "ToolPaths",
    "resolve_tools",
]
