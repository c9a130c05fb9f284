"""Wrappers for external neuroimaging tools."""

from .base import CommandTool, Tool, ToolRunner, ToolSpec, thread_env
from .freesurfer import RECON_CRITICAL, ReconAllTool
from .noddi import NODDI_MAPS, NoddiTool
from .synb0 import Synb0Config, Synb0Tool

__all__ = [
    "CommandTool",
    "Tool",
    "ToolRunner",
    "ToolSpec",
    "thread_env",
    "RECON_CRITICAL",
    "ReconAllTool",
    "NODDI_MAPS",
    "NoddiTool",
    "Synb0Config",
    "Synb0Tool",
]
