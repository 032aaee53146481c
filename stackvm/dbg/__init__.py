"""Interactive step debugger for stackvm programs."""

from .commands import CommandRegistry, build_registry, dispatch
from .context import DebuggerContext
from .session import DebugSession, StopInfo

__all__ = [
    "CommandRegistry",
    "DebugSession",
    "DebuggerContext",
    "StopInfo",
    "build_registry",
    "dispatch",
]
