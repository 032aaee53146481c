"""Debugger context shared by commands."""

from __future__ import annotations

from dataclasses import dataclass

from .session import DebugSession


@dataclass
class DebuggerContext:
    """Holds shared debugger state."""

    session: DebugSession
    json_output: bool = False
