"""Step-boundary debug session around a stackvm Context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Set, Union

from ..errors import VMError
from ..instruction import Instruction, Program, as_program
from ..vm import Context, Tracer

LOGGER = logging.getLogger("stackvm.dbg.session")


@dataclass
class StopInfo:
    """Why execution last stopped."""

    reason: str  # "step", "breakpoint", "halted", "error", "limit"
    pc: int
    steps: int
    result: Optional[int] = None
    error: Optional[VMError] = None

    def describe(self) -> str:
        if self.reason == "halted":
            return f"halted at pc={self.pc}; result={self.result}"
        if self.reason == "error":
            return f"failed at pc={self.pc}: {self.error}"
        if self.reason == "breakpoint":
            return f"breakpoint at pc={self.pc}"
        if self.reason == "limit":
            return f"step limit reached at pc={self.pc} after {self.steps} steps"
        return f"stopped at pc={self.pc}"


class DebugSession:
    """Drives a Context one instruction at a time; never interrupts mid-instruction."""

    def __init__(
        self,
        program: Iterable[Instruction],
        labels: Optional[Mapping[str, int]] = None,
        *,
        max_steps: Optional[int] = None,
        tracer: Optional[Tracer] = None,
    ) -> None:
        self.program: Program = as_program(program)
        self.labels: Dict[str, int] = dict(labels or {})
        self.max_steps = max_steps
        self.tracer = tracer
        self.breakpoints: Set[int] = set()
        self.context = Context(self.program)
        self.last_stop: Optional[StopInfo] = None

    def reset(self) -> None:
        """Start over with a fresh context; breakpoints are kept."""
        self.context = Context(self.program)
        self.last_stop = None

    def resolve_address(self, spec: Union[str, int]) -> int:
        if isinstance(spec, int):
            index = spec
        else:
            text = spec.strip()
            if text in self.labels:
                index = self.labels[text]
            else:
                try:
                    index = int(text, 0)
                except ValueError:
                    raise ValueError(f"unknown label or address '{spec}'") from None
        if not 0 <= index < len(self.program):
            raise ValueError(f"address {index} outside program (0..{len(self.program) - 1})")
        return index

    def add_breakpoint(self, spec: Union[str, int]) -> int:
        index = self.resolve_address(spec)
        self.breakpoints.add(index)
        LOGGER.debug("breakpoint added at %d", index)
        return index

    def remove_breakpoint(self, spec: Union[str, int]) -> bool:
        index = self.resolve_address(spec)
        if index not in self.breakpoints:
            return False
        self.breakpoints.discard(index)
        return True

    def _stop(self, reason: str, **kwargs) -> StopInfo:
        ctx = self.context
        self.last_stop = StopInfo(reason, ctx.pc, ctx.steps, **kwargs)
        return self.last_stop

    def _execute_one(self) -> Optional[StopInfo]:
        try:
            running = self.context.step(self.tracer)
        except VMError as exc:
            return self._stop("error", error=exc)
        if not running:
            return self._stop("halted", result=self.context.result)
        return None

    def step(self, count: int = 1) -> StopInfo:
        for _ in range(max(1, count)):
            stop = self._execute_one()
            if stop is not None:
                return stop
        return self._stop("step")

    def cont(self) -> StopInfo:
        """Run until a breakpoint, halt, failure or the step limit."""
        start = self.context.steps
        while True:
            stop = self._execute_one()
            if stop is not None:
                return stop
            if self.context.pc in self.breakpoints:
                return self._stop("breakpoint")
            if self.max_steps is not None and self.context.steps - start >= self.max_steps:
                return self._stop("limit")
