"""Execution engine: machine state plus the fetch-decode-execute loop."""

from __future__ import annotations

import logging
import operator
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .errors import (
    CallStackUnderflow,
    DivisionByZero,
    InvalidRegisterIndex,
    JumpTargetOutOfBounds,
    MissingOperand,
    ProgramTerminatedWithoutExit,
    StackUnderflow,
    VMError,
)
from .instruction import Instruction, Program, as_program, to_uint64, trunc_div, wrap_int64
from .opcodes import OpCode

LOGGER = logging.getLogger("stackvm.vm")

REGISTER_COUNT = 11


class MachineState(Enum):
    RUNNING = "running"
    HALTED = "halted"
    FAILED = "failed"


@dataclass(frozen=True)
class TraceEvent:
    """Read-only view of the machine handed to tracers around each instruction."""

    phase: str  # "before" or "after"
    seq: int
    pc: int
    instruction: Instruction
    stack: Tuple[int, ...]
    registers: Tuple[int, ...]
    next_pc: Optional[int] = None


Tracer = Callable[[TraceEvent], None]
# A tracer exception propagates out of step(). Raised on "before", the
# instruction has not run; raised on "after", it ran and is counted in steps.
# Either way the context stays RUNNING and the next step() resumes at pc.


@dataclass(frozen=True)
class MachineSnapshot:
    pc: int
    state: MachineState
    steps: int
    stack: Tuple[int, ...]
    call_stack: Tuple[int, ...]
    registers: Tuple[int, ...]
    memory: Dict[int, int] = field(default_factory=dict)


class Context:
    """Mutable execution context for a single run of one program.

    A context is owned by exactly one ``run``; re-running a program requires a
    fresh context.
    """

    def __init__(self, program: Iterable[Instruction]) -> None:
        self.program: Program = as_program(program)
        self.pc = 0
        self.stack: List[int] = []
        self.call_stack: List[int] = []
        self.registers: List[int] = [0] * REGISTER_COUNT
        self.memory: Dict[int, int] = {}
        self.state = MachineState.RUNNING
        self.steps = 0
        self.result: Optional[int] = None
        self.error: Optional[VMError] = None

    def __repr__(self) -> str:
        return f"<Context pc={self.pc} state={self.state.value} steps={self.steps} len={len(self.program)}>"

    @property
    def running(self) -> bool:
        return self.state is MachineState.RUNNING

    # -- register file -------------------------------------------------

    def check_register(self, idx: int) -> int:
        if not 0 <= idx < REGISTER_COUNT:
            raise InvalidRegisterIndex(idx, pc=self.pc)
        return idx

    def read_register(self, idx: int) -> int:
        return self.registers[self.check_register(idx)]

    def write_register(self, idx: int, value: int) -> None:
        self.registers[self.check_register(idx)] = value

    # -- memory ----------------------------------------------------------

    def read_memory(self, address: int) -> int:
        return self.memory.get(to_uint64(address), 0)

    def write_memory(self, address: int, value: int) -> None:
        self.memory[to_uint64(address)] = value

    # -- operand stack ---------------------------------------------------

    def push(self, value: int) -> None:
        self.stack.append(value)

    def pop(self, opcode: OpCode) -> int:
        if not self.stack:
            raise StackUnderflow(opcode, pc=self.pc)
        return self.stack.pop()

    def pop_pair(self, opcode: OpCode) -> Tuple[int, int]:
        """Pop ``b`` then ``a`` and return them as ``(a, b)``."""
        b = self.pop(opcode)
        a = self.pop(opcode)
        return a, b

    # -- helpers for handlers -------------------------------------------

    def operand(self, instr: Instruction) -> int:
        if not instr.operands:
            raise MissingOperand(instr.opcode, pc=self.pc)
        return instr.operands[0]

    def target(self, instr: Instruction, *, allow_end: bool = False) -> int:
        target = self.operand(instr)
        limit = len(self.program) + (1 if allow_end else 0)
        if not 0 <= target < limit:
            raise JumpTargetOutOfBounds(target, pc=self.pc)
        return target

    def snapshot(self) -> MachineSnapshot:
        return MachineSnapshot(
            pc=self.pc,
            state=self.state,
            steps=self.steps,
            stack=tuple(self.stack),
            call_stack=tuple(self.call_stack),
            registers=tuple(self.registers),
            memory=dict(self.memory),
        )

    # -- dispatch loop ---------------------------------------------------

    def _fail(self, exc: VMError) -> None:
        self.state = MachineState.FAILED
        self.error = exc
        LOGGER.debug("run failed at pc=%d after %d steps: %s", self.pc, self.steps, exc)

    def step(self, tracer: Optional[Tracer] = None) -> bool:
        """Execute one instruction; return True while the machine keeps running."""
        if self.state is MachineState.HALTED:
            return False
        if self.state is MachineState.FAILED:
            assert self.error is not None
            raise self.error
        if self.pc >= len(self.program):
            exc = ProgramTerminatedWithoutExit(pc=self.pc)
            self._fail(exc)
            raise exc

        pc = self.pc
        instr = self.program[pc]
        if tracer is not None:
            tracer(TraceEvent("before", self.steps, pc, instr, tuple(self.stack), tuple(self.registers)))
        try:
            _HANDLERS[instr.opcode](self, instr)
        except VMError as exc:
            self._fail(exc)
            raise
        self.steps += 1
        if tracer is not None:
            tracer(
                TraceEvent(
                    "after",
                    self.steps - 1,
                    pc,
                    instr,
                    tuple(self.stack),
                    tuple(self.registers),
                    next_pc=self.pc,
                )
            )
        return self.state is MachineState.RUNNING

    def run(self, tracer: Optional[Tracer] = None) -> int:
        """Run until ``Exit`` and return register 0; raise the first VMError."""
        while self.step(tracer):
            pass
        assert self.result is not None
        LOGGER.debug("halted at pc=%d after %d steps; result=%d", self.pc, self.steps, self.result)
        return self.result


def run(context: Context, tracer: Optional[Tracer] = None) -> int:
    return context.run(tracer)


# -- instruction semantics ----------------------------------------------


def _push(ctx: Context, instr: Instruction) -> None:
    ctx.push(ctx.operand(instr))
    ctx.pc += 1


def _pop(ctx: Context, instr: Instruction) -> None:
    ctx.pop(instr.opcode)
    ctx.pc += 1


def _arith(fn: Callable[[int, int], int]) -> Callable[[Context, Instruction], None]:
    def handler(ctx: Context, instr: Instruction) -> None:
        a, b = ctx.pop_pair(instr.opcode)
        ctx.push(wrap_int64(fn(a, b)))
        ctx.pc += 1

    return handler


def _div(ctx: Context, instr: Instruction) -> None:
    b = ctx.pop(instr.opcode)
    if b == 0:
        raise DivisionByZero(pc=ctx.pc)
    a = ctx.pop(instr.opcode)
    ctx.push(trunc_div(a, b))
    ctx.pc += 1


def _load_reg(ctx: Context, instr: Instruction) -> None:
    ctx.push(ctx.read_register(ctx.operand(instr)))
    ctx.pc += 1


def _store_reg(ctx: Context, instr: Instruction) -> None:
    # Index is validated before the pop so a bad index leaves the stack intact.
    idx = ctx.check_register(ctx.operand(instr))
    ctx.registers[idx] = ctx.pop(instr.opcode)
    ctx.pc += 1


def _load(ctx: Context, instr: Instruction) -> None:
    ctx.push(ctx.read_memory(ctx.operand(instr)))
    ctx.pc += 1


def _store(ctx: Context, instr: Instruction) -> None:
    address = ctx.operand(instr)
    ctx.write_memory(address, ctx.pop(instr.opcode))
    ctx.pc += 1


def _jump(ctx: Context, instr: Instruction) -> None:
    ctx.pc = ctx.target(instr)


def _branch(compare: Callable[[int, int], bool]) -> Callable[[Context, Instruction], None]:
    def handler(ctx: Context, instr: Instruction) -> None:
        target = ctx.target(instr)
        a, b = ctx.pop_pair(instr.opcode)
        if compare(a, b):
            ctx.pc = target
        else:
            ctx.pc += 1

    return handler


def _call(ctx: Context, instr: Instruction) -> None:
    # Call tolerates target == len(program); the next step then reports a missing Exit.
    target = ctx.target(instr, allow_end=True)
    ctx.call_stack.append(ctx.pc + 1)
    ctx.pc = target


def _return(ctx: Context, instr: Instruction) -> None:
    if not ctx.call_stack:
        raise CallStackUnderflow(pc=ctx.pc)
    ctx.pc = ctx.call_stack.pop()


def _exit(ctx: Context, instr: Instruction) -> None:
    ctx.state = MachineState.HALTED
    ctx.result = ctx.registers[0]


_HANDLERS: Dict[OpCode, Callable[[Context, Instruction], None]] = {
    OpCode.PUSH: _push,
    OpCode.POP: _pop,
    OpCode.ADD: _arith(operator.add),
    OpCode.SUB: _arith(operator.sub),
    OpCode.MUL: _arith(operator.mul),
    OpCode.DIV: _div,
    OpCode.LOAD_REG: _load_reg,
    OpCode.STORE_REG: _store_reg,
    OpCode.LOAD: _load,
    OpCode.STORE: _store,
    OpCode.JUMP: _jump,
    OpCode.JUMP_EQ: _branch(operator.eq),
    OpCode.JUMP_GT: _branch(operator.gt),
    OpCode.JUMP_LT: _branch(operator.lt),
    OpCode.CALL: _call,
    OpCode.RETURN: _return,
    OpCode.EXIT: _exit,
}

_unhandled = set(OpCode) - set(_HANDLERS)
if _unhandled:  # pragma: no cover - guards edits to OpCode
    raise RuntimeError(f"opcodes without a handler: {sorted(op.value for op in _unhandled)}")


def handled_opcodes() -> Iterable[OpCode]:
    return _HANDLERS.keys()
