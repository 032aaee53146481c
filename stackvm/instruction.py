"""Instruction and program containers shared by the engine and its tooling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from .opcodes import OPCODE_NAMES, OpCode

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1
_UINT64_MASK = (1 << 64) - 1


def wrap_int64(value: int) -> int:
    """Wrap ``value`` to signed 64-bit two's complement."""
    value &= _UINT64_MASK
    if value > INT64_MAX:
        value -= 1 << 64
    return value


def to_uint64(value: int) -> int:
    return value & _UINT64_MASK


def trunc_div(a: int, b: int) -> int:
    """Integer division truncating toward zero (Python's ``//`` floors)."""
    quotient = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        quotient = -quotient
    return wrap_int64(quotient)


def _coerce_operand(value: Any, idx: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"operand {idx} must be an integer (got {value!r})")
    if not INT64_MIN <= value <= INT64_MAX:
        raise ValueError(f"operand {idx} out of signed 64-bit range: {value}")
    return value


@dataclass(frozen=True)
class Instruction:
    """One operation: an opcode tag plus its ordered integer operands."""

    opcode: OpCode
    operands: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.opcode, OpCode):
            raise ValueError(f"opcode must be an OpCode (got {self.opcode!r})")
        operands = tuple(_coerce_operand(value, idx) for idx, value in enumerate(self.operands))
        object.__setattr__(self, "operands", operands)

    @classmethod
    def of(cls, opcode: OpCode, *operands: int) -> "Instruction":
        return cls(opcode, operands)

    @property
    def operand(self) -> Optional[int]:
        return self.operands[0] if self.operands else None

    def __str__(self) -> str:
        name = OPCODE_NAMES[self.opcode]
        if not self.operands:
            return name
        return f"{name} " + ", ".join(str(value) for value in self.operands)


Program = Tuple[Instruction, ...]


def as_program(instructions: Iterable[Instruction]) -> Program:
    program = tuple(instructions)
    for idx, instr in enumerate(program):
        if not isinstance(instr, Instruction):
            raise TypeError(f"program[{idx}] is not an Instruction: {instr!r}")
    return program
