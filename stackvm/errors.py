"""Failure reasons raised by the stackvm engine.

Every error is fatal to the run that raised it; the dispatch loop stops and the
exception reaches the caller unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, Type

from .opcodes import OPCODE_NAMES, OpCode


class VMError(Exception):
    """Base class for engine failures."""

    def __init__(self, message: str, *, pc: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.pc = pc

    @property
    def kind(self) -> str:
        return type(self).__name__

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.pc is not None:
            payload["pc"] = self.pc
        payload.update(self.details())
        return payload


class MissingOperand(VMError):
    def __init__(self, opcode: OpCode, *, pc: Optional[int] = None) -> None:
        super().__init__(f"{OPCODE_NAMES[opcode]} requires an operand", pc=pc)
        self.opcode = opcode

    def details(self) -> Dict[str, Any]:
        return {"opcode": OPCODE_NAMES[self.opcode]}


class StackUnderflow(VMError):
    def __init__(self, opcode: OpCode, *, pc: Optional[int] = None) -> None:
        super().__init__(f"Stack underflow in {OPCODE_NAMES[opcode]}", pc=pc)
        self.opcode = opcode

    def details(self) -> Dict[str, Any]:
        return {"opcode": OPCODE_NAMES[self.opcode]}


class CallStackUnderflow(VMError):
    def __init__(self, *, pc: Optional[int] = None) -> None:
        super().__init__("Call stack underflow (unmatched Return)", pc=pc)


class DivisionByZero(VMError):
    def __init__(self, *, pc: Optional[int] = None) -> None:
        super().__init__("Division by zero", pc=pc)


class InvalidRegisterIndex(VMError):
    def __init__(self, index: int, *, pc: Optional[int] = None) -> None:
        super().__init__(f"Invalid register index: {index}", pc=pc)
        self.index = index

    def details(self) -> Dict[str, Any]:
        return {"index": self.index}


class JumpTargetOutOfBounds(VMError):
    def __init__(self, target: int, *, pc: Optional[int] = None) -> None:
        super().__init__(f"Jump target out of bounds: {target}", pc=pc)
        self.target = target

    def details(self) -> Dict[str, Any]:
        return {"target": self.target}


class ProgramTerminatedWithoutExit(VMError):
    def __init__(self, *, pc: Optional[int] = None) -> None:
        super().__init__("Program terminated without explicit exit", pc=pc)


ERROR_KINDS: Tuple[Type[VMError], ...] = (
    MissingOperand,
    StackUnderflow,
    CallStackUnderflow,
    DivisionByZero,
    InvalidRegisterIndex,
    JumpTargetOutOfBounds,
    ProgramTerminatedWithoutExit,
)

__all__ = ["VMError", "ERROR_KINDS"] + [cls.__name__ for cls in ERROR_KINDS]
