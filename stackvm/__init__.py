"""stackvm: a minimal stack-and-register virtual machine."""

from .errors import (
    ERROR_KINDS,
    CallStackUnderflow,
    DivisionByZero,
    InvalidRegisterIndex,
    JumpTargetOutOfBounds,
    MissingOperand,
    ProgramTerminatedWithoutExit,
    StackUnderflow,
    VMError,
)
from .instruction import Instruction, Program
from .opcodes import OpCode
from .vm import REGISTER_COUNT, Context, MachineState, TraceEvent, run

__version__ = "0.1.0"

__all__ = [
    "CallStackUnderflow",
    "Context",
    "DivisionByZero",
    "ERROR_KINDS",
    "Instruction",
    "InvalidRegisterIndex",
    "JumpTargetOutOfBounds",
    "MachineState",
    "MissingOperand",
    "OpCode",
    "Program",
    "ProgramTerminatedWithoutExit",
    "REGISTER_COUNT",
    "StackUnderflow",
    "TraceEvent",
    "VMError",
    "run",
]
