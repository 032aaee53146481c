"""Shared opcode definitions for the stackvm toolchain.

Keeping the canonical table in a single module prevents drift between the
engine, the assembler, and the disassembler. Tests assert that all consumers
use these tables unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Tuple


class OpCode(Enum):
    PUSH = "Push"
    POP = "Pop"
    ADD = "Add"
    SUB = "Sub"
    MUL = "Mul"
    DIV = "Div"
    LOAD_REG = "LoadReg"
    STORE_REG = "StoreReg"
    LOAD = "Load"
    STORE = "Store"
    JUMP = "Jump"
    JUMP_EQ = "JumpEq"
    JUMP_GT = "JumpGt"
    JUMP_LT = "JumpLt"
    CALL = "Call"
    RETURN = "Return"
    EXIT = "Exit"

    @property
    def mnemonic(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


# Ordered so docs and tooling can iterate in a stable order: (mnemonic, opcode, operand count).
OPCODE_LIST: Tuple[Tuple[str, OpCode, int], ...] = (
    ("Push", OpCode.PUSH, 1),
    ("Pop", OpCode.POP, 0),
    ("Add", OpCode.ADD, 0),
    ("Sub", OpCode.SUB, 0),
    ("Mul", OpCode.MUL, 0),
    ("Div", OpCode.DIV, 0),
    ("LoadReg", OpCode.LOAD_REG, 1),
    ("StoreReg", OpCode.STORE_REG, 1),
    ("Load", OpCode.LOAD, 1),
    ("Store", OpCode.STORE, 1),
    ("Jump", OpCode.JUMP, 1),
    ("JumpEq", OpCode.JUMP_EQ, 1),
    ("JumpGt", OpCode.JUMP_GT, 1),
    ("JumpLt", OpCode.JUMP_LT, 1),
    ("Call", OpCode.CALL, 1),
    ("Return", OpCode.RETURN, 0),
    ("Exit", OpCode.EXIT, 0),
)

OPCODES: Dict[str, OpCode] = {mnemonic.upper(): opcode for mnemonic, opcode, _ in OPCODE_LIST}
OPCODE_NAMES: Dict[OpCode, str] = {opcode: mnemonic for mnemonic, opcode, _ in OPCODE_LIST}
OPERAND_COUNTS: Dict[OpCode, int] = {opcode: count for _, opcode, count in OPCODE_LIST}

CONDITIONAL_JUMPS: FrozenSet[OpCode] = frozenset({OpCode.JUMP_EQ, OpCode.JUMP_GT, OpCode.JUMP_LT})
CONTROL_TRANSFER: FrozenSet[OpCode] = CONDITIONAL_JUMPS | {OpCode.JUMP, OpCode.CALL, OpCode.RETURN}

__all__ = [
    "OpCode",
    "OPCODE_LIST",
    "OPCODES",
    "OPCODE_NAMES",
    "OPERAND_COUNTS",
    "CONDITIONAL_JUMPS",
    "CONTROL_TRANSFER",
    "lookup",
]


def lookup(name: str) -> OpCode:
    """Resolve a mnemonic such as ``LoadReg``, ``loadreg`` or ``LOAD_REG``."""

    key = name.strip().upper()
    if key in OPCODES:
        return OPCODES[key]
    try:
        return OpCode[key]
    except KeyError:
        raise KeyError(f"unknown opcode '{name}'") from None
