"""Built-in example programs."""

from __future__ import annotations

from typing import Callable, Dict

from .instruction import Instruction, Program
from .opcodes import OpCode

# Index of the loop head and of the Exit instruction in factorial().
FACTORIAL_LOOP = 4
FACTORIAL_EXIT = 16


def factorial(n: int = 5) -> Program:
    """Counted-loop factorial: r1 counts down from ``n``, r0 accumulates."""
    if n < 1:
        raise ValueError(f"factorial program needs n >= 1 (got {n})")
    I = Instruction.of
    return (
        # 0: r1 = n
        I(OpCode.PUSH, n),
        I(OpCode.STORE_REG, 1),
        # 2: r0 = 1
        I(OpCode.PUSH, 1),
        I(OpCode.STORE_REG, 0),
        # 4: loop head; leave when r1 == 1
        I(OpCode.LOAD_REG, 1),
        I(OpCode.PUSH, 1),
        I(OpCode.JUMP_EQ, FACTORIAL_EXIT),
        # 7: r0 = r0 * r1
        I(OpCode.LOAD_REG, 0),
        I(OpCode.LOAD_REG, 1),
        I(OpCode.MUL),
        I(OpCode.STORE_REG, 0),
        # 11: r1 = r1 - 1
        I(OpCode.LOAD_REG, 1),
        I(OpCode.PUSH, 1),
        I(OpCode.SUB),
        I(OpCode.STORE_REG, 1),
        # 15
        I(OpCode.JUMP, FACTORIAL_LOOP),
        # 16: result in r0
        I(OpCode.EXIT),
    )


FACTORIAL_SOURCE = """\
; factorial of 5: r1 counts down, r0 accumulates
        Push 5
        StoreReg 1
        Push 1
        StoreReg 0
loop:   LoadReg 1
        Push 1
        JumpEq done
        LoadReg 0
        LoadReg 1
        Mul
        StoreReg 0
        LoadReg 1
        Push 1
        Sub
        StoreReg 1
        Jump loop
done:   Exit
"""


PROGRAMS: Dict[str, Callable[[int], Program]] = {
    "factorial": factorial,
}
