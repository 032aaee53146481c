import pytest

from stackvm import Context, Instruction, MachineState, OpCode, run
from stackvm.errors import (
    JumpTargetOutOfBounds,
    MissingOperand,
    ProgramTerminatedWithoutExit,
    StackUnderflow,
    VMError,
)
from stackvm.programs import FACTORIAL_EXIT, FACTORIAL_LOOP, factorial

I = Instruction.of


def test_factorial_of_five_with_explicit_indices():
    program = [
        I(OpCode.PUSH, 5),        # 0
        I(OpCode.STORE_REG, 1),   # 1
        I(OpCode.PUSH, 1),        # 2
        I(OpCode.STORE_REG, 0),   # 3
        I(OpCode.LOAD_REG, 1),    # 4  loop head
        I(OpCode.PUSH, 1),        # 5
        I(OpCode.JUMP_EQ, 16),    # 6  -> Exit
        I(OpCode.LOAD_REG, 0),    # 7
        I(OpCode.LOAD_REG, 1),    # 8
        I(OpCode.MUL),            # 9
        I(OpCode.STORE_REG, 0),   # 10
        I(OpCode.LOAD_REG, 1),    # 11
        I(OpCode.PUSH, 1),        # 12
        I(OpCode.SUB),            # 13
        I(OpCode.STORE_REG, 1),   # 14
        I(OpCode.JUMP, 4),        # 15
        I(OpCode.EXIT),           # 16
    ]
    assert program[16].opcode is OpCode.EXIT
    ctx = Context(program)
    assert run(ctx) == 120
    assert ctx.pc == 16
    assert ctx.steps == 56
    assert ctx.registers[1] == 1


def test_factorial_builder_targets_exit_and_loop_head():
    program = factorial(5)
    assert len(program) == 17
    assert program[6] == I(OpCode.JUMP_EQ, FACTORIAL_EXIT)
    assert program[FACTORIAL_EXIT] == I(OpCode.EXIT)
    assert program[15] == I(OpCode.JUMP, FACTORIAL_LOOP)
    assert program[FACTORIAL_LOOP] == I(OpCode.LOAD_REG, 1)
    assert Context(program).run() == 120


@pytest.mark.parametrize("n, expected", [(1, 1), (2, 2), (3, 6), (10, 3628800), (20, 2432902008176640000)])
def test_factorial_builder_values(n, expected):
    assert Context(factorial(n)).run() == expected


def test_factorial_builder_rejects_non_positive():
    with pytest.raises(ValueError):
        factorial(0)


def test_factorial_exit_target_drift_is_caught():
    program = list(factorial(5))
    program[6] = I(OpCode.JUMP_EQ, 12)
    with pytest.raises(VMError):
        Context(program).run()


def test_jump_sets_pc_without_advancing():
    ctx = Context([
        I(OpCode.JUMP, 2),
        I(OpCode.PUSH, 1),
        I(OpCode.PUSH, 7),
        I(OpCode.STORE_REG, 0),
        I(OpCode.EXIT),
    ])
    assert ctx.step() is True
    assert ctx.pc == 2
    assert ctx.run() == 7
    assert ctx.stack == []


@pytest.mark.parametrize("target", [2, 3, -1])
def test_jump_target_out_of_bounds(target):
    ctx = Context([I(OpCode.JUMP, target), I(OpCode.EXIT)])
    with pytest.raises(JumpTargetOutOfBounds) as excinfo:
        ctx.run()
    assert excinfo.value.target == target


@pytest.mark.parametrize(
    "op, a, b, taken",
    [
        (OpCode.JUMP_EQ, 3, 3, True),
        (OpCode.JUMP_EQ, 3, 4, False),
        (OpCode.JUMP_GT, 4, 3, True),
        (OpCode.JUMP_GT, 3, 4, False),
        (OpCode.JUMP_GT, 3, 3, False),
        (OpCode.JUMP_LT, 3, 4, True),
        (OpCode.JUMP_LT, 4, 3, False),
        (OpCode.JUMP_LT, -5, -5, False),
    ],
)
def test_conditional_jumps_compare_second_popped_to_first(op, a, b, taken):
    ctx = Context([
        I(OpCode.PUSH, a),        # 0
        I(OpCode.PUSH, b),        # 1
        I(op, 6),                 # 2
        I(OpCode.PUSH, 0),        # 3
        I(OpCode.STORE_REG, 0),   # 4
        I(OpCode.EXIT),           # 5
        I(OpCode.PUSH, 1),        # 6
        I(OpCode.STORE_REG, 0),   # 7
        I(OpCode.EXIT),           # 8
    ])
    ctx.step()
    ctx.step()
    ctx.step()
    assert ctx.pc == (6 if taken else 3)
    assert ctx.stack == []
    assert ctx.run() == (1 if taken else 0)


@pytest.mark.parametrize("op", [OpCode.JUMP_EQ, OpCode.JUMP_GT, OpCode.JUMP_LT])
def test_conditional_jump_bounds_checked_before_popping(op):
    ctx = Context([I(OpCode.PUSH, 1), I(OpCode.PUSH, 1), I(op, 99), I(OpCode.EXIT)])
    with pytest.raises(JumpTargetOutOfBounds):
        ctx.run()
    assert ctx.stack == [1, 1]


@pytest.mark.parametrize("op", [OpCode.JUMP_EQ, OpCode.JUMP_GT, OpCode.JUMP_LT])
def test_conditional_jump_needs_two_values(op):
    ctx = Context([I(OpCode.PUSH, 1), I(op, 0), I(OpCode.EXIT)])
    with pytest.raises(StackUnderflow) as excinfo:
        ctx.run()
    assert excinfo.value.opcode is op


@pytest.mark.parametrize("op", [OpCode.JUMP, OpCode.JUMP_EQ, OpCode.CALL])
def test_control_transfer_missing_operand(op):
    ctx = Context([Instruction(op), I(OpCode.EXIT)])
    with pytest.raises(MissingOperand):
        ctx.run()


def test_exit_returns_register_zero_and_halts():
    ctx = Context([I(OpCode.PUSH, 42), I(OpCode.STORE_REG, 0), I(OpCode.EXIT), I(OpCode.POP)])
    assert ctx.run() == 42
    assert ctx.state is MachineState.HALTED
    assert ctx.pc == 2
    assert ctx.step() is False
    assert ctx.run() == 42
    assert ctx.steps == 3


def test_exit_ignores_operand_stack():
    ctx = Context([I(OpCode.PUSH, 5), I(OpCode.EXIT)])
    assert ctx.run() == 0
    assert ctx.stack == [5]


def test_empty_program_terminates_without_exit():
    ctx = Context([])
    with pytest.raises(ProgramTerminatedWithoutExit) as excinfo:
        ctx.run()
    assert excinfo.value.pc == 0


def test_exhausted_program_terminates_without_exit():
    ctx = Context([I(OpCode.PUSH, 1), I(OpCode.POP)])
    with pytest.raises(ProgramTerminatedWithoutExit) as excinfo:
        ctx.run()
    assert excinfo.value.pc == 2
    assert ctx.state is MachineState.FAILED


def test_failed_context_reraises_recorded_error():
    ctx = Context([I(OpCode.POP), I(OpCode.EXIT)])
    with pytest.raises(StackUnderflow) as first:
        ctx.step()
    with pytest.raises(StackUnderflow) as second:
        ctx.step()
    assert second.value is first.value


def test_step_boundary_guard_stops_infinite_loop():
    ctx = Context([I(OpCode.JUMP, 0), I(OpCode.EXIT)])
    for _ in range(100):
        assert ctx.step() is True
    assert ctx.steps == 100
    assert ctx.pc == 0
    assert ctx.state is MachineState.RUNNING
