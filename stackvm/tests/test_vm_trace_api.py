import logging

import pytest

from stackvm import Context, Instruction, OpCode
from stackvm.errors import DivisionByZero
from stackvm.programs import factorial
from stackvm.trace_format import ChainTracer, LoggingTracer, RecordingTracer

I = Instruction.of


def test_tracer_sees_before_and_after_each_instruction():
    program = [I(OpCode.PUSH, 1), I(OpCode.STORE_REG, 0), I(OpCode.EXIT)]
    events = []
    assert Context(program).run(events.append) == 1
    assert [(evt.phase, evt.pc) for evt in events] == [
        ("before", 0),
        ("after", 0),
        ("before", 1),
        ("after", 1),
        ("before", 2),
        ("after", 2),
    ]
    push_after = events[1]
    assert push_after.stack == (1,)
    assert push_after.next_pc == 1
    assert push_after.seq == 0
    store_after = events[3]
    assert store_after.stack == ()
    assert store_after.registers[0] == 1
    assert events[0].next_pc is None


def test_snapshots_are_immutable_copies():
    ctx = Context([I(OpCode.PUSH, 3), I(OpCode.EXIT)])
    seen = []
    ctx.run(seen.append)
    assert isinstance(seen[1].stack, tuple)
    assert isinstance(seen[1].registers, tuple)
    ctx.stack.append(99)
    assert seen[1].stack == (3,)


def test_tracer_does_not_change_results():
    plain = Context(factorial(6))
    traced = Context(factorial(6))
    recorder = RecordingTracer()
    assert plain.run() == traced.run(recorder) == 720
    assert plain.steps == traced.steps == len(recorder.records)
    assert plain.registers == traced.registers


def test_failed_instruction_gets_no_after_event():
    events = []
    ctx = Context([I(OpCode.PUSH, 1), I(OpCode.PUSH, 0), I(OpCode.DIV), I(OpCode.EXIT)])
    with pytest.raises(DivisionByZero):
        ctx.run(events.append)
    assert [(evt.phase, evt.pc) for evt in events][-2:] == [("after", 1), ("before", 2)]


def test_recording_tracer_records():
    recorder = RecordingTracer()
    Context([I(OpCode.PUSH, 4), I(OpCode.JUMP, 2), I(OpCode.EXIT)]).run(recorder)
    assert [rec["opcode"] for rec in recorder.records] == ["Push", "Jump", "Exit"]
    jump = recorder.records[1]
    assert jump["operands"] == [2]
    assert jump["pc"] == 1
    assert jump["next_pc"] == 2
    assert jump["stack"] == [4]
    assert len(jump["regs"]) == 11

    with_before = RecordingTracer(include_before=True)
    Context([I(OpCode.EXIT)]).run(with_before)
    assert [rec.get("phase", "after") for rec in with_before.records] == ["before", "after"]


def test_logging_tracer_emits_classic_dump(caplog):
    caplog.set_level(logging.DEBUG, logger="stackvm.trace")
    Context([I(OpCode.PUSH, 5), I(OpCode.EXIT)]).run(LoggingTracer())
    messages = [record.getMessage() for record in caplog.records if record.name == "stackvm.trace"]
    assert "PC: 0, Executing: Push 5" in messages
    assert "Stack before: []" in messages
    assert "Stack after: [5]" in messages
    assert "Registers: [0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0]" in messages


def test_chain_tracer_fans_out_and_skips_none():
    first, second = [], []
    chain = ChainTracer(first.append, None, second.append)
    Context([I(OpCode.EXIT)]).run(chain)
    assert len(first) == len(second) == 2


def test_tracer_exceptions_propagate():
    def boom(event):
        raise RuntimeError("tracer failed")

    with pytest.raises(RuntimeError):
        Context([I(OpCode.EXIT)]).run(boom)


def test_context_resumes_after_tracer_failure():
    seen = []

    def flaky(event):
        seen.append(event.phase)
        if len(seen) == 2:
            raise RuntimeError("after hook failed")

    ctx = Context([I(OpCode.PUSH, 7), I(OpCode.STORE_REG, 0), I(OpCode.EXIT)])
    with pytest.raises(RuntimeError):
        ctx.step(flaky)
    assert ctx.running
    assert ctx.pc == 1
    assert ctx.steps == 1
    assert ctx.stack == [7]
    assert ctx.run(flaky) == 7
    assert ctx.steps == 3
