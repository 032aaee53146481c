import json

import pytest

from stackvm import Context, Instruction, OpCode
from stackvm.errors import StackUnderflow
from stackvm.trace_format import (
    TRACE_FORMAT_VERSION,
    RecordingTracer,
    decode_trace_records,
    encode_trace_records,
    read_trace_file,
    write_trace_file,
)


def test_encode_normalises_trace_record() -> None:
    record = {
        "seq": "0x10",
        "pc": "7",
        "opcode": " Push ",
        "operands": ["5"],
        "next_pc": "8",
        "stack": [1, "0x2"],
        "regs": ["-3"],
        "notes": "kept",
    }
    normalised = encode_trace_records([record])[0]
    assert normalised["seq"] == 16
    assert normalised["pc"] == 7
    assert normalised["opcode"] == "Push"
    assert normalised["operands"] == [5]
    assert normalised["next_pc"] == 8
    assert normalised["stack"] == [1, 2]
    assert normalised["regs"] == [-3]
    assert normalised["notes"] == "kept"


def test_decode_converts_sequences_to_tuples() -> None:
    decoded = decode_trace_records([{"seq": 0, "pc": 0, "opcode": "Exit", "stack": [4]}])[0]
    assert decoded["stack"] == (4,)
    assert decoded["operands"] == ()
    assert isinstance(decoded["regs"], tuple)


def test_decode_missing_required_field_raises() -> None:
    with pytest.raises(ValueError):
        decode_trace_records([{"pc": 0, "opcode": "Exit"}])


def test_boolean_fields_rejected() -> None:
    with pytest.raises(ValueError):
        encode_trace_records([{"seq": True, "pc": 0, "opcode": "Exit"}])


def test_trace_file_round_trip(tmp_path) -> None:
    recorder = RecordingTracer()
    ctx = Context([Instruction.of(OpCode.PUSH, 3), Instruction.of(OpCode.STORE_REG, 0), Instruction.of(OpCode.EXIT)])
    result = ctx.run(recorder)
    path = tmp_path / "trace.json"
    write_trace_file(path, recorder.records, result=result)

    raw = json.loads(path.read_text())
    assert raw["format"] == TRACE_FORMAT_VERSION
    assert raw["result"] == 3

    payload = read_trace_file(path)
    assert [rec["opcode"] for rec in payload["records"]] == ["Push", "StoreReg", "Exit"]
    assert payload["records"][0]["stack"] == (3,)


def test_trace_file_records_error(tmp_path) -> None:
    recorder = RecordingTracer()
    ctx = Context([Instruction.of(OpCode.POP), Instruction.of(OpCode.EXIT)])
    with pytest.raises(StackUnderflow) as excinfo:
        ctx.run(recorder)
    path = tmp_path / "trace.json"
    write_trace_file(path, recorder.records, error=excinfo.value)
    raw = json.loads(path.read_text())
    assert raw["records"] == []
    assert raw["error"]["kind"] == "StackUnderflow"
    assert raw["error"]["opcode"] == "Pop"
    assert "result" not in raw


def test_read_trace_file_rejects_unknown_format(tmp_path) -> None:
    path = tmp_path / "trace.json"
    path.write_text(json.dumps({"format": "other/1", "records": []}))
    with pytest.raises(ValueError):
        read_trace_file(path)
