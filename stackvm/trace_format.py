"""Tracing observers and helpers for normalising stackvm trace records.

Trace records are exchanged as JSON dictionaries using the ``stackvm.trace/1``
format. The helpers here ensure the required fields are present, coerce
integers, and sanitise stack/register snapshots so downstream tools can rely on
a stable schema regardless of whether a trace was recorded live or loaded from
a file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .errors import VMError
from .opcodes import OPCODE_NAMES
from .vm import TraceEvent, Tracer

TRACE_FORMAT_VERSION = "stackvm.trace/1"

_REQUIRED_FIELDS = ("seq", "pc", "opcode")
_OPTIONAL_INT_FIELDS = ("next_pc",)
_SEQUENCE_FIELDS = ("operands", "stack", "regs")


def _coerce_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer, got boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        base = 16 if value.lower().lstrip("-").startswith("0x") else 10
        return int(value, base)
    raise ValueError(f"{field} must be integer-compatible (got {value!r})")


def _coerce_int_list(values: Any, field: str) -> List[int]:
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValueError(f"{field} must be a sequence")
    return [_coerce_int(entry, f"{field}[{idx}]") for idx, entry in enumerate(values)]


def event_to_record(event: TraceEvent) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "seq": event.seq,
        "pc": event.pc,
        "opcode": OPCODE_NAMES[event.instruction.opcode],
        "operands": list(event.instruction.operands),
        "stack": list(event.stack),
        "regs": list(event.registers),
    }
    if event.phase != "after":
        record["phase"] = event.phase
    if event.next_pc is not None:
        record["next_pc"] = event.next_pc
    return record


def normalise_trace_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a JSON-friendly copy of ``record`` with the canonical schema.

    ``opcode`` stays a mnemonic string; the remaining required fields are
    coerced to integers and snapshots are promoted to lists. Unknown fields are
    preserved so callers can attach metadata such as ``phase`` or ``notes``.
    """

    normalized: Dict[str, Any] = {}
    for field in _REQUIRED_FIELDS:
        if field not in record:
            raise ValueError(f"trace record missing required field '{field}'")
    normalized["seq"] = _coerce_int(record["seq"], "seq")
    normalized["pc"] = _coerce_int(record["pc"], "pc")
    opcode = str(record["opcode"]).strip()
    if not opcode:
        raise ValueError("opcode must be a non-empty mnemonic")
    normalized["opcode"] = opcode

    for field in _OPTIONAL_INT_FIELDS:
        if field in record and record[field] is not None:
            normalized[field] = _coerce_int(record[field], field)
    for field in _SEQUENCE_FIELDS:
        normalized[field] = _coerce_int_list(record.get(field), field)

    for key, value in record.items():
        if key in normalized or key in _REQUIRED_FIELDS:
            continue
        normalized[key] = value
    return normalized


def encode_trace_records(records: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Return a list of normalised trace records suitable for JSON encoding."""

    return [normalise_trace_record(record) for record in records]


def decode_trace_records(records: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Parse records produced by :func:`encode_trace_records`.

    Snapshots are converted to tuples so the caller can store them without
    additional copies.
    """

    parsed: List[Dict[str, Any]] = []
    for record in records:
        internal = normalise_trace_record(record)
        for field in _SEQUENCE_FIELDS:
            internal[field] = tuple(internal[field])
        parsed.append(internal)
    return parsed


def write_trace_file(
    path: Union[str, Path],
    records: Iterable[Mapping[str, Any]],
    *,
    result: Optional[int] = None,
    error: Optional[VMError] = None,
) -> None:
    payload: Dict[str, Any] = {
        "format": TRACE_FORMAT_VERSION,
        "records": encode_trace_records(records),
    }
    if error is not None:
        payload["error"] = error.to_dict()
    elif result is not None:
        payload["result"] = result
    Path(path).write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def read_trace_file(path: Union[str, Path]) -> Dict[str, Any]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if payload.get("format") != TRACE_FORMAT_VERSION:
        raise ValueError(f"unsupported trace format {payload.get('format')!r}")
    payload["records"] = decode_trace_records(payload.get("records", []))
    return payload


class RecordingTracer:
    """Collects trace records in memory."""

    def __init__(self, *, include_before: bool = False) -> None:
        self.include_before = include_before
        self.records: List[Dict[str, Any]] = []

    def __call__(self, event: TraceEvent) -> None:
        if event.phase == "before" and not self.include_before:
            return
        self.records.append(event_to_record(event))

    def clear(self) -> None:
        self.records.clear()


class LoggingTracer:
    """Writes the classic step-by-step debug dump through ``logging``."""

    def __init__(self, logger: Optional[logging.Logger] = None, *, level: int = logging.DEBUG) -> None:
        self.logger = logger or logging.getLogger("stackvm.trace")
        self.level = level

    def __call__(self, event: TraceEvent) -> None:
        log = self.logger.log
        if event.phase == "before":
            log(self.level, "PC: %d, Executing: %s", event.pc, event.instruction)
            log(self.level, "Stack before: %s", list(event.stack))
            return
        log(self.level, "Stack after: %s", list(event.stack))
        log(self.level, "Registers: %s", list(event.registers))
        log(self.level, "-------------------")


class ChainTracer:
    """Fans each event out to several tracers in order."""

    def __init__(self, *tracers: Optional[Tracer]) -> None:
        self.tracers = [tracer for tracer in tracers if tracer is not None]

    def __call__(self, event: TraceEvent) -> None:
        for tracer in self.tracers:
            tracer(event)
