"""Output helpers shared by the CLI and the debugger."""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional, Sequence

from tabulate import tabulate

from .vm import MachineSnapshot


def _json_dump(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, indent=2, sort_keys=True)


def emit_result(*, message: str, data: Optional[Mapping[str, Any]] = None, json_output: bool = False) -> None:
    """Emit a successful command result."""
    if json_output:
        payload: Dict[str, Any] = {"status": "ok"}
        if data is not None:
            payload["result"] = data
        else:
            payload["message"] = message
        print(_json_dump(payload))
    else:
        print(message)


def emit_error(*, message: str, data: Optional[Mapping[str, Any]] = None, json_output: bool = False) -> None:
    """Emit an error message respecting JSON mode."""
    payload: Dict[str, Any] = {"status": "error", "error": message}
    if data:
        payload["details"] = dict(data)
    if json_output:
        print(_json_dump(payload))
    else:
        print(f"error: {message}")


def render_registers(registers: Sequence[int]) -> str:
    rows = [(f"r{idx}", value, f"0x{value & 0xFFFFFFFFFFFFFFFF:016X}") for idx, value in enumerate(registers)]
    return tabulate(rows, headers=["reg", "value", "hex"], tablefmt="github")


def render_stack(stack: Sequence[int], *, label: str = "stack") -> str:
    if not stack:
        return f"{label}: (empty)"
    # Top of stack first.
    rows = [(depth, value) for depth, value in enumerate(reversed(stack))]
    return tabulate(rows, headers=["depth", label], tablefmt="github")


def render_memory(memory: Mapping[int, int]) -> str:
    if not memory:
        return "memory: (empty)"
    rows = [(f"0x{address:X}", value) for address, value in sorted(memory.items())]
    return tabulate(rows, headers=["address", "value"], tablefmt="github")


def render_snapshot(snapshot: MachineSnapshot) -> str:
    parts = [
        f"pc={snapshot.pc} state={snapshot.state.value} steps={snapshot.steps}",
        render_registers(snapshot.registers),
        render_stack(snapshot.stack),
        render_stack(snapshot.call_stack, label="call stack"),
        render_memory(snapshot.memory),
    ]
    return "\n\n".join(parts)


def snapshot_to_dict(snapshot: MachineSnapshot) -> Dict[str, Any]:
    return {
        "pc": snapshot.pc,
        "state": snapshot.state.value,
        "steps": snapshot.steps,
        "stack": list(snapshot.stack),
        "call_stack": list(snapshot.call_stack),
        "registers": list(snapshot.registers),
        "memory": {str(address): value for address, value in sorted(snapshot.memory.items())},
    }
