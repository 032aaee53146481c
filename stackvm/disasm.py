"""Render stackvm programs back to assembler text."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .instruction import Instruction
from .opcodes import CONTROL_TRANSFER, OPCODE_NAMES, OPCODES

__all__ = ["OPCODES", "OPCODE_NAMES", "format_instruction", "disassemble", "render_listing"]


def _invert(labels: Optional[Mapping[str, int]]) -> Dict[int, str]:
    if not labels:
        return {}
    by_index: Dict[int, str] = {}
    for name, index in sorted(labels.items(), key=lambda item: item[0]):
        by_index.setdefault(index, name)
    return by_index


def format_instruction(instr: Instruction, *, labels: Optional[Mapping[str, int]] = None) -> str:
    """Render ``instr`` as ``"Push 5"`` or ``"JumpEq done"`` when a label covers the target."""

    name = OPCODE_NAMES[instr.opcode]
    if not instr.operands:
        return name
    names = _invert(labels)
    rendered = []
    for value in instr.operands:
        if instr.opcode in CONTROL_TRANSFER and value in names:
            rendered.append(names[value])
        else:
            rendered.append(str(value))
    return f"{name} " + ", ".join(rendered)


def disassemble(
    program: Iterable[Instruction], *, labels: Optional[Mapping[str, int]] = None
) -> List[Tuple[int, str]]:
    return [(idx, format_instruction(instr, labels=labels)) for idx, instr in enumerate(program)]


def render_listing(
    program: Iterable[Instruction],
    *,
    labels: Optional[Mapping[str, int]] = None,
    marker: Optional[int] = None,
) -> str:
    """Return a listing that :func:`stackvm.asm.assemble` accepts unchanged."""

    names = _invert(labels)
    lines: List[str] = []
    for idx, text in disassemble(program, labels=labels):
        label = f"{names[idx]}:" if idx in names else ""
        suffix = " <- pc" if marker == idx else ""
        lines.append(f"  {label:<12} {text:<20} ; {idx}{suffix}")
    return "\n".join(lines)
