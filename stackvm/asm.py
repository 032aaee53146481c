"""Two-pass assembler for stackvm source text.

Source format, one instruction per line::

    ; factorial of 5
            push 5
            storereg 1
    loop:   loadreg 1
            jumpeq done      ; labels resolve to instruction indices
    done:   exit

Mnemonics are case-insensitive and accept either ``LoadReg`` or ``LOAD_REG``
spelling. Comments start with ``;`` or ``#``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .instruction import INT64_MAX, INT64_MIN, Instruction, Program
from .opcodes import OPCODES, OPERAND_COUNTS, lookup

OPC = OPCODES

LABEL_RE = re.compile(r"^([A-Za-z_.][A-Za-z0-9_.$]*)\s*:")
SYMBOL_TOKEN_RE = re.compile(r"[A-Za-z_.][A-Za-z0-9_.$]*")


class AsmError(ValueError):
    """Raised for malformed assembler input; carries the 1-based line number."""

    def __init__(self, message: str, *, line_no: Optional[int] = None, line: Optional[str] = None) -> None:
        location = f"line {line_no}: " if line_no is not None else ""
        super().__init__(f"{location}{message}")
        self.line_no = line_no
        self.line = line


def parse_int(token: str) -> int:
    token = token.strip()
    negative = token.startswith("-")
    body = token[1:] if negative else token
    lowered = body.lower()
    if lowered.startswith("0x"):
        value = int(body, 16)
    elif lowered.startswith("0b"):
        value = int(body, 2)
    elif body.startswith("'") and body.endswith("'") and len(body) == 3:
        value = ord(body[1])
    else:
        value = int(body, 10)
    value = -value if negative else value
    if not INT64_MIN <= value <= INT64_MAX:
        raise ValueError(f"Literal out of signed 64-bit range: {token}")
    return value


def _unquoted(text: str) -> Iterator[Tuple[int, str]]:
    """Yield ``(index, char)`` for characters outside ``'c'`` literals."""
    pos = 0
    while pos < len(text):
        if text[pos] == "'" and pos + 2 < len(text) and text[pos + 2] == "'":
            pos += 3
            continue
        yield pos, text[pos]
        pos += 1


def _strip_comment(line: str) -> str:
    for pos, char in _unquoted(line):
        if char in ";#":
            return line[:pos].strip()
    return line.strip()


def _split_operands(text: str) -> List[str]:
    operands: List[str] = []
    start = 0
    for pos, char in _unquoted(text):
        if char == ",":
            operands.append(text[start:pos].strip())
            start = pos + 1
    operands.append(text[start:].strip())
    return operands


def _split_lines(lines: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(lines, str):
        return lines.splitlines()
    return [line.rstrip("\n") for line in lines]


def _scan(lines: List[str]) -> Tuple[List[Tuple[int, str, str, List[str]]], Dict[str, int]]:
    """First pass: collect labels and split instruction lines."""
    labels: Dict[str, int] = {}
    pending: List[Tuple[int, str, str, List[str]]] = []
    for line_no, raw in enumerate(lines, start=1):
        text = _strip_comment(raw)
        while True:
            match = LABEL_RE.match(text)
            if not match:
                break
            name = match.group(1)
            if name in labels:
                raise AsmError(f"Duplicate label '{name}'", line_no=line_no, line=raw)
            labels[name] = len(pending)
            text = text[match.end():].strip()
        if not text:
            continue
        parts = text.split(None, 1)
        mnemonic = parts[0]
        operands = _split_operands(parts[1]) if len(parts) > 1 else []
        if any(not tok for tok in operands):
            raise AsmError("Empty operand", line_no=line_no, line=raw)
        pending.append((line_no, raw, mnemonic, operands))
    return pending, labels


def _resolve_operand(token: str, labels: Dict[str, int], *, line_no: int, line: str) -> int:
    try:
        return parse_int(token)
    except ValueError as exc:
        if SYMBOL_TOKEN_RE.fullmatch(token):
            if token in labels:
                return labels[token]
            raise AsmError(f"Undefined label '{token}'", line_no=line_no, line=line) from None
        raise AsmError(f"Bad operand '{token}': {exc}", line_no=line_no, line=line) from None


def assemble_with_labels(lines: Union[str, Iterable[str]]) -> Tuple[Program, Dict[str, int]]:
    pending, labels = _scan(_split_lines(lines))
    program: List[Instruction] = []
    for line_no, raw, mnemonic, tokens in pending:
        try:
            opcode = lookup(mnemonic)
        except KeyError:
            raise AsmError(f"Unknown mnemonic '{mnemonic}'", line_no=line_no, line=raw) from None
        expected = OPERAND_COUNTS[opcode]
        if len(tokens) != expected:
            raise AsmError(
                f"{opcode.mnemonic} expects {expected} operand(s), got {len(tokens)}",
                line_no=line_no,
                line=raw,
            )
        operands = tuple(_resolve_operand(tok, labels, line_no=line_no, line=raw) for tok in tokens)
        program.append(Instruction(opcode, operands))
    return tuple(program), labels


def assemble(lines: Union[str, Iterable[str]]) -> Program:
    program, _labels = assemble_with_labels(lines)
    return program


def assemble_file(path: Union[str, Path]) -> Tuple[Program, Dict[str, int]]:
    text = Path(path).read_text(encoding="utf-8")
    return assemble_with_labels(text)


def label_map(lines: Union[str, Iterable[str]]) -> Dict[str, int]:
    _pending, labels = _scan(_split_lines(lines))
    return labels
