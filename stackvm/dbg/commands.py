"""Debugger commands and their registry."""

from __future__ import annotations

import argparse
import shlex
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from ..disasm import render_listing
from ..output import emit_error, emit_result, render_memory, render_registers, render_stack
from .context import DebuggerContext
from .session import StopInfo


def split_command(line: str) -> List[str]:
    """Split a command line into argv tokens using shlex rules."""
    if not line:
        return []
    try:
        return shlex.split(line, comments=False, posix=True)
    except ValueError as exc:
        # Return the raw line as a single token so callers can raise a friendlier error.
        return [line.strip(), f"#parse-error:{exc}"]


@dataclass
class Command:
    """Abstract command description."""

    name: str
    description: str
    aliases: Sequence[str] = field(default_factory=tuple)

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        raise NotImplementedError("Command must implement run()")

    def format_help(self) -> str:
        return f"{self.name:<12} {self.description}"


def _report_stop(ctx: DebuggerContext, stop: StopInfo) -> int:
    data = {"reason": stop.reason, "pc": stop.pc, "steps": stop.steps}
    if stop.result is not None:
        data["result"] = stop.result
    if stop.error is not None:
        data["error"] = stop.error.to_dict()
        emit_error(message=stop.describe(), data=data, json_output=ctx.json_output)
        return 1
    emit_result(message=stop.describe(), data=data, json_output=ctx.json_output)
    return 0


class HelpCommand(Command):
    def __init__(self) -> None:
        super().__init__("help", "Show available commands", aliases=("?",))
        self._registry: Optional[CommandRegistry] = None

    def bind(self, registry: "CommandRegistry") -> None:
        self._registry = registry

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        registry = self._registry
        if not registry:
            return 1
        for command in registry.list_commands():
            print(command.format_help())
        return 0


class StepCommand(Command):
    def __init__(self) -> None:
        super().__init__("step", "Execute N instructions (default 1)", aliases=("s",))
        self._parser = argparse.ArgumentParser(prog="step", add_help=False)
        self._parser.add_argument("count", nargs="?", type=int, default=1)

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        return _report_stop(ctx, ctx.session.step(args.count))


class ContinueCommand(Command):
    def __init__(self) -> None:
        super().__init__("continue", "Run until breakpoint, exit or failure", aliases=("c", "cont"))

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        return _report_stop(ctx, ctx.session.cont())


class BreakCommand(Command):
    def __init__(self) -> None:
        super().__init__("break", "Set a breakpoint at an index or label (no args: list)", aliases=("b",))

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        session = ctx.session
        if not argv:
            points = sorted(session.breakpoints)
            emit_result(
                message="breakpoints: " + (", ".join(str(pc) for pc in points) or "(none)"),
                data={"breakpoints": points},
                json_output=ctx.json_output,
            )
            return 0
        try:
            index = session.add_breakpoint(argv[0])
        except ValueError as exc:
            emit_error(message=str(exc), json_output=ctx.json_output)
            return 1
        emit_result(message=f"breakpoint set at {index}", data={"pc": index}, json_output=ctx.json_output)
        return 0


class DeleteCommand(Command):
    def __init__(self) -> None:
        super().__init__("delete", "Remove a breakpoint", aliases=("d",))

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        if not argv:
            emit_error(message="delete expects an index or label", json_output=ctx.json_output)
            return 1
        try:
            removed = ctx.session.remove_breakpoint(argv[0])
        except ValueError as exc:
            emit_error(message=str(exc), json_output=ctx.json_output)
            return 1
        if not removed:
            emit_error(message=f"no breakpoint at {argv[0]}", json_output=ctx.json_output)
            return 1
        emit_result(message=f"breakpoint removed at {argv[0]}", json_output=ctx.json_output)
        return 0


class RegsCommand(Command):
    def __init__(self) -> None:
        super().__init__("regs", "Show the register file", aliases=("r",))

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        regs = list(ctx.session.context.registers)
        if ctx.json_output:
            emit_result(message="", data={"registers": regs}, json_output=True)
        else:
            print(render_registers(regs))
        return 0


class StackCommand(Command):
    def __init__(self) -> None:
        super().__init__("stack", "Show operand and call stacks")

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        vm = ctx.session.context
        if ctx.json_output:
            emit_result(
                message="",
                data={"stack": list(vm.stack), "call_stack": list(vm.call_stack)},
                json_output=True,
            )
        else:
            print(render_stack(vm.stack))
            print(render_stack(vm.call_stack, label="call stack"))
        return 0


class MemCommand(Command):
    def __init__(self) -> None:
        super().__init__("mem", "Show written memory cells, or one address")

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        vm = ctx.session.context
        if argv:
            try:
                address = int(argv[0], 0)
            except ValueError:
                emit_error(message=f"bad address '{argv[0]}'", json_output=ctx.json_output)
                return 1
            value = vm.read_memory(address)
            emit_result(
                message=f"[{address}] = {value}",
                data={"address": address, "value": value},
                json_output=ctx.json_output,
            )
            return 0
        if ctx.json_output:
            emit_result(message="", data={"memory": {str(k): v for k, v in sorted(vm.memory.items())}}, json_output=True)
        else:
            print(render_memory(vm.memory))
        return 0


class ListCommand(Command):
    def __init__(self) -> None:
        super().__init__("list", "Disassemble the program", aliases=("l",))

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        session = ctx.session
        print(render_listing(session.program, labels=session.labels, marker=session.context.pc))
        return 0


class ResetCommand(Command):
    def __init__(self) -> None:
        super().__init__("reset", "Restart the program with a fresh machine")

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        ctx.session.reset()
        emit_result(message="machine reset", json_output=ctx.json_output)
        return 0


class ExitCommand(Command):
    def __init__(self) -> None:
        super().__init__("exit", "Exit the debugger", aliases=("quit", "q"))

    def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        raise SystemExit(0)


class CommandRegistry:
    """Stores the known commands and resolves aliases."""

    def __init__(self) -> None:
        self._commands: Dict[str, Command] = {}
        self._ordered: List[Command] = []

    def register(self, command: Command) -> None:
        self._ordered.append(command)
        self._commands[command.name] = command
        for alias in command.aliases:
            self._commands[alias] = command

    def get(self, name: str) -> Optional[Command]:
        return self._commands.get(name)

    def names(self) -> List[str]:
        return sorted(self._commands)

    def list_commands(self) -> Iterable[Command]:
        return self._ordered


def build_registry() -> CommandRegistry:
    registry = CommandRegistry()
    commands = [
        HelpCommand(),
        StepCommand(),
        ContinueCommand(),
        BreakCommand(),
        DeleteCommand(),
        RegsCommand(),
        StackCommand(),
        MemCommand(),
        ListCommand(),
        ResetCommand(),
        ExitCommand(),
    ]
    for command in commands:
        registry.register(command)
        bind = getattr(command, "bind", None)
        if callable(bind):
            bind(registry)
    return registry


def dispatch(ctx: DebuggerContext, registry: CommandRegistry, line: str) -> int:
    """Run one command line; returns the command status (0 ok)."""
    argv = split_command(line.strip())
    if not argv:
        return 0
    cmd_name, *cmd_args = argv
    if cmd_args and cmd_args[-1].startswith("#parse-error"):
        print(f"Parse error: {cmd_args[-1].split(':', 1)[-1]}")
        return 1
    command = registry.get(cmd_name)
    if not command:
        print(f"Unknown command: {cmd_name}")
        return 1
    return command.run(ctx, cmd_args)
