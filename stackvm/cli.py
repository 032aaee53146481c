"""stackvm command line entry point."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .asm import AsmError, assemble_file
from .dbg import DebuggerContext, DebugSession, build_registry
from .disasm import render_listing
from .errors import VMError
from .instruction import Program
from .output import emit_error, emit_result, render_snapshot, snapshot_to_dict
from .programs import PROGRAMS
from .trace_format import ChainTracer, LoggingTracer, RecordingTracer, write_trace_file
from .vm import Context

LOG = logging.getLogger("stackvm.cli")

EXIT_OK = 0
EXIT_VM_ERROR = 1
EXIT_INPUT_ERROR = 2
EXIT_STEP_LIMIT = 3


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return int(raw, 0)
    except ValueError:
        LOG.warning("ignoring %s=%r (not an integer)", name, raw)
        return None


def _add_exec_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--trace", action="store_true", help="log every executed instruction")
    parser.add_argument("--trace-file", type=Path, help="write a JSON trace of the run")
    parser.add_argument(
        "--max-steps",
        type=int,
        default=_env_int("STACKVM_MAX_STEPS"),
        help="stop after N instructions (default $STACKVM_MAX_STEPS, unlimited)",
    )
    parser.add_argument("--dump", action="store_true", help="print registers, stacks and memory after the run")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stackvm", description="Stack and register virtual machine")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("STACKVM_LOG", "WARNING"),
        help="Logging level (default $STACKVM_LOG or WARNING)",
    )
    parser.add_argument("--json", action="store_true", help="Emit JSON output")
    sub = parser.add_subparsers(dest="command")
    sub.required = True

    run = sub.add_parser("run", help="assemble and run a source file")
    run.add_argument("program", type=Path)
    _add_exec_options(run)

    demo = sub.add_parser("demo", help="run a built-in program")
    demo.add_argument("name", nargs="?", default="factorial", choices=sorted(PROGRAMS))
    demo.add_argument("-n", type=int, default=5, help="program argument (default 5)")
    _add_exec_options(demo)

    disasm = sub.add_parser("disasm", help="print a listing of a source file")
    disasm.add_argument("program", type=Path)

    debug = sub.add_parser("debug", help="step through a source file interactively")
    debug.add_argument("program", type=Path)
    debug.add_argument("-b", "--break", dest="breakpoints", action="append", default=[], help="initial breakpoint")
    debug.add_argument("--max-steps", type=int, default=_env_int("STACKVM_MAX_STEPS"))
    debug.add_argument(
        "--history",
        type=Path,
        default=Path.home() / ".stackvm-history",
        help="Path to command history file",
    )
    return parser


def _load(path: Path) -> tuple[Program, Dict[str, int]]:
    LOG.info("assembling %s", path)
    return assemble_file(path)


def execute(program: Program, args: argparse.Namespace) -> int:
    """Run ``program`` with the execution options in ``args``; return an exit code."""
    context = Context(program)
    recorder = RecordingTracer() if args.trace_file else None
    if args.trace:
        logging.getLogger("stackvm.trace").setLevel(logging.INFO)
    chain = ChainTracer(LoggingTracer(level=logging.INFO) if args.trace else None, recorder)
    tracer = chain if chain.tracers else None
    max_steps = args.max_steps

    def _finish(code: int, *, result: Optional[int] = None, error: Optional[VMError] = None) -> int:
        if recorder is not None:
            write_trace_file(args.trace_file, recorder.records, result=result, error=error)
        if args.dump and not args.json:
            print(render_snapshot(context.snapshot()))
        return code

    try:
        while max_steps is None or context.steps < max_steps:
            if not context.step(tracer):
                break
        if context.running:
            LOG.warning("max steps %d reached at pc=%d; halting", max_steps, context.pc)
            emit_error(
                message=f"step limit {max_steps} reached at pc={context.pc}",
                data=snapshot_to_dict(context.snapshot()) if args.dump else None,
                json_output=args.json,
            )
            return _finish(EXIT_STEP_LIMIT)
    except VMError as exc:
        data = exc.to_dict()
        if args.dump:
            data["machine"] = snapshot_to_dict(context.snapshot())
        emit_error(message=str(exc), data=data, json_output=args.json)
        return _finish(EXIT_VM_ERROR, error=exc)

    result = context.result
    data = {"result": result, "steps": context.steps}
    if args.dump:
        data["machine"] = snapshot_to_dict(context.snapshot())
    emit_result(message=f"Result: {result}", data=data, json_output=args.json)
    return _finish(EXIT_OK, result=result)


def _cmd_run(args: argparse.Namespace) -> int:
    program, _labels = _load(args.program)
    return execute(program, args)


def _cmd_demo(args: argparse.Namespace) -> int:
    try:
        program = PROGRAMS[args.name](args.n)
    except ValueError as exc:
        emit_error(message=str(exc), json_output=args.json)
        return EXIT_INPUT_ERROR
    return execute(program, args)


def _cmd_disasm(args: argparse.Namespace) -> int:
    program, labels = _load(args.program)
    print(render_listing(program, labels=labels))
    return EXIT_OK


def _cmd_debug(args: argparse.Namespace) -> int:
    from .dbg.repl import DebuggerREPL

    program, labels = _load(args.program)
    session = DebugSession(program, labels, max_steps=args.max_steps)
    for spec in args.breakpoints:
        try:
            session.add_breakpoint(spec)
        except ValueError as exc:
            emit_error(message=str(exc), json_output=args.json)
            return EXIT_INPUT_ERROR
    ctx = DebuggerContext(session=session, json_output=args.json)
    repl = DebuggerREPL(ctx, build_registry(), history_path=str(args.history))
    return repl.run()


_COMMANDS = {
    "run": _cmd_run,
    "demo": _cmd_demo,
    "disasm": _cmd_disasm,
    "debug": _cmd_debug,
}


def main(argv: List[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    try:
        return _COMMANDS[args.command](args)
    except AsmError as exc:
        emit_error(message=f"{args.program}: {exc}", json_output=args.json)
        return EXIT_INPUT_ERROR
    except OSError as exc:
        emit_error(message=str(exc), json_output=args.json)
        return EXIT_INPUT_ERROR
    except KeyboardInterrupt:
        print()
        return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
