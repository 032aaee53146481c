"""Interactive prompt_toolkit REPL for the stackvm debugger."""

from __future__ import annotations

import logging
import shlex
from typing import Iterable, List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document
from prompt_toolkit.history import FileHistory, History, InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout

from .commands import CommandRegistry, dispatch
from .context import DebuggerContext

LOGGER = logging.getLogger("stackvm.dbg.repl")

ADDRESS_COMMANDS = {"break", "b", "delete", "d"}


def _normalise_tokens(text: str) -> List[str]:
    if not text:
        return []
    try:
        tokens = shlex.split(text, posix=True)
        trailing = text[-1].isspace()
    except ValueError:
        tokens = text.strip().split()
        trailing = text.endswith((" ", "\t"))
    if trailing:
        tokens.append("")
    return tokens


class DebuggerCompleter(Completer):
    """Completes command names, then labels for breakpoint commands."""

    def __init__(self, ctx: DebuggerContext, registry: CommandRegistry) -> None:
        self.ctx = ctx
        self.registry = registry

    def get_completions(self, document: Document, complete_event) -> Iterable[Completion]:
        tokens = _normalise_tokens(document.text_before_cursor)
        if not tokens:
            candidates: List[str] = self.registry.names()
            prefix = ""
        elif len(tokens) == 1:
            candidates = self.registry.names()
            prefix = tokens[0]
        elif tokens[0] in ADDRESS_COMMANDS and len(tokens) == 2:
            candidates = sorted(self.ctx.session.labels)
            prefix = tokens[1]
        else:
            return
        for name in candidates:
            if name.startswith(prefix):
                yield Completion(name, start_position=-len(prefix))


class DebuggerREPL:
    """Minimal prompt-toolkit REPL."""

    def __init__(
        self,
        ctx: DebuggerContext,
        registry: CommandRegistry,
        *,
        history_path: Optional[str] = None,
    ) -> None:
        self.ctx = ctx
        self.registry = registry
        self.history: History = FileHistory(history_path) if history_path else InMemoryHistory()

    def run(self) -> int:
        session = PromptSession(
            "(svm) ",
            history=self.history,
            completer=DebuggerCompleter(self.ctx, self.registry),
            complete_while_typing=True,
        )
        while True:
            try:
                with patch_stdout():
                    line = session.prompt()
            except (EOFError, KeyboardInterrupt):
                print()
                return 0
            try:
                self._dispatch(line)
            except SystemExit:
                return 0

    def _dispatch(self, line: str) -> int:
        try:
            return dispatch(self.ctx, self.registry, line)
        except SystemExit:
            raise
        except Exception as exc:
            LOGGER.exception("command failed")
            print(f"Command '{line.strip()}' failed: {exc}")
            return 1
