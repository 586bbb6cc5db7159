"""
The interactive session: wires a line source and sink to the evaluator, keeps
the shared namespace alive across turns, and hosts custom methods and
dot-commands.
"""
from __future__ import annotations

import builtins
import inspect
import itertools
import logging
import re
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ripl.ripl_config import render
from ripl.ripl_engine import Evaluator, TurnResult
from ripl.ripl_errors import SessionError
from ripl.ripl_io import LineSink, LineSource, StdinLineSource, StreamLineSink
from ripl.ripl_methods import CustomMethodRegistry
from ripl.ripl_printer import Printer

logger = logging.getLogger(__name__)

COMMAND_RE = re.compile(r"^\.([A-Za-z_][\w-]*)(?:\s+(.*))?$")

HELP_TEMPLATE = "{{#commands}}.{{name}}  {{help}}\n{{/commands}}"
METHODS_TEMPLATE = (
    "{{#methods}}{{name}}{{#help}}  {{help}}{{/help}}\n{{/methods}}"
    "{{^methods}}No custom methods registered.\n{{/methods}}"
)

_session_ids = itertools.count(1)


class SessionState(Enum):
    AWAITING_INPUT = "awaiting-input"
    EVALUATING = "evaluating"
    AWAITING_MORE = "awaiting-more"
    IDLE = "idle"


@dataclass
class Command:
    name: str
    help: str
    action: Callable[..., Any]


class Repl:
    """One interactive session.

    Custom methods added before `run()` are queued and bound into the
    namespace when the session starts; methods added afterwards are bound
    immediately. Dot-commands (`.help`, `.exit`, ...) do not re-prompt on
    their own: an action that keeps the session going calls
    `display_prompt()` itself.
    """

    def __init__(
        self,
        compiler=None,
        *,
        source: Optional[LineSource] = None,
        sink: Optional[LineSink] = None,
        prompt: str = "> ",
        continuation_prompt: str = "... ",
        banner: Optional[str] = None,
        evaluator: Optional[Evaluator] = None,
        context: Optional[dict] = None,
        history_limit: int = 1000,
    ):
        self.evaluator = evaluator or Evaluator(compiler)
        self.source = source or StdinLineSource()
        self.sink = sink or StreamLineSink()
        self.prompt = prompt
        self.continuation_prompt = continuation_prompt
        self.banner = banner
        self.printer = Printer()

        # The one namespace every turn runs in; never replaced.
        self.context: dict = context if context is not None else {}
        self.context.setdefault("__name__", "__ripl__")
        self.context.setdefault("__builtins__", builtins)

        self.file_name = f"<ripl-{next(_session_ids)}>"
        self.methods = CustomMethodRegistry()
        self.commands: Dict[str, Command] = {}
        self.buffer: list[str] = []
        self.history: deque[str] = deque(maxlen=history_limit)
        self.state = SessionState.AWAITING_INPUT
        self._started = False
        self._closed = False

        self._define_builtin_commands()

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    # ===================================================================
    # Output
    # ===================================================================

    def write(self, text: str) -> None:
        self.sink.write(text)

    def display_prompt(self) -> None:
        self.sink.write(self.continuation_prompt if self.buffer else self.prompt)
        self.sink.flush()

    def _print_result(self, result: TurnResult) -> None:
        for effect in result.side_effects:
            if effect.get('topics') in (['stdout'], ['stderr']):
                self.sink.write(f"{effect.get('message', '')}\n")
        if result.ok and result.value is not None:
            self.sink.write(f"{self.printer.pformat(result.value)}\n")

    # ===================================================================
    # Custom methods and commands
    # ===================================================================

    def add_method(self, name: str, handler: Callable[..., Any], options: Optional[dict] = None) -> None:
        """Exposes `handler` as global `name`; it is called as handler(session, *args)."""
        if not isinstance(name, str) or not name.isidentifier():
            raise SessionError(f"invalid method name: {name!r}")
        self.methods.register(name, handler, options)
        if self._started:
            self.methods.bind(name, self.context, self)

    def define_command(self, name: str, help: str, action: Callable[..., Any]) -> None:
        """Registers `.name`; `action(session, args)` may be sync or async."""
        if not COMMAND_RE.match(f".{name}"):
            raise SessionError(f"invalid command name: {name!r}")
        self.commands[name] = Command(name, help, action)

    def _define_builtin_commands(self):
        self.define_command("break", "Sometimes you get stuck, this gets you out", _cmd_break)
        self.define_command("exit", "Exit the REPL", _cmd_exit)
        self.define_command("help", "Print this help message", _cmd_help)
        self.define_command("load", "Load a Python file into the session", _cmd_load)
        self.define_command("methods", "View a list of available global methods/properties", _cmd_methods)
        self.define_command("save", "Save all evaluated commands in this session to a file", _cmd_save)

    async def _run_command(self, command: Command, args: str) -> None:
        logger.debug("command .%s %r", command.name, args)
        outcome = command.action(self, args)
        if inspect.isawaitable(outcome):
            await outcome

    # ===================================================================
    # The loop
    # ===================================================================

    async def evaluate(self, code: str) -> TurnResult:
        """Evaluates a complete piece of code in the session namespace and prints the outcome."""
        self.state = SessionState.EVALUATING
        try:
            result = await self.evaluator.evaluate(code, self.context, self.file_name)
        finally:
            self.state = SessionState.IDLE
        if result.ok:
            self.history.append(code)
        self._print_result(result)
        return result

    async def handle_line(self, line: str) -> Optional[TurnResult]:
        """Processes one line of input; returns the turn's result, or None for commands and blank lines."""
        stripped = line.strip()
        match = COMMAND_RE.match(stripped) if stripped.startswith(".") else None
        if match:
            command = self.commands.get(match.group(1))
            if command is not None:
                await self._run_command(command, (match.group(2) or "").strip())
                return None
            if not self.buffer:
                self.sink.write("Invalid REPL keyword\n")
                self.display_prompt()
                return None

        if not self.buffer and not stripped:
            self.display_prompt()
            return None

        self.buffer.append(line)
        code = "\n".join(self.buffer)
        self.state = SessionState.EVALUATING
        result = await self.evaluator.evaluate(code, self.context, self.file_name)

        if result.incomplete:
            self.state = SessionState.AWAITING_MORE
        else:
            self.buffer.clear()
            if result.ok:
                self.history.append(code)
            self._print_result(result)
            self.state = SessionState.IDLE
        self.display_prompt()
        return result

    async def run(self) -> None:
        """Starts reading lines until the source closes or `.exit` is used."""
        if self._started:
            raise SessionError("session already started")
        self._started = True
        self.methods.materialize_into(self.context, self)
        logger.debug("session %s started with %d custom methods", self.file_name, len(self.methods))

        if self.banner:
            self.sink.write(f"{self.banner}\n")
        self.display_prompt()

        try:
            while not self._closed:
                if self.state is not SessionState.AWAITING_MORE:
                    self.state = SessionState.AWAITING_INPUT
                line = await self.source.readline()
                if line is None:
                    self.sink.write("\n")
                    break
                await self.handle_line(line)
        finally:
            self._closed = True
            self.sink.flush()
            logger.debug("session %s closed", self.file_name)

    def close(self) -> None:
        self._closed = True

    def clear_buffer(self) -> None:
        self.buffer.clear()
        self.state = SessionState.AWAITING_INPUT


# ===================================================================
# Built-in commands
# ===================================================================

def _cmd_break(session: Repl, args: str):
    session.clear_buffer()
    session.display_prompt()


def _cmd_exit(session: Repl, args: str):
    session.close()


def _cmd_help(session: Repl, args: str):
    commands = [
        {'name': c.name.ljust(8), 'help': c.help}
        for c in sorted(session.commands.values(), key=lambda c: c.name)
    ]
    session.write(render(HELP_TEMPLATE, {'commands': commands}))
    session.display_prompt()


def _cmd_methods(session: Repl, args: str):
    methods = [{'name': m.name, 'help': m.help} for m in session.methods.entries()]
    session.write(render(METHODS_TEMPLATE, {'methods': methods}))
    session.display_prompt()


async def _cmd_load(session: Repl, args: str):
    if not args:
        session.write("Usage: .load <file>\n")
        session.display_prompt()
        return
    try:
        source = Path(args).expanduser().read_text(encoding="utf-8")
    except OSError as e:
        session.write(f"Failed to load: {args}: {e.strerror or e}\n")
        session.display_prompt()
        return
    # A trailing newline closes any block left open at the end of the file.
    result = await session.evaluate(source + "\n")
    if result.incomplete:
        session.write(f"SyntaxError: Unexpected end of input in {args}\n")
    session.display_prompt()


def _cmd_save(session: Repl, args: str):
    if not args:
        session.write("Usage: .save <file>\n")
        session.display_prompt()
        return
    try:
        Path(args).expanduser().write_text("\n".join(session.history) + "\n", encoding="utf-8")
    except OSError as e:
        session.write(f"Failed to save: {args}: {e.strerror or e}\n")
    else:
        session.write(f"Session saved to: {args}\n")
    session.display_prompt()
