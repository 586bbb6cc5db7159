"""
The evaluation engine: transform, compile, execute, classify.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from ripl.ripl_compiler import Compiler, PythonCompiler
from ripl.ripl_errors import CompileError, error_kind, error_message, is_recoverable
from ripl.ripl_sandbox import ExecutionSandbox
from ripl.ripl_transformer import StatementTransformer

logger = logging.getLogger(__name__)

# SystemExit and KeyboardInterrupt end the session; every other failure ends only the turn.
TERMINAL_ERRORS = (Exception, asyncio.CancelledError, GeneratorExit)


@dataclass
class TurnResult:
    """The structured outcome of evaluating one turn."""
    status: Literal['success', 'error', 'incomplete']
    value: Any = None
    error: Optional[BaseException] = None
    error_message: Optional[str] = None
    origin: Optional[Literal['compile', 'runtime']] = None
    side_effects: List[Dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == 'success'

    @property
    def incomplete(self) -> bool:
        return self.status == 'incomplete'


class Evaluator:
    """Runs one turn of input against a persistent namespace.

    Errors never escape `evaluate`: an error the classifier accepts becomes an
    'incomplete' result (the caller should ask for more lines), anything else
    becomes an 'error' result with a printable message.
    """

    def __init__(self, compiler=None, sandbox=None, transformer=None, classifier=None):
        if compiler is None:
            compiler = PythonCompiler()
        self.compiler = compiler if isinstance(compiler, Compiler) else Compiler(compiler)
        self.sandbox = sandbox or ExecutionSandbox()
        self.transformer = transformer or StatementTransformer()
        self.classifier = classifier or is_recoverable

    async def evaluate(self, code: str, context: dict, file_name: str = "<ripl>") -> TurnResult:
        origin = 'compile'
        # Line numbers in errors refer to the text that was handed to the failing stage.
        shown = code
        try:
            shown = self.transformer.transform(code)
            compiled = await self.compiler.compile(file_name, shown)
            origin = 'runtime'
            shown = compiled
            value = self.sandbox.run(compiled, context, file_name)
            if inspect.isawaitable(value):
                value = await value
        except TERMINAL_ERRORS as e:
            if self.classifier(e):
                logger.debug("%s: incomplete input, waiting for more", file_name)
                return TurnResult(status='incomplete', error=e, origin=origin)
            msg = self._format_error(e, shown, file_name)
            logger.debug("%s: %s error: %s", file_name, origin, error_kind(e))
            return TurnResult(
                status='error',
                error=e,
                error_message=msg,
                origin=origin,
                side_effects=[{'topics': ['stderr'], 'message': msg}],
            )
        return TurnResult(status='success', value=value, origin=None)

    # ===================================================================
    # Error formatting
    # ===================================================================

    def _format_error(self, e: BaseException, source: str, file_name: str) -> str:
        line = col = None
        match e:
            case CompileError(cause=SyntaxError() as cause):
                msg = f"{e.kind}: {e.message}"
                line, col = cause.lineno, cause.offset
            case CompileError():
                msg = f"CompileError: {e.kind}: {e.message}"
            case SyntaxError():
                msg = f"{error_kind(e)}: {error_message(e)}"
                line, col = e.lineno, e.offset
            case _:
                msg = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
                method = getattr(e, 'ripl_method', None)
                if method:
                    msg = f"HandlerError ({method}): {msg}"

        if line is not None:
            msg = f"{msg} (line {line}" + (f", col {col}" if col is not None else "") + ")"
            context = self._source_context(source, line, col)
            if context:
                msg = f"{msg}\n{context}"

        if not isinstance(e, (CompileError, SyntaxError)):
            trace = self._format_traceback(e, file_name)
            if trace:
                msg = f"{trace}\n{msg}"
        return msg

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            content = lines[i - 1]
            out.append(f"{prefix} {ln} | {content}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_traceback(self, e: BaseException, file_name: str) -> str:
        """Frames from the user's code onwards; the engine's own frames are dropped."""
        frames = traceback.extract_tb(e.__traceback__)
        for i, frame in enumerate(frames):
            if frame.filename == file_name:
                frames = frames[i:]
                break
        else:
            return ""
        if len(frames) < 2:
            return ""
        lines = ["Traceback (most recent call last):"]
        for frame in frames:
            lines.append(f"  File \"{frame.filename}\", line {frame.lineno}, in {frame.name}")
        return "\n".join(lines)
