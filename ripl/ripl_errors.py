"""
Error types for the REPL and the classifier that decides when an error only
means "the input is not finished yet".
"""
import re
from typing import Any, Optional


# Message a compiler or sandbox uses to report input that needs more lines.
UNEXPECTED_END_OF_INPUT = "Unexpected end of input"

RECOVERABLE_PATTERNS = (r"Unexpected end of input", r"Unexpected token")


class RiplError(Exception):
    """Base class for errors raised by the REPL itself."""


class SessionError(RiplError):
    """Raised when a session is used incorrectly (double start, bad names)."""


class ConfigError(RiplError):
    """Raised when a configuration file cannot be read or validated."""


class CompileError(RiplError):
    """A compiler failure, carrying the kind and message of the original error."""

    def __init__(self, kind: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message
        self.cause = cause

    @classmethod
    def from_exception(cls, e: BaseException) -> 'CompileError':
        if isinstance(e, CompileError):
            return e
        return cls(error_kind(e), error_message(e), e)

    @property
    def lineno(self):
        return getattr(self.cause, 'lineno', None)

    @property
    def offset(self):
        return getattr(self.cause, 'offset', None)


def error_kind(error: Any) -> str:
    kind = getattr(error, 'kind', None)
    if isinstance(kind, str):
        return kind
    if isinstance(error, SyntaxError):
        return "SyntaxError"
    return type(error).__name__


def error_message(error: Any) -> str:
    message = getattr(error, 'message', None)
    if isinstance(message, str):
        return message
    if isinstance(error, SyntaxError) and error.msg is not None:
        return error.msg
    return str(error)


class RecoverableErrorClassifier:
    """Matches an error's kind and message against the incomplete-input patterns."""

    def __init__(self, patterns=RECOVERABLE_PATTERNS, kind: str = "SyntaxError"):
        self.kind = kind
        self.patterns = tuple(patterns)
        self._regex = re.compile("^(" + "|".join(self.patterns) + ")")

    def __call__(self, error: Any) -> bool:
        if error is None or error_kind(error) != self.kind:
            return False
        return self._regex.match(error_message(error)) is not None


is_recoverable = RecoverableErrorClassifier()
