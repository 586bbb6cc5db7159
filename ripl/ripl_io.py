"""
Line sources and sinks the session reads from and writes to.
"""
import asyncio
import sys
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional


class LineSource(ABC):
    """Delivers input one line at a time; `None` means the input is closed."""

    @abstractmethod
    async def readline(self) -> Optional[str]:
        raise NotImplementedError


class LineSink(ABC):
    @abstractmethod
    def write(self, text: str) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        pass


class StreamLineSource(LineSource):
    """Reads from a blocking text stream on a worker thread so the event loop stays free."""

    def __init__(self, stream=None):
        self.stream = stream

    async def readline(self) -> Optional[str]:
        stream = self.stream if self.stream is not None else sys.stdin
        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(None, stream.readline)
        if raw == "":
            return None
        return raw.rstrip("\r\n")


class StdinLineSource(StreamLineSource):
    def __init__(self):
        super().__init__(None)


class ListLineSource(LineSource):
    """Feeds a fixed list of lines, then reports end of input."""

    def __init__(self, lines: Iterable[str] = ()):
        self._lines = list(lines)

    def push(self, *lines: str) -> None:
        self._lines.extend(lines)

    async def readline(self) -> Optional[str]:
        if not self._lines:
            return None
        return self._lines.pop(0)


class StreamLineSink(LineSink):
    def __init__(self, stream=None):
        self.stream = stream

    def _stream(self):
        return self.stream if self.stream is not None else sys.stdout

    def write(self, text: str) -> None:
        self._stream().write(text)

    def flush(self) -> None:
        self._stream().flush()


class ListLineSink(LineSink):
    """Collects everything written; handy for hosts that post-process output."""

    def __init__(self):
        self.writes: List[str] = []

    def write(self, text: str) -> None:
        self.writes.append(text)

    @property
    def text(self) -> str:
        return "".join(self.writes)
