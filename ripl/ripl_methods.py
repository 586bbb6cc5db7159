"""
Custom methods: project-specific helpers (database handles, models, notifiers)
that a host registers and the REPL exposes as globals.
"""
import functools
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)


def _tag(e: Exception, name: str) -> None:
    # Tag rather than wrap, so user code can still catch the original type.
    if getattr(e, 'ripl_method', None) is None:
        e.ripl_method = name


async def _tagged_await(awaitable, name: str):
    try:
        return await awaitable
    except Exception as e:
        _tag(e, name)
        raise


@dataclass
class CustomMethod:
    name: str
    handler: Callable[..., Any]
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def help(self) -> str:
        return str(self.options.get("help", ""))


class CustomMethodRegistry:
    """Maps method names to handlers and binds them into a namespace.

    A bound method calls ``handler(session, *args, **kwargs)``, so handlers
    can reach the session (and through it the shared namespace and the sink).
    """

    def __init__(self):
        self._methods: Dict[str, CustomMethod] = {}

    def __contains__(self, name):
        return name in self._methods

    def __len__(self):
        return len(self._methods)

    def register(self, name: str, handler: Callable[..., Any], options=None) -> CustomMethod:
        entry = CustomMethod(name, handler, dict(options or {}))
        if name in self._methods:
            logger.debug("custom method %r replaced", name)
        self._methods[name] = entry
        return entry

    def entries(self):
        return list(self._methods.values())

    def bind(self, name: str, context: dict, session) -> None:
        entry = self._methods[name]
        handler = entry.handler

        @functools.wraps(handler)
        def method(*args, **kwargs):
            try:
                result = handler(session, *args, **kwargs)
            except Exception as e:
                _tag(e, name)
                raise
            if inspect.isawaitable(result):
                return _tagged_await(result, name)
            return result

        method.__name__ = name
        method.__qualname__ = name
        context[name] = method

    def materialize_into(self, context: dict, session) -> None:
        for name in self._methods:
            self.bind(name, context, session)
