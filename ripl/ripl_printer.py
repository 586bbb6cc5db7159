"""
A pretty-printer for values produced by REPL turns.
"""
import collections.abc
import inspect


class Printer:
    """Formats Python values for echoing back to the user."""

    def __init__(self, indent_width=2, line_width=80):
        self._indent_char = " " * indent_width
        self.line_width = line_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, collections.abc.Mapping): return self._pformat_dict
        if isinstance(obj, (list, tuple, set, frozenset)): return self._pformat_sequence
        if inspect.iscoroutinefunction(obj): return self._pformat_coroutine_function
        if inspect.isfunction(obj) or inspect.isbuiltin(obj): return self._pformat_function
        if inspect.isclass(obj): return self._pformat_class
        # Default to Python's repr for unknown types
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_primitive,
            bytes: self._pformat_primitive,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            complex: self._pformat_primitive,
            bool: self._pformat_primitive,
            type(None): self._pformat_primitive,
            list: self._pformat_sequence,
            tuple: self._pformat_sequence,
            set: self._pformat_sequence,
            frozenset: self._pformat_sequence,
            dict: self._pformat_dict,
        }

    def _pformat_primitive(self, obj, level):
        return repr(obj)

    def _brackets(self, obj):
        match obj:
            case list():
                return "[", "]"
            case tuple():
                return "(", ")"
            case frozenset():
                return "frozenset({", "})"
            case set():
                return "{", "}"
        return f"{type(obj).__name__}([", "])"

    def _pformat_block(self, items, level, open_char, close_char):
        if not items:
            return f"{open_char}{close_char}"

        flat = f"{open_char}{', '.join(items)}{close_char}"
        if "\n" not in flat and len(self._indent_char * level) + len(flat) <= self.line_width:
            return flat

        outer_indent = self._indent_char * level
        inner_indent = self._indent_char * (level + 1)
        lines = [f"{inner_indent}{item}," for item in items]
        return f"{open_char}\n" + "\n".join(lines) + f"\n{outer_indent}{close_char}"

    def _pformat_sequence(self, obj, level):
        open_char, close_char = self._brackets(obj)
        if isinstance(obj, tuple) and len(obj) == 1:
            return f"({self.pformat(obj[0], level + 1)},)"
        if isinstance(obj, (set, frozenset)):
            if not obj:
                return f"{type(obj).__name__}()"
            try:
                obj = sorted(obj)
            except TypeError:
                pass
        items = [self.pformat(item, level + 1) for item in obj]
        return self._pformat_block(items, level, open_char, close_char)

    def _pformat_dict(self, obj, level):
        items = [
            f"{self.pformat(key, level + 1)}: {self.pformat(value, level + 1)}"
            for key, value in obj.items()
        ]
        if type(obj) is dict:
            return self._pformat_block(items, level, "{", "}")
        return self._pformat_block(items, level, f"{type(obj).__name__}({{", "})")

    def _signature(self, obj):
        try:
            return str(inspect.signature(obj))
        except (TypeError, ValueError):
            return "(...)"

    def _pformat_function(self, obj, level):
        return f"<function {obj.__qualname__}{self._signature(obj)}>"

    def _pformat_coroutine_function(self, obj, level):
        return f"<async function {obj.__qualname__}{self._signature(obj)}>"

    def _pformat_class(self, obj, level):
        return f"<class {obj.__module__}.{obj.__qualname__}>"
