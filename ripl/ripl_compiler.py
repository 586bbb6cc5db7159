"""
The compile step: an adapter around a pluggable source compiler, plus the
compilers that ship with the REPL.
"""
from __future__ import annotations

import ast
import codeop
import inspect
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Awaitable, Union

from ripl.ripl_errors import CompileError, UNEXPECTED_END_OF_INPUT

logger = logging.getLogger(__name__)


def is_incomplete_source(source: str, file_name: str = "<input>") -> bool:
    """True when more lines could still turn `source` into valid code.

    Uses the same rule as the interactive interpreter: an open bracket, a
    trailing backslash or an unterminated block (a compound statement not yet
    followed by a blank line) all count as incomplete. Top-level `await` is
    allowed here so it cannot mask an unfinished block.
    """
    command_compiler = codeop.CommandCompiler()
    command_compiler.compiler.flags |= ast.PyCF_ALLOW_TOP_LEVEL_AWAIT
    try:
        return command_compiler(source, file_name, "exec") is None
    except (SyntaxError, OverflowError, ValueError):
        return False


def incomplete_input_error(source: str, file_name: str) -> SyntaxError:
    lines = source.splitlines() or [""]
    last = lines[-1]
    return SyntaxError(UNEXPECTED_END_OF_INPUT, (file_name, len(lines), len(last) + 1, last))


class SourceCompiler(ABC):
    """A compiler the REPL can delegate to: virtual file name + text in, executable text out."""

    name = "abstract"

    @abstractmethod
    def compile(self, file_name: str, code: str) -> Union[str, Awaitable[str]]:
        raise NotImplementedError


class PassthroughCompiler(SourceCompiler):
    """Hands the text to the sandbox untouched; syntax errors surface at execution."""

    name = "passthrough"

    def compile(self, file_name: str, code: str) -> str:
        return code


class PythonCompiler(SourceCompiler):
    """Validates Python source, reporting unfinished input as a recoverable error."""

    name = "python"

    def _parse(self, file_name: str, code: str) -> ast.Module:
        if is_incomplete_source(code, file_name):
            raise incomplete_input_error(code, file_name)
        tree = ast.parse(code, filename=file_name, mode="exec")
        # Surfaces errors the parser lets through ('return' outside function, etc.)
        compile(tree, file_name, "exec", dont_inherit=True)
        return tree

    def compile(self, file_name: str, code: str) -> str:
        self._parse(file_name, code)
        return code


class _AnnotationEraser(ast.NodeTransformer):
    """Erases annotations that only document types.

    Annotations in a class body are kept: dataclasses, NamedTuple and
    TypedDict build their fields from them. A generic class keeps its type
    parameters for the same reason.
    """

    def __init__(self):
        self._in_class_body = False

    def _visit_scope(self, node, in_class_body):
        outer, self._in_class_body = self._in_class_body, in_class_body
        try:
            self.generic_visit(node)
        finally:
            self._in_class_body = outer
        return node

    def visit_arg(self, node: ast.arg):
        node.annotation = None
        return node

    def _strip_function(self, node):
        node.returns = None
        if hasattr(node, 'type_params'):
            node.type_params = []
        return self._visit_scope(node, False)

    visit_FunctionDef = _strip_function
    visit_AsyncFunctionDef = _strip_function

    def visit_Lambda(self, node: ast.Lambda):
        return self._visit_scope(node, False)

    def visit_ClassDef(self, node: ast.ClassDef):
        return self._visit_scope(node, True)

    def visit_AnnAssign(self, node: ast.AnnAssign):
        if self._in_class_body:
            return node
        if node.value is None:
            # A bare declaration; evaluating the target keeps attribute/subscript side effects.
            if isinstance(node.target, ast.Name):
                return ast.copy_location(ast.Pass(), node)
            return ast.copy_location(ast.Expr(value=node.target), node)
        self.generic_visit(node)
        return ast.copy_location(ast.Assign(targets=[node.target], value=node.value, type_comment=None), node)

    def visit_TypeAlias(self, node):
        return ast.copy_location(ast.Pass(), node)


class TypeStrippingCompiler(PythonCompiler):
    """Compiles annotated Python down to plain Python by erasing type information."""

    name = "typed"

    def __init__(self, cache_size: int = 256):
        self.cache_size = cache_size
        self._cache: OrderedDict[tuple[str, str], str] = OrderedDict()

    def compile(self, file_name: str, code: str) -> str:
        key = (file_name, code)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        tree = _AnnotationEraser().visit(self._parse(file_name, code))
        ast.fix_missing_locations(tree)
        compiled = ast.unparse(tree) + "\n"

        self._cache[key] = compiled
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return compiled


COMPILERS = {
    PythonCompiler.name: PythonCompiler,
    TypeStrippingCompiler.name: TypeStrippingCompiler,
    PassthroughCompiler.name: PassthroughCompiler,
}


def make_compiler(name: str) -> SourceCompiler:
    try:
        return COMPILERS[name]()
    except KeyError:
        raise ValueError(f"unknown compiler {name!r}; expected one of {', '.join(sorted(COMPILERS))}") from None


class Compiler:
    """Feeds a virtual file name and text to the wrapped compiler, surfacing its failures as CompileError."""

    def __init__(self, source_compiler):
        self.source_compiler = source_compiler

    async def compile(self, file_name: str, code: str) -> str:
        try:
            result = self.source_compiler.compile(file_name, code)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.debug("compile of %s failed: %r", file_name, e)
            raise CompileError.from_exception(e) from e
        return result
