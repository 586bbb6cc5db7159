"""
Runs compiled text inside the session namespace and returns the value of the
trailing expression, the way an interactive interpreter echoes it.
"""
import ast
from typing import Any

from ripl.ripl_compiler import incomplete_input_error, is_incomplete_source


class ExecutionSandbox:
    """Executes code against a namespace dict that the caller owns and keeps between runs."""

    def _parse(self, code: str, file_name: str) -> ast.Module:
        if is_incomplete_source(code, file_name):
            raise incomplete_input_error(code, file_name)
        return ast.parse(code, filename=file_name, mode="exec")

    def run(self, code: str, context: dict, file_name: str = "<ripl>") -> Any:
        tree = self._parse(code, file_name)

        last_expr = None
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            last_expr = ast.Expression(body=tree.body.pop().value)

        if tree.body:
            exec(compile(tree, file_name, "exec", dont_inherit=True), context)
        if last_expr is None:
            return None
        return eval(compile(last_expr, file_name, "eval", dont_inherit=True), context)
