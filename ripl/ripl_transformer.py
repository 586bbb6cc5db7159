"""
Rewrites a turn that uses `await` at the top level into a coroutine the
engine can run, so bindings still land in the session namespace and the
value of the trailing expression is handed back.
"""
import ast

from ripl.ripl_compiler import is_incomplete_source

ASYNC_TURN_NAME = "__ripl_async_turn__"

_WRAPPER_TEMPLATE = f"""
async def {ASYNC_TURN_NAME}():
    global {ASYNC_TURN_NAME}
    del {ASYNC_TURN_NAME}
{ASYNC_TURN_NAME}()
"""

_SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)


def _walk_top_level(node):
    """Yields nodes that execute in the turn's own scope, skipping nested function and class bodies."""
    for child in ast.iter_child_nodes(node):
        match child:
            case ast.FunctionDef() | ast.AsyncFunctionDef():
                yield child
                yield from _walk_nodes(child.decorator_list)
                yield from _walk_nodes(child.args.defaults)
                yield from _walk_nodes([d for d in child.args.kw_defaults if d is not None])
            case ast.ClassDef():
                yield child
                yield from _walk_nodes(child.decorator_list)
                yield from _walk_nodes(child.bases)
                yield from _walk_nodes(child.keywords)
            case ast.Lambda():
                yield child
                yield from _walk_nodes(child.args.defaults)
            case _:
                yield child
                yield from _walk_top_level(child)


def _walk_nodes(nodes):
    for node in nodes:
        yield node
        if not isinstance(node, _SCOPE_NODES):
            yield from _walk_top_level(node)


def has_top_level_await(tree: ast.AST) -> bool:
    for node in _walk_top_level(tree):
        match node:
            case ast.Await() | ast.AsyncFor() | ast.AsyncWith():
                return True
            case ast.comprehension(is_async=1):
                return True
    return False


def _has_top_level_escape(tree: ast.AST) -> bool:
    # return/yield outside a function must stay an error, not become part of the wrapper
    return any(isinstance(n, (ast.Return, ast.Yield, ast.YieldFrom)) for n in _walk_top_level(tree))


def _is_star_import(node) -> bool:
    return isinstance(node, ast.ImportFrom) and any(a.name == "*" for a in node.names)


def _split_module_level_prefix(body):
    """Splits off the statements that must stay outside the wrapper.

    `from m import *` is only legal at module level, so the await-free run of
    statements up to the last star import is kept in front of the wrapper, in
    order. Returns None when a star import cannot be kept there: nested in a
    compound statement or after the first suspend point.
    """
    last = max((i for i, stmt in enumerate(body) if _is_star_import(stmt)), default=-1)
    prefix, rest = body[:last + 1], body[last + 1:]
    if any(has_top_level_await(ast.Module(body=[stmt], type_ignores=[])) for stmt in prefix):
        return None
    if any(_is_star_import(n) for stmt in rest for n in _walk_nodes([stmt])):
        return None
    return prefix, rest


def _target_names(target):
    match target:
        case ast.Name(id=name):
            yield name
        case ast.Tuple(elts=elts) | ast.List(elts=elts):
            for elt in elts:
                yield from _target_names(elt)
        case ast.Starred(value=value):
            yield from _target_names(value)


def bound_names(tree: ast.AST) -> set:
    """Names the turn binds in its own scope, i.e. the ones that must become globals."""
    names = set()
    comprehensions = (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)
    skip = set()
    for node in _walk_top_level(tree):
        if isinstance(node, comprehensions):
            # Comprehension variables are local to the comprehension.
            for gen in node.generators:
                skip.update(id(n) for n in ast.walk(gen.target))
        match node:
            case ast.Name(ctx=ast.Store() | ast.Del()) if id(node) not in skip:
                names.add(node.id)
            case ast.FunctionDef(name=name) | ast.AsyncFunctionDef(name=name) | ast.ClassDef(name=name):
                names.add(name)
            case ast.Import(names=aliases):
                names.update(a.asname or a.name.split(".")[0] for a in aliases)
            case ast.ImportFrom(names=aliases):
                names.update(a.asname or a.name for a in aliases if a.name != "*")
            case ast.ExceptHandler(name=str() as name):
                names.add(name)
            case ast.Global(names=declared):
                names.update(declared)
            case ast.MatchAs(name=str() as name) | ast.MatchStar(name=str() as name):
                names.add(name)
            case ast.MatchMapping(rest=str() as name):
                names.add(name)
    return names


class _GlobalScopeRewriter(ast.NodeTransformer):
    """Adjusts top-level statements so they stay legal once moved inside the wrapper."""

    def visit_FunctionDef(self, node):
        return node

    visit_AsyncFunctionDef = visit_FunctionDef
    visit_ClassDef = visit_FunctionDef
    visit_Lambda = visit_FunctionDef

    def visit_Global(self, node):
        # Re-declared once, up front, by the wrapper.
        return ast.copy_location(ast.Pass(), node)

    def visit_AnnAssign(self, node):
        # An annotated name cannot also be declared global.
        if not isinstance(node.target, ast.Name):
            return node
        if node.value is None:
            return ast.copy_location(ast.Pass(), node)
        return ast.copy_location(ast.Assign(targets=[node.target], value=node.value, type_comment=None), node)


class StatementTransformer:
    """Turns top-level `await` into an immediately-invoked async wrapper; anything else passes through."""

    def transform(self, source: str) -> str:
        if is_incomplete_source(source):
            return source
        try:
            tree = ast.parse(source, mode="exec")
        except (SyntaxError, ValueError):
            return source
        if not has_top_level_await(tree) or _has_top_level_escape(tree):
            return source
        split = _split_module_level_prefix(tree.body)
        if split is None:
            return source
        prefix, rest = split
        return ast.unparse(self._wrap(prefix, rest))

    def _wrap(self, prefix: list, statements: list) -> ast.Module:
        names = bound_names(ast.Module(body=statements, type_ignores=[]))
        body = [_GlobalScopeRewriter().visit(stmt) for stmt in statements]
        if body and isinstance(body[-1], ast.Expr):
            last = body[-1]
            body[-1] = ast.copy_location(ast.Return(value=last.value), last)

        module = ast.parse(_WRAPPER_TEMPLATE)
        wrapper = module.body[0]
        if names:
            wrapper.body.insert(0, ast.Global(names=sorted(names)))
        wrapper.body.extend(body)
        module.body[:0] = prefix
        return ast.fix_missing_locations(module)


def transform(source: str) -> str:
    return StatementTransformer().transform(source)
