import asyncio

import pytest

from ripl.ripl_compiler import PassthroughCompiler, SourceCompiler, TypeStrippingCompiler
from ripl.ripl_engine import Evaluator
from ripl.ripl_errors import CompileError, RecoverableErrorClassifier


def assert_ok(res, expected=None):
    assert res.status == "success", f"expected success, got {res}"
    if expected is not None:
        assert res.value == expected, f"expected {expected!r}, got {res.value!r}"


@pytest.fixture
def evaluator():
    return Evaluator()


@pytest.fixture
def ns():
    return {"asyncio": asyncio}


@pytest.mark.asyncio
async def test_expression_value(evaluator):
    ns = {}
    res = await evaluator.evaluate("1 + 1", ns)
    assert_ok(res, 2)
    assert res.side_effects == []
    assert set(ns) <= {"__builtins__"}


@pytest.mark.asyncio
async def test_bindings_persist_across_turns(evaluator, ns):
    assert_ok(await evaluator.evaluate("x = 5", ns))
    assert_ok(await evaluator.evaluate("x + 1", ns), 6)


@pytest.mark.asyncio
async def test_incomplete_block_is_reported_not_failed(evaluator, ns):
    res = await evaluator.evaluate("def f():", ns)
    assert res.status == "incomplete"
    assert res.error_message is None
    assert res.side_effects == []

    res = await evaluator.evaluate("def f():\n    return 3", ns)
    assert res.incomplete

    assert_ok(await evaluator.evaluate("def f():\n    return 3\n", ns))
    assert_ok(await evaluator.evaluate("f()", ns), 3)


@pytest.mark.asyncio
async def test_top_level_await(evaluator, ns):
    assert_ok(await evaluator.evaluate("await asyncio.sleep(0, 42)", ns), 42)
    assert_ok(await evaluator.evaluate("v = await asyncio.sleep(0, 'v')", ns))
    assert_ok(await evaluator.evaluate("v", ns), "v")


@pytest.mark.asyncio
async def test_returned_awaitables_are_awaited(evaluator, ns):
    assert_ok(await evaluator.evaluate("asyncio.sleep(0, 7)", ns), 7)


@pytest.mark.asyncio
async def test_compile_error_is_terminal(evaluator, ns):
    res = await evaluator.evaluate("x = = 1", ns)
    assert res.status == "error"
    assert res.origin == "compile"
    assert isinstance(res.error, CompileError)
    assert res.error_message.startswith("SyntaxError: invalid syntax")
    assert "> 1 | x = = 1" in res.error_message
    assert res.side_effects == [{'topics': ['stderr'], 'message': res.error_message}]


@pytest.mark.asyncio
async def test_runtime_error_is_terminal_without_rollback(evaluator, ns):
    res = await evaluator.evaluate("partial = 1\nraise ValueError('nope')", ns)
    assert res.status == "error"
    assert res.origin == "runtime"
    assert isinstance(res.error, ValueError)
    assert "ValueError: nope" in res.error_message
    assert ns["partial"] == 1


@pytest.mark.asyncio
async def test_traceback_lists_user_frames(evaluator, ns):
    await evaluator.evaluate("def boom():\n    return 1 / 0\n", ns)
    res = await evaluator.evaluate("boom()", ns)
    assert res.error_message.startswith("Traceback (most recent call last):")
    assert "in boom" in res.error_message
    assert res.error_message.endswith("ZeroDivisionError: division by zero")


@pytest.mark.asyncio
async def test_error_in_awaited_code(evaluator, ns):
    res = await evaluator.evaluate("await asyncio.sleep(0)\nraise KeyError('k')", ns)
    assert res.status == "error"
    assert "KeyError" in res.error_message


@pytest.mark.asyncio
async def test_syntax_error_from_execution_is_classified_too(ns):
    evaluator = Evaluator(PassthroughCompiler())
    res = await evaluator.evaluate("while True:", ns)
    assert res.incomplete

    res = await evaluator.evaluate("x = = 1", ns)
    assert res.status == "error"
    assert res.origin == "runtime"
    assert "SyntaxError" in res.error_message


@pytest.mark.asyncio
async def test_typed_compiler(ns):
    evaluator = Evaluator(TypeStrippingCompiler())
    assert_ok(await evaluator.evaluate("def inc(n: int) -> int:\n    return n + 1\n", ns))
    assert_ok(await evaluator.evaluate("inc(1)", ns), 2)
    assert ns["inc"].__annotations__ == {}


class TokenCompiler(SourceCompiler):
    """Reports its own diagnostics in the 'Unexpected token' style."""

    def compile(self, file_name, code):
        if code.count("{") > code.count("}"):
            raise SyntaxError("Unexpected token end")
        return code.replace("{", "(").replace("}", ")")


@pytest.mark.asyncio
async def test_custom_compiler_diagnostics_drive_continuation(ns):
    evaluator = Evaluator(TokenCompiler())
    assert (await evaluator.evaluate("{ 1 + ", ns)).incomplete
    assert_ok(await evaluator.evaluate("{ 1 + \n 2 }", ns), 3)


@pytest.mark.asyncio
async def test_custom_classifier(ns):
    evaluator = Evaluator(classifier=RecoverableErrorClassifier(patterns=[r"never"]))
    res = await evaluator.evaluate("if True:", ns)
    assert res.status == "error"


@pytest.mark.asyncio
async def test_handler_errors_are_labelled(evaluator, ns):
    def broken(*args):
        e = RuntimeError("handler failed")
        e.ripl_method = "broken"
        raise e

    ns["broken"] = broken
    res = await evaluator.evaluate("broken()", ns)
    assert res.status == "error"
    assert "HandlerError (broken): RuntimeError: handler failed" in res.error_message


@pytest.mark.asyncio
async def test_system_exit_is_not_swallowed(evaluator, ns):
    with pytest.raises(SystemExit):
        await evaluator.evaluate("raise SystemExit(0)", ns)


@pytest.mark.asyncio
@pytest.mark.parametrize("code, kind", [
    ("raise asyncio.CancelledError()", "CancelledError"),
    ("raise GeneratorExit()", "GeneratorExit"),
    ("t = asyncio.ensure_future(asyncio.sleep(10))\nt.cancel()\nawait t", "CancelledError"),
])
async def test_cancellation_ends_only_the_turn(evaluator, ns, code, kind):
    res = await evaluator.evaluate(code, ns)
    assert res.status == "error"
    assert res.origin == "runtime"
    assert res.error_message.endswith(kind)
    assert_ok(await evaluator.evaluate("1 + 1", ns), 2)


@pytest.mark.asyncio
async def test_wrapped_turn_errors_point_into_the_compiled_text(evaluator, ns):
    res = await evaluator.evaluate("await asyncio.sleep(0)\nnonlocal y", ns)
    assert res.status == "error"
    assert res.origin == "compile"
    assert "(line 5" in res.error_message
    marked = [line for line in res.error_message.splitlines() if line.startswith(">")]
    assert marked == ["> 5 |     nonlocal y"]
