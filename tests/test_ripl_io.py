import io

import pytest

from ripl.ripl_io import ListLineSink, ListLineSource, StreamLineSink, StreamLineSource


@pytest.mark.asyncio
async def test_stream_source_strips_newlines_and_ends_with_none():
    source = StreamLineSource(io.StringIO("first\r\nsecond\nlast"))
    assert await source.readline() == "first"
    assert await source.readline() == "second"
    assert await source.readline() == "last"
    assert await source.readline() is None


@pytest.mark.asyncio
async def test_stream_source_keeps_blank_lines():
    source = StreamLineSource(io.StringIO("\n\n"))
    assert await source.readline() == ""
    assert await source.readline() == ""
    assert await source.readline() is None


@pytest.mark.asyncio
async def test_list_source_push():
    source = ListLineSource(["a"])
    source.push("b", "c")
    assert [await source.readline() for _ in range(4)] == ["a", "b", "c", None]


def test_stream_sink_writes_to_stream():
    buf = io.StringIO()
    sink = StreamLineSink(buf)
    sink.write("> ")
    sink.flush()
    assert buf.getvalue() == "> "


def test_list_sink_collects():
    sink = ListLineSink()
    sink.write("a")
    sink.write("b\n")
    assert sink.writes == ["a", "b\n"]
    assert sink.text == "ab\n"
