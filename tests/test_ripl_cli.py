import pytest

from ripl.__main__ import main, parse_args


def test_parse_args_defaults():
    args = parse_args([])
    assert args.file is None
    assert args.compiler is None
    assert args.no_banner is False


@pytest.mark.asyncio
async def test_runs_file_non_interactively(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("RIPL_CONFIG", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    script = tmp_path / "script.py"
    script.write_text("import asyncio\nvalue = await asyncio.sleep(0, 3)\nprint(value * 2)\n")
    await main([str(script)])
    assert capsys.readouterr().out == "6\n"


@pytest.mark.asyncio
async def test_failing_file_exits_with_status_1(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("RIPL_CONFIG", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    script = tmp_path / "bad.py"
    script.write_text("raise ValueError('bad input')\n")
    with pytest.raises(SystemExit) as info:
        await main([str(script)])
    assert info.value.code == 1
    assert "ValueError: bad input" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_missing_file(tmp_path, monkeypatch):
    monkeypatch.delenv("RIPL_CONFIG", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    with pytest.raises(SystemExit) as info:
        await main([str(tmp_path / "missing.py")])
    assert info.value.code == 1


@pytest.mark.asyncio
async def test_bad_config_exits_with_status_2(tmp_path, capsys):
    config = tmp_path / "bad.yaml"
    config.write_text("nonsense: 1\n")
    with pytest.raises(SystemExit) as info:
        await main(["--config", str(config), "whatever.py"])
    assert info.value.code == 2
    assert "unknown config keys" in capsys.readouterr().err
