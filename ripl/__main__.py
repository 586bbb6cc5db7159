import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from ripl import __version__
from ripl.ripl_compiler import make_compiler
from ripl.ripl_config import load_config, render
from ripl.ripl_engine import Evaluator
from ripl.ripl_errors import ConfigError
from ripl.ripl_session import Repl


def notify(session, param):
    session.write(f"{param}\n")


async def run_script_file(file_path: str, evaluator: Evaluator):
    """Run a file non-interactively and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    context = {"__name__": "__main__", "__file__": str(p.resolve())}
    result = await evaluator.evaluate(source + "\n", context, str(p))
    if not result.ok:
        print(result.error_message or "SyntaxError: Unexpected end of input", file=sys.stderr)
        raise SystemExit(1)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="ripl", description="An interactive Python REPL with top-level await.")
    parser.add_argument("file", nargs="?", help="run this file instead of starting the REPL")
    parser.add_argument("--config", help="path to a YAML config file")
    parser.add_argument("--compiler", choices=["python", "typed", "passthrough"], help="override the configured compiler")
    parser.add_argument("--no-banner", action="store_true", help="do not print the welcome banner")
    return parser.parse_args(argv)


async def main(argv=None):
    """Run a file when provided, otherwise start the interactive REPL."""
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)

    if config.debug or os.environ.get("RIPL_DEBUG"):
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    compiler_name = args.compiler or config.compiler
    try:
        evaluator = Evaluator(make_compiler(compiler_name))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)

    if args.file:
        await run_script_file(args.file, evaluator)
        return

    banner = None
    if config.show_banner and not args.no_banner:
        banner = render(config.banner, {'version': __version__, 'compiler': compiler_name})

    repl = Repl(
        evaluator=evaluator,
        prompt=config.prompt,
        continuation_prompt=config.continuation_prompt,
        banner=banner,
        history_limit=config.history_limit,
    )
    repl.add_method("notify", notify, {"help": "Print a message"})
    await repl.run()


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")


if __name__ == "__main__":
    cli()
