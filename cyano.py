import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from cyano.cyano_config import load_config
from cyano.cyano_datatypes import Context, TokenType
from cyano.cyano_errors import BoundaryError
from cyano.cyano_interpreter import NO_VALUE
from cyano.cyano_lexer import tokenize
from cyano.cyano_printer import Printer
from cyano.cyano_runtime import ExecutionHost, build_output
from cyano.cyano_serialize import context_from_entries, deserialize, detect_format, serialize

logger = logging.getLogger("cyano")

USAGE = "usage: cyano.py [--config FILE] [--context FILE] [--worker | SCRIPT]"


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


async def areadline() -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, sys.stdin.readline)


def block_depth(source: str) -> int:
    """Number of `if`/`for` blocks still waiting for their `end`."""
    depth = 0
    for tok in tokenize(source):
        if tok.kind in (TokenType.IF, TokenType.FOR):
            depth += 1
        elif tok.kind == TokenType.END:
            depth -= 1
    return depth


def load_context_file(file_path: str) -> Context:
    """Read starting bindings from a JSON or YAML file: a mapping or a list of [name, value] pairs."""
    text = Path(file_path).read_text(encoding="utf-8")
    return context_from_entries(deserialize(text, fmt=detect_format(file_path, text)))


def print_result(result, printer: Printer):
    if result.display_outputs:
        for shown in result.display_outputs:
            print(printer.render_output(build_output(shown.value, shown.output_type, printer)))
    elif result.value is not NO_VALUE:
        print(printer.render_output(result.output))


async def run_script_file(file_path: str, host: ExecutionHost, context: Optional[Context] = None):
    """Run a Cyano script file non-interactively and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = await host.handle_script(source, context)
    if result.status == 'error':
        print(result.format_error(source), file=sys.stderr)
        raise SystemExit(1)
    print_result(result, host.printer)


async def run_worker(host: ExecutionHost):
    """Answer one JSON execute request per stdin line with one JSON response line."""
    logger.info("worker started")
    while True:
        raw = await areadline()
        if raw == "":
            break
        if not raw.strip():
            continue
        try:
            request = deserialize(raw, fmt="json")
        except ValueError as e:
            response = {"type": "error", "cellId": None, "message": f"Invalid request: {e}"}
        else:
            response = await host.handle_message(request)
        sys.stdout.write(serialize(response, pretty=False) + "\n")
        sys.stdout.flush()
    logger.info("worker stopped")


def parse_args(argv: List[str]) -> dict:
    opts = {"config": None, "context": None, "worker": False, "script": None}
    args = list(argv)
    while args:
        arg = args.pop(0)
        if arg in ("--config", "--context"):
            if not args:
                raise SystemExit(USAGE)
            opts[arg[2:]] = args.pop(0)
        elif arg == "--worker":
            opts["worker"] = True
        elif arg in ("-h", "--help"):
            print(USAGE)
            raise SystemExit(0)
        elif arg.startswith("-"):
            raise SystemExit(USAGE)
        else:
            opts["script"] = arg
    return opts


async def main(argv: Optional[List[str]] = None):
    """Run a script file or the worker loop when requested, otherwise start the REPL."""
    opts = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        config = load_config(opts["config"])
    except (OSError, ValueError) as e:
        print(f"Error: cannot load config: {e}", file=sys.stderr)
        raise SystemExit(1)
    logging.basicConfig(level=config.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    host = ExecutionHost(config=config)

    if opts["worker"]:
        await run_worker(host)
        return

    # Bindings persist across inputs
    context = Context()
    if opts["context"]:
        try:
            context = load_context_file(opts["context"])
        except (OSError, ValueError, BoundaryError) as e:
            print(f"Error: cannot load context from {opts['context']}: {e}", file=sys.stderr)
            raise SystemExit(1)

    if opts["script"]:
        await run_script_file(opts["script"], host, context)
        return

    print("Cyano REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    pending: List[str] = []

    while True:
        try:
            raw = await ainput("... " if pending else ">> ")
            if raw == "":
                raise EOFError
            line = raw.rstrip("\n")

            if not pending and not line.strip():
                continue
            if not pending and line.strip() == "exit":
                break

            pending.append(line)
            source = "\n".join(pending)
            # keep reading until every if/for block is closed
            if block_depth(source) > 0:
                continue
            pending = []

            result = await host.handle_script(source, context)
            if result.status == 'error':
                print(result.format_error(source), file=sys.stderr)
                continue
            print_result(result, host.printer)

        except EOFError:
            print("\nExiting.")
            break


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
