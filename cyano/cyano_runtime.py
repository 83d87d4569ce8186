"""
The execution host: turns execute requests into result or error envelopes.

Each request runs Lexer -> Parser -> Interpreter synchronously against a
Context rebuilt from the request. The host runtime (the HostBridge backing the
namespaces) is built lazily, once per host, behind a memoized task that every
request awaits before running.
"""
import asyncio
import collections.abc
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Union

from cyano.cyano_bridge import HostBridge
from cyano.cyano_config import RuntimeConfig
from cyano.cyano_datatypes import Context, DisplayOutput, is_array, is_object
from cyano.cyano_errors import BoundaryError, CyanoError, ParseError
from cyano.cyano_interpreter import NO_VALUE, Interpreter
from cyano.cyano_lexer import tokenize
from cyano.cyano_library import load_default_bridge
from cyano.cyano_parser import parse
from cyano.cyano_printer import Printer
from cyano.cyano_serialize import context_from_entries, context_to_entries, to_wire

logger = logging.getLogger(__name__)

BridgeLoader = Callable[[], Union[HostBridge, Awaitable[HostBridge]]]


# ===================================================================
# Output envelopes
# ===================================================================

def detect_output(value: Any, printer: Optional[Printer] = None) -> Dict[str, Any]:
    """Pick an output envelope for a value that has no explicit output type."""
    printer = printer or Printer()
    if value is None or isinstance(value, (str, bool, int, float)):
        return {"type": "text", "data": printer.stringify(value)}

    if is_array(value):
        if value and all(is_array(item) or is_object(item) for item in value):
            return {"type": "table", "data": value}
        return {"type": "text", "data": printer.to_json(value)}

    if is_object(value):
        # alignment results
        if "aligned_query" in value and "aligned_target" in value:
            return {"type": "alignment", "data": value}
        # summary statistics
        if "mean" in value or "count" in value:
            return {"type": "table", "data": [value]}
        return {"type": "text", "data": printer.to_json(value)}

    return {"type": "text", "data": printer.stringify(value)}


def build_output(value: Any, output_type: Any = None, printer: Optional[Printer] = None) -> Dict[str, Any]:
    """Honor an explicit output type, otherwise auto-detect."""
    printer = printer or Printer()
    if output_type is None or output_type == "":
        return detect_output(value, printer)
    kind = output_type if isinstance(output_type, str) else printer.stringify(output_type)
    if kind == "text":
        return {"type": "text", "data": printer.stringify(value)}
    return {"type": kind, "data": value}


# ===================================================================
# Script Execution
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of one cell execution."""
    status: Literal['success', 'error']
    value: Any = NO_VALUE
    output: Optional[Dict[str, Any]] = None
    display_outputs: List[DisplayOutput] = field(default_factory=list)
    context: Context = field(default_factory=Context)
    error_message: Optional[str] = None
    error_line: Optional[int] = None
    error_col: Optional[int] = None
    timing_ms: int = 0

    def format_error(self, source: Optional[str] = None) -> str:
        """Formats the error message with a source excerpt when the line is known."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if source and self.error_line is not None:
            excerpt = _source_context(source, self.error_line, self.error_col)
            if excerpt:
                return f"{msg}\n{excerpt}"
        return msg


def _source_context(source: str, line: int, col: Optional[int], radius: int = 2) -> str:
    lines = source.splitlines()
    if not line or line < 1 or line > len(lines):
        return ""
    start = max(1, line - radius)
    end = min(len(lines), line + radius)
    width = len(str(end))
    out = []
    for i in range(start, end + 1):
        prefix = ">" if i == line else " "
        ln = str(i).rjust(width)
        content = lines[i - 1]
        out.append(f"{prefix} {ln} | {content}")
        if i == line and col is not None:
            caret = " " * max(col - 1, 0)
            out.append(f"  {' ' * width} | {caret}^")
    return "\n".join(out)


class ExecutionHost:
    """Parses and executes Cyano cells and answers execute messages."""

    def __init__(
        self,
        bridge: Optional[HostBridge] = None,
        *,
        loader: Optional[BridgeLoader] = None,
        config: Optional[RuntimeConfig] = None,
    ):
        self.config = config or RuntimeConfig()
        self.printer = Printer(indent_width=self.config.json_indent)
        self.loader: BridgeLoader = loader or load_default_bridge
        self.bridge: Optional[HostBridge] = bridge
        self._ready: Optional[asyncio.Task] = None

    @property
    def initialized(self) -> bool:
        return self.bridge is not None

    async def _initialize(self) -> HostBridge:
        """Build the host runtime once; concurrent callers await the same task."""
        if self.bridge is not None:
            return self.bridge
        if self._ready is None:
            self._ready = asyncio.ensure_future(self._load_bridge())
        task = self._ready
        try:
            bridge = await asyncio.shield(task)
        except Exception:
            # allow the next request to retry
            if self._ready is task:
                self._ready = None
            raise
        self.bridge = bridge
        return bridge

    async def _load_bridge(self) -> HostBridge:
        logger.debug("initializing host runtime")
        bridge = self.loader()
        if inspect.isawaitable(bridge):
            bridge = await bridge
        if not isinstance(bridge, HostBridge):
            raise TypeError(f"runtime loader returned {type(bridge).__name__}, expected HostBridge")
        logger.info("host runtime ready (%s)", ", ".join(bridge.namespaces()))
        return bridge

    def reset(self):
        """Forget the initialized runtime so the next request loads it again."""
        if self._ready is not None and not self._ready.done():
            self._ready.cancel()
        self._ready = None
        self.bridge = None

    def _make_interpreter(self, bridge: HostBridge) -> Interpreter:
        return Interpreter(
            bridge,
            max_steps=self.config.max_steps,
            time_limit_ms=self.config.time_limit_ms,
        )

    def _select_output(self, value: Any, display_outputs: List[DisplayOutput]) -> Dict[str, Any]:
        # display() output wins over the last value
        if display_outputs:
            last = display_outputs[-1]
            return build_output(last.value, last.output_type, self.printer)
        if value is not NO_VALUE:
            return detect_output(value, self.printer)
        return {"type": "text", "data": self.config.no_output_text}

    async def handle_script(self, source_code: str, context: Optional[Context] = None) -> ExecutionResult:
        """The main entry point to execute a cell. `context` is mutated in place."""
        context = context if context is not None else Context()
        try:
            bridge = await self._initialize()
        except Exception as e:
            logger.warning("host runtime initialization failed: %s", e)
            return ExecutionResult(
                status='error',
                context=context,
                error_message=f"Runtime initialization failed: {e}",
            )

        start = time.perf_counter()
        try:
            # 1. Tokenize and parse; nothing runs when parsing fails
            program = parse(tokenize(source_code), self.config.max_nesting)
            # 2. Evaluate
            result = self._make_interpreter(bridge).interpret(program, context)
        except CyanoError as e:
            return ExecutionResult(
                status='error',
                context=context,
                error_message=str(e),
                error_line=e.line,
                error_col=e.col if isinstance(e, ParseError) else None,
                timing_ms=round((time.perf_counter() - start) * 1000),
            )
        except Exception as e:
            logger.exception("internal error while executing cell")
            return ExecutionResult(
                status='error',
                context=context,
                error_message=f"Internal error: {e}",
                timing_ms=round((time.perf_counter() - start) * 1000),
            )

        elapsed = round((time.perf_counter() - start) * 1000)
        output = self._select_output(result.last_value, result.display_outputs)
        output["timing_ms"] = elapsed
        return ExecutionResult(
            status='success',
            value=result.last_value,
            output=output,
            display_outputs=result.display_outputs,
            context=context,
            timing_ms=elapsed,
        )

    async def handle_message(self, message: Any) -> Dict[str, Any]:
        """Answer one execute request with a result or error envelope."""
        if not isinstance(message, collections.abc.Mapping):
            return {"type": "error", "cellId": None, "message": "Request must be an object"}
        cell_id = message.get("cellId")
        if message.get("type") != "execute":
            return {"type": "error", "cellId": cell_id,
                    "message": f"Unsupported message type: {message.get('type')!r}"}

        code = message.get("code")
        if code is None:
            code = ""
        if not isinstance(code, str):
            return {"type": "error", "cellId": cell_id, "message": "code must be a string"}
        try:
            context = context_from_entries(message.get("context"))
        except BoundaryError as e:
            return {"type": "error", "cellId": cell_id, "message": str(e)}

        result = await self.handle_script(code, context)

        try:
            entries = context_to_entries(result.context)
            if result.status == 'success':
                output = dict(result.output)
                output["data"] = to_wire(output["data"], path="output")
                return {"type": "result", "cellId": cell_id, "output": output, "context": entries}
        except BoundaryError as e:
            return {"type": "error", "cellId": cell_id, "message": str(e)}

        return {"type": "error", "cellId": cell_id, "message": result.error_message, "context": entries}


__all__ = [
    "ExecutionHost",
    "ExecutionResult",
    "build_output",
    "detect_output",
]
