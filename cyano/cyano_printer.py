"""
Formats Cyano runtime values as text.

`stringify` is the plain-text form used for text outputs and string
concatenation; `to_json` is the JSON-rendered form of arrays and objects.
"""
import json
import math
import collections.abc
from typing import Any, Dict, List, Optional

from cyano.cyano_datatypes import is_number

# Integral floats at or above this magnitude keep exponent notation.
_EXPONENT_THRESHOLD = 1e21


def format_number(value) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < _EXPONENT_THRESHOLD:
        return str(int(value))
    return repr(value)


class Printer:
    """Formats Cyano values into readable text."""

    def __init__(self, indent_width: Optional[int] = 2):
        self.indent_width = indent_width
        self._handlers = self._create_handlers()

    def _create_handlers(self):
        return {
            str: lambda v: v,
            bool: lambda v: "true" if v else "false",
            int: format_number,
            float: format_number,
            type(None): lambda v: "null",
            list: self.to_json,
            tuple: self.to_json,
            dict: self.to_json,
        }

    def stringify(self, value: Any) -> str:
        handler = self._handlers.get(type(value))
        if handler is not None:
            return handler(value)
        if isinstance(value, collections.abc.Mapping):
            return self.to_json(value)
        if is_number(value):
            return format_number(value)
        return str(value)

    def to_json(self, value: Any, indent: Any = "default") -> str:
        if indent == "default":
            indent = self.indent_width
        return json.dumps(self._json_ready(value, set()), indent=indent, ensure_ascii=False)

    def _json_ready(self, value: Any, seen: set) -> Any:
        if value is None or isinstance(value, (bool, str)):
            return value
        if is_number(value):
            if isinstance(value, int):
                return value
            if not math.isfinite(value):
                return None
            if value.is_integer() and abs(value) < _EXPONENT_THRESHOLD:
                return int(value)
            return value
        if isinstance(value, (list, tuple, collections.abc.Mapping)):
            if id(value) in seen:
                return "[Circular]"
            seen.add(id(value))
            try:
                if isinstance(value, collections.abc.Mapping):
                    return {str(k): self._json_ready(v, seen) for k, v in value.items()}
                return [self._json_ready(v, seen) for v in value]
            finally:
                seen.discard(id(value))
        return str(value)

    # ------------------------------------------------------------------
    # Output envelopes (REPL / script runner)

    def render_output(self, output: Dict[str, Any]) -> str:
        kind = output.get("type")
        data = output.get("data")
        if kind == "text":
            return data if isinstance(data, str) else self.stringify(data)
        if kind == "table" and isinstance(data, list):
            return self._render_table(data)
        if kind == "alignment" and isinstance(data, collections.abc.Mapping):
            return self._render_alignment(data)
        return self.to_json(data)

    def _render_table(self, rows: List[Any]) -> str:
        if rows and all(isinstance(r, collections.abc.Mapping) for r in rows):
            columns: List[str] = []
            for row in rows:
                for key in row.keys():
                    if key not in columns:
                        columns.append(key)
            grid = [columns] + [[self._cell(row[c]) if c in row else "" for c in columns] for row in rows]
        else:
            grid = [[self._cell(c) for c in r] if isinstance(r, (list, tuple)) else [self._cell(r)]
                    for r in rows]
        if not grid:
            return ""
        width = max(len(r) for r in grid)
        sizes = [max((len(r[i]) for r in grid if i < len(r)), default=0) for i in range(width)]
        lines = ["  ".join(cell.ljust(sizes[i]) for i, cell in enumerate(r)).rstrip() for r in grid]
        return "\n".join(lines)

    def _cell(self, value: Any) -> str:
        if isinstance(value, (list, tuple, collections.abc.Mapping)):
            return self.to_json(value, indent=None)
        return self.stringify(value)

    def _render_alignment(self, data) -> str:
        query = str(data.get("aligned_query", ""))
        target = str(data.get("aligned_target", ""))
        marks = "".join(
            "|" if a == b and a != "-" else " " for a, b in zip(query, target)
        )
        lines = [query, marks, target]
        if "score" in data:
            lines.append(f"score: {self.stringify(data['score'])}")
        return "\n".join(lines)


_DEFAULT_PRINTER = Printer()


def stringify(value: Any) -> str:
    return _DEFAULT_PRINTER.stringify(value)


def to_json(value: Any, indent: Optional[int] = 2) -> str:
    return _DEFAULT_PRINTER.to_json(value, indent=indent)


__all__ = ["Printer", "format_number", "stringify", "to_json"]
