from __future__ import annotations

import json
import collections.abc
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import yaml

from cyano.cyano_datatypes import Context, is_number
from cyano.cyano_errors import BoundaryError


# --------------------------
# Message-boundary values
# --------------------------

def _convert(value: Any, seen: set, path: str, inbound: bool) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if is_number(value):
        # JSON integers arrive as ints; numbers in the language are floats
        return float(value) if inbound and isinstance(value, int) else value
    if isinstance(value, (list, tuple, collections.abc.Mapping)):
        if id(value) in seen:
            raise BoundaryError(f"Cyclic value at {path} cannot cross the message boundary")
        seen.add(id(value))
        try:
            if isinstance(value, collections.abc.Mapping):
                out = {}
                for k, v in value.items():
                    if not isinstance(k, str):
                        raise BoundaryError(f"Object key {k!r} at {path} is not a string")
                    out[k] = _convert(v, seen, f"{path}.{k}", inbound)
                return out
            return [_convert(v, seen, f"{path}[{i}]", inbound) for i, v in enumerate(value)]
        finally:
            seen.discard(id(value))
    raise BoundaryError(
        f"Value of type {type(value).__name__} at {path} cannot cross the message boundary"
    )


def to_wire(value: Any, path: str = "value") -> Any:
    """Copy a runtime value into plain JSON-compatible structures."""
    return _convert(value, set(), path, inbound=False)


def from_wire(value: Any, path: str = "value") -> Any:
    """Validate and copy a value received from the boundary."""
    return _convert(value, set(), path, inbound=True)


def context_from_entries(entries: Optional[Iterable[Any]]) -> Context:
    """Rebuild a Context from `[[name, value], ...]` (a mapping is also accepted)."""
    if entries is None:
        return Context()
    if isinstance(entries, collections.abc.Mapping):
        entries = list(entries.items())
    if isinstance(entries, (str, bytes)) or not isinstance(entries, collections.abc.Iterable):
        raise BoundaryError("context must be a list of [name, value] entries")
    return Context.from_entries(_checked_entries(entries))


def _checked_entries(entries: Iterable[Any]) -> Iterator[Tuple[str, Any]]:
    for i, entry in enumerate(entries):
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            raise BoundaryError(f"context entry {i} must be a [name, value] pair")
        name, value = entry
        if not isinstance(name, str):
            raise BoundaryError(f"context entry {i} has a non-string name: {name!r}")
        yield name, from_wire(value, path=name)


def context_to_entries(context: Context) -> List[List[Any]]:
    return [[name, to_wire(value, path=name)] for name, value in context.items()]


# --------------------------
# Text formats
# --------------------------

def detect_format(name_hint: Optional[str] = None, data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns 'json' or 'yaml'. Uses a file name suffix first; falls back to
    simple data sniffing if provided.
    """
    hint = (name_hint or "").lower()
    if hint.endswith(".json"):
        return "json"
    if hint.endswith((".yaml", ".yml")):
        return "yaml"
    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith("{") or s.startswith("["):
            return "json"
        return "yaml"
    return None


def deserialize(data: bytes | bytearray | str, *, fmt: Optional[str] = None) -> Any:
    """Parse JSON or YAML text into plain Python structures."""
    text = data.decode("utf-8", errors="replace") if isinstance(data, (bytes, bytearray)) else data
    f = fmt or detect_format(data_hint=text)
    if f == "json":
        try:
            return json.loads(text)
        except ValueError:
            # YAML is a superset of JSON
            f = "yaml"
    if f == "yaml":
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML: {exc}") from exc
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def serialize(value: Any, *, fmt: str = "json", pretty: bool = True) -> str:
    """Convert a value into JSON or YAML text."""
    f = (fmt or "").lower()
    built = to_wire(value)
    if f == "json":
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == "yaml":
        return yaml.safe_dump(built, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


__all__ = [
    "context_from_entries",
    "context_to_entries",
    "deserialize",
    "detect_format",
    "from_wire",
    "serialize",
    "to_wire",
]
