"""
The Host Function Bridge: a registry of namespaces reachable from Cyano code.

A namespace is a capability object (`HostNamespace`) whose methods marked with
`@host_function` become callable as `Namespace.function(...)`. Python
snake_case method names are exposed in camelCase (`gc_content` becomes
`gcContent`). The bridge only looks up and dispatches; argument values pass
through unchanged.
"""
import inspect
import logging
from abc import ABC
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class HostError(Exception):
    """A failure reported by a host function. Its message is shown verbatim."""
    pass


class FunctionNotFound(LookupError):
    pass


def host_function(func: Optional[Callable] = None, *, name: Optional[str] = None):
    """A decorator to explicitly mark namespace methods as callable from Cyano."""
    def mark(f):
        f._is_host_function = True
        f._host_name = name
        return f
    if func is not None:
        return mark(func)
    return mark


def script_name(py_name: str) -> str:
    head, *rest = py_name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _arity(signature: inspect.Signature) -> str:
    params = [p for p in signature.parameters.values()
              if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
    required = sum(p.default is p.empty for p in params)
    if any(p.kind == p.VAR_POSITIONAL for p in signature.parameters.values()):
        return f"at least {required}"
    if required == len(params):
        return str(required)
    return f"{required} to {len(params)}"


class HostNamespace(ABC):
    """The base class for any Python object exposed as a Cyano namespace."""

    name: Optional[str] = None

    def __init__(self):
        self._functions: Optional[Dict[str, Callable]] = None

    @property
    def namespace_name(self) -> str:
        return self.name or type(self).__name__

    def functions(self) -> Dict[str, Callable]:
        if getattr(self, "_functions", None) is None:
            found = {}
            for attr, member in inspect.getmembers(self):
                if attr.startswith("__") or not callable(member):
                    continue
                # Decorator may mark the bound method or the underlying function
                target = getattr(member, "__func__", member)
                if not getattr(target, "_is_host_function", False):
                    continue
                found[getattr(target, "_host_name", None) or script_name(attr)] = member
            self._functions = found
        return self._functions

    def has_function(self, func: str) -> bool:
        return func in self.functions()

    def call(self, func: str, args: List[Any]) -> Any:
        try:
            fn = self.functions()[func]
        except KeyError:
            raise FunctionNotFound(f"{self.namespace_name}.{func}") from None
        self._check_arity(func, fn, args)
        return fn(*args)

    def _check_arity(self, func: str, fn: Callable, args: List[Any]):
        try:
            signature = inspect.signature(fn)
        except (TypeError, ValueError):
            # builtins without an introspectable signature
            return
        try:
            signature.bind(*args)
        except TypeError:
            raise HostError(
                f"{self.namespace_name}.{func}: wrong number of arguments "
                f"(expected {_arity(signature)}, got {len(args)})"
            ) from None

    def __repr__(self) -> str:
        return f"<HostNamespace {self.namespace_name}: {', '.join(sorted(self.functions()))}>"


class MappingNamespace(HostNamespace):
    """A namespace built from a plain mapping of script names to callables."""

    def __init__(self, name: str, functions: Mapping[str, Callable]):
        super().__init__()
        self.name = name
        self._functions = dict(functions)


class HostBridge:
    """Maps namespace names to namespace handles and dispatches calls into them."""

    def __init__(self, namespaces: Optional[Iterable[HostNamespace]] = None):
        self._namespaces: Dict[str, HostNamespace] = {}
        for ns in namespaces or ():
            self.register(ns)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Union[HostNamespace, Mapping[str, Callable]]]) -> "HostBridge":
        bridge = cls()
        for name, ns in mapping.items():
            if not isinstance(ns, HostNamespace):
                ns = MappingNamespace(name, ns)
            bridge.register(ns, name=name)
        return bridge

    def register(self, namespace: HostNamespace, name: Optional[str] = None) -> HostNamespace:
        key = name or namespace.namespace_name
        if not key[:1].isupper():
            raise ValueError(f"Namespace names must start with an uppercase letter: {key!r}")
        if key in self._namespaces:
            logger.warning("Namespace '%s' is already registered. Overwriting.", key)
        self._namespaces[key] = namespace
        return namespace

    def resolve(self, namespace: str) -> Optional[HostNamespace]:
        return self._namespaces.get(namespace)

    def dispatch(self, handle: HostNamespace, func: str, args: List[Any]) -> Any:
        logger.debug("host call %s.%s with %d argument(s)", handle.namespace_name, func, len(args))
        try:
            return handle.call(func, list(args))
        except (HostError, FunctionNotFound):
            raise
        except Exception as exc:
            raise HostError(f"{handle.namespace_name}.{func} raised unexpected error: {exc}") from exc

    def namespaces(self) -> List[str]:
        return list(self._namespaces)


__all__ = [
    "FunctionNotFound",
    "HostBridge",
    "HostError",
    "HostNamespace",
    "MappingNamespace",
    "host_function",
    "script_name",
]
