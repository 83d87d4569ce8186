"""
Error taxonomy for the Cyano cell language.

Every failure the engine reports derives from `CyanoError`. The string form
is the single human-readable line surfaced to notebook users.
"""
from dataclasses import dataclass
from typing import Optional


class CyanoError(Exception):
    """Base class for all engine errors. Carries an optional 1-based line."""

    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line

    def __str__(self) -> str:
        if self.line is not None:
            return f"Line {self.line}: {self.message}"
        return self.message


@dataclass(frozen=True)
class LexAnomaly:
    """A character the lexer skipped. Recorded, never raised."""
    char: str
    line: int
    col: int


class ParseError(CyanoError):
    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message, line)
        self.col = col


class CyanoRuntimeError(CyanoError):
    """Raised while walking the AST; aborts the remaining statements."""
    pass


class UndefinedVariableError(CyanoRuntimeError):
    def __init__(self, name: str, line: Optional[int] = None):
        super().__init__(f"Undefined variable: {name}", line)
        self.name = name


class DivisionByZeroError(CyanoRuntimeError):
    def __init__(self, line: Optional[int] = None):
        super().__init__("Division by zero", line)


class IterableTypeError(CyanoRuntimeError):
    pass


class UnknownNamespaceError(CyanoRuntimeError):
    def __init__(self, namespace: str, line: Optional[int] = None):
        super().__init__(f"Unknown namespace: {namespace}", line)
        self.namespace = namespace


class UnknownFunctionError(CyanoRuntimeError):
    def __init__(self, func: str, namespace: Optional[str] = None, line: Optional[int] = None):
        qualified = f"{namespace}.{func}" if namespace else func
        super().__init__(f"Unknown function: {qualified}", line)
        self.func = func
        self.namespace = namespace


class InvalidPipeTargetError(CyanoRuntimeError):
    def __init__(self, line: Optional[int] = None):
        super().__init__("Pipe target must be a function call", line)


class OperandTypeError(CyanoRuntimeError):
    pass


class ExecutionLimitError(CyanoRuntimeError):
    pass


class HostCallError(CyanoRuntimeError):
    """A HostError surfaced from a namespaced call; the host message is kept verbatim."""

    def __init__(self, message: str, line: Optional[int] = None, namespace: Optional[str] = None,
                 func: Optional[str] = None):
        super().__init__(message, line)
        self.namespace = namespace
        self.func = func


class BoundaryError(CyanoError):
    """A request or value that violates the message-passing contract."""
    pass


__all__ = [
    "BoundaryError",
    "CyanoError",
    "CyanoRuntimeError",
    "DivisionByZeroError",
    "ExecutionLimitError",
    "HostCallError",
    "InvalidPipeTargetError",
    "IterableTypeError",
    "LexAnomaly",
    "OperandTypeError",
    "ParseError",
    "UndefinedVariableError",
    "UnknownFunctionError",
    "UnknownNamespaceError",
]
