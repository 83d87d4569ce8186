"""
Defines the core data types for the Cyano cell language.

This module holds the token stream types produced by the lexer, the AST node
classes produced by the parser, the `Context` that carries variable bindings
between cell runs, and the small set of value predicates (truthiness,
equality, type names) that the interpreter applies to runtime values.
"""
from __future__ import annotations

import math
import collections.abc
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple


# =================================================================
# Tokens
# =================================================================

class TokenType(str, Enum):
    # Literals
    NUMBER = "NUMBER"
    STRING = "STRING"
    BACKTICK_STRING = "BACKTICK_STRING"
    TRUE = "TRUE"
    FALSE = "FALSE"
    NULL = "NULL"
    # Identifiers and keywords
    IDENT = "IDENT"
    LET = "LET"
    IF = "IF"
    ELSE = "ELSE"
    END = "END"
    FOR = "FOR"
    IN = "IN"
    # Operators and punctuation
    ASSIGN = "ASSIGN"
    PIPE = "PIPE"
    DOT = "DOT"
    COMMA = "COMMA"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    LBRACKET = "LBRACKET"
    RBRACKET = "RBRACKET"
    LBRACE = "LBRACE"
    RBRACE = "RBRACE"
    COLON = "COLON"
    EQ = "EQ"
    NEQ = "NEQ"
    LT = "LT"
    GT = "GT"
    LTE = "LTE"
    GTE = "GTE"
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    PLUS = "PLUS"
    MINUS = "MINUS"
    STAR = "STAR"
    SLASH = "SLASH"
    MOD = "MOD"
    # Control
    NEWLINE = "NEWLINE"
    EOF = "EOF"

    def __str__(self) -> str:
        return self.value


KEYWORDS: Dict[str, TokenType] = {
    "let": TokenType.LET,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "end": TokenType.END,
    "for": TokenType.FOR,
    "in": TokenType.IN,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "null": TokenType.NULL,
}


@dataclass(frozen=True)
class Token:
    kind: TokenType
    value: Any
    line: int
    col: int

    def __repr__(self) -> str:
        if self.value is not None:
            return f"{self.kind.value}({self.value!r})@{self.line}:{self.col}"
        return f"{self.kind.value}@{self.line}:{self.col}"


# =================================================================
# AST nodes
# =================================================================

class Node:
    line: int


class Stmt(Node):
    pass


class Expr(Node):
    pass


@dataclass
class Program(Node):
    statements: List[Stmt]
    line: int = 1


@dataclass
class Assignment(Stmt):
    name: str
    expr: Expr
    line: int = 1


@dataclass
class ExprStatement(Stmt):
    expr: Expr
    line: int = 1


@dataclass
class IfElse(Stmt):
    condition: Expr
    then_body: List[Stmt]
    else_body: Optional[List[Stmt]] = None
    line: int = 1


@dataclass
class ForLoop(Stmt):
    variable: str
    iterable: Expr
    body: List[Stmt]
    line: int = 1


@dataclass
class BinOp(Expr):
    op: str
    left: Expr
    right: Expr
    line: int = 1


@dataclass
class UnaryOp(Expr):
    op: str
    expr: Expr
    line: int = 1


@dataclass
class Literal(Expr):
    value: Any
    line: int = 1
    # Token kind the literal came from; keeps `...` apart from quoted strings.
    source_kind: Optional[TokenType] = None


@dataclass
class Variable(Expr):
    name: str
    line: int = 1


@dataclass
class ArrayLiteral(Expr):
    items: List[Expr]
    line: int = 1


@dataclass
class ObjectLiteral(Expr):
    entries: List[Tuple[str, Expr]]
    line: int = 1


@dataclass
class Call(Expr):
    namespace: Optional[str]
    func: str
    args: List[Expr]
    line: int = 1


@dataclass
class Display(Expr):
    args: List[Expr]
    line: int = 1
    name: str = "display"


@dataclass
class Pipe(Expr):
    left: Expr
    right: Expr
    line: int = 1


# =================================================================
# Runtime support types
# =================================================================

@dataclass
class DisplayOutput:
    """One explicit `display(...)` emission, in program order."""
    value: Any
    output_type: Optional[str] = None


class Context(collections.abc.MutableMapping):
    """The ordered variable store passed into and out of every execution.

    Bindings are written in place as statements run; nothing is buffered, so
    a failing run leaves every binding made before the fault.
    """

    def __init__(self, entries: Optional[Iterable[Tuple[str, Any]]] = None):
        self.bindings: Dict[str, Any] = {}
        for name, value in entries or ():
            self[name] = value

    @classmethod
    def from_entries(cls, entries: Optional[Iterable[Tuple[str, Any]]]) -> "Context":
        return cls(entries)

    def entries(self) -> List[List[Any]]:
        return [[name, value] for name, value in self.bindings.items()]

    def __getitem__(self, name: str) -> Any:
        return self.bindings[name]

    def __setitem__(self, name: str, value: Any):
        if not isinstance(name, str):
            raise TypeError(f"context keys must be strings, got {type(name).__name__}")
        self.bindings[name] = value

    def __delitem__(self, name: str):
        del self.bindings[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.bindings)

    def __len__(self) -> int:
        return len(self.bindings)

    def __repr__(self) -> str:
        return f"Context({self.bindings!r})"


# =================================================================
# Value predicates
# =================================================================

def is_number(value: Any) -> bool:
    # bool is a subclass of int, so exclude it explicitly
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_array(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def is_object(value: Any) -> bool:
    return isinstance(value, collections.abc.Mapping)


def value_kind(value: Any) -> str:
    """The value variant: null, boolean, number, string, array, object or opaque."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_array(value):
        return "array"
    if is_object(value):
        return "object"
    return "opaque"


def type_name(value: Any) -> str:
    kind = value_kind(value)
    return type(value).__name__ if kind == "opaque" else kind


def is_truthy(value: Any) -> bool:
    """False, null, zero, NaN and "" are falsy; everything else is truthy."""
    if value is None or value is False:
        return False
    if value is True:
        return True
    if is_number(value):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def values_equal(left: Any, right: Any) -> bool:
    """Strict equality: values of different variants are never equal."""
    lt, rt = value_kind(left), value_kind(right)
    if lt != rt:
        return False
    match lt:
        case "null":
            return True
        case "boolean" | "number" | "string":
            return left == right
        case "array":
            return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
        case "object":
            if set(left.keys()) != set(right.keys()):
                return False
            return all(values_equal(left[k], right[k]) for k in left.keys())
    if left is right:
        return True
    try:
        return bool(left == right)
    except (TypeError, ValueError):
        return False


__all__ = [
    "ArrayLiteral",
    "Assignment",
    "BinOp",
    "Call",
    "Context",
    "Display",
    "DisplayOutput",
    "Expr",
    "ExprStatement",
    "ForLoop",
    "IfElse",
    "KEYWORDS",
    "Literal",
    "Node",
    "ObjectLiteral",
    "Pipe",
    "Program",
    "Stmt",
    "Token",
    "TokenType",
    "UnaryOp",
    "Variable",
    "is_array",
    "is_number",
    "is_object",
    "is_truthy",
    "type_name",
    "value_kind",
    "values_equal",
]
