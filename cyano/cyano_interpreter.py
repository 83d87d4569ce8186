"""
The core Cyano interpreter: walks a parsed Program against a Context.

Statements run in order and write their bindings straight into the context;
a runtime error aborts the remaining statements without undoing earlier
writes. Explicit `display(...)`/`print(...)` calls are collected in an
ordered log next to the program's last value.
"""
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from cyano.cyano_bridge import FunctionNotFound, HostBridge, HostError
from cyano.cyano_datatypes import (
    ArrayLiteral, Assignment, BinOp, Call, Context, Display, DisplayOutput, Expr,
    ExprStatement, ForLoop, IfElse, Literal, Node, ObjectLiteral, Pipe, Program,
    Stmt, UnaryOp, Variable, is_array, is_number, is_object, is_truthy, type_name, values_equal,
)
from cyano.cyano_errors import (
    CyanoRuntimeError, DivisionByZeroError, ExecutionLimitError, HostCallError,
    InvalidPipeTargetError, IterableTypeError, OperandTypeError, UndefinedVariableError,
    UnknownFunctionError, UnknownNamespaceError,
)
from cyano.cyano_printer import stringify, to_json


class _NoValue:
    """Marks a run in which no statement produced a value (distinct from null)."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "NO_VALUE"

    def __bool__(self):
        return False


NO_VALUE = _NoValue()


@dataclass
class InterpretResult:
    last_value: Any = NO_VALUE
    display_outputs: List[DisplayOutput] = field(default_factory=list)

    @property
    def has_value(self) -> bool:
        return self.last_value is not NO_VALUE


class Interpreter:
    """Executes Programs, dispatching namespaced calls through a HostBridge.

    `max_steps` bounds the number of statements plus loop iterations a single
    run may execute and `time_limit_ms` bounds its wall-clock time; both are
    checked before each statement and each loop iteration.
    """

    def __init__(
        self,
        bridge: Optional[HostBridge] = None,
        *,
        max_steps: Optional[int] = None,
        time_limit_ms: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.bridge = bridge
        self.max_steps = max_steps
        self.time_limit_ms = time_limit_ms
        self._clock = clock
        self.display_outputs: List[DisplayOutput] = []
        self.last_value: Any = NO_VALUE
        self._steps = 0
        self._line: Optional[int] = None
        self._deadline: Optional[float] = None

    def interpret(self, program: Program, context: Context) -> InterpretResult:
        self.display_outputs = []
        self.last_value = NO_VALUE
        self._steps = 0
        self._line = None
        self._deadline = None
        if self.time_limit_ms is not None:
            self._deadline = self._clock() + self.time_limit_ms / 1000.0

        try:
            self._exec_block(program.statements, context)
        except RecursionError:
            # long operator chains evaluate recursively
            raise ExecutionLimitError("Expression nested too deeply", self._line) from None
        return InterpretResult(self.last_value, list(self.display_outputs))

    # ------------------------------------------------------------------
    # Statement execution

    def _exec_block(self, stmts: List[Stmt], context: Context):
        for stmt in stmts:
            self._exec_stmt(stmt, context)

    def _exec_stmt(self, stmt: Stmt, context: Context):
        self._tick(stmt)

        if isinstance(stmt, Assignment):
            value = self._eval_expr(stmt.expr, context)
            context[stmt.name] = value
            self.last_value = value
            return

        if isinstance(stmt, ExprStatement):
            self.last_value = self._eval_expr(stmt.expr, context)
            return

        if isinstance(stmt, IfElse):
            if is_truthy(self._eval_expr(stmt.condition, context)):
                self._exec_block(stmt.then_body, context)
            elif stmt.else_body is not None:
                self._exec_block(stmt.else_body, context)
            return

        if isinstance(stmt, ForLoop):
            iterable = self._eval_expr(stmt.iterable, context)
            if not is_array(iterable):
                raise IterableTypeError(
                    f"for..in requires an array, got {type_name(iterable)}", stmt.line
                )
            for item in list(iterable):
                self._tick(stmt)
                # the loop variable stays bound after the loop ends
                context[stmt.variable] = item
                self._exec_block(stmt.body, context)
            return

        raise CyanoRuntimeError(f"Unknown statement type: {type(stmt).__name__}", getattr(stmt, "line", None))

    # ------------------------------------------------------------------
    # Expressions

    def _eval_expr(self, expr: Expr, context: Context) -> Any:
        if isinstance(expr, Literal):
            return expr.value

        if isinstance(expr, Variable):
            if expr.name in context:
                return context[expr.name]
            raise UndefinedVariableError(expr.name, expr.line)

        if isinstance(expr, ArrayLiteral):
            return [self._eval_expr(item, context) for item in expr.items]

        if isinstance(expr, ObjectLiteral):
            obj = {}
            for key, value_expr in expr.entries:
                obj[key] = self._eval_expr(value_expr, context)
            return obj

        if isinstance(expr, BinOp):
            return self._eval_binop(expr, context)

        if isinstance(expr, UnaryOp):
            operand = self._eval_expr(expr.expr, context)
            if expr.op == "!":
                return not is_truthy(operand)
            if expr.op == "-":
                if not is_number(operand):
                    raise OperandTypeError(f"Cannot negate {type_name(operand)}", expr.line)
                return -operand
            raise CyanoRuntimeError(f"Unknown unary operator: {expr.op}", expr.line)

        if isinstance(expr, Call):
            args = [self._eval_expr(a, context) for a in expr.args]
            return self._call(expr, args)

        if isinstance(expr, Display):
            value = self._eval_expr(expr.args[0], context) if expr.args else None
            output_type = self._eval_expr(expr.args[1], context) if len(expr.args) > 1 else None
            self.display_outputs.append(DisplayOutput(value, output_type))
            return value

        if isinstance(expr, Pipe):
            left_val = self._eval_expr(expr.left, context)
            right = expr.right
            if isinstance(right, Call):
                args = [self._eval_expr(a, context) for a in right.args]
                return self._call(right, [left_val] + args)
            if isinstance(right, Display):
                output_type = self._eval_expr(right.args[0], context) if right.args else None
                self.display_outputs.append(DisplayOutput(left_val, output_type))
                return left_val
            raise InvalidPipeTargetError(right.line)

        raise CyanoRuntimeError(f"Unknown node type: {type(expr).__name__}", getattr(expr, "line", None))

    def _eval_binop(self, node: BinOp, context: Context) -> Any:
        op = node.op
        # && and || yield the deciding operand
        if op == "&&":
            left = self._eval_expr(node.left, context)
            return self._eval_expr(node.right, context) if is_truthy(left) else left
        if op == "||":
            left = self._eval_expr(node.left, context)
            return left if is_truthy(left) else self._eval_expr(node.right, context)

        left = self._eval_expr(node.left, context)
        right = self._eval_expr(node.right, context)

        match op:
            case "==":
                return values_equal(left, right)
            case "!=":
                return not values_equal(left, right)
            case "<" | ">" | "<=" | ">=":
                return self._compare(op, left, right, node)
            case "+":
                if isinstance(left, str) or isinstance(right, str):
                    return self._concat_text(left) + self._concat_text(right)
                self._require_numbers(op, left, right, node)
                return left + right
            case "-":
                self._require_numbers(op, left, right, node)
                return left - right
            case "*":
                self._require_numbers(op, left, right, node)
                return left * right
            case "/":
                self._require_numbers(op, left, right, node)
                if right == 0:
                    raise DivisionByZeroError(node.line)
                return float(left) / float(right)
            case "%":
                self._require_numbers(op, left, right, node)
                return self._fmod(left, right)
        raise CyanoRuntimeError(f"Unknown operator: {op}", node.line)

    @staticmethod
    def _concat_text(value: Any) -> str:
        # arrays and objects join as single-line JSON
        if is_array(value) or is_object(value):
            return to_json(value, indent=None)
        return stringify(value)

    @staticmethod
    def _fmod(left, right) -> float:
        if right == 0:
            return math.nan
        try:
            return math.fmod(left, right)
        except ValueError:
            # fmod(inf, y) and NaN operands
            return math.nan

    @staticmethod
    def _require_numbers(op: str, left: Any, right: Any, node: Node):
        if not (is_number(left) and is_number(right)):
            raise OperandTypeError(
                f"Cannot apply '{op}' to {type_name(left)} and {type_name(right)}", node.line
            )

    @staticmethod
    def _compare(op: str, left: Any, right: Any, node: Node) -> bool:
        comparable = (is_number(left) and is_number(right)) or (
            isinstance(left, str) and isinstance(right, str)
        )
        if not comparable:
            raise OperandTypeError(
                f"Cannot compare {type_name(left)} and {type_name(right)} with '{op}'", node.line
            )
        match op:
            case "<":
                return left < right
            case ">":
                return left > right
            case "<=":
                return left <= right
        return left >= right

    # ------------------------------------------------------------------
    # Host calls

    def _call(self, node: Call, args: List[Any]) -> Any:
        if node.namespace is None:
            raise UnknownFunctionError(node.func, line=node.line)
        handle = self.bridge.resolve(node.namespace) if self.bridge is not None else None
        if handle is None:
            raise UnknownNamespaceError(node.namespace, node.line)
        if not handle.has_function(node.func):
            raise UnknownFunctionError(node.func, node.namespace, node.line)
        try:
            return self.bridge.dispatch(handle, node.func, args)
        except FunctionNotFound:
            raise UnknownFunctionError(node.func, node.namespace, node.line) from None
        except HostError as err:
            raise HostCallError(str(err), node.line, node.namespace, node.func) from err

    # ------------------------------------------------------------------
    # Budget

    def _tick(self, node: Node):
        self._steps += 1
        self._line = node.line
        if self.max_steps is not None and self._steps > self.max_steps:
            raise ExecutionLimitError(
                f"Execution step limit exceeded (max_steps={self.max_steps})", node.line
            )
        if self._deadline is not None and self._clock() > self._deadline:
            raise ExecutionLimitError(
                f"Execution time limit exceeded (time_limit_ms={self.time_limit_ms:g})", node.line
            )


def interpret(program: Program, context: Context, bridge: Optional[HostBridge] = None, **limits) -> InterpretResult:
    """Run `program` against `context` (mutated in place)."""
    return Interpreter(bridge, **limits).interpret(program, context)


__all__ = ["InterpretResult", "Interpreter", "NO_VALUE", "interpret"]
