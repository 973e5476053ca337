"""
Expression evaluator for the formflow expression language.

Evaluates expression AST nodes against a context: either a plain mapping of
names to values or a resolver that knows how to look up binding paths in a
form snapshot. Evaluation is pure: it performs no I/O. Does NOT use
Python's eval(); only the closed set of AST node types and the whitelisted
functions below are handled.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Mapping, Sequence
from datetime import date
from typing import Any, Protocol, runtime_checkable

from formflow.core.errors import ExpressionError
from formflow.core.ir.expressions import (
    BinaryExpr,
    BinaryOp,
    Expr,
    FieldRef,
    FuncCall,
    IfExpr,
    InExpr,
    ListExpr,
    Literal,
    UnaryExpr,
    UnaryOp,
)


class ExpressionEvalError(ExpressionError):
    """Error during expression evaluation."""


class UnknownReferenceError(ExpressionEvalError):
    """A binding path names an element the configuration does not define."""

    def __init__(self, path: Sequence[str]) -> None:
        self.path = list(path)
        super().__init__(f"Unknown reference: {'.'.join(self.path)}")


class _Absent:
    """Marker for a binding path segment that does not exist. Falsy."""

    __slots__ = ()

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


@runtime_checkable
class PathResolver(Protocol):
    """Looks up binding paths; returns ABSENT for missing segments."""

    def resolve_path(self, path: Sequence[str]) -> Any: ...


Context = Mapping[str, Any] | PathResolver


def evaluate(expr: Expr, context: Context) -> Any:
    """Evaluate an expression against a context.

    Args:
        expr: Parsed expression AST.
        context: Mapping of name -> value (nested mappings for paths), or a
            PathResolver.

    Returns:
        The computed value. Missing paths evaluate to None.

    Raises:
        ExpressionEvalError: If evaluation fails for any reason.
    """
    try:
        return _interpret(expr, context)
    except ExpressionEvalError:
        raise
    except (TypeError, ValueError, OverflowError, ArithmeticError, re.error) as e:
        raise ExpressionEvalError(f"{type(e).__name__}: {e} in {expr}") from e


def evaluate_bool(expr: Expr, context: Context) -> bool:
    """Evaluate and coerce to bool; missing values are falsy."""
    return bool(evaluate(expr, context))


def _interpret_field_ref(expr: FieldRef, ctx: Context) -> Any:
    if isinstance(ctx, Mapping):
        value = walk_path(ctx, expr.path)
    else:
        value = ctx.resolve_path(expr.path)
    return None if value is ABSENT else value


def walk_path(root: Any, path: Sequence[str]) -> Any:
    """Traverse mappings and sequences; ABSENT when a segment is missing."""
    current: Any = root
    for segment in path:
        if isinstance(current, Mapping):
            if segment not in current:
                return ABSENT
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, str):
            if not segment.isdigit() or int(segment) >= len(current):
                return ABSENT
            current = current[int(segment)]
        else:
            return ABSENT
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    """Compare numeric text against numbers numerically."""
    if _is_number(left) and isinstance(right, str):
        return left, float(right)
    if isinstance(left, str) and _is_number(right):
        return float(left), right
    return left, right


def _add(left: Any, right: Any) -> Any:
    if isinstance(left, str) or isinstance(right, str):
        return f"{left}{right}"
    return left + right


def _checked(fn: Callable[[Any, Any], Any], what: str) -> Callable[[Any, Any], Any]:
    def apply(left: Any, right: Any) -> Any:
        if right == 0:
            raise ExpressionEvalError(f"{what} by zero")
        return fn(left, right)

    return apply


def _ordered(fn: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def apply(left: Any, right: Any) -> bool:
        return fn(*_coerce_pair(left, right))

    return apply


def _equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is right
    try:
        left, right = _coerce_pair(left, right)
    except ValueError:
        return False
    return bool(left == right)


# Operators applied to two evaluated operands. A null operand yields None,
# or False for the ordering comparisons.
_ARITHMETIC: dict[BinaryOp, Callable[[Any, Any], Any]] = {
    BinaryOp.ADD: _add,
    BinaryOp.SUB: operator.sub,
    BinaryOp.MUL: operator.mul,
    BinaryOp.DIV: _checked(operator.truediv, "Division"),
    BinaryOp.MOD: _checked(operator.mod, "Modulo"),
}

_ORDERING: dict[BinaryOp, Callable[[Any, Any], bool]] = {
    BinaryOp.LT: _ordered(operator.lt),
    BinaryOp.GT: _ordered(operator.gt),
    BinaryOp.LE: _ordered(operator.le),
    BinaryOp.GE: _ordered(operator.ge),
}


def _interpret_binary(expr: BinaryExpr, ctx: Context) -> Any:
    left = _interpret(expr.left, ctx)

    # and/or yield the deciding operand, not a bool
    if expr.op == BinaryOp.AND:
        return _interpret(expr.right, ctx) if left else left
    if expr.op == BinaryOp.OR:
        return left if left else _interpret(expr.right, ctx)

    right = _interpret(expr.right, ctx)
    if expr.op == BinaryOp.EQ:
        return _equals(left, right)
    if expr.op == BinaryOp.NE:
        return not _equals(left, right)

    if expr.op in _ORDERING:
        if left is None or right is None:
            return False
        return _ORDERING[expr.op](left, right)
    if left is None or right is None:
        return None
    return _ARITHMETIC[expr.op](left, right)


def _interpret_unary(expr: UnaryExpr, ctx: Context) -> Any:
    operand = _interpret(expr.operand, ctx)
    if expr.op == UnaryOp.NOT:
        return not operand
    return None if operand is None else -operand


# ---------------------------------------------------------------------------
# Whitelisted functions
# ---------------------------------------------------------------------------


def is_empty_value(value: Any) -> bool:
    """None, blank text and empty collections count as empty."""
    if value is None or value is ABSENT:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return not value
    return False


def _fn_len(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value)
    raise ExpressionEvalError(f"len() requires text or a list, got {type(value).__name__}")


def _text_fn(transform: Callable[[str], str]) -> Callable[[Any], str | None]:
    def apply(value: Any) -> str | None:
        if value is None:
            return None
        return transform(str(value))

    return apply


def _fn_contains(haystack: Any, needle: Any) -> bool:
    if haystack is None:
        return False
    if isinstance(haystack, str):
        return str(needle) in haystack
    if isinstance(haystack, (list, tuple, set, dict)):
        return needle in haystack
    raise ExpressionEvalError(
        f"contains() requires text or a list, got {type(haystack).__name__}"
    )


def _fn_starts_with(value: Any, prefix: Any) -> bool:
    return value is not None and str(value).startswith(str(prefix))


def _fn_ends_with(value: Any, suffix: Any) -> bool:
    return value is not None and str(value).endswith(str(suffix))


def _fn_matches(value: Any, pattern: Any) -> bool:
    if value is None:
        return False
    return re.fullmatch(str(pattern), str(value)) is not None


def _fn_number(value: Any) -> int | float | None:
    if value is None or _is_number(value):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        try:
            return float(text)
        except ValueError:
            raise ExpressionEvalError(f"number() cannot convert {value!r}") from None


def _fn_concat(*parts: Any) -> str:
    return "".join(str(p) for p in parts if p is not None)


def _fn_min(*values: Any) -> Any:
    present = [v for v in values if v is not None]
    return min(present) if present else None


def _fn_max(*values: Any) -> Any:
    present = [v for v in values if v is not None]
    return max(present) if present else None


def _fn_abs(value: Any) -> Any:
    return None if value is None else abs(value)


def _fn_round(value: Any, ndigits: Any = 0) -> Any:
    if value is None:
        return None
    return round(value, int(ndigits))


def _fn_coalesce(*values: Any) -> Any:
    return next((v for v in values if v is not None), None)


# name -> (min args, max args or None for variadic, implementation)
FUNCTIONS: dict[str, tuple[int, int | None, Callable[..., Any]]] = {
    "len": (1, 1, _fn_len),
    "lower": (1, 1, _text_fn(str.lower)),
    "upper": (1, 1, _text_fn(str.upper)),
    "trim": (1, 1, _text_fn(str.strip)),
    "contains": (2, 2, _fn_contains),
    "starts_with": (2, 2, _fn_starts_with),
    "ends_with": (2, 2, _fn_ends_with),
    "matches": (2, 2, _fn_matches),
    "exists": (1, 1, lambda value: value is not None),
    "is_empty": (1, 1, is_empty_value),
    "number": (1, 1, _fn_number),
    "concat": (0, None, _fn_concat),
    "min": (1, None, _fn_min),
    "max": (1, None, _fn_max),
    "abs": (1, 1, _fn_abs),
    "round": (1, 2, _fn_round),
    "coalesce": (1, None, _fn_coalesce),
    "today": (0, 0, date.today),
}


def _arity_error(name: str, min_args: int, max_args: int | None, count: int) -> str:
    if max_args is None:
        expected = f"at least {min_args}"
    elif min_args == max_args:
        expected = f"exactly {min_args}"
    else:
        expected = f"{min_args}-{max_args}"
    return f"{name}() takes {expected} argument(s), got {count}"


def _interpret_func_call(expr: FuncCall, ctx: Context) -> Any:
    try:
        min_args, max_args, impl = FUNCTIONS[expr.name]
    except KeyError:
        raise ExpressionEvalError(f"Unknown function: {expr.name}()") from None

    count = len(expr.args)
    if count < min_args or (max_args is not None and count > max_args):
        raise ExpressionEvalError(_arity_error(expr.name, min_args, max_args, count))
    return impl(*(_interpret(arg, ctx) for arg in expr.args))


def _interpret_in(expr: InExpr, ctx: Context) -> bool:
    needle = _interpret(expr.value, ctx)
    found = any(needle == _interpret(item, ctx) for item in expr.items)
    return found != expr.negated


def _interpret_if(expr: IfExpr, ctx: Context) -> Any:
    for condition, value in expr.branches():
        if _interpret(condition, ctx):
            return _interpret(value, ctx)
    return _interpret(expr.else_expr, ctx)


_HANDLERS: dict[type, Callable[[Any, Context], Any]] = {
    Literal: lambda expr, ctx: expr.value,
    FieldRef: _interpret_field_ref,
    BinaryExpr: _interpret_binary,
    UnaryExpr: _interpret_unary,
    FuncCall: _interpret_func_call,
    ListExpr: lambda expr, ctx: [_interpret(item, ctx) for item in expr.items],
    InExpr: _interpret_in,
    IfExpr: _interpret_if,
}


def _interpret(expr: Expr, ctx: Context) -> Any:
    handler = _HANDLERS.get(type(expr))
    if handler is None:
        raise ExpressionEvalError(f"Cannot evaluate {type(expr).__name__} node")
    return handler(expr, ctx)
