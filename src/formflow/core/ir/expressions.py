"""
Expression AST for formflow rules.

Visibility, enablement, conditional-required, cross-field and generic
``expression`` rules share one small language. Parsing lives in
:mod:`formflow.core.expression_lang`; this module only defines the tree.

Nodes are frozen pydantic models, so a parsed expression can be cached and
shared between engines. Every node can list its direct sub-expressions
(``children``) and render itself back to source text (``str(node)``), which
is what load-time warnings and DependencyErrors quote.

Examples of source text::

    age >= 18 and country in ['NZ', 'AU']
    personal.first_name.value is not null
    if total > 100: 'gold' elif total > 10: 'silver' else: 'none'
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BinaryOp(StrEnum):
    """Binary operators; the value is the canonical source spelling."""

    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    EQ = "=="
    NE = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    AND = "and"
    OR = "or"

    @property
    def is_comparison(self) -> bool:
        return self in COMPARISON_OPS

    @property
    def is_logical(self) -> bool:
        return self in (BinaryOp.AND, BinaryOp.OR)


COMPARISON_OPS = frozenset(
    {BinaryOp.EQ, BinaryOp.NE, BinaryOp.LT, BinaryOp.GT, BinaryOp.LE, BinaryOp.GE}
)


class UnaryOp(StrEnum):
    NEG = "-"
    NOT = "not"


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class ExprNode(BaseModel):
    """Common base of every AST node."""

    model_config = ConfigDict(frozen=True)

    def children(self) -> tuple[Expr, ...]:
        """Direct sub-expressions, left to right."""
        return ()


class Literal(ExprNode):
    """Constant: number, string, boolean or null."""

    value: int | float | str | bool | None

    def __str__(self) -> str:
        if self.value is None:
            return "null"
        if isinstance(self.value, bool):
            return str(self.value).lower()
        if isinstance(self.value, str):
            return _quote(self.value)
        return repr(self.value)


class FieldRef(ExprNode):
    """
    Binding path into form state.

    ``path`` holds the dotted segments with any ``$.`` prefix removed.
    Integer segments index into lists (``items.0.price``); a segment naming
    an element attribute (``first_name.visible``) reads derived state.
    """

    path: list[str] = Field(min_length=1)

    @property
    def root(self) -> str:
        return self.path[0]

    def __str__(self) -> str:
        return ".".join(self.path)


class BinaryExpr(ExprNode):
    op: BinaryOp
    left: Expr
    right: Expr

    def children(self) -> tuple[Expr, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"({self.left} {self.op.value} {self.right})"


class UnaryExpr(ExprNode):
    op: UnaryOp
    operand: Expr

    def children(self) -> tuple[Expr, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        if self.op == UnaryOp.NOT:
            return f"not {self.operand}"
        return f"-{self.operand}"


class FuncCall(ExprNode):
    """
    Call of a whitelisted function.

    The parser accepts any name; the evaluator rejects names missing from its
    function table, and the linker warns about them at load time.
    """

    name: str
    args: list[Expr] = Field(default_factory=list)

    def children(self) -> tuple[Expr, ...]:
        return tuple(self.args)

    def __str__(self) -> str:
        return f"{self.name}({', '.join(map(str, self.args))})"


class ListExpr(ExprNode):
    items: list[Expr] = Field(default_factory=list)

    def children(self) -> tuple[Expr, ...]:
        return tuple(self.items)

    def __str__(self) -> str:
        return f"[{', '.join(map(str, self.items))}]"


class InExpr(ExprNode):
    """``value in [...]``, or ``value not in [...]`` when ``negated``."""

    value: Expr
    items: list[Expr]
    negated: bool = False

    def children(self) -> tuple[Expr, ...]:
        return (self.value, *self.items)

    def __str__(self) -> str:
        keyword = "not in" if self.negated else "in"
        return f"({self.value} {keyword} [{', '.join(map(str, self.items))}])"


class IfExpr(ExprNode):
    """``if c: a elif c2: b else: d``; the else branch is mandatory."""

    condition: Expr
    then_expr: Expr
    elif_branches: list[tuple[Expr, Expr]] = Field(default_factory=list)
    else_expr: Expr

    def branches(self) -> list[tuple[Expr, Expr]]:
        """(condition, value) pairs in evaluation order, excluding ``else``."""
        return [(self.condition, self.then_expr), *self.elif_branches]

    def children(self) -> tuple[Expr, ...]:
        flat: list[Any] = [part for branch in self.branches() for part in branch]
        return (*flat, self.else_expr)

    def __str__(self) -> str:
        head, *rest = self.branches()
        text = f"if {head[0]}: {head[1]}"
        for condition, value in rest:
            text += f" elif {condition}: {value}"
        return f"{text} else: {self.else_expr}"


Expr = Literal | FieldRef | BinaryExpr | UnaryExpr | FuncCall | ListExpr | InExpr | IfExpr

for _model in (BinaryExpr, UnaryExpr, FuncCall, ListExpr, InExpr, IfExpr):
    _model.model_rebuild()
