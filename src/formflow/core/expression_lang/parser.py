"""
Parser for the formflow expression language.

Binary operators are parsed by precedence climbing over ``_BINARY_LEVELS``
(loosest first)::

    1  or  ||
    2  and &&
    3  not !                     (prefix)
    4  == != < > <= >=  in  not in  is [not] null   (at most one per operand)
    5  + -
    6  * / %
    7  -                         (prefix)

On top of that sit the conditional ``if c: a elif c: b else: d`` (only at
the start of an expression or inside parentheses), list literals, function
calls ``name(args)`` and binding paths ``a.b.0``.

``compile_expr`` caches parsed trees by source text; every rule expression
of a configuration is compiled once, at load time.
"""

from __future__ import annotations

from functools import lru_cache

from formflow.core.errors import ExpressionError
from formflow.core.expression_lang.tokenizer import (
    ExpressionTokenError,
    Token,
    TokenKind,
    tokenize,
)
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


class ExpressionParseError(ExpressionError):
    """Error during expression parsing."""


_OR, _AND, _NOT, _COMPARE, _SUM, _PRODUCT = range(1, 7)

_BINARY_LEVELS: dict[TokenKind, tuple[int, BinaryOp]] = {
    TokenKind.OR: (_OR, BinaryOp.OR),
    TokenKind.AND: (_AND, BinaryOp.AND),
    TokenKind.EQ: (_COMPARE, BinaryOp.EQ),
    TokenKind.NE: (_COMPARE, BinaryOp.NE),
    TokenKind.LT: (_COMPARE, BinaryOp.LT),
    TokenKind.GT: (_COMPARE, BinaryOp.GT),
    TokenKind.LE: (_COMPARE, BinaryOp.LE),
    TokenKind.GE: (_COMPARE, BinaryOp.GE),
    TokenKind.PLUS: (_SUM, BinaryOp.ADD),
    TokenKind.MINUS: (_SUM, BinaryOp.SUB),
    TokenKind.STAR: (_PRODUCT, BinaryOp.MUL),
    TokenKind.SLASH: (_PRODUCT, BinaryOp.DIV),
    TokenKind.PERCENT: (_PRODUCT, BinaryOp.MOD),
}

_CONSTANTS: dict[TokenKind, bool | None] = {
    TokenKind.TRUE: True,
    TokenKind.FALSE: False,
    TokenKind.NULL: None,
}


def _describe(token: Token) -> str:
    return "end of expression" if token.kind == TokenKind.EOF else repr(token.value)


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.index = 0

    # -------------------------------------------------------------------------
    # Token cursor
    # -------------------------------------------------------------------------

    @property
    def token(self) -> Token:
        return self.tokens[self.index]

    def lookahead(self) -> Token:
        return self.tokens[min(self.index + 1, len(self.tokens) - 1)]

    def take(self) -> Token:
        token = self.token
        if token.kind != TokenKind.EOF:
            self.index += 1
        return token

    def accept(self, *kinds: TokenKind) -> Token | None:
        return self.take() if self.token.kind in kinds else None

    def require(self, kind: TokenKind, context: str) -> Token:
        if self.token.kind != kind:
            raise ExpressionParseError(
                f"Expected '{kind.value}' {context}, found {_describe(self.token)}",
                self.token.pos,
            )
        return self.take()

    def fail(self, message: str) -> ExpressionParseError:
        return ExpressionParseError(message, self.token.pos)

    # -------------------------------------------------------------------------
    # Grammar
    # -------------------------------------------------------------------------

    def expression(self) -> Expr:
        if self.token.kind == TokenKind.IF:
            return self.conditional()
        return self.binary(_OR)

    def conditional(self) -> IfExpr:
        branches: list[tuple[Expr, Expr]] = []
        keyword = self.take()
        while keyword is not None:
            condition = self.binary(_OR)
            self.require(TokenKind.COLON, f"after '{keyword.value}' condition")
            branches.append((condition, self.binary(_OR)))
            keyword = self.accept(TokenKind.ELIF)
        self.require(TokenKind.ELSE, "to close the conditional")
        self.require(TokenKind.COLON, "after 'else'")
        (condition, then_expr), *elif_branches = branches
        return IfExpr(
            condition=condition,
            then_expr=then_expr,
            elif_branches=elif_branches,
            else_expr=self.binary(_OR),
        )

    def binary(self, min_level: int) -> Expr:
        """Parse operators binding at least as tightly as ``min_level``."""
        left = self.prefix(min_level)
        compared = False
        while True:
            kind = self.token.kind
            if self._starts_comparison():
                if min_level > _COMPARE or compared:
                    return left
                left = self.comparison(left)
                compared = True
                continue
            if kind not in _BINARY_LEVELS:
                return left
            level, op = _BINARY_LEVELS[kind]
            if level < min_level:
                return left
            self.take()
            left = BinaryExpr(op=op, left=left, right=self.binary(level + 1))

    def _starts_comparison(self) -> bool:
        kind = self.token.kind
        if kind in (TokenKind.IN, TokenKind.IS):
            return True
        if kind == TokenKind.NOT:
            return self.lookahead().kind == TokenKind.IN
        return kind in _BINARY_LEVELS and _BINARY_LEVELS[kind][0] == _COMPARE

    def comparison(self, left: Expr) -> Expr:
        if self.accept(TokenKind.IS):
            negated = self.accept(TokenKind.NOT) is not None
            self.require(TokenKind.NULL, "after 'is'")
            op = BinaryOp.NE if negated else BinaryOp.EQ
            return BinaryExpr(op=op, left=left, right=Literal(value=None))

        negated = self.accept(TokenKind.NOT) is not None
        if self.accept(TokenKind.IN):
            return InExpr(value=left, items=self.list_items(), negated=negated)

        _, op = _BINARY_LEVELS[self.take().kind]
        return BinaryExpr(op=op, left=left, right=self.binary(_COMPARE + 1))

    def prefix(self, min_level: int) -> Expr:
        if min_level <= _NOT and self.accept(TokenKind.NOT):
            return UnaryExpr(op=UnaryOp.NOT, operand=self.binary(_NOT))
        return self.signed()

    def signed(self) -> Expr:
        if self.accept(TokenKind.MINUS):
            return UnaryExpr(op=UnaryOp.NEG, operand=self.signed())
        return self.primary()

    def primary(self) -> Expr:
        token = self.token
        kind = token.kind

        if kind in _CONSTANTS:
            self.take()
            return Literal(value=_CONSTANTS[kind])
        if kind == TokenKind.INT:
            self.take()
            return Literal(value=int(token.value))
        if kind == TokenKind.FLOAT:
            self.take()
            return Literal(value=float(token.value))
        if kind == TokenKind.STRING:
            self.take()
            return Literal(value=token.value)
        if kind == TokenKind.LBRACKET:
            return ListExpr(items=self.list_items())
        if kind == TokenKind.LPAREN:
            self.take()
            inner = self.expression()
            self.require(TokenKind.RPAREN, "to close '('")
            return inner
        if kind == TokenKind.IDENT:
            if self.lookahead().kind == TokenKind.LPAREN:
                return self.call()
            return self.path()
        raise self.fail(f"Unexpected {_describe(token)}")

    def call(self) -> FuncCall:
        name = self.take().value
        self.take()  # (
        args = self.separated(TokenKind.RPAREN)
        self.require(TokenKind.RPAREN, f"to close the arguments of {name}()")
        return FuncCall(name=name, args=args)

    def path(self) -> FieldRef:
        segments = [self.take().value]
        while self.accept(TokenKind.DOT):
            segment = self.accept(TokenKind.IDENT, TokenKind.INT)
            if segment is None:
                raise self.fail(f"Expected a path segment after '.', found {_describe(self.token)}")
            segments.append(segment.value)
        return FieldRef(path=segments)

    def list_items(self) -> list[Expr]:
        self.require(TokenKind.LBRACKET, "to open a list")
        items = self.separated(TokenKind.RBRACKET)
        self.require(TokenKind.RBRACKET, "to close the list")
        return items

    def separated(self, closer: TokenKind) -> list[Expr]:
        """Comma-separated expressions up to (not including) ``closer``."""
        if self.token.kind == closer:
            return []
        items = [self.expression()]
        while self.accept(TokenKind.COMMA):
            items.append(self.expression())
        return items


def parse_expr(source: str) -> Expr:
    """Parse an expression string into an AST.

    Args:
        source: Expression string (e.g., "age >= 18 and country == 'NZ'")

    Raises:
        ExpressionParseError: If the expression is invalid, including
            tokenizer errors
    """
    try:
        tokens = tokenize(source)
    except ExpressionTokenError as e:
        raise ExpressionParseError(e.message, e.pos) from e

    parser = _Parser(tokens)
    expr = parser.expression()
    if parser.token.kind != TokenKind.EOF:
        raise parser.fail(f"Unexpected {_describe(parser.token)} after expression")
    return expr


@lru_cache(maxsize=1024)
def compile_expr(source: str) -> Expr:
    """Cached :func:`parse_expr`; trees are frozen and safe to share."""
    return parse_expr(source)
