"""Tests for the formflow expression language.

Covers:
- Tokenizer: token kinds, "$." prefix, path index segments, errors
- Parser: precedence, node types, error handling
- Evaluator: arithmetic, comparison, logic, functions, null handling, sandboxing
- Reference extraction
"""

from __future__ import annotations

from datetime import date

import pytest

from formflow.core.expression_lang import (
    ABSENT,
    ExpressionEvalError,
    ExpressionParseError,
    ExpressionTokenError,
    TokenKind,
    UnknownReferenceError,
    compile_expr,
    evaluate,
    evaluate_bool,
    parse_expr,
    referenced_elements,
    referenced_roots,
    tokenize,
    walk_path,
)
from formflow.core.ir.expressions import (
    BinaryExpr,
    BinaryOp,
    FieldRef,
    FuncCall,
    IfExpr,
    InExpr,
    ListExpr,
    Literal,
    UnaryExpr,
    UnaryOp,
)

# ============================================================================
# Tokenizer tests
# ============================================================================


class TestTokenizer:
    """Tokenizer produces correct token sequences."""

    def test_integer(self) -> None:
        tokens = tokenize("42")
        assert tokens[0].kind == TokenKind.INT
        assert tokens[0].value == "42"

    def test_float(self) -> None:
        tokens = tokenize("3.14")
        assert tokens[0].kind == TokenKind.FLOAT

    def test_strings_with_either_quote(self) -> None:
        assert tokenize('"hello"')[0].value == "hello"
        assert tokenize("'world'")[0].value == "world"

    def test_keywords(self) -> None:
        kinds = [t.kind for t in tokenize("true false null and or not in is")]
        assert kinds[:-1] == [
            TokenKind.TRUE,
            TokenKind.FALSE,
            TokenKind.NULL,
            TokenKind.AND,
            TokenKind.OR,
            TokenKind.NOT,
            TokenKind.IN,
            TokenKind.IS,
        ]

    def test_symbolic_logic_aliases(self) -> None:
        kinds = [t.kind for t in tokenize("a && b || !c")]
        assert kinds == [
            TokenKind.IDENT,
            TokenKind.AND,
            TokenKind.IDENT,
            TokenKind.OR,
            TokenKind.NOT,
            TokenKind.IDENT,
            TokenKind.EOF,
        ]

    def test_root_prefix_dropped(self) -> None:
        tokens = tokenize("$.user.email")
        assert [t.value for t in tokens[:-1]] == ["user", ".", "email"]

    def test_index_segment_after_dot_is_int(self) -> None:
        tokens = tokenize("items.0.price")
        assert tokens[2].kind == TokenKind.INT
        assert tokens[2].value == "0"
        assert tokens[4].value == "price"

    def test_lone_dollar_rejected(self) -> None:
        with pytest.raises(ExpressionTokenError):
            tokenize("$x")

    def test_unexpected_character(self) -> None:
        with pytest.raises(ExpressionTokenError):
            tokenize("a # b")


# ============================================================================
# Parser tests
# ============================================================================


class TestParser:
    def test_precedence_mul_over_add(self) -> None:
        expr = parse_expr("1 + 2 * 3")
        assert isinstance(expr, BinaryExpr)
        assert expr.op == BinaryOp.ADD
        assert isinstance(expr.right, BinaryExpr)
        assert expr.right.op == BinaryOp.MUL

    def test_and_binds_tighter_than_or(self) -> None:
        expr = parse_expr("a or b and c")
        assert isinstance(expr, BinaryExpr)
        assert expr.op == BinaryOp.OR
        assert isinstance(expr.right, BinaryExpr)
        assert expr.right.op == BinaryOp.AND

    def test_path(self) -> None:
        assert parse_expr("personal.first_name.value") == FieldRef(
            path=["personal", "first_name", "value"]
        )

    def test_not(self) -> None:
        expr = parse_expr("!done")
        assert expr == UnaryExpr(op=UnaryOp.NOT, operand=FieldRef(path=["done"]))

    def test_is_null(self) -> None:
        expr = parse_expr("email is not null")
        assert expr == BinaryExpr(
            op=BinaryOp.NE, left=FieldRef(path=["email"]), right=Literal(value=None)
        )

    def test_in_list(self) -> None:
        expr = parse_expr("country not in ['NZ', 'AU']")
        assert isinstance(expr, InExpr)
        assert expr.negated
        assert [i.value for i in expr.items] == ["NZ", "AU"]  # type: ignore[union-attr]

    def test_list_literal(self) -> None:
        expr = parse_expr("[1, 2]")
        assert expr == ListExpr(items=[Literal(value=1), Literal(value=2)])

    def test_function_call(self) -> None:
        expr = parse_expr("len(name) > 2")
        assert isinstance(expr, BinaryExpr)
        assert expr.left == FuncCall(name="len", args=[FieldRef(path=["name"])])

    def test_if_expression(self) -> None:
        expr = parse_expr("if a: 1 elif b: 2 else: 3")
        assert isinstance(expr, IfExpr)
        assert len(expr.elif_branches) == 1

    def test_trailing_tokens_rejected(self) -> None:
        with pytest.raises(ExpressionParseError):
            parse_expr("a b")

    def test_unbalanced_paren(self) -> None:
        with pytest.raises(ExpressionParseError):
            parse_expr("(a == 1")

    def test_tokenizer_error_surfaces_as_parse_error(self) -> None:
        with pytest.raises(ExpressionParseError):
            parse_expr("a ~ b")

    def test_compile_is_cached(self) -> None:
        assert compile_expr("age >= 18") is compile_expr("age >= 18")


# ============================================================================
# Evaluator tests
# ============================================================================


def _eval(source: str, **context: object) -> object:
    return evaluate(parse_expr(source), context)


class TestEvaluator:
    def test_arithmetic(self) -> None:
        assert _eval("2 + 3 * 4") == 14
        assert _eval("10 % 4") == 2
        assert _eval("-x", x=3) == -3

    def test_string_concatenation(self) -> None:
        assert _eval("'a' + 1") == "a1"

    def test_comparisons(self) -> None:
        assert _eval("end >= start", start=10, end=15) is True
        assert _eval("end >= start", start=10, end=5) is False

    def test_numeric_text_compares_numerically(self) -> None:
        assert _eval("age >= 18", age="21") is True
        assert _eval("age == 18", age="18") is True

    def test_null_safe_equality(self) -> None:
        assert _eval("x == null", x=None) is True
        assert _eval("x != 1", x=None) is True

    def test_null_in_ordering_is_false(self) -> None:
        assert _eval("x > 1", x=None) is False
        assert _eval("x < 1", x=None) is False

    def test_null_arithmetic_propagates(self) -> None:
        assert _eval("x + 1", x=None) is None

    def test_short_circuit(self) -> None:
        # right side would divide by zero if evaluated
        assert _eval("false and 1 / 0") is False
        assert _eval("true or 1 / 0") is True

    def test_membership(self) -> None:
        assert _eval("c in ['NZ', 'AU']", c="NZ") is True
        assert _eval("c not in ['NZ', 'AU']", c="US") is True

    def test_if_expression(self) -> None:
        assert _eval("if x > 10: 'big' elif x > 5: 'mid' else: 'small'", x=7) == "mid"

    def test_nested_paths_and_indexes(self) -> None:
        assert _eval("user.address.city", user={"address": {"city": "Paris"}}) == "Paris"
        assert _eval("items.1.price", items=[{"price": 1}, {"price": 2}]) == 2

    def test_missing_path_is_null(self) -> None:
        assert _eval("user.missing", user={}) is None
        assert _eval("items.5", items=[1]) is None

    def test_division_by_zero(self) -> None:
        with pytest.raises(ExpressionEvalError, match="Division by zero"):
            _eval("1 / x", x=0)

    def test_type_mismatch_wrapped(self) -> None:
        with pytest.raises(ExpressionEvalError):
            _eval("a - b", a="x", b=[1])

    def test_overflow_wrapped(self) -> None:
        with pytest.raises(ExpressionEvalError):
            _eval("x / 1.5", x=10**400)

    def test_evaluate_bool(self) -> None:
        assert evaluate_bool(parse_expr("x"), {"x": ""}) is False
        assert evaluate_bool(parse_expr("x"), {"x": "y"}) is True


class TestFunctions:
    def test_text_functions(self) -> None:
        assert _eval("len(s)", s="abc") == 3
        assert _eval("len(s)", s=None) == 0
        assert _eval("upper(s)", s="ab") == "AB"
        assert _eval("lower(s)", s="AB") == "ab"
        assert _eval("trim(s)", s="  x ") == "x"
        assert _eval("contains(s, 'b')", s="abc") is True
        assert _eval("starts_with(s, 'a')", s="abc") is True
        assert _eval("ends_with(s, 'c')", s="abc") is True
        assert _eval("matches(s, '[a-c]+')", s="abc") is True
        assert _eval("concat(a, '-', b)", a="x", b=None) == "x-"

    def test_presence_functions(self) -> None:
        assert _eval("exists(x)", x=0) is True
        assert _eval("exists(x)", x=None) is False
        assert _eval("is_empty(x)", x="   ") is True
        assert _eval("is_empty(x)", x=[]) is True
        assert _eval("is_empty(x)", x="a") is False

    def test_numeric_functions(self) -> None:
        assert _eval("number(x) + 1", x="41") == 42
        assert _eval("number(x)", x="2.5") == 2.5
        assert _eval("min(a, b)", a=3, b=1) == 1
        assert _eval("max(a, b, null)", a=3, b=1) == 3
        assert _eval("abs(x)", x=-4) == 4
        assert _eval("round(x, 1)", x=2.345) == 2.3
        assert _eval("coalesce(a, b, 5)", a=None, b=None) == 5

    def test_today(self) -> None:
        assert _eval("today()") == date.today()

    def test_unknown_function_rejected(self) -> None:
        with pytest.raises(ExpressionEvalError, match="Unknown function"):
            _eval("open('x')")

    def test_arity_checked(self) -> None:
        with pytest.raises(ExpressionEvalError, match="exactly 1"):
            _eval("len(a, b)", a="x", b="y")

    def test_number_rejects_text(self) -> None:
        with pytest.raises(ExpressionEvalError):
            _eval("number(x)", x="abc")

    def test_no_attribute_access_on_host_objects(self) -> None:
        # paths only traverse mappings and sequences
        assert _eval("s.upper", s="abc") is None


class _Resolver:
    def __init__(self, values: dict[str, object]) -> None:
        self.values = values

    def resolve_path(self, path: list[str]) -> object:
        if path[0] not in self.values:
            raise UnknownReferenceError(path)
        return walk_path(self.values, path)


class TestPathResolverContext:
    def test_resolver_is_used(self) -> None:
        assert evaluate(parse_expr("a + 1"), _Resolver({"a": 1})) == 2

    def test_unknown_reference_raises(self) -> None:
        with pytest.raises(UnknownReferenceError) as exc_info:
            evaluate(parse_expr("ghost == 1"), _Resolver({}))
        assert exc_info.value.path == ["ghost"]

    def test_absent_is_falsy(self) -> None:
        assert not ABSENT
        assert walk_path({"a": {}}, ["a", "b"]) is ABSENT


class TestReferences:
    def test_roots(self) -> None:
        expr = parse_expr("if a > 1: len(b.c) else: d in [e, 1]")
        assert referenced_roots(expr) == {"a", "b", "d", "e"}

    def test_section_qualified_reference(self) -> None:
        expr = parse_expr("personal.first_name == 'x' and other.value")
        assert referenced_elements(expr, {"personal", "first_name"}) == {
            "personal",
            "first_name",
        }
