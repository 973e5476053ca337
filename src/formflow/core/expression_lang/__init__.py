"""
formflow expression language.

Tokenizer, recursive-descent parser and sandboxed evaluator for the
expressions used by visibility, enablement, conditional-required and
cross-field rules.
"""

from .evaluator import (
    ABSENT,
    FUNCTIONS,
    ExpressionEvalError,
    PathResolver,
    UnknownReferenceError,
    evaluate,
    evaluate_bool,
    is_empty_value,
    walk_path,
)
from .parser import ExpressionParseError, compile_expr, parse_expr
from .references import iter_field_refs, referenced_elements, referenced_roots
from .tokenizer import ExpressionTokenError, Token, TokenKind, tokenize

__all__ = [
    # Tokenizer
    "Token",
    "TokenKind",
    "ExpressionTokenError",
    "tokenize",
    # Parser
    "ExpressionParseError",
    "parse_expr",
    "compile_expr",
    # Evaluator
    "ABSENT",
    "FUNCTIONS",
    "ExpressionEvalError",
    "PathResolver",
    "UnknownReferenceError",
    "evaluate",
    "evaluate_bool",
    "is_empty_value",
    "walk_path",
    # Analysis
    "iter_field_refs",
    "referenced_elements",
    "referenced_roots",
]
