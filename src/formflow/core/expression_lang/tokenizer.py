"""
Tokenizer for the formflow expression language.

A single compiled pattern scans the source left to right. Keywords and
operators are ``TokenKind`` members whose value is their source spelling, so
``TokenKind("and")`` and ``TokenKind(">=")`` map text straight to a kind.
The ``$.`` root prefix of binding paths is accepted and dropped.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import NamedTuple

from formflow.core.errors import ExpressionError


class TokenKind(StrEnum):
    """Token kinds; keyword and operator members carry their spelling."""

    INT = "<int>"
    FLOAT = "<float>"
    STRING = "<string>"
    IDENT = "<ident>"
    EOF = "<eof>"

    TRUE = "true"
    FALSE = "false"
    NULL = "null"
    AND = "and"
    OR = "or"
    NOT = "not"
    IN = "in"
    IS = "is"
    IF = "if"
    ELIF = "elif"
    ELSE = "else"

    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    PERCENT = "%"
    EQ = "=="
    NE = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"
    COMMA = ","
    DOT = "."
    COLON = ":"


KEYWORDS = frozenset(
    {
        TokenKind.TRUE,
        TokenKind.FALSE,
        TokenKind.NULL,
        TokenKind.AND,
        TokenKind.OR,
        TokenKind.NOT,
        TokenKind.IN,
        TokenKind.IS,
        TokenKind.IF,
        TokenKind.ELIF,
        TokenKind.ELSE,
    }
)

# Symbolic spellings of logical operators
_ALIASES = {"&&": TokenKind.AND, "||": TokenKind.OR, "!": TokenKind.NOT}


class Token(NamedTuple):
    kind: TokenKind
    value: str
    pos: int


class ExpressionTokenError(ExpressionError):
    """Error during expression tokenization."""


_TOKEN_RE = re.compile(
    r"""
      (?P<space>\s+)
    | (?P<root>\$\.)
    | (?P<number>\d+(?:\.\d+)?)
    | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    | (?P<symbol>==|!=|<=|>=|&&|\|\||[-+*/%<>!()\[\],.:])
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)


def tokenize(source: str) -> list[Token]:
    """Split ``source`` into tokens, ending with an EOF token."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise _scan_error(source, pos)

        group, text = match.lastgroup, match.group()
        end = match.end()

        if group == "number":
            # after a dot the number is a list index: "items.0.5" is items[0][5]
            if "." in text and tokens and tokens[-1].kind == TokenKind.DOT:
                text = text.partition(".")[0]
                end = pos + len(text)
            kind = TokenKind.FLOAT if "." in text else TokenKind.INT
            tokens.append(Token(kind, text, pos))
        elif group == "word":
            kind = TokenKind(text) if text in KEYWORDS else TokenKind.IDENT
            tokens.append(Token(kind, text, pos))
        elif group == "string":
            tokens.append(Token(TokenKind.STRING, _ESCAPE_RE.sub(r"\1", text[1:-1]), pos))
        elif group == "symbol":
            tokens.append(Token(_ALIASES.get(text) or TokenKind(text), text, pos))
        pos = end

    tokens.append(Token(TokenKind.EOF, "", len(source)))
    return tokens


def _scan_error(source: str, pos: int) -> ExpressionTokenError:
    char = source[pos]
    if char == "$":
        return ExpressionTokenError("'$' must be followed by '.'", pos)
    if char in "\"'":
        return ExpressionTokenError("Unterminated string literal", pos)
    return ExpressionTokenError(f"Unexpected character: {char!r}", pos)
