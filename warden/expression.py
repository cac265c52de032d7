"""
Warden permission expression parser and evaluator.

Provides the complete pipeline for boolean permission expressions such as
``(admin.* || moderator.*) && active.user``: operator normalization,
lexing, recursive-descent parsing into an immutable AST, evaluation
against a granted permission list, and serialization back to text.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional, Union

from . import patterns
from .config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    """A boolean literal leaf (``true`` or ``false``)."""
    value: bool


@dataclass(frozen=True)
class PatternLeaf:
    """A leaf testing one exact or glob permission pattern."""
    pattern: str


@dataclass(frozen=True)
class And:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Or:
    left: "Node"
    right: "Node"


Node = Union[Literal, PatternLeaf, And, Or]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ExpressionSyntaxError(ValueError):
    """Raised when permission expression text is malformed."""

    def __init__(self, message: str, position: int = 0, expression: str = ""):
        self.message = message
        self.position = position
        self.expression = expression
        super().__init__(
            f"Permission expression syntax error at position {position}: {message}"
        )


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

_LONE_PIPE = re.compile(r"(?<!\|)\|(?!\|)")
_LONE_AMP = re.compile(r"(?<!&)&(?!&)")
_PIPE_RUN = re.compile(r"\|{3,}")
_AMP_RUN = re.compile(r"&{3,}")


def normalize(raw: str, collapse_runs: bool = True, log_collapse: bool = True) -> str:
    """Canonicalize single-character operators to their doubled form.

    ``a | b`` becomes ``a || b`` and ``a&b`` becomes ``a&&b``; operators that
    are already doubled are left alone. With collapse_runs, any run of three
    or more identical operator characters becomes the doubled operator.
    Whitespace is preserved. A collapse is logged at DEBUG unless
    log_collapse is False.
    """
    text = _LONE_PIPE.sub("||", raw)
    text = _LONE_AMP.sub("&&", text)
    if collapse_runs:
        collapsed = _PIPE_RUN.sub("||", text)
        collapsed = _AMP_RUN.sub("&&", collapsed)
        if log_collapse and collapsed != text:
            logger.debug("Collapsed operator run in expression %r", raw)
        text = collapsed
    return text


# ---------------------------------------------------------------------------
# Token types
# ---------------------------------------------------------------------------

@dataclass
class Token:
    type: str
    value: str
    position: int


# Identifier text that is a boolean literal rather than a pattern.
LITERALS: dict[str, bool] = {
    "true": True,
    "false": False,
}

IDENT_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyz"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "0123456789"
    "_.-*?"
)


# ---------------------------------------------------------------------------
# Lexer
# ---------------------------------------------------------------------------

def tokenize(source: str) -> list[Token]:
    """Tokenize normalized expression text into a flat token list.

    Never raises. Scanning stops at the first character that belongs to no
    token class; the rest of the input is emitted as a single INVALID token
    so the parser always rejects it. The list always ends with EOF.
    """
    tokens: list[Token] = []
    pos = 0
    length = len(source)

    while pos < length:
        ch = source[pos]

        if ch.isspace():
            pos += 1
            continue

        if ch == "(":
            tokens.append(Token("LPAREN", ch, pos))
            pos += 1
            continue
        if ch == ")":
            tokens.append(Token("RPAREN", ch, pos))
            pos += 1
            continue

        if source.startswith("||", pos):
            tokens.append(Token("OR", "||", pos))
            pos += 2
            continue
        if source.startswith("&&", pos):
            tokens.append(Token("AND", "&&", pos))
            pos += 2
            continue

        if ch in IDENT_CHARS:
            start = pos
            while pos < length and source[pos] in IDENT_CHARS:
                pos += 1
            ident = source[start:pos]
            token_type = "LITERAL" if ident in LITERALS else "PATTERN"
            tokens.append(Token(token_type, ident, start))
            continue

        tokens.append(Token("INVALID", source[pos:], pos))
        pos = length
        break

    tokens.append(Token("EOF", "", pos))
    return tokens


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class _Parser:
    """Recursive descent parser for permission expression tokens."""

    def __init__(self, tokens: list[Token], max_depth: int, source: str = ""):
        self._tokens = tokens
        self._pos = 0
        self._depth = 0
        self._max_depth = max_depth
        self._source = source

    def parse(self) -> Node:
        node = self._parse_or_expr()
        if not self._is_at_end():
            tok = self._current()
            raise self._error(f"Unexpected {self._describe(tok)} after complete expression", tok)
        return node

    def _parse_or_expr(self) -> Node:
        left = self._parse_and_expr()

        while self._check("OR"):
            self._advance()
            right = self._parse_and_expr()
            left = Or(left, right)

        return left

    def _parse_and_expr(self) -> Node:
        left = self._parse_atom()

        while self._check("AND"):
            self._advance()
            right = self._parse_atom()
            left = And(left, right)

        return left

    def _parse_atom(self) -> Node:
        tok = self._current()

        if tok.type == "LPAREN":
            self._depth += 1
            if self._depth > self._max_depth:
                raise self._error(
                    f"Parentheses nested deeper than {self._max_depth} levels", tok
                )
            self._advance()
            node = self._parse_or_expr()
            self._expect("RPAREN", "Expected ')' to close group")
            self._depth -= 1
            return node

        if tok.type == "LITERAL":
            self._advance()
            return Literal(LITERALS[tok.value])

        if tok.type == "PATTERN":
            self._advance()
            return PatternLeaf(tok.value)

        raise self._error(f"Expected permission or '(', but got {self._describe(tok)}", tok)

    # -- Utility methods --

    def _current(self) -> Token:
        if self._pos >= len(self._tokens):
            return Token("EOF", "", len(self._source))
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        tok = self._current()
        if self._pos < len(self._tokens):
            self._pos += 1
        return tok

    def _check(self, token_type: str) -> bool:
        return self._current().type == token_type

    def _expect(self, token_type: str, message: str) -> Token:
        tok = self._current()
        if tok.type != token_type:
            raise self._error(f"{message}, but got {self._describe(tok)}", tok)
        return self._advance()

    def _is_at_end(self) -> bool:
        return self._current().type == "EOF"

    @staticmethod
    def _describe(tok: Token) -> str:
        if tok.type == "EOF":
            return "end of input"
        if tok.type == "INVALID":
            return f"unrecognized character {tok.value[0]!r}"
        return f"'{tok.value}' ({tok.type})"

    def _error(self, message: str, tok: Token) -> ExpressionSyntaxError:
        return ExpressionSyntaxError(message, tok.position, self._source)


MAX_NESTING_DEPTH = DEFAULT_CONFIG.max_nesting_depth


def parse(
    tokens: list[Token],
    max_depth: int = MAX_NESTING_DEPTH,
    source: str = "",
) -> Node:
    """Parse a token list into an expression AST.

    Grammar (OR binds loosest, both operators left-associative)::

        expr    := orExpr
        orExpr  := andExpr ( '||' andExpr )*
        andExpr := atom ( '&&' atom )*
        atom    := '(' expr ')' | IDENT

    Args:
        tokens: Output of tokenize().
        max_depth: Maximum parenthesis nesting depth.
        source: The normalized text, used only in error reports.

    Returns:
        The root AST node.

    Raises:
        ExpressionSyntaxError: On any malformed input. The parser never
            recovers silently.
    """
    return _Parser(tokens, max_depth, source).parse()


def compile_expression(
    source: str, config: Optional[EngineConfig] = None, *, quiet: bool = False
) -> Node:
    """Normalize, tokenize and parse raw expression text.

    With quiet, nothing is logged while compiling.

    Raises:
        ExpressionSyntaxError: When the text is malformed or exceeds a
            configured length limit.
        TypeError: When source is not a str.
    """
    if not isinstance(source, str):
        raise TypeError(f"expression must be a str, got {type(source).__name__}")
    cfg = config or DEFAULT_CONFIG

    limit = cfg.max_expression_length
    if limit is not None and len(source) > limit:
        raise ExpressionSyntaxError(
            f"Expression is {len(source)} characters long, "
            f"limit is {limit}",
            limit,
            source,
        )

    normalized = normalize(
        source, collapse_runs=cfg.collapse_operator_runs, log_collapse=not quiet
    )
    tokens = tokenize(normalized)
    return parse(tokens, max_depth=cfg.max_nesting_depth, source=normalized)


# ---------------------------------------------------------------------------
# Evaluate
# ---------------------------------------------------------------------------

def _operands(node: Union[And, Or]) -> list[Node]:
    """Flatten a left-deep chain of one operator into left-to-right operands."""
    rights: list[Node] = []
    current: Node = node
    while type(current) is type(node):
        rights.append(current.right)  # type: ignore[union-attr]
        current = current.left  # type: ignore[union-attr]
    rights.append(current)
    rights.reverse()
    return rights


def evaluate(node: Node, granted: Sequence[str]) -> bool:
    """Evaluate an expression AST against the granted permissions.

    AND and OR short-circuit left to right: a right operand is never
    evaluated once the left one has decided the result.
    """
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, PatternLeaf):
        return patterns.matches(node.pattern, granted)
    if isinstance(node, And):
        return all(evaluate(operand, granted) for operand in _operands(node))
    if isinstance(node, Or):
        return any(evaluate(operand, granted) for operand in _operands(node))
    raise TypeError(f"Unknown expression node: {node!r}")


def leaves(node: Node) -> list[str]:
    """Return the pattern text of every PatternLeaf, left to right."""
    if isinstance(node, PatternLeaf):
        return [node.pattern]
    if isinstance(node, (And, Or)):
        result: list[str] = []
        for operand in _operands(node):
            result.extend(leaves(operand))
        return result
    return []


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------

def serialize(node: Node) -> str:
    """Serialize an AST back to canonical expression text.

    Uses doubled operators with single spaces and only the parentheses
    needed to preserve structure, so ``parse`` of the output yields an
    equal AST.
    """
    if isinstance(node, Literal):
        return "true" if node.value else "false"
    if isinstance(node, PatternLeaf):
        return node.pattern

    operator = " && " if isinstance(node, And) else " || "
    parts = []
    for index, operand in enumerate(_operands(node)):
        text = serialize(operand)
        # An OR inside an AND needs grouping, and so does any right-nested
        # chain of the same operator (the parser builds left-deep trees).
        if isinstance(operand, Or) and isinstance(node, And):
            text = f"({text})"
        elif index > 0 and type(operand) is type(node):
            text = f"({text})"
        parts.append(text)
    return operator.join(parts)
