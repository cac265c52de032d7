"""
Tests for the warden expression pipeline: normalizer, lexer, parser,
evaluator and serializer.
"""

from __future__ import annotations

import logging

import pytest

from warden import expression
from warden.config import EngineConfig
from warden.expression import And, ExpressionSyntaxError, Literal, Or, PatternLeaf


def _parse(text: str, **kwargs) -> expression.Node:
    return expression.compile_expression(text, **kwargs)


def _types(text: str) -> list[str]:
    return [tok.type for tok in expression.tokenize(text)]


# ==========================================================================
# Normalizer
# ==========================================================================

class TestNormalize:
    """Operator canonicalization."""

    def test_single_pipe(self):
        assert expression.normalize("a | b") == "a || b"

    def test_single_amp(self):
        assert expression.normalize("a&b") == "a&&b"

    def test_double_left_alone(self):
        assert expression.normalize("a || b && c") == "a || b && c"

    def test_mixed(self):
        assert expression.normalize("a|b&&c&d||e") == "a||b&&c&&d||e"

    def test_whitespace_preserved(self):
        assert expression.normalize("  a  |\tb ") == "  a  ||\tb "

    def test_triple_collapses(self):
        assert expression.normalize("a ||| b") == "a || b"
        assert expression.normalize("a &&& b") == "a && b"

    def test_long_run_collapses(self):
        assert expression.normalize("a |||| b") == "a || b"

    def test_runs_kept_without_collapse(self):
        assert expression.normalize("a ||| b", collapse_runs=False) == "a ||| b"

    def test_collapse_logged_at_debug(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="warden.expression"):
            expression.normalize("a ||| b")
        assert "Collapsed operator run" in caplog.text

    def test_collapse_log_can_be_silenced(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="warden.expression"):
            assert expression.normalize("a ||| b", log_collapse=False) == "a || b"
            expression.compile_expression("a &&& b", quiet=True)
        assert caplog.records == []

    def test_no_operators(self):
        assert expression.normalize("user-profile.edit") == "user-profile.edit"


# ==========================================================================
# Lexer
# ==========================================================================

class TestTokenize:
    """Token stream production."""

    def test_simple_expression(self):
        assert _types("(a || b) && c") == [
            "LPAREN", "PATTERN", "OR", "PATTERN", "RPAREN", "AND", "PATTERN", "EOF",
        ]

    def test_no_spaces(self):
        assert _types("a||b&&c") == ["PATTERN", "OR", "PATTERN", "AND", "PATTERN", "EOF"]

    def test_hyphen_is_identifier_char(self):
        tokens = expression.tokenize("user-profile.edit||api-v2-endpoint.read")
        assert [t.value for t in tokens if t.type == "PATTERN"] == [
            "user-profile.edit",
            "api-v2-endpoint.read",
        ]

    def test_wildcards_in_identifier(self):
        tokens = expression.tokenize("user?.* && *")
        assert [t.value for t in tokens if t.type == "PATTERN"] == ["user?.*", "*"]

    def test_literals_tagged(self):
        tokens = expression.tokenize("true && false || truex")
        assert [(t.type, t.value) for t in tokens[:-1]] == [
            ("LITERAL", "true"),
            ("AND", "&&"),
            ("LITERAL", "false"),
            ("OR", "||"),
            ("PATTERN", "truex"),
        ]

    def test_literals_case_sensitive(self):
        assert expression.tokenize("True")[0].type == "PATTERN"

    def test_positions(self):
        tokens = expression.tokenize("ab && cd")
        assert [t.position for t in tokens] == [0, 3, 6, 8]

    def test_unrecognized_character_halts(self):
        tokens = expression.tokenize("a && b $ c")
        assert [t.type for t in tokens] == ["PATTERN", "AND", "PATTERN", "INVALID", "EOF"]
        assert tokens[3].value == "$ c"
        assert tokens[3].position == 7

    def test_lone_pipe_is_invalid(self):
        assert _types("a | b") == ["PATTERN", "INVALID", "EOF"]

    def test_empty(self):
        assert _types("") == ["EOF"]
        assert _types("   ") == ["EOF"]


# ==========================================================================
# Parser
# ==========================================================================

class TestParse:
    """AST construction and precedence."""

    def test_single_pattern(self):
        assert _parse("users.create") == PatternLeaf("users.create")

    def test_literal(self):
        assert _parse("true") == Literal(True)
        assert _parse(" false ") == Literal(False)

    def test_and_binds_tighter_than_or(self):
        assert _parse("a && b || c") == Or(And(PatternLeaf("a"), PatternLeaf("b")), PatternLeaf("c"))
        assert _parse("a || b && c") == Or(PatternLeaf("a"), And(PatternLeaf("b"), PatternLeaf("c")))

    def test_left_associative(self):
        assert _parse("a || b || c") == Or(Or(PatternLeaf("a"), PatternLeaf("b")), PatternLeaf("c"))
        assert _parse("a && b && c") == And(And(PatternLeaf("a"), PatternLeaf("b")), PatternLeaf("c"))

    def test_parentheses_override(self):
        assert _parse("(a || b) && c") == And(Or(PatternLeaf("a"), PatternLeaf("b")), PatternLeaf("c"))

    def test_single_operators_accepted(self):
        assert _parse("a | b & c") == _parse("a || b && c")

    def test_three_levels_of_nesting(self):
        node = _parse("(((a || b) && c) || d) && e")
        assert node == And(
            Or(And(Or(PatternLeaf("a"), PatternLeaf("b")), PatternLeaf("c")), PatternLeaf("d")),
            PatternLeaf("e"),
        )

    def test_ast_is_immutable(self):
        node = _parse("a")
        with pytest.raises(AttributeError):
            node.pattern = "b"  # type: ignore[misc]

    @pytest.mark.parametrize(
        "text",
        [
            "a &&",
            "|| a",
            "a ||",
            "&& a",
            "(",
            ")",
            "()",
            "(a || b",
            "a || b)",
            "a b",
            "a (b)",
            "",
            "   ",
            "a && && b",
            "a && b $",
            "!a",
        ],
    )
    def test_malformed(self, text):
        with pytest.raises(ExpressionSyntaxError):
            _parse(text)

    def test_error_carries_position(self):
        with pytest.raises(ExpressionSyntaxError) as excinfo:
            _parse("a && ")
        assert excinfo.value.position == 5
        assert "end of input" in str(excinfo.value)
        assert "position 5" in str(excinfo.value)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            _parse("(")

    def test_operator_runs_collapse_by_default(self):
        assert _parse("a |||| b") == Or(PatternLeaf("a"), PatternLeaf("b"))

    def test_operator_runs_rejected_when_strict(self):
        strict = EngineConfig(collapse_operator_runs=False)
        with pytest.raises(ExpressionSyntaxError):
            _parse("a ||| b", config=strict)
        with pytest.raises(ExpressionSyntaxError):
            _parse("a |||| b", config=strict)
        assert _parse("a | b", config=strict) == Or(PatternLeaf("a"), PatternLeaf("b"))

    def test_nesting_limit(self):
        config = EngineConfig(max_nesting_depth=3)
        assert _parse("(((a)))", config=config) == PatternLeaf("a")
        with pytest.raises(ExpressionSyntaxError, match="nested deeper"):
            _parse("((((a))))", config=config)

    def test_deep_nesting_rejected_by_default(self):
        text = "(" * 5000 + "a" + ")" * 5000
        with pytest.raises(ExpressionSyntaxError):
            _parse(text)

    def test_length_limit(self):
        config = EngineConfig(max_expression_length=10)
        with pytest.raises(ExpressionSyntaxError, match="limit is 10"):
            _parse("a || b || c || d", config=config)

    def test_no_length_limit_by_default(self):
        text = " || ".join(f"perm{i}.view" for i in range(400))
        assert len(text) > 4096
        node = _parse(text)
        assert len(expression.leaves(node)) == 400

    def test_non_str_raises_type_error(self):
        with pytest.raises(TypeError):
            expression.compile_expression(None)  # type: ignore[arg-type]


# ==========================================================================
# Evaluator
# ==========================================================================

class TestEvaluate:
    """Evaluation against granted permissions."""

    def test_literal(self):
        assert expression.evaluate(Literal(True), []) is True
        assert expression.evaluate(Literal(False), ["x"]) is False

    def test_pattern_leaf(self):
        assert expression.evaluate(PatternLeaf("users.*"), ["users.create"]) is True
        assert expression.evaluate(PatternLeaf("users.*"), ["posts.view"]) is False

    def test_precedence(self):
        assert expression.evaluate(_parse("a && b || c"), ["a", "c"]) is True
        assert expression.evaluate(_parse("a && (b || c)"), ["c"]) is False

    def test_and_short_circuits(self, monkeypatch):
        seen: list[str] = []
        original = expression.patterns.matches

        def spy(pattern, granted):
            seen.append(pattern)
            return original(pattern, granted)

        monkeypatch.setattr(expression.patterns, "matches", spy)
        assert expression.evaluate(_parse("missing && present"), ["present"]) is False
        assert seen == ["missing"]

    def test_or_short_circuits(self, monkeypatch):
        seen: list[str] = []
        original = expression.patterns.matches

        def spy(pattern, granted):
            seen.append(pattern)
            return original(pattern, granted)

        monkeypatch.setattr(expression.patterns, "matches", spy)
        assert expression.evaluate(_parse("present || missing || other"), ["present"]) is True
        assert seen == ["present"]

    def test_long_chain_does_not_recurse(self):
        text = " || ".join(f"p{i}" for i in range(3000))
        node = _parse(text)
        assert expression.evaluate(node, ["p2999"]) is True
        assert expression.evaluate(node, ["nope"]) is False

    def test_unknown_node(self):
        with pytest.raises(TypeError):
            expression.evaluate("a", [])  # type: ignore[arg-type]

    def test_leaves(self):
        assert expression.leaves(_parse("(a || true) && b.*")) == ["a", "b.*"]


# ==========================================================================
# Serializer
# ==========================================================================

class TestSerialize:
    """Canonical text form of an AST."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("a|b", "a || b"),
            ("a&&b||c", "a && b || c"),
            ("(a||b)&&c", "(a || b) && c"),
            ("a || (b || c)", "a || (b || c)"),
            ("(a || b) || c", "a || b || c"),
            ("true&false", "true && false"),
            ("((user-profile.*))", "user-profile.*"),
        ],
    )
    def test_serialize(self, text, expected):
        assert expression.serialize(_parse(text)) == expected

    @pytest.mark.parametrize(
        "text",
        [
            "(((a || b) && c) || d) && e",
            "a && (b || (c && (d || e)))",
            "x.* || y? && (z || true)",
        ],
    )
    def test_reparse_gives_same_tree(self, text):
        node = _parse(text)
        assert _parse(expression.serialize(node)) == node
