"""
Tests for string arithmetic and conditions.
"""

import pytest

from strand import Context, InvalidSyntaxError, Lexer, String, SymbolError
from strand.strand import ConditionEvaluator, ExpressionEvaluator


def evaluate(code, variables=None, evaluator=ExpressionEvaluator):
    tokens, error = Lexer("<test>", code).make_tokens()
    assert error is None, error
    context = Context("<test>")
    for name, value in (variables or {}).items():
        context.symbol_table.declare(name, String(value))
    # exclude the trailing EOF token
    return evaluator(tokens, 0, len(tokens) - 1, context).evaluate()


def value_of(code, variables=None):
    res = evaluate(code, variables)
    assert res.error is None, res.error
    return res.value.value


def condition(code, variables=None):
    res = evaluate(code, variables, ConditionEvaluator)
    assert res.error is None, res.error
    return res.value


class TestStringOperators:
    def test_concatenation(self):
        assert value_of('"ab" + "cd"') == "abcd"

    def test_remove_first_occurrence(self):
        assert value_of('"abcdef" - "cd"') == "abef"
        assert value_of('"abab" - "ab"') == "ab"

    def test_remove_missing_leaves_left(self):
        assert value_of('"abcdef" - "xy"') == "abcdef"

    def test_truncate_before(self):
        assert value_of('"abcdef" / "cd"') == "ab"

    def test_truncate_before_missing_leaves_left(self):
        assert value_of('"abcdef" / "xy"') == "abcdef"

    def test_truncate_after(self):
        assert value_of('"abcdef" % "cd"') == "ef"

    def test_truncate_after_missing_is_empty(self):
        assert value_of('"abcdef" % "xy"') == ""

    def test_single_quoted_literal(self):
        assert value_of("'a' + \"b\"") == "ab"


class TestPrecedence:
    def test_slash_binds_tighter_than_plus(self):
        # "b" + ("abc" / "b"), not ("b" + "abc") / "b"
        assert value_of('"b" + "abc" / "b"') == "ba"

    def test_percent_binds_tighter_than_minus(self):
        # "abcabc" - ("zabc" % "z")
        assert value_of('"abcabc" - "zabc" % "z"') == "abc"

    def test_left_associative(self):
        # ("abc" - "b") + "b"
        assert value_of('"abc" - "b" + "b"') == "acb"

    def test_parentheses_override(self):
        assert value_of('("b" + "abc") / "b"') == ""

    def test_nested_parentheses(self):
        assert value_of('(("a" + "b") + ("c" + "d")) - "bc"') == "ad"

    def test_identifiers_resolve_through_scope(self):
        assert value_of("greeting + name", {"greeting": "hi ", "name": "bob"}) == "hi bob"


class TestExpressionErrors:
    def test_missing_close_paren(self):
        res = evaluate('("a" + "b"')
        assert isinstance(res.error, InvalidSyntaxError)
        assert "')'" in res.error.details

    def test_bad_operand(self):
        res = evaluate('"a" + ?')
        assert isinstance(res.error, InvalidSyntaxError)

    def test_dangling_operand(self):
        res = evaluate('"a" "b"')
        assert isinstance(res.error, InvalidSyntaxError)

    def test_unknown_identifier(self):
        res = evaluate('"a" + nope')
        assert isinstance(res.error, SymbolError)


class TestConditions:
    @pytest.mark.parametrize("code, expected", [
        ('"abc" ? "b"', True),
        ('"abc" ? "d"', False),
        ('"abc" == "abc"', True),
        ('"abc" != "abd"', True),
        ('"abc" < "abd"', True),
        ('"b" <= "a"', False),
        ('"b" > "a"', True),
        ('"a" >= "a"', True),
    ])
    def test_comparisons(self, code, expected):
        assert condition(code) is expected

    def test_truthiness_without_comparison(self):
        assert condition('"x"') is True
        assert condition('""') is False

    def test_not_inverts(self):
        assert condition('!""') is True
        assert condition('!"abc" ? "b"') is False

    def test_identifiers(self):
        assert condition("word ? part", {"word": "hello", "part": "ell"}) is True

    def test_malformed_operator(self):
        res = evaluate('"a" + "b"', evaluator=ConditionEvaluator)
        assert isinstance(res.error, InvalidSyntaxError)

    def test_non_operand(self):
        res = evaluate('"a" == (', evaluator=ConditionEvaluator)
        assert isinstance(res.error, InvalidSyntaxError)

    def test_trailing_tokens(self):
        res = evaluate('"a" == "a" "b"', evaluator=ConditionEvaluator)
        assert isinstance(res.error, InvalidSyntaxError)
