"""Tests for the sandboxed formula evaluator."""

import pytest

from app.services.formula import (
    FormulaError,
    Token,
    evaluate,
    evaluate_formula,
    format_result,
    substitute,
    tokenize,
)


class TestTokenize:
    def test_numbers_and_operators(self):
        assert tokenize("(1.5 + 2)*3") == [
            Token("op", "("),
            Token("num", "1.5"),
            Token("op", "+"),
            Token("num", "2"),
            Token("op", ")"),
            Token("op", "*"),
            Token("num", "3"),
        ]

    def test_exponent_literal(self):
        assert tokenize("1e-07") == [Token("num", "1e-07")]

    def test_leading_dot(self):
        assert tokenize(".5") == [Token("num", ".5")]

    def test_rejects_names(self):
        with pytest.raises(FormulaError, match="Unexpected character 'H'"):
            tokenize("Hb*3")

    def test_rejects_code(self):
        with pytest.raises(FormulaError):
            tokenize("__import__('os')")


class TestEvaluate:
    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("1+2*3", 7),
            ("(1+2)*3", 9),
            ("10/4", 2.5),
            ("10-4-3", 3),
            ("100/10/2", 5),
            ("-5+2", -3),
            ("2*-3", -6),
            ("+4", 4),
            ("5--3", 8),
            ("((2))", 2),
            (" 7 ", 7),
        ],
    )
    def test_arithmetic(self, expression, expected):
        assert evaluate(expression) == pytest.approx(expected)

    @pytest.mark.parametrize("expression", ["", "1+", "(1+2", "1+2)", "*3", "2 3", "()"])
    def test_syntax_errors(self, expression):
        with pytest.raises(FormulaError):
            evaluate(expression)

    def test_division_by_zero(self):
        with pytest.raises(FormulaError, match="Division by zero"):
            evaluate("5/(2-2)")

    def test_non_finite_result(self):
        with pytest.raises(FormulaError):
            evaluate("1e308*10")


class TestSubstitute:
    def test_replaces_every_occurrence(self):
        assert substitute("A+A*B", {"A": 2.0, "B": 3.5}) == "2+2*3.5"

    def test_integral_values_render_without_decimal(self):
        assert substitute("Hemoglobin*3", {"Hemoglobin": 14.0}) == "14*3"

    def test_missing_sibling_left_as_name(self):
        assert substitute("TC-HDL", {"TC": 200.0}) == "200-HDL"

    def test_names_with_spaces(self):
        assert substitute("Total Protein-Albumin", {"Total Protein": 7.0, "Albumin": 4.2}) == "7-4.2"

    def test_plain_text_replacement_in_mapping_order(self):
        # "LDL" is replaced inside "VLDL" too
        assert substitute("LDL+VLDL", {"LDL": 100.0}) == "100+V100"


class TestEvaluateFormula:
    def test_evaluates_with_siblings(self):
        assert evaluate_formula("(TC-HDL)/5", {"TC": 200.0, "HDL": 50.0}) == 30

    def test_missing_sibling_fails(self):
        with pytest.raises(FormulaError):
            evaluate_formula("TC-HDL", {"TC": 200.0})


class TestFormatResult:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (4.5, "4.5"),
            (4, "4"),
            (4.0, "4"),
            (4.567891, "4.568"),
            (100, "100"),
            (10.5, "10.5"),
            (0.0001, "0"),
            (33.333333, "33.333"),
            (-2.25, "-2.25"),
        ],
    )
    def test_at_most_three_decimals(self, value, expected):
        assert format_result(value) == expected
