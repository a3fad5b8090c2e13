"""Arithmetic formula evaluation for calculated parameters.

A catalog formula is written over sibling parameter names, e.g.
``"Hemoglobin * 3"`` or ``"(TC - HDL) / 5"``. Sibling names are replaced
textually by their current numeric values and the resulting expression is
evaluated by a small recursive-descent parser that understands numbers,
``+ - * /`` (with the usual precedence), unary signs and parentheses.
Nothing else is accepted, so a formula can never run code.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Mapping

from app.utils.numbers import number_text

_NUMBER_RE = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_OPERATORS = frozenset("+-*/()")


class FormulaError(ValueError):
    """Raised when a formula cannot be evaluated to a finite number."""

    pass


@dataclass(frozen=True)
class Token:
    """A lexical token: a number literal or a single-character operator."""

    kind: str  # "num" or "op"
    text: str


def tokenize(expression: str) -> list[Token]:
    """Split an expression into number and operator tokens.

    Raises:
        FormulaError: On any character that is not part of a number,
            an operator, or whitespace (e.g. an unsubstituted name).
    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(expression):
        ch = expression[pos]
        if ch.isspace():
            pos += 1
            continue
        if ch in _OPERATORS:
            tokens.append(Token("op", ch))
            pos += 1
            continue
        match = _NUMBER_RE.match(expression, pos)
        if match is None:
            raise FormulaError(f"Unexpected character {ch!r} at position {pos}")
        tokens.append(Token("num", match.group(0)))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive-descent evaluator.

    Grammar::

        expr   := term (("+" | "-") term)*
        term   := factor (("*" | "/") factor)*
        factor := ("+" | "-") factor | NUMBER | "(" expr ")"
    """

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0

    def _peek(self) -> Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise FormulaError("Unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> float:
        if not self.tokens:
            raise FormulaError("Empty expression")
        value = self._expr()
        if self._peek() is not None:
            raise FormulaError(f"Unexpected token {self._peek().text!r}")
        return value

    def _expr(self) -> float:
        value = self._term()
        while (token := self._peek()) is not None and token.text in ("+", "-"):
            self.pos += 1
            right = self._term()
            value = value + right if token.text == "+" else value - right
        return value

    def _term(self) -> float:
        value = self._factor()
        while (token := self._peek()) is not None and token.text in ("*", "/"):
            self.pos += 1
            right = self._factor()
            if token.text == "*":
                value = value * right
            else:
                if right == 0:
                    raise FormulaError("Division by zero")
                value = value / right
        return value

    def _factor(self) -> float:
        token = self._next()
        if token.kind == "num":
            return float(token.text)
        if token.text == "-":
            return -self._factor()
        if token.text == "+":
            return self._factor()
        if token.text == "(":
            value = self._expr()
            closing = self._next()
            if closing.text != ")":
                raise FormulaError(f"Expected ')' but found {closing.text!r}")
            return value
        raise FormulaError(f"Unexpected token {token.text!r}")


def evaluate(expression: str) -> float:
    """Evaluate an arithmetic expression containing only numbers and operators.

    Raises:
        FormulaError: On syntax errors, division by zero, or a non-finite result.
    """
    try:
        value = _Parser(tokenize(expression)).parse()
    except OverflowError as exc:
        raise FormulaError("Numeric overflow") from exc
    if not math.isfinite(value):
        raise FormulaError("Result is not a finite number")
    return value


def substitute(formula: str, values: Mapping[str, float]) -> str:
    """Replace every occurrence of each sibling name with its value.

    Replacement is plain text in mapping order, so a name that is a
    substring of another name is replaced inside it as well.
    """
    expression = formula
    for name, value in values.items():
        if name:
            expression = expression.replace(name, number_text(value))
    return expression


def evaluate_formula(formula: str, sibling_values: Mapping[str, float]) -> float:
    """Evaluate a formula against the current numeric sibling values.

    Siblings missing from ``sibling_values`` stay as names and make the
    evaluation fail.
    """
    return evaluate(substitute(formula, sibling_values))


def format_result(value: float) -> str:
    """Format to at most 3 decimals, dropping trailing zeros (4.500 -> "4.5")."""
    return re.sub(r"\.?0+$", "", f"{value:.3f}")
