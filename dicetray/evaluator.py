"""
Arithmetic evaluation for roll templates.

A roll template is an ordinary infix expression (numbers, ``+ - * /``,
parentheses and the functions ``max``, ``min`` and ``avg``) in which every
dice group has been replaced by a placeholder token ``__G{n}__``. Evaluating
it produces a number and a breakdown string that shows how the number was
reached, including the dice and arguments that were thrown away.

A ``*`` that cannot be a multiplication (nothing to its left to multiply)
is a splice: the value after it is spread into the surrounding argument
list as several separate operands. This is how ``max(*__G0__, 10)`` can
compare every die of a group against 10 instead of comparing their sum.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, TypeAlias

from dicetray.errors import EvaluationError

TokenKind: TypeAlias = Literal[
    "number", "name", "placeholder", "op", "splice", "lparen", "rparen", "comma",
]

PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2}
FUNCTIONS = ("max", "min", "avg")

# Tokens that may begin an operand, and tokens that may end one. Two
# operands in a row with nothing between them is a syntax error.
OPERAND_START = ("number", "placeholder", "name", "lparen", "splice")
OPERAND_END = ("number", "placeholder", "rparen")

TOKEN_RE = re.compile(
    r"\s*(?:(?P<number>\d+\.?\d*)|(?P<name>[a-z]+)|__G(?P<placeholder>\d+)__|(?P<symbol>[+\-*/(),]))",
    re.IGNORECASE | re.ASCII,
)

SYMBOL_KINDS: dict[str, TokenKind] = {
    "+": "op", "-": "op", "*": "op", "/": "op",
    "(": "lparen", ")": "rparen", ",": "comma",
}


@dataclass
class MathResult:
    """A value together with the text that explains it."""

    value: float
    breakdown: str
    expanded: list[MathResult] | None = None
    """The separate operands this value stands for when spliced with ``*``.
    None means the value splices as itself."""

    def items(self) -> list[MathResult]:
        return self.expanded if self.expanded is not None else [self]


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str


ZERO = MathResult(0, "0")


def tidy(value: float) -> float | int:
    """Return integral floats as ints so they print without a trailing .0."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def round_result(value: float) -> float | int:
    """Round to one decimal place, halves away from zero."""
    if math.isnan(value) or math.isinf(value):
        return value
    rounded = math.floor(abs(value) * 10 + 0.5) / 10
    if rounded == 0:
        return 0
    return tidy(math.copysign(rounded, value))


def tokenize(expr: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    expr = expr.rstrip()
    while pos < len(expr):
        m = TOKEN_RE.match(expr, pos)
        if not m or m.end() == pos:
            raise EvaluationError(f"Unexpected character {expr[pos]!r} at position {pos}")
        pos = m.end()
        if m.group("number") is not None:
            tokens.append(Token("number", m.group("number")))
        elif m.group("name") is not None:
            tokens.append(Token("name", m.group("name").lower()))
        elif m.group("placeholder") is not None:
            tokens.append(Token("placeholder", m.group("placeholder")))
        else:
            symbol = m.group("symbol")
            tokens.append(Token(SYMBOL_KINDS[symbol], symbol))
    return tokens


def tag_splices(tokens: list[Token]) -> list[Token]:
    """Retag every ``*`` that has no left operand as a splice.

    A ``*`` is a multiplication only when the token before it can end an
    operand. At the start of the expression, or after an operator, a comma
    or an opening parenthesis, it is a splice of whatever follows.
    """
    tagged: list[Token] = []
    prev: Token | None = None
    for tok in tokens:
        if tok.text == "*" and (prev is None or prev.kind in ("op", "splice", "lparen", "comma")):
            tok = Token("splice", "*")
        tagged.append(tok)
        prev = tok
    return tagged


def apply_function(name: str, args: list[MathResult]) -> MathResult:
    """Apply max, min or avg to already evaluated arguments.

    max and min strike through every argument except the first one holding
    the selected value. avg strikes nothing.
    """
    if name in ("max", "min"):
        if not args:
            raise EvaluationError(f"{name}() needs at least one argument")
        pick = max if name == "max" else min
        val = pick(a.value for a in args)
        found = False
        parts = []
        for a in args:
            if not found and a.value == val:
                found = True
                parts.append(a.breakdown)
            else:
                parts.append(f"<del>{a.breakdown}</del>")
        return MathResult(val, f"{name}({', '.join(parts)})")
    if name == "avg":
        val = sum(a.value for a in args) / len(args) if args else 0
        return MathResult(val, f"avg({', '.join(a.breakdown for a in args)})")
    raise EvaluationError(f"Unknown function: {name}")


class _Evaluator:
    """Shunting-yard state for a single evaluation."""

    def __init__(self, placeholders: Mapping[int, MathResult] | None, dry: bool) -> None:
        self.placeholders = placeholders or {}
        self.dry = dry
        self.values: list[MathResult] = []
        self.ops: list[str] = []
        """Pending operators, function names and open parentheses. An open
        parenthesis that was preceded by a splice is stored as ``*(``."""
        self.calls: list[bool] = []
        """One entry per open parenthesis: whether it opens a function's
        argument list rather than a plain group."""
        self.bases: list[int] = []
        """Size of the value stack when each open parenthesis was seen."""

    def apply_op(self) -> None:
        op = self.ops.pop()
        if len(self.values) < 2:
            raise EvaluationError(f"Insufficient operands for {op!r}")
        b = self.values.pop()
        a = self.values.pop()
        if op == "+":
            val = a.value + b.value
        elif op == "-":
            val = a.value - b.value
        elif op == "*":
            val = a.value * b.value
        elif b.value == 0:
            if not self.dry:
                raise EvaluationError("Division by zero")
            val = 0
        else:
            val = a.value / b.value
        self.values.append(MathResult(val, f"{a.breakdown} {op} {b.breakdown}"))

    def reduce_to_paren(self) -> None:
        while self.ops and self.ops[-1] in PRECEDENCE:
            self.apply_op()

    def placeholder(self, text: str) -> MathResult:
        index = int(text)
        if index in self.placeholders:
            return self.placeholders[index]
        if self.dry:
            return ZERO
        raise EvaluationError(f"No value for dice group {index}")

    def close_paren(self) -> None:
        self.reduce_to_paren()
        if not self.ops:
            raise EvaluationError("Mismatched parentheses")
        splice = self.ops.pop() == "*("
        is_call = self.calls.pop()
        base = self.bases.pop()
        args = self.values[base:]
        del self.values[base:]

        if is_call:
            res = apply_function(self.ops.pop(), args)
        else:
            if not args:
                raise EvaluationError("Empty parentheses")
            if len(args) > 1:
                raise EvaluationError("Too many values")
            inner = args[0]
            res = inner if splice else MathResult(inner.value, f"({inner.breakdown})", inner.expanded)

        if splice:
            self.values.extend(res.items())
        else:
            self.values.append(res)

    def run(self, tokens: list[Token]) -> MathResult:
        splice_next = False
        prev: Token | None = None
        for i, tok in enumerate(tokens):
            if tok.kind in OPERAND_START and prev is not None and prev.kind in OPERAND_END:
                raise EvaluationError(f"Missing operator before {tok.text!r}")
            if tok.kind in ("op", "comma", "rparen") and (prev is None or prev.kind not in OPERAND_END):
                empty_call = tok.kind == "rparen" and prev is not None and prev.kind == "lparen" and self.calls[-1]
                if not empty_call:
                    raise EvaluationError(f"Insufficient operands before {tok.text!r}")

            if tok.kind == "splice":
                splice_next = True
            elif tok.kind == "placeholder":
                res = self.placeholder(tok.text)
                if splice_next:
                    self.values.extend(res.items())
                else:
                    self.values.append(res)
                splice_next = False
            elif tok.kind == "number":
                self.values.append(MathResult(tidy(float(tok.text)), tok.text))
                splice_next = False
            elif tok.kind == "name":
                if tok.text not in FUNCTIONS:
                    raise EvaluationError(f"Unknown function: {tok.text}")
                if i + 1 >= len(tokens) or tokens[i + 1].kind != "lparen":
                    raise EvaluationError(f"Expected '(' after {tok.text}")
                self.ops.append(tok.text)
            elif tok.kind == "lparen":
                self.ops.append("*(" if splice_next else "(")
                splice_next = False
                self.calls.append(prev is not None and prev.kind == "name")
                self.bases.append(len(self.values))
            elif tok.kind == "comma":
                self.reduce_to_paren()
                if not self.calls or not self.calls[-1]:
                    raise EvaluationError("Unexpected comma")
            elif tok.kind == "rparen":
                self.close_paren()
            else:
                while self.ops and self.ops[-1] in PRECEDENCE and PRECEDENCE[self.ops[-1]] >= PRECEDENCE[tok.text]:
                    self.apply_op()
                self.ops.append(tok.text)
            prev = tok

        if prev is not None and prev.kind not in OPERAND_END:
            raise EvaluationError(f"Insufficient operands after {prev.text!r}")
        while self.ops:
            if self.ops[-1] not in PRECEDENCE:
                raise EvaluationError("Mismatched parentheses")
            self.apply_op()

        if len(self.values) > 1:
            raise EvaluationError("Too many values")
        return self.values[0] if self.values else ZERO


def evaluate(
    expr: str,
    placeholders: Mapping[int, MathResult] | None = None,
    *,
    dry: bool = False,
) -> MathResult:
    """Evaluate an expression, returning its rounded value and breakdown.

    Args:
        expr: The expression, possibly containing ``__G{n}__`` placeholders.
        placeholders: Resolved value for each dice group index.
        dry: Resolve every placeholder to 0 and tolerate division by zero.
            Used to check a formula's syntax before any dice are thrown.

    Raises:
        EvaluationError: If the expression cannot be reduced to exactly one
            value.
    """
    if dry:
        placeholders = None
    tokens = tag_splices(tokenize(expr))
    result = _Evaluator(placeholders, dry).run(tokens)
    return MathResult(round_result(result.value), result.breakdown)
