"""
Compiling dice notation.

A formula such as ``2d20kh1 + 1d4 + max(1d6)`` is turned into an ordered
list of dice groups and a template in which each group is replaced by a
placeholder:

    groups   = [2d20 kh1, 1d4, 1d6 kh1]
    template = "__G0__ + __G1__ + __G2__"

Nothing is rolled here. The template is evaluated once with every
placeholder set to 0, which is enough to reject a formula that can never be
computed before any dice are thrown.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from dicetray.dice import type_from_sides
from dicetray.errors import CompileError, EvaluationError
from dicetray.evaluator import evaluate
from dicetray.records import RollGroup

DICE_RE = re.compile(r"(\d*)d(\d+)(kh|kl|ka)?(\d*)", re.ASCII)

# max(XdY), min(XdY) and avg(XdY) with a single dice term as the only
# argument are shorthands for keep modifiers on that term.
SHORTHAND_RE = re.compile(r"\b(max|min|avg)\(\s*(\d*d\d+)\s*\)", re.ASCII)
SHORTHAND_SUFFIX = {"max": "kh1", "min": "kl1", "avg": "ka"}

PLACEHOLDER_RE = re.compile(r"__G\d+__")
ALLOWED_RE = re.compile(r"[0-9\s+\-*/().,a-z]*", re.ASCII)


@dataclass(frozen=True)
class CompiledFormula:
    groups: list[RollGroup]
    template: str
    formula: str = ""
    """The formula as written, before shorthand expansion."""


def expand_shorthands(formula: str) -> str:
    """Rewrite ``max(XdY)`` to ``XdYkh1``, ``min(XdY)`` to ``XdYkl1`` and
    ``avg(XdY)`` to ``XdYka``."""
    return SHORTHAND_RE.sub(lambda m: m.group(2) + SHORTHAND_SUFFIX[m.group(1)], formula)


def compile_formula(formula: str) -> CompiledFormula:
    """Compile a formula into dice groups and an evaluable template.

    Only d2, d4, d6, d8, d10, d12, d20 and d100 are dice. Any other
    ``d`` term (e.g. ``1d7``) is left in the template as-is, where the
    syntax check will then reject it.

    Raises:
        CompileError: If the formula has no dice, contains characters that
            aren't part of the grammar, or isn't a valid expression.
    """
    text = expand_shorthands(formula.lower())
    groups: list[RollGroup] = []

    def replace(m: re.Match[str]) -> str:
        count_raw, sides_raw, keep_type, keep_raw = m.groups()
        die_type = type_from_sides(int(sides_raw))
        if die_type is None:
            return m.group(0)
        count = int(count_raw) if count_raw else 1
        if count < 1:
            raise CompileError(f"Can't roll zero dice: {m.group(0)}")
        keep_count = None
        if keep_type in ("kh", "kl"):
            keep_count = int(keep_raw) if keep_raw else 1
        groups.append(RollGroup(type=die_type, count=count, keep_type=keep_type, keep_count=keep_count))
        return f"__G{len(groups) - 1}__"

    template = DICE_RE.sub(replace, text)

    if not groups:
        raise CompileError(f"No dice found in {formula!r}")

    neutral = PLACEHOLDER_RE.sub("0", template)
    if not ALLOWED_RE.fullmatch(neutral):
        raise CompileError(f"Invalid characters in {formula!r}")

    try:
        evaluate(template, dry=True)
    except EvaluationError as e:
        raise CompileError(f"Invalid formula {formula!r}: {e}") from e

    return CompiledFormula(groups=groups, template=template, formula=formula)
