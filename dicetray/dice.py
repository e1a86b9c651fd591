"""
Turning settled dice into a roll result.

Every die type has a fixed number of faces. Most dice are thrown as one
physical object, but a d100 is a tens die (faces 00-90) plus a units die
(faces 0-9) that together form one logical die. A d10 reports its "10" face
as 0, so a raw 0 on a d10 is read as 10, and a d100 showing 00 and 0 is read
as 100.

Once all the dice of a roll have settled, each group applies its keep rule:
kh keeps the highest N, kl the lowest N, ka averages every die. Dropped dice
are marked rather than removed so the breakdown can show them struck
through. The group totals are then substituted into the roll's template and
evaluated.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable

from dicetray.errors import EvaluationError
from dicetray.evaluator import MathResult, evaluate, tidy
from dicetray.records import DieResult, PhysicalDie, RollGroup, RollRecord
from dicetray.types import DiceType

logger = logging.getLogger(__name__)

FACES: dict[DiceType, int] = {
    "d2": 2,
    "d4": 4,
    "d6": 6,
    "d8": 8,
    "d10": 10,
    "d12": 12,
    "d20": 20,
    "d100": 100,
}

DICE_TYPES: tuple[DiceType, ...] = tuple(FACES)


def type_from_sides(sides: int) -> DiceType | None:
    """Return the die type with this many faces, or None if there isn't one."""
    for die_type, faces in FACES.items():
        if faces == sides:
            return die_type
    return None


def d100_value(tens: int, units: int) -> int:
    """Combine the two halves of a d100. 00 and 0 together read as 100."""
    if tens == 0 and units == 0:
        return 100
    return tens + units


def logical_value(dice: list[PhysicalDie]) -> int:
    """Read the value of one logical die from its physical dice.

    ``dice`` is a single die, or both halves of a d100. A half that never
    reported a face counts as 0.
    """
    first = dice[0]
    if first.type == "d100":
        tens = next((d.value for d in dice if d.tens), None) or 0
        units = next((d.value for d in dice if not d.tens), None) or 0
        return d100_value(tens, units)
    value = first.value or 0
    if first.type == "d10" and value == 0:
        return 10
    return value


def logical_results(dice: Iterable[PhysicalDie]) -> dict[int, list[int]]:
    """Group physical dice by (group, logical die) and read each value.

    Returns ``{group_index: [value, ...]}`` with values in logical die order,
    so the outcome doesn't depend on the order in which dice settled.
    """
    by_die: defaultdict[tuple[int, int], list[PhysicalDie]] = defaultdict(list)
    for d in dice:
        by_die[d.group_index, d.logical_index].append(d)

    results: defaultdict[int, list[int]] = defaultdict(list)
    for key in sorted(by_die):
        results[key[0]].append(logical_value(by_die[key]))
    return dict(results)


def apply_keep(group: RollGroup, values: list[int]) -> list[DieResult]:
    """Mark which dice of a group count toward its total.

    For kh/kl the dice are sorted (highest or lowest first) and the first
    keep_count are kept. The sort is stable, so among equal values the
    earlier die is the one kept. Without a kh/kl rule every die is kept.
    """
    results = [DieResult(value=v, kept=True) for v in values]
    if group.keep_type in ("kh", "kl"):
        keep = 1 if group.keep_count is None else group.keep_count
        results = sorted(results, key=lambda d: d.value, reverse=group.keep_type == "kh")
        for d in results[keep:]:
            d.kept = False
    return results


def group_value(group: RollGroup, results: list[DieResult]) -> MathResult:
    """Build the value that stands in for a group's placeholder.

    A ka group is the mean of its dice, shown as ``avg(a, b, c)``, and
    splices as its raw dice. Any other group is the sum of its kept dice,
    shown as ``(a + <del>b</del>)``, or just ``a`` for a single die. A kh/kl
    group splices as its kept dice only.
    """
    if group.keep_type == "ka":
        members = [MathResult(d.value, str(d.value)) for d in results]
        mean = sum(d.value for d in results) / len(results) if results else 0
        breakdown = f"avg({', '.join(m.breakdown for m in members)})"
        return MathResult(tidy(mean), breakdown, members)

    parts = [str(d.value) if d.kept else f"<del>{d.value}</del>" for d in results]
    breakdown = parts[0] if len(parts) == 1 else f"({' + '.join(parts)})"
    total = sum(d.value for d in results if d.kept)
    expanded = None
    if group.keep_type in ("kh", "kl"):
        expanded = [MathResult(d.value, str(d.value)) for d in results if d.kept]
    return MathResult(total, breakdown, expanded)


def resolve(record: RollRecord, dice: Iterable[PhysicalDie]) -> bool:
    """Work out a roll's result from its settled dice.

    Writes group_results, result and breakdown. If the template can't be
    evaluated the roll still finishes, with a result of 0 and a breakdown
    of "Error", so that it never stays pending.

    Returns False without touching the record if it was already resolved,
    so callers know not to announce it again.
    """
    if record.result is not None:
        return False

    values = logical_results(dice)
    group_results: list[list[DieResult]] = []
    placeholders: dict[int, MathResult] = {}
    for index, group in enumerate(record.groups):
        results = apply_keep(group, values.get(index, []))
        group_results.append(results)
        placeholders[index] = group_value(group, results)

    record.group_results = group_results
    try:
        res = evaluate(record.template, placeholders)
    except EvaluationError as e:
        logger.warning("Roll %d (%s) could not be evaluated: %s", record.id, record.formula, e)
        record.result = 0
        record.breakdown = "Error"
    else:
        record.result = res.value
        record.breakdown = res.breakdown
    return True
