"""Structured roll records for the dice tray.

These dataclasses capture everything about a roll: the formula the user
typed, the dice groups it compiled to, the individual die results and the
final total. They support both text rendering and saving the tray state so a
reload can pick up exactly where it left off.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dicetray.types import DiceType, DieState, KeepType


@dataclass(frozen=True)
class RollGroup:
    """One dice term of a formula, e.g. ``4d6kh3``."""

    type: DiceType
    count: int
    """How many logical dice are thrown."""

    keep_type: KeepType | None = None
    """kh, kl, ka, or None when every die counts."""

    keep_count: int | None = None
    """How many dice kh/kl keep. Unused for ka."""

    @property
    def physical_count(self) -> int:
        """Physical dice needed: a d100 is thrown as two."""
        return self.count * 2 if self.type == "d100" else self.count

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "count": self.count,
            "keep_type": self.keep_type,
            "keep_count": self.keep_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RollGroup:
        return cls(
            type=data["type"],
            count=data["count"],
            keep_type=data.get("keep_type"),
            keep_count=data.get("keep_count"),
        )


@dataclass
class DieResult:
    """The value of one logical die and whether it counted."""

    value: int
    """Face value after combining d100 pairs and mapping a d10's 0 to 10."""

    kept: bool
    """Whether this die was in the kept set. Discarded dice stay in the
    record so the breakdown can show them struck through."""


@dataclass
class RollRecord:
    """Everything known about one roll, pending or resolved."""

    id: int
    formula: str
    """What the user typed. Re-rolls compile this again."""

    template: str
    """The formula with each dice group replaced by ``__G{n}__``."""

    groups: list[RollGroup]
    group_results: list[list[DieResult]] = field(default_factory=list)
    """Per group, every logical die in breakdown order. Written once,
    when the roll resolves."""

    result: float | None = None
    """None while the dice are still rolling."""

    breakdown: str | None = None

    @property
    def resolved(self) -> bool:
        return self.result is not None

    @property
    def expected_dice(self) -> int:
        """How many physical dice must settle before this roll resolves."""
        return sum(g.physical_count for g in self.groups)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "formula": self.formula,
            "template": self.template,
            "result": self.result,
            "groups": [g.to_dict() for g in self.groups],
            "group_results": [
                [{"value": d.value, "kept": d.kept} for d in results]
                for results in self.group_results
            ],
            "breakdown": self.breakdown,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RollRecord:
        return cls(
            id=data["id"],
            formula=data["formula"],
            template=data["template"],
            groups=[RollGroup.from_dict(g) for g in data["groups"]],
            group_results=[
                [DieResult(value=d["value"], kept=d["kept"]) for d in results]
                for results in data.get("group_results", [])
            ],
            result=data.get("result"),
            breakdown=data.get("breakdown"),
        )


@dataclass
class PhysicalDie:
    """A single physical die on the tray and where it belongs in its roll."""

    handle: Any
    """Opaque handle returned by the physics spawn call."""

    type: DiceType
    roll_id: int
    group_index: int
    logical_index: int
    """Which die of the group this is. Both halves of a d100 share it."""

    tens: bool = False
    """True for the tens half of a d100."""

    state: DieState = "in_flight"
    value: int | None = None
    """Face read when the die last settled."""

    awake_since: float | None = None
    """Tray clock time at which the die last started moving."""


class RollIdSequence:
    """Hands out roll ids. Ids only ever increase, so an id is never reused,
    not even after its roll was canceled."""

    def __init__(self, start: int = 0) -> None:
        self.next_id = start

    def __call__(self) -> int:
        roll_id = self.next_id
        self.next_id += 1
        return roll_id
