"""
Domain-specific type aliases for the dice tray.

Nothing checks these at runtime. They document which strings a function
accepts: a DiceType parameter takes one of the eight die shapes, a
DieState is one of the two states the tracker moves a die between.
"""

from typing import Literal, TypeAlias

# The shape of a die. Every shape the notation compiler recognizes has a
# physical counterpart; d100 is thrown as a tens die plus a units die.
DiceType: TypeAlias = Literal[
    "d2",
    "d4",
    "d6",
    "d8",
    "d10",
    "d12",
    "d20",
    "d100",
]

# Keep modifier attached to a dice group: kh (keep highest), kl (keep
# lowest) or ka (average every die). None means every die is kept.
KeepType: TypeAlias = Literal["kh", "kl", "ka"]

# Settlement state of a single physical die. A settled die can go back to
# in_flight if something knocks it over before its roll resolves.
DieState: TypeAlias = Literal["in_flight", "settled"]

# Tray event names that handlers can be registered for via the
# DiceBag.events dict.
EventName: TypeAlias = Literal[
    "roll_started",
    "roll_resolved",
    "roll_canceled",
]
