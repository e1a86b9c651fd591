"""
Tray engine: owns the roll history, throws dice, and drives the clock.

The engine is driven by tick(). Each tick advances the tray clock, spawns
any dice whose throw delay has elapsed, steps the physics world, and lets
the settlement tracker resolve rolls whose dice have all come to rest.

Dice of one roll are not all thrown at once: each is scheduled a few
milliseconds after the previous one, so a roll can have early dice resting
while later ones are still waiting to be thrown. A roll can be canceled at
any point in between, in which case its remaining throws are skipped.
"""

from __future__ import annotations

import heapq
import logging
import random
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

from dicetray.config import TrayConfig
from dicetray.dice import DICE_TYPES
from dicetray.errors import CapacityError
from dicetray.notation import CompiledFormula, compile_formula
from dicetray.physics import Physics, throw_kinematics
from dicetray.records import PhysicalDie, RollIdSequence, RollRecord
from dicetray.tracker import SettlementPolicy, SettlementTracker
from dicetray.types import DiceType, EventName

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingSpawn:
    """A physical die waiting for its throw delay to pass."""

    due: float
    roll_id: int
    type: DiceType
    group_index: int
    logical_index: int
    tens: bool
    index_in_roll: int
    total_in_roll: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "due": self.due,
            "roll_id": self.roll_id,
            "type": self.type,
            "group_index": self.group_index,
            "logical_index": self.logical_index,
            "tens": self.tens,
            "index_in_roll": self.index_in_roll,
            "total_in_roll": self.total_in_roll,
        }


class DiceBag:
    """The dice tray: history, active rolls, pending throws and tracking.

    Args:
        physics: The engine the dice are thrown into.
        config: Tray limits and settlement tuning.
        ids: Source of roll ids. Injected so tests and restored sessions can
            control numbering.
        rng: Random source for throw delays and throw directions.
    """

    def __init__(
        self,
        physics: Physics,
        config: TrayConfig | None = None,
        *,
        ids: RollIdSequence | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.physics = physics
        self.config = config or TrayConfig()
        self.ids = ids or RollIdSequence()
        self.rng = rng or random.Random()

        self.history: list[RollRecord] = []
        """Every roll, newest first, capped at config.max_history."""

        self.active_rolls: list[RollRecord] = []
        """Rolls whose dice are on (or being thrown onto) the tray, oldest
        first."""

        self.canceled_watermark: int | None = None
        """Throws for any roll id at or below this are skipped."""

        self.clock: float = 0.0
        self.last_formula: str = ""
        self._pending: list[tuple[float, int, PendingSpawn]] = []
        self._spawn_seq = 0

        self.events: defaultdict[EventName, list[Callable[..., Any]]] = defaultdict(list)
        """Roll lifecycle listeners, keyed by event name. Each handler gets the
        RollRecord. A handler that returns a truthy value is dropped after
        it runs, so a listener can wait for one particular roll."""

        self.tracker = SettlementTracker(
            physics,
            SettlementPolicy.from_config(self.config),
            self.find_record,
            self._roll_resolved,
        )

    def triggers(self, event: EventName, *args: Any) -> None:
        """Call every handler registered for an event, dropping those that
        return a truthy value."""
        self.events[event] = [h for h in self.events[event] if not h(*args)]

    @property
    def active_roll_ids(self) -> list[int]:
        return [r.id for r in self.active_rolls]

    def is_active(self, roll_id: int) -> bool:
        return any(r.id == roll_id for r in self.active_rolls)

    @property
    def total_dice_count(self) -> int:
        """Physical dice on the tray or still to be thrown for active rolls."""
        return sum(r.expected_dice for r in self.active_rolls)

    @property
    def pending_spawns(self) -> list[PendingSpawn]:
        return [spawn for _, _, spawn in sorted(self._pending)]

    @property
    def settled(self) -> bool:
        """True when nothing is left to throw and every active roll resolved."""
        return not self._pending and all(r.resolved for r in self.active_rolls)

    @property
    def latest_result(self) -> float | None:
        return self.history[0].result if self.history else None

    def find_record(self, roll_id: int) -> RollRecord | None:
        return next((r for r in self.history if r.id == roll_id), None)

    def compile(self, formula: str) -> CompiledFormula:
        return compile_formula(formula)

    def roll(self, formula: str) -> RollRecord:
        """Compile a formula and throw its dice.

        Raises:
            CompileError: If the formula is invalid. Nothing is thrown.
            CapacityError: If the roll alone needs more dice than the tray
                holds.
        """
        compiled = self.compile(formula)
        self.last_formula = formula
        return self.begin_roll(compiled, formula)

    def roll_random(self, die_type: DiceType | None = None) -> RollRecord:
        """Throw a single die, of a random type unless one is given."""
        return self.roll(die_type or self.rng.choice(DICE_TYPES))

    def reroll(self, roll_id: int) -> RollRecord | None:
        """Roll a history entry's formula again, as a new roll."""
        record = self.find_record(roll_id)
        if record is None:
            return None
        return self.roll(record.formula)

    def clear_and_roll(self, formula: str) -> RollRecord:
        self.clear_tray()
        return self.roll(formula)

    def begin_roll(self, compiled: CompiledFormula, formula: str | None = None) -> RollRecord:
        """Create the record for a compiled formula and schedule its throws.

        ``formula`` is what the history shows; it defaults to the formula
        the roll was compiled from.

        If the tray is too full, the oldest active rolls are canceled whole
        until this one fits.
        """
        formula = formula or compiled.formula
        needed = sum(g.physical_count for g in compiled.groups)
        if needed > self.config.max_dice:
            raise CapacityError(f"{formula!r} needs {needed} dice, but the tray holds only {self.config.max_dice}")
        self._make_room(needed)

        record = RollRecord(
            id=self.ids(),
            formula=formula,
            template=compiled.template,
            groups=list(compiled.groups),
        )
        self.active_rolls.append(record)
        self._add_to_history(record)
        self._schedule(record)
        logger.info("Roll %d started: %s (%d dice)", record.id, formula, needed)
        self.triggers("roll_started", record)
        return record

    def _make_room(self, needed: int) -> None:
        while self.active_rolls and self.total_dice_count + needed > self.config.max_dice:
            oldest = self.active_rolls[0]
            logger.warning("Tray full, removing roll %d (%s)", oldest.id, oldest.formula)
            self.cancel_roll(oldest.id)

    def _schedule(self, record: RollRecord) -> None:
        total = record.expected_dice
        delay = 0.0
        index = 0
        for group_index, group in enumerate(record.groups):
            for logical_index in range(group.count):
                halves = (True, False) if group.type == "d100" else (False,)
                for tens in halves:
                    spawn = PendingSpawn(
                        due=self.clock + delay,
                        roll_id=record.id,
                        type=group.type,
                        group_index=group_index,
                        logical_index=logical_index,
                        tens=tens,
                        index_in_roll=index,
                        total_in_roll=total,
                    )
                    self.push_spawn(spawn)
                    index += 1
                    delay += self.config.spawn_delay_base + self.rng.random() * self.config.spawn_delay_var

    def push_spawn(self, spawn: PendingSpawn) -> None:
        heapq.heappush(self._pending, (spawn.due, self._spawn_seq, spawn))
        self._spawn_seq += 1

    def _spawn(self, spawn: PendingSpawn) -> None:
        # The roll may have been canceled since this throw was scheduled.
        if self.canceled_watermark is not None and spawn.roll_id <= self.canceled_watermark:
            return
        if not self.is_active(spawn.roll_id):
            return
        kinematics = throw_kinematics(spawn.index_in_roll, spawn.total_in_roll, self.rng)
        handle = self.physics.spawn(spawn.type, kinematics, tens=spawn.tens)
        self.tracker.track(PhysicalDie(
            handle=handle,
            type=spawn.type,
            roll_id=spawn.roll_id,
            group_index=spawn.group_index,
            logical_index=spawn.logical_index,
            tens=spawn.tens,
            awake_since=self.clock,
        ))
        logger.debug("Threw %s%s for roll %d", spawn.type, " (tens)" if spawn.tens else "", spawn.roll_id)

    def tick(self, dt: float) -> list[RollRecord]:
        """Advance the tray by ``dt`` seconds. Returns rolls resolved."""
        self.clock += dt
        while self._pending and self._pending[0][0] <= self.clock:
            _, _, spawn = heapq.heappop(self._pending)
            self._spawn(spawn)
        self.physics.step(dt)
        return self.tracker.tick(self.clock)

    def run_until_settled(self, dt: float = 1 / 60, max_ticks: int = 100_000) -> int:
        """Tick until every active roll has resolved. Returns ticks taken."""
        ticks = 0
        while not self.settled and ticks < max_ticks:
            self.tick(dt)
            ticks += 1
        return ticks

    def _roll_resolved(self, record: RollRecord) -> None:
        logger.info("Roll %d resolved: %s = %s", record.id, record.formula, record.result)
        self.triggers("roll_resolved", record)

    def cancel_roll(self, roll_id: int) -> bool:
        """Take a roll off the tray without resolving it.

        Its dice are removed and any throws still pending for it are
        skipped. The record stays in history, unresolved. Returns False if
        the roll wasn't active.
        """
        record = next((r for r in self.active_rolls if r.id == roll_id), None)
        if record is None:
            return False
        self.active_rolls.remove(record)
        if not self.active_rolls or roll_id < self.active_rolls[0].id:
            self.canceled_watermark = max(roll_id, self.canceled_watermark or 0)
        removed = self.tracker.remove_roll(roll_id)
        logger.info("Roll %d canceled (%d dice removed)", roll_id, removed)
        self.triggers("roll_canceled", record)
        return True

    def clear_tray(self) -> None:
        """Cancel every active roll and remove every die."""
        for record in list(self.active_rolls):
            self.cancel_roll(record.id)
        if self.ids.next_id > 0:
            self.canceled_watermark = self.ids.next_id - 1
        self.tracker.clear()

    def clear_history(self) -> None:
        self.history.clear()
        self.prune()

    def _add_to_history(self, record: RollRecord) -> None:
        self.history.insert(0, record)
        if len(self.history) > self.config.max_history:
            dropped = self.history.pop()
            logger.debug("History full, dropped roll %d", dropped.id)
            self.prune()

    def prune(self) -> None:
        """Remove the dice of rolls that are no longer in history."""
        kept = {r.id for r in self.history}
        for record in [r for r in self.active_rolls if r.id not in kept]:
            self.cancel_roll(record.id)
        for roll_id in {d.roll_id for d in self.tracker.dice} - kept:
            self.tracker.remove_roll(roll_id)
