"""
Settlement tracking.

Every tick the tracker polls each physical die on the tray and compares the
answer with what it saw last tick. A die whose state changed from moving to
resting has its face read; a die that was resting and got knocked over goes
back to moving. Whenever a die of some roll settles, the tracker checks
whether that roll is now complete (all of its physical dice spawned and all
of them resting) and, if so, resolves it.

Polling instead of callbacks keeps the order of events fixed by the tick,
which makes the whole thing easy to drive by hand in tests.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from dicetray.config import TrayConfig
from dicetray.dice import resolve
from dicetray.physics import Physics
from dicetray.records import PhysicalDie, RollRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementPolicy:
    """Decides when a die counts as resting, and what to do with dice that
    won't stop.

    A die rests when the physics engine says it is asleep, or when both its
    speed and spin are under the thresholds. A die that has been awake for
    longer than ``damping_after`` seconds gets extra damping, growing by
    ``damping_step`` for each further second, and after
    ``force_sleep_after`` seconds it is put to sleep outright.
    """

    linear_threshold: float = 0.01
    angular_threshold: float = 0.01
    damping_after: float = 2.0
    damping_step: float = 0.5
    force_sleep_after: float | None = 10.0

    @classmethod
    def from_config(cls, config: TrayConfig) -> SettlementPolicy:
        return cls(
            linear_threshold=config.linear_threshold,
            angular_threshold=config.angular_threshold,
            damping_after=config.damping_after,
            damping_step=config.damping_step,
            force_sleep_after=config.force_sleep_after,
        )

    def at_rest(self, physics: Physics, handle: Any) -> bool:
        if physics.is_settled(handle):
            return True
        k = physics.kinematics(handle)
        return k.speed < self.linear_threshold and k.spin < self.angular_threshold

    def nudge(self, physics: Physics, handle: Any, awake_for: float) -> None:
        """Apply escalating damping to a die that has been awake too long."""
        if self.force_sleep_after is not None and awake_for >= self.force_sleep_after:
            logger.debug("Forcing die %r to sleep after %.1fs awake", handle, awake_for)
            physics.sleep(handle)
        elif awake_for > self.damping_after:
            physics.damp(handle, self.damping_step * (awake_for - self.damping_after))


class SettlementTracker:
    """Tracks the physical dice on the tray and resolves finished rolls.

    Args:
        physics: The engine the dice live in.
        policy: When a die counts as resting.
        find_record: Looks up a roll in history by id. Returns None once the
            roll has been pruned, in which case its dice are dropped.
        on_resolved: Called once for every roll the tracker resolves.
    """

    def __init__(
        self,
        physics: Physics,
        policy: SettlementPolicy,
        find_record: Callable[[int], RollRecord | None],
        on_resolved: Callable[[RollRecord], None],
    ) -> None:
        self.physics = physics
        self.policy = policy
        self.find_record = find_record
        self.on_resolved = on_resolved
        self.dice: list[PhysicalDie] = []

    def track(self, die: PhysicalDie) -> None:
        self.dice.append(die)

    def dice_for(self, roll_id: int) -> list[PhysicalDie]:
        return [d for d in self.dice if d.roll_id == roll_id]

    def remove_roll(self, roll_id: int) -> int:
        """Take every die of a roll off the tray. Returns how many there were."""
        keep: list[PhysicalDie] = []
        removed = 0
        for d in self.dice:
            if d.roll_id == roll_id:
                self.physics.remove(d.handle)
                removed += 1
            else:
                keep.append(d)
        self.dice = keep
        return removed

    def clear(self) -> None:
        for d in self.dice:
            self.physics.remove(d.handle)
        self.dice = []

    def is_complete(self, record: RollRecord) -> bool:
        """True when every physical die of the roll is on the tray and resting."""
        dice = self.dice_for(record.id)
        return len(dice) == record.expected_dice and all(d.state == "settled" for d in dice)

    def poll(self, now: float) -> set[int]:
        """Update every die's state. Returns the ids of rolls that had a die
        settle this tick."""
        settled_rolls: set[int] = set()
        for die in self.dice:
            if self.policy.at_rest(self.physics, die.handle):
                if die.state == "settled":
                    continue
                value = self.physics.face_value(die.handle)
                if value is None:
                    continue
                die.state = "settled"
                die.value = value
                die.awake_since = None
                settled_rolls.add(die.roll_id)
                logger.debug("Die %r of roll %d settled on %d", die.handle, die.roll_id, value)
            else:
                if die.state == "settled":
                    record = self.find_record(die.roll_id)
                    if record is not None and record.resolved:
                        # The result is final; a knocked die keeps its face.
                        continue
                    logger.debug("Die %r of roll %d was disturbed", die.handle, die.roll_id)
                    die.state = "in_flight"
                    die.value = None
                if die.awake_since is None:
                    die.awake_since = now
                self.policy.nudge(self.physics, die.handle, now - die.awake_since)
        return settled_rolls

    def tick(self, now: float) -> list[RollRecord]:
        """Poll the dice and resolve any roll that just finished.

        Returns the rolls resolved by this tick.
        """
        resolved: list[RollRecord] = []
        for roll_id in sorted(self.poll(now)):
            record = self.find_record(roll_id)
            if record is None:
                logger.debug("Dropping dice of roll %d, which is no longer in history", roll_id)
                self.remove_roll(roll_id)
                continue
            if record.resolved or not self.is_complete(record):
                continue
            if resolve(record, self.dice_for(roll_id)):
                resolved.append(record)
                self.on_resolved(record)
        return resolved
