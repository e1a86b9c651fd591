"""Saving and restoring the tray.

A snapshot holds the whole history, the roll-id counter, which rolls are
still on the tray, every die with its exact position and motion, and the
throws that haven't happened yet. Restoring it puts each die back into the
physics world where it was, so a reload continues the same throw instead of
starting a new one.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from dicetray.dice import DICE_TYPES
from dicetray.engine import DiceBag, PendingSpawn
from dicetray.physics import Kinematics
from dicetray.records import PhysicalDie, RollRecord

logger = logging.getLogger(__name__)


def snapshot(bag: DiceBag) -> dict[str, Any]:
    """Capture the tray as plain JSON-compatible data."""
    dice = []
    for d in bag.tracker.dice:
        dice.append({
            "type": d.type,
            "roll_id": d.roll_id,
            "group_index": d.group_index,
            "logical_index": d.logical_index,
            "tens": d.tens,
            "settled": d.state == "settled",
            "value": d.value,
            "awake_since": d.awake_since,
            **bag.physics.kinematics(d.handle).to_dict(),
        })
    return {
        "roll_history": [r.to_dict() for r in bag.history],
        "next_roll_id": bag.ids.next_id,
        "canceled_watermark": bag.canceled_watermark,
        "clock": bag.clock,
        "formula": bag.last_formula,
        "active_rolls": bag.active_roll_ids,
        "dice": dice,
        "pending_spawns": [s.to_dict() for s in bag.pending_spawns],
    }


def _parse_die(d: dict[str, Any]) -> tuple[PhysicalDie, Kinematics, bool]:
    if d["type"] not in DICE_TYPES:
        raise ValueError(f"Unknown die type {d['type']!r}")
    die = PhysicalDie(
        handle=None,
        type=d["type"],
        roll_id=int(d["roll_id"]),
        group_index=int(d["group_index"]),
        logical_index=int(d["logical_index"]),
        tens=bool(d["tens"]),
        state="settled" if d["settled"] else "in_flight",
        value=d["value"],
        awake_since=d.get("awake_since"),
    )
    return die, Kinematics.from_dict(d), bool(d["settled"])


def restore(bag: DiceBag, state: dict[str, Any]) -> None:
    """Load a snapshot into an empty tray.

    The whole snapshot is parsed before the tray is touched, so a malformed
    one raises (KeyError, TypeError or ValueError) and leaves the tray as it
    was. Active roll ids that no longer match a history record are skipped,
    and dice whose roll isn't in history are dropped.
    """
    if not isinstance(state, dict):
        raise TypeError(f"Expected a JSON object, got {type(state).__name__}")
    next_id = int(state.get("next_roll_id", bag.ids.next_id))
    watermark = state.get("canceled_watermark")
    if watermark is not None:
        watermark = int(watermark)
    clock = float(state.get("clock", 0.0))
    formula = str(state.get("formula", ""))
    history = [RollRecord.from_dict(r) for r in state.get("roll_history", [])]
    dice = [_parse_die(d) for d in state.get("dice", [])]
    spawns = [PendingSpawn(**s) for s in state.get("pending_spawns", [])]

    by_id = {r.id: r for r in history}
    active: list[RollRecord] = []
    for roll_id in state.get("active_rolls", []):
        if roll_id not in by_id:
            logger.warning("Saved active roll %s is missing from history", roll_id)
            continue
        active.append(by_id[roll_id])

    bag.ids.next_id = next_id
    bag.canceled_watermark = watermark
    bag.clock = clock
    bag.last_formula = formula
    bag.history[:] = history
    bag.active_rolls[:] = active

    for die, kinematics, settled in dice:
        die.handle = bag.physics.spawn(die.type, kinematics, tens=die.tens)
        if settled:
            bag.physics.sleep(die.handle)
        bag.tracker.track(die)

    for spawn in spawns:
        bag.push_spawn(spawn)

    bag.prune()


def save_state(bag: DiceBag, path: Path | str) -> None:
    Path(path).write_text(json.dumps(snapshot(bag), indent=2))


def load_state(bag: DiceBag, path: Path | str) -> bool:
    """Restore the tray from a file written by save_state.

    Returns False if there is no saved state. A file that isn't valid JSON,
    or doesn't hold a snapshot, is logged and ignored, leaving the tray
    untouched.
    """
    path = Path(path)
    if not path.exists():
        return False
    try:
        restore(bag, json.loads(path.read_text()))
    except (KeyError, TypeError, ValueError) as e:
        logger.error("Failed to load tray state from %s: %s", path, e)
        return False
    return True
