#!/usr/bin/env python3
"""Roll a few formulas on a simulated tray and print the history.

Usage: PYTHONPATH=. python tools/demo_roll.py "2d20kh1 + 5" "4d6kh3" ...
"""

import logging
import sys

from dicetray.engine import DiceBag
from dicetray.errors import DiceTrayError
from dicetray.physics import SimulatedPhysics
from dicetray.renderers import TextRenderer

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

formulas = sys.argv[1:] or ["1d20", "2d20kh1 + 5", "4d6kh3", "1d100", "max(*avg(3d6), 10)"]
bag = DiceBag(SimulatedPhysics(seed=1))
for formula in formulas:
    try:
        bag.roll(formula)
    except DiceTrayError as e:
        print(f"{formula}: {e}")

ticks = bag.run_until_settled()
print(f"Settled after {ticks} ticks ({bag.clock:.2f}s of tray time)\n")
for line in TextRenderer().render_history(bag.history, bag.active_roll_ids):
    print(line)
