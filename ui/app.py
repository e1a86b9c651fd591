"""Streamlit dice tray UI.

Run with: PYTHONPATH=. streamlit run ui/app.py
"""

from __future__ import annotations

import logging
from pathlib import Path

import streamlit as st

from dicetray.config import TrayConfig, load_config
from dicetray.dice import DICE_TYPES
from dicetray.engine import DiceBag
from dicetray.errors import CapacityError, CompileError, ConfigError
from dicetray.physics import SimulatedPhysics
from dicetray.records import RollRecord
from dicetray.renderers import MarkdownRenderer
from dicetray.state import load_state, save_state

EXAMPLES = ("1d20", "2d20kh1 + 5", "4d6kh3", "1d100", "max(*avg(3d6), 10)")
CONFIG_PATH = Path("tray.toml")
STATE_PATH = Path(".dicetray.json")


def new_bag(seed: int | None = None, config: TrayConfig | None = None) -> DiceBag:
    """Create a tray backed by the simulated physics engine."""
    return DiceBag(SimulatedPhysics(seed=seed), config)


def roll_formula(bag: DiceBag, formula: str) -> str | None:
    """Roll a formula and let the dice settle.

    Returns an error message for the user, or None if the roll went
    through. Blank formulas are ignored.
    """
    if not formula.strip():
        return None
    try:
        bag.roll(formula)
    except (CompileError, CapacityError) as e:
        return str(e)
    bag.run_until_settled()
    return None


def record_markdown(record: RollRecord, active: bool, renderer: MarkdownRenderer) -> str:
    """One history entry as Markdown: formula, result, breakdown."""
    result = renderer.render_result(record)
    return f"**{record.formula}** = **{result}**  \n{renderer.status(record, active)}"


def read_config(path: Path) -> tuple[TrayConfig, str | None]:
    """Load the tray config if the file exists.

    An invalid file falls back to the defaults; the error message is
    returned so the page can show it.
    """
    if not path.exists():
        return TrayConfig(), None
    try:
        return load_config(path), None
    except ConfigError as e:
        return TrayConfig(), str(e)


def get_bag() -> DiceBag:
    """The session's tray, created on first use and restored from the last
    saved state if there is one."""
    if "bag" not in st.session_state:
        config, st.session_state["config_error"] = read_config(CONFIG_PATH)
        bag = new_bag(config=config)
        if load_state(bag, STATE_PATH):
            bag.run_until_settled()
        st.session_state["bag"] = bag
    return st.session_state["bag"]


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    st.set_page_config(page_title="Dice Tray", layout="wide")
    st.title("Dice Tray")

    bag = get_bag()
    if st.session_state.get("config_error"):
        st.error(f"Using default settings: {st.session_state['config_error']}")
    renderer = MarkdownRenderer()

    st.sidebar.header("Quick Rolls")
    cols = st.sidebar.columns(4)
    for i, die_type in enumerate(DICE_TYPES):
        if cols[i % 4].button(die_type, key=f"quick_{die_type}"):
            roll_formula(bag, die_type)
    if st.sidebar.button("Random die"):
        bag.roll_random()
        bag.run_until_settled()

    save_col, load_col = st.sidebar.columns(2)
    if save_col.button("Save tray"):
        save_state(bag, STATE_PATH)
        st.sidebar.success(f"Saved to {STATE_PATH}")
    if load_col.button("Reload tray"):
        bag = st.session_state["bag"] = new_bag(config=bag.config)
        if load_state(bag, STATE_PATH):
            bag.run_until_settled()
        else:
            st.sidebar.warning("No saved tray")

    st.sidebar.divider()
    st.sidebar.caption("Examples: " + " · ".join(f"`{e}`" for e in EXAMPLES))

    formula = st.text_input("Formula", value=bag.last_formula, placeholder="2d20kh1 + 1d4")
    roll_col, clear_roll_col, clear_tray_col, clear_history_col = st.columns(4)
    if roll_col.button("Roll", type="primary"):
        error = roll_formula(bag, formula)
        if error:
            st.error(error)
    if clear_roll_col.button("Clear & Roll"):
        bag.clear_tray()
        error = roll_formula(bag, formula)
        if error:
            st.error(error)
    if clear_tray_col.button("Clear tray"):
        bag.clear_tray()
    if clear_history_col.button("Clear history"):
        bag.clear_history()

    latest = renderer.render_latest(bag.history)
    if latest:
        st.metric("Latest result", latest)

    st.subheader("History")
    active = set(bag.active_roll_ids)
    for record in bag.history:
        text_col, button_col = st.columns([5, 1])
        text_col.markdown(record_markdown(record, record.id in active, renderer))
        if button_col.button("Re-roll", key=f"reroll_{record.id}"):
            bag.reroll(record.id)
            bag.run_until_settled()
            st.rerun()

    st.caption(f"{bag.total_dice_count} / {bag.config.max_dice} dice on the tray")


if __name__ == "__main__":
    main()
