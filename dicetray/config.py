"""Tray configuration.

Every tunable of the tray lives on TrayConfig. The defaults are the values
the tray was tuned with; a TOML file can override any of them from a
``[tray]`` table:

    [tray]
    max_dice = 128
    damping_after = 3.0
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from dicetray.errors import ConfigError


@dataclass(frozen=True)
class TrayConfig:
    max_dice: int = 256
    """Most physical dice that may be on the tray at once. A d100 counts
    as two."""

    max_history: int = 256
    """Most roll records kept in history. The oldest is dropped first."""

    spawn_delay_base: float = 0.010
    """Seconds between consecutive dice of one throw."""

    spawn_delay_var: float = 0.010
    """Random extra delay (0 to this many seconds) added to each gap."""

    linear_threshold: float = 0.01
    """Speed below which a die counts as resting."""

    angular_threshold: float = 0.01
    """Spin rate below which a die counts as resting."""

    damping_after: float = 2.0
    """Seconds a die may stay awake before extra damping is applied."""

    damping_step: float = 0.5
    """Extra damping factor added for every further second awake."""

    force_sleep_after: float | None = 10.0
    """Seconds awake after which a die is put to sleep outright. None
    disables the forced sleep and relies on damping alone."""


def _as_int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"Expected {name} to be an integer.")
    if value < 1:
        raise ConfigError(f"Expected {name} to be at least 1.")
    return value


def _as_float(value: Any, *, name: str) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ConfigError(f"Expected {name} to be a number.")
    if value < 0:
        raise ConfigError(f"Expected {name} to be non-negative.")
    return float(value)


def parse_config(data: dict[str, Any]) -> TrayConfig:
    """Build a TrayConfig from the ``[tray]`` table of a parsed TOML file.

    Unknown keys are rejected so that typos don't silently fall back to a
    default.
    """
    table = data.get("tray", {})
    if not isinstance(table, dict):
        raise ConfigError("Expected [tray] to be a table.")

    known = {f.name: f for f in fields(TrayConfig)}
    unknown = sorted(set(table) - set(known))
    if unknown:
        raise ConfigError(f"Unknown [tray] keys: {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for key, value in table.items():
        if key in ("max_dice", "max_history"):
            values[key] = _as_int(value, name=f"tray.{key}")
        elif key == "force_sleep_after" and value is False:
            values[key] = None
        else:
            values[key] = _as_float(value, name=f"tray.{key}")
    return replace(TrayConfig(), **values)


def load_config(path: Path | str) -> TrayConfig:
    """Read a TrayConfig from a TOML file."""
    path = Path(path)
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    return parse_config(data)
