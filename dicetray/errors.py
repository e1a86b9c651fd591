"""Dice tray exception hierarchy.

Keep this module small and dependency-free: it is imported broadly across the
project and by tests.
"""


class DiceTrayError(Exception):
    """Base exception for all dice tray errors."""


class CompileError(DiceTrayError):
    """Raised when a formula cannot be turned into dice groups and a template."""


class EvaluationError(DiceTrayError):
    """Raised when an arithmetic expression cannot be reduced to one value."""


class CapacityError(DiceTrayError):
    """Raised when a single roll needs more physical dice than the tray holds."""


class ConfigError(DiceTrayError):
    """Raised for invalid tray configuration."""
