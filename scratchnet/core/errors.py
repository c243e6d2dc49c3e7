"""Error taxonomy raised by the scratchnet engine."""

from __future__ import annotations


class ScratchNetError(Exception):
    """Base class for every condition surfaced by the engine."""


class ShapeMismatch(ScratchNetError, ValueError):
    """Raised when tensor or matrix dimensions disagree at a boundary."""


class InvalidShape(ShapeMismatch):
    """Raised when an operand has an unusable shape, e.g. an empty vector."""


class StateError(ScratchNetError, RuntimeError):
    """Raised when ``backward`` runs without a preceding ``forward``."""


class CorruptModel(ScratchNetError, ValueError):
    """Raised when a serialized model fails header or length validation."""


class NumericInstability(ScratchNetError, ArithmeticError):
    """Raised when a loss, activation or gradient becomes non-finite."""


class InvalidConfiguration(ScratchNetError, ValueError):
    """Raised for non-positive widths, empty layer lists or unknown kinds."""


class DatasetError(ScratchNetError, ValueError):
    """Raised when a dataset file cannot be parsed."""


__all__ = [
    "ScratchNetError",
    "ShapeMismatch",
    "InvalidShape",
    "StateError",
    "CorruptModel",
    "NumericInstability",
    "InvalidConfiguration",
    "DatasetError",
]
