"""Exception types raised by the numeric kernels.

Each error also derives from the built-in exception a caller would naturally
catch (``ValueError``, ``IndexError`` ...), so code written against plain
NumPy-style validation keeps working.
"""
from __future__ import annotations


class MarginsError(Exception):
    """Base class for all mixedmargins errors."""


class DimensionMismatch(MarginsError, ValueError):
    """Shapes of the arguments are inconsistent with each other."""


class IndexOutOfRange(MarginsError, IndexError):
    """A block index lies outside the valid range."""


class EmptyInput(MarginsError, ValueError):
    """A required dimension has length zero."""


class PredictionEvaluationError(MarginsError, RuntimeError):
    """A prediction callback failed for one random-effect draw.

    The original exception is available as ``__cause__``.
    """

    def __init__(self, message: str, draw_index: int | None = None):
        super().__init__(message)
        self.draw_index = draw_index


class NumericOverflow(MarginsError, FloatingPointError):
    """A result contains NaN or Inf."""


__all__ = [
    "DimensionMismatch",
    "EmptyInput",
    "IndexOutOfRange",
    "MarginsError",
    "NumericOverflow",
    "PredictionEvaluationError",
]
