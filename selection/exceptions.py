"""Error types raised by grid evaluation and order selection."""

from typing import Optional, Tuple


class FitFailure(RuntimeError):
    """A single grid cell could not be fitted"""

    def __init__(self, order: Tuple[int, int], message: str = "",
                 cause: Optional[BaseException] = None):
        self.order = order
        self.cause = cause
        super().__init__(f"Fit failed for order {order}: {message}")


class EmptyResultError(ValueError):
    """No grid cell produced a usable criterion"""


class InvalidGridError(ValueError):
    """Order ranges are negative, non-integer or empty"""
