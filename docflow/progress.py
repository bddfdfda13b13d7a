"""
Progress aggregation helpers.

Progress is always expressed as a percentage in 0..100. A node maps the
progress of its own sub-stages onto fixed slices of its 0..100, and the
workflow run maps each node's 0..100 onto that node's slice of the whole run.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable


ProgressCallback = Callable[[float, str], None]


def clamp_percent(percent: float) -> float:
    """Clamp a value into 0..100 (NaN becomes 0)."""
    try:
        value = float(percent)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return max(0.0, min(100.0, value))


def scale_progress(percent: float, start: float, end: float) -> float:
    """
    Map a 0..100 progress value onto the [start, end] range.

    Args:
        percent: Progress of the inner stage (0..100)
        start: Outer progress at which the stage begins
        end: Outer progress at which the stage ends

    Returns:
        Outer progress value
    """
    return start + (end - start) * clamp_percent(percent) / 100.0


@dataclass(frozen=True)
class ProgressRange:
    """A fixed slice of an outer progress bar."""

    start: float
    end: float

    @classmethod
    def for_index(cls, index: int, total: int) -> "ProgressRange":
        """Slice [index/total, (index+1)/total] of a 0..100 bar."""
        if total <= 0:
            return cls(0.0, 100.0)
        return cls(100.0 * index / total, 100.0 * (index + 1) / total)

    def scale(self, percent: float) -> float:
        return scale_progress(percent, self.start, self.end)

    def wrap(self, callback: ProgressCallback) -> ProgressCallback:
        """Return a callback that forwards scaled progress to `callback`."""

        def report(percent: float, message: str = "") -> None:
            callback(self.scale(percent), message)

        return report


class MonotonicProgress:
    """
    Progress sink that never goes backwards.

    Clamps every reported value into 0..100 and raises it to the
    highest seen so far before forwarding it.
    """

    def __init__(self, callback: ProgressCallback | None = None):
        self.callback = callback
        self.value = 0.0
        self.message = ""

    def reset(self) -> None:
        self.value = 0.0
        self.message = ""

    def __call__(self, percent: float, message: str = "") -> None:
        self.value = max(self.value, clamp_percent(percent))
        self.message = message
        if self.callback is not None:
            self.callback(self.value, message)
