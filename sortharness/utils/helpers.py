"""Utility helpers for the sort harness."""

import time
from typing import Optional


class Timer:
    """Wall-clock timer for harness phases."""

    def __init__(self):
        self.start = 0.0
        self.end = 0.0

    def __enter__(self):
        self.start = time.perf_counter()
        return self

    def __exit__(self, *exc):
        self.end = time.perf_counter()

    @property
    def elapsed_s(self) -> float:
        return self.end - self.start


def speedup_ratio(reference_s: Optional[float], impl_s: Optional[float]) -> float:
    """
    Reference time divided by implementation time.

    A zero or missing duration on either side yields the neutral ratio 1.0.
    """
    if not reference_s or not impl_s or reference_s <= 0 or impl_s <= 0:
        return 1.0
    return reference_s / impl_s


def format_seconds(seconds: float) -> str:
    """Format a duration into a human-readable string."""
    if seconds < 0.001:
        return f"{seconds * 1_000_000:.0f} µs"
    elif seconds < 1:
        return f"{seconds * 1_000:.1f} ms"
    else:
        return f"{seconds:.2f} s"


def format_mb(mb: float) -> str:
    return f"{mb:.1f} MB"


def format_speedup(ratio: float) -> str:
    """Format a speedup ratio."""
    if ratio >= 1:
        return f"{ratio:.2f}x faster"
    else:
        return f"{1 / ratio:.2f}x slower"
