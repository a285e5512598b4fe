"""Small shared helpers."""

from sortharness.utils.helpers import Timer, format_mb, format_seconds, format_speedup, speedup_ratio
