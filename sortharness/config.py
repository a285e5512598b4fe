"""
Harness Configuration
=====================

Constants and run parameters for the sort comparison harness.

The checksum threshold and the external-sort trigger are empirical
tradeoffs between comparison cost and detection risk. They are exposed
as parameters on ``HarnessConfig`` rather than treated as invariants.
"""

import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


# Above this many lines, outputs are compared by digest instead of diff.
CHECKSUM_THRESHOLD_LINES = 5_000_000

# Corpus size expected to push an implementation onto its external-sort path.
EXTERNAL_SORT_TRIGGER_BYTES = 150 * 1024 * 1024

# Number of differing lines kept for diagnostics on mismatch.
DIFF_EXCERPT_LINES = 3

DIGEST_ALGORITHM = "sha256"

DEFAULT_REFERENCE_COMMAND = "sort"
DEFAULT_REFERENCE_NAME = "System sort"

# Invocation timeout = TIMEOUT_BASE_S + TIMEOUT_PER_MILLION_S * lines / 1e6
TIMEOUT_BASE_S = 60.0
TIMEOUT_PER_MILLION_S = 60.0

EXTERNAL_TEST_LINES = 10_000_000

BYTES_PER_MB = 1024 * 1024


class ConfigurationError(ValueError):
    """Invalid harness configuration, reported before any test case runs."""


@dataclass(frozen=True)
class SizeTier:
    """A named dataset scale."""
    count: int
    suffix: str
    label: str


SIZE_TIERS: Dict[str, SizeTier] = {
    '100k': SizeTier(100_000, '100k', '100K lines'),
    '1m': SizeTier(1_000_000, '1m', '1M lines'),
    '10m': SizeTier(10_000_000, '10m', '10M lines'),
    '30m': SizeTier(30_000_000, '30m', '30M lines'),
}

DEFAULT_TIERS = ('100k', '1m')


def select_tiers(large: bool = False, extralarge: bool = False) -> List[SizeTier]:
    """Return the size tiers for the given flags. ``extralarge`` implies ``large``."""
    names = list(DEFAULT_TIERS)
    if large or extralarge:
        names.append('10m')
    if extralarge:
        names.append('30m')
    return [SIZE_TIERS[n] for n in names]


def parse_candidate_spec(spec: str) -> Tuple[str, str]:
    """
    Split a ``NAME:COMMAND`` candidate spec.

    Only the first colon separates, so commands may contain colons.
    """
    name, sep, command = spec.partition(':')
    name = name.strip()
    command = command.strip()
    if not sep or not name or not command:
        raise ConfigurationError(
            f"invalid candidate spec {spec!r}, expected NAME:COMMAND"
        )
    return name, command


@dataclass
class HarnessConfig:
    """Parameters for one harness invocation."""
    reference_command: str = DEFAULT_REFERENCE_COMMAND
    reference_name: str = DEFAULT_REFERENCE_NAME
    candidates: List[Tuple[str, str]] = field(default_factory=list)
    tiers: List[SizeTier] = field(default_factory=lambda: select_tiers())
    data_dir: str = '.'
    scratch_dir: Optional[str] = None
    keep_scratch: bool = False
    checksum_threshold: int = CHECKSUM_THRESHOLD_LINES
    external_sort_trigger_bytes: int = EXTERNAL_SORT_TRIGGER_BYTES
    excerpt_lines: int = DIFF_EXCERPT_LINES
    timeout_base: float = TIMEOUT_BASE_S
    timeout_per_million: float = TIMEOUT_PER_MILLION_S
    capture_workers: int = 1
    check_sorted: bool = True
    charset_tests: bool = False
    external_test: bool = False
    external_lines: int = EXTERNAL_TEST_LINES
    json_dir: Optional[str] = None
    markdown_path: Optional[str] = None
    chart_path: Optional[str] = None

    def validate(self) -> 'HarnessConfig':
        if not self.reference_command.strip():
            raise ConfigurationError("reference command is empty")
        if not self.tiers:
            raise ConfigurationError("no size tiers selected")
        for tier in self.tiers:
            if tier.count <= 0:
                raise ConfigurationError(
                    f"size tier {tier.label!r} has non-positive line count {tier.count}"
                )
        if self.checksum_threshold < 0:
            raise ConfigurationError("checksum threshold must be >= 0")
        if self.excerpt_lines < 0:
            raise ConfigurationError("diff excerpt length must be >= 0")
        if self.timeout_base <= 0 or self.timeout_per_million < 0:
            raise ConfigurationError("timeouts must be positive")
        if self.capture_workers < 1:
            raise ConfigurationError("capture workers must be >= 1")
        if self.external_lines <= 0:
            raise ConfigurationError("external test line count must be positive")
        seen = set()
        for name, _command in self.candidates:
            if name in seen:
                raise ConfigurationError(f"duplicate candidate name {name!r}")
            seen.add(name)
        return self

    def timeout_for(self, line_count: int) -> float:
        """Per-invocation timeout scaled to corpus size."""
        return self.timeout_base + self.timeout_per_million * line_count / 1_000_000

    def make_scratch_dir(self) -> str:
        """Create a fresh run directory, inside ``scratch_dir`` when one is given.

        Only this directory belongs to the harness; ``scratch_dir`` itself and
        anything else in it are left alone.
        """
        if self.scratch_dir:
            os.makedirs(self.scratch_dir, exist_ok=True)
            return tempfile.mkdtemp(prefix='sortharness-', dir=self.scratch_dir)
        return tempfile.mkdtemp(prefix='sortharness-')
