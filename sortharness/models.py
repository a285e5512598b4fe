"""
Harness Data Model
==================

Records passed between the generator, runner, profiler, verifier and
aggregator. Test cases and descriptors are immutable; execution results
live only for the duration of one test case.
"""

import shlex
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class TestCase:
    """One (name, corpus, flags, size label) entry of the expanded test matrix."""
    __test__ = False  # not a pytest class

    name: str
    input_path: str
    flags: str
    size_label: str
    line_count: int

    @property
    def identity(self) -> Tuple[str, str, str]:
        return (self.name, self.flags, self.size_label)


@dataclass(frozen=True)
class ImplementationDescriptor:
    """A named external sort implementation."""
    name: str
    command: str

    @property
    def argv(self) -> List[str]:
        return shlex.split(self.command)

    @property
    def executable(self) -> str:
        argv = self.argv
        return argv[0] if argv else ''


@dataclass(frozen=True)
class RunCapture:
    """Outcome of one invocation whose stdout went to ``output_path``."""
    output_path: Optional[str]
    exit_code: Optional[int]
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.timed_out and self.exit_code == 0


@dataclass(frozen=True)
class ProfileSample:
    """Resource usage of one profiled invocation. Times in seconds, memory in MB."""
    wall: float = 0.0
    user: float = 0.0
    sys: float = 0.0
    peak_mem_mb: float = 0.0
    exit_code: Optional[int] = None
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.timed_out and self.exit_code == 0


@dataclass(frozen=True)
class ExecutionResult:
    """Captured output plus profiled metrics for one (test case, implementation) pair."""
    descriptor: ImplementationDescriptor
    case_identity: Tuple[str, str, str]
    input_path: str
    capture: RunCapture
    profile: ProfileSample

    @property
    def output_path(self) -> Optional[str]:
        return self.capture.output_path

    @property
    def wall(self) -> float:
        return self.profile.wall

    @property
    def user(self) -> float:
        return self.profile.user

    @property
    def sys(self) -> float:
        return self.profile.sys

    @property
    def peak_mem_mb(self) -> float:
        return self.profile.peak_mem_mb

    def failure_reason(self) -> Optional[str]:
        """Why this execution cannot be verified, or None if both runs succeeded."""
        for label, run in (('capture', self.capture), ('profiled', self.profile)):
            if run.timed_out:
                return f"{label} run timed out"
            if run.error is not None:
                return f"{label} run failed: {run.error}"
            if run.exit_code != 0:
                return f"{label} run exited with status {run.exit_code}"
        return None


class EquivalenceProtocol(Enum):
    EXACT = 'exact'
    MULTISET = 'multiset'


class ComparisonStrategy(Enum):
    DIFF = 'diff'
    DIGEST = 'digest'
    NONE = 'none'


@dataclass(frozen=True)
class VerificationOutcome:
    """Pass/fail judgment for one implementation's output against the reference."""
    descriptor: ImplementationDescriptor
    equivalent: bool
    protocol: EquivalenceProtocol = EquivalenceProtocol.EXACT
    strategy: ComparisonStrategy = ComparisonStrategy.NONE
    diff_excerpt: Tuple[str, ...] = ()
    reason: Optional[str] = None
    reference_digest: Optional[str] = None
    candidate_digest: Optional[str] = None

    @classmethod
    def execution_failure(
        cls,
        descriptor: ImplementationDescriptor,
        reason: str,
    ) -> 'VerificationOutcome':
        return cls(descriptor=descriptor, equivalent=False, reason=reason)


@dataclass
class RunSummary:
    """Process-wide pass/fail counters. Safe to update from several threads."""
    passed: int = 0
    failed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, passed: bool) -> None:
        with self._lock:
            if passed:
                self.passed += 1
            else:
                self.failed += 1

    @property
    def total(self) -> int:
        return self.passed + self.failed

    @property
    def exit_status(self) -> int:
        return 1 if self.failed > 0 else 0
