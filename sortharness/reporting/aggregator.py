"""
Report Aggregator
=================

Accumulates verification outcomes into the run summary, prints verdicts
and per-test-case performance tables as they are produced, and decides
the process exit status at the end of the run.
"""

import sys
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, TextIO, Tuple

import numpy as np
from tabulate import tabulate

from sortharness.models import (
    EquivalenceProtocol,
    ExecutionResult,
    RunSummary,
    TestCase,
    VerificationOutcome,
)
from sortharness.utils.helpers import format_seconds, speedup_ratio


@dataclass
class CaseReport:
    """Everything recorded for one test case."""
    test_case: TestCase
    results: List[ExecutionResult] = field(default_factory=list)
    outcomes: List[VerificationOutcome] = field(default_factory=list)

    @property
    def reference(self) -> Optional[ExecutionResult]:
        return self.results[0] if self.results else None

    @property
    def speedups(self) -> Dict[str, float]:
        """Reference wall time over each implementation's wall time."""
        ref = self.reference
        if ref is None:
            return {}
        return {r.descriptor.name: speedup_ratio(ref.wall, r.wall) for r in self.results}

    @property
    def passed(self) -> bool:
        return all(o.equivalent for o in self.outcomes)


def geometric_mean(values: List[float]) -> float:
    positive = np.array([v for v in values if v > 0], dtype=float)
    if positive.size == 0:
        return 1.0
    return float(np.exp(np.log(positive).mean()))


class ReportAggregator:
    """
    Collects outcomes across every test case and size tier.

    Usage:
        >>> agg = ReportAggregator('System sort')
        >>> agg.report_performance(case, results)
        >>> agg.record(outcome, case)
        >>> sys.exit(agg.finalize())
    """

    def __init__(self, reference_name: str, out: Optional[TextIO] = None):
        self.reference_name = reference_name
        self.out = out or sys.stdout
        self.summary = RunSummary()
        self.cases: List[CaseReport] = []
        self._by_identity: Dict[Tuple[str, str, str], CaseReport] = {}
        self._lock = threading.Lock()

    def emit(self, text: str) -> None:
        print(text, file=self.out, flush=True)

    def _case(self, test_case: TestCase) -> CaseReport:
        report = self._by_identity.get(test_case.identity)
        if report is None:
            report = CaseReport(test_case)
            self._by_identity[test_case.identity] = report
            self.cases.append(report)
        return report

    def begin_case(self, test_case: TestCase) -> None:
        self.emit(f"Testing: {test_case.name} ({test_case.size_label})")
        self.emit(f"  File: {test_case.input_path} | Flags: '{test_case.flags}'")

    def record(self, outcome: VerificationOutcome, test_case: Optional[TestCase] = None) -> None:
        """Count one outcome and print its verdict immediately."""
        with self._lock:
            self.summary.record(outcome.equivalent)
            if test_case is not None:
                self._case(test_case).outcomes.append(outcome)

            name = outcome.descriptor.name
            if outcome.equivalent:
                detail = "CORRECT"
                if outcome.protocol is EquivalenceProtocol.MULTISET:
                    detail += " (all lines present)"
                self.emit(f"  OK   {name}: {detail}")
            else:
                self.emit(f"  FAIL {name}: MISMATCH! {outcome.reason or ''}".rstrip())
                for line in outcome.diff_excerpt:
                    self.emit(f"         {line}")

    def report_performance(self, test_case: TestCase, results: List[ExecutionResult]) -> str:
        """
        Store the results of one test case and print its performance table.

        ``results`` starts with the reference. Speedups are reference wall
        time over each implementation's wall time.
        """
        with self._lock:
            report = self._case(test_case)
            report.results = list(results)
            speedups = report.speedups

        rows = []
        for r in results:
            rows.append([
                r.descriptor.name,
                format_seconds(r.wall),
                format_seconds(r.user),
                format_seconds(r.sys),
                f"{r.peak_mem_mb:.1f}",
                f"{speedups[r.descriptor.name]:.2f}x",
            ])
        table = tabulate(
            rows,
            headers=['Implementation', 'Wall', 'User', 'Sys', 'Peak MB', 'Speedup'],
            tablefmt='simple',
        )
        self.emit("  Performance Results:")
        self.emit('\n'.join('    ' + line for line in table.splitlines()))
        return table

    def candidate_speedups(self) -> Dict[str, List[float]]:
        """Per-candidate speedups over every test case that has timings."""
        speedups: Dict[str, List[float]] = {}
        for report in self.cases:
            for name, ratio in report.speedups.items():
                if report.reference is not None and name == report.reference.descriptor.name:
                    continue
                speedups.setdefault(name, []).append(ratio)
        return speedups

    def finalize(self) -> int:
        """Print the final summary and return the process exit status."""
        line = '=' * 60
        self.emit(line)
        self.emit("FINAL SUMMARY")
        self.emit(line)
        self.emit(f"Tests passed: {self.summary.passed}")
        self.emit(f"Tests failed: {self.summary.failed}")

        speedups = self.candidate_speedups()
        if speedups:
            rows = [
                [name, len(values), f"{geometric_mean(values):.2f}x"]
                for name, values in speedups.items()
            ]
            table = tabulate(
                rows,
                headers=['Implementation', 'Cases', f'Geomean speedup vs {self.reference_name}'],
            )
            self.emit("")
            self.emit(table)

        if self.summary.failed == 0:
            self.emit("\nALL TESTS PASSED!")
        else:
            self.emit("\nSome tests failed")
        self.emit(line)
        return self.summary.exit_status
