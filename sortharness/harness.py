"""
Sort Harness
============

Drives one harness invocation from corpus generation to the final summary.

For every size tier the fixed test matrix is expanded into test cases. Each
test case is processed the same way:

    1. Generate (or reuse) the corpus.
    2. Capture every implementation's output. Captures are independent and
       may run concurrently (``capture_workers``).
    3. Profile every implementation, one at a time.
    4. Print the performance table, verify each candidate against the
       reference, record the verdicts.

The harness walks a small state machine while doing this:

    Idle -> GeneratingData -> Executing -> Verifying -> Reporting -> Done
                 ^                              |
                 +------------------------------+  (once per test case)

A failed verification is recorded and the run moves on; nothing is retried.
"""

import logging
import os
import shutil
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Dict, List, Optional, Sequence, TextIO, Tuple

from sortharness.config import BYTES_PER_MB, HarnessConfig, SizeTier
from sortharness.corpus.freetext import write_free_text_corpus, write_random_corpus
from sortharness.corpus.generator import Category, DatasetGenerator
from sortharness.execution.profiler import PerformanceProfiler
from sortharness.execution.registry import ImplementationRegistry, ResolvedImplementations
from sortharness.execution.runner import ExecutionRunner
from sortharness.models import (
    ExecutionResult,
    ImplementationDescriptor,
    RunCapture,
    TestCase,
    VerificationOutcome,
)
from sortharness.reporting.aggregator import ReportAggregator
from sortharness.reporting.report_generator import (
    generate_markdown_report,
    plot_speedups,
    save_results,
)
from sortharness.utils.helpers import Timer, format_mb, format_seconds
from sortharness.verification.verifier import CorrectnessVerifier

logger = logging.getLogger(__name__)


class HarnessState(Enum):
    IDLE = 'idle'
    GENERATING_DATA = 'generating_data'
    EXECUTING = 'executing'
    VERIFYING = 'verifying'
    REPORTING = 'reporting'
    DONE = 'done'


_TRANSITIONS = {
    HarnessState.IDLE: {HarnessState.GENERATING_DATA},
    HarnessState.GENERATING_DATA: {HarnessState.EXECUTING},
    HarnessState.EXECUTING: {HarnessState.VERIFYING},
    HarnessState.VERIFYING: {HarnessState.GENERATING_DATA, HarnessState.REPORTING},
    HarnessState.REPORTING: {HarnessState.DONE},
    HarnessState.DONE: set(),
}


class IllegalTransition(RuntimeError):
    """The harness was asked to move between two states that are not adjacent."""


# (name, corpus category, flags), run in this order for every size tier.
TEST_MATRIX: Tuple[Tuple[str, Category, str], ...] = (
    ("Basic numeric", Category.NUMERIC, "-n"),
    ("Basic string", Category.STRING, ""),
    ("Reverse numeric", Category.NUMERIC, "-rn"),
    ("Unique sort", Category.DUPLICATE, "-u"),
    ("Numeric unique", Category.DUPLICATE, "-nu"),
    ("Ignore case", Category.STRING, "-f"),
    ("Random sort", Category.DUPLICATE, "-R"),
    ("Stable sort", Category.DUPLICATE, "-s"),
    ("General numeric", Category.FLOAT, "-g"),
    ("Combined flags", Category.DUPLICATE, "-nru"),
)

# (name, file stem, character classes, seed) for the -b suite.
CHARSET_TESTS: Tuple[Tuple[str, str, str, int], ...] = (
    ("English with -b", "test_en_b", "e+", 1001),
    ("Russian with -b", "test_ru_b", "r", 1002),
    ("Mixed chars with -b", "test_mixed_b", "er+", 1003),
)
CHARSET_MIN_LEN = 5
CHARSET_MAX_LEN = 20
CHARSET_BUDGET = 10_000

LEADING_BLANKS_LINES = (
    "\tzebra",
    " \tapple",
    "\t\tbanana",
    "   cherry",
    "\t \tdog",
    "     elephant",
    "  \tfox",
)

EXTERNAL_TEST_SEED = 2024


class Harness:
    """
    Runs the full comparison for one ``HarnessConfig``.

    Usage:
        >>> config = HarnessConfig(candidates=[('Mine', './target/release/sort')])
        >>> status = Harness(config).run()
    """

    def __init__(self, config: HarnessConfig, out: Optional[TextIO] = None):
        self.config = config.validate()
        self.registry = ImplementationRegistry.register(
            ImplementationDescriptor(config.reference_name, config.reference_command)
        )
        for name, command in config.candidates:
            self.registry.add(name, command)

        self.generator = DatasetGenerator(config.data_dir)
        self.profiler = PerformanceProfiler()
        self.verifier = CorrectnessVerifier(
            checksum_threshold=config.checksum_threshold,
            excerpt_lines=config.excerpt_lines,
        )
        self.aggregator = ReportAggregator(config.reference_name, out=out)
        self.state = HarnessState.IDLE
        self.scratch_dir: Optional[str] = None
        self.runner: Optional[ExecutionRunner] = None

    def transition(self, target: HarnessState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise IllegalTransition(f"{self.state.value} -> {target.value}")
        logger.debug("state %s -> %s", self.state.value, target.value)
        self.state = target

    def _emit(self, text: str = "") -> None:
        self.aggregator.emit(text)

    def _section(self, title: str) -> None:
        self._emit(f"\n{'=' * 60}")
        self._emit(f"  {title}")
        self._emit('=' * 60)

    # ------------------------------------------------------------------
    # Top level
    # ------------------------------------------------------------------

    def run(self) -> int:
        """Run every configured suite and return the process exit status."""
        impls = self.registry.resolve()
        self._emit(f"Reference: {impls.reference.name} ({impls.reference.command})")
        for candidate in impls.candidates:
            self._emit(f"Candidate: {candidate.name} ({candidate.command})")

        self.scratch_dir = self.config.make_scratch_dir()
        self.runner = ExecutionRunner(self.scratch_dir)
        try:
            for index, tier in enumerate(self.config.tiers):
                self.run_tier(tier, impls)
                if index == 0 and self.config.check_sorted:
                    self.run_check_sorted(tier, impls)
            if self.config.charset_tests:
                self.run_charset_tests(impls)
            if self.config.external_test:
                self.run_external_unique(impls)

            self.transition(HarnessState.REPORTING)
            status = self.aggregator.finalize()
            self.write_outputs()
            self.transition(HarnessState.DONE)
            return status
        finally:
            self._cleanup_scratch()

    def run_tier(self, tier: SizeTier, impls: ResolvedImplementations) -> None:
        self._section(f"{tier.label.upper()} TESTS")
        corpora: Optional[Dict[Category, str]] = None
        for name, category, flags in TEST_MATRIX:
            self.transition(HarnessState.GENERATING_DATA)
            if corpora is None:
                with Timer() as timer:
                    corpora = self.generator.generate_all(tier.count, tier.suffix)
                self._emit(f"Corpora ready in {self.config.data_dir} ({format_seconds(timer.elapsed_s)})")
            test_case = TestCase(name, corpora[category], flags, tier.label, tier.count)
            self.run_case(test_case, impls)

    # ------------------------------------------------------------------
    # One test case
    # ------------------------------------------------------------------

    def run_case(self, test_case: TestCase, impls: ResolvedImplementations) -> List[VerificationOutcome]:
        """Execute, profile and verify every implementation on one test case."""
        self.transition(HarnessState.EXECUTING)
        self.aggregator.begin_case(test_case)
        timeout = self.config.timeout_for(test_case.line_count)

        captures = self._capture_all(test_case, impls.all, timeout)
        results = []
        for descriptor in impls.all:
            profile = self.profiler.profile(
                descriptor, test_case.flags, test_case.input_path, timeout
            )
            results.append(ExecutionResult(
                descriptor=descriptor,
                case_identity=test_case.identity,
                input_path=test_case.input_path,
                capture=captures[descriptor.name],
                profile=profile,
            ))

        self.transition(HarnessState.VERIFYING)
        try:
            self.aggregator.report_performance(test_case, results)
            return self._verify(test_case, results)
        finally:
            for result in results:
                if result.output_path and os.path.exists(result.output_path):
                    os.remove(result.output_path)

    def _capture_all(
        self,
        test_case: TestCase,
        descriptors: Sequence[ImplementationDescriptor],
        timeout: float,
    ) -> Dict[str, RunCapture]:
        with ThreadPoolExecutor(max_workers=self.config.capture_workers) as pool:
            futures = {
                d.name: pool.submit(
                    self.runner.run, d, test_case.flags, test_case.input_path, timeout
                )
                for d in descriptors
            }
            return {name: future.result() for name, future in futures.items()}

    def _verify(self, test_case: TestCase, results: List[ExecutionResult]) -> List[VerificationOutcome]:
        reference, candidates = results[0], results[1:]
        outcomes = []

        # Without a reference output there is nothing to compare against.
        reason = reference.failure_reason()
        if reason is not None:
            outcome = VerificationOutcome.execution_failure(
                reference.descriptor, f"reference {reason}"
            )
            self.aggregator.record(outcome, test_case)
            return [outcome]

        for candidate in candidates:
            outcome = self.verifier.verify_pair(test_case, reference, candidate)
            self.aggregator.record(outcome, test_case)
            outcomes.append(outcome)
        return outcomes

    # ------------------------------------------------------------------
    # Extra suites
    # ------------------------------------------------------------------

    def run_check_sorted(self, tier: SizeTier, impls: ResolvedImplementations) -> List[VerificationOutcome]:
        """
        Check-sorted detection with ``-c -n``.

        Every candidate must exit 0 on the reference's ``-n`` output, and
        non-zero once an out-of-order line has been appended.
        """
        self._section("CHECK SORTED TEST")
        self.transition(HarnessState.GENERATING_DATA)
        nums = self.generator.generate(Category.NUMERIC, tier.count, tier.suffix)
        sorted_path = os.path.join(self.scratch_dir, f"test_sorted_{tier.suffix}.txt")
        timeout = self.config.timeout_for(tier.count)
        test_case = TestCase("Check sorted", sorted_path, "-c -n", tier.label, tier.count)

        self.transition(HarnessState.EXECUTING)
        self._emit(f"Testing: Check if sorted (numeric), {tier.label}")
        prepared = self.runner.run(impls.reference, '-n', nums, timeout, output_path=sorted_path)
        if not prepared.ok:
            self.transition(HarnessState.VERIFYING)
            outcome = VerificationOutcome.execution_failure(
                impls.reference,
                "reference could not produce the sorted input",
            )
            self.aggregator.record(outcome, test_case)
            return [outcome]

        on_sorted = {
            c.name: self.runner.check(c, test_case.flags, sorted_path, timeout)
            for c in impls.candidates
        }
        with open(sorted_path, 'a', encoding='utf-8') as f:
            f.write("1\n")
        on_unsorted = {
            c.name: self.runner.check(c, test_case.flags, sorted_path, timeout)
            for c in impls.candidates
        }

        self.transition(HarnessState.VERIFYING)
        outcomes = []
        for candidate in impls.candidates:
            for capture, expect_sorted in ((on_sorted[candidate.name], True),
                                           (on_unsorted[candidate.name], False)):
                outcome = _check_outcome(candidate, capture, expect_sorted)
                self.aggregator.record(outcome, test_case)
                outcomes.append(outcome)
        return outcomes

    def run_charset_tests(self, impls: ResolvedImplementations) -> List[VerificationOutcome]:
        """Free-text corpora and a leading-blanks file sorted with ``-b``."""
        self._section("CHARACTER SET TESTS WITH -b FLAG")
        outcomes = []
        for name, stem, classes, seed in CHARSET_TESTS:
            self.transition(HarnessState.GENERATING_DATA)
            path = write_free_text_corpus(
                os.path.join(self.scratch_dir, stem + '.txt'),
                classes, CHARSET_MIN_LEN, CHARSET_MAX_LEN, CHARSET_BUDGET, seed=seed,
            )
            test_case = TestCase(name, path, "-b", "charset", _count_lines(path))
            outcomes.extend(self.run_case(test_case, impls))

        self.transition(HarnessState.GENERATING_DATA)
        path = os.path.join(self.scratch_dir, "test_leading_b.txt")
        with open(path, 'w', encoding='utf-8', newline='\n') as f:
            f.write('\n'.join(LEADING_BLANKS_LINES) + '\n')
        test_case = TestCase(
            "Leading blanks with -b", path, "-b", "charset", len(LEADING_BLANKS_LINES)
        )
        outcomes.extend(self.run_case(test_case, impls))
        return outcomes

    def run_external_unique(self, impls: ResolvedImplementations) -> List[VerificationOutcome]:
        """``-u`` on a random corpus large enough to reach the external-sort path."""
        self._section("EXTERNAL SORT CORRECTNESS TEST")
        self.transition(HarnessState.GENERATING_DATA)
        count = self.config.external_lines
        path = os.path.join(self.scratch_dir, "external_test_data.txt")
        self._emit(f"Generating {count:,} random lines for the external sort test...")
        write_random_corpus(path, count, seed=EXTERNAL_TEST_SEED)

        size = os.path.getsize(path)
        self._emit(f"Generated external test file: {format_mb(size / BYTES_PER_MB)}")
        if size < self.config.external_sort_trigger_bytes:
            logger.warning(
                "external test corpus is %d bytes, below the %d-byte external sort trigger",
                size, self.config.external_sort_trigger_bytes,
            )

        test_case = TestCase(
            "External sort unique", path, "-u", f"{count:,} lines", count
        )
        try:
            return self.run_case(test_case, impls)
        finally:
            os.remove(path)

    # ------------------------------------------------------------------
    # Outputs and cleanup
    # ------------------------------------------------------------------

    def write_outputs(self) -> None:
        if self.config.json_dir:
            save_results(self.aggregator, self.config.json_dir)
        if self.config.markdown_path:
            generate_markdown_report(self.aggregator, self.config.markdown_path)
        if self.config.chart_path:
            plot_speedups(self.aggregator, self.config.chart_path)

    def _cleanup_scratch(self) -> None:
        if self.scratch_dir is None:
            return
        if self.config.keep_scratch:
            self._emit(f"Scratch files kept in {self.scratch_dir}")
            return
        shutil.rmtree(self.scratch_dir, ignore_errors=True)
        self.scratch_dir = None


def _count_lines(path: str) -> int:
    with open(path, 'rb') as f:
        return sum(1 for _ in f)


def _check_outcome(
    descriptor: ImplementationDescriptor,
    capture: RunCapture,
    expect_sorted: bool,
) -> VerificationOutcome:
    """Judge one ``-c`` run: exit 0 means sorted, any other exit means unsorted."""
    label = "sorted" if expect_sorted else "unsorted"
    if capture.timed_out:
        return VerificationOutcome.execution_failure(descriptor, f"check on {label} input timed out")
    if capture.error is not None:
        return VerificationOutcome.execution_failure(descriptor, f"check failed: {capture.error}")
    detected_sorted = capture.exit_code == 0
    if detected_sorted == expect_sorted:
        return VerificationOutcome(descriptor=descriptor, equivalent=True)
    return VerificationOutcome.execution_failure(
        descriptor, f"failed to detect {label} file (exit status {capture.exit_code})"
    )
