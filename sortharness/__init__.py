"""
SortHarness: Correctness and Performance Comparison for Sort Implementations
============================================================================

SortHarness runs one or more candidate ``sort`` implementations against a
reference implementation over a fixed matrix of generated corpora and flag
combinations, checks that every candidate produces the reference's output,
and reports wall time, CPU time and peak memory side by side.

Core Components:
    - corpus: deterministic formula corpora and seeded random text
    - execution: implementation registry, subprocess runner, resource profiler
    - verification: exact and multiset output equivalence
    - reporting: run summary, console tables, JSON/Markdown/chart output

Usage:
    >>> from sortharness import Harness, HarnessConfig
    >>> config = HarnessConfig(candidates=[('Mine', './target/release/sort')])
    >>> exit_status = Harness(config).run()

    $ sortharness --add-sort Mine:./target/release/sort --large
"""

__version__ = "1.0.0"

from sortharness.config import ConfigurationError, HarnessConfig, SizeTier, select_tiers
from sortharness.models import (
    ComparisonStrategy,
    EquivalenceProtocol,
    ExecutionResult,
    ImplementationDescriptor,
    RunSummary,
    TestCase,
    VerificationOutcome,
)
from sortharness.corpus import Category, DatasetGenerator
from sortharness.execution import ExecutionRunner, ImplementationRegistry, PerformanceProfiler
from sortharness.verification import CorrectnessVerifier, PairingError
from sortharness.reporting import ReportAggregator
from sortharness.harness import Harness, HarnessState, IllegalTransition, TEST_MATRIX

__all__ = [
    'Harness',
    'HarnessConfig',
    'HarnessState',
    'IllegalTransition',
    'TEST_MATRIX',
    'ConfigurationError',
    'PairingError',
    'SizeTier',
    'select_tiers',
    'Category',
    'DatasetGenerator',
    'ImplementationDescriptor',
    'ImplementationRegistry',
    'ExecutionRunner',
    'PerformanceProfiler',
    'CorrectnessVerifier',
    'ReportAggregator',
    'TestCase',
    'ExecutionResult',
    'VerificationOutcome',
    'EquivalenceProtocol',
    'ComparisonStrategy',
    'RunSummary',
]
