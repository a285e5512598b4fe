"""Running external sort implementations: registry, runner and profiler."""

from sortharness.execution.registry import (
    ImplementationRegistry,
    ResolvedImplementations,
    is_resolvable,
)
from sortharness.execution.runner import ExecutionRunner, build_argv, kill_process_tree
from sortharness.execution.profiler import PerformanceProfiler, maxrss_to_mb
