"""
Tests for the implementation registry, execution runner and profiler.
"""

import logging
import os
import time

import pytest

from sortharness.config import ConfigurationError
from sortharness.execution import profiler as profiler_module
from sortharness.execution.profiler import PerformanceProfiler, maxrss_to_mb
from sortharness.execution.registry import ImplementationRegistry, is_resolvable
from sortharness.execution.runner import ExecutionRunner, build_argv
from sortharness.models import ImplementationDescriptor


class TestRegistry:
    def test_resolvable(self, fake_sort):
        assert is_resolvable(ImplementationDescriptor('fake', fake_sort()))
        assert not is_resolvable(ImplementationDescriptor('gone', '/nonexistent/bin/sort'))
        assert not is_resolvable(ImplementationDescriptor('none', 'no-such-sort-binary-xyz'))
        assert not is_resolvable(ImplementationDescriptor('quote', '"unbalanced'))

    def test_missing_candidate_dropped_with_warning(self, fake_sort, caplog):
        registry = ImplementationRegistry.register(ImplementationDescriptor('Ref', fake_sort()))
        registry.add('Good', fake_sort()).add('Gone', '/nonexistent/bin/sort')
        with caplog.at_level(logging.WARNING):
            resolved = registry.resolve()
        assert [c.name for c in resolved.candidates] == ['Good']
        assert [d.name for d in resolved.all] == ['Ref', 'Good']
        assert 'Gone' in caplog.text

    def test_missing_reference_is_configuration_error(self):
        registry = ImplementationRegistry.register(
            ImplementationDescriptor('Ref', '/nonexistent/bin/sort'))
        with pytest.raises(ConfigurationError):
            registry.resolve()

    def test_resolve_is_cached(self, fake_sort):
        registry = ImplementationRegistry.register(ImplementationDescriptor('Ref', fake_sort()))
        assert registry.resolve() is registry.resolve()

    def test_duplicate_name(self, fake_sort):
        registry = ImplementationRegistry.register(ImplementationDescriptor('Ref', fake_sort()))
        registry.add('A', fake_sort())
        with pytest.raises(ConfigurationError):
            registry.add('A', fake_sort())
        with pytest.raises(ConfigurationError):
            registry.add('Ref', fake_sort())

    def test_add_after_resolve(self, fake_sort):
        registry = ImplementationRegistry.register(ImplementationDescriptor('Ref', fake_sort()))
        registry.resolve()
        with pytest.raises(ConfigurationError):
            registry.add('Late', fake_sort())


class TestRunner:
    def test_build_argv(self):
        descriptor = ImplementationDescriptor('x', "'my sort' --fast")
        assert build_argv(descriptor, '-n -r', 'in.txt') == ['my sort', '--fast', '-n', '-r', 'in.txt']
        assert build_argv(descriptor, '', 'in.txt') == ['my sort', '--fast', 'in.txt']

    def test_capture(self, tmp_path, fake_sort, write_lines):
        src = write_lines('in.txt', ['3', '1', '2'])
        runner = ExecutionRunner(str(tmp_path / 'scratch'))
        capture = runner.run(ImplementationDescriptor('fake', fake_sort()), '-n', src, timeout=30)
        assert capture.ok
        with open(capture.output_path, 'rb') as f:
            assert f.read() == b'1\n2\n3\n'

    def test_capture_files_are_distinct(self, tmp_path):
        runner = ExecutionRunner(str(tmp_path))
        descriptor = ImplementationDescriptor('My sort/v2', 'sort')
        a = runner.new_output_path(descriptor)
        b = runner.new_output_path(descriptor)
        assert a != b
        assert os.path.dirname(a) == str(tmp_path)

    def test_non_zero_exit(self, tmp_path, fake_sort, write_lines):
        src = write_lines('in.txt', ['a'])
        capture = ExecutionRunner(str(tmp_path)).run(
            ImplementationDescriptor('fail', fake_sort('fail')), '', src, timeout=30)
        assert capture.exit_code == 3
        assert not capture.ok

    def test_timeout_kills(self, tmp_path, fake_sort, write_lines):
        src = write_lines('in.txt', ['a'])
        capture = ExecutionRunner(str(tmp_path)).run(
            ImplementationDescriptor('hang', fake_sort('hang')), '', src, timeout=0.5)
        assert capture.timed_out
        assert not capture.ok

    def test_missing_executable(self, tmp_path, write_lines):
        src = write_lines('in.txt', ['a'])
        capture = ExecutionRunner(str(tmp_path)).run(
            ImplementationDescriptor('gone', '/nonexistent/bin/sort'), '', src)
        assert capture.error is not None
        assert not capture.ok

    def test_check_exit_status(self, tmp_path, fake_sort, write_lines):
        runner = ExecutionRunner(str(tmp_path))
        descriptor = ImplementationDescriptor('fake', fake_sort())
        assert runner.check(descriptor, '-c -n', write_lines('s.txt', ['1', '2', '10'])).exit_code == 0
        assert runner.check(descriptor, '-c -n', write_lines('u.txt', ['10', '2'])).exit_code != 0


class TestProfiler:
    def test_maxrss_units(self):
        assert maxrss_to_mb(1024, 'linux') == pytest.approx(1.0)
        assert maxrss_to_mb(1024 * 1024, 'darwin') == pytest.approx(1.0)
        assert maxrss_to_mb(0, 'linux') == 0.0

    @pytest.mark.skipif(not hasattr(os, 'wait4'), reason="os.wait4 not available")
    def test_wait4_profile(self, fake_sort, write_lines):
        src = write_lines('in.txt', [str(i) for i in range(1000)])
        sample = PerformanceProfiler(use_wait4=True).profile(
            ImplementationDescriptor('fake', fake_sort()), '-n', src, timeout=30)
        assert sample.ok
        assert sample.wall > 0
        assert sample.user + sample.sys > 0
        assert sample.peak_mem_mb > 0

    def test_sampled_profile(self, fake_sort, write_lines):
        src = write_lines('in.txt', [str(i) for i in range(1000)])
        sample = PerformanceProfiler(use_wait4=False).profile(
            ImplementationDescriptor('fake', fake_sort()), '-n', src, timeout=30)
        assert sample.ok
        assert sample.wall > 0
        assert sample.peak_mem_mb >= 0

    @pytest.mark.parametrize("use_wait4", [
        pytest.param(True, marks=pytest.mark.skipif(not hasattr(os, 'wait4'), reason="no wait4")),
        False,
    ])
    def test_timeout(self, fake_sort, write_lines, use_wait4):
        src = write_lines('in.txt', ['a'])
        sample = PerformanceProfiler(use_wait4=use_wait4).profile(
            ImplementationDescriptor('hang', fake_sort('hang')), '', src, timeout=0.5)
        assert sample.timed_out
        assert not sample.ok
        assert sample.wall < 20

    @pytest.mark.skipif(not (hasattr(os, 'wait4') and hasattr(os, 'waitid')),
                        reason="os.wait4 or os.waitid not available")
    def test_no_kill_after_reap(self, fake_sort, write_lines, monkeypatch):
        # the timer fires while the exited child is being reaped
        real_wait4 = os.wait4
        killed = []

        def slow_wait4(pid, options):
            result = real_wait4(pid, options)
            time.sleep(2.0)
            return result

        monkeypatch.setattr(os, 'wait4', slow_wait4)
        monkeypatch.setattr(profiler_module, 'kill_process_tree', killed.append)
        src = write_lines('in.txt', ['b', 'a'])
        sample = PerformanceProfiler(use_wait4=True).profile(
            ImplementationDescriptor('fake', fake_sort()), '', src, timeout=1.0)
        assert killed == []
        assert not sample.timed_out
        assert sample.ok

    def test_exit_code_reported(self, fake_sort, write_lines):
        src = write_lines('in.txt', ['a'])
        sample = PerformanceProfiler().profile(
            ImplementationDescriptor('fail', fake_sort('fail')), '', src, timeout=30)
        assert sample.exit_code == 3
        assert not sample.ok

    def test_missing_executable(self, write_lines):
        src = write_lines('in.txt', ['a'])
        sample = PerformanceProfiler().profile(
            ImplementationDescriptor('gone', '/nonexistent/bin/sort'), '', src)
        assert sample.error is not None
        assert sample.wall == 0.0
