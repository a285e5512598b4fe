"""
Performance Profiler
====================

Runs an implementation under resource instrumentation and reports wall
time, user CPU time, system CPU time and peak resident memory.

On POSIX the child is reaped with ``os.wait4``, which hands back its
``rusage`` directly: no external ``time`` binary and no text scraping.
``ru_maxrss`` is in kilobytes on Linux and in bytes on macOS; both are
normalized to bytes and then to megabytes (divide by 1048576).

Where ``os.wait4`` is unavailable the process is sampled with psutil
while it runs. Any metric that cannot be obtained is reported as zero.

Output is discarded: profiled runs measure cost, the correctness capture
is a separate run.
"""

import logging
import os
import subprocess
import sys
import threading
import time
from typing import List, Optional

import psutil

from sortharness.config import BYTES_PER_MB
from sortharness.execution.runner import build_argv, kill_process_tree
from sortharness.models import ImplementationDescriptor, ProfileSample

logger = logging.getLogger(__name__)

SAMPLE_INTERVAL_S = 0.01


def maxrss_to_mb(ru_maxrss: int, platform: str = sys.platform) -> float:
    """Convert an ``ru_maxrss`` value to megabytes."""
    if not ru_maxrss or ru_maxrss < 0:
        return 0.0
    scale = 1 if platform == 'darwin' else 1024
    return ru_maxrss * scale / BYTES_PER_MB


class PerformanceProfiler:
    """
    Measures one invocation at a time.

    Profiled runs must not overlap: the harness calls ``profile`` for each
    implementation in turn so that timings are not skewed by contention.
    """

    def __init__(self, sample_interval: float = SAMPLE_INTERVAL_S, use_wait4: Optional[bool] = None):
        self.sample_interval = sample_interval
        self.use_wait4 = hasattr(os, 'wait4') if use_wait4 is None else use_wait4

    def profile(
        self,
        descriptor: ImplementationDescriptor,
        flags: str,
        input_path: str,
        timeout: Optional[float] = None,
    ) -> ProfileSample:
        try:
            argv = build_argv(descriptor, flags, input_path)
        except ValueError as e:
            return ProfileSample(error=f"cannot parse command: {e}")

        if self.use_wait4:
            return self._profile_wait4(argv, timeout)
        return self._profile_sampled(argv, timeout)

    def _profile_wait4(self, argv: List[str], timeout: Optional[float]) -> ProfileSample:
        start = time.perf_counter()
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            return ProfileSample(error=str(e))

        expired = threading.Event()
        exited = False
        lock = threading.Lock()

        def _expire():
            # the pid is free for reuse once wait4 has reaped it
            with lock:
                if exited:
                    return
                expired.set()
                kill_process_tree(proc.pid)

        timer = None
        if timeout is not None:
            timer = threading.Timer(timeout, _expire)
            timer.daemon = True
            timer.start()
        try:
            if hasattr(os, 'waitid'):
                # WNOWAIT leaves a zombie, so the pid stays ours until wait4 below
                os.waitid(os.P_PID, proc.pid, os.WEXITED | os.WNOWAIT)
                with lock:
                    exited = True
                    _, status, usage = os.wait4(proc.pid, 0)
            else:
                _, status, usage = os.wait4(proc.pid, 0)
                with lock:
                    exited = True
        finally:
            if timer is not None:
                timer.cancel()
        wall = time.perf_counter() - start
        # Already reaped; tell Popen so it never waits on the pid again.
        proc.returncode = os.waitstatus_to_exitcode(status)

        return ProfileSample(
            wall=wall,
            user=float(getattr(usage, 'ru_utime', 0.0) or 0.0),
            sys=float(getattr(usage, 'ru_stime', 0.0) or 0.0),
            peak_mem_mb=maxrss_to_mb(getattr(usage, 'ru_maxrss', 0)),
            exit_code=proc.returncode,
            timed_out=expired.is_set(),
        )

    def _profile_sampled(self, argv: List[str], timeout: Optional[float]) -> ProfileSample:
        start = time.perf_counter()
        try:
            proc = psutil.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            return ProfileSample(error=str(e))

        peak_bytes = 0
        user = sys_time = 0.0
        timed_out = False
        while proc.poll() is None:
            try:
                mem = proc.memory_info()
                # peak_wset is the OS-tracked peak on Windows.
                peak_bytes = max(peak_bytes, getattr(mem, 'peak_wset', mem.rss))
                cpu = proc.cpu_times()
                user, sys_time = cpu.user, cpu.system
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                pass
            if timeout is not None and time.perf_counter() - start > timeout:
                timed_out = True
                kill_process_tree(proc.pid)
                break
            time.sleep(self.sample_interval)
        code = proc.wait()
        wall = time.perf_counter() - start

        if peak_bytes == 0:
            logger.debug("no memory sample for %s, reporting 0", argv[0])
        return ProfileSample(
            wall=wall,
            user=user,
            sys=sys_time,
            peak_mem_mb=peak_bytes / BYTES_PER_MB,
            exit_code=code,
            timed_out=timed_out,
        )
