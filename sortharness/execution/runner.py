"""
Execution Runner
================

Invokes one implementation with one flag set against one input file.

Standard output goes to a fresh capture file in the harness scratch
directory; standard error is discarded. Every invocation blocks until the
process exits or the caller's timeout elapses, in which case the whole
process tree is killed and the run is reported as timed out.
"""

import logging
import os
import re
import shlex
import subprocess
import tempfile
from typing import List, Optional

import psutil

from sortharness.models import ImplementationDescriptor, RunCapture

logger = logging.getLogger(__name__)

KILL_WAIT_S = 5.0


def build_argv(descriptor: ImplementationDescriptor, flags: str, input_path: str) -> List[str]:
    """Command tokens, then flag tokens, then the input path."""
    return descriptor.argv + shlex.split(flags) + [input_path]


def kill_process_tree(pid: int) -> None:
    """Kill ``pid`` and all of its descendants."""
    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return
    for proc in procs:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
    psutil.wait_procs(procs[:-1], timeout=KILL_WAIT_S)


def _slug(name: str) -> str:
    return re.sub(r'[^A-Za-z0-9_.-]+', '_', name).strip('_') or 'impl'


class ExecutionRunner:
    """
    Runs implementations and captures their output.

    Usage:
        >>> runner = ExecutionRunner(scratch_dir='/tmp/scratch')
        >>> capture = runner.run(descriptor, '-n', 'test_nums_100k.txt', timeout=120)
        >>> capture.ok, capture.output_path
    """

    def __init__(self, scratch_dir: str):
        self.scratch_dir = scratch_dir

    def new_output_path(self, descriptor: ImplementationDescriptor) -> str:
        os.makedirs(self.scratch_dir, exist_ok=True)
        fd, path = tempfile.mkstemp(
            prefix=_slug(descriptor.name) + '-', suffix='.out', dir=self.scratch_dir
        )
        os.close(fd)
        return path

    def run(
        self,
        descriptor: ImplementationDescriptor,
        flags: str,
        input_path: str,
        timeout: Optional[float] = None,
        output_path: Optional[str] = None,
    ) -> RunCapture:
        """Run and capture stdout to ``output_path`` (a fresh scratch file by default)."""
        out_path = output_path or self.new_output_path(descriptor)
        with open(out_path, 'wb') as out:
            return self._invoke(descriptor, flags, input_path, timeout, out, out_path)

    def check(
        self,
        descriptor: ImplementationDescriptor,
        flags: str,
        input_path: str,
        timeout: Optional[float] = None,
    ) -> RunCapture:
        """Run for the exit status only; stdout is discarded."""
        return self._invoke(descriptor, flags, input_path, timeout, subprocess.DEVNULL, None)

    def _invoke(self, descriptor, flags, input_path, timeout, stdout, out_path) -> RunCapture:
        try:
            argv = build_argv(descriptor, flags, input_path)
        except ValueError as e:
            return RunCapture(out_path, None, error=f"cannot parse command: {e}")

        logger.debug("running %s", ' '.join(shlex.quote(a) for a in argv))
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            return RunCapture(out_path, None, error=str(e))

        try:
            code = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.debug("%s timed out after %.1fs", descriptor.name, timeout)
            kill_process_tree(proc.pid)
            proc.wait()
            return RunCapture(out_path, proc.returncode, timed_out=True)
        return RunCapture(out_path, code)
