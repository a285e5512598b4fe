"""
Shared fixtures.

External sort implementations are simulated by a small Python script run
through ``sys.executable``. ``--mode=`` selects its behaviour:

  good      sorts correctly
  reversed  emits its sorted output in reverse order
  empty     writes nothing, exits 0
  fail      writes nothing, exits 3
  hang      sleeps for 30 seconds
"""

import shlex
import sys

import pytest

FAKE_SORT = r'''
import random
import re
import sys
import time

NUMBER = re.compile(rb'\s*(-?\d+(?:\.\d*)?)')


def numeric(line):
    m = NUMBER.match(line)
    return float(m.group(1)) if m else 0.0


def main(argv):
    mode = 'good'
    opts = ''
    files = []
    for arg in argv:
        if arg.startswith('--mode='):
            mode = arg.split('=', 1)[1]
        elif arg.startswith('-') and len(arg) > 1:
            opts += arg[1:]
        else:
            files.append(arg)

    if mode == 'fail':
        return 3
    if mode == 'hang':
        time.sleep(30)
        return 0

    with open(files[-1], 'rb') as f:
        lines = f.read().split(b'\n')
    if lines and lines[-1] == b'':
        lines.pop()

    def key(line):
        text = line.lstrip(b' \t') if 'b' in opts else line
        if 'f' in opts:
            text = text.upper()
        primary = numeric(text) if ('n' in opts or 'g' in opts) else text
        if 's' in opts or 'u' in opts:
            return (primary,)
        return (primary, line)

    reverse = 'r' in opts
    if 'c' in opts:
        keys = [key(line) for line in lines]
        ordered = all((b <= a) if reverse else (a <= b) for a, b in zip(keys, keys[1:]))
        return 0 if ordered else 1

    if mode == 'empty':
        return 0

    if 'R' in opts:
        out = list(lines)
        random.shuffle(out)
    else:
        out = sorted(lines, key=key, reverse=reverse)
        if 'u' in opts:
            unique = []
            last = None
            for line in out:
                k = key(line)
                if k != last:
                    unique.append(line)
                    last = k
            out = unique

    if mode == 'reversed':
        out = out[::-1]
    sys.stdout.buffer.write(b''.join(line + b'\n' for line in out))
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
'''


@pytest.fixture(scope='session')
def fake_sort_script(tmp_path_factory):
    path = tmp_path_factory.mktemp('bin') / 'fake_sort.py'
    path.write_text(FAKE_SORT, encoding='utf-8')
    return str(path)


@pytest.fixture
def fake_sort(fake_sort_script):
    """Return a factory for fake sort command strings."""
    def command(mode='good'):
        return f"{shlex.quote(sys.executable)} {shlex.quote(fake_sort_script)} --mode={mode}"
    return command


@pytest.fixture
def write_lines(tmp_path):
    """Write ``lines`` newline-terminated to ``tmp_path / name`` and return the path."""
    def write(name, lines):
        path = tmp_path / name
        path.write_bytes(b''.join(
            (line.encode('utf-8') if isinstance(line, str) else line) + b'\n'
            for line in lines
        ))
        return str(path)
    return write
