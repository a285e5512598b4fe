"""
Free-Text Generators
====================

Random corpora for the character-set and external-sort tests.

Two generators live here:

1. ``generate_free_text``: lines sampled uniformly from a selectable
   alphabet with uniformly sampled lengths, stopping once a total
   character budget would be exceeded.
2. ``generate_random_lines``: a fixed number of printable-ASCII lines
   (code points 32..126) of 5 to 50 characters, used to build corpora
   large enough to push an implementation onto its external-sort path.

Both take a seed and draw from ``numpy.random.Generator`` so a corpus can
be reproduced exactly. Both are also exposed as console scripts.
"""

import os
import string
import sys
from typing import BinaryIO, List, Optional, Sequence, TextIO

import numpy as np

from sortharness.config import ConfigurationError


CHAR_CLASSES = {
    'e': string.ascii_letters,
    'n': string.digits,
    '+': ' ' + string.punctuation.replace('\\', ''),
    'r': (
        'абвгдеёжзийклмнопрстуфхцчшщъыьэюя'
        'АБВГДЕЁЖЗИЙКЛМНОПРСТУФХЦЧШЩЪЫЬЭЮЯ'
    ),
}

# Class letters in the order their characters are appended to the alphabet.
_CLASS_ORDER = 'en+r'

PROGRESS_EVERY_TEXT = 10_000
PROGRESS_EVERY_LINES = 100_000

RANDOM_MIN_LEN = 5
RANDOM_MAX_LEN = 50

_FREETEXT_USAGE = """\
Usage: sortharness-freetext CHAR_CLASSES MIN_STR_LEN MAX_STR_LEN MAX_CHARS_TO_WRITE [--seed N]

CHAR_CLASSES selects the alphabet and may combine:
  e  ASCII English letters
  n  ASCII digits
  +  other printable ASCII characters (including space, excluding backslash)
  r  Russian letters

Example:
  sortharness-freetext rn 5 50 10000
    Write no more than 10000 characters of Russian letters and digits,
    each line 5 to 50 characters long.
"""

_RANDLINES_USAGE = """\
Usage: sortharness-randlines NUMBER_OF_LINES [OUTPUT_FILE] [--seed N]

Writes NUMBER_OF_LINES random printable-ASCII lines of 5 to 50 characters.
"""


def build_alphabet(char_classes: str) -> str:
    """Concatenate the character classes named in ``char_classes``."""
    return ''.join(CHAR_CLASSES[c] for c in _CLASS_ORDER if c in char_classes)


def validate_free_text_args(
    alphabet: str,
    min_len: int,
    max_len: int,
    max_chars: int,
) -> None:
    if not alphabet:
        raise ConfigurationError("character class selection yields an empty alphabet")
    if min_len <= 0 or max_len <= 0 or max_chars <= 0:
        raise ConfigurationError("lengths and character budget must be positive")
    if min_len > max_len:
        raise ConfigurationError(
            f"minimum length {min_len} exceeds maximum length {max_len}"
        )
    # A minimum-length line plus its newline must fit in the budget.
    if min_len >= max_chars:
        raise ConfigurationError(
            f"minimum length {min_len} leaves no room under the "
            f"{max_chars}-character budget"
        )


def generate_free_text(
    char_classes: str,
    min_len: int,
    max_len: int,
    max_chars: int,
    out: TextIO,
    progress: Optional[TextIO] = None,
    seed: Optional[int] = None,
    batch_lines: int = PROGRESS_EVERY_TEXT,
) -> int:
    """
    Write random lines to ``out`` until the character budget is reached.

    Every line counts its length plus one for the newline. The line that
    would push the running total past ``max_chars`` is not written.
    Arguments are validated before anything is written.

    Returns the number of lines written.
    """
    alphabet = build_alphabet(char_classes)
    validate_free_text_args(alphabet, min_len, max_len, max_chars)

    rng = np.random.default_rng(seed)
    symbols = np.array(list(alphabet))
    chars_written = 0
    lines = 0

    while True:
        lengths = rng.integers(min_len, max_len, size=batch_lines, endpoint=True)
        for length in lengths.tolist():
            chars_written += length + 1
            if chars_written > max_chars:
                if progress is not None:
                    progress.write("\r100%\n")
                    progress.flush()
                return lines

            # at most max_len symbols are held at once
            picks = symbols[rng.integers(0, len(symbols), size=length)]
            out.write(''.join(picks.tolist()) + '\n')
            lines += 1

            if progress is not None and lines % PROGRESS_EVERY_TEXT == 0:
                progress.write(f"\r{chars_written * 100 // max_chars}%")
                progress.flush()


def generate_random_lines(
    count: int,
    out: BinaryIO,
    seed: Optional[int] = None,
    progress: Optional[TextIO] = None,
    min_len: int = RANDOM_MIN_LEN,
    max_len: int = RANDOM_MAX_LEN,
    batch_lines: int = PROGRESS_EVERY_LINES,
) -> int:
    """
    Write ``count`` lines of random printable ASCII (32..126) to ``out``.

    Returns the number of bytes written.
    """
    if count <= 0:
        raise ConfigurationError("number of lines must be a positive integer")
    if min_len <= 0 or min_len > max_len:
        raise ConfigurationError(f"invalid line length range {min_len}..{max_len}")

    rng = np.random.default_rng(seed)
    report = progress is not None and count >= PROGRESS_EVERY_LINES
    if progress is not None:
        progress.write(f"Generating {count:,} random strings...\n")

    total_bytes = 0
    done = 0
    while done < count:
        n = min(batch_lines, count - done)
        lengths = rng.integers(min_len, max_len, size=n, endpoint=True)
        buf = rng.integers(32, 126, size=int(lengths.sum()) + n, endpoint=True, dtype=np.uint8)
        buf[np.cumsum(lengths + 1) - 1] = ord('\n')
        out.write(buf.tobytes())
        total_bytes += buf.size
        done += n
        if report:
            progress.write(
                f"Progress: {done:,}/{count:,} ({done / count * 100:.1f}%)\n"
            )
    return total_bytes


def write_random_corpus(path: str, count: int, seed: Optional[int] = None) -> str:
    """Write a random-line corpus to ``path`` and return the path."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'wb') as f:
        generate_random_lines(count, f, seed=seed)
    return path


def write_free_text_corpus(
    path: str,
    char_classes: str,
    min_len: int,
    max_len: int,
    max_chars: int,
    seed: Optional[int] = None,
) -> str:
    """Write a free-text corpus to ``path`` and return the path."""
    # Validate first so a bad request never leaves an empty file behind.
    validate_free_text_args(build_alphabet(char_classes), min_len, max_len, max_chars)
    with open(path, 'w', encoding='utf-8', newline='\n') as f:
        generate_free_text(char_classes, min_len, max_len, max_chars, f, seed=seed)
    return path


def _pop_seed(args: List[str]) -> Optional[int]:
    """Remove ``--seed N`` from ``args`` and return N."""
    if '--seed' not in args:
        return None
    idx = args.index('--seed')
    if idx + 1 >= len(args):
        raise ValueError("--seed requires a value")
    value = int(args[idx + 1])
    del args[idx:idx + 2]
    return value


def free_text_main(argv: Optional[Sequence[str]] = None) -> int:
    """Console entry point for ``generate_free_text``."""
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        seed = _pop_seed(args)
    except ValueError:
        sys.stderr.write(_FREETEXT_USAGE)
        return 1
    if len(args) < 4:
        sys.stderr.write(_FREETEXT_USAGE)
        return 1

    try:
        min_len, max_len, max_chars = (int(a, 10) for a in args[1:4])
        validate_free_text_args(build_alphabet(args[0]), min_len, max_len, max_chars)
    except (ValueError, ConfigurationError):
        sys.stderr.write(
            'Incorrect arguments. Run "sortharness-freetext" for help.\n'
        )
        return 2

    generate_free_text(
        args[0], min_len, max_len, max_chars,
        out=sys.stdout, progress=sys.stderr, seed=seed,
    )
    return 0


def random_lines_main(argv: Optional[Sequence[str]] = None) -> int:
    """Console entry point for ``generate_random_lines``."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] in ('-h', '--help'):
        sys.stderr.write(_RANDLINES_USAGE)
        return 1
    try:
        seed = _pop_seed(args)
        count = int(args[0])
        if count <= 0:
            raise ValueError(count)
    except ValueError:
        sys.stderr.write("Error: Number of lines must be a positive integer\n")
        sys.stderr.write(_RANDLINES_USAGE)
        return 1

    if len(args) > 1:
        with open(args[1], 'wb') as f:
            size = generate_random_lines(count, f, seed=seed, progress=sys.stderr)
        sys.stderr.write(f"Output file: {args[1]} ({size / (1024 * 1024):.1f}MB)\n")
    else:
        generate_random_lines(count, sys.stdout.buffer, seed=seed, progress=sys.stderr)
        sys.stdout.flush()
    return 0


if __name__ == '__main__':
    sys.exit(free_text_main())
