"""
Dataset Generator
=================

Synthesizes reproducible test corpora for the sort harness.

Each category is a pure function of the 1-based line index ``i``:

    numeric    (i * 7919) mod 32749
    string     "str_" + ((i * 13) mod 9973) + "_text"
    float      ((i * 17) mod 10007) + "." + ((i * 23) mod 1000)
    mixed      even i: (i * 19) mod 7919, odd i: "text_" + ((i * 31) mod 5003)
    duplicate  i mod 100

No randomness is involved, so two runs with the same count produce
byte-identical files. Corpora are keyed by (category, size suffix) and
reused whenever the file is already present; content is not re-validated.

Lines are computed in chunks with numpy so that 30M-line corpora do not
need a Python-level loop per integer operation.
"""

import logging
import os
from enum import Enum
from typing import Callable, Dict, Iterator, List

import numpy as np

logger = logging.getLogger(__name__)

CHUNK_LINES = 1_000_000


class Category(Enum):
    NUMERIC = 'numeric'
    STRING = 'string'
    FLOAT = 'float'
    MIXED = 'mixed'
    DUPLICATE = 'duplicate'


# File name prefixes: test_<prefix>_<suffix>.txt
_PREFIX: Dict[Category, str] = {
    Category.NUMERIC: 'nums',
    Category.STRING: 'strings',
    Category.FLOAT: 'floats',
    Category.MIXED: 'mixed',
    Category.DUPLICATE: 'dups',
}


def _numeric(i: np.ndarray) -> List[str]:
    return [f"{v}\n" for v in ((i * 7919) % 32749).tolist()]


def _string(i: np.ndarray) -> List[str]:
    return [f"str_{v}_text\n" for v in ((i * 13) % 9973).tolist()]


def _float(i: np.ndarray) -> List[str]:
    whole = ((i * 17) % 10007).tolist()
    frac = ((i * 23) % 1000).tolist()
    return [f"{w}.{f}\n" for w, f in zip(whole, frac)]


def _mixed(i: np.ndarray) -> List[str]:
    nums = ((i * 19) % 7919).tolist()
    texts = ((i * 31) % 5003).tolist()
    even = (i % 2 == 0).tolist()
    return [
        f"{n}\n" if e else f"text_{t}\n"
        for n, t, e in zip(nums, texts, even)
    ]


def _duplicate(i: np.ndarray) -> List[str]:
    return [f"{v}\n" for v in (i % 100).tolist()]


_FORMULAS: Dict[Category, Callable[[np.ndarray], List[str]]] = {
    Category.NUMERIC: _numeric,
    Category.STRING: _string,
    Category.FLOAT: _float,
    Category.MIXED: _mixed,
    Category.DUPLICATE: _duplicate,
}


def line_at(category: Category, i: int) -> str:
    """Content of line ``i`` (1-based) for ``category``, without the newline."""
    if i < 1:
        raise ValueError(f"line index must be >= 1, got {i}")
    return _FORMULAS[Category(category)](np.array([i], dtype=np.int64))[0].rstrip('\n')


def iter_lines(category: Category, count: int, chunk_lines: int = CHUNK_LINES) -> Iterator[str]:
    """Yield newline-terminated text chunks holding lines 1..count."""
    formula = _FORMULAS[Category(category)]
    for start in range(1, count + 1, chunk_lines):
        stop = min(start + chunk_lines, count + 1)
        yield ''.join(formula(np.arange(start, stop, dtype=np.int64)))


class DatasetGenerator:
    """
    Materializes corpora on disk, one file per (category, size suffix).

    Usage:
        >>> gen = DatasetGenerator('data')
        >>> path = gen.generate(Category.NUMERIC, 100_000, '100k')
        >>> gen.generate(Category.NUMERIC, 100_000, '100k') == path  # reused
        True
    """

    def __init__(self, data_dir: str = '.', chunk_lines: int = CHUNK_LINES):
        self.data_dir = data_dir
        self.chunk_lines = chunk_lines

    def path_for(self, category: Category, size_suffix: str) -> str:
        return os.path.join(
            self.data_dir, f"test_{_PREFIX[Category(category)]}_{size_suffix}.txt"
        )

    def generate(self, category: Category, count: int, size_suffix: str) -> str:
        """Return the corpus path, writing ``count`` lines first if it is absent."""
        path = self.path_for(category, size_suffix)
        if os.path.exists(path):
            logger.debug("reusing corpus %s", path)
            return path
        if count < 0:
            raise ValueError(f"line count must be >= 0, got {count}")

        os.makedirs(self.data_dir or '.', exist_ok=True)
        # Write under a temporary name so an interrupted run never leaves a
        # partial file that would later be reused as complete.
        tmp_path = path + '.partial'
        with open(tmp_path, 'w', encoding='utf-8', newline='\n') as f:
            for chunk in iter_lines(category, count, self.chunk_lines):
                f.write(chunk)
        os.replace(tmp_path, path)
        logger.debug("generated %s (%d lines)", path, count)
        return path

    def generate_all(self, count: int, size_suffix: str) -> Dict[Category, str]:
        """Materialize every category for one size tier."""
        return {
            category: self.generate(category, count, size_suffix)
            for category in Category
        }
