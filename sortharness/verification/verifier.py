"""
Correctness Verifier
====================

Decides whether a candidate's output is equivalent to the reference's.

Two equivalence protocols
-------------------------
- **exact**: the outputs must be byte-for-byte identical, in order.
- **multiset**: used when the flags request random shuffling (``-R``).
  Both outputs are sorted by raw byte order and must then be identical,
  so any permutation of the same lines passes.

Two comparison strategies
-------------------------
- **diff** (up to ``checksum_threshold`` lines): direct comparison; on
  mismatch the first few differing lines are kept for diagnostics.
- **digest** (above the threshold): a cryptographic digest of each side
  (of the canonically sorted lines for the multiset protocol) is compared
  instead, bounding the cost on very large corpora.

An empty candidate output against a non-empty reference output is always
a mismatch, whichever protocol applies.
"""

import hashlib
import heapq
import os
import shlex
import tempfile
from itertools import islice, zip_longest
from typing import Iterable, Iterator, List, Optional, Tuple

from sortharness.config import CHECKSUM_THRESHOLD_LINES, DIFF_EXCERPT_LINES, DIGEST_ALGORITHM
from sortharness.models import (
    ComparisonStrategy,
    EquivalenceProtocol,
    ExecutionResult,
    ImplementationDescriptor,
    TestCase,
    VerificationOutcome,
)

CHUNK_SIZE = 1 << 20
SPILL_LINES = 1_000_000

# Short options whose argument is the rest of the token or the next token.
_SHORT_WITH_ARG = set('otST')
_LONG_WITH_ARG = {'output', 'field-separator', 'buffer-size', 'temporary-directory',
                  'key', 'sort', 'parallel', 'batch-size', 'compress-program',
                  'files0-from', 'random-source'}


class PairingError(RuntimeError):
    """A reference/candidate pair was captured under different test cases."""


def requests_random_order(flags: str) -> bool:
    """True if ``flags`` ask for random shuffling (``-R``, ``--random-sort``,
    ``--sort=random`` or an ``R`` ordering option inside a key spec)."""
    pending = None
    for tok in shlex.split(flags):
        if pending is not None:
            if pending == 'key' and 'R' in tok:
                return True
            if pending == 'sort' and tok == 'random':
                return True
            pending = None
            continue
        if tok == '--':
            break
        if tok.startswith('--'):
            name, eq, value = tok[2:].partition('=')
            if name == 'random-sort':
                return True
            if name in ('sort', 'key'):
                if not eq:
                    pending = name
                elif (name == 'sort' and value == 'random') or (name == 'key' and 'R' in value):
                    return True
            elif name in _LONG_WITH_ARG and not eq:
                pending = 'skip'
            continue
        if tok.startswith('-') and len(tok) > 1:
            body = tok[1:]
            for pos, ch in enumerate(body):
                if ch == 'R':
                    return True
                if ch == 'k' or ch in _SHORT_WITH_ARG:
                    rest = body[pos + 1:]
                    if not rest:
                        pending = 'key' if ch == 'k' else 'skip'
                    elif ch == 'k' and 'R' in rest:
                        return True
                    break
    return False


def _split_lines(data: bytes) -> List[bytes]:
    lines = data.split(b'\n')
    if lines and lines[-1] == b'':
        lines.pop()
    return lines


def canonical_lines(path: str) -> List[bytes]:
    """Lines of ``path`` sorted by raw byte order."""
    with open(path, 'rb') as f:
        return sorted(_split_lines(f.read()))


def _iter_file_lines(path: str) -> Iterator[bytes]:
    with open(path, 'rb') as f:
        for line in f:
            yield line[:-1] if line.endswith(b'\n') else line


def files_identical(path_a: str, path_b: str, chunk_size: int = CHUNK_SIZE) -> bool:
    if os.path.getsize(path_a) != os.path.getsize(path_b):
        return False
    with open(path_a, 'rb') as fa, open(path_b, 'rb') as fb:
        while True:
            a = fa.read(chunk_size)
            b = fb.read(chunk_size)
            if a != b:
                return False
            if not a:
                return True


def file_digest(path: str, algorithm: str = DIGEST_ALGORITHM, chunk_size: int = CHUNK_SIZE) -> str:
    h = hashlib.new(algorithm)
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(chunk_size), b''):
            h.update(chunk)
    return h.hexdigest()


def _sorted_runs(path: str, spill_lines: int) -> Iterator[List[bytes]]:
    """Yield consecutive blocks of at most ``spill_lines`` lines, each sorted."""
    lines = _iter_file_lines(path)
    while True:
        block = list(islice(lines, spill_lines))
        if not block:
            return
        block.sort()
        yield block


def multiset_digest(
    path: str,
    algorithm: str = DIGEST_ALGORITHM,
    spill_lines: int = SPILL_LINES,
    spill_dir: Optional[str] = None,
) -> str:
    """
    Digest of the lines of ``path`` taken in raw byte order.

    At most ``spill_lines`` lines are held in memory. Longer files are
    sorted in blocks, each block is written to a temporary file, and the
    blocks are merged back with ``heapq.merge`` while hashing.
    """
    h = hashlib.new(algorithm)
    with tempfile.TemporaryDirectory(prefix='sortharness-merge-', dir=spill_dir) as tmp:
        run_paths = []
        for block in _sorted_runs(path, spill_lines):
            if not run_paths and len(block) < spill_lines:
                # the whole file fit in one block
                for line in block:
                    h.update(line)
                    h.update(b'\n')
                return h.hexdigest()
            run_path = os.path.join(tmp, f"run{len(run_paths):05d}")
            with open(run_path, 'wb') as f:
                for line in block:
                    f.write(line)
                    f.write(b'\n')
            run_paths.append(run_path)

        for line in heapq.merge(*(_iter_file_lines(p) for p in run_paths)):
            h.update(line)
            h.update(b'\n')
    return h.hexdigest()


def _show(line: Optional[bytes]) -> str:
    if line is None:
        return '<missing>'
    return repr(line.decode('utf-8', 'replace'))


def first_differences(
    reference: Iterable[bytes],
    candidate: Iterable[bytes],
    limit: int = DIFF_EXCERPT_LINES,
) -> Tuple[str, ...]:
    """Describe the first ``limit`` positions where the two line sequences differ."""
    excerpt = []
    if limit <= 0:
        return ()
    for lineno, (ref, cand) in enumerate(zip_longest(reference, candidate), start=1):
        if ref != cand:
            excerpt.append(f"line {lineno}: expected {_show(ref)}, got {_show(cand)}")
            if len(excerpt) >= limit:
                break
    return tuple(excerpt)


class CorrectnessVerifier:
    """
    Compares candidate outputs to the reference output.

    Usage:
        >>> verifier = CorrectnessVerifier()
        >>> outcome = verifier.verify('ref.out', 'cand.out', '-R', 100_000)
        >>> outcome.protocol, outcome.strategy, outcome.equivalent
    """

    def __init__(
        self,
        checksum_threshold: int = CHECKSUM_THRESHOLD_LINES,
        excerpt_lines: int = DIFF_EXCERPT_LINES,
        algorithm: str = DIGEST_ALGORITHM,
    ):
        self.checksum_threshold = checksum_threshold
        self.excerpt_lines = excerpt_lines
        self.algorithm = algorithm

    def select_protocol(self, flags: str) -> EquivalenceProtocol:
        if requests_random_order(flags):
            return EquivalenceProtocol.MULTISET
        return EquivalenceProtocol.EXACT

    def select_strategy(self, line_count: int) -> ComparisonStrategy:
        if line_count > self.checksum_threshold:
            return ComparisonStrategy.DIGEST
        return ComparisonStrategy.DIFF

    def verify(
        self,
        reference_output: str,
        candidate_output: str,
        flags: str,
        line_count: int,
        descriptor: Optional[ImplementationDescriptor] = None,
    ) -> VerificationOutcome:
        protocol = self.select_protocol(flags)
        strategy = self.select_strategy(line_count)
        descriptor = descriptor or ImplementationDescriptor('candidate', candidate_output)

        if os.path.getsize(candidate_output) == 0 and os.path.getsize(reference_output) > 0:
            return VerificationOutcome(
                descriptor=descriptor,
                equivalent=False,
                protocol=protocol,
                strategy=strategy,
                reason="empty output",
            )

        if strategy is ComparisonStrategy.DIGEST:
            digest = file_digest if protocol is EquivalenceProtocol.EXACT else multiset_digest
            ref_digest = digest(reference_output, self.algorithm)
            cand_digest = digest(candidate_output, self.algorithm)
            equivalent = ref_digest == cand_digest
            return VerificationOutcome(
                descriptor=descriptor,
                equivalent=equivalent,
                protocol=protocol,
                strategy=strategy,
                reason=None if equivalent else f"{self.algorithm} digest mismatch",
                reference_digest=ref_digest,
                candidate_digest=cand_digest,
            )

        if protocol is EquivalenceProtocol.EXACT:
            equivalent = files_identical(reference_output, candidate_output)
            excerpt = () if equivalent else first_differences(
                _iter_file_lines(reference_output),
                _iter_file_lines(candidate_output),
                self.excerpt_lines,
            )
            reason = "output differs"
        else:
            ref_lines = canonical_lines(reference_output)
            cand_lines = canonical_lines(candidate_output)
            equivalent = ref_lines == cand_lines
            excerpt = () if equivalent else first_differences(
                ref_lines, cand_lines, self.excerpt_lines
            )
            reason = "different lines"

        return VerificationOutcome(
            descriptor=descriptor,
            equivalent=equivalent,
            protocol=protocol,
            strategy=strategy,
            diff_excerpt=excerpt,
            reason=None if equivalent else reason,
        )

    def verify_pair(
        self,
        test_case: TestCase,
        reference: ExecutionResult,
        candidate: ExecutionResult,
    ) -> VerificationOutcome:
        """
        Verify ``candidate`` against ``reference`` for ``test_case``.

        Raises PairingError if either result was produced under another
        test case. A candidate whose runs failed is reported as a failed
        outcome without comparing outputs.
        """
        for result in (reference, candidate):
            if result.case_identity != test_case.identity or result.input_path != test_case.input_path:
                raise PairingError(
                    f"{result.descriptor.name} result for {result.case_identity} "
                    f"paired with test case {test_case.identity}"
                )

        reason = candidate.failure_reason()
        if reason is not None:
            return VerificationOutcome.execution_failure(candidate.descriptor, reason)

        return self.verify(
            reference.output_path,
            candidate.output_path,
            test_case.flags,
            test_case.line_count,
            candidate.descriptor,
        )
