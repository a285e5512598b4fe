"""Output equivalence checks between a candidate and the reference."""

from sortharness.verification.verifier import (
    CorrectnessVerifier,
    PairingError,
    canonical_lines,
    file_digest,
    first_differences,
    multiset_digest,
    requests_random_order,
)
