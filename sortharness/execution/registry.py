"""
Implementation Registry
=======================

Holds the reference implementation and the named candidates under test.

Candidates whose command cannot be resolved are dropped with a warning
when the registry is resolved; the run continues without them. A missing
reference is a configuration error.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sortharness.config import ConfigurationError
from sortharness.models import ImplementationDescriptor

logger = logging.getLogger(__name__)


def is_resolvable(descriptor: ImplementationDescriptor) -> bool:
    """True if the first token of the descriptor's command is an executable."""
    try:
        executable = descriptor.executable
    except ValueError:
        # Unbalanced quotes in the command string.
        return False
    if not executable:
        return False
    if os.path.dirname(executable):
        return os.path.isfile(executable) and os.access(executable, os.X_OK)
    return shutil.which(executable) is not None


@dataclass(frozen=True)
class ResolvedImplementations:
    reference: ImplementationDescriptor
    candidates: Tuple[ImplementationDescriptor, ...]

    @property
    def all(self) -> Tuple[ImplementationDescriptor, ...]:
        return (self.reference,) + self.candidates


class ImplementationRegistry:
    """
    Registry of sort implementations.

    Usage:
        >>> registry = ImplementationRegistry.register(
        ...     ImplementationDescriptor('System sort', 'sort'))
        >>> registry.add('GNU', '/usr/local/bin/gsort').add('BSD', '/usr/bin/sort')
        >>> resolved = registry.resolve()
        >>> [c.name for c in resolved.candidates]  # unresolvable ones dropped
    """

    def __init__(self, reference: ImplementationDescriptor):
        self.reference = reference
        self._candidates: List[ImplementationDescriptor] = []
        self._resolved: Optional[ResolvedImplementations] = None

    @classmethod
    def register(cls, reference: ImplementationDescriptor) -> 'ImplementationRegistry':
        return cls(reference)

    def add(self, name: str, command: str) -> 'ImplementationRegistry':
        if self._resolved is not None:
            raise ConfigurationError("cannot add candidates after the registry is resolved")
        if name == self.reference.name or any(c.name == name for c in self._candidates):
            raise ConfigurationError(f"duplicate implementation name {name!r}")
        self._candidates.append(ImplementationDescriptor(name, command))
        return self

    @property
    def candidates(self) -> Tuple[ImplementationDescriptor, ...]:
        return tuple(self._candidates)

    def resolve(self) -> ResolvedImplementations:
        """
        Check every command once and return the live implementations.

        Later calls return the same result without probing again.
        """
        if self._resolved is not None:
            return self._resolved

        if not is_resolvable(self.reference):
            raise ConfigurationError(
                f"reference sort {self.reference.command!r} not found"
            )

        live = []
        for candidate in self._candidates:
            if is_resolvable(candidate):
                live.append(candidate)
            else:
                logger.warning(
                    "%s sort %r not found, skipping", candidate.name, candidate.command
                )

        self._resolved = ResolvedImplementations(self.reference, tuple(live))
        return self._resolved
