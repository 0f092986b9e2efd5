"""
spki_core/digests.py - Process-wide digest registry.

Maps SPKI digest names to hashlib constructors.  The registry is built
once by initialize() at startup and is read-only afterwards; concurrent
readers need no locking.  Nothing is registered as a side effect of
importing this module.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple

from .errors import RegistryNotInitialized, UnknownAlgorithm

logger = logging.getLogger(__name__)


DEFAULT_ALGORITHMS: Dict[str, Callable] = {
    "sha224": hashlib.sha224,
    "sha256": hashlib.sha256,
    "sha384": hashlib.sha384,
    "sha512": hashlib.sha512,
}


class DigestRegistry:
    """Immutable name -> digest-constructor table."""

    def __init__(self, algorithms: Mapping[str, Callable]):
        self._table = MappingProxyType(dict(algorithms))

    def __contains__(self, name) -> bool:
        return name in self._table

    def names(self) -> Tuple[str, ...]:
        return tuple(self._table)

    def constructor(self, name: str) -> Callable:
        try:
            return self._table[name]
        except KeyError:
            raise UnknownAlgorithm(f"Unknown hash algorithm {name}") from None


_registry: Optional[DigestRegistry] = None
_init_lock = threading.Lock()


def initialize(algorithms: Optional[Mapping[str, Callable]] = None) -> DigestRegistry:
    """Build the process-wide registry.

    Idempotent for the same algorithm set.  Re-initializing with a
    different set raises RuntimeError: readers may already hold results
    computed under the first one.
    """
    global _registry
    algorithms = DEFAULT_ALGORITHMS if algorithms is None else algorithms
    with _init_lock:
        if _registry is not None:
            if set(_registry.names()) != set(algorithms):
                raise RuntimeError(
                    "Digest registry already initialized with "
                    f"{sorted(_registry.names())}"
                )
            return _registry
        _registry = DigestRegistry(algorithms)
    logger.debug("Digest registry initialized: %s", ", ".join(_registry.names()))
    return _registry


def registry() -> DigestRegistry:
    if _registry is None:
        raise RegistryNotInitialized(
            "Digest registry not initialized; call spki_core.initialize() first"
        )
    return _registry


def valid_hash(name) -> bool:
    """Return True if name (str or bytes) is a registered algorithm."""
    if isinstance(name, (bytes, bytearray)):
        try:
            name = bytes(name).decode("ascii")
        except UnicodeDecodeError:
            return False
    return name in registry()


def algorithms() -> Tuple[str, ...]:
    """Registered algorithm names in registration order."""
    return registry().names()


def new_digest(name: str):
    """Return a fresh hashlib object for name."""
    return registry().constructor(name)()


def digest(name: str, data: bytes) -> bytes:
    hasher = new_digest(name)
    hasher.update(data)
    return hasher.digest()


def digest_size(name: str) -> int:
    return new_digest(name).digest_size
