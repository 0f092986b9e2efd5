"""
spki_core/signing.py - Signing and resolution pipeline.

Sign:    payload -> canonical bytes -> digest (by curve) -> ECDSA (r, s)
Verify:  recompute digest -> compare with signed hash -> ECDSA verify
Resolve: signature principal given by hash -> caller's lookup -> key

Nothing here blocks or performs I/O; independent keys and payloads can
be signed and verified concurrently.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from . import digests
from .keys import PrivateKey, PublicKey
from .sexp import Sexp
from .signature import PrincipalLookup, Signature, resolve_principal

logger = logging.getLogger(__name__)


def sign(private_key: PrivateKey, payload: Sexp) -> Signature:
    """Sign payload's canonical form with private_key."""
    return private_key.sign(payload)


def verify(signature: Signature, payload: Sexp) -> bool:
    """Return True if signature covers payload, False otherwise."""
    return signature.verify(payload)


def make_lookup(keys: Iterable[PublicKey]) -> PrincipalLookup:
    """Build a Hash -> PublicKey lookup over every registered algorithm."""
    table: Dict[tuple, PublicKey] = {}
    for key in keys:
        key = key.public_key()
        for algorithm in digests.algorithms():
            h = key.hash_expr(algorithm)
            table[(h.algorithm, h.digest)] = key

    def lookup(h) -> Optional[PublicKey]:
        return table.get((h.algorithm, h.digest))

    return lookup


# ---------------------------------------------------------------------------
# Sequence verification
# ---------------------------------------------------------------------------

def verify_sequence(sequence) -> dict:
    """Verify every signature in a sequence against the element before it.

    Returns dict with verification results.
    """
    result = {
        "valid": True,
        "total_elements": len(sequence),
        "signatures": 0,
        "errors": [],
    }

    previous = None
    for index, element in enumerate(sequence):
        if isinstance(element, Signature):
            result["signatures"] += 1
            if previous is None or isinstance(previous, Signature):
                result["valid"] = False
                result["errors"].append(
                    f"element {index}: signature does not follow a signable element"
                )
            elif not element.verify(previous.encode()):
                result["valid"] = False
                result["errors"].append(f"element {index}: signature verification failed")
        previous = element

    if result["signatures"] == 0:
        result["valid"] = False
        result["errors"].append("sequence carries no signature")

    logger.debug(
        "Verified sequence: %d elements, %d signatures, %d errors",
        result["total_elements"], result["signatures"], len(result["errors"]),
    )
    return result
