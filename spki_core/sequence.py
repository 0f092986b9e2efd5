"""
spki_core/sequence.py - Ordered bundles of certs, keys and signatures.

    (sequence ELEMENT...)

A sequence is how a proof travels: each signature conventionally
follows the element it signs.  Order is significant and preserved.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Optional, Protocol

from .cert import AuthCert
from .errors import MalformedExpression, SpkiError
from .hash import Hash
from .keys import PublicKey
from .sexp import Sexp, SexpList, atom, head
from .signature import PrincipalLookup, Signature

logger = logging.getLogger(__name__)


class SequenceElement(Protocol):
    """Anything that can sit in a sequence."""

    def encode(self) -> Sexp: ...

    def __str__(self) -> str: ...


class Sequence:
    """An immutable, ordered list of sequence elements."""

    __slots__ = ("elements",)

    def __init__(self, elements: Iterable[SequenceElement] = ()):
        self.elements = tuple(elements)

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[SequenceElement]:
        return iter(self.elements)

    def __getitem__(self, index):
        return self.elements[index]

    def encode(self) -> SexpList:
        return SexpList([atom("sequence")] + [e.encode() for e in self.elements])

    def pack(self) -> bytes:
        return self.encode().pack()

    def transport(self) -> str:
        return self.encode().transport()

    @classmethod
    def decode(cls, sexp: Sexp, lookup: Optional[PrincipalLookup] = None) -> "Sequence":
        """Convert a sequence of cert, public-key and signature elements.

        A signature naming its principal by hash is resolved first
        against public keys that appear earlier in the sequence, then
        through lookup.
        """
        if head(sexp) != b"sequence":
            raise MalformedExpression("Sequence must be of the form (sequence ELEMENT...)")
        seen: List[PublicKey] = []

        def resolve(h: Hash) -> Optional[PublicKey]:
            for key in seen:
                try:
                    if key.hash_expr(h.algorithm).equal(h):
                        return key
                except SpkiError:
                    continue
            return lookup(h) if lookup is not None else None

        elements: List[SequenceElement] = []
        for item in sexp[1:]:
            kind = head(item)
            if kind == b"cert":
                elements.append(AuthCert.decode(item))
            elif kind == b"public-key":
                key = PublicKey.decode(item)
                seen.append(key)
                elements.append(key)
            elif kind == b"signature":
                elements.append(Signature.decode(item, resolve))
            else:
                raise MalformedExpression(f"Unsupported sequence element {kind!r}")
        logger.debug("Decoded sequence of %d elements", len(elements))
        return cls(elements)

    def __str__(self) -> str:
        return self.encode().advanced()

    def __repr__(self) -> str:
        return f"Sequence({', '.join(type(e).__name__ for e in self.elements)})"
