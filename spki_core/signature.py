"""
spki_core/signature.py - ECDSA signatures.

    (signature (hash sha256 |...|) PRINCIPAL (ecdsa-sha2 (r |...|) (s |...|)))

PRINCIPAL is either the signer's public key or the hash of it.  A hash
principal is resolved through a caller-supplied lookup; the lookup is
called at most once per signature and never retried.
"""

import logging
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from . import crypto, digests
from .errors import (
    HashNotFound,
    MalformedKeyExpression,
    MalformedSignatureExpression,
    UnsupportedCurve,
)
from .hash import Hash
from .keys import SIGNATURE_ALGORITHM, PublicKey, is_key
from .sexp import Atom, Sexp, SexpList, atom, head, is_atom, is_list, slist

logger = logging.getLogger(__name__)


PrincipalLookup = Callable[[Hash], Optional[PublicKey]]


class Signature(BaseModel):
    """An ECDSA signature over the hash of some canonical payload."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    hash: Hash
    principal: PublicKey
    r: int
    s: int

    @field_validator("r", "s")
    @classmethod
    def validate_unsigned(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Signature values must be unsigned")
        return v

    @classmethod
    def decode(cls, sexp: Sexp, lookup: Optional[PrincipalLookup] = None) -> "Signature":
        """Convert a signature expression.

        Raises:
            HashNotFound: If PRINCIPAL is a hash and lookup is None or
                          returns None.
            MalformedSignatureExpression: For any structural problem.
        """
        if not is_list(sexp) or len(sexp) != 4 or head(sexp) != b"signature":
            raise MalformedSignatureExpression(
                "Signature S-expression must be of the form "
                "(signature (hash ALG |...|) PRINCIPAL (ecdsa-sha2 (r |...|) (s |...|)))"
            )
        digest = Hash.decode(sexp[1])
        principal = resolve_principal(sexp[2], lookup)
        r, s = _decode_value(sexp[3])
        return cls(hash=digest, principal=principal, r=r, s=s)

    def encode(self, hash_principal: bool = False) -> SexpList:
        """Render the signature; with hash_principal, name the signer by hash."""
        if hash_principal:
            principal = self.principal.natural_hash().encode()
        else:
            principal = self.principal.encode()
        value = slist(
            atom(SIGNATURE_ALGORITHM),
            slist(atom("r"), Atom(crypto.int_to_bytes(self.r))),
            slist(atom("s"), Atom(crypto.int_to_bytes(self.s))),
        )
        return slist(atom("signature"), self.hash.encode(), principal, value)

    def pack(self) -> bytes:
        return self.encode().pack()

    def verify(self, payload: Sexp) -> bool:
        """Check that this signature covers payload.

        The payload's canonical digest must equal the signed hash, and
        (r, s) must verify against that digest under the principal.
        """
        algorithm = self.hash.algorithm
        try:
            expected = crypto.digest_for_curve(self.principal.curve)
        except UnsupportedCurve:
            return False
        if algorithm != expected:
            logger.debug("Signature hash %s does not match curve %s", algorithm, self.principal.curve)
            return False
        if digests.digest(algorithm, payload.pack()) != self.hash.digest:
            logger.debug("Payload digest does not match signed hash")
            return False
        ok = self.principal.verify_digest(self.hash.digest, algorithm, self.r, self.s)
        logger.debug("ECDSA verification %s", "passed" if ok else "failed")
        return ok

    def __str__(self) -> str:
        return self.encode().advanced()


def resolve_principal(sexp: Sexp, lookup: Optional[PrincipalLookup] = None) -> PublicKey:
    """Return the public key named by a signature's PRINCIPAL term."""
    kind = head(sexp)
    if kind == b"hash":
        principal_hash = Hash.decode(sexp)
        key = lookup(principal_hash) if lookup is not None else None
        if key is None:
            raise HashNotFound(principal_hash)
        # A lookup may hand back a private key; only its public half signs.
        public = key.public_key() if is_key(key) else None
        if public is None:
            raise MalformedSignatureExpression(
                f"Lookup for {principal_hash} returned {type(key).__name__}, not a key with a public half"
            )
        logger.debug("Resolved signature principal %s", principal_hash)
        return public
    if kind == b"public-key":
        try:
            return PublicKey.decode(sexp)
        except MalformedKeyExpression as e:
            raise MalformedSignatureExpression(f"Bad signature principal: {e}") from e
    raise MalformedSignatureExpression("Principal must be either a hash or a public key")


def _decode_value(sexp: Sexp):
    if not is_list(sexp) or len(sexp) != 3:
        raise MalformedSignatureExpression(
            "Signature value must be of the form (ecdsa-sha2 (r |...|) (s |...|))"
        )
    if head(sexp) != SIGNATURE_ALGORITHM.encode("ascii"):
        raise MalformedSignatureExpression("Signature ID must equal ecdsa-sha2")
    return _decode_term("r", sexp[1]), _decode_term("s", sexp[2])


def _decode_term(name: str, sexp: Sexp) -> int:
    if not is_list(sexp) or len(sexp) != 2 or head(sexp) != name.encode("ascii"):
        raise MalformedSignatureExpression(f"Expected ({name} OCTET-STRING)")
    if not is_atom(sexp[1]):
        raise MalformedSignatureExpression(f"Value in ({name} VALUE) must be an atom")
    return crypto.bytes_to_int(sexp[1].value)
