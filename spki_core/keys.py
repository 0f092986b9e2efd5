"""
spki_core/keys.py - The Key capability: HashKey, PublicKey, PrivateKey.

Key is a closed sum of exactly three variants.  Every variant answers:

    is_hash()             only a HashKey is "just a hash"
    public_key()          itself, a derived public key, or None
    hashed(alg)           digest bytes of the key under alg
    hash_expr(alg)        the same as a Hash
    signature_algorithm() "ecdsa-sha2", or "" when unknown
    hash_algorithm()      curve name, or "" when unknown
    equal(other)          identity comparison (see below)

Formats (x, y, d are unsigned big-endian octet strings):

    (public-key  (ecdsa-sha2 (curve p256) (x |...|) (y |...|)))
    (private-key (ecdsa-sha2 (curve p256) (x |...|) (y |...|) (d |...|)))

Only ECDSA over p256 and p384 is supported.

KNOWN WEAKNESS: equal() reports two keys as the same key as soon as
their digests coincide under ANY single algorithm both can produce.
Identity therefore relies on the preimage resistance of every
registered digest independently; if one of them is ever broken, key
comparison is broken with it.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Union, final

from . import crypto, digests
from .errors import (
    MalformedKeyExpression,
    NoHashForAlgorithm,
    SpkiError,
    UnknownAlgorithm,
    UnsupportedCurve,
)
from .hash import Hash
from .sexp import Atom, Sexp, SexpList, atom, head, is_atom, is_list, slist

logger = logging.getLogger(__name__)


# Only specifier accepted by PrivateKey.generate().
P256_SPEC = "(ecdsa-sha2 (curve p256))"

SIGNATURE_ALGORITHM = "ecdsa-sha2"


class _Key:
    """Behaviour shared by the three Key variants."""

    __slots__ = ()

    def hashed(self, algorithm: str) -> bytes:
        return self.hash_expr(algorithm).digest

    def __str__(self) -> str:
        return self.encode().advanced()


def _match_any_algorithm(key, other) -> bool:
    # First registered algorithm on which both sides agree decides.
    if other is None:
        return False
    for algorithm in digests.algorithms():
        try:
            if key.hash_expr(algorithm).equal(other.hash_expr(algorithm)):
                return True
        except SpkiError:
            continue
    return False


# ---------------------------------------------------------------------------
# HashKey
# ---------------------------------------------------------------------------

@final
class HashKey(_Key):
    """The hash value(s) of a key, without any key material.

    It can only report its value under its own algorithm(s) and cannot
    sign or verify anything.
    """

    __slots__ = ("hashes",)

    def __init__(self, hashes: Iterable[Hash] = ()):
        self.hashes = tuple(hashes)

    @classmethod
    def decode(cls, sexp: Sexp) -> "HashKey":
        return cls([Hash.decode(sexp)])

    def is_hash(self) -> bool:
        return True

    def public_key(self) -> None:
        return None

    def hash_expr(self, algorithm: str) -> Hash:
        for h in self.hashes:
            if h.algorithm == algorithm:
                return h
        raise NoHashForAlgorithm(f"No hash found for algorithm {algorithm}")

    def signature_algorithm(self) -> str:
        return ""

    def hash_algorithm(self) -> str:
        return ""

    def subject(self) -> SexpList:
        """The first stored hash, in the order the hashes were given."""
        if not self.hashes:
            raise NoHashForAlgorithm("HashKey holds no hash")
        return self.hashes[0].encode()

    def encode(self) -> SexpList:
        return self.subject()

    def equal(self, other) -> bool:
        if other is None:
            return False
        for h in self.hashes:
            try:
                theirs = other.hash_expr(h.algorithm)
            except SpkiError:
                continue
            if h.equal(theirs):
                return True
        return False

    def __repr__(self) -> str:
        return f"HashKey({', '.join(str(h) for h in self.hashes)})"


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------

def _decode_curve(sexp: Sexp) -> str:
    if not is_list(sexp) or len(sexp) != 2 or head(sexp) != b"curve":
        raise MalformedKeyExpression("Curve must be of the form (curve NAME)")
    if not is_atom(sexp[1]):
        raise MalformedKeyExpression("Curve name must be an atom")
    name = sexp[1].value.decode("ascii", errors="replace")
    if name not in crypto.CURVES:
        raise UnsupportedCurve(f"Curve must be either 'p256' or 'p384', got {name!r}")
    return name


def _decode_named_int(name: str, sexp: Sexp) -> int:
    if not is_list(sexp) or len(sexp) != 2:
        raise MalformedKeyExpression(
            f"Named big integer term must be a list ({name} OCTET-STRING)"
        )
    if head(sexp) != name.encode("ascii"):
        raise MalformedKeyExpression(f"Expected term name {name}")
    if not is_atom(sexp[1]):
        raise MalformedKeyExpression(f"Value in ({name} VALUE) must be an atom")
    return crypto.bytes_to_int(sexp[1].value)


def _decode_ecdsa(sexp: Sexp, outer: bytes, names: List[str]):
    kind = outer.decode("ascii")
    if not is_list(sexp):
        raise MalformedKeyExpression("Key S-expression must be a list")
    if len(sexp) != 2:
        raise MalformedKeyExpression("Key S-expression must have two elements")
    if head(sexp) != outer:
        raise MalformedKeyExpression(f"Key S-expression must start with '{kind}'")
    inner = sexp[1]
    if not is_list(inner):
        raise MalformedKeyExpression("ECDSA key S-expression must be a list")
    if len(inner) != 2 + len(names):
        raise MalformedKeyExpression(f"ECDSA key must have {2 + len(names)} elements")
    if head(inner) != SIGNATURE_ALGORITHM.encode("ascii"):
        raise MalformedKeyExpression("ECDSA key S-expression must start with 'ecdsa-sha2'")
    curve = _decode_curve(inner[1])
    values = [_decode_named_int(name, term) for name, term in zip(names, inner[2:])]
    return curve, values


def _encode_ecdsa(outer: str, curve: str, terms) -> SexpList:
    body = [atom(SIGNATURE_ALGORITHM), slist(atom("curve"), atom(curve))]
    for name, value in terms:
        body.append(slist(atom(name), Atom(crypto.int_to_bytes(value))))
    return slist(atom(outer), SexpList(body))


def _check_curve(curve: str) -> None:
    if curve not in crypto.CURVES:
        raise UnsupportedCurve(f"Curve must be either 'p256' or 'p384', got {curve!r}")


# ---------------------------------------------------------------------------
# PublicKey
# ---------------------------------------------------------------------------

@final
class PublicKey(_Key):
    """An ECDSA public point on p256 or p384."""

    __slots__ = ("curve", "x", "y", "_cache")

    def __init__(self, curve: str, x: int, y: int):
        _check_curve(curve)
        self.curve = curve
        self.x = x
        self.y = y
        # Hashes of pack() already computed, by algorithm.
        self._cache = HashKey()

    @classmethod
    def decode(cls, sexp: Sexp) -> "PublicKey":
        """Convert a public-key expression.

        Raises:
            UnsupportedCurve: If the curve is neither p256 nor p384.
            MalformedKeyExpression: For any structural problem.
        """
        curve, (x, y) = _decode_ecdsa(sexp, b"public-key", ["x", "y"])
        return cls(curve, x, y)

    def encode(self) -> SexpList:
        return _encode_ecdsa("public-key", self.curve, [("x", self.x), ("y", self.y)])

    def pack(self) -> bytes:
        return self.encode().pack()

    def is_hash(self) -> bool:
        return False

    def public_key(self) -> "PublicKey":
        return self

    def hash_expr(self, algorithm: str) -> Hash:
        try:
            return self._cache.hash_expr(algorithm)
        except NoHashForAlgorithm:
            pass
        if not digests.valid_hash(algorithm):
            raise UnknownAlgorithm(f"Unknown hash algorithm {algorithm}")
        h = Hash(algorithm=algorithm, digest=digests.digest(algorithm, self.pack()))
        self._cache = HashKey(self._cache.hashes + (h,))
        return h

    def natural_hash(self) -> Hash:
        """Hash under the digest paired with this key's curve."""
        return self.hash_expr(crypto.digest_for_curve(self.curve))

    def subject(self) -> SexpList:
        return self.natural_hash().subject()

    def signature_algorithm(self) -> str:
        return SIGNATURE_ALGORITHM

    def hash_algorithm(self) -> str:
        # The curve name, not a digest name.
        return self.curve

    def equal(self, other) -> bool:
        return _match_any_algorithm(self, other)

    def to_cryptography(self):
        """Return a cryptography EllipticCurvePublicKey.

        Raises ValueError if the point is not on the curve.
        """
        return crypto.public_key_from_numbers(self.curve, self.x, self.y)

    def verify_digest(self, digest: bytes, algorithm: str, r: int, s: int) -> bool:
        try:
            key = self.to_cryptography()
        except ValueError:
            logger.debug("Public key point is not on curve %s", self.curve)
            return False
        return crypto.verify_digest(key, digest, algorithm, r, s)

    def __repr__(self) -> str:
        return f"PublicKey(curve={self.curve!r}, x={self.x:#x}, y={self.y:#x})"


# ---------------------------------------------------------------------------
# PrivateKey
# ---------------------------------------------------------------------------

@final
class PrivateKey(_Key):
    """A full ECDSA private key.

    The stored (x, y) is assumed to match d; public_key() does not
    re-derive the point.  The advanced and canonical forms contain d and
    must never be written to untrusted sinks.
    """

    __slots__ = ("curve", "x", "y", "d", "_public", "_key")

    def __init__(self, curve: str, x: int, y: int, d: int):
        _check_curve(curve)
        self.curve = curve
        self.x = x
        self.y = y
        self.d = d
        self._public = PublicKey(curve, x, y)
        self._key = None

    @classmethod
    def decode(cls, sexp: Sexp) -> "PrivateKey":
        """Convert a private-key expression.

        Raises:
            UnsupportedCurve: If the curve is neither p256 nor p384.
            MalformedKeyExpression: For any structural problem.
        """
        curve, (x, y, d) = _decode_ecdsa(sexp, b"private-key", ["x", "y", "d"])
        return cls(curve, x, y, d)

    @classmethod
    def from_cryptography(cls, key) -> "PrivateKey":
        curve, x, y, d = crypto.private_numbers(key)
        k = cls(curve, x, y, d)
        k._key = key
        return k

    @classmethod
    def generate(cls, spec: str = P256_SPEC) -> "PrivateKey":
        """Generate a new key as specified, e.g. "(ecdsa-sha2 (curve p256))".

        Raises:
            UnknownAlgorithm: For any other specifier.
        """
        if spec != P256_SPEC:
            raise UnknownAlgorithm(f"Unknown algorithm '{spec}'")
        key = cls.from_cryptography(crypto.generate_private_key("p256"))
        logger.debug("Generated new %s private key", key.curve)
        return key

    def encode(self) -> SexpList:
        return _encode_ecdsa(
            "private-key", self.curve, [("x", self.x), ("y", self.y), ("d", self.d)]
        )

    def pack(self) -> bytes:
        return self.encode().pack()

    def is_hash(self) -> bool:
        return False

    def public_key(self) -> PublicKey:
        return self._public

    def hash_expr(self, algorithm: str) -> Hash:
        # Always the public half; the private scalar is never hashed.
        return self._public.hash_expr(algorithm)

    def natural_hash(self) -> Hash:
        return self._public.natural_hash()

    def subject(self) -> SexpList:
        return self._public.subject()

    def signature_algorithm(self) -> str:
        return SIGNATURE_ALGORITHM

    def hash_algorithm(self) -> str:
        return self.curve

    def equal(self, other) -> bool:
        return _match_any_algorithm(self, other)

    def to_cryptography(self):
        if self._key is None:
            self._key = crypto.private_key_from_numbers(self.curve, self.d)
        return self._key

    def sign(self, payload: Sexp):
        """Sign the canonical form of payload.

        The digest algorithm follows the curve: sha256 for p256, sha384
        for p384.

        Returns:
            A Signature whose hash is the payload digest and whose
            principal is this key's public half.
        """
        from .signature import Signature

        algorithm = crypto.digest_for_curve(self.curve)
        value = digests.digest(algorithm, payload.pack())
        r, s = crypto.sign_digest(self.to_cryptography(), value, algorithm)
        logger.debug("Signed %s digest %s...", algorithm, value.hex()[:16])
        return Signature(
            hash=Hash(algorithm=algorithm, digest=value),
            principal=self.public_key(),
            r=r,
            s=s,
        )

    def issue_auth_cert(self, subject, tag: Sexp, validity=None):
        """Issue a delegable authorization cert from this key to subject.

        Callers needing a non-delegable cert build AuthCert directly.
        """
        from .cert import AuthCert
        from .name import Name

        return AuthCert(
            issuer=Name(principal=self.public_key()),
            subject=subject,
            delegate=True,
            valid=validity,
            tag=tag,
        )

    def __repr__(self) -> str:
        return f"PrivateKey(curve={self.curve!r}, x={self.x:#x}, y={self.y:#x})"


Key = Union[HashKey, PublicKey, PrivateKey]


def is_key(obj) -> bool:
    return isinstance(obj, (HashKey, PublicKey, PrivateKey))


def decode_key(sexp: Sexp) -> Key:
    """Convert a public-key, private-key or hash expression to a Key."""
    kind = head(sexp)
    if kind == b"public-key":
        return PublicKey.decode(sexp)
    if kind == b"private-key":
        return PrivateKey.decode(sexp)
    if kind == b"hash":
        return HashKey.decode(sexp)
    raise MalformedKeyExpression("Key must be a public key, private key or hash")
