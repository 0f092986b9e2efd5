"""
spki_core/hash.py - Hash values.

A Hash is the digest of some object under a named algorithm, plus
optional URIs that may help retrieve the hashed object.  URIs are
advisory: they never take part in equality and are not re-emitted by
encode(), so a hash's canonical form depends on algorithm and digest
alone.

    (hash sha256 |5v5x48LHmVtW1du0iMqdgK+v6/oybSBU/NCYne0XCMw=|)
"""

from typing import Tuple

from pydantic import AnyUrl, BaseModel, ConfigDict, TypeAdapter, ValidationError, model_validator

from . import digests
from .errors import InvalidHashExpression, UnknownHashAlgorithm
from .sexp import Atom, Sexp, SexpList, atom, head, is_atom, is_list, slist


_URL = TypeAdapter(AnyUrl)


class Hash(BaseModel):
    """Digest of a value under a registered algorithm."""

    model_config = ConfigDict(frozen=True)

    algorithm: str
    digest: bytes
    uris: Tuple[AnyUrl, ...] = ()

    @model_validator(mode="after")
    def validate_digest_length(self) -> "Hash":
        size = digests.digest_size(self.algorithm)
        if len(self.digest) != size:
            raise ValueError(
                f"{self.algorithm} digest must be {size} bytes, got {len(self.digest)}"
            )
        return self

    @classmethod
    def of(cls, algorithm: str, data: bytes) -> "Hash":
        """Hash raw bytes under algorithm."""
        return cls(algorithm=algorithm, digest=digests.digest(algorithm, data))

    @classmethod
    def decode(cls, sexp: Sexp) -> "Hash":
        """Convert a (hash ALGORITHM DIGEST [(uris URI...)]) expression.

        Raises:
            UnknownHashAlgorithm: If ALGORITHM is not registered.
            InvalidHashExpression: For any other structural problem.
        """
        if not is_list(sexp) or not 3 <= len(sexp) <= 4 or head(sexp) != b"hash":
            raise InvalidHashExpression("Invalid hash expression")
        algorithm, value = sexp[1], sexp[2]
        if not is_atom(algorithm) or not is_atom(value):
            raise InvalidHashExpression("Invalid hash expression")
        if not digests.valid_hash(algorithm.value):
            raise UnknownHashAlgorithm(
                f"Unknown hash algorithm {algorithm.value!r}"
            )
        name = algorithm.value.decode("ascii")
        if len(value.value) != digests.digest_size(name):
            raise InvalidHashExpression(
                f"{name} digest must be {digests.digest_size(name)} bytes"
            )
        uris: Tuple[AnyUrl, ...] = ()
        if len(sexp) == 4:
            uris = decode_uris(sexp[3])
        return cls(algorithm=name, digest=value.value, uris=uris)

    def encode(self) -> SexpList:
        return slist(atom("hash"), atom(self.algorithm), Atom(self.digest))

    def pack(self) -> bytes:
        return self.encode().pack()

    def subject(self) -> SexpList:
        """A hash may stand as a certificate subject in its own right."""
        return self.encode()

    def equal(self, other) -> bool:
        """Same algorithm and digest; URIs are ignored."""
        if not isinstance(other, Hash):
            return False
        return self.algorithm == other.algorithm and self.digest == other.digest

    def __eq__(self, other) -> bool:
        if not isinstance(other, Hash):
            return NotImplemented
        return self.equal(other)

    def __hash__(self) -> int:
        return hash((self.algorithm, self.digest))

    def __str__(self) -> str:
        return self.encode().advanced()


def decode_uris(sexp: Sexp) -> Tuple[AnyUrl, ...]:
    """Convert a (uris URI...) expression holding at least one URI."""
    if not is_list(sexp) or len(sexp) < 2 or head(sexp) != b"uris":
        raise InvalidHashExpression("Hash URIs must be of the form (uris URI...)")
    uris = []
    for item in sexp[1:]:
        if not is_atom(item):
            raise InvalidHashExpression("URI expected")
        try:
            uris.append(_URL.validate_python(item.value.decode("utf-8")))
        except (UnicodeDecodeError, ValidationError) as e:
            raise InvalidHashExpression(f"Invalid URI {item.value!r}: {e}") from e
    return tuple(uris)
