"""
spki_core/name.py - SDSI names.

A Name is a principal plus zero or more names in its namespace:

    K                       the key itself (a principal)
    (name K alice)          a local name
    (name K alice bob)      an extended name (namespace path)

A Name without a principal is the reserved issuer "Self".
"""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .errors import MalformedCertExpression
from .keys import Key, decode_key
from .sexp import Sexp, SexpList, atom, head, is_atom, is_list


SELF = b"Self"


class Name(BaseModel):
    """A principal, a local name or an extended name."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    principal: Optional[Key] = None
    names: Tuple[str, ...] = ()

    def is_principal(self) -> bool:
        """True if the name refers directly to a key and no names under it."""
        return self.principal is not None and not self.names

    def is_local(self) -> bool:
        return len(self.names) <= 1

    def local(self) -> "Name":
        """The local part: (name K a b c) gives (name K a)."""
        if len(self.names) < 2:
            return self
        return Name(principal=self.principal, names=self.names[:1])

    def is_prefix(self, other: Optional["Name"]) -> bool:
        """True if every name both share matches, after the principals.

        Only the overlap is compared, so (name K a) and (name K a b c)
        are prefixes of each other.
        """
        if other is None:
            return False
        if self.principal is not None and not self.principal.equal(other.principal):
            return False
        for mine, theirs in zip(self.names, other.names):
            if mine != theirs:
                return False
        return True

    def equal(self, other: Optional["Name"]) -> bool:
        if other is None:
            return False
        if self.principal is None or other.principal is None:
            if self.principal is not other.principal:
                return False
        elif not self.principal.equal(other.principal):
            return False
        return self.names == other.names

    def encode(self) -> Sexp:
        if self.principal is None:
            issuer = atom(SELF)
        else:
            # A private principal is always written as its public half.
            issuer = (self.principal.public_key() or self.principal).encode()
        if not self.names:
            return issuer
        return SexpList([atom("name"), issuer] + [atom(n) for n in self.names])

    @classmethod
    def decode(cls, sexp: Sexp) -> "Name":
        """Convert Self, a key or hash expression, or (name PRINCIPAL n...)."""
        if head(sexp) != b"name":
            return cls(principal=_decode_principal(sexp))
        if len(sexp) < 3:
            raise MalformedCertExpression("Name must be of the form (name PRINCIPAL NAME...)")
        names = []
        for item in sexp[2:]:
            if not is_atom(item):
                raise MalformedCertExpression("Names must be atoms")
            try:
                names.append(item.value.decode("utf-8"))
            except UnicodeDecodeError as e:
                raise MalformedCertExpression(f"Name {item.value!r} is not UTF-8") from e
        return cls(principal=_decode_principal(sexp[1]), names=names)

    def __str__(self) -> str:
        return self.encode().advanced()


def _decode_principal(sexp: Sexp) -> Optional[Key]:
    if is_atom(sexp):
        if sexp.value == SELF:
            return None
        raise MalformedCertExpression(f"Unexpected atom {sexp.value!r} as principal")
    if not is_list(sexp):
        raise MalformedCertExpression("Principal must be a key or a hash")
    return decode_key(sexp)
