"""
spki_core/cert.py - Authorization certificates.

    (cert (issuer ISSUER) (subject SUBJECT) [(delegate)] TAG [VALID])

A cert read off the wire keeps the expression it was parsed from, and
encode() hands that back untouched: the signature covers those exact
bytes, and a re-synthesized form is not guaranteed to match them.
Certs built in code have no original expression and are synthesized
canonically from their fields.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, PrivateAttr

from .errors import MalformedCertExpression
from .hash import Hash
from .keys import HashKey, PrivateKey, PublicKey, decode_key
from .name import Name
from .sexp import Atom, Sexp, SexpList, atom, head, is_list, slist
from .valid import Valid


# Anything that can render a subject expression.
Subject = Union[PublicKey, PrivateKey, HashKey, Hash]


class AuthCert(BaseModel):
    """An SPKI authorization certificate."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    issuer: Name
    subject: Subject
    delegate: bool = False
    valid: Optional[Valid] = None
    tag: Union[Atom, SexpList]

    _original_expr: Optional[Sexp] = PrivateAttr(default=None)

    @property
    def original_expr(self) -> Optional[Sexp]:
        """The as-parsed expression, or None for a cert built in code."""
        return self._original_expr

    def encode(self) -> Sexp:
        if self._original_expr is not None:
            return self._original_expr
        terms = [
            atom("cert"),
            slist(atom("issuer"), self.issuer.encode()),
            slist(atom("subject"), self.subject.subject()),
        ]
        if self.delegate:
            terms.append(slist(atom("delegate")))
        terms.append(self.tag)
        if self.valid is not None:
            validity = self.valid.encode()
            if validity is not None:
                terms.append(validity)
        return SexpList(terms)

    def certificate(self) -> Sexp:
        return self.encode()

    def pack(self) -> bytes:
        return self.encode().pack()

    @classmethod
    def decode(cls, sexp: Sexp) -> "AuthCert":
        """Convert a cert expression, remembering it verbatim.

        The subject decodes to a PublicKey or, when given by hash, to a
        Hash.  The first term after issuer, subject and the optional
        (delegate) is the tag; a trailing (valid ...) is the validity.
        """
        if head(sexp) != b"cert" or len(sexp) < 4:
            raise MalformedCertExpression(
                "Cert must be of the form (cert (issuer I) (subject S) [(delegate)] TAG [VALID])"
            )
        issuer_term, subject_term = sexp[1], sexp[2]
        if head(issuer_term) != b"issuer" or len(issuer_term) != 2:
            raise MalformedCertExpression("Cert issuer must be (issuer NAME)")
        if head(subject_term) != b"subject" or len(subject_term) != 2:
            raise MalformedCertExpression("Cert subject must be (subject SUBJECT)")

        rest = list(sexp[3:])
        delegate = False
        if rest and is_list(rest[0]) and len(rest[0]) == 1 and head(rest[0]) == b"delegate":
            delegate = True
            rest.pop(0)
        valid = None
        if rest and head(rest[-1]) == b"valid":
            valid = Valid.decode(rest.pop())
        if len(rest) != 1:
            raise MalformedCertExpression("Cert must carry exactly one tag")

        cert = cls(
            issuer=Name.decode(issuer_term[1]),
            subject=_decode_subject(subject_term[1]),
            delegate=delegate,
            valid=valid,
            tag=rest[0],
        )
        cert._original_expr = sexp
        return cert

    def __str__(self) -> str:
        return self.encode().advanced()


def _decode_subject(sexp: Sexp) -> Subject:
    if head(sexp) == b"hash":
        return Hash.decode(sexp)
    key = decode_key(sexp)
    if isinstance(key, PrivateKey):
        raise MalformedCertExpression("Cert subject must not be a private key")
    return key
