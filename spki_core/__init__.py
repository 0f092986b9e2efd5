"""
SPKI Core - Simple Public Key Infrastructure (RFC 2692, 2693) reference implementation.

Keys, hashes, names, validity intervals, authorization certs,
signatures and sequences, with their canonical S-expression forms.

Call initialize() once at startup, before hashing anything: it builds
the process-wide digest registry.
"""

__version__ = "0.1.0"

from .digests import initialize
from .errors import (
    SpkiError,
    MalformedExpression,
    SexpParseError,
    InvalidHashExpression,
    MalformedKeyExpression,
    MalformedSignatureExpression,
    MalformedCertExpression,
    UnsupportedCurve,
    UnknownAlgorithm,
    UnknownHashAlgorithm,
    NoHashForAlgorithm,
    HashNotFound,
    RegistryNotInitialized,
)
from .sexp import Atom, SexpList, Sexp, atom, slist, parse
from .hash import Hash
from .keys import (
    Key,
    HashKey,
    PublicKey,
    PrivateKey,
    P256_SPEC,
    decode_key,
    is_key,
)
from .name import Name
from .valid import Valid, V0_DATE_FORMAT
from .cert import AuthCert, Subject
from .signature import Signature, PrincipalLookup
from .sequence import Sequence, SequenceElement
from .signing import (
    sign,
    verify,
    resolve_principal,
    make_lookup,
    verify_sequence,
)
