"""
spki_core/errors.py - Exception taxonomy.

Every decode and compute failure in this package is a subclass of
SpkiError, itself a ValueError, so callers that already catch
ValueError around parsing keep working.  Nothing here is fatal to the
process; callers decide what a failure means.
"""

from __future__ import annotations


class SpkiError(ValueError):
    """Base class for all SPKI decode and compute errors."""


# ---------------------------------------------------------------------------
# Structural errors
# ---------------------------------------------------------------------------

class MalformedExpression(SpkiError):
    """An S-expression has the wrong shape, arity or leading atom."""


class SexpParseError(MalformedExpression):
    """Input bytes are not a well-formed S-expression."""


class InvalidHashExpression(MalformedExpression):
    """Not a valid (hash ALGORITHM DIGEST [URIS]) expression."""


class MalformedKeyExpression(MalformedExpression):
    """Not a valid public-key or private-key expression."""


class MalformedSignatureExpression(MalformedExpression):
    """Not a valid signature expression."""


class MalformedCertExpression(MalformedExpression):
    """Not a valid cert, name or valid expression."""


# ---------------------------------------------------------------------------
# Algorithm and lookup errors
# ---------------------------------------------------------------------------

class UnsupportedCurve(SpkiError):
    """Curve is neither p256 nor p384."""


class UnknownAlgorithm(SpkiError):
    """Digest or signature algorithm is not registered."""


class UnknownHashAlgorithm(InvalidHashExpression, UnknownAlgorithm):
    """A hash expression names a digest the registry does not know."""


class NoHashForAlgorithm(SpkiError):
    """A HashKey holds no digest under the requested algorithm."""


class HashNotFound(SpkiError):
    """A signature principal given by hash could not be resolved."""

    def __init__(self, hash):
        self.hash = hash
        super().__init__(f"Hash value {hash} not found")


class RegistryNotInitialized(RuntimeError):
    """The digest registry was used before spki_core.initialize()."""
