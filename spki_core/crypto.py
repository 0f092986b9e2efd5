"""
spki_core/crypto.py - ECDSA primitives for SPKI keys.

Uses Python `cryptography` library exclusively. No custom crypto.
- ECDSA over NIST P-256 and P-384
- Signatures are computed over a digest the caller has already taken
  (Prehashed), because SPKI signs the hash carried in the signature
- (r, s) travel as unsigned big-endian integers, never DER

All functions are deterministic apart from key generation and the
signing nonce, both of which come from the library's CSPRNG.
"""

from __future__ import annotations

from typing import Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)

from .errors import UnknownAlgorithm, UnsupportedCurve


# ---------------------------------------------------------------------------
# Curves and digests
# ---------------------------------------------------------------------------

CURVES = {
    "p256": ec.SECP256R1,
    "p384": ec.SECP384R1,
}

# Digest paired with each curve for signing and for a key's natural hash.
CURVE_DIGESTS = {
    "p256": "sha256",
    "p384": "sha384",
}

_HASHES = {
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def curve_for(name: str) -> ec.EllipticCurve:
    try:
        return CURVES[name]()
    except KeyError:
        raise UnsupportedCurve(f"Curve must be either 'p256' or 'p384', got {name!r}") from None


def curve_name(curve: ec.EllipticCurve) -> str:
    for name, cls in CURVES.items():
        if isinstance(curve, cls):
            return name
    raise UnsupportedCurve(f"Unsupported curve {curve.name}")


def digest_for_curve(name: str) -> str:
    try:
        return CURVE_DIGESTS[name]
    except KeyError:
        raise UnsupportedCurve(f"Only p256 & p384 are currently supported, got {name!r}") from None


def _prehashed(algorithm: str) -> ec.ECDSA:
    try:
        return ec.ECDSA(Prehashed(_HASHES[algorithm]()))
    except KeyError:
        raise UnknownAlgorithm(f"Unknown hash algorithm {algorithm}") from None


# ---------------------------------------------------------------------------
# Integer encoding
# ---------------------------------------------------------------------------

def int_to_bytes(n: int) -> bytes:
    """Minimal unsigned big-endian encoding; zero encodes as b""."""
    return n.to_bytes((n.bit_length() + 7) // 8, "big")


def bytes_to_int(data: bytes) -> int:
    return int.from_bytes(data, "big")


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------

def generate_private_key(curve: str) -> ec.EllipticCurvePrivateKey:
    """Generate a new ECDSA private key on the named curve."""
    return ec.generate_private_key(curve_for(curve))


def private_key_from_numbers(curve: str, d: int) -> ec.EllipticCurvePrivateKey:
    return ec.derive_private_key(d, curve_for(curve))


def public_key_from_numbers(curve: str, x: int, y: int) -> ec.EllipticCurvePublicKey:
    """Raises ValueError if (x, y) is not a point on the curve."""
    return ec.EllipticCurvePublicNumbers(x, y, curve_for(curve)).public_key()


def private_numbers(key: ec.EllipticCurvePrivateKey) -> Tuple[str, int, int, int]:
    """Return (curve name, x, y, d) for a cryptography private key."""
    numbers = key.private_numbers()
    public = numbers.public_numbers
    return curve_name(key.curve), public.x, public.y, numbers.private_value


# ---------------------------------------------------------------------------
# Signing and verification
# ---------------------------------------------------------------------------

def sign_digest(
    key: ec.EllipticCurvePrivateKey, digest: bytes, algorithm: str
) -> Tuple[int, int]:
    """Sign a precomputed digest. Returns (r, s)."""
    der = key.sign(digest, _prehashed(algorithm))
    return decode_dss_signature(der)


def verify_digest(
    key: ec.EllipticCurvePublicKey, digest: bytes, algorithm: str, r: int, s: int
) -> bool:
    """Verify (r, s) over a precomputed digest. Returns True if valid, False otherwise."""
    try:
        key.verify(encode_dss_signature(r, s), digest, _prehashed(algorithm))
        return True
    except (InvalidSignature, ValueError):
        return False
