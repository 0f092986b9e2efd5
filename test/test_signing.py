"""
test/test_signing.py - Certificate, signature and sequence test suite

Requires: pydantic, cryptography

Run: pytest test/test_signing.py -v
  or: python test/test_signing.py

Test structure:
  1. Authorization certificates
  2. Signatures (sign, verify, tamper detection)
  3. Principal resolution by hash
  4. Sequences
"""

import os
import sys

# Add parent to path for direct execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime

from cryptography.hazmat.primitives.asymmetric import ec

import spki_core
from spki_core import (
    # Values
    AuthCert, Hash, HashKey, Name, PrivateKey, PublicKey, Sequence, Signature, Valid,
    # Pipeline
    sign, verify, resolve_principal, make_lookup, verify_sequence,
    # S-expressions
    atom, slist, parse,
    # Errors
    HashNotFound, MalformedExpression,
    MalformedSignatureExpression,
)

spki_core.initialize()


# ==================================================================
# Helpers
# ==================================================================

TAG = "(tag (ftp ftp.example.com (* set read write)))"
PAYLOAD = "(amount eleven)"


def make_key() -> PrivateKey:
    return PrivateKey.generate()


def make_cert(issuer: PrivateKey = None, subject=None, **kwargs) -> AuthCert:
    issuer = issuer or make_key()
    subject = subject or make_key().public_key()
    return issuer.issue_auth_cert(subject, parse(TAG), **kwargs)


# ==================================================================
# 1. Authorization certificates
# ==================================================================

def test_issue_auth_cert():
    issuer = make_key()
    subject = make_key().public_key()
    cert = issuer.issue_auth_cert(subject, parse(TAG))
    assert cert.delegate
    assert cert.issuer.is_principal()
    assert cert.issuer.principal.equal(issuer)
    assert cert.valid is None
    assert cert.original_expr is None

    expected = slist(
        atom("cert"),
        slist(atom("issuer"), issuer.public_key().encode()),
        slist(atom("subject"), subject.subject()),
        slist(atom("delegate")),
        parse(TAG),
    )
    assert cert.encode() == expected
    assert cert.certificate() == expected
    assert cert.pack() == expected.pack()
    print("  PASS: test_issue_auth_cert")


def test_issued_cert_signature_verifies():
    issuer = make_key()
    cert = make_cert(issuer)
    sig = issuer.sign(cert.encode())
    assert sig.verify(cert.encode())
    assert sig.principal.equal(issuer)
    print("  PASS: test_issued_cert_signature_verifies")


def test_cert_with_validity():
    valid = Valid(not_before=datetime(2014, 1, 1), not_after=datetime(2014, 12, 31, 23, 59, 59))
    cert = make_cert(validity=valid)
    encoded = cert.encode()
    assert encoded[-1] == valid.encode()
    assert encoded[-2] == parse(TAG)
    decoded = AuthCert.decode(parse(cert.pack()))
    assert decoded.valid == valid
    print("  PASS: test_cert_with_validity")


def test_cert_non_delegable():
    issuer = make_key()
    cert = AuthCert(
        issuer=Name(principal=issuer.public_key()),
        subject=make_key().public_key(),
        tag=parse(TAG),
    )
    assert slist(atom("delegate")) not in list(cert.encode())
    assert len(cert.encode()) == 4
    assert not AuthCert.decode(cert.encode()).delegate
    print("  PASS: test_cert_non_delegable")


def test_cert_decode():
    issuer = make_key()
    subject = make_key().public_key()
    cert = make_cert(issuer, subject)
    expr = parse(cert.pack())
    decoded = AuthCert.decode(expr)

    assert decoded.original_expr is expr
    assert decoded.encode() is expr
    assert decoded.delegate
    assert decoded.issuer.principal.equal(issuer)
    # The subject travelled by hash.
    assert isinstance(decoded.subject, Hash)
    assert decoded.subject == subject.natural_hash()
    assert decoded.tag == parse(TAG)
    print("  PASS: test_cert_decode")


def test_cert_decode_keeps_original_bytes():
    """A parsed cert re-encodes to exactly the bytes that were signed."""
    issuer = make_key()
    subject = make_key().public_key()
    # Subject given as a full key rather than its hash: synthesis
    # would write the hash, so only the original reproduces the bytes.
    expr = slist(
        atom("cert"),
        slist(atom("issuer"), issuer.public_key().encode()),
        slist(atom("subject"), subject.encode()),
        parse(TAG),
    )
    sig = issuer.sign(expr)

    decoded = AuthCert.decode(parse(expr.pack()))
    assert isinstance(decoded.subject, PublicKey)
    assert decoded.pack() == expr.pack()
    assert sig.verify(decoded.encode())

    rebuilt = AuthCert(
        issuer=decoded.issuer,
        subject=decoded.subject,
        delegate=decoded.delegate,
        valid=decoded.valid,
        tag=decoded.tag,
    )
    assert rebuilt.pack() != expr.pack()
    assert not sig.verify(rebuilt.encode())
    print("  PASS: test_cert_decode_keeps_original_bytes")


def test_cert_decode_rejects_malformed():
    h = make_key().public_key().natural_hash()
    subject = slist(atom("subject"), h.encode())
    issuer = slist(atom("issuer"), atom("Self"))
    tag = parse(TAG)
    bad = [
        atom("cert"),
        slist(atom("cert"), issuer, subject),
        slist(atom("crt"), issuer, subject, tag),
        slist(atom("cert"), subject, issuer, tag),
        slist(atom("cert"), issuer, subject, slist(atom("delegate"))),
        slist(atom("cert"), issuer, subject, tag, tag),
        slist(atom("cert"), slist(atom("issuer")), subject, tag),
        slist(atom("cert"), issuer, slist(atom("subject"), make_key().encode()), tag),
    ]
    for expr in bad:
        try:
            AuthCert.decode(expr)
            assert False, f"Should reject {expr}"
        except MalformedExpression:
            pass
    print("  PASS: test_cert_decode_rejects_malformed")


# ==================================================================
# 2. Signatures
# ==================================================================

def test_sign_and_verify():
    key = make_key()
    payload = parse("(document (title \"quarterly report\") (body |AAECAw==|))")
    sig = sign(key, payload)
    assert sig.hash.algorithm == "sha256"
    assert sig.hash == Hash.of("sha256", payload.pack())
    assert verify(sig, payload)
    print("  PASS: test_sign_and_verify")


def test_verify_detects_tampered_payload():
    key = make_key()
    payload = parse(PAYLOAD)
    sig = sign(key, payload)
    assert not verify(sig, parse("(amount twelve)"))
    print("  PASS: test_verify_detects_tampered_payload")


def test_verify_detects_wrong_signer():
    key = make_key()
    payload = parse(PAYLOAD)
    sig = sign(key, payload)
    forged = Signature(hash=sig.hash, principal=make_key().public_key(), r=sig.r, s=sig.s)
    assert not verify(forged, payload)
    print("  PASS: test_verify_detects_wrong_signer")


def test_verify_detects_tampered_values():
    key = make_key()
    payload = parse(PAYLOAD)
    sig = sign(key, payload)
    for r, s in [(sig.r + 1, sig.s), (sig.r, sig.s + 1), (sig.s, sig.r), (0, 0)]:
        bad = Signature(hash=sig.hash, principal=sig.principal, r=r, s=s)
        assert not verify(bad, payload)
    print("  PASS: test_verify_detects_tampered_values")


def test_verify_rejects_digest_not_matching_curve():
    key = make_key()
    payload = parse(PAYLOAD)
    sig = sign(key, payload)
    other = Signature(
        hash=Hash.of("sha384", payload.pack()), principal=sig.principal, r=sig.r, s=sig.s
    )
    assert not verify(other, payload)
    print("  PASS: test_verify_rejects_digest_not_matching_curve")


def test_sign_p384():
    key = PrivateKey.from_cryptography(ec.generate_private_key(ec.SECP384R1()))
    payload = parse(PAYLOAD)
    sig = sign(key, payload)
    assert sig.hash.algorithm == "sha384"
    assert verify(sig, payload)
    print("  PASS: test_sign_p384")


def test_sign_with_decoded_key():
    key = make_key()
    restored = PrivateKey.decode(parse(str(key)))
    payload = parse(PAYLOAD)
    sig = restored.sign(payload)
    assert verify(sig, payload)
    assert sig.principal.equal(key.public_key())
    print("  PASS: test_sign_with_decoded_key")


def test_signature_round_trip():
    key = make_key()
    payload = parse(PAYLOAD)
    sig = sign(key, payload)
    decoded = Signature.decode(parse(sig.pack()))
    assert decoded.hash == sig.hash
    assert decoded.principal.equal(sig.principal)
    assert (decoded.r, decoded.s) == (sig.r, sig.s)
    assert decoded.pack() == sig.pack()
    assert verify(decoded, payload)
    print("  PASS: test_signature_round_trip")


def test_signature_decode_reads_r_and_s_separately():
    pub = make_key().public_key()
    h = Hash.of("sha256", b"payload")
    expr = slist(
        atom("signature"), h.encode(), pub.encode(),
        parse("(ecdsa-sha2 (r #01#) (s #0203#))"),
    )
    sig = Signature.decode(expr)
    assert sig.r == 1
    assert sig.s == 0x0203
    print("  PASS: test_signature_decode_reads_r_and_s_separately")


def test_signature_rejects_negative_values():
    try:
        Signature(hash=Hash.of("sha256", b"x"), principal=make_key().public_key(), r=-1, s=1)
        assert False, "Should reject negative r"
    except ValueError:
        pass
    print("  PASS: test_signature_rejects_negative_values")


def test_signature_decode_rejects_malformed():
    sig = sign(make_key(), parse(PAYLOAD))
    base = sig.encode()
    value = base[3]
    bad = [
        atom("signature"),
        base[:3],
        base + slist(atom("extra")),
        slist(atom("signatur"), *base[1:]),
        slist(base[0], base[1], atom("Self"), value),
        slist(base[0], base[1], slist(atom("public-key")), value),
        slist(base[0], base[1], base[2], slist(atom("rsa-pkcs1"), value[1], value[2])),
        slist(base[0], base[1], base[2], slist(value[0], value[2], value[1])),
        slist(base[0], base[1], base[2], slist(value[0], value[1])),
        slist(base[0], base[1], base[2], slist(value[0], value[1], slist(atom("s"), slist()))),
    ]
    for expr in bad:
        try:
            Signature.decode(expr)
            assert False, f"Should reject {expr}"
        except MalformedSignatureExpression:
            pass
    print("  PASS: test_signature_decode_rejects_malformed")


# ==================================================================
# 3. Principal resolution by hash
# ==================================================================

def test_hash_principal_without_lookup():
    key = make_key()
    sig = sign(key, parse(PAYLOAD))
    expr = sig.encode(hash_principal=True)
    assert expr[2] == key.public_key().natural_hash().encode()
    try:
        Signature.decode(expr)
        assert False, "Should fail without a lookup"
    except HashNotFound as e:
        assert e.hash == key.public_key().natural_hash()
        assert "not found" in str(e)
    print("  PASS: test_hash_principal_without_lookup")


def test_hash_principal_with_lookup():
    key = make_key()
    payload = parse(PAYLOAD)
    sig = sign(key, payload)
    expr = sig.encode(hash_principal=True)
    lookup = make_lookup([make_key().public_key(), key.public_key()])
    decoded = Signature.decode(expr, lookup)
    assert decoded.principal.equal(key)
    assert verify(decoded, payload)
    print("  PASS: test_hash_principal_with_lookup")


def test_hash_principal_lookup_called_once():
    key = make_key()
    sig = sign(key, parse(PAYLOAD))
    calls = []

    def lookup(h):
        calls.append(h)
        return None

    try:
        Signature.decode(sig.encode(hash_principal=True), lookup)
        assert False, "Should fail when lookup finds nothing"
    except HashNotFound:
        pass
    assert calls == [key.public_key().natural_hash()]
    print("  PASS: test_hash_principal_lookup_called_once")


def test_resolve_principal():
    pub = make_key().public_key()
    resolved = resolve_principal(pub.encode())
    assert isinstance(resolved, PublicKey)
    assert resolved.equal(pub)
    assert resolve_principal(pub.hash_expr("sha512").encode(), make_lookup([pub])) is pub
    try:
        resolve_principal(parse("(name Self alice)"))
        assert False, "Should reject a name as principal"
    except MalformedSignatureExpression:
        pass
    print("  PASS: test_resolve_principal")


def test_lookup_returning_private_key_or_hash():
    key = make_key()
    sig = sign(key, parse(PAYLOAD))
    expr = sig.encode(hash_principal=True)

    decoded = Signature.decode(expr, lambda h: key)
    assert isinstance(decoded.principal, PublicKey)
    assert decoded.principal is key.public_key()
    assert verify(decoded, parse(PAYLOAD))

    for wrong in [HashKey([key.public_key().natural_hash()]), "not a key"]:
        try:
            Signature.decode(expr, lambda h: wrong)
            assert False, f"Should reject lookup result {wrong!r}"
        except MalformedSignatureExpression:
            pass
    print("  PASS: test_lookup_returning_private_key_or_hash")


def test_make_lookup():
    key = make_key()
    pub = key.public_key()
    # Private keys are indexed by their public half.
    lookup = make_lookup([key])
    for algorithm in spki_core.digests.algorithms():
        assert lookup(pub.hash_expr(algorithm)) is pub
    assert lookup(Hash.of("sha256", b"nobody")) is None
    assert lookup(HashKey([pub.natural_hash()]).hash_expr("sha256")) is pub
    print("  PASS: test_make_lookup")


# ==================================================================
# 4. Sequences
# ==================================================================

def make_proof():
    issuer = make_key()
    cert = make_cert(issuer)
    sig = issuer.sign(cert.encode())
    return issuer, cert, sig


def test_sequence_encode():
    issuer, cert, sig = make_proof()
    seq = Sequence([issuer.public_key(), cert, sig])
    assert len(seq) == 3
    assert seq[1] is cert
    assert list(seq) == [issuer.public_key(), cert, sig]
    expr = seq.encode()
    assert expr[0] == atom("sequence")
    assert expr[1:] == slist(issuer.public_key().encode(), cert.encode(), sig.encode())
    assert repr(seq) == "Sequence(PublicKey, AuthCert, Signature)"
    print("  PASS: test_sequence_encode")


def test_sequence_decode_and_verify():
    issuer, cert, sig = make_proof()
    seq = Sequence([issuer.public_key(), cert, sig])
    decoded = Sequence.decode(parse(seq.transport()))
    assert [type(e) for e in decoded] == [PublicKey, AuthCert, Signature]
    assert decoded.pack() == seq.pack()

    result = verify_sequence(decoded)
    assert result["valid"], result["errors"]
    assert result["total_elements"] == 3
    assert result["signatures"] == 1
    assert result["errors"] == []
    print("  PASS: test_sequence_decode_and_verify")


def test_sequence_resolves_hash_principal_from_earlier_key():
    issuer, cert, sig = make_proof()
    expr = slist(
        atom("sequence"),
        issuer.public_key().encode(),
        cert.encode(),
        sig.encode(hash_principal=True),
    )
    decoded = Sequence.decode(parse(expr.pack()))
    assert decoded[2].principal.equal(issuer)
    assert verify_sequence(decoded)["valid"]
    print("  PASS: test_sequence_resolves_hash_principal_from_earlier_key")


def test_sequence_hash_principal_falls_back_to_lookup():
    issuer, cert, sig = make_proof()
    expr = slist(atom("sequence"), cert.encode(), sig.encode(hash_principal=True))
    try:
        Sequence.decode(expr)
        assert False, "Should fail without the signer's key"
    except HashNotFound:
        pass
    decoded = Sequence.decode(expr, make_lookup([issuer.public_key()]))
    assert verify_sequence(decoded)["valid"]
    print("  PASS: test_sequence_hash_principal_falls_back_to_lookup")


def test_sequence_detects_tampering():
    issuer, cert, sig = make_proof()
    other = make_cert(issuer)
    result = verify_sequence(Sequence([other, sig]))
    assert not result["valid"]
    assert result["errors"] == ["element 1: signature verification failed"]
    print("  PASS: test_sequence_detects_tampering")


def test_sequence_signature_placement():
    issuer, cert, sig = make_proof()
    result = verify_sequence(Sequence([sig, cert]))
    assert not result["valid"]
    assert "does not follow" in result["errors"][0]

    result = verify_sequence(Sequence([cert, sig, sig]))
    assert not result["valid"]
    assert result["signatures"] == 2
    assert len(result["errors"]) == 1

    result = verify_sequence(Sequence([cert]))
    assert not result["valid"]
    assert result["errors"] == ["sequence carries no signature"]
    print("  PASS: test_sequence_signature_placement")


def test_sequence_decode_rejects_unknown_elements():
    for text in ["(sequenc)", "(sequence (foo))", "(sequence bar)", "sequence"]:
        try:
            Sequence.decode(parse(text))
            assert False, f"Should reject {text}"
        except MalformedExpression:
            pass
    assert len(Sequence.decode(parse("(sequence)"))) == 0
    print("  PASS: test_sequence_decode_rejects_unknown_elements")


# ==================================================================
# Runner
# ==================================================================

def run_all():
    print("=" * 60)
    print("SPKI Signing Test Suite")
    print("=" * 60)

    print("\n--- 1. Authorization Certificates ---")
    test_issue_auth_cert()
    test_issued_cert_signature_verifies()
    test_cert_with_validity()
    test_cert_non_delegable()
    test_cert_decode()
    test_cert_decode_keeps_original_bytes()
    test_cert_decode_rejects_malformed()

    print("\n--- 2. Signatures ---")
    test_sign_and_verify()
    test_verify_detects_tampered_payload()
    test_verify_detects_wrong_signer()
    test_verify_detects_tampered_values()
    test_verify_rejects_digest_not_matching_curve()
    test_sign_p384()
    test_sign_with_decoded_key()
    test_signature_round_trip()
    test_signature_decode_reads_r_and_s_separately()
    test_signature_rejects_negative_values()
    test_signature_decode_rejects_malformed()

    print("\n--- 3. Principal Resolution ---")
    test_hash_principal_without_lookup()
    test_hash_principal_with_lookup()
    test_hash_principal_lookup_called_once()
    test_resolve_principal()
    test_lookup_returning_private_key_or_hash()
    test_make_lookup()

    print("\n--- 4. Sequences ---")
    test_sequence_encode()
    test_sequence_decode_and_verify()
    test_sequence_resolves_hash_principal_from_earlier_key()
    test_sequence_hash_principal_falls_back_to_lookup()
    test_sequence_detects_tampering()
    test_sequence_signature_placement()
    test_sequence_decode_rejects_unknown_elements()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED")
    print("=" * 60)


if __name__ == "__main__":
    run_all()
