#!/usr/bin/env python3
"""
SPKI Certificate Issuance Demo

Walks one delegation from key generation to verification.

Flow:
  1. Generate an issuer and a subject key
  2. Issue a delegable authorization cert, valid for one year
  3. Sign the cert and bundle key, cert and signature into a sequence
  4. Transport-encode the sequence, re-parse it, verify it
  5. Swap in a forged cert and show verification failing

Run:
    python examples/demo_issue.py
"""

import os
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import spki_core
from spki_core import PrivateKey, Sequence, Valid, parse, verify_sequence


def show_result(label: str, result: dict) -> None:
    mark = "✓" if result["valid"] else "✗"
    print(f"  {mark} {label}: {result['signatures']} signature(s), "
          f"{result['total_elements']} element(s)")
    for e in result["errors"]:
        print(f"      • {e}")


def main():
    spki_core.initialize()

    print("━━━ 1. Keys ━━━")
    issuer = PrivateKey.generate()
    subject = PrivateKey.generate()
    print(f"  Issuer:  {issuer.public_key().natural_hash()}")
    print(f"  Subject: {subject.public_key().natural_hash()}")

    print("\n━━━ 2. Certificate ━━━")
    now = datetime.now(timezone.utc).replace(microsecond=0)
    cert = issuer.issue_auth_cert(
        subject.public_key(),
        parse("(tag (ftp ftp.example.com (* set read write)))"),
        Valid(not_before=now, not_after=now + timedelta(days=365)),
    )
    print(f"  {cert}")

    print("\n━━━ 3. Signature and sequence ━━━")
    sig = issuer.sign(cert.encode())
    seq = Sequence([issuer.public_key(), cert, sig])
    wire = seq.transport()
    print(f"  Transport form: {len(wire)} characters")
    print(f"  {wire[:72]}...")

    print("\n━━━ 4. Verify after transport ━━━")
    received = Sequence.decode(parse(wire))
    show_result("Received sequence", verify_sequence(received))

    print("\n━━━ 5. Forged cert ━━━")
    forged = issuer.issue_auth_cert(
        subject.public_key(),
        parse("(tag (ftp ftp.example.com (* set read write delete)))"),
    )
    show_result("Forged sequence", verify_sequence(Sequence([issuer.public_key(), forged, sig])))


if __name__ == "__main__":
    main()
