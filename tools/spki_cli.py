#!/usr/bin/env python3
"""
SPKI CLI - Key generation, S-expression viewer and sequence verifier.

Usage:
    python -m tools.spki_cli genkey [--out key.sexp] [--public pub.sexp]
    python -m tools.spki_cli show <file> [--canonical | --transport]
    python -m tools.spki_cli verify <sequence file> [--key pub.sexp ...]

Commands:
    genkey  - Generate a P-256 private key (advanced form)
    show    - Render any S-expression file as advanced, canonical or transport text
    verify  - Parse a sequence and check every signature in it
"""

import argparse
import logging
import os
import sys

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import spki_core
from spki_core import (
    P256_SPEC,
    PrivateKey,
    Sequence,
    SpkiError,
    decode_key,
    make_lookup,
    parse,
    verify_sequence,
)

logger = logging.getLogger("spki_cli")


def _read(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _write(path: str, text: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(text + "\n")


# ============================================================
# genkey command
# ============================================================

def cmd_genkey(out: str = None, public: str = None) -> int:
    """Generate a key; print it unless written to a file."""
    key = PrivateKey.generate(P256_SPEC)
    if out:
        _write(out, str(key))
        logger.info("Private key written to %s", out)
    else:
        print(str(key))
    if public:
        _write(public, str(key.public_key()))
        logger.info("Public key written to %s", public)
    return 0


# ============================================================
# show command
# ============================================================

def cmd_show(path: str, form: str = "advanced") -> int:
    expr = parse(_read(path))
    if form == "canonical":
        out = getattr(sys.stdout, "buffer", None)
        if out is None:
            print("  ERROR: stdout does not accept bytes; use --transport")
            return 1
        sys.stdout.flush()
        out.write(expr.pack())
        out.flush()
        print()
    elif form == "transport":
        print(expr.transport())
    else:
        print(expr.advanced())
    return 0


# ============================================================
# verify command
# ============================================================

def cmd_verify(path: str, key_files=()) -> int:
    """Verify every signature in a sequence file. Returns 0 if all pass."""
    keys = []
    for key_file in key_files:
        key = decode_key(parse(_read(key_file)))
        if key.public_key() is None:
            print(f"  ERROR: {key_file} holds a hash, not a key")
            return 1
        keys.append(key.public_key())
    lookup = make_lookup(keys) if keys else None

    sequence = Sequence.decode(parse(_read(path)), lookup)
    result = verify_sequence(sequence)

    print(f"━━━ Sequence Verification ━━━")
    print(f"Elements: {result['total_elements']}  Signatures: {result['signatures']}")
    for index, element in enumerate(sequence):
        print(f"  [{index}] {type(element).__name__}")
    print()
    if result["valid"]:
        print(f"  Result: ✓ VALID ({result['signatures']} signature(s) verified)")
        return 0
    print(f"  Result: ✗ INVALID ({len(result['errors'])} error(s))")
    for e in result["errors"]:
        print(f"    • {e}")
    return 1


# ============================================================
# Main
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SPKI CLI - keys, S-expressions and signature verification",
        prog="python -m tools.spki_cli",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log debug output from the library",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    genkey = commands.add_parser("genkey", help="Generate a P-256 private key")
    genkey.add_argument("--out", "-o", help="Write the private key here instead of stdout")
    genkey.add_argument("--public", "-p", help="Also write the public key here")

    show = commands.add_parser("show", help="Render an S-expression file")
    show.add_argument("file", help="Path to an S-expression in any encoding")
    form = show.add_mutually_exclusive_group()
    form.add_argument("--canonical", "-c", action="store_const", dest="form",
                      const="canonical", help="Write canonical bytes")
    form.add_argument("--transport", "-t", action="store_const", dest="form",
                      const="transport", help="Write base64 transport form")

    verify = commands.add_parser("verify", help="Verify the signatures in a sequence")
    verify.add_argument("file", help="Path to a (sequence ...) file")
    verify.add_argument("--key", "-k", action="append", default=[],
                        help="Public key file used to resolve hash principals (repeatable)")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    spki_core.initialize()

    for path in [getattr(args, "file", None)] + getattr(args, "key", []):
        if path and not os.path.exists(path):
            print(f"  ERROR: File not found: {path}")
            return 1

    try:
        if args.command == "genkey":
            return cmd_genkey(args.out, args.public)
        if args.command == "show":
            return cmd_show(args.file, args.form or "advanced")
        return cmd_verify(args.file, args.key)
    except SpkiError as e:
        print(f"  ERROR: {type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
