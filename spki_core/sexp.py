"""
spki_core/sexp.py - Rivest S-expressions

Produces the canonical bytes that SPKI hashes and signs.  Two
implementations encoding the same expression MUST produce
byte-identical output, so pack() has exactly one form:

    atom         <decimal length>:<bytes>
    display hint [<decimal length>:<hint>] before the atom
    list         ( elements... )       no whitespace

advanced() renders the human-readable form (tokens, "quoted strings",
|base64|) and transport() the {base64(canonical)} form.  parse() reads
all three, so anything printed by this module parses back to an equal
expression.

Reference: draft-rivest-sexp-00, RFC 2693 §5
"""

from __future__ import annotations

import base64
import binascii
import string
from typing import Iterator, Optional, Union

from .errors import SexpParseError


_WHITESPACE = b" \t\r\n\f\v"

# Limits on hostile input: list nesting depth and length-prefix digits.
MAX_DEPTH = 100
MAX_LENGTH_DIGITS = 12

_DIGITS = b"0123456789"
_TOKEN_START = frozenset((string.ascii_letters + "-./_:*+=").encode("ascii"))
_TOKEN_CHARS = _TOKEN_START | frozenset(_DIGITS)

_ESCAPES = {
    ord("b"): b"\b",
    ord("t"): b"\t",
    ord("v"): b"\v",
    ord("n"): b"\n",
    ord("f"): b"\f",
    ord("r"): b"\r",
    ord('"'): b'"',
    ord("'"): b"'",
    ord("\\"): b"\\",
}


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

def _verbatim(value: bytes) -> bytes:
    return str(len(value)).encode("ascii") + b":" + value


def _is_token(value: bytes) -> bool:
    if not value or value[0] not in _TOKEN_START:
        return False
    return all(b in _TOKEN_CHARS for b in value)


def _is_printable(value: bytes) -> bool:
    return all(0x20 <= b < 0x7F for b in value)


def _render_simple(value: bytes) -> str:
    if _is_token(value):
        return value.decode("ascii")
    if _is_printable(value):
        escaped = value.decode("ascii").replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return "|" + base64.b64encode(value).decode("ascii") + "|"


class Atom:
    """An octet string, optionally carrying a display hint."""

    __slots__ = ("value", "hint")

    def __init__(self, value: bytes, hint: Optional[bytes] = None):
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"Atom value must be bytes, got {type(value).__name__}")
        if hint is not None and not isinstance(hint, (bytes, bytearray)):
            raise TypeError(f"Atom hint must be bytes, got {type(hint).__name__}")
        object.__setattr__(self, "value", bytes(value))
        object.__setattr__(self, "hint", bytes(hint) if hint is not None else None)

    def __setattr__(self, name, value):
        raise AttributeError("Atom is immutable")

    def pack(self) -> bytes:
        out = _verbatim(self.value)
        if self.hint is not None:
            out = b"[" + _verbatim(self.hint) + b"]" + out
        return out

    def advanced(self) -> str:
        out = _render_simple(self.value)
        if self.hint is not None:
            out = "[" + _render_simple(self.hint) + "]" + out
        return out

    def transport(self) -> str:
        return "{" + base64.b64encode(self.pack()).decode("ascii") + "}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Atom):
            return NotImplemented
        return self.value == other.value and self.hint == other.hint

    def __hash__(self) -> int:
        return hash((Atom, self.value, self.hint))

    def __repr__(self) -> str:
        return f"Atom({self.advanced()})"

    def __str__(self) -> str:
        return self.advanced()


class SexpList:
    """An ordered, immutable list of atoms and lists."""

    __slots__ = ("items",)

    def __init__(self, items=()):
        items = tuple(items)
        for item in items:
            if not isinstance(item, (Atom, SexpList)):
                raise TypeError(
                    f"S-expression list elements must be Atom or SexpList, "
                    f"got {type(item).__name__}"
                )
        object.__setattr__(self, "items", items)

    def __setattr__(self, name, value):
        raise AttributeError("SexpList is immutable")

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator["Sexp"]:
        return iter(self.items)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return SexpList(self.items[index])
        return self.items[index]

    def __add__(self, other) -> "SexpList":
        if isinstance(other, SexpList):
            return SexpList(self.items + other.items)
        return SexpList(self.items + tuple(other))

    def pack(self) -> bytes:
        return b"(" + b"".join(item.pack() for item in self.items) + b")"

    def advanced(self) -> str:
        return "(" + " ".join(item.advanced() for item in self.items) + ")"

    def transport(self) -> str:
        return "{" + base64.b64encode(self.pack()).decode("ascii") + "}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, SexpList):
            return NotImplemented
        return self.items == other.items

    def __hash__(self) -> int:
        return hash((SexpList, self.items))

    def __repr__(self) -> str:
        return f"SexpList({self.advanced()})"

    def __str__(self) -> str:
        return self.advanced()


Sexp = Union[Atom, SexpList]


def atom(value: Union[str, bytes], hint: Union[str, bytes, None] = None) -> Atom:
    """Build an atom from text (UTF-8) or raw bytes."""
    if isinstance(value, str):
        value = value.encode("utf-8")
    if isinstance(hint, str):
        hint = hint.encode("utf-8")
    return Atom(value, hint)


def slist(*items: Sexp) -> SexpList:
    """Build a list from its elements."""
    return SexpList(items)


def is_atom(sexp) -> bool:
    return isinstance(sexp, Atom)


def is_list(sexp) -> bool:
    return isinstance(sexp, SexpList)


def head(sexp) -> Optional[bytes]:
    """Return the value of a list's leading atom, or None."""
    if isinstance(sexp, SexpList) and len(sexp) > 0 and isinstance(sexp[0], Atom):
        return sexp[0].value
    return None


def pack(sexp: Sexp) -> bytes:
    """Canonical bytes of an expression."""
    return sexp.pack()


def equal(a: Sexp, b: Sexp) -> bool:
    """Structural equality (values and display hints)."""
    return a == b


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse(data: Union[bytes, str]) -> Sexp:
    """Parse exactly one expression in canonical, advanced or transport form.

    Raises:
        SexpParseError: If the input is malformed or carries trailing data.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return _Parser(bytes(data)).read_document()


class _Parser:
    """Recursive-descent reader over a byte buffer."""

    def __init__(self, data: bytes, depth: int = 0):
        self.data = data
        self.pos = 0
        self.depth = depth

    def read_document(self) -> Sexp:
        self.skip_whitespace()
        expr = self.read_expr()
        self.skip_whitespace()
        if not self.at_end():
            raise SexpParseError(f"Trailing data at offset {self.pos}")
        return expr

    def enter(self) -> None:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise SexpParseError(f"Nesting deeper than {MAX_DEPTH} at offset {self.pos}")

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def peek(self) -> int:
        if self.at_end():
            raise SexpParseError("Unexpected end of input")
        return self.data[self.pos]

    def expect(self, char: bytes) -> None:
        if self.peek() != char[0]:
            raise SexpParseError(
                f"Expected {char.decode('ascii')!r} at offset {self.pos}"
            )
        self.pos += 1

    def skip_whitespace(self) -> None:
        while not self.at_end() and self.data[self.pos] in _WHITESPACE:
            self.pos += 1

    def read_expr(self) -> Sexp:
        c = self.peek()
        if c == ord("("):
            return self.read_list()
        if c == ord("{"):
            return self.read_transport()
        return self.read_atom()

    def read_list(self) -> SexpList:
        self.expect(b"(")
        self.enter()
        items = []
        while True:
            self.skip_whitespace()
            if self.peek() == ord(")"):
                self.pos += 1
                self.depth -= 1
                return SexpList(items)
            items.append(self.read_expr())

    def read_transport(self) -> Sexp:
        self.expect(b"{")
        self.enter()
        end = self.data.find(b"}", self.pos)
        if end < 0:
            raise SexpParseError("Unterminated transport encoding")
        encoded = self.data[self.pos:end]
        self.pos = end + 1
        expr = _Parser(_b64decode(encoded), self.depth).read_document()
        self.depth -= 1
        return expr

    def read_atom(self) -> Atom:
        hint = None
        if self.peek() == ord("["):
            self.pos += 1
            self.skip_whitespace()
            hint = self.read_simple()
            self.skip_whitespace()
            self.expect(b"]")
            self.skip_whitespace()
        return Atom(self.read_simple(), hint)

    def read_simple(self) -> bytes:
        c = self.peek()
        if c in _DIGITS:
            return self.read_length_prefixed()
        if c == ord('"'):
            return self.read_quoted()
        if c == ord("#"):
            return self.read_hex()
        if c == ord("|"):
            return self.read_base64()
        if c in _TOKEN_START:
            return self.read_token()
        raise SexpParseError(f"Unexpected character {chr(c)!r} at offset {self.pos}")

    def read_length_prefixed(self) -> bytes:
        start = self.pos
        while not self.at_end() and self.data[self.pos] in _DIGITS:
            self.pos += 1
        if self.pos - start > MAX_LENGTH_DIGITS:
            raise SexpParseError(f"Length prefix at offset {start} is too long")
        length = int(self.data[start:self.pos])
        c = self.peek()
        if c == ord(":"):
            self.pos += 1
            if self.pos + length > len(self.data):
                raise SexpParseError(f"Verbatim atom at offset {start} runs past end of input")
            value = self.data[self.pos:self.pos + length]
            self.pos += length
            return value
        if c == ord('"'):
            value = self.read_quoted()
        elif c == ord("#"):
            value = self.read_hex()
        elif c == ord("|"):
            value = self.read_base64()
        else:
            raise SexpParseError(f"Bad length-prefixed atom at offset {start}")
        if len(value) != length:
            raise SexpParseError(
                f"Atom at offset {start} declares {length} octets, holds {len(value)}"
            )
        return value

    def read_token(self) -> bytes:
        start = self.pos
        while not self.at_end() and self.data[self.pos] in _TOKEN_CHARS:
            self.pos += 1
        return self.data[start:self.pos]

    def read_quoted(self) -> bytes:
        start = self.pos
        self.expect(b'"')
        out = bytearray()
        while True:
            c = self.peek()
            self.pos += 1
            if c == ord('"'):
                return bytes(out)
            if c != ord("\\"):
                out.append(c)
                continue
            e = self.peek()
            self.pos += 1
            if e in _ESCAPES:
                out += _ESCAPES[e]
            elif e == ord("x"):
                out.append(self._read_code(2, 16, start))
            elif e in b"01234567":
                self.pos -= 1
                out.append(self._read_code(3, 8, start))
            elif e == ord("\n"):
                if not self.at_end() and self.data[self.pos] == ord("\r"):
                    self.pos += 1
            elif e == ord("\r"):
                if not self.at_end() and self.data[self.pos] == ord("\n"):
                    self.pos += 1
            else:
                raise SexpParseError(f"Bad escape in quoted string at offset {start}")

    def _read_code(self, width: int, base: int, start: int) -> int:
        digits = self.data[self.pos:self.pos + width]
        self.pos += width
        try:
            code = int(digits, base)
        except ValueError:
            raise SexpParseError(f"Bad escape in quoted string at offset {start}")
        if len(digits) != width or code > 0xFF:
            raise SexpParseError(f"Bad escape in quoted string at offset {start}")
        return code

    def _read_delimited(self, delim: bytes) -> bytes:
        start = self.pos
        self.expect(delim)
        end = self.data.find(delim, self.pos)
        if end < 0:
            raise SexpParseError(f"Unterminated {delim.decode('ascii')} atom at offset {start}")
        body = self.data[self.pos:end]
        self.pos = end + 1
        return bytes(b for b in body if b not in _WHITESPACE)

    def read_hex(self) -> bytes:
        body = self._read_delimited(b"#")
        try:
            return binascii.unhexlify(body)
        except (binascii.Error, ValueError):
            raise SexpParseError("Invalid hexadecimal atom")

    def read_base64(self) -> bytes:
        return _b64decode(self._read_delimited(b"|"))


def _b64decode(encoded: bytes) -> bytes:
    cleaned = bytes(b for b in encoded if b not in _WHITESPACE)
    cleaned += b"=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        raise SexpParseError("Invalid base64 data")
