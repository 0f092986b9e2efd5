"""
spki_core/valid.py - Certificate validity intervals.

A missing not_before means an infinitely early start; a missing
not_after an infinitely late end.  Timestamps travel in the SPKI v0
format YYYY-MM-DD_HH:MM:SS (UTC), not ISO 8601; existing v0 material
depends on it.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import MalformedCertExpression
from .sexp import Sexp, SexpList, atom, head, is_atom, is_list, slist


V0_DATE_FORMAT = "%Y-%m-%d_%H:%M:%S"


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _later(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return b if a < b else a


def _earlier(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return b if a > b else a


class Valid(BaseModel):
    """A validity interval. Naive datetimes are taken to be UTC."""

    model_config = ConfigDict(frozen=True)

    not_before: Optional[datetime] = None
    not_after: Optional[datetime] = None

    @field_validator("not_before", "not_after")
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _utc(v) if v is not None else None

    def intersect(self, other: "Valid") -> Tuple[bool, "Valid"]:
        """Return (non_empty, intersection).

        An empty intersection comes back as (False, Valid()).
        """
        lower = _later(self.not_before, other.not_before)
        upper = _earlier(self.not_after, other.not_after)
        if lower is not None and upper is not None and lower > upper:
            return False, Valid()
        return True, Valid(not_before=lower, not_after=upper)

    def contains(self, moment: Optional[datetime] = None) -> bool:
        """True if moment (default: now) lies within the interval."""
        moment = _utc(moment) if moment is not None else datetime.now(timezone.utc)
        if self.not_before is not None and moment < self.not_before:
            return False
        if self.not_after is not None and moment > self.not_after:
            return False
        return True

    def encode(self) -> Optional[SexpList]:
        """(valid [(not-before T)] [(not-after T)]), or None if unbounded."""
        terms = [atom("valid")]
        if self.not_before is not None:
            terms.append(slist(atom("not-before"), atom(self.not_before.strftime(V0_DATE_FORMAT))))
        if self.not_after is not None:
            terms.append(slist(atom("not-after"), atom(self.not_after.strftime(V0_DATE_FORMAT))))
        if len(terms) == 1:
            return None
        return SexpList(terms)

    @classmethod
    def decode(cls, sexp: Sexp) -> "Valid":
        if head(sexp) != b"valid" or len(sexp) > 3:
            raise MalformedCertExpression(
                "Validity must be of the form (valid [(not-before T)] [(not-after T)])"
            )
        bounds = {}
        for term in sexp[1:]:
            if not is_list(term) or len(term) != 2 or not is_atom(term[1]):
                raise MalformedCertExpression("Validity term must be (NAME TIMESTAMP)")
            name = head(term)
            if name not in (b"not-before", b"not-after") or name in bounds:
                raise MalformedCertExpression(f"Unexpected validity term {name!r}")
            bounds[name] = _parse_timestamp(term[1].value)
        return cls(not_before=bounds.get(b"not-before"), not_after=bounds.get(b"not-after"))

    def __str__(self) -> str:
        encoded = self.encode()
        return encoded.advanced() if encoded is not None else ""


def _parse_timestamp(value: bytes) -> datetime:
    try:
        return datetime.strptime(value.decode("ascii"), V0_DATE_FORMAT).replace(
            tzinfo=timezone.utc
        )
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedCertExpression(f"Bad timestamp {value!r}") from e
