"""
Domain: sequence scopes and identifier formats (pure).

Contract excerpts relevant here:
- Tickets and shipments carry day-scoped codes `PREFIX-YYYYMMDD-NNNNN`
  (5-digit, zero-padded, reset daily per domain).
- Invoices and dispatch guides use a 4-character series code plus an 8-digit
  zero-padded counter, unscoped by date.
- Values issued under one scope are strictly increasing and never reused.

Every identifier domain is backed by one counter row keyed by `scope_key`.
Day-scoped counters additionally carry a `reset_key` (the date key); the
database restarts the counter at 1 when a newer reset key arrives and keeps
counting under the stored day for an older one. Allocation itself happens
in the database (see repositories/sequence_repository.py).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ValidationError

DAILY_SEQUENCE_WIDTH = 5
DAILY_SEQUENCE_MAX = 10**DAILY_SEQUENCE_WIDTH - 1
SERIES_SEQUENCE_WIDTH = 8
SERIES_SEQUENCE_MAX = 10**SERIES_SEQUENCE_WIDTH - 1

_DAILY_CODE_RE = re.compile(r"^([A-Z]{3})-(\d{8})-(\d{5})$")
_SERIES_RE = re.compile(r"^[A-Z0-9]{4}$")


class SequenceDomain(str, Enum):
    """Day-scoped identifier domains and their code prefixes."""

    TICKET = "TKT"
    SHIPMENT = "ENC"


class SeriesDocumentType(str, Enum):
    """Document types numbered by series counters (electronic document codes)."""

    FACTURA = "01"
    BOLETA = "03"
    DISPATCH_GUIDE = "09"
    SALES_NOTE = "NV"


@dataclass(frozen=True, slots=True)
class SequenceScope:
    """
    Key of one counter row.

    scope_key: counter row identifier ("TKT", "ENC", "01:FT74", ...)
    reset_key: date key for day-scoped counters, None for series counters
    """

    scope_key: str
    reset_key: Optional[str] = None

    @classmethod
    def daily(cls, domain: SequenceDomain, date_key: str) -> "SequenceScope":
        if not re.fullmatch(r"\d{8}", date_key):
            raise ValueError(f"date_key must be YYYYMMDD, got {date_key!r}")
        return cls(scope_key=SequenceDomain(domain).value, reset_key=date_key)

    @classmethod
    def series(cls, document_type: SeriesDocumentType, series: str) -> "SequenceScope":
        validate_series(series)
        return cls(scope_key=f"{SeriesDocumentType(document_type).value}:{series}")

    @property
    def is_daily(self) -> bool:
        return self.reset_key is not None


def validate_series(series: str) -> str:
    if not isinstance(series, str) or not _SERIES_RE.match(series):
        raise ValidationError(
            "Series must be a 4-character code",
            fields={"series": "must match [A-Z0-9]{4}"},
        )
    return series


def format_daily_code(domain: SequenceDomain, date_key: str, sequence_number: int) -> str:
    """
    Compose a day-scoped code.

    Example:
        >>> format_daily_code(SequenceDomain.TICKET, "20260115", 7)
        'TKT-20260115-00007'
    """

    if not 1 <= sequence_number <= DAILY_SEQUENCE_MAX:
        raise ValueError(f"sequence_number out of range: {sequence_number}")
    return f"{SequenceDomain(domain).value}-{date_key}-{sequence_number:0{DAILY_SEQUENCE_WIDTH}d}"


@dataclass(frozen=True, slots=True)
class DailyCode:
    domain: SequenceDomain
    date_key: str
    sequence_number: int

    def __str__(self) -> str:
        return format_daily_code(self.domain, self.date_key, self.sequence_number)


def parse_daily_code(code: str) -> DailyCode:
    """Parse `PREFIX-YYYYMMDD-NNNNN`. Raises ValidationError on malformed input."""

    match = _DAILY_CODE_RE.match(code or "")
    if not match:
        raise ValidationError(f"Malformed code: {code!r}", fields={"code": "invalid format"})
    prefix, key, number = match.groups()
    try:
        domain = SequenceDomain(prefix)
    except ValueError:
        raise ValidationError(f"Unknown code prefix: {prefix}", fields={"code": "unknown prefix"})
    value = int(number)
    if value == 0:
        raise ValidationError(f"Malformed code: {code!r}", fields={"code": "sequence starts at 1"})
    return DailyCode(domain=domain, date_key=key, sequence_number=value)


def format_series_number(series: str, sequence_number: int) -> str:
    """
    Example:
        >>> format_series_number("FT74", 12)
        'FT74-00000012'
    """

    validate_series(series)
    if not 1 <= sequence_number <= SERIES_SEQUENCE_MAX:
        raise ValueError(f"sequence_number out of range: {sequence_number}")
    return f"{series}-{sequence_number:0{SERIES_SEQUENCE_WIDTH}d}"


__all__ = [
    "DAILY_SEQUENCE_WIDTH",
    "DAILY_SEQUENCE_MAX",
    "SERIES_SEQUENCE_WIDTH",
    "SERIES_SEQUENCE_MAX",
    "SequenceDomain",
    "SeriesDocumentType",
    "SequenceScope",
    "DailyCode",
    "validate_series",
    "format_daily_code",
    "parse_daily_code",
    "format_series_number",
]
