"""
Sequence allocator.

One abstraction for every identifier domain, parameterized by scope:
- day-scoped codes for tickets and shipments (`TKT-YYYYMMDD-NNNNN`)
- series numbers for invoices, sales notes and dispatch guides (`FT74-00000012`)

All scopes use the same atomic counter row. Ticket and shipment codes are
normally allocated inside the sale's own database transaction; this service
covers standalone allocation (post-commit invoice numbering, tooling).
"""

from __future__ import annotations

import logging
from typing import Callable, Tuple

from domain.sequence import (
    SequenceDomain,
    SequenceScope,
    SeriesDocumentType,
    format_daily_code,
    format_series_number,
)
from repositories import sequence_repository

logger = logging.getLogger(__name__)


class SequenceAllocator:
    """
    Allocates strictly increasing values per scope.

    Args:
        next_value: function performing the atomic counter increment
            (defaults to the database-backed implementation)
        next_daily: same for day-scoped counters, also returning the date
            key the value was issued under
    """

    def __init__(
        self,
        next_value: Callable[[SequenceScope], int] | None = None,
        next_daily: Callable[[SequenceScope], Tuple[str, int]] | None = None,
    ) -> None:
        self._next_value = next_value or sequence_repository.next_value
        self._next_daily = next_daily or sequence_repository.next_daily

    def allocate(self, scope: SequenceScope) -> int:
        """
        Raises:
            ConfigurationError: no counter row for the scope (operator defect, not retried)
        """

        value = self._next_value(scope)
        logger.debug("Allocated %s for scope %s/%s", value, scope.scope_key, scope.reset_key)
        return value

    def next_code(self, domain: SequenceDomain, date_key: str) -> str:
        """
        Day-scoped code. A date key older than the counter's current day is
        issued under the current day rather than rejected.
        """

        effective_key, value = self._next_daily(SequenceScope.daily(domain, date_key))
        if effective_key != date_key:
            logger.info(
                "Date key %s rolled forward to %s for %s", date_key, effective_key, SequenceDomain(domain).value
            )
        return format_daily_code(domain, effective_key, value)

    def next_series_number(self, document_type: SeriesDocumentType, series: str) -> Tuple[int, str]:
        """
        Returns:
            (number, full number) e.g. (12, "FT74-00000012")
        """

        number = self.allocate(SequenceScope.series(document_type, series))
        return number, format_series_number(series, number)


__all__ = ["SequenceAllocator"]
