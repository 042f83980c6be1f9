#!/usr/bin/env python3
"""
Sequence Counter Provisioning Script

Creates the counter rows every allocation needs. A missing counter makes
sales fail with a configuration error, so run this once per environment
(and again after adding a series). Existing counters are never reset.

Usage:
    python scripts/seed_counters.py
    python scripts/seed_counters.py --series 01:FT75 --series 03:BT75
    python scripts/seed_counters.py --dry-run
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import TransitCoreError, ValidationError
from domain.sequence import (
    DAILY_SEQUENCE_MAX,
    SERIES_SEQUENCE_MAX,
    SequenceDomain,
    SequenceScope,
    SeriesDocumentType,
)
from repositories import sequence_repository

STANDARD_SERIES = [
    (SeriesDocumentType.FACTURA, "FT74"),
    (SeriesDocumentType.BOLETA, "BT74"),
    (SeriesDocumentType.SALES_NOTE, "NV01"),
    (SeriesDocumentType.DISPATCH_GUIDE, "T001"),
]


def parse_series_arg(value: str) -> tuple[SeriesDocumentType, str]:
    """Parse "01:FT75" into (FACTURA, "FT75")."""
    doc_type, _, series = value.partition(":")
    try:
        return SeriesDocumentType(doc_type), series
    except ValueError:
        raise ValidationError(f"Unknown document type in {value!r}", fields={"series": value})


def standard_counters(extra_series: list[tuple[SeriesDocumentType, str]]) -> list[tuple[str, int]]:
    """(scope_key, max_value) for the daily domains and every series."""
    counters = [(domain.value, DAILY_SEQUENCE_MAX) for domain in SequenceDomain]
    for doc_type, series in STANDARD_SERIES + extra_series:
        counters.append((SequenceScope.series(doc_type, series).scope_key, SERIES_SEQUENCE_MAX))
    return counters


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(description="Provision sequence counter rows")
    parser.add_argument(
        "--series",
        action="append",
        default=[],
        help='Additional series counter as "DOCTYPE:SERIES", e.g. 01:FT75 (repeatable)'
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the counters without writing"
    )
    args = parser.parse_args()

    try:
        counters = standard_counters([parse_series_arg(value) for value in args.series])
        existing = {row["scope_key"] for row in ([] if args.dry_run else sequence_repository.list_counters())}

        for scope_key, max_value in counters:
            if scope_key in existing:
                print(f"  exists   {scope_key}")
                continue
            if not args.dry_run:
                sequence_repository.create_counter(scope_key, max_value)
            print(f"  created  {scope_key} (max {max_value})")

        if args.dry_run:
            print("** DRY RUN - No counters were written **")
        return 0

    except TransitCoreError as e:
        print(f"\nERROR: {e.message}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
