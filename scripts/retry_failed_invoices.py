#!/usr/bin/env python3
"""
Invoice Retry Script

Re-dispatches invoices and dispatch guides the request path left in PENDING
or ERROR (gateway down, timeout, crash between insert and submit). Each
document keeps its series and number, so a resubmission is idempotent at the
gateway.

An invoice that already has an external id is looked up at the gateway
first and only resubmitted when the gateway does not know it.

Usage:
    python scripts/retry_failed_invoices.py
    python scripts/retry_failed_invoices.py --limit 200

Schedule via cron (every 15 minutes):
    */15 * * * * cd /app && python scripts/retry_failed_invoices.py
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.invoice import InvoiceRecordStatus
from domain.sale import InvoiceStatus
from repositories import dispatch_guide_repository, invoice_repository
from services.dispatch_guide_service import DispatchGuideService
from services.invoice_service import InvoiceService

logger = logging.getLogger("retry_failed_invoices")


def retry_failed_invoices(
    limit: int,
    service: InvoiceService | None = None,
    guides: DispatchGuideService | None = None,
) -> dict[str, int]:
    """
    Returns:
        Dictionary with statistics: {'attempted', 'issued', 'failed'}
    """
    service = service or InvoiceService()
    guides = guides or DispatchGuideService()
    stats = {"attempted": 0, "issued": 0, "failed": 0}

    for record in invoice_repository.list_retryable(limit):
        stats["attempted"] += 1
        outcome = service.retry(record)
        if outcome.invoice_status == InvoiceStatus.ISSUED:
            stats["issued"] += 1
            print(f"  issued   {record.full_number}")
        else:
            stats["failed"] += 1
            print(f"  failed   {record.full_number}: {'; '.join(outcome.warnings)}")

    for guide in dispatch_guide_repository.list_retryable(limit):
        stats["attempted"] += 1
        guide_outcome = guides.dispatch(guide)
        if guide_outcome.guide.status == InvoiceRecordStatus.ACCEPTED:
            stats["issued"] += 1
            print(f"  issued   {guide.full_number}")
        else:
            stats["failed"] += 1
            print(f"  failed   {guide.full_number}: {'; '.join(guide_outcome.warnings)}")

    return stats


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(description="Retry invoices and dispatch guides left in PENDING/ERROR")
    parser.add_argument("--limit", type=int, default=50, help="Maximum documents of each kind per run (default: 50)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    try:
        stats = retry_failed_invoices(args.limit)
    except KeyboardInterrupt:
        print("\n\nInvoice retry interrupted by user")
        return 130
    except Exception as e:
        logger.exception("Invoice retry failed")
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1

    print()
    print(f"Attempted: {stats['attempted']}  Issued: {stats['issued']}  Failed: {stats['failed']}")
    return 0 if stats["failed"] == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
