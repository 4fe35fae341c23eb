"""Fail pending payments whose reservation was deleted, cancelled or completed.

Run with: python -m scripts.cleanup_orphaned_payments [--duplicates]
--duplicates also removes pending payments for reservations that already
have a completed payment.
"""

import argparse
import asyncio
import logging

from tennisclub.core.database import async_session_factory
from tennisclub.services.orphans import cleanup_duplicate_payments, cleanup_orphaned_payments


def _print_report(title: str, report) -> None:
    print(f"{title}: {report.examined} examined, {report.cleaned} cleaned, {report.skipped} skipped")
    for item in report.items:
        reason = item.get("reason", "duplicate")
        print(f"  payment {item['payment_id']} (reservation {item['reservation_id']}, {item['amount']:.2f}): {reason}")
    for error in report.errors:
        print(f"  ERROR: {error}")


async def main(duplicates: bool) -> None:
    async with async_session_factory() as db:
        _print_report("Orphaned payments", await cleanup_orphaned_payments(db))
        if duplicates:
            _print_report("Duplicate payments", await cleanup_duplicate_payments(db))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--duplicates", action="store_true", help="also remove duplicate pending payments")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main(args.duplicates))
