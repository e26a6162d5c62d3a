#!/usr/bin/env python3
"""
Rewrite legacy customer_verified errand payments as approved.

    python scripts/normalize_legacy_payments.py [--dry-run]

No ledger postings happen: the commission of those rows was already posted.
"""
import argparse
import asyncio
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from errands.db.database import get_task_session  # noqa: E402
from errands.domain.services.errand_payment_service import ErrandPaymentService  # noqa: E402


async def _run(dry_run: bool) -> int:
    async with get_task_session() as db:
        service = ErrandPaymentService(db)
        legacy = await service.list_legacy_verified()
        print(f"Legacy customer_verified payments: {len(legacy)}")
        for payment in legacy:
            print(f"  #{payment.id} errand={payment.errand_id} total={payment.total_amount}")
        if dry_run or not legacy:
            return 0
        count = await service.normalize_legacy_statuses()
        print(f"✓ Normalized {count} payment(s) to approved")
        return count


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--dry-run", action="store_true", help="only list the rows")
    args = parser.parse_args()

    try:
        asyncio.run(_run(args.dry_run))
    except Exception as e:
        print(f"ERROR: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
