#!/usr/bin/env python3
import asyncio
from argparse import ArgumentParser
from datetime import date
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from finrecur.services.backfill import backfill_owner, local_today, preview_backfill
from finrecur.services.stores import SqlRuleStore, SqlTransactionSink


async def amain(owner_id: str, today: date, assume_yes: bool) -> int:
    store = SqlRuleStore()
    rules = await store.fetch_rules_for_owner(owner_id)
    pending = sum(preview_backfill(r, today).count for r in rules)
    if pending == 0:
        print("Done: no new transactions needed.")
        return 0
    if not assume_yes:
        answer = input(f"Generate {pending} transactions for {len(rules)} rules? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1

    summary = await backfill_owner(owner_id, store, SqlTransactionSink(), today)
    for result in summary.results:
        for failure in result.failures:
            print(f"Failed: {failure.key} ({failure.reason})")
    print(f"Rules processed: {summary.rules_processed}, transactions created: {summary.transactions_created}")
    if summary.checkpoint_errors:
        print(f"Checkpoint not saved for: {', '.join(summary.checkpoint_errors)}")
        return 2
    return 0


def main():
    p = ArgumentParser(description="Generate missing recurring transactions for an owner")
    p.add_argument("--owner", required=True)
    p.add_argument("--today", default=None, help="YYYY-MM-DD, defaults to today")
    p.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    args = p.parse_args()
    today = date.fromisoformat(args.today) if args.today else local_today()
    sys.exit(asyncio.run(amain(args.owner, today, args.yes)))


if __name__ == "__main__":
    main()
