#!/usr/bin/env python3
import asyncio
from argparse import ArgumentParser
from datetime import date
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from finrecur.services.backfill import local_today, preview_backfill
from finrecur.services.stores import SqlRuleStore


async def amain(owner_id: str, today: date, show_dates: bool) -> None:
    rules = await SqlRuleStore().fetch_rules_for_owner(owner_id)
    if not rules:
        print(f"No recurring rules for owner {owner_id}")
        return
    total = 0
    for rule in rules:
        preview = preview_backfill(rule, today)
        total += preview.count
        last = rule.last_generated_date.isoformat() if rule.last_generated_date else "never"
        print(f"{rule.id:<24} {rule.frequency:<8} pending: {preview.count:>4} (last generated: {last})")
        if show_dates:
            for d in preview.dates:
                print(f"    {d.isoformat()}")
    print(f"Total pending: {total}")


def main():
    p = ArgumentParser(description="Show occurrences a backfill would generate (dry run)")
    p.add_argument("--owner", required=True)
    p.add_argument("--today", default=None, help="YYYY-MM-DD, defaults to today")
    p.add_argument("--dates", action="store_true", help="List every pending date")
    args = p.parse_args()
    today = date.fromisoformat(args.today) if args.today else local_today()
    asyncio.run(amain(args.owner, today, args.dates))


if __name__ == "__main__":
    main()
