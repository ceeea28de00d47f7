#!/usr/bin/env python3
import asyncio
from pathlib import Path
import sys

# Ensure project root on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from finrecur.db import create_tables
from finrecur.services.rule_loader import iter_rules
from finrecur.services.stores import SqlRuleStore


async def amain(paths: list[str], owner_id: str | None) -> None:
    files = [Path(p) for p in paths]
    missing = [f for f in files if not f.exists()]
    if missing:
        raise FileNotFoundError(f"YAML file not found: {missing[0]}")

    await create_tables()
    store = SqlRuleStore()
    rules = iter_rules(files, owner_id)
    for rule in rules:
        await store.upsert_rule(rule)
        print(f"Saved rule {rule.id} ({rule.frequency}) for {rule.owner_id or '-'}")
    print(f"Imported {len(rules)} recurring rules.")


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Load recurring rules from YAML into the database")
    parser.add_argument("files", nargs="*", default=[str(Path("data/recurring.yaml"))])
    parser.add_argument("--owner", default=None, help="Owner id for rules that do not set one")
    args = parser.parse_args()

    asyncio.run(amain(args.files, args.owner))


if __name__ == "__main__":
    main()
