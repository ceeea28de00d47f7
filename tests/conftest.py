from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from finrecur import models  # noqa: F401  registers tables on Base
from finrecur.db import Base, make_sessionmaker
from finrecur.services.backfill import LedgerEntry, PersistOutcome
from finrecur.services.rules import RecurrenceRule


def _make_rule(**overrides) -> RecurrenceRule:
    data = {
        "id": "r1",
        "owner_id": "u1",
        "start_date": date(2024, 1, 1),
        "frequency": "monthly",
        "type": "expense",
        "amount": "100",
        "account_id": "a1",
        "category": "c1",
    }
    data.update(overrides)
    return RecurrenceRule.model_validate(data)


class FakeRuleStore:
    def __init__(self, rules=(), fail_checkpoint: bool = False):
        self.rules = {r.id: r for r in rules}
        self.checkpoints: list[tuple[str, date]] = []
        self.fail_checkpoint = fail_checkpoint

    async def fetch_rules_for_owner(self, owner_id: str) -> list[RecurrenceRule]:
        return [r for r in self.rules.values() if r.owner_id == owner_id]

    async def update_checkpoint(self, rule_id: str, last_generated_date: date) -> None:
        if self.fail_checkpoint:
            raise RuntimeError("storage offline")
        self.checkpoints.append((rule_id, last_generated_date))
        self.rules[rule_id] = self.rules[rule_id].model_copy(update={"last_generated_date": last_generated_date})


class FakeTransactionSink:
    def __init__(self, fail_keys=()):
        self.entries: dict[str, LedgerEntry] = {}
        self.calls: list[str] = []
        self.fail_keys = set(fail_keys)

    async def persist_occurrence(self, entry: LedgerEntry) -> PersistOutcome:
        self.calls.append(entry.key)
        if entry.key in self.fail_keys:
            return PersistOutcome.FAILED
        if entry.key in self.entries:
            return PersistOutcome.DUPLICATE
        self.entries[entry.key] = entry
        return PersistOutcome.CREATED


@pytest.fixture
def make_rule():
    return _make_rule


@pytest.fixture
def make_store():
    return FakeRuleStore


@pytest.fixture
def make_sink():
    return FakeTransactionSink


@pytest.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_sessionmaker(engine)
    await engine.dispose()
