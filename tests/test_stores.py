from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from finrecur.models import Transaction
from finrecur.scheduler import run_backfill_all
from finrecur.services.backfill import PersistOutcome, backfill_owner, backfill_rule, build_ledger_entry, local_today
from finrecur.services.occurrences import Occurrence, generate_occurrences
from finrecur.services.stores import SqlRuleStore, SqlTransactionSink


TODAY = date(2024, 3, 15)


async def _count_transactions(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(Transaction.id)))).scalar_one()


class TestSqlRuleStore:
    async def test_upsert_and_fetch_round_trip(self, session_factory, make_rule):
        store = SqlRuleStore(session_factory)
        rule = make_rule(
            id="rent",
            amount=Decimal("45000.50"),
            tags=["home"],
            day_of_month=31,
            end_date=date(2025, 1, 31),
            entity_kind="loan",
            entity_id="l1",
        )
        await store.upsert_rule(rule)
        await store.upsert_rule(make_rule(id="other", owner_id="u2"))

        [loaded] = await store.fetch_rules_for_owner("u1")

        assert loaded.id == "rent"
        assert loaded.amount == Decimal("45000.50")
        assert loaded.tags == ["home"]
        assert loaded.day_of_month == 31
        assert loaded.end_date == date(2025, 1, 31)
        assert (loaded.entity_kind, loaded.entity_id) == ("loan", "l1")
        assert loaded.last_generated_date is None

    async def test_upsert_updates_existing_rule(self, session_factory, make_rule):
        store = SqlRuleStore(session_factory)
        await store.upsert_rule(make_rule(description="old"))
        await store.upsert_rule(make_rule(description="new", interval=2))

        [loaded] = await store.fetch_rules_for_owner("u1")
        assert loaded.description == "new"
        assert loaded.interval == 2

    async def test_update_checkpoint(self, session_factory, make_rule):
        store = SqlRuleStore(session_factory)
        await store.upsert_rule(make_rule())

        await store.update_checkpoint("r1", date(2024, 2, 1))

        [loaded] = await store.fetch_rules_for_owner("u1")
        assert loaded.last_generated_date == date(2024, 2, 1)

    async def test_reimport_keeps_checkpoint(self, session_factory, make_rule):
        store = SqlRuleStore(session_factory)
        await store.upsert_rule(make_rule(description="old"))
        await store.update_checkpoint("r1", date(2024, 3, 1))

        await store.upsert_rule(make_rule(description="new"))

        [loaded] = await store.fetch_rules_for_owner("u1")
        assert loaded.description == "new"
        assert loaded.last_generated_date == date(2024, 3, 1)

    async def test_update_checkpoint_of_missing_rule_raises(self, session_factory):
        with pytest.raises(LookupError):
            await SqlRuleStore(session_factory).update_checkpoint("missing", date(2024, 2, 1))

    async def test_list_owner_ids(self, session_factory, make_rule):
        store = SqlRuleStore(session_factory)
        for rule_id, owner in [("a", "u2"), ("b", "u1"), ("c", "u2")]:
            await store.upsert_rule(make_rule(id=rule_id, owner_id=owner))
        assert await store.list_owner_ids() == ["u1", "u2"]


class TestSqlTransactionSink:
    async def test_persists_once_per_key(self, session_factory, make_rule):
        rule = make_rule(goal_id="g1", tags=["x"], amount="19.99")
        await SqlRuleStore(session_factory).upsert_rule(rule)
        sink = SqlTransactionSink(session_factory)
        entry = build_ledger_entry(rule, Occurrence("r1", date(2024, 2, 1), 2), TODAY)

        assert await sink.persist_occurrence(entry) == PersistOutcome.CREATED
        assert await sink.persist_occurrence(entry) == PersistOutcome.DUPLICATE

        async with session_factory() as session:
            [row] = (await session.execute(select(Transaction))).scalars().all()
        assert row.occurrence_key == "occ_r1_2024-02-01"
        assert row.occurred_on == date(2024, 2, 1)
        assert row.occurrence_index == 2
        assert row.amount == Decimal("19.99")
        assert row.goal_id == "g1"
        assert row.tags == ["x"]
        assert row.description == "Recurring Transaction (Feb 2024)"


class TestSqlBackfill:
    async def test_repeated_backfill_is_idempotent(self, session_factory, make_rule):
        store, sink = SqlRuleStore(session_factory), SqlTransactionSink(session_factory)
        await store.upsert_rule(make_rule(frequency="weekly", start_date=date(2024, 1, 1)))

        first = await backfill_owner("u1", store, sink, TODAY, delay=0)
        second = await backfill_owner("u1", store, sink, TODAY, delay=0)

        assert first.transactions_created == 11
        assert second.transactions_created == 0
        assert await _count_transactions(session_factory) == 11

    async def test_stale_checkpoint_does_not_duplicate(self, session_factory, make_rule):
        store, sink = SqlRuleStore(session_factory), SqlTransactionSink(session_factory)
        rule = make_rule(frequency="daily", start_date=date(2024, 3, 10))
        await store.upsert_rule(rule)

        await backfill_rule(rule, store, sink, TODAY, delay=0)
        # same rule object, checkpoint still unset
        again = await backfill_rule(rule, store, sink, TODAY, delay=0)

        assert again.created_count == 0
        assert again.duplicates == 6
        assert await _count_transactions(session_factory) == 6

    async def test_run_backfill_all(self, session_factory, make_rule):
        store = SqlRuleStore(session_factory)
        await store.upsert_rule(make_rule(id="y1", frequency="yearly", start_date=date(2024, 1, 1)))
        await store.upsert_rule(make_rule(id="y2", owner_id="u2", frequency="yearly", start_date=date(2024, 6, 1)))
        rules = await store.fetch_rules_for_owner("u1") + await store.fetch_rules_for_owner("u2")
        expected = sum(len(generate_occurrences(r, r.start_date, local_today())) for r in rules)

        summaries = await run_backfill_all(session_factory)

        assert [s.owner_id for s in summaries] == ["u1", "u2"]
        assert sum(s.transactions_created for s in summaries) == expected
        assert await _count_transactions(session_factory) == expected
