from __future__ import annotations

import logging
from datetime import date
from typing import List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import AsyncSessionLocal
from ..models import RecurringRule, Transaction
from .backfill import LedgerEntry, PersistOutcome
from .rules import RecurrenceRule


logger = logging.getLogger(__name__)


def rule_from_row(row: RecurringRule) -> RecurrenceRule:
    return RecurrenceRule.model_validate(row, from_attributes=True)


class SqlRuleStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._sessions = session_factory or AsyncSessionLocal

    async def fetch_rules_for_owner(self, owner_id: str) -> List[RecurrenceRule]:
        async with self._sessions() as session:
            rows = (
                await session.execute(
                    select(RecurringRule).where(RecurringRule.owner_id == owner_id).order_by(RecurringRule.id)
                )
            ).scalars().all()
        return [rule_from_row(r) for r in rows]

    async def update_checkpoint(self, rule_id: str, last_generated_date: date) -> None:
        async with self._sessions() as session:
            res = await session.execute(
                update(RecurringRule)
                .where(RecurringRule.id == rule_id)
                .values(last_generated_date=last_generated_date)
            )
            if res.rowcount == 0:
                raise LookupError(f"Recurring rule not found: {rule_id}")
            await session.commit()

    async def list_owner_ids(self) -> List[str]:
        async with self._sessions() as session:
            rows = (await session.execute(select(RecurringRule.owner_id).distinct())).scalars().all()
        return sorted(rows)

    async def upsert_rule(self, rule: RecurrenceRule) -> None:
        async with self._sessions() as session:
            row = await session.get(RecurringRule, rule.id)
            if row is None:
                session.add(RecurringRule(**rule.model_dump()))
            else:
                # the checkpoint only moves through update_checkpoint
                for name, value in rule.model_dump(exclude={"last_generated_date"}).items():
                    setattr(row, name, value)
            await session.commit()


class SqlTransactionSink:
    """Writes ledger entries into ``transactions``, at most once per occurrence key."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._sessions = session_factory or AsyncSessionLocal

    @staticmethod
    async def _key_exists(session: AsyncSession, key: str) -> bool:
        found = (
            await session.execute(select(Transaction.id).where(Transaction.occurrence_key == key))
        ).scalar_one_or_none()
        return found is not None

    async def persist_occurrence(self, entry: LedgerEntry) -> PersistOutcome:
        async with self._sessions() as session:
            if await self._key_exists(session, entry.key):
                return PersistOutcome.DUPLICATE
            session.add(
                Transaction(
                    occurrence_key=entry.key,
                    recurring_rule_id=entry.rule_id,
                    owner_id=entry.owner_id,
                    account_id=entry.account_id,
                    type=entry.type,
                    amount=entry.amount,
                    currency=entry.currency,
                    category=entry.category,
                    description=entry.description,
                    tags=list(entry.tags),
                    goal_id=entry.goal_id,
                    investment_id=entry.investment_id,
                    liability_id=entry.liability_id,
                    generated_source=entry.generated_source,
                    occurred_on=entry.occurred_on,
                    occurrence_index=entry.index,
                )
            )
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                # another writer may have stored the same key first
                if await self._key_exists(session, entry.key):
                    return PersistOutcome.DUPLICATE
                logger.error("Failed to save occurrence %s: %s", entry.key, e)
                return PersistOutcome.FAILED
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Failed to save occurrence %s: %s", entry.key, e)
                return PersistOutcome.FAILED
        return PersistOutcome.CREATED
