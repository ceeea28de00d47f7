from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Protocol
from zoneinfo import ZoneInfo

from ..config import get_settings
from .occurrences import Occurrence, occurrences_between
from .rules import RecurrenceRule


logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Recurring Transaction"
DEFAULT_CATEGORY = "Other"
GENERATED_SOURCE = "recurring"

# fixed English abbreviations, independent of the process locale
MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# entity_kind -> link field filled with entity_id when the explicit link is missing
_ENTITY_LINKS = {
    "goal": "goal_id",
    "loan": "liability_id",
    "liability": "liability_id",
    "investment": "investment_id",
}


class PersistOutcome(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"  # key already stored, nothing written
    FAILED = "failed"


class RecurringEngineError(Exception):
    pass


class CheckpointWriteError(RecurringEngineError):
    def __init__(self, rule_id: str, checkpoint: date, result: BackfillResult):
        super().__init__(f"Failed to store checkpoint {checkpoint.isoformat()} for rule {rule_id}")
        self.rule_id = rule_id
        self.checkpoint = checkpoint
        self.result = result


@dataclass
class LedgerEntry:
    key: str
    rule_id: str
    owner_id: str
    occurred_on: date
    index: int
    type: str
    amount: Decimal
    currency: str
    category: str
    account_id: Optional[str]
    description: str
    tags: List[str] = field(default_factory=list)
    goal_id: Optional[str] = None
    investment_id: Optional[str] = None
    liability_id: Optional[str] = None
    generated_source: str = GENERATED_SOURCE


class RuleStore(Protocol):
    async def fetch_rules_for_owner(self, owner_id: str) -> List[RecurrenceRule]: ...

    async def update_checkpoint(self, rule_id: str, last_generated_date: date) -> None: ...


class TransactionSink(Protocol):
    async def persist_occurrence(self, entry: LedgerEntry) -> PersistOutcome: ...


@dataclass
class BackfillPreview:
    count: int
    dates: List[date]


@dataclass
class OccurrenceFailure:
    key: str
    occurred_on: date
    reason: str


@dataclass
class BackfillResult:
    rule: RecurrenceRule
    attempted: int = 0
    created: List[LedgerEntry] = field(default_factory=list)
    duplicates: int = 0
    failures: List[OccurrenceFailure] = field(default_factory=list)
    checkpoint: Optional[date] = None  # last_generated_date written by this run
    cancelled: bool = False

    @property
    def created_count(self) -> int:
        return len(self.created)


@dataclass
class OwnerBackfillSummary:
    owner_id: str
    rules_processed: int = 0
    transactions_created: int = 0
    results: List[BackfillResult] = field(default_factory=list)
    checkpoint_errors: List[str] = field(default_factory=list)
    cancelled: bool = False


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().TIMEZONE)).date()


def backfill_window_start(rule: RecurrenceRule) -> date:
    if rule.last_generated_date is not None:
        return rule.last_generated_date + timedelta(days=1)
    return rule.start_date


def preview_backfill(
    rule: RecurrenceRule, today: date | None = None, max_iterations: int | None = None
) -> BackfillPreview:
    """Dry run: which dates a backfill would generate right now."""
    today = today or local_today()
    limit = max_iterations or get_settings().OCCURRENCE_SAFETY_LIMIT
    dates = [o.date for o in occurrences_between(rule, backfill_window_start(rule), today, limit)]
    return BackfillPreview(count=len(dates), dates=dates)


def build_ledger_entry(rule: RecurrenceRule, occurrence: Occurrence, today: date) -> LedgerEntry:
    description = rule.description or rule.source or DEFAULT_DESCRIPTION
    when = occurrence.date
    if (when.year, when.month) != (today.year, today.month):
        description = f"{description} ({MONTH_ABBR[when.month - 1]} {when.year})"

    links = {
        "goal_id": rule.goal_id,
        "investment_id": rule.investment_id,
        "liability_id": rule.liability_id,
    }
    link_field = _ENTITY_LINKS.get((rule.entity_kind or "").lower())
    if link_field and rule.entity_id and not links[link_field]:
        links[link_field] = rule.entity_id

    return LedgerEntry(
        key=occurrence.key,
        rule_id=rule.id,
        owner_id=rule.owner_id,
        occurred_on=when,
        index=occurrence.index,
        type=rule.type,
        amount=rule.amount,
        currency=rule.currency,
        category=rule.category or DEFAULT_CATEGORY,
        account_id=rule.account_id,
        description=description,
        tags=list(rule.tags),
        **links,
    )


async def backfill_rule(
    rule: RecurrenceRule,
    store: RuleStore,
    sink: TransactionSink,
    today: date | None = None,
    *,
    delay: float | None = None,
    cancel: asyncio.Event | None = None,
    max_iterations: int | None = None,
) -> BackfillResult:
    """Persist every missing occurrence of ``rule`` up to ``today``.

    Writes go one at a time with ``delay`` seconds between them. A failed
    write is recorded and the run moves on. Once every occurrence has been
    attempted the checkpoint is stored through ``store``; a cancelled run
    leaves the checkpoint untouched so the next run picks up the same gap.

    Raises CheckpointWriteError when the checkpoint cannot be stored.
    """
    settings = get_settings()
    today = today or local_today()
    if delay is None:
        delay = settings.BACKFILL_WRITE_DELAY_MS / 1000
    limit = max_iterations or settings.OCCURRENCE_SAFETY_LIMIT

    occurrences = occurrences_between(rule, backfill_window_start(rule), today, limit)
    result = BackfillResult(rule=rule)
    if not occurrences:
        return result

    for position, occurrence in enumerate(occurrences):
        if position and delay > 0:
            await asyncio.sleep(delay)
        if cancel is not None and cancel.is_set():
            result.cancelled = True
            logger.info("Backfill of rule %s cancelled after %d of %d occurrences",
                        rule.id, result.attempted, len(occurrences))
            return result

        entry = build_ledger_entry(rule, occurrence, today)
        result.attempted += 1
        reason = ""
        try:
            outcome = await sink.persist_occurrence(entry)
        except Exception as e:
            outcome = PersistOutcome.FAILED
            reason = str(e) or e.__class__.__name__

        if outcome == PersistOutcome.CREATED:
            result.created.append(entry)
        elif outcome == PersistOutcome.DUPLICATE:
            result.duplicates += 1
        else:
            logger.warning("Failed to save occurrence %s: %s", entry.key, reason or "rejected by sink")
            result.failures.append(OccurrenceFailure(entry.key, entry.occurred_on, reason or "rejected by sink"))

    checkpoint = occurrences[-1].date
    try:
        await store.update_checkpoint(rule.id, checkpoint)
    except Exception as e:
        raise CheckpointWriteError(rule.id, checkpoint, result) from e

    result.checkpoint = checkpoint
    result.rule = rule.model_copy(update={"last_generated_date": checkpoint})
    logger.info("Rule %s: %d created, %d duplicate, %d failed, checkpoint %s",
                rule.id, result.created_count, result.duplicates, len(result.failures), checkpoint)
    return result


async def backfill_owner(
    owner_id: str,
    store: RuleStore,
    sink: TransactionSink,
    today: date | None = None,
    *,
    delay: float | None = None,
    cancel: asyncio.Event | None = None,
    max_iterations: int | None = None,
) -> OwnerBackfillSummary:
    """Backfill every rule of one owner, sequentially."""
    today = today or local_today()
    rules = await store.fetch_rules_for_owner(owner_id)
    summary = OwnerBackfillSummary(owner_id=owner_id)

    for rule in rules:
        if cancel is not None and cancel.is_set():
            summary.cancelled = True
            break
        try:
            result = await backfill_rule(
                rule, store, sink, today, delay=delay, cancel=cancel, max_iterations=max_iterations
            )
        except CheckpointWriteError as e:
            logger.error("%s", e, exc_info=e.__cause__)
            summary.checkpoint_errors.append(rule.id)
            result = e.result
        summary.rules_processed += 1
        summary.transactions_created += result.created_count
        summary.results.append(result)
        if result.cancelled:
            summary.cancelled = True
            break

    return summary
