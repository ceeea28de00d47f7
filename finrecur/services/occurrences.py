"""Occurrence generation for recurring rules.

Everything here is a pure function of its arguments: no I/O, no module state,
and the cursor is a plain ``date`` value handed from one step to the next.

Rules loaded from storage are not always clean, so the generator is forgiving:
an unknown frequency steps one month at a time, a zero interval behaves as 1,
and a step that fails to move forward (or a runaway series) ends generation
instead of raising. Callers always get a finite, ascending list.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, List, Union

from dateutil.relativedelta import relativedelta

from .rules import RecurrenceRule


logger = logging.getLogger(__name__)

MAX_ITERATIONS = 2000
DEFAULT_CUSTOM_INTERVAL_DAYS = 30

DateLike = Union[date, datetime, str]


@dataclass(frozen=True)
class Occurrence:
    rule_id: str
    date: date
    index: int  # 1-based position in the series, counted from the aligned start

    @property
    def key(self) -> str:
        return occurrence_key(self.rule_id, self.date)


def occurrence_key(rule_id: str, when: date) -> str:
    """Deterministic identity of one occurrence: same rule and date, same key."""
    return f"occ_{rule_id}_{as_date(when).isoformat()}"


def as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _sunday_based_weekday(d: date) -> int:
    # date.weekday() is Monday=0; rules use Sunday=0
    return (d.weekday() + 1) % 7


def _last_day_of_month(year: int, month: int) -> date:
    return date(year, month, 1) + relativedelta(day=31)


def nth_weekday_of_month(year: int, month: int, nth: int, weekday: int) -> date:
    """Return the ``nth`` ``weekday`` (0=Sunday) of the given month.

    Positive ``nth`` counts from the 1st, negative counts back from the last
    day (-1 is the last such weekday). ``nth == 0`` resolves to the month's
    last day.
    """
    weekday %= 7
    if nth > 0:
        cursor = date(year, month, 1)
        step = timedelta(days=1)
    else:
        cursor = _last_day_of_month(year, month)
        step = timedelta(days=-1)
    target = abs(nth)
    found = 0
    while True:
        if _sunday_based_weekday(cursor) == weekday:
            found += 1
        if found >= target:
            return cursor
        cursor += step


def _shift_month(d: date, months: int) -> date:
    return d.replace(day=1) + relativedelta(months=months)


def _target_day(rule: RecurrenceRule) -> int:
    if rule.day_of_month and rule.day_of_month > 0:
        return rule.day_of_month
    return rule.start_date.day


def _next_monthly(cursor: date, target_day: int, interval: int) -> date:
    # relativedelta(day=N) clamps N to the month length
    return _shift_month(cursor, interval) + relativedelta(day=target_day)


def _first_cursor(rule: RecurrenceRule, interval: int) -> date:
    start = rule.start_date
    if rule.frequency != "monthly":
        return start
    if rule.uses_nth_weekday:
        first = nth_weekday_of_month(start.year, start.month, rule.nth_week, rule.weekday)
        if first < start:
            later = _shift_month(start, interval)
            first = nth_weekday_of_month(later.year, later.month, rule.nth_week, rule.weekday)
        return first
    target_day = _target_day(rule)
    first = start.replace(day=1) + relativedelta(day=target_day)
    if first < start:
        first = _next_monthly(first, target_day, interval)
    return first


def step(rule: RecurrenceRule, cursor: date, interval: int) -> date:
    """Return the occurrence that follows ``cursor`` for this rule."""
    frequency = rule.frequency
    if frequency == "daily":
        return cursor + timedelta(days=interval)
    if frequency == "weekly":
        return cursor + timedelta(weeks=interval)
    if frequency == "monthly":
        if rule.uses_nth_weekday:
            target = _shift_month(cursor, interval)
            return nth_weekday_of_month(target.year, target.month, rule.nth_week, rule.weekday)
        return _next_monthly(cursor, _target_day(rule), interval)
    if frequency == "yearly":
        # re-clamp the anchor day each year so Feb 29 comes back in leap years
        return cursor + relativedelta(years=interval, day=rule.start_date.day)
    if frequency == "custom":
        return cursor + timedelta(days=rule.custom_interval_days or DEFAULT_CUSTOM_INTERVAL_DAYS)
    return cursor + relativedelta(months=1)


def _fixed_step_days(rule: RecurrenceRule, interval: int) -> int | None:
    """Length of one step in days for frequencies that step by a constant amount."""
    if rule.frequency == "daily":
        return interval
    if rule.frequency == "weekly":
        return interval * 7
    if rule.frequency == "custom":
        return rule.custom_interval_days or DEFAULT_CUSTOM_INTERVAL_DAYS
    return None


def iter_occurrences(
    rule: RecurrenceRule,
    from_date: DateLike,
    to_date: DateLike,
    max_iterations: int = MAX_ITERATIONS,
) -> Iterator[Occurrence]:
    """Yield occurrences of ``rule`` inside ``[from_date, to_date]``, ascending.

    Generation also stops at ``rule.end_date`` and after ``max_iterations``
    steps; hitting that cap truncates the output silently. Daily, weekly and
    custom rules jump straight to the window, so the cap counts steps inside
    it rather than since ``start_date``.
    """
    window_start = as_date(from_date)
    window_end = as_date(to_date)
    interval = rule.interval or 1

    try:
        cursor = _first_cursor(rule, interval)
    except (OverflowError, ValueError):
        logger.debug("Rule %s: cannot align start date %s", rule.id, rule.start_date)
        return

    skipped = 0
    days = _fixed_step_days(rule, interval)
    if days is not None and days > 0 and cursor < window_start:
        # ceil so the cursor lands on the first step at or after window_start
        skipped = -(-(window_start - cursor).days // days)
        try:
            cursor += timedelta(days=skipped * days)
        except OverflowError:
            logger.debug("Rule %s: calendar overflow jumping to %s", rule.id, window_start)
            return

    for index in range(skipped + 1, skipped + max_iterations + 1):
        if cursor > window_end:
            return
        if rule.end_date is not None and cursor > rule.end_date:
            return
        if cursor >= window_start:
            yield Occurrence(rule_id=rule.id, date=cursor, index=index)
        try:
            following = step(rule, cursor, interval)
        except (OverflowError, ValueError):
            logger.debug("Rule %s: calendar overflow after %s", rule.id, cursor)
            return
        if following <= cursor:
            logger.debug("Rule %s: step does not advance past %s", rule.id, cursor)
            return
        cursor = following

    logger.debug("Rule %s: stopped at the safety limit of %d iterations", rule.id, max_iterations)


def occurrences_between(
    rule: RecurrenceRule,
    from_date: DateLike,
    to_date: DateLike,
    max_iterations: int = MAX_ITERATIONS,
) -> List[Occurrence]:
    return list(iter_occurrences(rule, from_date, to_date, max_iterations))


def generate_occurrences(
    rule: RecurrenceRule,
    from_date: DateLike,
    to_date: DateLike,
    max_iterations: int = MAX_ITERATIONS,
) -> List[date]:
    return [o.date for o in iter_occurrences(rule, from_date, to_date, max_iterations)]
