from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


FREQUENCIES = ("daily", "weekly", "monthly", "yearly", "custom")


class RecurrenceRule(BaseModel):
    id: str
    owner_id: str = ""
    start_date: date
    frequency: str = Field(default="monthly")  # daily | weekly | monthly | yearly | custom
    interval: int = 1
    day_of_month: Optional[int] = None  # 1..31, clamped to month length
    nth_week: Optional[int] = None  # 1..4 from month start, negative from month end
    weekday: Optional[int] = None  # 0=Sunday .. 6=Saturday
    custom_interval_days: Optional[int] = None  # custom frequency only, 30 when unset
    end_date: Optional[date] = None
    last_generated_date: Optional[date] = None

    type: str = Field(default="expense")  # expense | income
    amount: Decimal = Decimal("0")
    currency: str = Field(default="RUB")
    category: Optional[str] = None
    account_id: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    goal_id: Optional[str] = None
    investment_id: Optional[str] = None
    liability_id: Optional[str] = None
    entity_kind: Optional[str] = None  # goal | loan | liability | investment
    entity_id: Optional[str] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, value):
        return [] if value is None else value

    @property
    def uses_nth_weekday(self) -> bool:
        return self.nth_week is not None and self.weekday is not None


class RecurrenceRulesFile(BaseModel):
    owner_id: Optional[str] = None  # applied to rules that do not name one
    rules: List[dict] = Field(default_factory=list)
