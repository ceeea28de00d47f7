from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class RecurringRule(Base):
    __tablename__ = "recurring_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    type: Mapped[str] = mapped_column(String(8), default="expense")  # expense | income
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    currency: Mapped[str] = mapped_column(String(8), default="RUB")
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)

    frequency: Mapped[str] = mapped_column(String(16), default="monthly")  # daily/weekly/monthly/yearly/custom
    interval: Mapped[int] = mapped_column(Integer, default=1)
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    nth_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 1..4, -1 = last
    weekday: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 0=Sun..6=Sat
    custom_interval_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_generated_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    goal_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    investment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    liability_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_kind: Mapped[Optional[str]] = mapped_column(String(24), nullable=True)  # goal/loan/investment
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    transactions: Mapped[list[Transaction]] = relationship(back_populates="rule", cascade="all, delete-orphan")


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    occurrence_key: Mapped[str] = mapped_column(String(160), unique=True, index=True)
    recurring_rule_id: Mapped[str] = mapped_column(ForeignKey("recurring_rules.id", ondelete="CASCADE"), index=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(8))  # expense | income
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    currency: Mapped[str] = mapped_column(String(8), default="RUB")
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    goal_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    investment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    liability_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    generated_source: Mapped[str] = mapped_column(String(16), default="recurring")
    occurred_on: Mapped[date] = mapped_column(Date)
    occurrence_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 1-based position in the series
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    rule: Mapped[RecurringRule] = relationship(back_populates="transactions")
