from __future__ import annotations

from datetime import date
from typing import List, Optional

import pytest

from insights.models import (
    CategoryExpense,
    DateRange,
    FinancialContext,
    TransactionRecord,
    TransactionSummary,
)

PERIOD = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31))


def make_context(
    income: float = 0.0,
    expenses: float = 0.0,
    categories: Optional[List[CategoryExpense]] = None,
    recent: Optional[List[TransactionSummary]] = None,
) -> FinancialContext:
    return FinancialContext(
        total_income=income,
        total_expenses=expenses,
        balance=income - expenses,
        expenses_by_category=categories or [],
        recent_transactions=recent or [],
        date_range=PERIOD,
    )


def expense(id: int, amount: float, description: str = "", day: int = 15, category: Optional[str] = None) -> TransactionSummary:
    return TransactionSummary(
        id=id,
        type="expense",
        amount=amount,
        description=description,
        date=date(2024, 1, day),
        category_name=category,
    )


def record(
    id: int,
    type: str,
    amount: float,
    day: date,
    category: Optional[str] = None,
    description: Optional[str] = None,
) -> TransactionRecord:
    return TransactionRecord(
        id=id,
        type=type,
        amount=amount,
        date=day,
        category_name=category,
        description=description,
    )


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
