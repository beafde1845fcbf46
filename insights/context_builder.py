"""Aggregate a window of transactions into a FinancialContext.

The context is the only input the analyzers see: totals, a per-category
expense breakdown and the most recent transactions, all restricted to an
inclusive date window (trailing 30 days by default).
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List, Optional, Union

import pandas as pd

from .models import (
    CategoryExpense,
    DateRange,
    FinancialContext,
    TransactionRecord,
    TransactionSummary,
)

TRANSACTION_COLUMNS = ["id", "type", "amount", "description", "date", "category_name", "source"]
UNCATEGORIZED = "Uncategorized"
DEFAULT_WINDOW_DAYS = 30
RECENT_TRANSACTIONS_LIMIT = 20

TransactionInput = Union[pd.DataFrame, Iterable[TransactionRecord]]


def _optional(value):
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def transactions_to_frame(transactions: TransactionInput) -> pd.DataFrame:
    """Return a frame with the internal transaction columns and normalized dates."""
    if isinstance(transactions, pd.DataFrame):
        df = transactions.copy()
    else:
        df = pd.DataFrame([t.model_dump() for t in transactions], columns=TRANSACTION_COLUMNS)

    for column in TRANSACTION_COLUMNS:
        if column not in df.columns:
            df[column] = None

    df["date"] = pd.to_datetime(df["date"], errors="coerce").dt.normalize()
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").astype(float)
    df = df.dropna(subset=["date", "amount"])
    return df[TRANSACTION_COLUMNS].reset_index(drop=True)


def resolve_date_range(
    start: Optional[date] = None,
    end: Optional[date] = None,
    *,
    today: Optional[date] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> DateRange:
    end = end or today or date.today()
    start = start or end - timedelta(days=window_days)
    return DateRange(start=start, end=end)


def _category_breakdown(expenses: pd.DataFrame) -> List[CategoryExpense]:
    if expenses.empty:
        return []

    names = expenses["category_name"]
    has_name = names.notna() & (names.astype(str).str.strip() != "")
    labelled = expenses.assign(category=names.where(has_name, UNCATEGORIZED))

    # sort=False: ties keep first-appearance order
    grouped = (
        labelled.groupby("category", sort=False)["amount"]
        .agg(total="sum", occurrences="count")
        .reset_index()
        .sort_values("total", ascending=False, kind="stable")
    )
    return [
        CategoryExpense(category=str(row.category), amount=float(row.total), count=int(row.occurrences))
        for row in grouped.itertuples(index=False)
    ]


def _recent_transactions(df: pd.DataFrame, limit: int) -> List[TransactionSummary]:
    recent = df.sort_values("date", ascending=False, kind="stable").head(limit)
    return [
        TransactionSummary(
            id=int(row.id),
            type=row.type,
            amount=float(row.amount),
            description=_optional(row.description) or "",
            date=row.date.date(),
            category_name=_optional(row.category_name),
            source=_optional(row.source),
        )
        for row in recent.itertuples(index=False)
    ]


def build_financial_context(
    transactions: TransactionInput,
    start: Optional[date] = None,
    end: Optional[date] = None,
    *,
    today: Optional[date] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
    recent_limit: int = RECENT_TRANSACTIONS_LIMIT,
) -> FinancialContext:
    """Build a FinancialContext from the transactions inside `[start, end]`."""
    date_range = resolve_date_range(start, end, today=today, window_days=window_days)

    df = transactions_to_frame(transactions)
    in_window = (df["date"] >= pd.Timestamp(date_range.start)) & (df["date"] <= pd.Timestamp(date_range.end))
    df = df[in_window]

    expenses = df[df["type"] == "expense"]
    incomes = df[df["type"] == "income"]

    total_expenses = float(expenses["amount"].sum())
    total_income = float(incomes["amount"].sum())

    return FinancialContext(
        total_income=total_income,
        total_expenses=total_expenses,
        balance=total_income - total_expenses,
        expenses_by_category=_category_breakdown(expenses),
        recent_transactions=_recent_transactions(df, recent_limit),
        date_range=date_range,
    )
