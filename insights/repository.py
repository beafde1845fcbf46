from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional, Protocol

import pandas as pd

from .context_builder import TRANSACTION_COLUMNS, transactions_to_frame
from .models import TransactionRecord


class DataAccessError(RuntimeError):
    """Raised when transactions cannot be read from the backing store."""


class TransactionSource(Protocol):
    def transactions_between(self, start: date, end: date) -> List[TransactionRecord]:
        ...

    def latest_transaction_id(self) -> int:
        ...


def frame_to_records(df: pd.DataFrame) -> List[TransactionRecord]:
    records = []
    for row in df.to_dict(orient="records"):
        row = {k: (None if pd.isna(v) else v) for k, v in row.items()}
        row["date"] = row["date"].date()
        records.append(TransactionRecord(**row))
    return records


class DataFrameTransactionStore:
    """In-memory transaction store backed by a pandas DataFrame."""

    def __init__(self, transactions: Optional[Iterable[TransactionRecord] | pd.DataFrame] = None):
        if transactions is None:
            transactions = []
        self._df = transactions_to_frame(transactions)
        self._df["id"] = self._df["id"].astype(int)

    def __len__(self) -> int:
        return len(self._df)

    @property
    def frame(self) -> pd.DataFrame:
        return self._df.copy()

    def all(self) -> List[TransactionRecord]:
        return frame_to_records(self._df)

    def transactions_between(self, start: date, end: date) -> List[TransactionRecord]:
        mask = (self._df["date"] >= pd.Timestamp(start)) & (self._df["date"] <= pd.Timestamp(end))
        return frame_to_records(self._df[mask])

    def latest_transaction_id(self) -> int:
        """Highest id across the whole dataset, 0 when empty."""
        if self._df.empty:
            return 0
        return int(self._df["id"].max())

    def get(self, transaction_id: int) -> Optional[TransactionRecord]:
        match = self._df[self._df["id"] == transaction_id]
        if match.empty:
            return None
        return frame_to_records(match)[0]

    def add(self, record: TransactionRecord) -> TransactionRecord:
        """Insert `record` under the next free id and return the stored copy."""
        stored = record.model_copy(update={"id": self.latest_transaction_id() + 1})
        row = transactions_to_frame([stored])
        self._df = pd.concat([self._df, row], ignore_index=True) if not self._df.empty else row
        self._df["id"] = self._df["id"].astype(int)
        return stored

    def update(self, record: TransactionRecord) -> TransactionRecord:
        if self.get(record.id) is None:
            raise KeyError(f"Transaction {record.id} not found")
        row = transactions_to_frame([record]).iloc[0]
        index = self._df.index[self._df["id"] == record.id][0]
        for column in TRANSACTION_COLUMNS:
            self._df.at[index, column] = row[column]
        return record

    def delete(self, transaction_id: int) -> None:
        if self.get(transaction_id) is None:
            raise KeyError(f"Transaction {transaction_id} not found")
        self._df = self._df[self._df["id"] != transaction_id].reset_index(drop=True)
