from __future__ import annotations

import glob
import os
from typing import IO, List

import pandas as pd

from .context_builder import TRANSACTION_COLUMNS
from .models import TransactionRecord
from .repository import frame_to_records

TYPE_ALIASES = {
    "income": "income",
    "ingreso": "income",
    "credit": "income",
    "expense": "expense",
    "gasto": "expense",
    "debit": "expense",
}


def _normalize_dataframe(raw_df: pd.DataFrame) -> pd.DataFrame:
    """Normalize various CSV schemas to the internal transaction schema.

    Expected output columns:
      - id: int (generated from row order when absent)
      - type: "income" | "expense"
      - amount: float, always >= 0
      - description: Optional[str]
      - date: datetime (normalized to midnight)
      - category_name: Optional[str]
      - source: Optional[str]

    Files without a type column use the sign of `amount`: negative for
    expenses, positive for income.
    """
    df = raw_df.copy()

    column_map = {
        "Transaction_Date": "date",
        "Posting_Date": None,
        "timestamp": "date",
        "Description": "description",
        "Transaction_Type": "type",
        "Merchant_Category": "category_name",
        "category": "category_name",
        "Category": "category_name",
        "Amount": "amount",
        "Location": None,
        "Source": "source",
        "ID": "id",
    }

    rename_dict = {k: v for k, v in column_map.items() if v is not None and k in df.columns}
    df = df.rename(columns=rename_dict)
    df.columns = [str(c).strip().lower() for c in df.columns]

    if "date" not in df.columns:
        date_cols = [c for c in df.columns if "date" in c]
        df["date"] = df[date_cols[0]] if date_cols else pd.NaT
    df["date"] = pd.to_datetime(df["date"], errors="coerce").dt.normalize()

    if "amount" in df.columns:
        df["amount"] = pd.to_numeric(df["amount"], errors="coerce")
    else:
        df["amount"] = float("nan")

    if "type" in df.columns:
        df["type"] = df["type"].astype(str).str.strip().str.lower().map(TYPE_ALIASES)
    else:
        df["type"] = None
    signed_type = df["amount"].apply(lambda a: "expense" if pd.notna(a) and a < 0 else "income")
    df["type"] = df["type"].fillna(signed_type)
    df["amount"] = df["amount"].abs()

    for column in ("description", "category_name", "source"):
        if column not in df.columns:
            df[column] = None

    df = df.dropna(subset=["date", "amount"])
    df = df.sort_values("date", kind="stable").reset_index(drop=True)

    if "id" in df.columns:
        df["id"] = pd.to_numeric(df["id"], errors="coerce")
    if "id" not in df.columns or df["id"].isna().any():
        df["id"] = range(1, len(df) + 1)
    df["id"] = df["id"].astype(int)

    return df[TRANSACTION_COLUMNS]


def demo_data_folder() -> str:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
    return os.path.join(repo_root, "demo-data")


def load_demo_dataframe() -> pd.DataFrame:
    """Load the bundled demo CSV and normalize to the internal schema."""
    demo_folder = demo_data_folder()
    demo_files = sorted(glob.glob(os.path.join(demo_folder, "demo-*.csv")))

    if not demo_files:
        raise FileNotFoundError(f"No demo-*.csv files found in {demo_folder}")

    raw_df = pd.read_csv(demo_files[0])
    return _normalize_dataframe(raw_df)


def load_user_dataframe(file_obj: IO[bytes]) -> pd.DataFrame:
    """Load a user-uploaded CSV file-like into a normalized DataFrame."""
    file_obj.seek(0)
    raw_df = pd.read_csv(file_obj)
    return _normalize_dataframe(raw_df)


def load_transactions(file_obj: IO[bytes]) -> List[TransactionRecord]:
    return frame_to_records(load_user_dataframe(file_obj))
