from __future__ import annotations


def format_currency(amount: float, symbol: str = "$") -> str:
    """Format an amount with thousands separators and no decimals, e.g. `$1,250,000`."""
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.0f}"
