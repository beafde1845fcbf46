from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from typing import Optional

import streamlit as st


@dataclass(frozen=True)
class SavingsThresholds:
    """Scoring policy for the rule-based savings analyzer.

    Percentages are expressed on a 0-100 scale, target ratios and reduction
    rates as fractions. Amount cutoffs are in the context's currency and tuned
    for Colombian peso magnitudes.
    """

    high_expense_ratio: float = 80.0
    healthy_expense_ratio: float = 60.0
    target_expense_ratio: float = 0.7

    category_warning_share: float = 40.0
    category_opportunity_share: float = 30.0
    category_target_share: float = 0.3
    category_reduction_rate: float = 0.25
    category_opportunity_rate: float = 0.10

    recurring_min_count: int = 3
    recurring_top_n: int = 2
    recurring_saving_rate: float = 0.15

    small_transaction_cutoff: float = 20000.0
    small_transaction_min_count: int = 5
    small_transaction_saving_rate: float = 0.30

    savings_rate_target: float = 10.0
    savings_rate_excellent: float = 20.0

    max_insights: int = 5


DEFAULT_THRESHOLDS = SavingsThresholds()


@dataclass(frozen=True)
class AppConfig:
    currency: str = "$"
    locale: str = "es_CO"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    request_timeout_seconds: float = 30.0
    window_days: int = 30
    cache_max_age_seconds: int = 3600
    log_level: str = "INFO"
    json_logs: bool = True
    thresholds: SavingsThresholds = field(default_factory=SavingsThresholds)


def _load_thresholds(section: dict) -> SavingsThresholds:
    """Override default thresholds with any matching keys from `section`."""
    known = {f.name for f in fields(SavingsThresholds)}
    overrides = {}
    for key, value in section.items():
        if key not in known:
            continue
        default = getattr(DEFAULT_THRESHOLDS, key)
        overrides[key] = type(default)(value)
    return replace(DEFAULT_THRESHOLDS, **overrides)


def load_config() -> AppConfig:
    """Load configuration from Streamlit secrets with safe defaults.

    Handles missing `.streamlit/secrets.toml` gracefully, returning defaults.
    The Gemini key falls back to the `GEMINI_API_KEY` environment variable.
    """
    # Accessing st.secrets can raise FileNotFoundError if no secrets file exists.
    try:
        raw_secrets = st.secrets  # type: ignore[attr-defined]
    except FileNotFoundError:
        raw_secrets = {}

    # Normalize to dict for easy access
    try:
        secrets: dict = dict(raw_secrets) if raw_secrets else {}
    except FileNotFoundError:
        secrets = {}

    api_section = dict(secrets.get("api", {}))
    app_section = dict(secrets.get("app", {}))
    analysis_section = dict(secrets.get("analysis", {}))

    defaults = AppConfig()
    gemini_api_key = api_section.get("gemini_api_key") or os.environ.get("GEMINI_API_KEY")

    return AppConfig(
        currency=app_section.get("currency", defaults.currency),
        locale=app_section.get("locale", defaults.locale),
        gemini_api_key=gemini_api_key,
        gemini_model=api_section.get("gemini_model", defaults.gemini_model),
        request_timeout_seconds=float(api_section.get("timeout_seconds", defaults.request_timeout_seconds)),
        window_days=int(analysis_section.get("window_days", defaults.window_days)),
        cache_max_age_seconds=int(analysis_section.get("cache_max_age_seconds", defaults.cache_max_age_seconds)),
        log_level=str(app_section.get("log_level", defaults.log_level)).upper(),
        json_logs=bool(app_section.get("json_logs", defaults.json_logs)),
        thresholds=_load_thresholds(analysis_section),
    )
