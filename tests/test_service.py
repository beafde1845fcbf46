from __future__ import annotations

import json
from datetime import date

import pytest

from conftest import record
from insights.ai_analyzer import GeminiFinancialAnalyzer
from insights.config import AppConfig
from insights.health_cache import HealthCache
from insights.repository import DataAccessError, DataFrameTransactionStore
from insights.savings_analyzer import analyze_savings_opportunities
from insights.service import (
    AnalysisUnavailableError,
    FinancialAnalysisService,
    InsufficientDataError,
)

TODAY = date(2024, 3, 31)
CONFIG = AppConfig()

AI_PAYLOAD = json.dumps(
    {
        "healthScore": 88,
        "keyInsights": [
            {
                "type": "success",
                "title": "Great month",
                "message": "You saved half your income.",
                "impact": 500_000,
                "priority": "low",
                "actionable": False,
            }
        ],
        "trends": [],
        "recommendations": ["Move savings to a high-yield account"],
        "motivationalMessage": "Keep it up!",
    }
)


class QuotaError(Exception):
    code = 429


class BrokenSource:
    def __init__(self, latest_error=None):
        self.latest_error = latest_error

    def latest_transaction_id(self):
        if self.latest_error:
            raise self.latest_error
        return 3

    def transactions_between(self, start, end):
        raise OSError("database is down")


def seed():
    return [
        record(1, "income", 1_000_000, date(2024, 3, 1)),
        record(2, "expense", 400_000, date(2024, 3, 2), "Rent", "Rent"),
        record(3, "expense", 100_000, date(2024, 3, 20), "Food", "Market"),
    ]


@pytest.fixture
def store():
    return DataFrameTransactionStore(seed())


@pytest.fixture
def cache(clock):
    return HealthCache(clock=clock)


def make_service(store, cache, call_model=None):
    analyzer = GeminiFinancialAnalyzer(CONFIG, call_model=call_model) if call_model else None
    return FinancialAnalysisService(store, cache, analyzer=analyzer, config=CONFIG, today=lambda: TODAY)


def test_rule_engine_analysis_is_cached_until_a_new_transaction(store, cache):
    service = make_service(store, cache)

    first = service.get_dashboard_analysis()
    assert not first.cached
    assert first.context.total_income == pytest.approx(1_000_000)
    assert first.context.balance == pytest.approx(500_000)
    assert first.analysis == analyze_savings_opportunities(service.build_context())

    second = service.get_dashboard_analysis()
    assert second.cached
    assert not second.stale
    assert second.analysis == first.analysis

    store.add(record(0, "expense", 50_000, date(2024, 3, 25), "Food"))
    third = service.get_dashboard_analysis()
    assert not third.cached
    assert cache.last_transaction_id == 4


def test_force_refresh_skips_the_cache(store, cache):
    service = make_service(store, cache)
    service.get_dashboard_analysis()

    assert not service.get_dashboard_analysis(force_refresh=True).cached


def test_model_analysis_is_served_and_cached(store, cache):
    calls = []

    def call_model(prompt):
        calls.append(prompt)
        return AI_PAYLOAD

    service = make_service(store, cache, call_model)

    response = service.get_dashboard_analysis()
    assert response.analysis.health_score == 88
    assert response.analysis.motivational_message == "Keep it up!"

    assert service.get_dashboard_analysis().cached
    assert len(calls) == 1


def test_malformed_model_response_falls_back_to_rule_engine(store, cache):
    service = make_service(store, cache, lambda prompt: "{not json")

    response = service.get_dashboard_analysis()

    assert response.analysis == analyze_savings_opportunities(service.build_context())
    assert not response.stale


def test_quota_error_serves_stale_cache(store, cache):
    responses = iter([AI_PAYLOAD])

    def call_model(prompt):
        try:
            return next(responses)
        except StopIteration:
            raise QuotaError("quota exhausted") from None

    service = make_service(store, cache, call_model)
    fresh = service.get_dashboard_analysis()

    degraded = service.get_dashboard_analysis(force_refresh=True)

    assert degraded.stale
    assert degraded.cached
    assert degraded.analysis == fresh.analysis
    assert cache.last_transaction_id == 3


def test_new_transaction_drops_the_entry_before_a_quota_error(store, cache):
    responses = iter([AI_PAYLOAD])

    def call_model(prompt):
        try:
            return next(responses)
        except StopIteration:
            raise QuotaError("quota exhausted") from None

    service = make_service(store, cache, call_model)
    service.get_dashboard_analysis()
    store.add(record(0, "expense", 20_000, date(2024, 3, 30), "Food"))

    response = service.get_dashboard_analysis()

    assert not response.stale
    assert response.analysis == analyze_savings_opportunities(service.build_context())


def test_quota_error_without_data_is_insufficient_data(cache):
    def call_model(prompt):
        raise QuotaError("quota")

    service = make_service(DataFrameTransactionStore(), cache, call_model)

    with pytest.raises(InsufficientDataError):
        service.get_dashboard_analysis()


def test_quota_error_with_data_uses_rule_engine(store, cache):
    def call_model(prompt):
        raise QuotaError("quota")

    service = make_service(store, cache, call_model)
    response = service.get_dashboard_analysis()

    assert not response.stale
    assert response.analysis == analyze_savings_opportunities(service.build_context())


def test_empty_store_without_overlay_is_neutral(cache):
    service = make_service(DataFrameTransactionStore(), cache)

    response = service.get_dashboard_analysis()

    assert response.analysis.health_score == 100
    assert response.analysis.insights == []
    assert cache.last_transaction_id == 0


def test_data_access_failure_without_cache_is_a_hard_error(cache):
    service = FinancialAnalysisService(BrokenSource(), cache, config=CONFIG, today=lambda: TODAY)

    with pytest.raises(AnalysisUnavailableError) as excinfo:
        service.get_dashboard_analysis()
    assert isinstance(excinfo.value.__cause__, DataAccessError)


def test_data_access_failure_with_cache_serves_stale(store, cache):
    previous = make_service(store, cache).get_dashboard_analysis()
    service = FinancialAnalysisService(
        BrokenSource(latest_error=ConnectionError("timeout")), cache, config=CONFIG, today=lambda: TODAY
    )

    response = service.get_dashboard_analysis()

    assert response.stale
    assert response.analysis == previous.analysis


def test_analyze_savings_over_custom_window(store, cache):
    service = make_service(store, cache)

    analysis, context = service.analyze_savings(date(2024, 3, 15), date(2024, 3, 31))

    assert context.total_income == 0
    assert context.total_expenses == pytest.approx(100_000)
    assert [c.category for c in context.expenses_by_category] == ["Food"]
    assert analysis.insights[0].category == "Food"
    assert cache.last_transaction_id is None


def test_record_transaction_invalidates_and_reports_balance(store, cache):
    service = make_service(store, cache)
    service.get_dashboard_analysis()

    stored, message = service.record_transaction(record(0, "expense", 25_000, date(2024, 3, 31), "Food"))

    assert stored.id == 4
    assert message == "New balance: $475,000"
    assert cache.last_transaction_id is None


def test_update_and_delete_invalidate_the_cache(store, cache):
    service = make_service(store, cache)

    service.get_dashboard_analysis()
    service.update_transaction(record(3, "expense", 150_000, date(2024, 3, 20), "Food"))
    assert cache.last_transaction_id is None
    assert service.get_dashboard_analysis().context.total_expenses == pytest.approx(550_000)

    service.delete_transaction(3)
    assert cache.last_transaction_id is None
    assert service.get_dashboard_analysis().context.total_expenses == pytest.approx(400_000)


def test_read_only_sources_reject_mutations(cache):
    service = FinancialAnalysisService(BrokenSource(), cache, config=CONFIG)

    with pytest.raises(TypeError):
        service.delete_transaction(1)
