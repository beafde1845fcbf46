"""Orchestrates context building, analysis and caching for the dashboard."""

from __future__ import annotations

from datetime import date
from typing import Callable, Optional, Tuple

from .ai_analyzer import GeminiFinancialAnalyzer, OverlayErrorKind
from .config import AppConfig
from .context_builder import build_financial_context, resolve_date_range
from .formatting import format_currency
from .health_cache import HealthCache
from .logging import ROOT_LOGGER_NAME, get_logger
from .models import (
    AnalysisResponse,
    ContextSummary,
    FinancialContext,
    SavingsAnalysis,
    TransactionRecord,
)
from .repository import DataAccessError, TransactionSource
from .savings_analyzer import analyze_savings_opportunities

logger = get_logger(f"{ROOT_LOGGER_NAME}.service")


class InsufficientDataError(RuntimeError):
    """There is not enough transaction data to produce an analysis."""


class AnalysisUnavailableError(RuntimeError):
    """No live analysis could be produced and no cached analysis exists."""


class FinancialAnalysisService:
    def __init__(
        self,
        source: TransactionSource,
        cache: HealthCache,
        analyzer: Optional[GeminiFinancialAnalyzer] = None,
        config: Optional[AppConfig] = None,
        today: Callable[[], date] = date.today,
    ):
        self.source = source
        self.cache = cache
        self.config = config or (analyzer.config if analyzer else AppConfig())
        self.analyzer = analyzer
        self._today = today

    def today(self) -> date:
        return self._today()

    def _rule_engine(self, context: FinancialContext) -> SavingsAnalysis:
        return analyze_savings_opportunities(context, self.config.thresholds, self.config.currency)

    def build_context(self, start: Optional[date] = None, end: Optional[date] = None) -> FinancialContext:
        date_range = resolve_date_range(start, end, today=self.today(), window_days=self.config.window_days)
        try:
            transactions = self.source.transactions_between(date_range.start, date_range.end)
        except DataAccessError:
            raise
        except Exception as exc:
            raise DataAccessError(f"Could not load transactions: {exc}") from exc
        return build_financial_context(transactions, date_range.start, date_range.end)

    def _serve_stale(self, reason: str) -> Optional[AnalysisResponse]:
        stale = self.cache.get(None, ignore_transaction_id=True)
        if stale is None:
            return None
        logger.warning("Returning stale analysis", extra={"fields": {"reason": reason}})
        return AnalysisResponse(analysis=stale, cached=True, stale=True)

    def get_dashboard_analysis(self, force_refresh: bool = False) -> AnalysisResponse:
        """Return the current analysis, from cache when nothing has changed.

        Raises `InsufficientDataError` when the model is over quota and there
        are no transactions to analyze, and `AnalysisUnavailableError` when
        transactions cannot be read and nothing is cached.
        """
        try:
            latest_id = self.source.latest_transaction_id()
        except Exception as exc:
            stale = self._serve_stale(f"latest transaction lookup failed: {exc}")
            if stale is not None:
                return stale
            raise AnalysisUnavailableError("Could not generate the financial analysis") from exc

        if not force_refresh:
            cached = self.cache.get(latest_id)
            if cached is not None:
                return AnalysisResponse(analysis=cached, cached=True)

        logger.info("Generating new analysis", extra={"fields": {"latest_transaction_id": latest_id}})

        try:
            context = self.build_context()
        except DataAccessError as exc:
            stale = self._serve_stale(str(exc))
            if stale is not None:
                return stale
            raise AnalysisUnavailableError("Could not generate the financial analysis") from exc

        analysis = self._analyze(context)
        if analysis is None:
            stale = self._serve_stale("model quota exceeded")
            if stale is not None:
                return stale
            if context.is_empty:
                raise InsufficientDataError("Not enough transactions to analyze yet")
            analysis = self._rule_engine(context)

        self.cache.set(analysis, latest_id)
        return AnalysisResponse(
            analysis=analysis,
            cached=False,
            context=ContextSummary.from_context(context),
        )

    def _analyze(self, context: FinancialContext) -> Optional[SavingsAnalysis]:
        """Run the overlay with rule-engine fallback; None signals a quota failure."""
        if self.analyzer is None:
            return self._rule_engine(context)

        result = self.analyzer.analyze(context)
        if result.ok:
            return result.analysis
        if result.error.kind is OverlayErrorKind.QUOTA_EXCEEDED:
            return None
        return self._rule_engine(context)

    def analyze_savings(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> Tuple[SavingsAnalysis, FinancialContext]:
        """Rule-engine analysis over an arbitrary window, bypassing the cache."""
        context = self.build_context(start, end)
        return self._rule_engine(context), context

    def _require_writable(self):
        for method in ("add", "update", "delete"):
            if not hasattr(self.source, method):
                raise TypeError(f"{type(self.source).__name__} does not support {method}()")
        return self.source

    def record_transaction(self, record: TransactionRecord) -> Tuple[TransactionRecord, str]:
        """Store a new transaction and return it with a short impact message."""
        store = self._require_writable()
        context = self.build_context()
        stored = store.add(record)
        self.cache.invalidate()

        if self.analyzer is not None:
            message = self.analyzer.quick_transaction_message(
                stored.type, stored.amount, stored.category_name or "", context
            )
        else:
            new_balance = context.balance + (stored.amount if stored.type == "income" else -stored.amount)
            message = f"New balance: {format_currency(new_balance, self.config.currency)}"
        return stored, message

    def update_transaction(self, record: TransactionRecord) -> TransactionRecord:
        updated = self._require_writable().update(record)
        self.cache.invalidate()
        return updated

    def delete_transaction(self, transaction_id: int) -> None:
        self._require_writable().delete(transaction_id)
        self.cache.invalidate()
