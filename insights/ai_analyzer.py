"""Gemini-backed financial analysis with a deterministic fallback.

The model receives the same aggregates as the rule engine and is asked for a
structured JSON analysis. The response is decoded once and validated; any
failure is returned as an `OverlayResult` error and the caller substitutes the
rule engine, so callers always end up with a valid SavingsAnalysis.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import DEFAULT_THRESHOLDS, AppConfig, SavingsThresholds
from .formatting import format_currency
from .logging import ROOT_LOGGER_NAME, get_logger
from .models import (
    CategoryTrend,
    FinancialContext,
    SavingsAnalysis,
    SavingsInsight,
    SaveRecommendation,
    TransactionType,
    TrendDirection,
)
from .savings_analyzer import (
    analyze_savings_opportunities,
    motivational_message,
    potential_savings,
    rank_insights,
)

logger = get_logger(f"{ROOT_LOGGER_NAME}.ai")

ModelCall = Callable[[str], str]

ANALYSIS_TEMPERATURE = 0.3
ANALYSIS_MAX_TOKENS = 2000
QUICK_MESSAGE_TEMPERATURE = 0.7
QUICK_MESSAGE_MAX_TOKENS = 150
LARGE_EXPENSE_THRESHOLD = 50000


class OverlayErrorKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    MODEL_CALL_FAILED = "model_call_failed"
    QUOTA_EXCEEDED = "quota_exceeded"
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    EMPTY_ANALYSIS = "empty_analysis"


@dataclass(frozen=True)
class OverlayError:
    kind: OverlayErrorKind
    detail: str = ""


@dataclass(frozen=True)
class OverlayResult:
    """Either an analysis or the reason the model could not provide one."""

    analysis: Optional[SavingsAnalysis] = None
    error: Optional[OverlayError] = None

    @property
    def ok(self) -> bool:
        return self.analysis is not None and self.error is None

    @classmethod
    def success(cls, analysis: SavingsAnalysis) -> OverlayResult:
        return cls(analysis=analysis)

    @classmethod
    def failure(cls, kind: OverlayErrorKind, detail: str = "") -> OverlayResult:
        return cls(error=OverlayError(kind=kind, detail=detail))


class ModelTrend(BaseModel):
    trend: TrendDirection
    category: str
    message: str = ""


class ModelAnalysisPayload(BaseModel):
    """Structured response requested from the model (camelCase wire names)."""

    healthScore: float = Field(..., allow_inf_nan=False)
    healthStatus: Optional[str] = Field(None, description="excellent, good, fair or critical")
    summary: Optional[str] = Field(None, description="Two or three sentence executive summary")
    keyInsights: List[SavingsInsight] = Field(default_factory=list)
    trends: List[ModelTrend] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    motivationalMessage: Optional[str] = None

    @field_validator("keyInsights", "trends", "recommendations", mode="before")
    @classmethod
    def _coerce_list(cls, value):
        return value if isinstance(value, list) else []


def _count_by_type(context: FinancialContext, kind: TransactionType) -> int:
    return sum(1 for tx in context.recent_transactions if tx.type == kind)


def build_analysis_prompt(context: FinancialContext) -> str:
    ratio = context.expense_ratio
    data_summary = {
        "period": f"{context.date_range.start.isoformat()} to {context.date_range.end.isoformat()}",
        "income": {
            "total": context.total_income,
            "transactions": _count_by_type(context, "income"),
        },
        "expenses": {
            "total": context.total_expenses,
            "transactions": _count_by_type(context, "expense"),
            "by_category": [entry.model_dump() for entry in context.expenses_by_category],
        },
        "balance": context.balance,
        "expense_to_income_ratio": f"{ratio:.1f}" if ratio is not None else "N/A",
        "recent_transactions": [
            {
                "type": tx.type,
                "amount": tx.amount,
                "category": tx.category_name,
                "date": tx.date.isoformat(),
            }
            for tx in context.recent_transactions[:10]
        ],
    }
    schema = json.dumps(ModelAnalysisPayload.model_json_schema(), indent=2)

    return f"""
        You are an expert personal finance advisor.

        Analyze the following financial context and provide a complete, personalized analysis.

        Financial data:
        {json.dumps(data_summary, indent=2)}

        Analysis rules:
        1. healthScore: 0-100, weighting balance sign (30%), expense-to-income ratio (30%),
           spending diversification (20%) and income consistency (20%).
        2. healthStatus: "excellent" (80-100), "good" (60-79), "fair" (40-59), "critical" (0-39).
        3. keyInsights: 3-5 ACTIONABLE insights of type warning, opportunity, success or info,
           each with a non-negative impact amount, a priority (high, medium, low) and a concrete suggestion.
        4. trends: per-category direction (increasing, decreasing, stable).
        5. recommendations: 3-5 specific recommendations with amounts where possible.
        6. motivationalMessage: at most two sentences, encouraging without judging.

        Respond ONLY with JSON matching this schema:
        {schema}
        """


def _strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def parse_model_response(
    text: Optional[str],
    context: FinancialContext,
    thresholds: SavingsThresholds = DEFAULT_THRESHOLDS,
) -> OverlayResult:
    """Decode a model response into a SavingsAnalysis, or report why it could not."""
    if not text:
        return OverlayResult.failure(OverlayErrorKind.PARSE_ERROR, "empty response")

    try:
        raw = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError as exc:
        return OverlayResult.failure(OverlayErrorKind.PARSE_ERROR, str(exc))

    if not isinstance(raw, dict):
        return OverlayResult.failure(OverlayErrorKind.PARSE_ERROR, "expected a JSON object")

    try:
        payload = ModelAnalysisPayload.model_validate(raw)
    except ValidationError as exc:
        return OverlayResult.failure(OverlayErrorKind.VALIDATION_ERROR, str(exc))

    if not payload.keyInsights and not payload.trends and not payload.recommendations:
        return OverlayResult.failure(OverlayErrorKind.EMPTY_ANALYSIS, "model returned no insights")

    amounts = {entry.category.lower(): entry.amount for entry in context.expenses_by_category}
    health_score = max(0, min(100, int(round(payload.healthScore))))
    insights = rank_insights(payload.keyInsights)

    analysis = SavingsAnalysis(
        insights=insights[: thresholds.max_insights],
        # Model-provided totals are ignored
        total_potential_savings=potential_savings(insights),
        health_score=health_score,
        summary=payload.summary,
        trends=[
            CategoryTrend(
                category=trend.category,
                amount=amounts.get(trend.category.lower(), 0.0),
                trend=trend.trend,
            )
            for trend in payload.trends
        ],
        recommendations=[SaveRecommendation(action=text) for text in payload.recommendations],
        motivational_message=payload.motivationalMessage or motivational_message(health_score),
    )
    return OverlayResult.success(analysis)


def is_quota_error(exc: Exception) -> bool:
    return getattr(exc, "code", None) == 429 or "RESOURCE_EXHAUSTED" in str(exc)


def make_gemini_call(
    config: AppConfig,
    *,
    temperature: float = ANALYSIS_TEMPERATURE,
    max_output_tokens: int = ANALYSIS_MAX_TOKENS,
    json_output: bool = True,
) -> ModelCall:
    """Create a single-attempt Gemini text call bound to `config`."""
    client = genai.Client(
        api_key=config.gemini_api_key,
        http_options=types.HttpOptions(timeout=int(config.request_timeout_seconds * 1000)),
    )
    generation_config = types.GenerateContentConfig(
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        response_mime_type="application/json" if json_output else None,
    )

    def call(prompt: str) -> str:
        result = client.models.generate_content(
            model=config.gemini_model,
            contents=prompt,
            config=generation_config,
        )
        return getattr(result, "text", None) or ""

    return call


class GeminiFinancialAnalyzer:
    """Richer analysis from Gemini, with the rule engine as a fallback."""

    def __init__(
        self,
        config: AppConfig,
        call_model: Optional[ModelCall] = None,
        call_text: Optional[ModelCall] = None,
    ):
        self.config = config
        if config.gemini_api_key:
            call_model = call_model or make_gemini_call(config)
            call_text = call_text or make_gemini_call(
                config,
                temperature=QUICK_MESSAGE_TEMPERATURE,
                max_output_tokens=QUICK_MESSAGE_MAX_TOKENS,
                json_output=False,
            )
        self._call_model = call_model
        self._call_text = call_text

    @property
    def configured(self) -> bool:
        return self._call_model is not None

    def analyze(self, context: FinancialContext) -> OverlayResult:
        """Ask the model for an analysis. Never raises."""
        if self._call_model is None:
            logger.warning("No Gemini API key configured, overlay disabled")
            return OverlayResult.failure(OverlayErrorKind.NOT_CONFIGURED, "GEMINI_API_KEY is not set")

        prompt = build_analysis_prompt(context)
        try:
            text = self._call_model(prompt)
        except Exception as exc:
            kind = OverlayErrorKind.QUOTA_EXCEEDED if is_quota_error(exc) else OverlayErrorKind.MODEL_CALL_FAILED
            logger.warning("Gemini analysis call failed", extra={"fields": {"kind": kind.value, "error": str(exc)}})
            return OverlayResult.failure(kind, str(exc))

        result = parse_model_response(text, context, self.config.thresholds)
        if result.error is not None:
            logger.warning(
                "Discarding Gemini analysis",
                extra={"fields": {"kind": result.error.kind.value, "error": result.error.detail[:500]}},
            )
        return result

    def fallback(self, context: FinancialContext) -> SavingsAnalysis:
        return analyze_savings_opportunities(context, self.config.thresholds, self.config.currency)

    def analyze_with_fallback(self, context: FinancialContext) -> SavingsAnalysis:
        result = self.analyze(context)
        if result.ok:
            return result.analysis
        return self.fallback(context)

    def quick_transaction_message(
        self,
        transaction_type: TransactionType,
        amount: float,
        category_name: str,
        context: FinancialContext,
    ) -> str:
        """One or two sentences on how a new transaction moves the balance."""
        currency = self.config.currency
        if transaction_type == "expense":
            new_balance = context.balance - amount
            new_expenses = context.total_expenses + amount
        else:
            new_balance = context.balance + amount
            new_expenses = context.total_expenses
        default_message = f"New balance: {format_currency(new_balance, currency)}"

        if self._call_text is None:
            return default_message

        ratio = f"{new_expenses / context.total_income * 100:.1f}" if context.total_income > 0 else "N/A"
        prompt = f"""
        Write a SHORT message (1-2 sentences) about the impact of this transaction.

        Transaction:
        - Type: {transaction_type}
        - Amount: {format_currency(amount, currency)}
        - Category: {category_name}

        Updated context:
        - New balance: {format_currency(new_balance, currency)}
        - Period expenses: {format_currency(new_expenses, currency)}
        - Expense-to-income ratio: {ratio}%

        The message must be upbeat even if the balance drops, mention the new balance,
        include a saving tip for expenses above {format_currency(LARGE_EXPENSE_THRESHOLD, currency)},
        and congratulate the user when the balance improves.

        Respond ONLY with the message text.
        """
        try:
            message = self._call_text(prompt)
        except Exception as exc:
            logger.warning("Gemini quick analysis failed", extra={"fields": {"error": str(exc)}})
            return default_message

        return message.strip() or default_message
