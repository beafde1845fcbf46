from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

TransactionType = Literal["income", "expense"]
InsightType = Literal["warning", "opportunity", "success", "info"]
Priority = Literal["high", "medium", "low"]
TrendDirection = Literal["increasing", "decreasing", "stable"]

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
SAVINGS_INSIGHT_TYPES = ("warning", "opportunity")


class TransactionRecord(BaseModel):
    id: int = Field(..., description="Unique transaction identifier")
    type: TransactionType
    amount: float = Field(..., ge=0, description="Absolute amount; direction comes from `type`")
    description: Optional[str] = None
    date: date
    category_name: Optional[str] = Field(None, description="Category label, if categorized")
    source: Optional[str] = Field(None, description="Capture channel, e.g. manual, image, voice")


class CategoryExpense(BaseModel):
    category: str
    amount: float = 0.0
    count: int = 0


class TransactionSummary(BaseModel):
    id: int
    type: TransactionType
    amount: float = Field(..., ge=0)
    description: str = ""
    date: date
    category_name: Optional[str] = None
    source: Optional[str] = None


class DateRange(BaseModel):
    start: date
    end: date


class FinancialContext(BaseModel):
    total_income: float = 0.0
    total_expenses: float = 0.0
    balance: float = 0.0
    expenses_by_category: List[CategoryExpense] = []
    recent_transactions: List[TransactionSummary] = []
    date_range: DateRange

    @property
    def expense_ratio(self) -> Optional[float]:
        """Expenses as a percentage of income, or None without income."""
        if self.total_income <= 0:
            return None
        return self.total_expenses / self.total_income * 100

    @property
    def is_empty(self) -> bool:
        return (
            self.total_income == 0
            and self.total_expenses == 0
            and not self.recent_transactions
        )


class SavingsInsight(BaseModel):
    type: InsightType
    title: str
    message: str
    impact: float = Field(..., ge=0, allow_inf_nan=False, description="Estimated saving or deficit in the context currency")
    priority: Priority
    category: Optional[str] = None
    actionable: bool
    suggestion: Optional[str] = None


class CategoryTrend(BaseModel):
    category: str
    amount: float = 0.0
    trend: TrendDirection


class SaveRecommendation(BaseModel):
    action: str
    category: str = ""
    expected_savings: float = 0.0


class SavingsAnalysis(BaseModel):
    insights: List[SavingsInsight] = Field(default_factory=list)
    total_potential_savings: float = Field(0.0, ge=0)
    health_score: int = Field(100, ge=0, le=100)
    summary: Optional[str] = None
    trends: Optional[List[CategoryTrend]] = None
    recommendations: Optional[List[SaveRecommendation]] = None
    motivational_message: str


class ContextSummary(BaseModel):
    total_income: float
    total_expenses: float
    balance: float
    date_range: DateRange

    @classmethod
    def from_context(cls, context: FinancialContext) -> ContextSummary:
        return cls(
            total_income=context.total_income,
            total_expenses=context.total_expenses,
            balance=context.balance,
            date_range=context.date_range,
        )


class AnalysisResponse(BaseModel):
    analysis: SavingsAnalysis
    cached: bool = False
    stale: bool = False
    context: Optional[ContextSummary] = None
