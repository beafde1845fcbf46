"""Rule-based spending pattern analyzer and savings suggestion generator.

Each rule inspects the FinancialContext independently and may emit one or
more SavingsInsight objects. The merged list is ranked by priority, scored
into a 0-100 health score and capped at `max_insights` entries. The engine is
pure: the same context always produces the same analysis.
"""

from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from .config import DEFAULT_THRESHOLDS, SavingsThresholds
from .formatting import format_currency
from .models import (
    PRIORITY_ORDER,
    SAVINGS_INSIGHT_TYPES,
    FinancialContext,
    SavingsAnalysis,
    SavingsInsight,
)

MOTIVATIONAL_MESSAGES = {
    "excellent": (
        "Excellent money management! Your discipline is paying off. "
        "Keep it up and consider investing to grow your wealth."
    ),
    "good": (
        "You're on the right track. A few adjustments to your spending "
        "can significantly improve your financial situation."
    ),
    "fair": (
        "Your finances need attention, but don't get discouraged. "
        "Small, consistent changes can lead to big improvements."
    ),
    "critical": (
        "It's time to take action. Focus on cutting non-essential expenses "
        "and look for ways to increase your income. You can do it!"
    ),
}

HEALTH_EMOJI = {"excellent": "🟢", "good": "🟡", "fair": "🟠", "critical": "🔴"}


def health_status(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "critical"


def health_emoji(score: int) -> str:
    return HEALTH_EMOJI[health_status(score)]


def motivational_message(health_score: int) -> str:
    """Return the fixed message for the health score band (80/60/40)."""
    return MOTIVATIONAL_MESSAGES[health_status(health_score)]


def _expense_ratio_insights(
    context: FinancialContext, t: SavingsThresholds, currency: str
) -> List[SavingsInsight]:
    if context.total_income <= 0:
        return []

    ratio = context.total_expenses / context.total_income * 100

    if ratio > 100:
        deficit = abs(context.balance)
        return [
            SavingsInsight(
                type="warning",
                title="Expenses exceed income",
                message=(
                    f"You are spending {ratio:.0f}% of your income. "
                    f"You are running a deficit of {format_currency(deficit, currency)}."
                ),
                impact=deficit,
                priority="high",
                actionable=True,
                suggestion=(
                    "Review your fixed expenses and look for areas to cut back. "
                    "Consider increasing your income or dropping non-essential spending."
                ),
            )
        ]

    if ratio > t.high_expense_ratio:
        excess = max(0.0, context.total_expenses - context.total_income * t.target_expense_ratio)
        return [
            SavingsInsight(
                type="warning",
                title="Very high expenses",
                message=(
                    f"You are spending {ratio:.0f}% of your income. "
                    f"Ideally keep expenses below {t.target_expense_ratio * 100:.0f}-{t.high_expense_ratio:.0f}%."
                ),
                impact=excess,
                priority="high",
                actionable=True,
                suggestion=(
                    f"Bringing your expenses down to {t.target_expense_ratio * 100:.0f}% of your income "
                    f"would save an extra {format_currency(excess, currency)}."
                ),
            )
        ]

    if ratio < t.healthy_expense_ratio:
        return [
            SavingsInsight(
                type="success",
                title="Excellent spending control",
                message=f"You only spend {ratio:.0f}% of your income. Great job!",
                impact=context.balance,
                priority="low",
                actionable=False,
            )
        ]

    return []


def _category_insights(
    context: FinancialContext, t: SavingsThresholds, currency: str
) -> List[SavingsInsight]:
    if context.total_expenses <= 0:
        return []

    insights = []
    for entry in context.expenses_by_category:
        share = entry.amount / context.total_expenses * 100

        if share > t.category_warning_share:
            excess = max(0.0, entry.amount - context.total_expenses * t.category_target_share)
            insights.append(
                SavingsInsight(
                    type="warning",
                    title=f"Overspending on {entry.category}",
                    message=(
                        f"{entry.category} makes up {share:.0f}% of your total expenses "
                        f"({format_currency(entry.amount, currency)})."
                    ),
                    impact=excess,
                    priority="high",
                    category=entry.category,
                    actionable=True,
                    suggestion=(
                        f"Cutting {entry.category} by {t.category_reduction_rate * 100:.0f}% could save "
                        f"about {format_currency(excess * t.category_reduction_rate, currency)}."
                    ),
                )
            )
        elif share > t.category_opportunity_share:
            saving = entry.amount * t.category_opportunity_rate
            insights.append(
                SavingsInsight(
                    type="opportunity",
                    title=f"Opportunity in {entry.category}",
                    message=f"{entry.category} is one of your main categories ({share:.0f}%).",
                    impact=saving,
                    priority="medium",
                    category=entry.category,
                    actionable=True,
                    suggestion=(
                        f"Look for cheaper alternatives in {entry.category}. "
                        f"A {t.category_opportunity_rate * 100:.0f}% saving would be "
                        f"{format_currency(saving, currency)}."
                    ),
                )
            )
    return insights


def _recurring_description_insights(
    context: FinancialContext, t: SavingsThresholds, currency: str
) -> List[SavingsInsight]:
    groups: Dict[str, Tuple[float, int]] = {}
    for tx in context.recent_transactions:
        if tx.type != "expense" or not tx.description:
            continue
        amount, count = groups.get(tx.description, (0.0, 0))
        groups[tx.description] = (amount + tx.amount, count + 1)

    frequent = [(desc, amount, count) for desc, (amount, count) in groups.items() if count >= t.recurring_min_count]
    frequent.sort(key=lambda item: item[1], reverse=True)

    insights = []
    for description, amount, count in frequent[: t.recurring_top_n]:
        saving = amount * t.recurring_saving_rate
        insights.append(
            SavingsInsight(
                type="opportunity",
                title=f"Frequent expense: {description}",
                message=f"You logged {count} similar expenses totalling {format_currency(amount, currency)}.",
                impact=saving,
                priority="medium",
                actionable=True,
                suggestion=(
                    f"Consider cutting down how often you make these purchases. "
                    f"You could save up to {format_currency(saving, currency)}."
                ),
            )
        )
    return insights


def _small_purchase_insights(
    context: FinancialContext, t: SavingsThresholds, currency: str
) -> List[SavingsInsight]:
    small = [
        tx.amount
        for tx in context.recent_transactions
        if tx.type == "expense" and 0 < tx.amount < t.small_transaction_cutoff
    ]
    if len(small) < t.small_transaction_min_count:
        return []

    total_small = sum(small)
    saving = total_small * t.small_transaction_saving_rate
    return [
        SavingsInsight(
            type="info",
            title="Frequent small expenses",
            message=(
                f"You have {len(small)} small expenses (under "
                f"{format_currency(t.small_transaction_cutoff, currency)}) adding up to "
                f"{format_currency(total_small, currency)}."
            ),
            impact=saving,
            priority="low",
            actionable=True,
            suggestion=(
                f"Small expenses add up. Cutting them by {t.small_transaction_saving_rate * 100:.0f}% "
                f"would save {format_currency(saving, currency)}."
            ),
        )
    ]


def _savings_rate_insights(
    context: FinancialContext, t: SavingsThresholds, currency: str
) -> List[SavingsInsight]:
    if context.total_income <= 0 or context.balance <= 0:
        return []

    savings_rate = context.balance / context.total_income * 100

    if savings_rate < t.savings_rate_target:
        needed = max(0.0, context.total_income * t.savings_rate_target / 100 - context.balance)
        return [
            SavingsInsight(
                type="opportunity",
                title="Recommended savings goal",
                message=(
                    f"Your current savings rate is {savings_rate:.1f}%. "
                    f"Aim to save at least {t.savings_rate_target:.0f}% of your income."
                ),
                impact=needed,
                priority="medium",
                actionable=True,
                suggestion=(
                    f"To reach a {t.savings_rate_target:.0f}% savings rate, cut expenses or raise income "
                    f"by {format_currency(needed, currency)}."
                ),
            )
        ]

    if savings_rate >= t.savings_rate_excellent:
        return [
            SavingsInsight(
                type="success",
                title="Excellent savings!",
                message=(
                    f"You are saving {savings_rate:.1f}% of your income "
                    f"({format_currency(context.balance, currency)}). Keep it up!"
                ),
                impact=context.balance,
                priority="low",
                actionable=False,
            )
        ]

    return []


RULES = (
    _expense_ratio_insights,
    _category_insights,
    _recurring_description_insights,
    _small_purchase_insights,
    _savings_rate_insights,
)


def rank_insights(insights: Sequence[SavingsInsight]) -> List[SavingsInsight]:
    """Stable sort by priority: high, then medium, then low."""
    return sorted(insights, key=lambda insight: PRIORITY_ORDER[insight.priority])


def potential_savings(insights: Sequence[SavingsInsight]) -> float:
    return sum(i.impact for i in insights if i.type in SAVINGS_INSIGHT_TYPES)


def calculate_health_score(
    context: FinancialContext,
    insights: Sequence[SavingsInsight],
    thresholds: SavingsThresholds = DEFAULT_THRESHOLDS,
) -> int:
    """Score overall financial health from 0 to 100.

    `insights` must be the full list, before truncation.
    """
    score = 100

    if context.balance < 0:
        score -= 40

    if context.total_income > 0:
        ratio = context.total_expenses / context.total_income
        if ratio > 1:
            score -= 30
        elif ratio > 0.9:
            score -= 20
        elif ratio > thresholds.high_expense_ratio / 100:
            score -= 10

    high_priority_warnings = [i for i in insights if i.priority == "high" and i.type == "warning"]
    score -= 15 * len(high_priority_warnings)

    successes = [i for i in insights if i.type == "success"]
    score += 10 * len(successes)

    return max(0, min(100, score))


def analyze_savings_opportunities(
    context: FinancialContext,
    thresholds: SavingsThresholds = DEFAULT_THRESHOLDS,
    currency: str = "$",
) -> SavingsAnalysis:
    """Analyze a financial context and produce ranked savings insights."""
    insights: List[SavingsInsight] = []
    for rule in RULES:
        insights.extend(rule(context, thresholds, currency))

    ranked = rank_insights(insights)
    health_score = calculate_health_score(context, ranked, thresholds)

    return SavingsAnalysis(
        insights=ranked[: thresholds.max_insights],
        total_potential_savings=potential_savings(ranked),
        health_score=health_score,
        motivational_message=motivational_message(health_score),
    )
