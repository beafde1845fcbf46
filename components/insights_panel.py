"""Insights Panel Component for the financial health dashboard

Renders a SavingsAnalysis with:
- Health score badge with status colour and emoji
- Insight cards grouped by type (warning, opportunity, success, info)
- Potential savings, trends and recommendations when available
- Freshness flags for cached and stale analyses
"""

from __future__ import annotations

from typing import Optional

import streamlit as st

from insights.formatting import format_currency
from insights.models import AnalysisResponse, SavingsAnalysis, SavingsInsight
from insights.savings_analyzer import health_emoji, health_status

INSIGHT_ICONS = {
    "warning": "⚠️",
    "opportunity": "💡",
    "success": "✅",
    "info": "ℹ️",
}

TREND_ICONS = {
    "increasing": "📈",
    "decreasing": "📉",
    "stable": "➖",
}


class InsightsPanel:
    """Renders analysis results inside the current Streamlit container."""

    def __init__(self, currency: str = "$"):
        self.currency = currency

    def render(self, response: AnalysisResponse) -> None:
        analysis = response.analysis
        with st.container(border=True):
            self._render_freshness(response)
            self.render_health_badge(analysis)
            self.render_insights(analysis)
            self._render_trends(analysis)
            self._render_recommendations(analysis)

    def _render_freshness(self, response: AnalysisResponse) -> None:
        if response.stale:
            st.warning("Showing a previous analysis while the live analysis is unavailable.")
        elif response.cached:
            st.caption("Cached analysis · refreshes when you add a transaction")

    def render_health_badge(self, analysis: SavingsAnalysis) -> None:
        score = analysis.health_score
        col1, col2 = st.columns([1, 3])
        with col1:
            st.metric(
                label="Health Score",
                value=f"{health_emoji(score)} {score}/100",
                help="Overall financial wellbeing from balance, expense ratio and detected issues",
            )
            st.caption(health_status(score).capitalize())
        with col2:
            st.markdown(f"**{analysis.motivational_message}**")
            if analysis.summary:
                st.caption(analysis.summary)
            if analysis.total_potential_savings > 0:
                st.markdown(
                    f"Potential savings: **{format_currency(analysis.total_potential_savings, self.currency)}**"
                )

    def render_insights(self, analysis: SavingsAnalysis) -> None:
        if not analysis.insights:
            st.info("No issues detected for this period. Keep logging transactions for richer insights.")
            return

        st.markdown("#### Insights")
        for insight in analysis.insights:
            self._render_insight(insight)

    def _render_insight(self, insight: SavingsInsight) -> None:
        icon = INSIGHT_ICONS.get(insight.type, "ℹ️")
        body = f"{icon} **{insight.title}**  \n{insight.message}"
        if insight.suggestion:
            body += f"  \n_{insight.suggestion}_"
        if insight.impact > 0 and insight.type in ("warning", "opportunity"):
            body += f"  \nImpact: {format_currency(insight.impact, self.currency)}"

        if insight.type == "warning":
            st.error(body)
        elif insight.type == "opportunity":
            st.warning(body)
        elif insight.type == "success":
            st.success(body)
        else:
            st.info(body)

    def _render_trends(self, analysis: SavingsAnalysis) -> None:
        if not analysis.trends:
            return
        st.markdown("#### Trends")
        for trend in analysis.trends:
            st.markdown(
                f"{TREND_ICONS.get(trend.trend, '➖')} **{trend.category}**: "
                f"{format_currency(trend.amount, self.currency)} ({trend.trend})"
            )

    def _render_recommendations(self, analysis: SavingsAnalysis) -> None:
        if not analysis.recommendations:
            return
        st.markdown("#### Recommendations")
        for rec in analysis.recommendations:
            st.markdown(f"- {rec.action}")


def render_analysis_error(message: str, detail: Optional[str] = None) -> None:
    """Render a user-facing error when no analysis could be produced."""
    with st.container(border=True):
        st.error(message)
        if detail:
            st.caption(detail)
