from __future__ import annotations

from datetime import date, timedelta
from typing import Optional, Tuple

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from components.insights_panel import InsightsPanel, render_analysis_error
from insights.ai_analyzer import GeminiFinancialAnalyzer
from insights.config import AppConfig, load_config
from insights.context_builder import build_financial_context
from insights.data_loader import load_demo_dataframe, load_user_dataframe
from insights.formatting import format_currency
from insights.health_cache import HealthCache
from insights.logging import configure_logging, get_logger
from insights.models import FinancialContext, TransactionRecord
from insights.repository import DataAccessError, DataFrameTransactionStore
from insights.service import (
    AnalysisUnavailableError,
    FinancialAnalysisService,
    InsufficientDataError,
)

logger = get_logger("app")

APP_NAME: str = "Cashflow Insights"
TAGLINE: str = "Know where your money goes, and where it could stay"


def get_accessible_colors():
    """Colorblind-friendly palette shared by the charts."""
    return {
        'income': 'rgba(76, 175, 80, 0.7)',
        'spending': 'rgba(244, 67, 54, 0.7)',
        'grid': 'rgba(128, 128, 128, 0.4)',
        'primary': '#4CAF50',
        'secondary': 'rgba(255, 193, 7, 0.8)',
        'tertiary': 'rgba(156, 39, 176, 0.7)',
    }


@st.cache_resource
def get_health_cache(max_age_seconds: int) -> HealthCache:
    """One analysis cache per server process, shared across sessions."""
    return HealthCache(max_age=timedelta(seconds=max_age_seconds))


def set_page_config() -> None:
    """Configure Streamlit page settings early to avoid layout shifts."""
    st.set_page_config(
        page_title=f"{APP_NAME} · Financial Health",
        page_icon="💰",
        layout="wide",
        initial_sidebar_state="expanded",
    )


def init_session_state() -> None:
    """Initialize Streamlit session state variables used across the app."""
    defaults = {
        "data_source": "Demo Data",
        "store": None,
        "service": None,
        "last_message": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def init_service(config: AppConfig, df: pd.DataFrame) -> FinancialAnalysisService:
    """Create the analysis service for a freshly loaded dataset."""
    store = DataFrameTransactionStore(df)
    cache = get_health_cache(config.cache_max_age_seconds)
    cache.invalidate()

    # Demo data is historical, so anchor the default window on its latest date.
    latest = df["date"].max().date() if not df.empty else date.today()
    service = FinancialAnalysisService(
        source=store,
        cache=cache,
        analyzer=GeminiFinancialAnalyzer(config),
        config=config,
        today=lambda: latest,
    )
    st.session_state["store"] = store
    st.session_state["service"] = service
    return service


def render_header() -> None:
    """Render the application header with title and tagline."""
    st.markdown(
        f"""
        <div style="display:flex; align-items:center; gap:12px;">
            <div style="font-size:1.8rem">💰</div>
            <div>
                <div style="font-size:1.6rem; font-weight:700; letter-spacing:0.2px;">{APP_NAME}</div>
                <div style="opacity:0.8; margin-top:2px;">{TAGLINE}</div>
            </div>
        </div>
        """,
        unsafe_allow_html=True,
    )
    st.divider()


def render_data_source_section(config: AppConfig) -> None:
    """Let the user pick the demo dataset or upload their own CSV."""
    with st.sidebar:
        st.markdown("### Data")
        uploaded = st.file_uploader("Upload transactions CSV", type=["csv"])
        if uploaded is not None and st.session_state.get("data_source") != uploaded.name:
            try:
                df = load_user_dataframe(uploaded)
            except (ValueError, pd.errors.ParserError) as exc:
                st.error(f"Could not read {uploaded.name}: {exc}")
            else:
                st.session_state["data_source"] = uploaded.name
                init_service(config, df)

    if st.session_state.get("service") is None:
        init_service(config, load_demo_dataframe())


def render_sidebar(service: FinancialAnalysisService) -> Tuple[date, date]:
    """Render the sidebar controls for analysis period and cache refresh."""
    with st.sidebar:
        st.markdown("### Settings")

        st.markdown("**Analysis Period**")
        date_range_type = st.selectbox(
            label="Time range type",
            options=["Last 30 days", "Last 7 days", "Last 90 days", "Year to date", "Custom Date Range"],
            index=0,
            key="date_range_type",
        )

        today = service.today()
        if date_range_type == "Custom Date Range":
            col1, col2 = st.columns(2)
            with col1:
                start_date = st.date_input("Start Date", value=today - timedelta(days=30), key="start_date")
            with col2:
                end_date = st.date_input("End Date", value=today, key="end_date")

            if start_date and end_date and start_date > end_date:
                st.error("Start date must be before end date")
        else:
            if date_range_type == "Last 7 days":
                start_date = today - timedelta(days=7)
            elif date_range_type == "Last 90 days":
                start_date = today - timedelta(days=90)
            elif date_range_type == "Year to date":
                start_date = date(today.year, 1, 1)
            else:
                start_date = today - timedelta(days=30)
            end_date = today
            st.caption(f"Selected: {start_date} to {end_date}")

        st.markdown("---")
        st.markdown("### Refresh")
        if st.button("🔄 Refresh analysis", use_container_width=True, help="Discard the cached analysis"):
            service.cache.invalidate()
            st.rerun()

    return start_date, end_date


def render_transaction_form(service: FinancialAnalysisService) -> None:
    """Quick-add form; saving a transaction invalidates the cached analysis."""
    with st.sidebar:
        st.markdown("### Add transaction")
        with st.form("add_transaction", clear_on_submit=True):
            kind = st.radio("Type", options=["expense", "income"], horizontal=True)
            amount = st.number_input("Amount", min_value=0.0, step=1000.0)
            description = st.text_input("Description")
            category = st.text_input("Category")
            tx_date = st.date_input("Date", value=service.today())
            submitted = st.form_submit_button("Save", use_container_width=True)

        if submitted and amount > 0:
            record = TransactionRecord(
                id=0,
                type=kind,
                amount=amount,
                description=description or None,
                date=tx_date,
                category_name=category or None,
                source="manual",
            )
            _, message = service.record_transaction(record)
            st.session_state["last_message"] = message
            st.rerun()

        if st.session_state.get("last_message"):
            st.success(st.session_state["last_message"])


def render_metrics_row(context: Optional[FinancialContext], currency: str) -> None:
    """Render a responsive row of financial metric cards."""
    col1, col2, col3 = st.columns(3)
    income = context.total_income if context else 0.0
    expenses = context.total_expenses if context else 0.0
    balance = context.balance if context else 0.0
    with col1:
        st.metric(label="Total Income", value=format_currency(income, currency))
    with col2:
        st.metric(label="Total Expenses", value=format_currency(expenses, currency))
    with col3:
        st.metric(label="Balance", value=format_currency(balance, currency))


def render_analysis_section(service: FinancialAnalysisService, currency: str) -> None:
    """Render the cached or freshly generated health analysis."""
    st.markdown("### Financial Health 🎯")
    try:
        with st.spinner("Analyzing your finances..."):
            response = service.get_dashboard_analysis()
    except InsufficientDataError as exc:
        render_analysis_error(str(exc), "Add a few income and expense transactions to unlock insights.")
        return
    except AnalysisUnavailableError as exc:
        logger.exception("Dashboard analysis failed")
        render_analysis_error("Error generating the financial analysis", str(exc.__cause__ or exc))
        return

    InsightsPanel(currency=currency).render(response)


def render_period_savings_section(
    service: FinancialAnalysisService, start_date: date, end_date: date, currency: str
) -> None:
    """Rule-based savings insights for the period chosen in the sidebar."""
    st.markdown("### Savings for the selected period")
    try:
        analysis, _ = service.analyze_savings(start_date, end_date)
    except DataAccessError as exc:
        logger.exception("Period savings analysis failed")
        render_analysis_error("Could not analyze the selected period", str(exc))
        return

    panel = InsightsPanel(currency=currency)
    with st.container(border=True):
        st.caption(f"{start_date} to {end_date}")
        panel.render_health_badge(analysis)
        panel.render_insights(analysis)


def render_visualizations_section(store: DataFrameTransactionStore, start_date: date, end_date: date, currency: str) -> None:
    """Render metrics and charts for the selected period."""
    with st.container(border=True):
        st.markdown("### Visualizations")
        st.caption(f"Analysis period: {start_date} to {end_date}")

        transactions = store.transactions_between(start_date, end_date)
        context = build_financial_context(transactions, start_date, end_date) if transactions else None
        render_metrics_row(context, currency)

        if not transactions:
            st.info("No transactions in the selected period.")
            return

        colors = get_accessible_colors()
        df = pd.DataFrame([t.model_dump() for t in transactions])
        daily = df.groupby(["date", "type"])["amount"].sum().unstack(fill_value=0).reset_index()

        fig = go.Figure()
        if "income" in daily.columns:
            fig.add_trace(go.Bar(x=daily["date"], y=daily["income"], name="Income", marker_color=colors['income']))
        if "expense" in daily.columns:
            fig.add_trace(go.Bar(x=daily["date"], y=daily["expense"], name="Expenses", marker_color=colors['spending']))
        fig.update_layout(
            title="Daily Income vs Expenses",
            height=400,
            margin=dict(l=20, r=20, t=60, b=20),
            barmode="group",
            hovermode="x unified",
            legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
            plot_bgcolor="rgba(0,0,0,0)",
            paper_bgcolor="rgba(0,0,0,0)",
        )
        fig.update_yaxes(showgrid=True, gridwidth=1, gridcolor=colors['grid'])
        st.plotly_chart(fig, use_container_width=True)

        st.markdown("#### Category Spend Breakdown")
        if not context.expenses_by_category:
            st.info("No spending transactions to build a category breakdown.")
            return

        cat_df = pd.DataFrame([c.model_dump() for c in context.expenses_by_category])
        left_col, right_col = st.columns([1, 2])
        with left_col:
            top = cat_df.iloc[0]
            st.metric(label="Total Categories", value=len(cat_df))
            st.metric(
                label="Top Category",
                value=top["category"],
                delta=format_currency(top["amount"], currency),
                delta_color="off",
            )
            st.metric(label="Top Category %", value=f"{top['amount'] / context.total_expenses * 100:.1f}%")
        with right_col:
            palette = [
                colors['primary'], colors['secondary'], colors['tertiary'],
                colors['income'], colors['spending'],
                'rgba(255, 152, 0, 0.8)',
                'rgba(0, 150, 136, 0.8)',
                'rgba(63, 81, 181, 0.8)',
            ]
            cat_fig = px.pie(cat_df, names="category", values="amount",
                             title="Share of Spending by Category", hole=0.4,
                             color_discrete_sequence=palette)
            cat_fig.update_traces(textposition="inside", textinfo="percent+label")
            cat_fig.update_layout(height=360, margin=dict(l=20, r=20, t=50, b=20))
            st.plotly_chart(cat_fig, use_container_width=True)


def render_footer() -> None:
    """Render a subtle footer."""
    st.divider()
    st.caption("Insights are estimates based on your recorded transactions.")


def main() -> None:
    """Application entry point."""
    set_page_config()

    config = load_config()
    configure_logging(json_output=config.json_logs, level=config.log_level)
    init_session_state()

    render_header()
    render_data_source_section(config)
    service: FinancialAnalysisService = st.session_state["service"]
    start_date, end_date = render_sidebar(service)
    render_transaction_form(service)

    render_analysis_section(service, config.currency)
    render_period_savings_section(service, start_date, end_date, config.currency)
    render_visualizations_section(st.session_state["store"], start_date, end_date, config.currency)
    render_footer()


if __name__ == "__main__":
    main()
