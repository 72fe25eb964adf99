"""Production statistics package."""

from production_tracker.queries.stats import (
    DashboardStats,
    HistoryView,
    PeriodAnalysis,
    TypeShare,
    activity_streak,
    daily_series,
    dashboard_stats,
    filter_history,
    goal_progress,
    last_batch,
    monthly_totals,
    period_analysis,
)

__all__ = [
    "DashboardStats",
    "HistoryView",
    "PeriodAnalysis",
    "TypeShare",
    "activity_streak",
    "daily_series",
    "dashboard_stats",
    "filter_history",
    "goal_progress",
    "last_batch",
    "monthly_totals",
    "period_analysis",
]
