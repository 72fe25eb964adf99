"""
Production Statistics

DESIGN DECISION: Every number the UI shows is computed here, from the
record list, with plain deterministic functions. Nothing is cached and
nothing touches storage. The assistant receives a summary built from the
same functions, so the dashboard and the chat never disagree.

Records are attributed to their effective `date`, not to the moment they
were created.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from production_tracker.models.record import (
    InstallationRecord,
    InstallType,
    sort_records,
)


ZERO = Decimal("0")


# =============================================================================
# RESULT MODELS
# =============================================================================

class DashboardStats(BaseModel):
    today_total: Decimal = ZERO
    month_total: Decimal = ZERO
    all_total: Decimal = ZERO
    today_count: int = 0
    count_by_type: dict[InstallType, int] = Field(default_factory=dict)
    streak_days: int = 0


class TypeShare(BaseModel):
    count: int
    earnings: Decimal


class PeriodAnalysis(BaseModel):
    start: date
    end: date
    total_earnings: Decimal = ZERO
    total_activities: int = 0
    daily_average: Decimal = ZERO
    best_day: Optional[date] = None
    best_day_amount: Decimal = ZERO
    distribution: dict[InstallType, TypeShare] = Field(default_factory=dict)


class HistoryView(BaseModel):
    records: list[InstallationRecord]
    total: Decimal = ZERO

    @property
    def count(self) -> int:
        return len(self.records)


# =============================================================================
# AGGREGATES
# =============================================================================

def _sum(records: Iterable[InstallationRecord]) -> Decimal:
    return sum((r.amount for r in records), ZERO)


def _same_month(day: date, reference: date) -> bool:
    return day.year == reference.year and day.month == reference.month


def activity_streak(records: list[InstallationRecord], today: date) -> int:
    """
    Consecutive days with at least one record, ending today or yesterday.

    A streak whose last active day is older than yesterday is broken (0).
    """
    days = {r.date for r in records}
    if not days:
        return 0

    current = today if today in days else today - timedelta(days=1)
    streak = 0
    while current in days:
        streak += 1
        current -= timedelta(days=1)
    return streak


def dashboard_stats(records: list[InstallationRecord], today: date) -> DashboardStats:
    """Headline figures for the dashboard."""
    counts = {t: 0 for t in InstallType}
    for record in records:
        counts[record.type] += 1

    todays = [r for r in records if r.date == today]
    return DashboardStats(
        today_total=_sum(todays),
        month_total=_sum(r for r in records if _same_month(r.date, today)),
        all_total=_sum(records),
        today_count=len(todays),
        count_by_type=counts,
        streak_days=activity_streak(records, today),
    )


def goal_progress(month_total: Decimal, goal: Decimal) -> float:
    """Percent of the monthly goal reached, capped at 100. 0 if no goal."""
    if goal is None or goal <= 0:
        return 0.0
    return float(min(Decimal("100"), month_total / goal * 100))


def daily_series(
    records: list[InstallationRecord],
    today: date,
    days: int = 7,
) -> list[tuple[date, Decimal]]:
    """Amount per day for the last `days` days, oldest first."""
    totals: dict[date, Decimal] = {}
    for record in records:
        totals[record.date] = totals.get(record.date, ZERO) + record.amount

    start = today - timedelta(days=days - 1)
    return [
        (start + timedelta(days=offset), totals.get(start + timedelta(days=offset), ZERO))
        for offset in range(days)
    ]


def monthly_totals(records: list[InstallationRecord], year: int) -> list[Decimal]:
    """Twelve month totals (January first) for `year`."""
    totals = [ZERO] * 12
    for record in records:
        if record.date.year == year:
            totals[record.date.month - 1] += record.amount
    return totals


def period_analysis(
    records: list[InstallationRecord],
    start: date,
    end: date,
) -> PeriodAnalysis:
    """
    Totals over the inclusive range [start, end].

    The daily average divides by days with activity, not calendar days.
    """
    selected = [r for r in records if start <= r.date <= end]
    if not selected:
        return PeriodAnalysis(start=start, end=end)

    by_day: dict[date, Decimal] = {}
    for record in selected:
        by_day[record.date] = by_day.get(record.date, ZERO) + record.amount

    total = _sum(selected)
    best_day = max(by_day, key=lambda d: (by_day[d], d))

    distribution: dict[InstallType, TypeShare] = {}
    for install_type in InstallType:
        of_type = [r for r in selected if r.type == install_type]
        if of_type:
            distribution[install_type] = TypeShare(count=len(of_type), earnings=_sum(of_type))

    return PeriodAnalysis(
        start=start,
        end=end,
        total_earnings=total,
        total_activities=len(selected),
        daily_average=total / len(by_day),
        best_day=best_day,
        best_day_amount=by_day[best_day],
        distribution=distribution,
    )


def filter_history(
    records: list[InstallationRecord],
    type_filter: Optional[InstallType] = None,
) -> HistoryView:
    """Records newest first, optionally of one type, with their total."""
    selected = [r for r in records if type_filter is None or r.type == type_filter]
    selected = list(reversed(sort_records(selected)))
    return HistoryView(records=selected, total=_sum(selected))


# =============================================================================
# BATCHES
# =============================================================================

def last_batch(records: list[InstallationRecord]) -> list[InstallationRecord]:
    """
    The most recently added batch, oldest first.

    A batch is the run of newest records sharing type and date whose
    timestamps are consecutive milliseconds, which is how the RecordStore
    writes a multi-unit add.
    """
    ordered = sort_records(records)
    if not ordered:
        return []

    batch = [ordered[-1]]
    for record in reversed(ordered[:-1]):
        newest = batch[-1]
        if (
            record.type == newest.type
            and record.date == newest.date
            and newest.timestamp - record.timestamp == 1
        ):
            batch.append(record)
        else:
            break
    return list(reversed(batch))
