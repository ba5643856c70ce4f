"""Contribution-series helpers: fetching, filtering, grouping and summary stats."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from ghpulse.engines.github.client import GitHubDataClient
from ghpulse.engines.github.models import ContributionDay
from ghpulse.engines.streak.calculator import (
    StreakStats,
    calculate_current_streak,
    get_streak_statistics,
)


@dataclass(frozen=True)
class ContributionStats:
    total_contributions: int = 0
    average_per_day: float = 0.0
    max_contributions_in_day: int = 0
    active_days: int = 0
    streak_days: int = 0


def transform(
    contributions: list[ContributionDay],
    *,
    min_contributions: int | None = None,
    include_weekends: bool = True,
    max_days: int | None = None,
) -> list[ContributionDay]:
    """Filter a series and return it sorted by date.

    *max_days* keeps the most recent entries after the other filters.
    """
    days = sorted(contributions, key=lambda d: d.date)
    if min_contributions is not None:
        days = [d for d in days if d.count >= min_contributions]
    if not include_weekends:
        days = [d for d in days if d.date.weekday() < 5]
    if max_days:
        days = days[-max_days:]
    return days


def contribution_stats(
    contributions: list[ContributionDay], today: date | None = None
) -> ContributionStats:
    if not contributions:
        return ContributionStats()
    total = sum(d.count for d in contributions)
    return ContributionStats(
        total_contributions=total,
        average_per_day=round(total / len(contributions), 2),
        max_contributions_in_day=max(d.count for d in contributions),
        active_days=sum(1 for d in contributions if d.count > 0),
        streak_days=calculate_current_streak(contributions, today),
    )


def validate_contribution_data(contributions: object) -> bool:
    if not isinstance(contributions, list):
        return False
    return all(
        isinstance(c, ContributionDay)
        and isinstance(c.date, date)
        and isinstance(c.count, int)
        and c.count >= 0
        for c in contributions
    )


def filter_by_date_range(
    contributions: list[ContributionDay], start: date, end: date
) -> list[ContributionDay]:
    return [d for d in contributions if start <= d.date <= end]


def group_by_month(contributions: list[ContributionDay]) -> dict[str, list[ContributionDay]]:
    grouped: dict[str, list[ContributionDay]] = defaultdict(list)
    for day in contributions:
        grouped[day.date.strftime("%Y-%m")].append(day)
    return dict(grouped)


def group_by_week(contributions: list[ContributionDay]) -> dict[str, list[ContributionDay]]:
    """Group by week; keys are the ISO date of the Sunday starting each week."""
    grouped: dict[str, list[ContributionDay]] = defaultdict(list)
    for day in contributions:
        sunday = day.date - timedelta(days=(day.date.weekday() + 1) % 7)
        grouped[sunday.isoformat()].append(day)
    return dict(grouped)


async def fetch_streak_stats(
    client: GitHubDataClient,
    username: str,
    days: int = 365,
    today: date | None = None,
    now: datetime | None = None,
) -> StreakStats:
    """Fetch the trailing window for *username* and compute streak statistics.

    Risk is measured at *now*.  When only *today* is given, *now* is the
    start of that day (UTC), so the window and the risk check agree.
    """
    if now is None and today is not None:
        now = datetime.combine(today, time.min, tzinfo=timezone.utc)
    elif today is None and now is not None:
        today = now.astimezone(timezone.utc).date()
    contributions = await client.get_contributions_for_streak(username, days, today=today)
    return get_streak_statistics(contributions, today=today, now=now)
