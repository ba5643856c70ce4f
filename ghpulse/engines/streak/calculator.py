"""Streak computation over a contribution-day series. Pure, no I/O.

Every function recomputes from the full sequence; nothing is cached between
calls.  Days absent from the sequence count as zero-contribution days.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from ghpulse.engines.github.models import ContributionDay

DEFAULT_RISK_THRESHOLD_HOURS = 20.0

_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StreakStats:
    current_streak: int
    longest_streak: int
    is_at_risk: bool
    last_contribution_date: date | None
    streak_start_date: date | None
    longest_streak_start_date: date | None
    longest_streak_end_date: date | None


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _counts_by_date(contributions: Iterable[ContributionDay]) -> dict[date, int]:
    counts: dict[date, int] = {}
    for day in contributions:
        counts[day.date] = counts.get(day.date, 0) + day.count
    return counts


def _current_run(counts: dict[date, int], today: date) -> tuple[int, date | None]:
    """Length and first day of the run ending today (or yesterday)."""
    # A quiet today does not break the streak until the day is over.
    check = today if counts.get(today, 0) > 0 else today - _ONE_DAY
    length = 0
    start: date | None = None
    while counts.get(check, 0) > 0:
        length += 1
        start = check
        check -= _ONE_DAY
    return length, start


def calculate_current_streak(
    contributions: Iterable[ContributionDay], today: date | None = None
) -> int:
    return _current_run(_counts_by_date(contributions), today or _utc_today())[0]


def streak_start_date(
    contributions: Iterable[ContributionDay], today: date | None = None
) -> date | None:
    return _current_run(_counts_by_date(contributions), today or _utc_today())[1]


def longest_streak_dates(
    contributions: Iterable[ContributionDay],
) -> tuple[int, date | None, date | None]:
    """Single forward pass returning ``(length, start, end)`` of the longest run.

    Two contributing days are consecutive only when exactly one calendar day
    apart; the earliest of equally long runs wins.
    """
    best_len, best_start, best_end = 0, None, None
    run_len, run_start = 0, None
    previous: date | None = None

    for day in sorted(contributions, key=lambda d: d.date):
        if day.count > 0:
            if previous is not None and day.date - previous == _ONE_DAY and run_len > 0:
                run_len += 1
            else:
                run_len, run_start = 1, day.date
            if run_len > best_len:
                best_len, best_start, best_end = run_len, run_start, day.date
        else:
            run_len, run_start = 0, None
        previous = day.date

    return best_len, best_start, best_end


def calculate_longest_streak(contributions: Iterable[ContributionDay]) -> int:
    return longest_streak_dates(contributions)[0]


def last_contribution_date(contributions: Iterable[ContributionDay]) -> date | None:
    active = [day.date for day in contributions if day.count > 0]
    return max(active) if active else None


def hours_since(moment: date | datetime, now: datetime | None = None) -> float:
    """Hours elapsed since *moment*; bare dates mean midnight UTC."""
    if not isinstance(moment, datetime):
        moment = datetime.combine(moment, time.min, tzinfo=timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - moment).total_seconds() / 3600


def is_streak_at_risk(
    last_contribution: date | datetime | None,
    threshold_hours: float = DEFAULT_RISK_THRESHOLD_HOURS,
    now: datetime | None = None,
) -> bool:
    """True with no contribution at all, or when *threshold_hours* have passed."""
    if last_contribution is None:
        return True
    return hours_since(last_contribution, now) > threshold_hours


def get_streak_statistics(
    contributions: Iterable[ContributionDay],
    today: date | None = None,
    now: datetime | None = None,
    threshold_hours: float = DEFAULT_RISK_THRESHOLD_HOURS,
) -> StreakStats:
    days = list(contributions)
    if today is None:
        today = now.astimezone(timezone.utc).date() if now and now.tzinfo else _utc_today()
    counts = _counts_by_date(days)
    current, start = _current_run(counts, today)
    longest, longest_start, longest_end = longest_streak_dates(days)
    last = last_contribution_date(days)
    return StreakStats(
        current_streak=current,
        longest_streak=max(longest, current),
        is_at_risk=is_streak_at_risk(last, threshold_hours, now),
        last_contribution_date=last,
        streak_start_date=start,
        longest_streak_start_date=longest_start,
        longest_streak_end_date=longest_end,
    )
