"""Tests for the streak engine: calculator, risk tiers and contribution helpers."""

from __future__ import annotations

import random
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from ghpulse.engines.github.models import ContributionDay
from ghpulse.engines.streak.calculator import (
    calculate_current_streak,
    calculate_longest_streak,
    get_streak_statistics,
    hours_since,
    is_streak_at_risk,
    last_contribution_date,
    longest_streak_dates,
    streak_start_date,
)
from ghpulse.engines.streak.contributions import (
    contribution_stats,
    fetch_streak_stats,
    filter_by_date_range,
    group_by_month,
    group_by_week,
    transform,
    validate_contribution_data,
)
from ghpulse.engines.streak.risk import RiskDetectionConfig, StreakRiskDetector

UTC = timezone.utc


def _days(start: date, counts: list[int]) -> list[ContributionDay]:
    return [ContributionDay(start + timedelta(days=i), c) for i, c in enumerate(counts)]


# ── TestCalculator ────────────────────────────────────────────────────────


class TestCalculator:
    def test_scenario_current_and_longest(self):
        days = [
            ContributionDay(date(2024, 1, 1), 3),
            ContributionDay(date(2024, 1, 2), 0),
            ContributionDay(date(2024, 1, 3), 5),
            ContributionDay(date(2024, 1, 4), 2),
        ]
        today = date(2024, 1, 4)
        assert calculate_current_streak(days, today) == 2
        assert calculate_longest_streak(days) == 2
        assert streak_start_date(days, today) == date(2024, 1, 3)

    def test_quiet_today_keeps_streak(self):
        days = _days(date(2024, 1, 1), [1, 1, 1, 1, 0])
        assert calculate_current_streak(days, date(2024, 1, 5)) == 4

    def test_two_quiet_days_break_streak(self):
        days = _days(date(2024, 1, 1), [1, 1, 1, 0, 0])
        assert calculate_current_streak(days, date(2024, 1, 5)) == 0
        assert streak_start_date(days, date(2024, 1, 5)) is None

    def test_missing_dates_count_as_zero(self):
        days = [ContributionDay(date(2024, 1, 1), 1), ContributionDay(date(2024, 1, 3), 1)]
        assert calculate_longest_streak(days) == 1
        assert calculate_current_streak(days, date(2024, 1, 3)) == 1

    def test_unsorted_input(self):
        days = list(reversed(_days(date(2024, 1, 1), [1, 1, 1])))
        assert calculate_longest_streak(days) == 3
        assert calculate_current_streak(days, date(2024, 1, 3)) == 3

    def test_longest_tie_prefers_earliest(self):
        days = _days(date(2024, 1, 1), [1, 1, 0, 0, 1, 1])
        assert longest_streak_dates(days) == (2, date(2024, 1, 1), date(2024, 1, 2))

    def test_empty(self):
        assert calculate_current_streak([], date(2024, 1, 1)) == 0
        assert longest_streak_dates([]) == (0, None, None)
        assert last_contribution_date([]) is None

    def test_longest_never_below_current(self):
        rng = random.Random(20240101)
        for _ in range(200):
            counts = [rng.choice([0, 0, 1, 2, 5]) for _ in range(rng.randint(0, 40))]
            days = _days(date(2024, 1, 1), counts)
            today = date(2024, 1, 1) + timedelta(days=max(len(counts) - 1, 0))
            stats = get_streak_statistics(days, today=today, now=datetime(2024, 3, 1, tzinfo=UTC))
            assert stats.current_streak >= 0
            assert stats.longest_streak >= stats.current_streak

    def test_hours_since_bare_date_is_midnight_utc(self):
        now = datetime(2024, 1, 2, 6, 0, tzinfo=UTC)
        assert hours_since(date(2024, 1, 1), now) == 30

    def test_is_streak_at_risk(self):
        last = date(2024, 1, 4)
        assert is_streak_at_risk(None) is True
        assert is_streak_at_risk(last, now=datetime(2024, 1, 4, 10, tzinfo=UTC)) is False
        assert is_streak_at_risk(last, now=datetime(2024, 1, 4, 21, tzinfo=UTC)) is True

    def test_statistics(self):
        days = _days(date(2024, 1, 1), [2, 2, 2, 0, 1, 1])
        stats = get_streak_statistics(
            days, today=date(2024, 1, 6), now=datetime(2024, 1, 6, 12, tzinfo=UTC)
        )
        assert stats.current_streak == 2
        assert stats.longest_streak == 3
        assert stats.longest_streak_start_date == date(2024, 1, 1)
        assert stats.longest_streak_end_date == date(2024, 1, 3)
        assert stats.last_contribution_date == date(2024, 1, 6)
        assert stats.streak_start_date == date(2024, 1, 5)
        assert stats.is_at_risk is False


# ── TestRiskDetector ──────────────────────────────────────────────────────


class TestRiskDetector:
    # Tuesday; the next contribution is due on a Wednesday
    WEEKDAY_LAST = datetime(2024, 1, 2, 0, 0, tzinfo=UTC)
    # Friday; the next contribution is due on a Saturday
    FRIDAY_LAST = datetime(2024, 1, 5, 0, 0, tzinfo=UTC)

    @pytest.mark.parametrize(
        "hours, level",
        [(4, "safe"), (7.9, "safe"), (8, "warning"), (15, "warning"), (16, "danger"),
         (19.5, "danger"), (20, "critical"), (30, "critical")],
    )
    def test_weekday_tiers(self, hours, level):
        detector = StreakRiskDetector()
        now = self.WEEKDAY_LAST + timedelta(hours=hours)
        analysis = detector.analyze_streak_risk(self.WEEKDAY_LAST, 5, now)
        assert analysis.risk_level.level == level
        assert analysis.is_weekend is False

    def test_weekend_grace(self):
        detector = StreakRiskDetector()
        now = self.FRIDAY_LAST + timedelta(hours=9)
        analysis = detector.analyze_streak_risk(self.FRIDAY_LAST, 5, now)
        assert analysis.is_weekend is True
        assert analysis.risk_level.level == "safe"
        assert "Keep up the great work!" in analysis.recommendations

    def test_weekend_grace_disabled(self):
        detector = StreakRiskDetector(consider_weekends=False)
        now = self.FRIDAY_LAST + timedelta(hours=9)
        assert detector.analyze_streak_risk(self.FRIDAY_LAST, 5, now).risk_level.level == "warning"

    def test_severity_monotonic_in_elapsed_time(self):
        detector = StreakRiskDetector()
        for offset in range(7):
            last = datetime(2024, 1, 1, 15, 30, tzinfo=UTC) + timedelta(days=offset)
            previous = 0
            for step in range(0, 60 * 4):
                now = last + timedelta(minutes=15 * step)
                severity = detector.analyze_streak_risk(last, 3, now).risk_level.severity
                assert severity >= previous
                previous = severity

    def test_no_history_is_critical(self):
        analysis = StreakRiskDetector().analyze_streak_risk(None, 0)
        assert analysis.risk_level.level == "critical"
        assert analysis.risk_level.severity == 4
        assert analysis.risk_level.message == "No contribution history found"
        assert analysis.streak_end_date is None

    def test_danger_sets_streak_end(self):
        detector = StreakRiskDetector()
        now = self.WEEKDAY_LAST + timedelta(hours=17)
        analysis = detector.analyze_streak_risk(self.WEEKDAY_LAST, 5, now)
        assert analysis.risk_level.level == "danger"
        assert analysis.streak_end_date == analysis.next_contribution_deadline
        assert analysis.next_contribution_deadline.date() == date(2024, 1, 3)

    def test_critical_recommendations_mention_hours_left(self):
        detector = StreakRiskDetector()
        level = detector.calculate_risk_level(21)
        assert level.level == "critical"
        assert level.hours_remaining == 3
        analysis = detector.analyze_streak_risk(
            self.WEEKDAY_LAST, 5, self.WEEKDAY_LAST + timedelta(hours=21)
        )
        assert "You have approximately 3 hours left" in analysis.recommendations

    def test_update_config(self):
        detector = StreakRiskDetector()
        detector.update_config(safe_threshold_hours=2)
        assert detector.config.safe_threshold_hours == 2
        assert detector.calculate_risk_level(3).level == "warning"
        assert RiskDetectionConfig().safe_threshold_hours == 8

    def test_is_streak_in_danger(self):
        detector = StreakRiskDetector()
        assert detector.is_streak_in_danger(None, 0) is True
        assert detector.is_streak_in_danger(self.WEEKDAY_LAST, 0) is True
        soon = self.WEEKDAY_LAST + timedelta(hours=2)
        late = self.WEEKDAY_LAST + timedelta(hours=18)
        assert detector.is_streak_in_danger(self.WEEKDAY_LAST, 4, soon) is False
        assert detector.is_streak_in_danger(self.WEEKDAY_LAST, 4, late) is True

    def test_time_until_streak_end(self):
        detector = StreakRiskDetector()
        now = datetime(2024, 1, 3, 12, 0, tzinfo=UTC)
        remaining = detector.get_time_until_streak_end(date(2024, 1, 2), now)
        assert remaining == pytest.approx(12, abs=0.01)
        assert detector.get_time_until_streak_end(date(2023, 1, 1), now) == 0.0
        assert detector.get_streak_end_prediction(None, 3) is None

    def test_notification_cooldown(self):
        detector = StreakRiskDetector()
        now = self.WEEKDAY_LAST + timedelta(hours=10)  # warning
        assert detector.should_send_risk_notification(self.WEEKDAY_LAST, 5, None, now) is True
        assert (
            detector.should_send_risk_notification(
                self.WEEKDAY_LAST, 5, now - timedelta(hours=7), now
            )
            is False
        )
        assert (
            detector.should_send_risk_notification(
                self.WEEKDAY_LAST, 5, now - timedelta(hours=8), now
            )
            is True
        )

    def test_no_notification_when_safe(self):
        detector = StreakRiskDetector()
        now = self.WEEKDAY_LAST + timedelta(hours=1)
        assert detector.should_send_risk_notification(self.WEEKDAY_LAST, 5, None, now) is False


# ── TestContributionHelpers ───────────────────────────────────────────────


class TestContributionHelpers:
    def test_transform_filters(self):
        # 2024-01-05 is a Friday
        days = _days(date(2024, 1, 5), [0, 3, 4, 1])
        assert [d.count for d in transform(days, min_contributions=1)] == [3, 4, 1]
        assert [d.date.weekday() for d in transform(days, include_weekends=False)] == [4, 0]
        assert [d.count for d in transform(days, max_days=2)] == [4, 1]

    def test_contribution_stats(self):
        days = _days(date(2024, 1, 1), [1, 0, 2])
        stats = contribution_stats(days, today=date(2024, 1, 3))
        assert stats.total_contributions == 3
        assert stats.average_per_day == 1.0
        assert stats.max_contributions_in_day == 2
        assert stats.active_days == 2
        assert stats.streak_days == 1

    def test_contribution_stats_rounds_average(self):
        stats = contribution_stats(_days(date(2024, 1, 1), [1, 1, 0]), today=date(2024, 1, 3))
        assert stats.average_per_day == 0.67

    def test_validate(self):
        assert validate_contribution_data(_days(date(2024, 1, 1), [1, 0])) is True
        assert validate_contribution_data([ContributionDay(date(2024, 1, 1), -1)]) is False
        assert validate_contribution_data("nope") is False

    def test_filter_by_date_range(self):
        days = _days(date(2024, 1, 1), [1, 2, 3, 4])
        kept = filter_by_date_range(days, date(2024, 1, 2), date(2024, 1, 3))
        assert [d.count for d in kept] == [2, 3]

    def test_group_by_month(self):
        days = _days(date(2024, 1, 30), [1, 1, 1])
        grouped = group_by_month(days)
        assert sorted(grouped) == ["2024-01", "2024-02"]
        assert len(grouped["2024-01"]) == 2

    def test_group_by_week_keys_are_sundays(self):
        # 2023-12-31 and 2024-01-07 are Sundays
        days = _days(date(2024, 1, 3), [1, 1, 1, 1, 1])
        grouped = group_by_week(days)
        assert sorted(grouped) == ["2023-12-31", "2024-01-07"]
        assert len(grouped["2023-12-31"]) == 4

    @staticmethod
    def _streak_client(make_client):
        days = [{"date": f"2024-01-0{i}", "contributionCount": 1} for i in range(1, 5)]
        calendar = {"weeks": [{"contributionDays": days}]}
        body = {"data": {"user": {"contributionsCollection": {"contributionCalendar": calendar}}}}
        return make_client(lambda req: httpx.Response(200, json=body))

    @pytest.mark.anyio
    async def test_fetch_streak_stats(self, make_client):
        client = self._streak_client(make_client)
        stats = await fetch_streak_stats(client, "octocat", 30, today=date(2024, 1, 4))
        await client.engine.close()
        assert stats.current_streak == 4
        assert stats.longest_streak == 4
        # measured at the start of 2024-01-04, not against the wall clock
        assert stats.is_at_risk is False

    @pytest.mark.anyio
    async def test_fetch_streak_stats_at_explicit_now(self, make_client):
        client = self._streak_client(make_client)
        now = datetime(2024, 1, 4, 21, 0, tzinfo=timezone.utc)
        stats = await fetch_streak_stats(client, "octocat", 30, now=now)
        await client.engine.close()
        assert stats.current_streak == 4
        assert stats.is_at_risk is True
