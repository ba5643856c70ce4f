"""Tiered streak-risk model used to decide when to notify a user."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Literal

from ghpulse.engines.streak.calculator import hours_since

RiskLevelName = Literal["safe", "warning", "danger", "critical"]

# Minimum hours between two notifications, per tier.
NOTIFICATION_COOLDOWN_HOURS: dict[str, float] = {
    "warning": 8,
    "danger": 4,
    "critical": 1,
}
_DEFAULT_COOLDOWN_HOURS = 24


@dataclass(frozen=True)
class RiskDetectionConfig:
    safe_threshold_hours: float = 8
    warning_threshold_hours: float = 16
    danger_threshold_hours: float = 20
    critical_threshold_hours: float = 24
    consider_weekends: bool = True
    grace_period_hours: float = 2


@dataclass(frozen=True)
class RiskLevel:
    level: RiskLevelName
    severity: int
    message: str
    hours_remaining: float


@dataclass
class StreakRiskAnalysis:
    risk_level: RiskLevel
    recommendations: list[str] = field(default_factory=list)
    next_contribution_deadline: datetime | None = None
    streak_end_date: datetime | None = None
    days_without_contribution: int = 0
    is_weekend: bool = False


def _as_utc(moment: date | datetime) -> datetime:
    if not isinstance(moment, datetime):
        return datetime.combine(moment, time.min, tzinfo=timezone.utc)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _end_of_next_day(moment: date | datetime) -> datetime:
    day = _as_utc(moment).date() + timedelta(days=1)
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


class StreakRiskDetector:
    """Classify elapsed time since the last contribution into four tiers.

    ``safe`` below the safe threshold, ``warning`` below the warning
    threshold, ``danger`` below the danger threshold, ``critical`` from
    there on.  Weekend grace is granted when the day the next contribution
    is due falls on a Saturday or Sunday; that makes the grace a constant
    offset for a given last contribution, so severity never drops as time
    passes.
    """

    def __init__(self, config: RiskDetectionConfig | None = None, **overrides: Any) -> None:
        self._config = replace(config or RiskDetectionConfig(), **overrides)

    @property
    def config(self) -> RiskDetectionConfig:
        return self._config

    def update_config(self, **overrides: Any) -> None:
        self._config = replace(self._config, **overrides)

    # ── public ─────────────────────────────────────────────────────────────

    def analyze_streak_risk(
        self,
        last_contribution: date | datetime | None,
        current_streak: int,
        now: datetime | None = None,
    ) -> StreakRiskAnalysis:
        now = _as_utc(now or datetime.now(timezone.utc))

        if last_contribution is None:
            return StreakRiskAnalysis(
                risk_level=RiskLevel(
                    level="critical",
                    severity=4,
                    message="No contribution history found",
                    hours_remaining=0,
                ),
                recommendations=[
                    "Start your contribution streak today",
                    "Make your first commit to begin tracking",
                ],
                next_contribution_deadline=now,
                streak_end_date=None,
                days_without_contribution=0,
                is_weekend=now.weekday() >= 5,
            )

        elapsed = hours_since(last_contribution, now)
        weekend = self._deadline_on_weekend(last_contribution)
        risk_level = self.calculate_risk_level(elapsed, weekend)
        deadline = _end_of_next_day(last_contribution)

        return StreakRiskAnalysis(
            risk_level=risk_level,
            recommendations=self._recommendations(risk_level, weekend, current_streak),
            next_contribution_deadline=deadline,
            streak_end_date=deadline if risk_level.level in ("danger", "critical") else None,
            days_without_contribution=max(int(elapsed // 24), 0),
            is_weekend=weekend,
        )

    def calculate_risk_level(self, elapsed_hours: float, is_weekend: bool = False) -> RiskLevel:
        cfg = self._config
        hours = elapsed_hours
        if cfg.consider_weekends and is_weekend:
            hours = max(0.0, hours - cfg.grace_period_hours)
        remaining = cfg.critical_threshold_hours - hours

        if hours < cfg.safe_threshold_hours:
            return RiskLevel("safe", 1, "Your streak is safe", remaining)
        if hours < cfg.warning_threshold_hours:
            return RiskLevel("warning", 2, "Consider making a contribution soon", remaining)
        if hours < cfg.danger_threshold_hours:
            return RiskLevel("danger", 3, "Your streak is at risk", remaining)
        return RiskLevel("critical", 4, "Your streak will end soon", max(0.0, remaining))

    def is_streak_in_danger(
        self,
        last_contribution: date | datetime | None,
        current_streak: int,
        now: datetime | None = None,
    ) -> bool:
        if last_contribution is None or current_streak == 0:
            return True
        level = self.analyze_streak_risk(last_contribution, current_streak, now).risk_level.level
        return level in ("danger", "critical")

    def get_streak_end_prediction(
        self, last_contribution: date | datetime | None, current_streak: int
    ) -> datetime | None:
        if last_contribution is None or current_streak == 0:
            return None
        return _end_of_next_day(last_contribution)

    def get_time_until_streak_end(
        self, last_contribution: date | datetime | None, now: datetime | None = None
    ) -> float:
        """Hours left before the streak lapses (never negative)."""
        if last_contribution is None:
            return 0.0
        now = _as_utc(now or datetime.now(timezone.utc))
        remaining = (_end_of_next_day(last_contribution) - now).total_seconds() / 3600
        return max(0.0, remaining)

    def should_send_risk_notification(
        self,
        last_contribution: date | datetime | None,
        current_streak: int,
        last_notification_sent: datetime | None,
        now: datetime | None = None,
    ) -> bool:
        """Notify for non-safe tiers, at most once per tier-specific cooldown."""
        now = _as_utc(now or datetime.now(timezone.utc))
        level = self.analyze_streak_risk(last_contribution, current_streak, now).risk_level.level
        if level == "safe":
            return False
        if last_notification_sent is None:
            return True
        cooldown = NOTIFICATION_COOLDOWN_HOURS.get(level, _DEFAULT_COOLDOWN_HOURS)
        return hours_since(last_notification_sent, now) >= cooldown

    # ── internal ───────────────────────────────────────────────────────────

    @staticmethod
    def _deadline_on_weekend(last_contribution: date | datetime) -> bool:
        due = _as_utc(last_contribution).date() + timedelta(days=1)
        return due.weekday() >= 5

    @staticmethod
    def _recommendations(risk: RiskLevel, is_weekend: bool, current_streak: int) -> list[str]:
        if risk.level == "safe":
            tips = ["Keep up the great work!"]
            if current_streak > 0:
                tips.append(f"You're on a {current_streak}-day streak")
            return tips
        if risk.level == "warning":
            tips = ["Plan your next contribution", "Set a reminder to contribute today"]
            if is_weekend:
                tips.append("Weekend contributions count too")
            return tips
        if risk.level == "danger":
            return [
                "Make a contribution as soon as possible",
                "Even a small commit counts",
                "Consider working on documentation or README updates",
            ]
        tips = [
            "URGENT: Your streak will end very soon",
            "Make any contribution immediately",
            "Quick fixes: update comments, fix typos, or add documentation",
        ]
        if risk.hours_remaining > 0:
            tips.append(f"You have approximately {round(risk.hours_remaining)} hours left")
        return tips
