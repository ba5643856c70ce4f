"""Language usage across repositories and per-repository activity scores."""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from ghpulse.engines.github.client import GitHubDataClient

log = structlog.get_logger("ghpulse.engine.activity")

DEFAULT_LANGUAGE_COLOR = "#8b949e"
NO_COMMIT_DAYS = 365


@dataclass
class LanguageUsage:
    name: str
    bytes: int
    percentage: float
    color: str


@dataclass
class LanguageUsageSummary:
    languages: list[LanguageUsage] = field(default_factory=list)
    total_bytes: int = 0
    primary_language: str = "Unknown"
    language_count: int = 0


@dataclass(frozen=True)
class RepositoryStats:
    full_name: str
    stars: int = 0
    forks: int = 0
    commits: int = 0
    last_commit_date: datetime | None = None


@dataclass
class RepositoryActivity:
    repository: str
    commits: int
    last_activity: datetime | None
    activity_score: int


@dataclass
class ActivitySummary:
    repositories: list[RepositoryActivity] = field(default_factory=list)
    total_repositories: int = 0
    active_repositories: int = 0
    average_activity_score: float = 0.0
    most_active_repository: str = ""
    least_active_repository: str = ""


async def language_usage(
    client: GitHubDataClient, repositories: list[tuple[str, str]]
) -> LanguageUsageSummary:
    """Sum language bytes over *repositories*, largest first.

    A repository whose languages cannot be fetched is logged and left out.
    """
    sizes: dict[str, int] = defaultdict(int)
    colors: dict[str, str] = {}
    for owner, name in repositories:
        try:
            shares = await client.get_repository_languages(owner, name)
        except Exception:
            log.warning("activity.languages_failed", repository=f"{owner}/{name}", exc_info=True)
            continue
        for share in shares:
            sizes[share.name] += share.size
            if share.color:
                colors.setdefault(share.name, share.color)

    total = sum(sizes.values())
    languages = sorted(
        (
            LanguageUsage(
                name=lang,
                bytes=size,
                percentage=size / total * 100 if total else 0.0,
                color=colors.get(lang, DEFAULT_LANGUAGE_COLOR),
            )
            for lang, size in sizes.items()
        ),
        key=lambda usage: usage.bytes,
        reverse=True,
    )
    return LanguageUsageSummary(
        languages=languages,
        total_bytes=total,
        primary_language=languages[0].name if languages else "Unknown",
        language_count=len(languages),
    )


def activity_score(repo: RepositoryStats, now: datetime | None = None) -> int:
    """0-100 blend of recency (40%), commit volume (40%) and popularity (20%)."""
    now = now or datetime.now(timezone.utc)
    if repo.last_commit_date is None:
        days_since = NO_COMMIT_DAYS
    else:
        last = repo.last_commit_date
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        days_since = math.floor((now - last).total_seconds() / 86400)

    recency = max(0, 100 - days_since)
    volume = min(100, repo.commits * 2)
    popularity = min(100, (repo.stars + repo.forks) * 5)
    return math.floor(recency * 0.4 + volume * 0.4 + popularity * 0.2 + 0.5)


def repository_activity(
    repositories: list[RepositoryStats], now: datetime | None = None
) -> ActivitySummary:
    """Score every repository; the most active comes first."""
    scored = sorted(
        (
            RepositoryActivity(
                repository=repo.full_name,
                commits=repo.commits,
                last_activity=repo.last_commit_date,
                activity_score=activity_score(repo, now),
            )
            for repo in repositories
        ),
        key=lambda activity: activity.activity_score,
        reverse=True,
    )
    if not scored:
        return ActivitySummary()
    return ActivitySummary(
        repositories=scored,
        total_repositories=len(scored),
        active_repositories=sum(1 for a in scored if a.activity_score > 0),
        average_activity_score=sum(a.activity_score for a in scored) / len(scored),
        most_active_repository=scored[0].repository,
        least_active_repository=scored[-1].repository,
    )
