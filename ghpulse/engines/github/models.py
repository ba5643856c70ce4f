"""Data models for the GitHub access layer.

These are pure data structures with no transport or storage dependencies.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

RunStatus = Literal["queued", "in_progress", "completed"]


def parse_datetime(value: str | None) -> datetime | None:
    """Parse a GitHub ISO-8601 timestamp (``2024-01-01T00:00:00Z``)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True, order=True)
class ContributionDay:
    """One calendar date's contribution count for a user."""

    date: date
    count: int

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ContributionDay:
        return cls(
            date=date.fromisoformat(data["date"]),
            count=int(data.get("contributionCount", 0)),
        )


@dataclass
class RateLimitStatus:
    """Provider quota as last reported by response headers."""

    limit: int
    remaining: int
    reset: int  # epoch seconds
    used: int


@dataclass
class QueuedRequest:
    """A pending provider call owned by the request engine's queue."""

    method: str
    url: str
    future: asyncio.Future[Any]
    params: dict[str, Any] | None = None
    json: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    retry_count: int = 0


@dataclass
class WorkflowStep:
    name: str
    status: str | None = None
    conclusion: str | None = None
    number: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> WorkflowStep:
        return cls(
            name=data.get("name", ""),
            status=data.get("status"),
            conclusion=data.get("conclusion"),
            number=data.get("number"),
        )


@dataclass
class WorkflowJob:
    id: int
    run_id: int
    name: str
    status: str | None = None
    conclusion: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    runner_name: str | None = None
    steps: list[WorkflowStep] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> WorkflowJob:
        return cls(
            id=data["id"],
            run_id=data.get("run_id", 0),
            name=data.get("name", ""),
            status=data.get("status"),
            conclusion=data.get("conclusion"),
            started_at=parse_datetime(data.get("started_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            runner_name=data.get("runner_name"),
            steps=[WorkflowStep.from_api(s) for s in data.get("steps") or []],
        )


@dataclass
class WorkflowRun:
    """Read-only snapshot of a GitHub Actions workflow run."""

    id: int
    workflow_name: str
    head_branch: str
    head_sha: str
    status: str | None
    conclusion: str | None
    created_at: datetime | None
    updated_at: datetime | None
    run_started_at: datetime | None = None
    actor: str = ""
    event: str = ""
    commit_message: str = ""
    html_url: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> WorkflowRun:
        # The runs API names the workflow in "name"; some payloads carry both.
        head_commit = data.get("head_commit") or {}
        return cls(
            id=data["id"],
            workflow_name=data.get("workflow_name") or data.get("name") or "",
            head_branch=data.get("head_branch") or "",
            head_sha=data.get("head_sha") or "",
            status=data.get("status"),
            conclusion=data.get("conclusion"),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            run_started_at=parse_datetime(data.get("run_started_at")),
            actor=(data.get("actor") or {}).get("login", ""),
            event=data.get("event") or "",
            commit_message=head_commit.get("message", ""),
            html_url=data.get("html_url"),
        )

    @property
    def duration_seconds(self) -> float | None:
        """Wall-clock duration of a completed run, derived from timestamps."""
        if self.status != "completed" or not self.run_started_at or not self.updated_at:
            return None
        return (self.updated_at - self.run_started_at).total_seconds()


@dataclass
class LanguageShare:
    name: str
    color: str | None
    size: int


@dataclass
class UserProfile:
    login: str
    id: str
    database_id: int | None = None
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    company: str | None = None
    location: str | None = None
    website_url: str | None = None
    twitter_username: str | None = None
    created_at: datetime | None = None
    followers: int = 0
    following: int = 0
    public_repositories: int = 0
    total_commit_contributions: int = 0
    total_issue_contributions: int = 0
    total_pull_request_contributions: int = 0
    total_pull_request_review_contributions: int = 0

    @classmethod
    def from_api(cls, user: dict[str, Any]) -> UserProfile:
        collection = user.get("contributionsCollection") or {}
        return cls(
            login=user["login"],
            id=user["id"],
            database_id=user.get("databaseId"),
            name=user.get("name"),
            email=user.get("email") or None,
            avatar_url=user.get("avatarUrl"),
            bio=user.get("bio"),
            company=user.get("company"),
            location=user.get("location"),
            website_url=user.get("websiteUrl"),
            twitter_username=user.get("twitterUsername"),
            created_at=parse_datetime(user.get("createdAt")),
            followers=(user.get("followers") or {}).get("totalCount", 0),
            following=(user.get("following") or {}).get("totalCount", 0),
            public_repositories=(user.get("repositories") or {}).get("totalCount", 0),
            total_commit_contributions=collection.get("totalCommitContributions", 0),
            total_issue_contributions=collection.get("totalIssueContributions", 0),
            total_pull_request_contributions=collection.get("totalPullRequestContributions", 0),
            total_pull_request_review_contributions=collection.get(
                "totalPullRequestReviewContributions", 0
            ),
        )


@dataclass
class RepositoryDetails:
    name: str
    name_with_owner: str
    url: str
    description: str | None = None
    homepage_url: str | None = None
    is_private: bool = False
    is_fork: bool = False
    is_archived: bool = False
    created_at: datetime | None = None
    pushed_at: datetime | None = None
    stargazer_count: int = 0
    fork_count: int = 0
    watchers: int = 0
    open_issues: int = 0
    open_pull_requests: int = 0
    releases: int = 0
    primary_language: str | None = None
    license_spdx: str | None = None
    default_branch: str | None = None

    @classmethod
    def from_api(cls, repo: dict[str, Any]) -> RepositoryDetails:
        return cls(
            name=repo["name"],
            name_with_owner=repo["nameWithOwner"],
            url=repo["url"],
            description=repo.get("description"),
            homepage_url=repo.get("homepageUrl") or None,
            is_private=bool(repo.get("isPrivate")),
            is_fork=bool(repo.get("isFork")),
            is_archived=bool(repo.get("isArchived")),
            created_at=parse_datetime(repo.get("createdAt")),
            pushed_at=parse_datetime(repo.get("pushedAt")),
            stargazer_count=repo.get("stargazerCount", 0),
            fork_count=repo.get("forkCount", 0),
            watchers=(repo.get("watchers") or {}).get("totalCount", 0),
            open_issues=(repo.get("issues") or {}).get("totalCount", 0),
            open_pull_requests=(repo.get("pullRequests") or {}).get("totalCount", 0),
            releases=(repo.get("releases") or {}).get("totalCount", 0),
            primary_language=(repo.get("primaryLanguage") or {}).get("name"),
            license_spdx=(repo.get("licenseInfo") or {}).get("spdxId"),
            default_branch=(repo.get("defaultBranchRef") or {}).get("name"),
        )
