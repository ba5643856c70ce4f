"""Typed GitHub queries built on top of the rate-limited request engine."""

from __future__ import annotations

import base64
import json
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs, quote, urlparse

import httpx
import structlog

from ghpulse.core.cache import TTLCache
from ghpulse.engines.github import queries
from ghpulse.engines.github.models import (
    ContributionDay,
    LanguageShare,
    RepositoryDetails,
    UserProfile,
    WorkflowJob,
    WorkflowRun,
)
from ghpulse.engines.github.request_engine import RequestEngine
from ghpulse.exceptions import (
    ContentNotFoundError,
    GraphQLError,
    NoDataError,
    ProviderAPIError,
)

log = structlog.get_logger("ghpulse.engine")

_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="(\w+)"')

DEFAULT_PER_PAGE = 100


def flatten_calendar(calendar: dict[str, Any]) -> list[ContributionDay]:
    """Flatten ``weeks[].contributionDays[]`` into a date-sorted list."""
    days = [
        ContributionDay.from_api(day)
        for week in calendar.get("weeks") or []
        for day in week.get("contributionDays") or []
    ]
    return sorted(days, key=lambda d: d.date)


def _to_iso(value: date | datetime) -> str:
    """Render a GraphQL ``DateTime``; naive values are taken as UTC."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class GitHubDataClient:
    """Domain queries (profile, contributions, repositories, workflows, content).

    Every call is routed through the shared :class:`RequestEngine`, so many
    of these may be awaited concurrently without overrunning the quota.
    An optional :class:`TTLCache` short-circuits repeated reads.
    """

    def __init__(
        self,
        engine: RequestEngine,
        cache: TTLCache | None = None,
        *,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> None:
        self._engine = engine
        self._cache = cache
        self.per_page = per_page

    @property
    def engine(self) -> RequestEngine:
        return self._engine

    # ── contributions ──────────────────────────────────────────────────────

    async def get_contributions(
        self, username: str, from_: date | datetime, to: date | datetime
    ) -> list[ContributionDay]:
        """Daily contribution counts for *username* in ``[from_, to]``."""
        data = await self._graphql(
            queries.CONTRIBUTIONS_QUERY,
            {"username": username, "from": _to_iso(from_), "to": _to_iso(to)},
        )
        calendar = ((data.get("user") or {}).get("contributionsCollection") or {}).get(
            "contributionCalendar"
        )
        if not calendar:
            raise NoDataError(f"no contribution data found for user {username!r}")
        return flatten_calendar(calendar)

    async def get_contributions_for_streak(
        self, username: str, days: int = 365, *, today: date | None = None
    ) -> list[ContributionDay]:
        """Contributions for the trailing *days* days up to and including today."""
        now = datetime.now(timezone.utc)
        end_day = today or now.date()
        start = datetime.combine(end_day - timedelta(days=days), time.min, tzinfo=timezone.utc)
        end = datetime.combine(end_day, time.max, tzinfo=timezone.utc)
        return await self.get_contributions(username, start, end)

    async def get_optimized_contributions(
        self, username: str, years: list[int] | None = None
    ) -> dict[int, list[ContributionDay]]:
        """Contributions for several calendar years in a single GraphQL request."""
        years = sorted(set(years or [datetime.now(timezone.utc).year]))
        data = await self._graphql(
            queries.build_yearly_contributions_query(years), {"username": username}
        )
        result: dict[int, list[ContributionDay]] = {}
        for year in years:
            node = data.get(queries.year_alias(year)) or {}
            calendar = (node.get("contributionsCollection") or {}).get("contributionCalendar")
            if calendar:
                result[year] = flatten_calendar(calendar)
        if not result:
            raise NoDataError(f"no contribution data found for user {username!r}")
        return result

    async def get_contribution_years(self, username: str) -> list[int]:
        data = await self._graphql(queries.CONTRIBUTION_YEARS_QUERY, {"username": username})
        years = ((data.get("user") or {}).get("contributionsCollection") or {}).get(
            "contributionYears"
        )
        if not years:
            raise NoDataError(f"no contribution years found for user {username!r}")
        return list(years)

    # ── profile / repository metadata (GraphQL) ────────────────────────────

    async def get_user_profile(self, username: str) -> UserProfile:
        data = await self._graphql(
            queries.USER_PROFILE_QUERY, {"username": username}, cache_key=f"profile:{username}"
        )
        user = data.get("user")
        if not user:
            raise NoDataError(f"user {username!r} not found")
        return UserProfile.from_api(user)

    async def get_repository_languages(self, owner: str, repo: str) -> list[LanguageShare]:
        data = await self._graphql(
            queries.REPOSITORY_LANGUAGES_QUERY,
            {"owner": owner, "repo": repo},
            cache_key=f"languages:{owner}/{repo}",
        )
        repository = data.get("repository")
        if not repository:
            raise NoDataError(f"repository {owner}/{repo} not found")
        edges = (repository.get("languages") or {}).get("edges") or []
        return [
            LanguageShare(
                name=edge["node"]["name"],
                color=edge["node"].get("color"),
                size=int(edge.get("size", 0)),
            )
            for edge in edges
        ]

    async def get_repository_details(self, owner: str, repo: str) -> RepositoryDetails:
        data = await self._graphql(
            queries.REPOSITORY_DETAILS_QUERY,
            {"owner": owner, "repo": repo},
            cache_key=f"details:{owner}/{repo}",
        )
        repository = data.get("repository")
        if not repository:
            raise NoDataError(f"repository {owner}/{repo} not found")
        return RepositoryDetails.from_api(repository)

    # ── REST ───────────────────────────────────────────────────────────────

    async def get_repositories(self, username: str) -> list[dict[str, Any]]:
        """All public repositories of *username*, most recently updated first."""
        return await self.paginate(f"/users/{username}/repos", {"sort": "updated"})

    async def get_workflow_runs(
        self,
        owner: str,
        repo: str,
        *,
        max_pages: int | None = None,
        **filters: Any,
    ) -> list[WorkflowRun]:
        """Workflow runs for a repository.

        *filters* are passed through as query parameters (``status``,
        ``branch``, ``created``, ``actor``, ``event``, ``head_sha`` ...).
        """
        params = {k: v for k, v in filters.items() if v is not None}
        items = await self.paginate(
            f"/repos/{owner}/{repo}/actions/runs",
            params,
            items_key="workflow_runs",
            max_pages=max_pages,
        )
        return [WorkflowRun.from_api(item) for item in items]

    async def get_workflow_run_jobs(self, owner: str, repo: str, run_id: int) -> list[WorkflowJob]:
        items = await self.paginate(
            f"/repos/{owner}/{repo}/actions/runs/{run_id}/jobs", items_key="jobs"
        )
        return [WorkflowJob.from_api(item) for item in items]

    async def get_repository_tree(
        self, owner: str, repo: str, ref: str = "HEAD"
    ) -> list[dict[str, Any]]:
        """Flat list of tree entries (``path``, ``type``, ``size``) for *ref*."""
        response = await self._engine.get(
            f"/repos/{owner}/{repo}/git/trees/{ref}", params={"recursive": "1"}
        )
        body = response.json()
        if body.get("truncated"):
            log.warning("github.tree_truncated", repository=f"{owner}/{repo}", ref=ref)
        return list(body.get("tree") or [])

    async def get_repository_content(self, owner: str, repo: str, path: str) -> str:
        """Decoded text of a single file; :class:`ContentNotFoundError` otherwise."""
        try:
            response = await self._engine.get(
                f"/repos/{owner}/{repo}/contents/{quote(path.lstrip('/'), safe='/')}"
            )
        except ProviderAPIError as exc:
            if exc.status == 404:
                raise ContentNotFoundError(path) from exc
            raise
        body = response.json()
        if not isinstance(body, dict) or body.get("type") != "file" or not body.get("content"):
            raise ContentNotFoundError(path)
        return base64.b64decode(body["content"]).decode("utf-8", errors="replace")

    async def paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        items_key: str | None = None,
        max_pages: int | None = None,
    ) -> list[Any]:
        """Collect every item from a paginated REST endpoint.

        The first response's ``Link: rel="last"`` hint, when present, fixes
        the number of pages to fetch.  Without it, pages are requested one
        after another until a page comes back shorter than ``per_page``.
        """
        params = dict(params or {})
        params["per_page"] = self.per_page

        page_items, first = await self._fetch_page(path, params, 1, items_key)
        collected = list(page_items)
        last_page = self._parse_last_page(first.headers.get("Link", ""))

        if last_page is not None:
            if max_pages is not None:
                last_page = min(last_page, max_pages)
            for page in range(2, last_page + 1):
                page_items, _ = await self._fetch_page(path, params, page, items_key)
                collected.extend(page_items)
            return collected

        page = 1
        while len(page_items) >= self.per_page and (max_pages is None or page < max_pages):
            page += 1
            page_items, _ = await self._fetch_page(path, params, page, items_key)
            collected.extend(page_items)
        return collected

    # ── internal ───────────────────────────────────────────────────────────

    async def _fetch_page(
        self, path: str, params: dict[str, Any], page: int, items_key: str | None
    ) -> tuple[list[Any], httpx.Response]:
        response = await self._engine.get(path, params={**params, "page": page})
        body = response.json()
        if items_key is not None:
            body = (body.get(items_key) or []) if isinstance(body, dict) else []
        if not isinstance(body, list):
            body = [body]
        return body, response

    async def _graphql(
        self,
        query: str,
        variables: dict[str, Any],
        *,
        cache_key: str | None = None,
    ) -> dict[str, Any]:
        """Run a GraphQL query and return ``data``; any ``errors`` raise."""
        if cache_key and self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        body = await self._engine.graphql(query, variables)
        errors = body.get("errors")
        if errors:
            log.warning(
                "github.graphql_errors",
                variables=json.dumps(variables, sort_keys=True),
                errors=[err.get("message") for err in errors],
            )
            raise GraphQLError(errors)
        data = body.get("data") or {}

        if cache_key and self._cache is not None:
            self._cache.set(cache_key, data)
        return data

    @staticmethod
    def _parse_last_page(link_header: str) -> int | None:
        """Extract the page number of the ``last`` URL in a ``Link`` header."""
        for url, rel in _LINK_RE.findall(link_header):
            if rel == "last":
                page = parse_qs(urlparse(url).query).get("page")
                if page:
                    try:
                        return int(page[0])
                    except ValueError:
                        return None
        return None
