"""Workflow-run fetching and reliability statistics."""

from __future__ import annotations

import statistics
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import structlog

from ghpulse.engines.github.client import GitHubDataClient
from ghpulse.engines.github.models import WorkflowJob, WorkflowRun

log = structlog.get_logger("ghpulse.engine.workflows")

Trend = Literal["improving", "declining", "stable"]

_TREND_MIN_RUNS = 10
_TREND_DELTA = 10.0  # percentage points


class WorkflowFetcher:
    """Thin wrapper that narrows workflow-run queries to time windows."""

    def __init__(self, client: GitHubDataClient) -> None:
        self._client = client

    async def fetch_workflow_runs(self, owner: str, repo: str, **filters: Any) -> list[WorkflowRun]:
        """First page of runs matching *filters*."""
        return await self._client.get_workflow_runs(owner, repo, max_pages=1, **filters)

    async def fetch_all_workflow_runs(
        self, owner: str, repo: str, **filters: Any
    ) -> list[WorkflowRun]:
        return await self._client.get_workflow_runs(owner, repo, **filters)

    async def fetch_recent_workflow_runs(
        self, owner: str, repo: str, days: int = 30, **filters: Any
    ) -> list[WorkflowRun]:
        since = datetime.now(timezone.utc) - timedelta(days=days)
        return await self._client.get_workflow_runs(
            owner, repo, created=f">={since.strftime('%Y-%m-%dT%H:%M:%SZ')}", **filters
        )

    async def fetch_failed_workflow_runs(
        self, owner: str, repo: str, days: int = 7
    ) -> list[WorkflowRun]:
        runs = await self.fetch_recent_workflow_runs(owner, repo, days, status="completed")
        return [run for run in runs if run.conclusion == "failure"]

    async def fetch_workflow_run_jobs(
        self, owner: str, repo: str, run_id: int
    ) -> list[WorkflowJob]:
        return await self._client.get_workflow_run_jobs(owner, repo, run_id)


# ── metrics (pure) ──────────────────────────────────────────────────────────


@dataclass
class WorkflowMetrics:
    total_runs: int = 0
    success_rate: float = 0.0
    failure_rate: float = 0.0
    average_duration: float = 0.0
    median_duration: float = 0.0
    total_duration: float = 0.0
    runs_per_day: float = 0.0
    most_active_workflow: str = ""
    least_reliable_workflow: str = ""


@dataclass
class WorkflowTrendPoint:
    date: str
    total_runs: int
    successful_runs: int
    failed_runs: int
    success_rate: float
    average_duration: float


@dataclass
class WorkflowPerformance:
    workflow_name: str
    total_runs: int
    successful_runs: int
    failed_runs: int
    success_rate: float
    average_duration: float
    last_run: datetime | None
    trend: Trend


def _durations(runs: list[WorkflowRun]) -> list[float]:
    return [d for d in (run.duration_seconds for run in runs) if d is not None]


def calculate_workflow_metrics(runs: list[WorkflowRun], days: int = 30) -> WorkflowMetrics:
    """Success/failure rates, durations (seconds) and the notable workflows."""
    completed = [run for run in runs if run.status == "completed"]
    if not completed:
        return WorkflowMetrics()

    successful = sum(1 for run in completed if run.conclusion == "success")
    failed = sum(1 for run in completed if run.conclusion == "failure")
    durations = sorted(_durations(completed))

    counts = Counter(run.workflow_name for run in runs)
    failures = Counter(run.workflow_name for run in runs if run.conclusion == "failure")
    # Counter.most_common keeps first-encountered order among ties
    most_active = counts.most_common(1)[0][0]
    least_reliable = max(counts, key=lambda name: failures[name] / counts[name])

    return WorkflowMetrics(
        total_runs=len(runs),
        success_rate=successful / len(completed) * 100,
        failure_rate=failed / len(completed) * 100,
        average_duration=statistics.fmean(durations) if durations else 0.0,
        median_duration=durations[len(durations) // 2] if durations else 0.0,
        total_duration=sum(durations),
        runs_per_day=len(runs) / days if days > 0 else 0.0,
        most_active_workflow=most_active,
        least_reliable_workflow=least_reliable,
    )


def workflow_trends(runs: list[WorkflowRun]) -> list[WorkflowTrendPoint]:
    """Per-day run counts, success rate and mean duration, oldest day first."""
    daily: dict[str, list[WorkflowRun]] = defaultdict(list)
    for run in runs:
        if run.created_at is None:
            continue
        daily[run.created_at.date().isoformat()].append(run)

    points = []
    for day in sorted(daily):
        day_runs = daily[day]
        completed = [r for r in day_runs if r.status == "completed"]
        successful = sum(1 for r in completed if r.conclusion == "success")
        failed = sum(1 for r in completed if r.conclusion == "failure")
        durations = _durations(day_runs)
        points.append(
            WorkflowTrendPoint(
                date=day,
                total_runs=len(day_runs),
                successful_runs=successful,
                failed_runs=failed,
                success_rate=successful / len(day_runs) * 100,
                average_duration=statistics.fmean(durations) if durations else 0.0,
            )
        )
    return points


def success_trend(runs: list[WorkflowRun]) -> Trend:
    """Compare success rates of the older and newer halves of completed runs."""
    if len(runs) < _TREND_MIN_RUNS:
        return "stable"
    completed = sorted(
        (r for r in runs if r.status == "completed" and r.created_at is not None),
        key=lambda r: r.created_at,  # type: ignore[arg-type, return-value]
    )
    half = len(completed) // 2
    first, second = completed[:half], completed[half:]

    def rate(chunk: list[WorkflowRun]) -> float:
        if not chunk:
            return 0.0
        return sum(1 for r in chunk if r.conclusion == "success") / len(chunk) * 100

    delta = rate(second) - rate(first)
    if delta > _TREND_DELTA:
        return "improving"
    if delta < -_TREND_DELTA:
        return "declining"
    return "stable"


def workflow_performance(runs: list[WorkflowRun]) -> list[WorkflowPerformance]:
    """Per-workflow reliability, busiest workflow first."""
    grouped: dict[str, list[WorkflowRun]] = defaultdict(list)
    for run in runs:
        grouped[run.workflow_name].append(run)

    results = []
    for name, wf_runs in grouped.items():
        completed = [r for r in wf_runs if r.status == "completed"]
        successful = sum(1 for r in completed if r.conclusion == "success")
        failed = sum(1 for r in completed if r.conclusion == "failure")
        durations = _durations(wf_runs)
        created = [r.created_at for r in wf_runs if r.created_at is not None]
        results.append(
            WorkflowPerformance(
                workflow_name=name,
                total_runs=len(wf_runs),
                successful_runs=successful,
                failed_runs=failed,
                success_rate=successful / len(wf_runs) * 100,
                average_duration=statistics.fmean(durations) if durations else 0.0,
                last_run=max(created) if created else None,
                trend=success_trend(wf_runs),
            )
        )
    return sorted(results, key=lambda p: p.total_runs, reverse=True)


async def workflow_success_rates(
    fetcher: WorkflowFetcher, repositories: list[tuple[str, str]], days: int = 7
) -> list[dict[str, Any]]:
    """Success rate per repository; a repository whose fetch fails reports zeros."""
    results = []
    for owner, name in repositories:
        full_name = f"{owner}/{name}"
        try:
            runs = await fetcher.fetch_recent_workflow_runs(owner, name, days)
        except Exception:
            log.error("workflows.success_rate_failed", repository=full_name, exc_info=True)
            results.append({"repository": full_name, "success_rate": 0.0, "total_runs": 0})
            continue
        metrics = calculate_workflow_metrics(runs, days)
        results.append(
            {
                "repository": full_name,
                "success_rate": metrics.success_rate,
                "total_runs": metrics.total_runs,
            }
        )
    return results
