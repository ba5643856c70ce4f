"""Build-failure detection: classify failed runs and find recurring failures.

Recurrence is a property of an analysis window: ``is_recurring`` and
``similar_failures`` are computed over the whole set of failures at once,
never incrementally, so the same window always yields the same records.
"""

from __future__ import annotations

import re
import statistics
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime

import structlog

from ghpulse.engines.build_failure.patterns import (
    FailurePattern,
    FailureType,
    Severity,
    match_failure_pattern,
    suggested_fix,
)
from ghpulse.engines.github.models import WorkflowJob, WorkflowRun, WorkflowStep
from ghpulse.engines.github.workflows import WorkflowFetcher

log = structlog.get_logger("ghpulse.engine.failures")

_DIGITS_RE = re.compile(r"\d+")
_QUOTES_RE = re.compile(r"['\"]")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class BuildFailure:
    run_id: int
    workflow_name: str
    repository: str
    branch: str
    failure_type: FailureType
    failure_reason: str
    failed_step: str | None
    failed_job: str | None
    timestamp: datetime | None
    duration: float | None
    actor: str
    commit_sha: str
    commit_message: str
    severity: Severity
    category: str
    suggested_fix: str
    is_recurring: bool = False
    similar_failures: int = 0


@dataclass
class TrendPoint:
    date: str
    count: int
    type: str


@dataclass
class FailureAnalysis:
    total_failures: int = 0
    failures_by_type: dict[str, int] = field(default_factory=dict)
    failures_by_workflow: dict[str, int] = field(default_factory=dict)
    failures_by_branch: dict[str, int] = field(default_factory=dict)
    recurring_failures: int = 0
    critical_failures: int = 0
    average_time_to_failure: float = 0.0
    most_problematic_workflow: str = ""
    most_problematic_branch: str = ""
    failure_trends: list[TrendPoint] = field(default_factory=list)


@dataclass
class RecurringFailure:
    pattern: str
    count: int
    workflows: list[str]
    branches: list[str]
    first_seen: datetime | None
    last_seen: datetime | None
    severity: Severity


# ── pure classification ─────────────────────────────────────────────────────


def extract_failure_reason(job: WorkflowJob, step: WorkflowStep | None) -> str:
    if step is not None:
        return f'Step "{step.name}" failed in job "{job.name}"'
    return f'Job "{job.name}" failed'


def normalize_failure_reason(reason: str) -> str:
    text = _DIGITS_RE.sub("X", reason.lower())
    text = _QUOTES_RE.sub("", text)
    return _SPACE_RE.sub(" ", text).strip()


def classify_run(
    run: WorkflowRun, jobs: list[WorkflowJob], repository: str
) -> BuildFailure | None:
    """Describe a failed run by its first failed job/step; None if no job failed."""
    failed_job = next((job for job in jobs if job.conclusion == "failure"), None)
    if failed_job is None:
        return None
    failed_step = next((s for s in failed_job.steps if s.conclusion == "failure"), None)
    reason = extract_failure_reason(failed_job, failed_step)
    pattern: FailurePattern = match_failure_pattern(reason)
    return BuildFailure(
        run_id=run.id,
        workflow_name=run.workflow_name,
        repository=repository,
        branch=run.head_branch,
        failure_type=pattern.type,
        failure_reason=reason,
        failed_step=failed_step.name if failed_step else None,
        failed_job=failed_job.name,
        timestamp=run.created_at,
        duration=run.duration_seconds,
        actor=run.actor,
        commit_sha=run.head_sha,
        commit_message=run.commit_message,
        severity=pattern.severity,
        category=pattern.category,
        suggested_fix=suggested_fix(pattern),
    )


def enrich_with_recurrence(failures: list[BuildFailure]) -> list[BuildFailure]:
    """Mark failures whose normalized reason occurs more than once in the window."""
    counts = Counter(normalize_failure_reason(f.failure_reason) for f in failures)
    enriched = []
    for failure in failures:
        occurrences = counts[normalize_failure_reason(failure.failure_reason)]
        enriched.append(
            replace(failure, is_recurring=occurrences > 1, similar_failures=occurrences - 1)
        )
    return enriched


def classify_window(
    window: list[tuple[WorkflowRun, list[WorkflowJob]]], repository: str
) -> list[BuildFailure]:
    """Classify every failed run of a window, then apply window-wide recurrence."""
    failures = []
    for run, jobs in window:
        failure = classify_run(run, jobs, repository)
        if failure is not None:
            failures.append(failure)
    return enrich_with_recurrence(failures)


def analyze_failures(failures: list[BuildFailure]) -> FailureAnalysis:
    """Aggregate counts, the trend series and the most problematic workflow/branch."""
    by_type: Counter[str] = Counter()
    by_workflow: Counter[str] = Counter()
    by_branch: Counter[str] = Counter()
    trends: dict[tuple[str, str], TrendPoint] = {}

    for failure in failures:
        by_type[failure.failure_type] += 1
        by_workflow[failure.workflow_name] += 1
        by_branch[failure.branch] += 1
        if failure.timestamp is not None:
            day = failure.timestamp.date().isoformat()
            key = (day, failure.failure_type)
            point = trends.setdefault(key, TrendPoint(day, 0, failure.failure_type))
            point.count += 1

    durations = [f.duration for f in failures if f.duration]

    return FailureAnalysis(
        total_failures=len(failures),
        failures_by_type=dict(by_type),
        failures_by_workflow=dict(by_workflow),
        failures_by_branch=dict(by_branch),
        recurring_failures=sum(1 for f in failures if f.is_recurring),
        critical_failures=sum(1 for f in failures if f.severity == "critical"),
        average_time_to_failure=statistics.fmean(durations) if durations else 0.0,
        # most_common is stable, so ties go to the first one encountered
        most_problematic_workflow=by_workflow.most_common(1)[0][0] if by_workflow else "",
        most_problematic_branch=by_branch.most_common(1)[0][0] if by_branch else "",
        failure_trends=sorted(trends.values(), key=lambda p: p.date),
    )


def recurring_failures(failures: list[BuildFailure]) -> list[RecurringFailure]:
    """Group failures by normalized reason, keeping groups seen at least twice."""
    groups: dict[str, list[BuildFailure]] = {}
    for failure in failures:
        groups.setdefault(normalize_failure_reason(failure.failure_reason), []).append(failure)

    results = []
    for pattern, members in groups.items():
        if len(members) < 2:
            continue
        stamps = [m.timestamp for m in members if m.timestamp is not None]
        results.append(
            RecurringFailure(
                pattern=pattern,
                count=len(members),
                workflows=list(dict.fromkeys(m.workflow_name for m in members)),
                branches=list(dict.fromkeys(m.branch for m in members)),
                first_seen=min(stamps) if stamps else None,
                last_seen=max(stamps) if stamps else None,
                severity=members[0].severity,
            )
        )
    return sorted(results, key=lambda r: r.count, reverse=True)


# ── fetching ────────────────────────────────────────────────────────────────


class BuildFailureDetector:
    """Fetch a window of failed runs for a repository and classify it."""

    def __init__(self, fetcher: WorkflowFetcher) -> None:
        self._fetcher = fetcher

    async def detect_build_failures(
        self, owner: str, repo: str, days: int = 7
    ) -> list[BuildFailure]:
        """Failed runs of the last *days* days; a run whose jobs cannot be read is skipped."""
        repository = f"{owner}/{repo}"
        runs = await self._fetcher.fetch_failed_workflow_runs(owner, repo, days)

        window: list[tuple[WorkflowRun, list[WorkflowJob]]] = []
        for run in runs:
            try:
                jobs = await self._fetcher.fetch_workflow_run_jobs(owner, repo, run.id)
            except Exception:
                log.error(
                    "failures.run_analysis_failed",
                    repository=repository,
                    run_id=run.id,
                    exc_info=True,
                )
                continue
            window.append((run, jobs))

        failures = classify_window(window, repository)
        log.info(
            "failures.detected",
            repository=repository,
            days=days,
            failed_runs=len(runs),
            failures=len(failures),
        )
        return failures

    async def analyze_failure_patterns(
        self, owner: str, repo: str, days: int = 30
    ) -> FailureAnalysis:
        return analyze_failures(await self.detect_build_failures(owner, repo, days))

    async def detect_deployment_issues(
        self, owner: str, repo: str, days: int = 7
    ) -> list[BuildFailure]:
        failures = await self.detect_build_failures(owner, repo, days)
        return [
            f for f in failures if f.failure_type == "deployment" or f.category == "deployment"
        ]

    async def identify_recurring_failures(
        self, owner: str, repo: str, days: int = 14
    ) -> list[RecurringFailure]:
        return recurring_failures(await self.detect_build_failures(owner, repo, days))

    async def detect_for_repositories(
        self, repositories: list[tuple[str, str]], days: int = 7
    ) -> dict[str, list[BuildFailure]]:
        """Best effort across repositories: a failing repository is logged and left out."""
        results: dict[str, list[BuildFailure]] = {}
        for owner, repo in repositories:
            try:
                results[f"{owner}/{repo}"] = await self.detect_build_failures(owner, repo, days)
            except Exception:
                log.error("failures.repository_failed", repository=f"{owner}/{repo}", exc_info=True)
        return results
