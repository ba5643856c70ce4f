"""Tests for workflow-run fetching and reliability statistics."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from ghpulse.engines.github.models import WorkflowRun
from ghpulse.engines.github.workflows import (
    WorkflowFetcher,
    WorkflowMetrics,
    calculate_workflow_metrics,
    success_trend,
    workflow_performance,
    workflow_success_rates,
    workflow_trends,
)

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def _run(
    run_id: int,
    name: str,
    conclusion: str | None,
    *,
    seconds: int = 60,
    day: int = 0,
    status: str = "completed",
) -> WorkflowRun:
    created = T0 + timedelta(days=day, minutes=run_id)
    return WorkflowRun(
        id=run_id,
        workflow_name=name,
        head_branch="main",
        head_sha="abc",
        status=status,
        conclusion=conclusion,
        created_at=created,
        updated_at=created + timedelta(seconds=seconds),
        run_started_at=created,
    )


def _sample() -> list[WorkflowRun]:
    return [
        _run(1, "CI", "success", seconds=60),
        _run(2, "CI", "failure", seconds=120),
        _run(3, "Lint", "failure", seconds=30, day=1),
        _run(4, "Lint", None, day=1, status="in_progress"),
        _run(5, "Lint", "failure", seconds=90, day=1),
    ]


# ── TestMetrics ───────────────────────────────────────────────────────────


class TestMetrics:
    def test_metrics(self):
        metrics = calculate_workflow_metrics(_sample(), days=2)
        assert metrics.total_runs == 5
        assert metrics.success_rate == 25
        assert metrics.failure_rate == 75
        assert metrics.average_duration == 75
        assert metrics.median_duration == 90
        assert metrics.total_duration == 300
        assert metrics.runs_per_day == 2.5
        assert metrics.most_active_workflow == "Lint"
        assert metrics.least_reliable_workflow == "Lint"

    def test_no_completed_runs(self):
        runs = [_run(1, "CI", None, status="queued")]
        assert calculate_workflow_metrics(runs) == WorkflowMetrics()

    def test_duration_only_for_completed_runs(self):
        assert _run(1, "CI", None, status="in_progress").duration_seconds is None
        assert _run(1, "CI", "success", seconds=42).duration_seconds == 42

    def test_trends(self):
        points = workflow_trends(_sample())
        assert [(p.date, p.total_runs, p.successful_runs, p.failed_runs) for p in points] == [
            ("2024-05-01", 2, 1, 1),
            ("2024-05-02", 3, 0, 2),
        ]
        assert points[0].success_rate == 50
        assert points[0].average_duration == 90
        assert points[1].average_duration == 60

    def test_performance_busiest_first(self):
        perf = workflow_performance(_sample())
        assert [p.workflow_name for p in perf] == ["Lint", "CI"]
        assert perf[0].failed_runs == 2
        assert perf[0].last_run == T0 + timedelta(days=1, minutes=5)
        assert perf[0].trend == "stable"


# ── TestSuccessTrend ──────────────────────────────────────────────────────


class TestSuccessTrend:
    def test_improving(self):
        runs = [_run(i, "CI", "failure" if i < 5 else "success") for i in range(10)]
        assert success_trend(runs) == "improving"

    def test_declining(self):
        runs = [_run(i, "CI", "success" if i < 5 else "failure") for i in range(10)]
        assert success_trend(runs) == "declining"

    def test_too_few_runs_is_stable(self):
        runs = [_run(i, "CI", "failure" if i < 4 else "success") for i in range(9)]
        assert success_trend(runs) == "stable"

    def test_small_change_is_stable(self):
        conclusions = ["success"] * 10 + ["failure"] + ["success"] * 9
        runs = [_run(i, "CI", c) for i, c in enumerate(conclusions)]
        assert success_trend(runs) == "stable"


# ── TestWorkflowFetcher ───────────────────────────────────────────────────


class TestWorkflowFetcher:
    @pytest.mark.anyio
    async def test_failed_runs_filter(self, make_client):
        seen: list[httpx.QueryParams] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.params)
            runs = [
                {"id": 1, "name": "CI", "status": "completed", "conclusion": "failure"},
                {"id": 2, "name": "CI", "status": "completed", "conclusion": "success"},
            ]
            return httpx.Response(200, json={"workflow_runs": runs})

        client = make_client(handler)
        runs = await WorkflowFetcher(client).fetch_failed_workflow_runs("o", "r", days=7)
        await client.engine.close()

        assert [r.id for r in runs] == [1]
        assert seen[0]["status"] == "completed"
        assert seen[0]["created"].startswith(">=")

    @pytest.mark.anyio
    async def test_single_page_vs_all_pages(self, make_client):
        pages: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = request.url.params["page"]
            pages.append(page)
            size = 2 if page == "1" else 1
            runs = [{"id": int(page) * 10 + i, "name": "CI"} for i in range(size)]
            return httpx.Response(200, json={"workflow_runs": runs})

        client = make_client(handler, per_page=2)
        fetcher = WorkflowFetcher(client)
        first = await fetcher.fetch_workflow_runs("o", "r")
        assert pages == ["1"]
        everything = await fetcher.fetch_all_workflow_runs("o", "r")
        await client.engine.close()

        assert len(first) == 2
        assert pages == ["1", "1", "2"]
        assert [r.id for r in everything] == [10, 11, 20]


# ── TestSuccessRates ──────────────────────────────────────────────────────


class TestSuccessRates:
    @pytest.mark.anyio
    async def test_failing_repository_reports_zero(self):
        fetcher = MagicMock()

        async def recent(owner, repo, days):
            if repo == "broken":
                raise RuntimeError("boom")
            return [_run(1, "CI", "success"), _run(2, "CI", "failure")]

        fetcher.fetch_recent_workflow_runs = AsyncMock(side_effect=recent)
        rates = await workflow_success_rates(fetcher, [("o", "ok"), ("o", "broken")])
        assert rates == [
            {"repository": "o/ok", "success_rate": 50.0, "total_runs": 2},
            {"repository": "o/broken", "success_rate": 0.0, "total_runs": 0},
        ]
