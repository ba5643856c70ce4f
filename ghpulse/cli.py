"""CLI entry point: ghpulse.

Subcommands:
    ghpulse streak octocat                 # Streak statistics and risk tier
    ghpulse failures octocat/hello --days 14
    ghpulse scan octocat/hello --max-files 100
    ghpulse languages octocat/hello octocat/world
    ghpulse rate-limit                     # Current core quota

Every command prints JSON on stdout; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click
import httpx

from ghpulse.core.config import Settings
from ghpulse.core.logging import setup_logging
from ghpulse.engines.activity.analytics import language_usage
from ghpulse.engines.build_failure.detector import BuildFailureDetector, analyze_failures
from ghpulse.engines.github.client import GitHubDataClient
from ghpulse.engines.github.request_engine import EngineConfig, RequestEngine
from ghpulse.engines.github.token import static_token
from ghpulse.engines.github.workflows import WorkflowFetcher
from ghpulse.engines.security_scanner.scanner import ScanOptions, SecurityScanner
from ghpulse.engines.streak.contributions import fetch_streak_stats
from ghpulse.engines.streak.risk import StreakRiskDetector
from ghpulse.exceptions import GhPulseError

T = TypeVar("T")


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(_to_jsonable(payload), indent=2, default=str))


def _split_repo(value: str) -> tuple[str, str]:
    owner, _, repo = value.partition("/")
    if not owner or not repo or "/" in repo:
        raise click.BadParameter(f"expected OWNER/REPO, got {value!r}")
    return owner, repo


def _run(ctx: click.Context, job: Callable[[GitHubDataClient], Awaitable[T]]) -> T:
    """Run *job* against a fresh engine; library errors become CLI errors."""
    settings: Settings = ctx.obj["settings"]
    transport: httpx.AsyncBaseTransport | None = ctx.obj.get("transport")

    async def _main() -> T:
        engine = RequestEngine(
            static_token(settings.github_token),
            EngineConfig.from_settings(settings),
            transport=transport,
        )
        async with engine:
            return await job(GitHubDataClient(engine))

    try:
        return asyncio.run(_main())
    except GhPulseError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Load settings from this .env file first",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, env_file: str | None) -> None:
    """ghpulse: GitHub activity metrics from the command line."""
    setup_logging("DEBUG" if verbose else None)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = Settings.from_env(env_file)


@main.command()
@click.argument("username")
@click.option("--days", default=365, show_default=True, help="Trailing window in days")
@click.pass_context
def streak(ctx: click.Context, username: str, days: int) -> None:
    """Show the contribution streak of USERNAME and its risk tier."""

    async def job(client: GitHubDataClient) -> dict[str, Any]:
        stats = await fetch_streak_stats(client, username, days)
        risk = StreakRiskDetector().analyze_streak_risk(
            stats.last_contribution_date, stats.current_streak
        )
        return {"username": username, "stats": stats, "risk": risk}

    _echo_json(_run(ctx, job))


@main.command()
@click.argument("repository")
@click.option("--days", default=7, show_default=True, help="Look-back window in days")
@click.pass_context
def failures(ctx: click.Context, repository: str, days: int) -> None:
    """Classify failed workflow runs of OWNER/REPO."""
    owner, repo = _split_repo(repository)

    async def job(client: GitHubDataClient) -> dict[str, Any]:
        detector = BuildFailureDetector(WorkflowFetcher(client))
        found = await detector.detect_build_failures(owner, repo, days)
        return {"repository": repository, "failures": found, "analysis": analyze_failures(found)}

    _echo_json(_run(ctx, job))


@main.command()
@click.argument("repository")
@click.option("--max-files", default=500, show_default=True, help="Maximum files to fetch")
@click.pass_context
def scan(ctx: click.Context, repository: str, max_files: int) -> None:
    """Scan OWNER/REPO for hardcoded secrets."""
    owner, repo = _split_repo(repository)
    options = ScanOptions(max_files=max_files)

    async def job(client: GitHubDataClient) -> Any:
        return await SecurityScanner(client).scan_repository(owner, repo, options)

    _echo_json(_run(ctx, job))


@main.command()
@click.argument("repositories", nargs=-1, required=True)
@click.pass_context
def languages(ctx: click.Context, repositories: tuple[str, ...]) -> None:
    """Aggregate language usage across one or more OWNER/REPO."""
    targets = [_split_repo(value) for value in repositories]

    async def job(client: GitHubDataClient) -> Any:
        return await language_usage(client, targets)

    _echo_json(_run(ctx, job))


@main.command("rate-limit")
@click.pass_context
def rate_limit(ctx: click.Context) -> None:
    """Show the current core rate-limit quota."""

    async def job(client: GitHubDataClient) -> Any:
        return await client.engine.check_rate_limit()

    _echo_json(_run(ctx, job))


if __name__ == "__main__":
    main()
