"""Runtime settings resolved from environment variables (and an optional .env)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"
DEFAULT_USER_AGENT = "GitHub-Control-Center/1.0"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    """Process-wide settings.  Build once at startup and pass it down."""

    github_token: str | None = None
    api_url: str = DEFAULT_API_URL
    graphql_url: str = DEFAULT_GRAPHQL_URL
    user_agent: str = DEFAULT_USER_AGENT
    http_timeout: float = 30.0
    max_queue_size: int = 100
    max_retries: int = 3
    base_delay: float = 1.0
    throttle_delay: float = 0.1
    throttle_threshold: int = 10

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> Settings:
        """Read settings from the environment.

        When *env_file* is given (or ``.env`` exists in the working
        directory) it is loaded first; real environment variables win.
        """
        if env_file is not None:
            load_dotenv(env_file)
        elif Path(".env").is_file():
            load_dotenv(".env")

        return cls(
            github_token=os.environ.get("GITHUB_TOKEN") or None,
            api_url=os.environ.get("GHPULSE_API_URL", DEFAULT_API_URL).rstrip("/"),
            graphql_url=os.environ.get("GHPULSE_GRAPHQL_URL", DEFAULT_GRAPHQL_URL),
            user_agent=os.environ.get("GHPULSE_USER_AGENT", DEFAULT_USER_AGENT),
            http_timeout=_env_float("GHPULSE_HTTP_TIMEOUT", 30.0),
            max_queue_size=_env_int("GHPULSE_MAX_QUEUE_SIZE", 100),
            max_retries=_env_int("GHPULSE_MAX_RETRIES", 3),
            base_delay=_env_float("GHPULSE_BASE_DELAY", 1.0),
            throttle_delay=_env_float("GHPULSE_THROTTLE_DELAY", 0.1),
            throttle_threshold=_env_int("GHPULSE_THROTTLE_THRESHOLD", 10),
        )
