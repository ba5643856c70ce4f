"""GitHub access layer: rate-limited request engine plus typed data client."""

from ghpulse.engines.github.client import GitHubDataClient
from ghpulse.engines.github.request_engine import EngineConfig, RequestEngine
from ghpulse.engines.github.token import TokenInfo, static_token

__all__ = [
    "EngineConfig",
    "GitHubDataClient",
    "RequestEngine",
    "TokenInfo",
    "static_token",
]
