"""Bearer-token accessors injected into the request engine.

Credential lifecycle (OAuth, refresh, encryption at rest) lives outside
ghpulse; the engine only asks an accessor for the current token before
each dispatch.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ghpulse.exceptions import TokenInvalidError


@dataclass(frozen=True)
class TokenInfo:
    access_token: str
    is_valid: bool
    error: str | None = None


TokenAccessor = Callable[[], Awaitable[TokenInfo | None]]


def static_token(token: str | None) -> TokenAccessor:
    """Return an accessor that always hands out *token*."""

    async def _accessor() -> TokenInfo:
        if not token:
            return TokenInfo(access_token="", is_valid=False, error="GITHUB_TOKEN is not set")
        return TokenInfo(access_token=token, is_valid=True)

    return _accessor


async def resolve_token(accessor: TokenAccessor) -> str:
    """Ask *accessor* for a token, raising :class:`TokenInvalidError` if unusable."""
    info = await accessor()
    if info is None or not info.is_valid or not info.access_token:
        message = (info.error if info is not None else None) or "No valid access token available"
        raise TokenInvalidError(message)
    return info.access_token
