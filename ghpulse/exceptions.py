"""Custom exceptions for ghpulse."""

from __future__ import annotations

from typing import Any


class GhPulseError(Exception):
    """Base exception for all ghpulse errors."""


class QueueFullError(GhPulseError):
    """Raised synchronously when the request queue is at capacity."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        super().__init__(f"request queue is full ({max_size} pending), try again later")


class RateLimitExceededError(GhPulseError):
    """Internal signal: the provider answered 403 with no remaining quota."""

    def __init__(self, reset_at: int | None) -> None:
        self.reset_at = reset_at
        super().__init__(f"rate limit exceeded, resets at {reset_at}")


class ProviderAPIError(GhPulseError):
    """Non-2xx response (or transport failure) after retries were exhausted."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"GitHub API error: {status} {message}".rstrip())


class GraphQLError(GhPulseError):
    """GraphQL response carried a non-empty ``errors`` payload."""

    def __init__(self, errors: list[dict[str, Any]]) -> None:
        self.errors = errors
        messages = [str(err.get("message", err)) for err in errors]
        super().__init__(f"GraphQL errors: {'; '.join(messages)}")


class NoDataError(GhPulseError):
    """Expected nested data is absent from an otherwise successful response."""


class ContentNotFoundError(GhPulseError):
    """Requested repository path is missing or is not a regular file."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"content not found or not a file: {path}")


class TokenInvalidError(GhPulseError):
    """The token accessor reported no usable token."""
