"""Rate-limited request engine: a single queue drained one request at a time.

Every provider call made by ghpulse goes through a single
:class:`RequestEngine`.  Callers enqueue and await a future; a single drain
task dispatches queued requests one at a time, tracks the provider's
rate-limit headers, suspends until the quota resets when it runs dry, and
retries transient failures with exponential backoff.  Retries and rate-limit
re-insertions go back to the *front* of the queue so already-started work
finishes before newer requests.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from ghpulse.core.config import DEFAULT_API_URL, DEFAULT_GRAPHQL_URL, DEFAULT_USER_AGENT, Settings
from ghpulse.engines.github.models import QueuedRequest, RateLimitStatus
from ghpulse.engines.github.token import TokenAccessor, resolve_token
from ghpulse.exceptions import (
    GhPulseError,
    ProviderAPIError,
    QueueFullError,
    RateLimitExceededError,
)

log = structlog.get_logger("ghpulse.engine")

_RATE_LIMIT_FALLBACK_WAIT = 60.0


@dataclass(frozen=True)
class EngineConfig:
    api_url: str = DEFAULT_API_URL
    graphql_url: str = DEFAULT_GRAPHQL_URL
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0
    max_queue_size: int = 100
    max_retries: int = 3
    base_delay: float = 1.0  # seconds; backoff is base_delay * 2**(attempt-1)
    throttle_delay: float = 0.1
    throttle_threshold: int = 10
    # Statuses that no amount of retrying will fix.
    no_retry_statuses: frozenset[int] = frozenset({404, 422})

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineConfig:
        return cls(
            api_url=settings.api_url,
            graphql_url=settings.graphql_url,
            user_agent=settings.user_agent,
            timeout=settings.http_timeout,
            max_queue_size=settings.max_queue_size,
            max_retries=settings.max_retries,
            base_delay=settings.base_delay,
            throttle_delay=settings.throttle_delay,
            throttle_threshold=settings.throttle_threshold,
        )


class RequestEngine:
    """Serialize provider calls through a bounded, rate-limit-aware queue.

    Construct one per process and hand it to every component that talks to
    GitHub.  *transport* is forwarded to :class:`httpx.AsyncClient` (tests
    pass an :class:`httpx.MockTransport`); *clock* returns epoch seconds.
    """

    def __init__(
        self,
        token_accessor: TokenAccessor,
        config: EngineConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or EngineConfig()
        self._token_accessor = token_accessor
        self._clock = clock
        self._client = httpx.AsyncClient(
            base_url=self.config.api_url,
            headers={
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": self.config.user_agent,
            },
            timeout=self.config.timeout,
            transport=transport,
        )
        self._queue: deque[QueuedRequest] = deque()
        self._drain_task: asyncio.Task[None] | None = None
        self._in_flight: QueuedRequest | None = None
        self._rate_limit: RateLimitStatus | None = None

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Stop draining, reject every unfinished request and close the transport.

        Cancelling the drain task rejects the request it was working on,
        including one sleeping in a retry backoff or a rate-limit wait.
        """
        if self._drain_task is not None:
            self._drain_task.cancel()
            await asyncio.gather(self._drain_task, return_exceptions=True)
            self._drain_task = None
        while self._queue:
            request = self._queue.popleft()
            if not request.future.done():
                request.future.set_exception(GhPulseError("request engine closed"))
        await self._client.aclose()

    async def __aenter__(self) -> RequestEngine:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    def enqueue(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> asyncio.Future[httpx.Response]:
        """Queue a request and return a future for its response.

        Raises :class:`QueueFullError` immediately, without touching the
        queue, when ``max_queue_size`` requests are already pending.  The
        request being dispatched counts as pending, so a retry or rate-limit
        re-insertion never pushes the queue past the bound.
        Must be called from inside a running event loop.
        """
        pending = len(self._queue) + (self._in_flight is not None)
        if pending >= self.config.max_queue_size:
            raise QueueFullError(self.config.max_queue_size)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[httpx.Response] = loop.create_future()
        self._queue.append(
            QueuedRequest(
                method=method.upper(),
                url=url,
                future=future,
                params=params,
                json=json,
                headers=headers,
            )
        )
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self._drain(), name="github-request-drain")
        return future

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await self.enqueue(method, url, **kwargs)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        return await self.enqueue("GET", path, params=params)

    async def post(self, path: str, data: dict[str, Any] | None = None) -> httpx.Response:
        return await self.enqueue("POST", path, json=data)

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST a GraphQL document and return the decoded body (``data`` + ``errors``)."""
        response = await self.enqueue(
            "POST", self.config.graphql_url, json={"query": query, "variables": variables or {}}
        )
        return response.json()

    def get_queue_status(self) -> dict[str, Any]:
        return {
            "queue_length": len(self._queue),
            "is_processing": self._drain_task is not None and not self._drain_task.done(),
            "max_queue_size": self.config.max_queue_size,
        }

    def get_rate_limit_status(self) -> RateLimitStatus | None:
        return self._rate_limit

    async def check_rate_limit(self) -> RateLimitStatus:
        """Ask the provider for the current core quota, bypassing the queue."""
        token = await resolve_token(self._token_accessor)
        try:
            response = await self._client.get(
                "/rate_limit", headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.TransportError as exc:
            raise ProviderAPIError(0, f"failed to check rate limit: {exc}") from exc
        self._update_rate_limit(response.headers)
        if not response.is_success:
            raise ProviderAPIError(response.status_code, response.reason_phrase)
        rate = response.json()["rate"]
        status = RateLimitStatus(
            limit=int(rate["limit"]),
            remaining=int(rate["remaining"]),
            reset=int(rate["reset"]),
            used=int(rate.get("used", int(rate["limit"]) - int(rate["remaining"]))),
        )
        self._rate_limit = status
        return status

    # ── internal ───────────────────────────────────────────────────────────

    async def _drain(self) -> None:
        """Dispatch queued requests one at a time until the queue is empty."""
        while self._queue:
            request = self._queue.popleft()
            if request.future.done():
                # caller gave up (cancelled) while it was queued
                continue

            self._in_flight = request
            try:
                succeeded = await self._dispatch(request)
            except asyncio.CancelledError:
                _reject(request, GhPulseError("request engine closed"))
                raise
            finally:
                self._in_flight = None

            if succeeded and self._should_throttle():
                await asyncio.sleep(self.config.throttle_delay)

    async def _dispatch(self, request: QueuedRequest) -> bool:
        """Run one attempt of *request*.

        Returns ``True`` only when the provider answered successfully; a
        request that failed or went back to the front of the queue (rate
        limit or retry) returns ``False``.
        """
        await self._wait_for_rate_limit()

        try:
            response = await self._execute(request)
        except RateLimitExceededError as exc:
            wait = self._seconds_until(exc.reset_at)
            log.warning(
                "github.rate_limit_hit",
                url=request.url,
                wait_seconds=wait,
                queue_length=len(self._queue),
            )
            await asyncio.sleep(wait)
            self._queue.appendleft(request)
            return False
        except ProviderAPIError as exc:
            if exc.status in self.config.no_retry_statuses or (
                request.retry_count >= self.config.max_retries
            ):
                log.warning(
                    "engine.request_failed",
                    method=request.method,
                    url=request.url,
                    status=exc.status,
                    attempts=request.retry_count + 1,
                )
                _reject(request, exc)
                return False
            request.retry_count += 1
            delay = self.config.base_delay * 2 ** (request.retry_count - 1)
            log.warning(
                "engine.retry",
                method=request.method,
                url=request.url,
                status=exc.status,
                attempt=request.retry_count,
                max_retries=self.config.max_retries,
                delay_seconds=delay,
            )
            await asyncio.sleep(delay)
            self._queue.appendleft(request)
            return False
        except Exception as exc:
            # token failures and anything unexpected are terminal
            _reject(request, exc)
            return False

        if not request.future.done():
            request.future.set_result(response)
        return True

    async def _execute(self, request: QueuedRequest) -> httpx.Response:
        token = await resolve_token(self._token_accessor)
        headers = {"Authorization": f"Bearer {token}"}
        if request.headers:
            headers.update(request.headers)

        try:
            response = await self._client.request(
                request.method,
                request.url,
                params=request.params,
                json=request.json,
                headers=headers,
            )
        except httpx.TransportError as exc:
            raise ProviderAPIError(0, f"{type(exc).__name__}: {exc}") from exc

        self._update_rate_limit(response.headers)

        if response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0":
            reset_at = _parse_header_int(response.headers.get("x-ratelimit-reset"))
            raise RateLimitExceededError(reset_at)

        if not response.is_success:
            raise ProviderAPIError(response.status_code, _error_message(response))

        return response

    async def _wait_for_rate_limit(self) -> None:
        status = self._rate_limit
        if status is None or status.remaining > 0:
            return
        now = self._clock()
        if now >= status.reset:
            return
        wait = status.reset - now + 1
        log.info("github.rate_limit_wait", wait_seconds=wait, reset=status.reset)
        await asyncio.sleep(wait)

    def _should_throttle(self) -> bool:
        return (
            self._rate_limit is not None
            and self._rate_limit.remaining <= self.config.throttle_threshold
        )

    def _seconds_until(self, reset_at: int | None) -> float:
        if reset_at is None:
            return _RATE_LIMIT_FALLBACK_WAIT
        return max(reset_at - self._clock() + 1, 1.0)

    def _update_rate_limit(self, headers: httpx.Headers) -> None:
        limit = _parse_header_int(headers.get("x-ratelimit-limit"))
        remaining = _parse_header_int(headers.get("x-ratelimit-remaining"))
        reset = _parse_header_int(headers.get("x-ratelimit-reset"))
        if limit is None or remaining is None or reset is None:
            return
        used = _parse_header_int(headers.get("x-ratelimit-used"))
        self._rate_limit = RateLimitStatus(
            limit=limit,
            remaining=remaining,
            reset=reset,
            used=used if used is not None else limit - remaining,
        )


def _reject(request: QueuedRequest, exc: BaseException) -> None:
    if not request.future.done():
        request.future.set_exception(exc)


def _error_message(response: httpx.Response) -> str:
    """Prefer GitHub's JSON ``message`` field over the bare reason phrase."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase


def _parse_header_int(value: str | None) -> int | None:
    """Safely parse an integer header value."""
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None
