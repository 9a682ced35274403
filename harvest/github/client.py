"""
GitHub REST API client.

Authenticated with a bearer token, rate limited, with bounded retries.
A single client (and limiter) is shared by every contest in a run so the
whole run stays under GitHub's throttling thresholds.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from ..errors import AccessDeniedError, MissingTokenError, NotFoundError, TransportError


logger = logging.getLogger(__name__)


class RateLimiter:
    """Request budget shared by every call a client makes.

    Two limits apply. Locally, at most ``max_requests`` requests may start in
    any ``window_seconds`` span. Remotely, once GitHub answers with
    ``X-RateLimit-Remaining: 0`` every request waits for ``X-RateLimit-Reset``.
    """

    def __init__(self, max_requests: int = 60, window_seconds: float = 60.0):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.quota: int | None = None          # X-RateLimit-Remaining
        self.quota_reset: float | None = None  # X-RateLimit-Reset (epoch seconds)
        self._starts: list[float] = []
        self._lock = asyncio.Lock()

    def update_from_headers(self, headers: Any) -> None:
        """Record GitHub's quota headers. Unparsable values are ignored."""
        remaining = headers.get("X-RateLimit-Remaining")
        reset = headers.get("X-RateLimit-Reset")
        try:
            quota = self.quota if remaining is None else int(remaining)
            quota_reset = self.quota_reset if reset is None else float(reset)
        except (TypeError, ValueError):
            logger.debug("Ignoring unparsable rate limit headers: %r / %r", remaining, reset)
            return
        self.quota, self.quota_reset = quota, quota_reset

    @property
    def exhausted(self) -> bool:
        return self.quota is not None and self.quota <= 0

    def _prune(self, now: float) -> list[float]:
        cutoff = now - self.window_seconds
        self._starts = [t for t in self._starts if t > cutoff]
        return self._starts

    def delay(self, now: float | None = None) -> float:
        """Seconds until the next request may start."""
        now = time.time() if now is None else now
        if self.exhausted and self.quota_reset:
            return max(0.0, self.quota_reset - now)
        starts = self._prune(now)
        if len(starts) >= self.max_requests:
            return max(0.0, starts[0] + self.window_seconds - now)
        return 0.0

    async def acquire(self) -> None:
        """Wait for a free slot and claim it."""
        async with self._lock:
            wait = self.delay()
            if wait > 0:
                if self.exhausted:
                    logger.warning("GitHub rate limit reached, waiting %.1fs", wait)
                await asyncio.sleep(wait)
            if self.exhausted:
                # The reset has passed; the next response reports the new quota
                self.quota = None
            self._starts.append(time.time())

    def remaining(self) -> int:
        """GitHub's reported quota, or the free local slots if none was reported."""
        if self.quota is not None:
            return self.quota
        return max(0, self.max_requests - len(self._prune(time.time())))


@dataclass
class GitHubResponse:
    """Final response of a (possibly retried) request."""

    status: int
    data: Any
    headers: dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    """Exponential backoff for the given zero-based attempt."""
    return min(maximum, base * (2 ** attempt))


class GitHubClient:
    """Client for the GitHub REST API."""

    RETRY_STATUSES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        token: str | None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        rate_limiter: RateLimiter | None = None,
        user_agent: str = "trawler/0.1",
        session: aiohttp.ClientSession | None = None,
    ):
        """Initialize client.

        Args:
            token: GitHub token sent as a bearer credential
            api_url: API base URL
            timeout: Per-request timeout in seconds
            max_attempts: Total attempts per request (retries + 1)
            backoff_base: First retry delay in seconds
            backoff_max: Upper bound for a single retry delay
            rate_limiter: Shared limiter. A private one is created if omitted.
            user_agent: User-Agent header value
            session: Existing aiohttp session to borrow

        Raises:
            MissingTokenError: If no token is given
        """
        if not token:
            raise MissingTokenError("GitHub token not configured. Set GITHUB_PA_TOKEN in .env")

        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.user_agent = user_agent
        self._rate_limiter = rate_limiter or RateLimiter()
        self._session = session
        self._owns_session = False

    @classmethod
    def from_config(cls, config, session: aiohttp.ClientSession | None = None) -> "GitHubClient":
        """Build a client from a HarvestConfig."""
        return cls(
            token=config.require_token(),
            api_url=config.github_api_url,
            timeout=config.request_timeout,
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base,
            backoff_max=config.backoff_max,
            rate_limiter=RateLimiter(config.rate_limit_requests, config.rate_limit_window),
            user_agent=config.user_agent,
            session=session,
        )

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
        if self._owns_session:
            self._session = None
            self._owns_session = False

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("Client not initialized. Use async with or call __aenter__")
        return self._session

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.token}",
            "User-Agent": self.user_agent,
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def api(self, path: str) -> str:
        """Absolute URL for an API path."""
        return f"{self.api_url}/{path.lstrip('/')}"

    def _should_retry(self, status: int, data: Any) -> bool:
        if status in self.RETRY_STATUSES:
            return True
        if status == 403 and isinstance(data, dict):
            # Primary and secondary rate limits both come back as 403
            return "rate limit" in str(data.get("message", "")).lower()
        return False

    async def fetch(self, url: str, params: dict | None = None) -> GitHubResponse:
        """GET a URL, retrying transient failures.

        Returns the last response received, whatever its status.

        Raises:
            TransportError: If every attempt failed with a network error or timeout
        """
        last_error: BaseException | None = None

        for attempt in range(self.max_attempts):
            await self._rate_limiter.acquire()
            try:
                async with self.session.get(
                    url,
                    headers=self.headers,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    self._rate_limiter.update_from_headers(resp.headers)
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = None
                    response = GitHubResponse(
                        status=resp.status,
                        data=data,
                        headers=dict(resp.headers),
                        url=url,
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                logger.debug("Request to %s failed (attempt %d/%d): %r", url, attempt + 1, self.max_attempts, e)
            else:
                if not self._should_retry(response.status, response.data) or attempt == self.max_attempts - 1:
                    return response
                logger.debug("GitHub returned %d for %s (attempt %d/%d)", response.status, url, attempt + 1, self.max_attempts)

            if attempt < self.max_attempts - 1:
                await asyncio.sleep(backoff_delay(attempt, self.backoff_base, self.backoff_max))

        raise TransportError(
            f"GET {url} failed after {self.max_attempts} attempts: {last_error!r}",
            url=url,
        )

    async def get_json(self, url: str, params: dict | None = None) -> Any:
        """GET a URL and return the decoded JSON body.

        Raises:
            AccessDeniedError: On 401/403
            NotFoundError: On 404
            TransportError: On any other non-success status or network failure
        """
        response = await self.fetch(url, params=params)
        if response.ok:
            return response.data

        message = ""
        if isinstance(response.data, dict):
            message = response.data.get("message", "")

        if response.status in (401, 403):
            raise AccessDeniedError(f"GitHub denied access to {url} ({response.status}): {message}")
        if response.status == 404:
            raise NotFoundError(f"Not found: {url}", status=404, url=url)
        raise TransportError(f"GitHub API error {response.status} for {url}: {message}", status=response.status, url=url)

    def get_rate_limit_remaining(self) -> int:
        """Get remaining API requests in current window."""
        return self._rate_limiter.remaining()
