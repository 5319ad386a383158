"""
Ranked API Client with rate limiting, retry logic, and error handling.

Handles all communication with the ranked leaderboard API. Every failure is
classified into an ``ErrorKind`` and retried with a kind-specific backoff.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

import httpx
from asyncio_throttle import Throttler

from banwatch.config import Config
from banwatch.exceptions import ErrorKind, RankedAPIError

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 3600.0

SleepFunc = Callable[[float], Awaitable[Any]]


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After in seconds; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class RankedAPIClient:
    """Client for interacting with the ranked leaderboard API."""

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.config = config
        self.base_url = config.ranked_api_base_url
        self.max_retries = config.max_retries
        self._sleep = sleep

        self.throttler = Throttler(
            rate_limit=config.max_requests_per_minute,
            period=60.0
        )

        # Monotonic timestamps of recent 429s, for the hourly tally
        self._rate_limit_times: Deque[float] = deque()

        self.client = httpx.AsyncClient(
            timeout=config.request_timeout,
            follow_redirects=True,
            transport=transport,
            headers={
                "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
                "Accept": "application/json",
                "Cookie": f"_ncfa={config.ranked_api_cookie}",
            }
        )

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _record_rate_limit(self):
        now = time.monotonic()
        self._rate_limit_times.append(now)
        while self._rate_limit_times and now - self._rate_limit_times[0] > RATE_LIMIT_WINDOW_SECONDS:
            self._rate_limit_times.popleft()

    @property
    def rate_limit_hits_last_hour(self) -> int:
        """Number of 429 responses seen in the last hour."""
        now = time.monotonic()
        return sum(1 for t in self._rate_limit_times if now - t <= RATE_LIMIT_WINDOW_SECONDS)

    def backoff_delay(self, error: RankedAPIError, attempt: int) -> float:
        """
        Seconds to wait before retrying after ``error`` on ``attempt`` (0-based).

        Rate limits honour the server hint when one was sent.
        """
        cfg = self.config
        if error.kind is ErrorKind.RATE_LIMITED:
            if error.retry_after is not None:
                return error.retry_after
            return min(
                cfg.rate_limit_backoff_base + cfg.rate_limit_backoff_step * attempt,
                cfg.rate_limit_backoff_max
            )
        if error.kind.is_not_accessible:
            return cfg.not_found_backoff_base + cfg.not_found_backoff_step * attempt
        return cfg.transient_backoff_base + cfg.transient_backoff_step * attempt

    async def _send_once(self, url: str) -> Any:
        """
        Perform a single GET and classify the outcome.

        Returns:
            Decoded JSON payload

        Raises:
            RankedAPIError: Classified failure
        """
        await self.throttler.acquire()

        try:
            response = await self.client.get(url)
        except httpx.TimeoutException as e:
            raise RankedAPIError(ErrorKind.TIMEOUT, f"Request timeout: {url}") from e
        except httpx.TransportError as e:
            raise RankedAPIError(ErrorKind.NETWORK_ERROR, f"Network error: {e}") from e

        status_code = response.status_code

        if status_code == 429:
            raise RankedAPIError(
                ErrorKind.RATE_LIMITED,
                "Rate limited by ranked API",
                status_code=status_code,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if status_code == 404:
            raise RankedAPIError(ErrorKind.NOT_FOUND, "HTTP 404: not accessible", status_code=status_code)
        if status_code == 403:
            raise RankedAPIError(ErrorKind.FORBIDDEN, "HTTP 403: not accessible", status_code=status_code)
        if not response.is_success:
            raise RankedAPIError(
                ErrorKind.UNEXPECTED_STATUS,
                f"HTTP error {status_code}: {response.text[:200]}",
                status_code=status_code,
            )

        # HTML instead of JSON usually means a login wall or a block page
        content_type = response.headers.get("content-type", "").lower()
        if "text/html" in content_type:
            raise RankedAPIError(
                ErrorKind.MALFORMED,
                "Ranked API returned HTML instead of JSON",
                status_code=status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise RankedAPIError(
                ErrorKind.MALFORMED,
                f"Invalid JSON response: {e}",
                status_code=status_code,
            ) from e

    async def execute(self, endpoint: str) -> Any:
        """
        GET ``endpoint`` with classification-aware retry.

        Args:
            endpoint: API path relative to the base URL, or an absolute URL

        Returns:
            Decoded JSON payload

        Raises:
            RankedAPIError: The last classified error once retries are exhausted
        """
        url = self._build_url(endpoint)
        last_error: Optional[RankedAPIError] = None

        for attempt in range(self.max_retries + 1):
            try:
                return await self._send_once(url)
            except RankedAPIError as e:
                last_error = e
                if e.kind is ErrorKind.RATE_LIMITED:
                    self._record_rate_limit()

                if attempt >= self.max_retries:
                    break

                wait_time = self.backoff_delay(e, attempt)
                logger.warning(
                    "Ranked API request failed, retrying",
                    extra={
                        "endpoint": endpoint,
                        "error_kind": e.kind.value,
                        "status_code": e.status_code,
                        "attempt": attempt + 1,
                        "wait_time": wait_time,
                    }
                )
                await self._sleep(wait_time)

        logger.debug(
            "Ranked API request gave up",
            extra={
                "endpoint": endpoint,
                "error_kind": last_error.kind.value,
                "attempts": self.max_retries + 1,
            }
        )
        raise last_error

    async def get_ratings(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        """
        Get one page of the ranked leaderboard.

        Args:
            offset: Index of the first row
            limit: Page size

        Returns:
            List of rating rows
        """
        data = await self.execute(f"/v4/ranked-system/ratings?offset={offset}&limit={limit}")
        if not isinstance(data, list):
            raise RankedAPIError(ErrorKind.MALFORMED, "Ratings page is not a list")
        return data

    async def get_user(self, entity_id: str) -> Dict[str, Any]:
        """
        Get a player's profile.

        Args:
            entity_id: Player ID

        Returns:
            Profile dictionary
        """
        data = await self.execute(f"/v3/users/{entity_id}")
        if not isinstance(data, dict):
            raise RankedAPIError(ErrorKind.MALFORMED, "User profile is not an object")
        return data

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
