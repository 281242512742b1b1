"""
League data provider with rate limiting, retry logic, and error handling.

Fetches the authoritative player and club results for a league type from the
league's source URL and writes them into storage, together with the league's
countdown and transfer window state.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional, Protocol

import httpx
from asyncio_throttle import Throttler

from config import Config
from database.gateway import (
    StorageGateway,
    countdown_key,
    decode_bool,
    encode_bool,
    transfer_open_key,
)

logger = logging.getLogger(__name__)


class ProviderUnavailable(Exception):
    """Raised when league data could not be fetched or understood."""
    pass


class ProviderRateLimitError(ProviderUnavailable):
    """Raised when rate limit is exceeded."""
    pass


class ProviderNonRetryableError(ProviderUnavailable):
    """Raised for non-retryable errors (4xx except 429)."""
    pass


def _parse_flag(value: Any) -> bool:
    """A JSON boolean, or its stored string form; anything else is rejected."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return decode_bool(value)
    raise ValueError(f"Not a boolean flag: {value!r}")


class DataProvider(Protocol):
    async def refresh(self, league: str) -> None:
        """Fetch results for a league type and write them into storage."""
        ...


class HttpDataProvider:
    """Fetches league documents over HTTP."""

    def __init__(
        self,
        config: Config,
        db_client: StorageGateway,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.db_client = db_client
        self.max_retries = config.max_retries
        self.retry_backoff_base = config.retry_backoff_base
        self.max_retry_delay = config.max_retry_delay

        self.throttler = Throttler(
            rate_limit=config.max_requests_per_minute,
            period=60.0
        )
        self.min_interval = config.min_request_interval
        self.last_request_time = 0.0

        self.client = client or httpx.AsyncClient(
            timeout=config.provider_timeout,
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )

    async def _wait_for_rate_limit(self):
        """Wait to respect rate limiting."""
        await self.throttler.acquire()

        # Also enforce minimum interval between requests
        current_time = time.time()
        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_interval:
            wait_time = self.min_interval - time_since_last
            jitter = wait_time * 0.25 * (random.random() * 2 - 1)
            await asyncio.sleep(wait_time + jitter)

        self.last_request_time = time.time()

    def _is_retryable_error(self, status_code: int) -> bool:
        """Check if error is retryable."""
        return status_code in {429, 500, 502, 503, 504}

    def _backoff(self, attempt: int) -> float:
        backoff = min(
            self.retry_backoff_base * (2 ** attempt),
            self.max_retry_delay
        )
        # Add jitter (±25%)
        return backoff + backoff * 0.25 * (random.random() * 2 - 1)

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Make HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Absolute URL
            **kwargs: Additional arguments for httpx request

        Returns:
            httpx.Response object

        Raises:
            ProviderRateLimitError: If rate limited
            ProviderNonRetryableError: If non-retryable error
            ProviderUnavailable: For other errors after retries exhausted
        """
        last_exception = None

        for attempt in range(self.max_retries + 1):
            try:
                await self._wait_for_rate_limit()

                response = await self.client.request(method, url, **kwargs)

                if response.is_success:
                    return response

                status_code = response.status_code

                if status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 60))
                    logger.warning("Rate limited by league source", extra={
                        "url": url,
                        "retry_after": retry_after,
                        "attempt": attempt + 1
                    })
                    if attempt < self.max_retries:
                        await asyncio.sleep(retry_after)
                        continue
                    raise ProviderRateLimitError(
                        f"Rate limited after {self.max_retries} retries"
                    )

                if not self._is_retryable_error(status_code):
                    error_text = response.text[:500]
                    logger.error("Non-retryable error from league source", extra={
                        "url": url,
                        "status_code": status_code,
                        "error": error_text
                    })
                    raise ProviderNonRetryableError(
                        f"Non-retryable error {status_code}: {error_text}"
                    )

                if attempt < self.max_retries:
                    wait_time = self._backoff(attempt)
                    logger.warning("Retryable error from league source, retrying", extra={
                        "url": url,
                        "status_code": status_code,
                        "attempt": attempt + 1,
                        "wait_time": wait_time
                    })
                    await asyncio.sleep(wait_time)
                    continue

                raise ProviderUnavailable(
                    f"Request failed after {self.max_retries} retries: "
                    f"{status_code} - {response.text[:500]}"
                )

            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last_exception = e
                if attempt < self.max_retries:
                    wait_time = self._backoff(attempt)
                    logger.warning("Transport error from league source, retrying", extra={
                        "url": url,
                        "attempt": attempt + 1,
                        "wait_time": wait_time,
                        "error": str(e)
                    })
                    await asyncio.sleep(wait_time)
                    continue
                raise ProviderUnavailable(
                    f"{type(e).__name__} after {self.max_retries} retries"
                ) from e

        raise ProviderUnavailable("Request failed") from last_exception

    async def fetch_league(self, league: str) -> Dict[str, Any]:
        """
        Fetch the raw league document.

        Raises:
            ProviderUnavailable: If the league has no source or the response is not JSON
        """
        url = self.db_client.get_league_source_url(league)
        if not url:
            raise ProviderNonRetryableError(f"No source URL for league {league}")

        response = await self._request_with_retry("GET", url)
        try:
            data = response.json()
        except ValueError as e:
            logger.error("JSON parse failed", extra={
                "league": league,
                "status_code": response.status_code,
                "content_type": response.headers.get("content-type", "unknown"),
                "response_preview": response.text[:500],
            })
            raise ProviderUnavailable(f"Failed to parse JSON: {e}") from e

        if not isinstance(data, dict):
            raise ProviderUnavailable(f"Unexpected league document for {league}")
        return data

    async def refresh(self, league: str) -> None:
        """Fetch a league document and store players, clubs and window state."""
        data = await self.fetch_league(league)

        try:
            countdown = int(data["countdown"])
            transfer_open = _parse_flag(data["transferOpen"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderUnavailable(f"League document for {league} lacks window state") from e
        players: List[Dict[str, Any]] = data.get("players") or []
        clubs: List[Dict[str, Any]] = data.get("clubs") or []

        self.db_client.upsert_players(league, players)
        self.db_client.upsert_clubs(league, clubs)
        self.db_client.set_value(countdown_key(league), str(countdown))
        self.db_client.set_value(transfer_open_key(league), encode_bool(transfer_open))

        logger.info("League data fetched", extra={
            "league": league,
            "players_count": len(players),
            "clubs_count": len(clubs),
            "countdown": countdown,
            "transfer_open": transfer_open,
        })

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
