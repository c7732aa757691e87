#!/usr/bin/env python3
"""HTTP client for the helpdesk asset-tracking REST API.

The helpdesk system is the source of truth for buildings, rooms and the
asset record (tag, serial, status) of every district device.

Compared with GraphClient:
    - A static API token issued in the helpdesk admin console, no OAuth
    - Cursor pagination: responses carry "items" and an opaque "next" cursor
    - Retries go through resilience.retry_async

Usage:
    async with HelpdeskClient() as client:
        async for page in client.paginate("/v1/rooms"):
            for room in page:
                process(room)
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import aiohttp
from dotenv import load_dotenv

from .exceptions import (
    APIError,
    ConfigurationError,
    ConnectionError,
    DevSyncError,
    InvalidCredentialsError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
    ValidationError,
)
from .resilience import CircuitBreaker, retry_async

load_dotenv()

logger = logging.getLogger(__name__)

HELPDESK_RETRYABLE_EXCEPTIONS = (NetworkError, RateLimitError, ServerError)
REQUEST_TIMEOUT = 60

# The helpdesk API does not send Retry-After; its documented window is 30s
RATE_LIMIT_WAIT = 30


@dataclass
class HelpdeskPaginationConfig:
    """Cursor paging settings.

    Attributes:
        page_size: Sent as "limit" (the API caps it at 500)
        delay_between_pages: Seconds to sleep between pages
        max_pages: Stop after this many pages (None = until the cursor runs out)
    """
    page_size: int = 500
    delay_between_pages: float = 0.25
    max_pages: Optional[int] = None


class HelpdeskClient:
    """Async client for the helpdesk inventory API.

    Attributes:
        base_url: API root (HELPDESK_BASE_URL)
        api_token: Static bearer token (HELPDESK_API_TOKEN)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        max_retries: int = 3,
        enable_circuit_breaker: bool = True,
    ):
        self.base_url = (base_url or os.getenv("HELPDESK_BASE_URL", "")).rstrip("/")
        self.api_token = api_token or os.getenv("HELPDESK_API_TOKEN")
        self.max_retries = max_retries

        missing = [
            name
            for name, value in (("HELPDESK_BASE_URL", self.base_url), ("HELPDESK_API_TOKEN", self.api_token))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing_keys=missing,
            )

        self._session: Optional[aiohttp.ClientSession] = None
        self._circuit_breaker: Optional[CircuitBreaker] = None
        if enable_circuit_breaker:
            self._circuit_breaker = CircuitBreaker(failure_threshold=5, timeout=60.0, name="helpdesk_api")

    async def __aenter__(self) -> "HelpdeskClient":
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=5),
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT, connect=10),
            headers={"Authorization": f"Bearer {self.api_token}", "Accept": "application/json"},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def circuit_status(self) -> Optional[dict[str, Any]]:
        return self._circuit_breaker.get_status() if self._circuit_breaker else None

    async def _request(self, method: str, endpoint: str, params: Optional[dict] = None) -> dict[str, Any]:
        """One HTTP round trip, no retries."""
        if not self._session:
            raise RuntimeError("HelpdeskClient must be used as: async with HelpdeskClient(...) as client")

        try:
            async with self._session.request(method, f"{self.base_url}{endpoint}", params=params) as response:
                if response.status >= 400:
                    raise self._error_for(response.status, method, endpoint, await response.text())
                return await response.json(content_type=None) or {}

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(f"Failed to connect to {self.base_url}", host=self.base_url, cause=e)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"Request to {endpoint} timed out", timeout_seconds=REQUEST_TIMEOUT, cause=e)
        except aiohttp.ClientError as e:
            raise NetworkError(f"Network error during {method} {endpoint}: {e}", cause=e)

    @staticmethod
    def _error_for(status: int, method: str, endpoint: str, body: str) -> DevSyncError:
        context = {"endpoint": endpoint, "method": method, "response_body": body}

        if status in (401, 403):
            return InvalidCredentialsError(
                "Helpdesk API token rejected",
                details={"endpoint": endpoint, "status_code": status},
            )
        if status == 404:
            return NotFoundError("Resource", endpoint, **context)
        if status == 429:
            return RateLimitError(f"Rate limit exceeded for {endpoint}", retry_after=RATE_LIMIT_WAIT, **context)
        if status in (400, 422):
            return ValidationError(f"Validation failed for {method} {endpoint}", status_code=status, **context)
        if status >= 500:
            return ServerError(f"Server error ({status}) for {method} {endpoint}", status_code=status, **context)
        return APIError(f"{method} {endpoint} failed", status_code=status, **context)

    async def get(self, endpoint: str, params: Optional[dict] = None) -> dict[str, Any]:
        """GET with retries.

        Only transient failures that outlast every retry trip the circuit
        breaker. A 404 for an unknown serial is an answer, not an outage.

        Raises:
            CircuitOpenError: The helpdesk API has failed repeatedly in this run
        """
        breaker = self._circuit_breaker
        if breaker and not breaker.allow_request():
            raise breaker.open_error()

        try:
            result = await retry_async(
                self._request,
                "GET",
                endpoint,
                params,
                max_attempts=self.max_retries,
                retryable_exceptions=HELPDESK_RETRYABLE_EXCEPTIONS,
            )
        except HELPDESK_RETRYABLE_EXCEPTIONS as e:
            if breaker:
                await breaker.record_failure(e)
            raise

        if breaker:
            await breaker.record_success()
        return result

    async def paginate(
        self,
        endpoint: str,
        config: Optional[HelpdeskPaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> AsyncIterator[list[dict]]:
        """Yield each page's "items" until the "next" cursor runs out."""
        config = config or HelpdeskPaginationConfig()
        base_params = {**(params or {}), "limit": config.page_size}

        cursor: Optional[str] = None
        pages = 0
        total = 0

        while True:
            page_params = {**base_params, "next": cursor} if cursor else base_params
            data = await self.get(endpoint, params=page_params)
            items = data.get("items", [])
            if items:
                total += len(items)
                yield items

            pages += 1
            cursor = data.get("next")
            if not cursor:
                break
            if config.max_pages and pages >= config.max_pages:
                logger.info(f"{endpoint}: stopping at max_pages={config.max_pages}")
                break
            if config.delay_between_pages > 0:
                await asyncio.sleep(config.delay_between_pages)

        logger.debug(f"{endpoint}: {total:,} items in {pages} pages")

    async def fetch_all(
        self,
        endpoint: str,
        config: Optional[HelpdeskPaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> list[dict]:
        items: list[dict] = []
        async for page in self.paginate(endpoint, config, params):
            items.extend(page)
        return items
