#!/usr/bin/env python3
"""HTTP client for Microsoft Graph (Entra ID and Intune).

GraphClient knows how to talk to Graph: bearer tokens, throttling,
@odata.nextLink paging and error translation. It knows nothing about
groups or devices; the adapters in src.devsync.sync.adapters build the
endpoints and map the payloads.

Endpoints carry their API version ("/v1.0/groups", "/beta/deviceManagement/...")
so one client serves both.

Usage:
    async with GraphClient(token_manager) as client:
        group = await client.get(f"/v1.0/groups/{group_id}")
        members = await client.fetch_all(f"/v1.0/groups/{group_id}/members", DIRECTORY_PAGINATION)
        await client.delete(f"/v1.0/groups/{group_id}/members/{device_id}/$ref")
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import aiohttp

from .auth import TokenManager
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
    TokenExpiredError,
    ValidationError,
)
from .resilience import CircuitBreaker

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com"
REQUEST_TIMEOUT = 60
MAX_BACKOFF = 60.0


@dataclass
class PaginationConfig:
    """Paging settings for one collection.

    Attributes:
        page_size: Sent as $top on the first request
        delay_between_pages: Seconds to sleep between pages
        max_pages: Stop after this many pages (None = follow every nextLink)
    """
    page_size: int = 100
    delay_between_pages: float = 0.0
    max_pages: Optional[int] = None


DIRECTORY_PAGINATION = PaginationConfig(page_size=999)

# Intune rejects $top above 1000 and throttles hard
INTUNE_PAGINATION = PaginationConfig(page_size=1000, delay_between_pages=0.2)


def _retry_delay(error: DevSyncError, backoff: float) -> Optional[float]:
    """Seconds to wait before retrying after `error`, or None to give up.

    401 retries at once with a fresh token, 429 waits for Retry-After,
    5xx and network failures back off exponentially. Anything else
    (404, 400, 403, ...) is final.
    """
    if isinstance(error, TokenExpiredError):
        return 0.0
    if isinstance(error, RateLimitError):
        return float(error.retry_after)
    if isinstance(error, (NotFoundError, ValidationError)):
        return None
    if isinstance(error, (ServerError, NetworkError)) or error.recoverable:
        return backoff
    return None


class GraphClient:
    """Async Graph client; use as an async context manager.

    Attributes:
        token_manager: Supplies bearer tokens
        base_url: Graph root, GRAPH_BASE_URL or the public cloud endpoint
    """

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: Optional[str] = None,
        enable_circuit_breaker: bool = True,
        circuit_failure_threshold: int = 5,
        circuit_timeout: float = 60.0,
        max_retries: int = 3,
    ):
        self.token_manager = token_manager
        self.base_url = (base_url or os.getenv("GRAPH_BASE_URL") or DEFAULT_GRAPH_BASE_URL).rstrip("/")
        self.max_retries = max_retries

        if not self.base_url.startswith("https://"):
            raise ConfigurationError(
                f"GRAPH_BASE_URL must be an https URL, got {self.base_url!r}",
                missing_keys=["GRAPH_BASE_URL"],
            )

        self._session: Optional[aiohttp.ClientSession] = None
        self._circuit_breaker: Optional[CircuitBreaker] = None
        if enable_circuit_breaker:
            self._circuit_breaker = CircuitBreaker(
                failure_threshold=circuit_failure_threshold,
                timeout=circuit_timeout,
                name="graph_api",
            )

    async def __aenter__(self) -> "GraphClient":
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=10),
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT, connect=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def circuit_status(self) -> Optional[dict[str, Any]]:
        return self._circuit_breaker.get_status() if self._circuit_breaker else None

    # ----------------------------------------
    # Single request
    # ----------------------------------------

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """One HTTP round trip. Returns {} for 204 No Content."""
        if not self._session:
            raise RuntimeError("GraphClient must be used as: async with GraphClient(...) as client")

        # nextLink values are already absolute
        url = endpoint if endpoint.startswith("https://") else f"{self.base_url}{endpoint}"
        token = await self.token_manager.get_token()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

        try:
            async with self._session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=json_body,
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise self._error_for(response.status, method, endpoint, body, response.headers.get("Retry-After"))
                if response.status == 204:
                    return {}
                return await response.json(content_type=None) or {}

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(f"Failed to connect to {self.base_url}", host=self.base_url, cause=e)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"Request to {endpoint} timed out", timeout_seconds=REQUEST_TIMEOUT, cause=e)
        except aiohttp.ClientError as e:
            raise NetworkError(f"Network error during {method} {endpoint}: {e}", cause=e)

    @staticmethod
    def _error_for(
        status: int,
        method: str,
        endpoint: str,
        body: str,
        retry_after: Optional[str] = None,
    ) -> DevSyncError:
        """Translate an error response into the exception hierarchy."""
        context = {"endpoint": endpoint, "method": method, "response_body": body}

        if status == 401:
            return TokenExpiredError("Access token expired or invalid", details={"endpoint": endpoint})
        if status == 404:
            return NotFoundError("Resource", endpoint, **context)
        if status == 429:
            wait = int(retry_after) if retry_after and retry_after.isdigit() else 60
            return RateLimitError(f"Graph throttled {method} {endpoint}", retry_after=wait, **context)
        if status in (400, 422):
            return ValidationError(f"Validation failed for {method} {endpoint}", status_code=status, **context)
        if status >= 500:
            return ServerError(f"Server error ({status}) for {method} {endpoint}", status_code=status, **context)
        return APIError(f"{method} {endpoint} failed", status_code=status, **context)

    # ----------------------------------------
    # Retry and circuit breaker
    # ----------------------------------------

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Request with the retry policy of _retry_delay.

        Only failures that survive every retry count against the circuit
        breaker; a 404 or 400 is an answer, not an outage.

        Raises:
            CircuitOpenError: Graph has failed repeatedly in this run
        """
        breaker = self._circuit_breaker
        if breaker and not breaker.allow_request():
            raise breaker.open_error()

        backoff = 1.0
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await self._request(method, endpoint, params, json_body)
            except DevSyncError as e:
                delay = _retry_delay(e, backoff)
                if delay is None:
                    raise
                if attempt >= self.max_retries:
                    if isinstance(e, TokenExpiredError):
                        # Freshly issued tokens keep failing: the app registration is the problem
                        raise InvalidCredentialsError(
                            "Graph rejected every token issued for this app registration",
                            details={"endpoint": endpoint, "attempts": attempt},
                            cause=e,
                        ) from e
                    if breaker:
                        await breaker.record_failure(e)
                    raise

                if isinstance(e, TokenExpiredError):
                    logger.warning(f"Token rejected, refreshing (attempt {attempt}/{self.max_retries})")
                    self.token_manager.invalidate()
                else:
                    logger.warning(f"{method} {endpoint}: {e.message}; retrying in {delay:.0f}s "
                                   f"(attempt {attempt}/{self.max_retries})")
                    await asyncio.sleep(delay)
                    backoff = min(backoff * 2, MAX_BACKOFF)
                continue

            if breaker:
                await breaker.record_success()
            return result

    # ----------------------------------------
    # Verbs
    # ----------------------------------------

    async def get(self, endpoint: str, params: Optional[dict] = None) -> dict[str, Any]:
        return await self._request_with_retry("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """POST; Graph actions such as setDeviceName answer 204, returned as {}."""
        return await self._request_with_retry("POST", endpoint, params=params, json_body=json_body)

    async def patch(self, endpoint: str, json_body: dict, params: Optional[dict] = None) -> dict[str, Any]:
        return await self._request_with_retry("PATCH", endpoint, params=params, json_body=json_body)

    async def delete(self, endpoint: str, params: Optional[dict] = None) -> dict[str, Any]:
        return await self._request_with_retry("DELETE", endpoint, params=params)

    # ----------------------------------------
    # Paging
    # ----------------------------------------

    async def paginate(
        self,
        endpoint: str,
        config: Optional[PaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> AsyncIterator[list[dict]]:
        """Yield each page's "value" list.

        Only the first request carries params (plus $top). Later requests use
        the @odata.nextLink URL as is because it already encodes the query
        and skip token.
        """
        config = config or PaginationConfig()
        first_params = {"$top": config.page_size, **(params or {})}

        url: Optional[str] = endpoint
        request_params: Optional[dict] = first_params
        pages = 0
        total = 0

        while url:
            data = await self.get(url, params=request_params)
            items = data.get("value", [])
            if items:
                total += len(items)
                yield items

            pages += 1
            url = data.get("@odata.nextLink")
            request_params = None

            if config.max_pages and pages >= config.max_pages:
                logger.info(f"{endpoint}: stopping at max_pages={config.max_pages}")
                break
            if url and config.delay_between_pages > 0:
                await asyncio.sleep(config.delay_between_pages)

        logger.debug(f"{endpoint}: {total:,} items in {pages} pages")

    async def fetch_all(
        self,
        endpoint: str,
        config: Optional[PaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> list[dict]:
        items: list[dict] = []
        async for page in self.paginate(endpoint, config, params):
            items.extend(page)
        return items
