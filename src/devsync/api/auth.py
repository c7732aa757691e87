#!/usr/bin/env python3
"""Entra ID client-credentials tokens for Microsoft Graph.

The app registration's client id and secret are exchanged for a Graph
access token at the tenant's v2.0 token endpoint. Tokens are cached in
memory and refreshed shortly before they expire; GraphClient invalidates
the cache when Graph answers 401.

Example:
    >>> manager = TokenManager()          # reads AZURE_* from the environment
    >>> token = await manager.get_token()
"""
import asyncio
import hashlib
import logging
import os
import random
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp
from dotenv import load_dotenv

from .exceptions import (
    ConfigurationError,
    ConnectionError,
    DevSyncError,
    InvalidCredentialsError,
    NetworkError,
    TimeoutError,
    TokenFetchError,
)

load_dotenv()

logger = logging.getLogger(__name__)

TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
TOKEN_REQUEST_TIMEOUT = 30


@dataclass
class CachedToken:
    """An access token plus its expiry.

    The token counts as expired a little early: 10% of its lifetime,
    clamped to 30..300 seconds and jittered by up to 10% so that several
    processes sharing an app registration do not refresh in lockstep.
    """
    access_token: str
    expires_at: float
    token_type: Optional[str] = "Bearer"
    expires_in: int = 3599
    _buffer: float = field(init=False, repr=False)

    MAX_BUFFER_SECONDS = 300
    MIN_BUFFER_SECONDS = 30

    def __post_init__(self):
        buffer = min(max(self.expires_in * 0.1, self.MIN_BUFFER_SECONDS), self.MAX_BUFFER_SECONDS)
        self._buffer = buffer * random.uniform(0.9, 1.1)

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "CachedToken":
        expires_in = int(data.get("expires_in", 3599))
        return cls(
            access_token=data["access_token"],
            expires_at=time.time() + expires_in,
            token_type=data.get("token_type", "Bearer"),
            expires_in=expires_in,
        )

    @property
    def token_id(self) -> str:
        """Short SHA-256 prefix, safe to log."""
        return hashlib.sha256(self.access_token.encode()).hexdigest()[:8]

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at - self._buffer

    @property
    def time_remaining(self) -> float:
        return max(0, self.expires_at - time.time())


class TokenManager:
    """Fetches and caches Graph access tokens.

    Attributes:
        tenant_id: Entra ID tenant (AZURE_TENANT_ID)
        client_id: App registration id (AZURE_CLIENT_ID)
        client_secret: App registration secret (AZURE_CLIENT_SECRET)
        token_url: The tenant's v2.0 token endpoint
        scope: Requested scope; the Graph ".default" scope grants the
            application permissions consented on the app registration
    """

    def __init__(
        self,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        scope: str = GRAPH_SCOPE,
    ):
        self.tenant_id = tenant_id or os.getenv("AZURE_TENANT_ID")
        self.client_id = client_id or os.getenv("AZURE_CLIENT_ID")
        self.client_secret = client_secret or os.getenv("AZURE_CLIENT_SECRET")
        self.scope = scope

        settings = {
            "AZURE_TENANT_ID": self.tenant_id,
            "AZURE_CLIENT_ID": self.client_id,
            "AZURE_CLIENT_SECRET": self.client_secret,
        }
        missing = [name for name, value in settings.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing_keys=missing,
            )

        self.token_url = TOKEN_URL_TEMPLATE.format(tenant_id=self.tenant_id)
        self._cached_token: Optional[CachedToken] = None
        self._lock = asyncio.Lock()

    def _cached(self) -> Optional[str]:
        if self._cached_token and not self._cached_token.is_expired:
            return self._cached_token.access_token
        return None

    async def get_token(self) -> str:
        """Return a valid token, fetching a new one when the cache is stale.

        Raises:
            InvalidCredentialsError: Entra ID rejected the client id or secret
            TokenFetchError: No token after retries
        """
        token = self._cached()
        if token:
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited
            token = self._cached()
            if token:
                return token
            self._cached_token = await self._fetch_token()
            return self._cached_token.access_token

    def invalidate(self) -> None:
        self._cached_token = None

    async def _fetch_token(self, max_retries: int = 3) -> CachedToken:
        """Request a token, retrying transient failures after 1s, 2s, 4s.

        Rejected credentials and malformed requests are not retried.
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            try:
                token = await self._request_token(attempt)
                logger.info(f"Graph token fetched (id={token.token_id}), expires in {token.expires_in}s")
                return token
            except DevSyncError as e:
                if not e.recoverable:
                    raise
                last_error = e
                logger.warning(f"Token fetch attempt {attempt}/{max_retries} failed: {e.message}")

            if attempt < max_retries:
                await asyncio.sleep(2 ** (attempt - 1))

        raise TokenFetchError(
            f"Failed to fetch token after {max_retries} attempts",
            attempts=max_retries,
            cause=last_error,
        )

    async def _request_token(self, attempt: int) -> CachedToken:
        """One POST to the token endpoint."""
        payload = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.token_url,
                    data=payload,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    timeout=aiohttp.ClientTimeout(total=TOKEN_REQUEST_TIMEOUT),
                ) as response:
                    if response.status == 200:
                        data = await response.json()
                        if not data.get("access_token"):
                            raise TokenFetchError(
                                "Token response missing access_token",
                                status_code=200,
                                attempts=attempt,
                                details={"response_keys": sorted(data)},
                            )
                        return CachedToken.from_response(data)

                    body = await response.text()

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(f"Failed to connect to token endpoint: {e}", host=self.token_url, cause=e)
        except asyncio.TimeoutError as e:
            raise TimeoutError("Token request timed out", timeout_seconds=TOKEN_REQUEST_TIMEOUT, cause=e)
        except aiohttp.ClientError as e:
            raise NetworkError(f"Network error fetching token: {e}", cause=e)

        # Entra ID answers a bad secret with 401 and an unknown client with 400 invalid_client
        if response.status == 401 or "invalid_client" in body:
            raise InvalidCredentialsError(details={"response": body[:200]})

        raise TokenFetchError(
            f"Token endpoint returned HTTP {response.status}: {body[:200]}",
            status_code=response.status,
            attempts=attempt,
            recoverable=response.status != 400,
        )

    @property
    def token_info(self) -> Optional[dict[str, Any]]:
        """Cached token summary for debugging; never includes the token."""
        if not self._cached_token:
            return None
        return {
            "token_id": self._cached_token.token_id,
            "is_expired": self._cached_token.is_expired,
            "time_remaining_seconds": self._cached_token.time_remaining,
            "expires_in_original": self._cached_token.expires_in,
        }
