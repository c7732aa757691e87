"""API modules for Microsoft Graph and the helpdesk inventory system.

Classes:
    GraphClient: Graph HTTP client with nextLink pagination, retry, and circuit breaker
    TokenManager: OAuth2 client-credentials token management for Graph
    HelpdeskClient: Helpdesk REST client (static token, cursor pagination)

Exceptions:
    DevSyncError: Base exception for all errors
    ConfigurationError: Missing or invalid configuration
    AuthenticationError: Authentication failures
    APIError: API request failures
    NetworkError: Network connectivity issues
    DirectoryError: Active Directory (LDAP) failures
    SyncError: Synchronization failures

Resilience:
    CircuitBreaker: Prevent cascading failures
    retry: Decorator for retry with exponential backoff
"""
from .auth import CachedToken, TokenManager
from .exceptions import (
    APIError,
    AuthenticationError,
    CircuitOpenError,
    ConfigurationError,
    ConnectionError,
    DevSyncError,
    DirectoryError,
    InvalidCredentialsError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    SyncError,
    TargetResolutionError,
    TimeoutError,
    TokenExpiredError,
    TokenFetchError,
    ValidationError,
)
from .graph_client import (
    DIRECTORY_PAGINATION,
    INTUNE_PAGINATION,
    GraphClient,
    PaginationConfig,
)
from .helpdesk_client import HelpdeskClient, HelpdeskPaginationConfig
from .resilience import (
    DEFAULT_RETRYABLE_EXCEPTIONS,
    CircuitBreaker,
    CircuitState,
    retry,
    retry_async,
)

__all__ = [
    # Auth
    "CachedToken",
    "TokenManager",
    # Clients
    "GraphClient",
    "PaginationConfig",
    "DIRECTORY_PAGINATION",
    "INTUNE_PAGINATION",
    "HelpdeskClient",
    "HelpdeskPaginationConfig",
    # Exceptions
    "DevSyncError",
    "ConfigurationError",
    "AuthenticationError",
    "TokenFetchError",
    "TokenExpiredError",
    "InvalidCredentialsError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "DirectoryError",
    "SyncError",
    "CircuitOpenError",
    "TargetResolutionError",
    # Resilience
    "CircuitBreaker",
    "CircuitState",
    "retry",
    "retry_async",
    "DEFAULT_RETRYABLE_EXCEPTIONS",
]
