#!/usr/bin/env python3
"""Exception hierarchy for the device sync tools.

Every error raised by the clients and adapters derives from DevSyncError.
Each class carries a machine-readable code and a `recoverable` flag: the
retry helpers and the per-device mutation handling use that flag to tell a
failure worth retrying on the next run from one that never will succeed.

Exception Hierarchy:
    DevSyncError
    ├── ConfigurationError          missing env var or bad devsync.json
    ├── AuthenticationError         Entra ID token problems
    │   ├── TokenFetchError
    │   ├── TokenExpiredError
    │   └── InvalidCredentialsError
    ├── APIError                    non-2xx from Graph or the helpdesk
    │   ├── RateLimitError          429
    │   ├── NotFoundError           404
    │   ├── ValidationError         400 / 422
    │   └── ServerError             5xx
    ├── NetworkError
    │   ├── ConnectionError
    │   └── TimeoutError
    ├── DirectoryError              LDAP bind, search or delete failed
    └── SyncError
        ├── CircuitOpenError
        └── TargetResolutionError   building, room or group not found
"""
from datetime import datetime, timezone
from typing import Any, Optional

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def _details(kwargs: dict[str, Any], **extra: Any) -> dict[str, Any]:
    """Pop caller-supplied details out of kwargs and add the non-empty extras."""
    details = dict(kwargs.pop("details", None) or {})
    details.update({key: value for key, value in extra.items() if value is not None})
    return details


class DevSyncError(Exception):
    """Base exception for all device sync errors.

    Attributes:
        message: Human-readable description
        code: Machine-readable code such as "TOKEN_EXPIRED"
        details: Context for logs (endpoint, host, status code, ...)
        cause: The exception this one wraps, if any
        recoverable: Whether retrying later might succeed
    """

    code = "DEVSYNC_ERROR"
    recoverable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(DevSyncError):
    """Missing environment variable or invalid run configuration."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, missing_keys: Optional[list[str]] = None, **kwargs):
        details = _details(kwargs, missing_keys=missing_keys or None)
        super().__init__(message, details=details, **kwargs)


# ============================================
# Authentication
# ============================================

class AuthenticationError(DevSyncError):
    code = "AUTHENTICATION_ERROR"
    recoverable = True


class TokenFetchError(AuthenticationError):
    """The token endpoint did not return a usable token."""

    code = "TOKEN_FETCH_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 1, **kwargs):
        details = _details(kwargs, status_code=status_code, attempts=attempts)
        super().__init__(message, details=details, **kwargs)


class TokenExpiredError(AuthenticationError):
    code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Access token has expired", **kwargs):
        super().__init__(message, **kwargs)


class InvalidCredentialsError(AuthenticationError):
    """The client id/secret or helpdesk API token was rejected."""

    code = "INVALID_CREDENTIALS"
    recoverable = False

    def __init__(self, message: str = "Invalid client credentials", **kwargs):
        super().__init__(message, **kwargs)


# ============================================
# API Responses
# ============================================

class APIError(DevSyncError):
    """A non-2xx response.

    Attributes:
        status_code: HTTP status
        endpoint: Path that was called
        method: HTTP method
        response_body: Raw body; details keep only the first 500 characters
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        method: str = "GET",
        **kwargs,
    ):
        details = _details(
            kwargs,
            status_code=status_code,
            endpoint=endpoint,
            method=method,
            response_body=response_body[:500] if response_body else None,
        )
        kwargs.setdefault("code", f"API_ERROR_{status_code}")
        kwargs.setdefault("recoverable", status_code in RETRYABLE_STATUS_CODES)
        super().__init__(message, details=details, **kwargs)
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.method = method


class RateLimitError(APIError):
    """429 Too Many Requests.

    Attributes:
        retry_after: Seconds to wait, from the Retry-After header (default 60)
    """

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None, **kwargs):
        kwargs.setdefault("status_code", 429)
        kwargs["details"] = _details(kwargs, retry_after_seconds=retry_after)
        super().__init__(message, code="RATE_LIMIT_EXCEEDED", **kwargs)
        self.retry_after = retry_after or 60


class NotFoundError(APIError):
    def __init__(self, resource_type: str, resource_id: Optional[str] = None, **kwargs):
        message = f"{resource_type} '{resource_id}' not found" if resource_id else f"{resource_type} not found"
        kwargs.setdefault("status_code", 404)
        kwargs["details"] = _details(kwargs, resource_type=resource_type, resource_id=resource_id)
        super().__init__(message, code="NOT_FOUND", recoverable=False, **kwargs)


class ValidationError(APIError):
    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        kwargs.setdefault("status_code", 400)
        kwargs["details"] = _details(kwargs, field=field)
        super().__init__(message, code="VALIDATION_ERROR", recoverable=False, **kwargs)


class ServerError(APIError):
    def __init__(self, message: str = "Server error", **kwargs):
        kwargs.setdefault("status_code", 500)
        super().__init__(message, code="SERVER_ERROR", recoverable=True, **kwargs)


# ============================================
# Network
# ============================================

class NetworkError(DevSyncError):
    code = "NETWORK_ERROR"
    recoverable = True


class ConnectionError(NetworkError):
    code = "CONNECTION_ERROR"

    def __init__(self, message: str = "Failed to connect to server", host: Optional[str] = None, **kwargs):
        details = _details(kwargs, host=host)
        super().__init__(message, details=details, **kwargs)


class TimeoutError(NetworkError):
    code = "TIMEOUT_ERROR"

    def __init__(self, message: str = "Request timed out", timeout_seconds: Optional[float] = None, **kwargs):
        details = _details(kwargs, timeout_seconds=timeout_seconds)
        super().__init__(message, details=details, **kwargs)


# ============================================
# Active Directory
# ============================================

class DirectoryError(DevSyncError):
    """An LDAP operation failed.

    Not recoverable unless the caller says so: a refused bind will be
    refused again, a dropped connection during delete may not.

    Attributes:
        operation: bind, search or delete
        result: LDAP result description, when the server sent one
    """

    code = "DIRECTORY_ERROR"

    def __init__(self, message: str, operation: Optional[str] = None, result: Optional[str] = None, **kwargs):
        details = _details(kwargs, operation=operation, result=result)
        super().__init__(message, details=details, **kwargs)
        self.operation = operation
        self.result = result


# ============================================
# Sync
# ============================================

class SyncError(DevSyncError):
    code = "SYNC_ERROR"


class CircuitOpenError(SyncError):
    """A service failed too often; requests are rejected until reset_at."""

    code = "CIRCUIT_OPEN"
    recoverable = True

    def __init__(
        self,
        message: str = "Circuit breaker is open, requests rejected",
        reset_at: Optional[datetime] = None,
        failure_count: int = 0,
        **kwargs,
    ):
        details = _details(
            kwargs,
            reset_at=reset_at.isoformat() if reset_at else None,
            failure_count=failure_count,
        )
        super().__init__(message, details=details, **kwargs)
        self.reset_at = reset_at
        self.failure_count = failure_count


class TargetResolutionError(SyncError):
    """A sync target's building, room or group could not be found.

    The target is skipped; the rest of the run continues.
    """

    code = "TARGET_NOT_FOUND"

    def __init__(self, message: str, target: Optional[str] = None, **kwargs):
        details = _details(kwargs, target=target)
        super().__init__(message, details=details, **kwargs)
        self.target = target


# Errors that abort a whole run instead of failing one item
FATAL_ERRORS = (AuthenticationError, ConfigurationError, NetworkError, CircuitOpenError)


__all__ = [
    "FATAL_ERRORS",
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
]
