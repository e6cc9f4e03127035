"""
Scaffold Exceptions

Domain-specific exceptions for service construction, lifecycle and
request handling. Connector errors keep the original exception chained.
"""

from typing import Any, Dict, Optional


class ScaffoldError(Exception):
    """Base exception for scaffold errors.

    Never swallow connector exceptions - always preserve context.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        if original_error is not None:
            self.details["original_error"] = str(original_error)
            self.details["original_error_type"] = type(original_error).__name__
        super().__init__(self.message)
        if original_error is not None:
            self.__cause__ = original_error


class ConfigurationError(ScaffoldError):
    """Raised when required configuration or collaborators are missing."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(
            message=message, error_code="CONFIGURATION_ERROR", original_error=original_error
        )


class TracingSetupError(ScaffoldError):
    """Raised when the tracing provider cannot be built or flushed."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(
            message=message, error_code="TRACING_ERROR", original_error=original_error
        )


class DatabaseConnectionError(ScaffoldError):
    """Raised when the database pool cannot be configured or reached."""

    def __init__(
        self,
        message: str = "Database connection failed",
        address: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        details = {}
        if address:
            details["address"] = address
        super().__init__(
            message=message,
            error_code="DATABASE_CONNECTION_ERROR",
            details=details,
            original_error=original_error,
        )


class CacheConnectionError(ScaffoldError):
    """Raised when the Redis client cannot be built or fails its probe."""

    def __init__(
        self,
        message: str = "Redis connection failed",
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message=message,
            error_code="CACHE_CONNECTION_ERROR",
            original_error=original_error,
        )


class InvalidPayloadError(ScaffoldError):
    """Raised by ``validate()`` when a decoded payload breaks its invariants."""

    def __init__(self, message: str = "missing fields", fields: Optional[list] = None):
        super().__init__(
            message=message,
            error_code="INVALID_PAYLOAD",
            details={"fields": fields or []},
        )


class ServerNotInitializedError(ScaffoldError):
    """Raised when run() is called before the HTTP server is configured."""

    def __init__(self, message: str = "HTTP server not initialized"):
        super().__init__(message=message, error_code="SERVER_NOT_INITIALIZED")


class ServerRunError(ScaffoldError):
    """Raised when the HTTP listener fails to bind or stops unexpectedly."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(
            message=message, error_code="SERVER_RUN_ERROR", original_error=original_error
        )


class ShutdownTimeoutError(ScaffoldError):
    """Raised when graceful shutdown does not finish within the grace period."""

    def __init__(self, grace_period: float):
        super().__init__(
            message=f"Server did not stop within {grace_period}s",
            error_code="SHUTDOWN_TIMEOUT",
            details={"grace_period_seconds": grace_period},
        )
