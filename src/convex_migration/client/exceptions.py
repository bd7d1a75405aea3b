"""Custom exceptions for Convex Bridge.

This module defines exception classes for handling the error conditions
that can occur while talking to the source store, the Convex target and
the geocoder, and while migrating individual records.
"""


class MigrationToolError(Exception):
    """Base exception for all Convex Bridge errors."""

    pass


class APIError(MigrationToolError):
    """Base class for API-related errors."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
        """
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with status code and response."""
        msg = self.message
        if self.status_code:
            msg = f"[{self.status_code}] {msg}"
        if self.response:
            msg = f"{msg}: {self.response}"
        return msg


class AuthenticationError(APIError):
    """Raised when authentication fails (401, or no viewer identity)."""

    pass


class AuthorizationError(APIError):
    """Raised when authorization fails (403 Forbidden)."""

    pass


class NotFoundError(APIError):
    """Raised when a resource is not found (404 Not Found)."""

    pass


class RateLimitError(APIError):
    """Raised when API rate limit is exceeded (429 Too Many Requests)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict | None = None,
        retry_after: int | None = None,
    ):
        """Initialize rate limit error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
            retry_after: Seconds to wait before retrying (from Retry-After header)
        """
        super().__init__(message, status_code, response)
        self.retry_after = retry_after


class ServerError(APIError):
    """Raised when server returns 5xx error."""

    pass


class ConvexFunctionError(APIError):
    """Raised when a Convex query or mutation reports ``status: error``.

    Attributes:
        function_name: The ``module:function`` path that failed
    """

    def __init__(
        self,
        message: str,
        function_name: str,
        status_code: int | None = None,
        response: dict | None = None,
    ):
        self.function_name = function_name
        super().__init__(f"{function_name}: {message}", status_code, response)


class NetworkError(MigrationToolError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class SourceStoreError(MigrationToolError):
    """Raised when the MongoDB source store cannot be reached or queried."""

    pass


class GeocodingError(MigrationToolError):
    """Raised when the geocoding service call itself fails."""

    pass


class ConfigurationError(MigrationToolError):
    """Raised when configuration is invalid or missing."""

    pass


class MigrationError(MigrationToolError):
    """Raised when migration operations fail."""

    pass


class FatalMigrationError(MigrationError):
    """Aborts the whole run; no further writes are attempted."""

    pass


class ExtractionError(FatalMigrationError):
    """Raised when a page of source records cannot be fetched."""

    pass


class RecordError(MigrationError):
    """Failure isolated to a single record; the run continues.

    Attributes:
        source_id: Source identifier of the offending record, if known
    """

    def __init__(self, message: str, source_id: str | None = None):
        self.source_id = source_id
        super().__init__(message)


class TransformationError(RecordError):
    """Raised when a source record cannot be mapped to its target shape."""

    pass


class LinkError(RecordError):
    """Raised when a tag cannot be linked to a record."""

    pass


class SkipRecordError(MigrationToolError):
    """Deliberate no-op for a record (missing address, unmapped organization...).

    Not an error: counted as skipped, never escalated.
    """

    def __init__(self, reason: str, source_id: str | None = None):
        self.reason = reason
        self.source_id = source_id
        super().__init__(reason)
