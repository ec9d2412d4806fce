"""Custom exceptions for Feather Bridge.

This module defines the exception hierarchy used across the target API
client, the legacy source reader and the migration engine.
"""


class FeatherMigrationError(Exception):
    """Base exception for all Feather Bridge errors."""

    pass


class APIError(FeatherMigrationError):
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
    """Raised when authentication fails (401 Unauthorized)."""

    pass


class AuthorizationError(APIError):
    """Raised when authorization fails (403 Forbidden)."""

    pass


class NotFoundError(APIError):
    """Raised when a resource is not found (404 Not Found)."""

    pass


class ConflictError(APIError):
    """Raised when a resource conflict occurs (409 Conflict).

    FeatherPanel answers 409 when a preserved id is already taken.
    """

    pass


class RateLimitError(APIError):
    """Raised when the panel throttles the importer (429 Too Many Requests).

    Lower ``target.rate_limit`` and rerun; completed steps are skipped.
    """

    pass


class ServerError(APIError):
    """Raised when server returns 5xx error."""

    pass


class NetworkError(FeatherMigrationError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class ConfigurationError(FeatherMigrationError):
    """Raised when configuration is invalid, missing or rejected by the target."""

    pass


class SourceError(FeatherMigrationError):
    """Raised when the legacy Pterodactyl database cannot be read."""

    pass


class InstallationError(SourceError):
    """Raised when the legacy installation directory is missing critical files."""

    def __init__(self, message: str, missing: list[str] | None = None):
        """Initialize installation error.

        Args:
            message: Error message
            missing: Critical paths that were not found
        """
        super().__init__(message)
        self.missing = missing or []


class StateError(FeatherMigrationError):
    """Raised when the progress file cannot be managed as requested."""

    pass


class DecryptionError(FeatherMigrationError):
    """Raised when a Laravel-encrypted value cannot be decrypted."""

    pass


class MigrationError(FeatherMigrationError):
    """Raised when migration operations fail."""

    pass


class PreconditionError(MigrationError):
    """Raised when a step cannot start because a required mapping is missing."""

    pass


class StepFailedError(MigrationError):
    """Raised once a step failure has been recorded in the progress file."""

    def __init__(self, step_id: str, title: str, reason: str):
        """Initialize step failure.

        Args:
            step_id: Identifier of the failed step
            title: Human readable step title
            reason: Failure reason recorded in the progress file
        """
        self.step_id = step_id
        self.title = title
        self.reason = reason
        super().__init__(f"{title} failed: {reason}")


class MigrationAlreadyCompletedError(MigrationError):
    """Raised when a completed migration is started again without a reset."""

    pass


class MigrationCancelledError(MigrationError):
    """Raised when the operator aborts the migration."""

    pass
