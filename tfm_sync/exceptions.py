"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class TfmSyncError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(TfmSyncError):
    """Raised when the client is used before it is configured, or config is invalid."""


class TransportError(TfmSyncError):
    """Raised for connection, DNS, TLS and timeout failures."""


class ProtocolError(TfmSyncError):
    """Raised for a non-success HTTP status or an unexpected content type."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class DecodeError(TfmSyncError):
    """Raised when a response body is not a valid JSON envelope."""


class ApiLogicalError(TfmSyncError):
    """Raised when the server answers with a well-formed envelope and success=false."""


class IntegrityError(TfmSyncError):
    """
    Raised when a download is empty, truncated beyond tolerance, or fails to
    be written and verified on disk.
    """


class MaterializeError(TfmSyncError):
    """Raised when a track cannot be resolved to any playable location."""
