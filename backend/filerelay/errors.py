"""Error taxonomy for the relay.

Every error raised on a request path derives from :class:`RelayError` and
carries the HTTP status it maps to. The exception handler registered in
``filerelay.main`` renders them as ``{"error": "<message>"}``.
"""
from typing import Optional


class RelayError(Exception):
    """Base class for all client-visible relay errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidRequest(RelayError):
    """Malformed multipart framing or missing boundary parameter."""

    status_code = 400
    default_message = "Invalid content type or missing boundary"


class NoFileFound(RelayError):
    """Well-formed multipart body without a file-bearing part."""

    status_code = 400
    default_message = "No file uploaded or invalid file data"


class TooLarge(RelayError):
    status_code = 413
    default_message = "File too large"


class NotFoundOrExpired(RelayError):
    """Download target is absent. Missing bytes and missing metadata look the same."""

    status_code = 404
    default_message = "File not found or expired"


class StorageFailure(RelayError):
    """Durable byte storage could not be written or read."""

    status_code = 500
    default_message = "File upload failed"


class FileIdCollision(StorageFailure):
    """A generated file ID is already present in the file store."""
