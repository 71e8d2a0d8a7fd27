"""Exceptions raised by the TrackShelf HTTP client."""

from __future__ import annotations

from typing import Optional

CONNECTIVITY_MESSAGE = (
    "Network error during upload. Please check:\n"
    "1. Your internet connection\n"
    "2. The server is running and accessible\n"
    "3. CORS settings allow uploads"
)
CANCELLED_MESSAGE = "Upload was cancelled"
TIMEOUT_MESSAGE = "Upload timeout. The file may be too large or connection is slow."


class ClientError(Exception):
    """Base class; ``str(exc)`` is the message meant for the user."""

    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None, *, hint: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.hint = hint
        super().__init__(self.message)


class ApiError(ClientError):
    """Non-2xx response from the server."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        code: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status = status
        self.code = code
        self.details = details

    def __repr__(self) -> str:
        return f"ApiError(status={self.status}, code={self.code!r}, message={self.message!r})"


class ConnectivityError(ClientError):
    default_message = CONNECTIVITY_MESSAGE


class UploadCancelledError(ClientError):
    default_message = CANCELLED_MESSAGE


class ClientTimeoutError(ClientError):
    default_message = TIMEOUT_MESSAGE


class InvalidResponseError(ClientError):
    default_message = "Invalid response from server"


__all__ = [
    "ClientError",
    "ApiError",
    "ConnectivityError",
    "UploadCancelledError",
    "ClientTimeoutError",
    "InvalidResponseError",
]
