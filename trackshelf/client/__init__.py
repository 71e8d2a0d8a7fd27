"""Python client for the TrackShelf API and the batch uploader built on it."""

from .api import TrackShelfClient, extract_upload_error_message
from .console import ConsolePublisher
from .errors import (
    ApiError,
    ClientError,
    ClientTimeoutError,
    ConnectivityError,
    InvalidResponseError,
    UploadCancelledError,
)
from .uploader import UploadBatchResult, UploadItem, UploadOrchestrator, UploadState

__all__ = [
    "TrackShelfClient",
    "extract_upload_error_message",
    "ConsolePublisher",
    "ApiError",
    "ClientError",
    "ClientTimeoutError",
    "ConnectivityError",
    "InvalidResponseError",
    "UploadCancelledError",
    "UploadBatchResult",
    "UploadItem",
    "UploadOrchestrator",
    "UploadState",
]
