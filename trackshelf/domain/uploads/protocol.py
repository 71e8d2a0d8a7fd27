#!/usr/bin/env python
"""
Wire contract for ``POST /api/tracks`` and the shared response shapes.

One request carries exactly one audio file in the ``audio`` part plus the
``playlistId``/``title``/``artist``/``album`` text fields. The same module is
imported by the server pipeline and by the upload client so both sides agree
on limits, names and error codes.
"""

from __future__ import annotations

import os
import re
import secrets
import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from trackshelf.core.errors import InvalidRequestError, NotFoundError, ServiceError

FIELD_FILE = "audio"
FIELD_PLAYLIST_ID = "playlistId"
FIELD_TITLE = "title"
FIELD_ARTIST = "artist"
FIELD_ALBUM = "album"

MAX_FILE_BYTES = 50 * 1024 * 1024
MAX_FIELDS = 10
MAX_FIELD_BYTES = 10 * 1024 * 1024
MAX_FILES = 1

ALLOWED_MIME_TYPES = frozenset({
    "audio/mpeg",
    "audio/wav",
    "audio/ogg",
    "audio/mp3",
    "audio/x-m4a",
    "audio/aac",
    "audio/mp4",
    "audio/x-mpeg",
    "audio/mpeg3",
})
ALLOWED_EXTENSIONS = frozenset({".mp3", ".wav", ".ogg", ".m4a", ".aac", ".mp4"})

_SAFE_EXTENSION = re.compile(r"\.[a-z0-9]{1,10}")


def normalize_mimetype(value: Optional[str]) -> str:
    """``'Audio/MPEG; charset=x'`` -> ``'audio/mpeg'``."""
    if not value:
        return ""
    return value.split(";", 1)[0].strip().lower()


def file_extension(filename: Optional[str]) -> str:
    """Lower-cased last extension of *filename* including the dot, or ``''``."""
    if not filename:
        return ""
    return os.path.splitext(os.path.basename(filename))[1].lower()


def is_allowed_audio(mimetype: Optional[str], filename: Optional[str]) -> bool:
    """A part passes when either its declared type or its extension is allowed."""
    return normalize_mimetype(mimetype) in ALLOWED_MIME_TYPES or file_extension(filename) in ALLOWED_EXTENSIONS


def generate_stored_name(filename: Optional[str], *, now_ns: Optional[int] = None) -> str:
    """Collision-resistant on-disk name: ``<epoch-ns>-<random><.ext>``.

    The original extension is kept lower-cased; anything that does not look
    like a plain extension is dropped so the name stays path-safe.
    """
    stamp = time.time_ns() if now_ns is None else now_ns
    ext = file_extension(filename)
    if not _SAFE_EXTENSION.fullmatch(ext):
        ext = ""
    return f"{stamp}-{secrets.randbelow(10**9)}{ext}"


def derive_title(filename: str) -> str:
    """Default track title: the file name with its last extension stripped."""
    name = os.path.basename(filename.replace("\\", "/"))
    return os.path.splitext(name)[0] or name


# --- error taxonomy -------------------------------------------------------


class UploadError(ServiceError):
    """Base for every rejection produced by the upload pipeline."""

    status_code = 400
    code = "UPLOAD_ERROR"
    default_message = "Upload failed"


class MalformedUploadError(UploadError):
    code = "MALFORMED_REQUEST"
    default_message = "Upload must be sent as multipart/form-data"


class MissingFieldsError(UploadError):
    code = "MISSING_FIELDS"
    default_message = "Playlist ID, title, and file are required"


class InvalidFileTypeError(UploadError):
    code = "INVALID_FILE_TYPE"

    def __init__(self, mimetype: Optional[str] = None, **kwargs: Any) -> None:
        message = f"Invalid file type. Only audio files are allowed. Got: {mimetype or 'unknown'}"
        super().__init__(message, **kwargs)


class FileTooLargeError(UploadError):
    status_code = 413
    code = "LIMIT_FILE_SIZE"

    def __init__(self, limit_bytes: int = MAX_FILE_BYTES, **kwargs: Any) -> None:
        megabytes = limit_bytes // (1024 * 1024)
        super().__init__(f"File too large. Maximum size is {megabytes}MB.", **kwargs)


class FieldTooLargeError(UploadError):
    status_code = 413
    code = "LIMIT_FIELD_VALUE"
    default_message = "Upload error: Field value too long"


class TooManyFieldsError(UploadError):
    code = "LIMIT_FIELD_COUNT"
    default_message = "Upload error: Too many fields"


class TooManyFilesError(UploadError):
    code = "LIMIT_FILE_COUNT"
    default_message = "Upload error: Too many files"


class UnexpectedFileFieldError(UploadError):
    code = "LIMIT_UNEXPECTED_FILE"

    def __init__(self, field_name: str, **kwargs: Any) -> None:
        super().__init__(f"Upload error: Unexpected field '{field_name}'", **kwargs)


class UploadInterruptedError(UploadError):
    code = "UPLOAD_INTERRUPTED"
    default_message = "Upload failed: The upload was interrupted. Please try again."

    def __init__(self, message: Optional[str] = None, **kwargs: Any) -> None:
        kwargs.setdefault(
            "details",
            "Please ensure your connection is stable and try uploading again.",
        )
        super().__init__(message, **kwargs)


class UploadTimeoutError(UploadError):
    status_code = 408
    code = "REQUEST_TIMEOUT"
    default_message = "Upload took too long and was stopped. Please try again."


class PlaylistNotFoundError(NotFoundError):
    code = "PLAYLIST_NOT_FOUND"
    default_message = "Playlist not found"


class TrackNotFoundError(NotFoundError):
    code = "TRACK_NOT_FOUND"
    default_message = "Track not found"


class StorageError(ServiceError):
    """Filesystem or record-insert failure after the payload was accepted."""

    status_code = 500
    code = "STORAGE_ERROR"
    default_message = "Failed to upload track"


# --- shared DTOs ----------------------------------------------------------


class PlaylistPayload(BaseModel):
    """Body of ``POST /api/playlists`` and ``PUT /api/playlists/<id>``."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(max_length=100)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        if not isinstance(value, str):
            raise ValueError("Playlist name is required")
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Playlist name is required")
        return cleaned


def parse_playlist_name(value: Any) -> str:
    """Validated, trimmed playlist name or :class:`InvalidRequestError`."""
    try:
        return PlaylistPayload.model_validate({"name": value}).name
    except ValidationError as exc:
        first = exc.errors()[0]
        message = first.get("msg", "Invalid playlist name")
        if first.get("type") == "value_error":
            message = str(first.get("ctx", {}).get("error", message))
        raise InvalidRequestError(message, code="INVALID_NAME") from exc


class PlaylistDTO(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TrackDTO(BaseModel):
    """Canonical Track shape returned by the upload and listing endpoints."""

    model_config = ConfigDict(extra="ignore")

    id: int
    playlist_id: int
    title: str
    artist: Optional[str] = None
    album: Optional[str] = None
    duration: int = Field(default=0, ge=0)
    file_path: str
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    created_at: Optional[str] = None


class ErrorBody(BaseModel):
    """``{error, details?, code?, hint?}`` carried by every non-2xx JSON response."""

    model_config = ConfigDict(extra="ignore")

    error: str
    details: Optional[str] = None
    code: Optional[str] = None
    hint: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _stringify_code(cls, value: Any) -> Any:
        # driver errno values arrive as integers
        if value is None or isinstance(value, str):
            return value
        return str(value)


__all__ = [
    "FIELD_FILE",
    "FIELD_PLAYLIST_ID",
    "FIELD_TITLE",
    "FIELD_ARTIST",
    "FIELD_ALBUM",
    "MAX_FILE_BYTES",
    "MAX_FIELDS",
    "MAX_FIELD_BYTES",
    "MAX_FILES",
    "ALLOWED_MIME_TYPES",
    "ALLOWED_EXTENSIONS",
    "normalize_mimetype",
    "file_extension",
    "is_allowed_audio",
    "generate_stored_name",
    "derive_title",
    "UploadError",
    "MalformedUploadError",
    "MissingFieldsError",
    "InvalidFileTypeError",
    "FileTooLargeError",
    "FieldTooLargeError",
    "TooManyFieldsError",
    "TooManyFilesError",
    "UnexpectedFileFieldError",
    "UploadInterruptedError",
    "UploadTimeoutError",
    "PlaylistNotFoundError",
    "TrackNotFoundError",
    "StorageError",
    "PlaylistPayload",
    "parse_playlist_name",
    "PlaylistDTO",
    "TrackDTO",
    "ErrorBody",
]
