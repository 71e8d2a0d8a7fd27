#!/usr/bin/env python
"""
HTTP client for the TrackShelf REST API.

Mirrors the server routes one method per endpoint. Uploads stream the file
from disk inside a hand-assembled ``multipart/form-data`` body so progress
can be reported per read and the transfer can be aborted mid-body.
"""

from __future__ import annotations

import io
import json
import logging
import mimetypes
import os
import threading
import time
from typing import Callable, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import requests
from pydantic import ValidationError
from urllib3.fields import RequestField
from urllib3.filepost import choose_boundary

from trackshelf.domain.uploads.protocol import (
    FIELD_ALBUM,
    FIELD_ARTIST,
    FIELD_FILE,
    FIELD_PLAYLIST_ID,
    FIELD_TITLE,
    ErrorBody,
    PlaylistDTO,
    TrackDTO,
    derive_title,
)

from .errors import (
    ApiError,
    ClientTimeoutError,
    ConnectivityError,
    InvalidResponseError,
    UploadCancelledError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
UPLOAD_TIMEOUT_SECONDS = 10 * 60

ProgressCallback = Callable[[int, int], None]


# --- error extraction -------------------------------------------------------


def extract_upload_error_message(status: int, text: Optional[str]) -> str:
    """Most specific message available for a failed upload response.

    Structured ``error`` field first, then any JSON ``error``/``message``/
    ``details`` value, then the raw body text, then a generic status line.
    """
    payload = None
    if text:
        try:
            payload = json.loads(text)
        except ValueError:
            payload = None

    if isinstance(payload, dict):
        try:
            body = ErrorBody.model_validate(payload)
        except ValidationError:
            body = None
        if body is not None and body.error.strip():
            return body.error
        for key in ("error", "message", "details"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value

    if text and text.strip():
        return text.strip()
    return f"Upload failed with status {status}"


def _error_fields(response: requests.Response) -> dict:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def api_error_from_response(response: requests.Response) -> ApiError:
    """Translate a non-2xx JSON API response into an :class:`ApiError`."""
    status = response.status_code
    try:
        payload = response.json()
    except ValueError:
        return ApiError(response.reason or f"HTTP {status} error", status=status)
    if not isinstance(payload, dict):
        payload = {}

    message = payload.get("error") or payload.get("message") or payload.get("details") or "Something went wrong"
    hint = payload.get("hint") or None
    if status == 404:
        message = "Resource not found. Please check your connection."
    elif status == 503 and hint:
        message = f"{message} {hint}"
    code = payload.get("code")
    if code is not None:
        logger.debug("Server error code %s for %s %s", code, response.request.method if response.request else "?", response.url)
    return ApiError(
        str(message),
        status=status,
        code=str(code) if code is not None else None,
        hint=hint,
        details=payload.get("details"),
    )


def upload_error_from_response(response: requests.Response) -> ApiError:
    payload = _error_fields(response)
    code = payload.get("code")
    return ApiError(
        extract_upload_error_message(response.status_code, response.text),
        status=response.status_code,
        code=str(code) if code is not None else None,
        hint=payload.get("hint") or None,
        details=payload.get("details"),
    )


# --- streaming multipart body -----------------------------------------------


class MultipartUploadBody:
    """File-like ``multipart/form-data`` body: text fields, then one file part.

    ``requests`` sends objects with ``read`` and ``__len__`` with a
    Content-Length header and pulls them in blocks, so every ``read`` is a
    progress tick and a chance to abort. Cancellation and the client deadline
    raise from ``read``; urllib3 then drops the connection and the server
    sees a truncated body.
    """

    def __init__(
        self,
        fields: Sequence[Tuple[str, str]],
        file_field: str,
        filename: str,
        fileobj,
        file_size: int,
        mimetype: str,
        *,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        boundary: Optional[str] = None,
    ) -> None:
        self.boundary = boundary or choose_boundary()
        self._on_progress = on_progress
        self._cancel_event = cancel_event
        self._deadline = deadline
        self._clock = clock

        head = io.BytesIO()
        for name, value in fields:
            part = RequestField.from_tuples(name, value)
            self._write_part_header(head, part)
            head.write(str(value).encode("utf-8"))
            head.write(b"\r\n")
        file_part = RequestField(name=file_field, data=b"", filename=filename)
        file_part.make_multipart(content_type=mimetype)
        self._write_part_header(head, file_part)

        tail = f"\r\n--{self.boundary}--\r\n".encode("latin-1")
        head_bytes = head.getvalue()
        self._segments = [io.BytesIO(head_bytes), fileobj, io.BytesIO(tail)]
        self._index = 0
        self._length = len(head_bytes) + int(file_size) + len(tail)
        self.bytes_sent = 0

    def _write_part_header(self, buffer: io.BytesIO, part: RequestField) -> None:
        buffer.write(f"--{self.boundary}\r\n".encode("latin-1"))
        buffer.write(part.render_headers().encode("utf-8"))

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    def __len__(self) -> int:
        return self._length

    def _check_abort(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise UploadCancelledError()
        if self._deadline is not None and self._clock() > self._deadline:
            raise ClientTimeoutError()

    def read(self, size: int = -1) -> bytes:
        self._check_abort()
        if size is None or size < 0:
            size = max(0, self._length - self.bytes_sent)
        chunks = []
        remaining = size
        while remaining > 0 and self._index < len(self._segments):
            data = self._segments[self._index].read(remaining)
            if not data:
                self._index += 1
                continue
            chunks.append(data)
            remaining -= len(data)
        chunk = b"".join(chunks)
        if chunk:
            self.bytes_sent += len(chunk)
            if self._on_progress is not None:
                self._on_progress(self.bytes_sent, self._length)
        return chunk


# --- client -----------------------------------------------------------------


class TrackShelfClient:
    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        *,
        upload_timeout: float = UPLOAD_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.connect_timeout = connect_timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            return self.session.request(method, self._url(path), **kwargs)
        except requests.exceptions.ConnectTimeout as exc:
            raise ConnectivityError("Network error. Please check if the server is running and accessible.") from exc
        except requests.exceptions.Timeout as exc:
            raise ClientTimeoutError("Request timed out. Please try again.") from exc
        except requests.exceptions.ConnectionError as exc:
            raise ConnectivityError("Network error. Please check if the server is running and accessible.") from exc

    @staticmethod
    def _handle(response: requests.Response):
        if not response.ok:
            raise api_error_from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise InvalidResponseError() from exc

    # --- playlists ---------------------------------------------------------

    def list_playlists(self) -> List[PlaylistDTO]:
        data = self._handle(self._request("GET", "/api/playlists")) or []
        return [PlaylistDTO.model_validate(item) for item in data]

    def create_playlist(self, name: str) -> PlaylistDTO:
        data = self._handle(self._request("POST", "/api/playlists", json={"name": name}))
        return PlaylistDTO.model_validate(data)

    def rename_playlist(self, playlist_id: int, name: str) -> PlaylistDTO:
        data = self._handle(self._request("PUT", f"/api/playlists/{int(playlist_id)}", json={"name": name}))
        return PlaylistDTO.model_validate(data)

    def delete_playlist(self, playlist_id: int) -> None:
        self._handle(self._request("DELETE", f"/api/playlists/{int(playlist_id)}"))

    # --- tracks ------------------------------------------------------------

    def list_tracks(self, playlist_id: int) -> List[TrackDTO]:
        data = self._handle(self._request("GET", f"/api/tracks/playlist/{int(playlist_id)}")) or []
        return [TrackDTO.model_validate(item) for item in data]

    def delete_track(self, track_id: int) -> None:
        self._handle(self._request("DELETE", f"/api/tracks/{int(track_id)}"))

    def upload_track(
        self,
        playlist_id: int,
        path: str,
        *,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        album: Optional[str] = None,
        mimetype: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> TrackDTO:
        """Upload one file as a new track of *playlist_id*.

        Raises :class:`ApiError` for a non-2xx response,
        :class:`ConnectivityError`, :class:`ClientTimeoutError` (10 minute
        budget for the whole request) or :class:`UploadCancelledError`.
        ``OSError`` from opening *path* propagates unchanged.
        """
        filename = os.path.basename(path)
        fields = [
            (FIELD_PLAYLIST_ID, str(playlist_id)),
            (FIELD_TITLE, title or derive_title(filename)),
        ]
        if artist:
            fields.append((FIELD_ARTIST, artist))
        if album:
            fields.append((FIELD_ALBUM, album))
        mimetype = mimetype or mimetypes.guess_type(filename)[0] or "application/octet-stream"

        with open(path, "rb") as handle:
            body = MultipartUploadBody(
                fields,
                FIELD_FILE,
                filename,
                handle,
                os.fstat(handle.fileno()).st_size,
                mimetype,
                on_progress=on_progress,
                cancel_event=cancel_event,
                deadline=time.monotonic() + self.upload_timeout,
            )
            try:
                response = self.session.post(
                    self._url("/api/tracks"),
                    data=body,
                    headers={"Content-Type": body.content_type},
                    timeout=(self.connect_timeout, self.upload_timeout),
                )
            except requests.exceptions.ConnectTimeout as exc:
                raise ConnectivityError() from exc
            except requests.exceptions.Timeout as exc:
                raise ClientTimeoutError() from exc
            except requests.exceptions.ConnectionError as exc:
                if cancel_event is not None and cancel_event.is_set():
                    raise UploadCancelledError() from exc
                raise ConnectivityError() from exc

        if not response.ok:
            error = upload_error_from_response(response)
            logger.warning("Upload of %s failed: HTTP %s %s", filename, error.status, error.message)
            raise error
        try:
            return TrackDTO.model_validate(response.json())
        except ValueError as exc:
            raise InvalidResponseError() from exc

    def media_url(self, track: Union[TrackDTO, str]) -> str:
        """Public URL of a stored payload (a track or its ``file_path``)."""
        stored_name = track.file_path if isinstance(track, TrackDTO) else track
        return self._url(f"/uploads/{quote(stored_name)}")


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "UPLOAD_TIMEOUT_SECONDS",
    "MultipartUploadBody",
    "TrackShelfClient",
    "api_error_from_response",
    "extract_upload_error_message",
    "upload_error_from_response",
]
