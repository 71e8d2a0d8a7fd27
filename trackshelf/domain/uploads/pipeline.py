#!/usr/bin/env python
"""
Server-side upload pipeline for ``POST /api/tracks``.

Each request walks ``receiving -> validating -> persisting-file ->
writing-record -> responding``. The multipart body is decoded incrementally
with werkzeug's sans-IO ``MultipartDecoder`` so the file part streams
straight into a hidden temp file in the upload root; size and type limits
are enforced while reading. Every failure after bytes hit the disk removes
them again before the error is returned.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO, Callable, Dict, Optional

from werkzeug.exceptions import ClientDisconnected
from werkzeug.http import parse_options_header
from werkzeug.sansio.multipart import Data, Epilogue, Field, File, MultipartDecoder, NeedData

from trackshelf.observability.metrics import (
    record_upload_attempt,
    record_upload_failure,
    record_upload_success,
)

from .protocol import (
    FIELD_ALBUM,
    FIELD_ARTIST,
    FIELD_FILE,
    FIELD_PLAYLIST_ID,
    FIELD_TITLE,
    MAX_FIELD_BYTES,
    MAX_FIELDS,
    MAX_FILES,
    MAX_FILE_BYTES,
    FieldTooLargeError,
    FileTooLargeError,
    InvalidFileTypeError,
    MalformedUploadError,
    MissingFieldsError,
    StorageError,
    TooManyFieldsError,
    TooManyFilesError,
    UnexpectedFileFieldError,
    UploadError,
    UploadInterruptedError,
    UploadTimeoutError,
    generate_stored_name,
    is_allowed_audio,
    normalize_mimetype,
)

if TYPE_CHECKING:  # pragma: no cover
    from trackshelf.domain.library.file_store import FileStore
    from trackshelf.domain.library.service import LibraryService

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    RECEIVING = "receiving"
    VALIDATING = "validating"
    PERSISTING_FILE = "persisting-file"
    WRITING_RECORD = "writing-record"
    RESPONDING = "responding"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadLimits:
    max_file_bytes: int = MAX_FILE_BYTES
    max_fields: int = MAX_FIELDS
    max_field_bytes: int = MAX_FIELD_BYTES
    timeout_seconds: float = 5 * 60
    chunk_size: int = 64 * 1024

    @classmethod
    def from_config(cls, config) -> "UploadLimits":
        return cls(
            max_file_bytes=int(config.get("MAX_UPLOAD_BYTES", MAX_FILE_BYTES)),
            max_fields=int(config.get("MAX_UPLOAD_FIELDS", MAX_FIELDS)),
            max_field_bytes=int(config.get("MAX_UPLOAD_FIELD_BYTES", MAX_FIELD_BYTES)),
            timeout_seconds=float(config.get("UPLOAD_REQUEST_TIMEOUT_SECONDS", 5 * 60)),
            chunk_size=int(config.get("UPLOAD_CHUNK_SIZE", 64 * 1024)),
        )


@dataclass
class ReceivedFile:
    filename: str
    mimetype: str
    stored_name: str
    partial_path: str
    size: int = 0
    complete: bool = False
    final_path: Optional[str] = None


@dataclass
class UploadReceipt:
    fields: Dict[str, str] = field(default_factory=dict)
    file: Optional[ReceivedFile] = None
    # End-of-stream anomaly observed after the file part was already complete
    stream_anomaly: Optional[str] = None


@dataclass
class UploadContext:
    """Per-request state; nothing here is shared between requests."""

    state: UploadState = UploadState.RECEIVING
    receipt: UploadReceipt = field(default_factory=UploadReceipt)
    started_at: float = 0.0


class UploadPipeline:
    def __init__(
        self,
        file_store: "FileStore",
        library: "LibraryService",
        limits: Optional[UploadLimits] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.file_store = file_store
        self.library = library
        self.limits = limits or UploadLimits()
        self._clock = clock

    def handle(self, stream: BinaryIO, content_type: Optional[str]) -> dict:
        """Run one upload request end to end and return the stored Track dict."""
        ctx = UploadContext(started_at=self._clock())
        record_upload_attempt()
        try:
            boundary = self._boundary(content_type)
            self._receive(ctx, stream, boundary)

            ctx.state = UploadState.VALIDATING
            playlist_id, title = self._validate(ctx.receipt)

            ctx.state = UploadState.PERSISTING_FILE
            received = ctx.receipt.file
            try:
                received.final_path = self.file_store.commit(received.partial_path, received.stored_name)
            except OSError as exc:
                logger.error("Could not move upload into place: %s", exc, exc_info=True)
                raise StorageError("Failed to store uploaded file", details=str(exc)) from exc

            ctx.state = UploadState.WRITING_RECORD
            fields = ctx.receipt.fields
            track = self.library.add_track(
                playlist_id,
                title=title,
                artist=fields.get(FIELD_ARTIST),
                album=fields.get(FIELD_ALBUM),
                file_path=received.stored_name,
                file_size=received.size,
                file_type=received.mimetype or None,
            )

            ctx.state = UploadState.RESPONDING
            payload = track.to_dict()
        except Exception as exc:
            failed_in = ctx.state
            ctx.state = UploadState.FAILED
            self._discard(ctx.receipt.file)
            code = getattr(exc, "code", None) or type(exc).__name__
            record_upload_failure(str(code))
            log_context = {"upload_state": failed_in.value, "error_code": str(code)}
            if isinstance(exc, UploadError):
                logger.warning("Upload rejected during %s: %s (%s)", failed_in.value, exc, code, extra=log_context)
            else:
                logger.error("Upload failed during %s: %s", failed_in.value, exc, extra=log_context)
            raise

        record_upload_success(received.size, self._clock() - ctx.started_at)
        return payload

    # --- receiving -----------------------------------------------------------

    @staticmethod
    def _boundary(content_type: Optional[str]) -> bytes:
        mimetype, options = parse_options_header(content_type or "")
        if mimetype != "multipart/form-data":
            raise MalformedUploadError(details=f"Got content type: {mimetype or 'none'}")
        boundary = options.get("boundary")
        if not boundary:
            raise MalformedUploadError("Multipart boundary is missing")
        try:
            return boundary.encode("latin-1")
        except UnicodeEncodeError as exc:
            raise MalformedUploadError("Multipart boundary is invalid") from exc

    def _receive(self, ctx: UploadContext, stream: BinaryIO, boundary: bytes) -> None:
        limits = self.limits
        receipt = ctx.receipt
        decoder = MultipartDecoder(boundary)
        deadline = ctx.started_at + limits.timeout_seconds

        current_kind: Optional[str] = None  # "field" | "file" | "skip"
        current_name = ""
        field_buffer = bytearray()
        field_count = 0
        file_count = 0
        handle: Optional[BinaryIO] = None
        saw_epilogue = False

        try:
            while not saw_epilogue:
                if self._clock() > deadline:
                    raise UploadTimeoutError()
                try:
                    chunk = stream.read(limits.chunk_size)
                except TimeoutError as exc:
                    raise UploadTimeoutError() from exc
                except ClientDisconnected as exc:
                    # werkzeug reports a socket read timeout as a disconnect
                    if isinstance(exc.__context__, TimeoutError) or self._clock() >= deadline:
                        logger.warning("Upload body stalled past %ss; giving up", limits.timeout_seconds)
                        raise UploadTimeoutError() from exc
                    logger.info("Client disconnected while sending upload body")
                    chunk = b""
                decoder.receive_data(chunk or None)

                try:
                    event = decoder.next_event()
                    while not isinstance(event, NeedData):
                        if isinstance(event, Epilogue):
                            saw_epilogue = True
                            break
                        if isinstance(event, Field):
                            field_count += 1
                            if field_count > limits.max_fields:
                                raise TooManyFieldsError()
                            current_kind, current_name = "field", event.name
                            field_buffer = bytearray()
                        elif isinstance(event, File):
                            current_kind, current_name = "file", event.name
                            if not event.filename:
                                # empty file input submitted with the form
                                current_kind = "skip"
                            elif event.name != FIELD_FILE:
                                raise UnexpectedFileFieldError(event.name)
                            elif file_count >= MAX_FILES:
                                raise TooManyFilesError()
                            else:
                                file_count += 1
                                mimetype = normalize_mimetype(event.headers.get("content-type"))
                                if not is_allowed_audio(mimetype, event.filename):
                                    raise InvalidFileTypeError(mimetype)
                                stored_name = generate_stored_name(event.filename)
                                try:
                                    handle, partial_path = self.file_store.open_partial(stored_name)
                                except OSError as exc:
                                    raise StorageError("Failed to store uploaded file", details=str(exc)) from exc
                                receipt.file = ReceivedFile(
                                    filename=event.filename,
                                    mimetype=mimetype,
                                    stored_name=stored_name,
                                    partial_path=partial_path,
                                )
                        elif isinstance(event, Data):
                            if current_kind == "field":
                                field_buffer.extend(event.data)
                                if len(field_buffer) > limits.max_field_bytes:
                                    raise FieldTooLargeError()
                                if not event.more_data:
                                    receipt.fields[current_name] = field_buffer.decode("utf-8", "replace")
                            elif current_kind == "file" and handle is not None:
                                received = receipt.file
                                received.size += len(event.data)
                                if received.size > limits.max_file_bytes:
                                    raise FileTooLargeError(limits.max_file_bytes)
                                try:
                                    handle.write(event.data)
                                except OSError as exc:
                                    raise StorageError("Failed to store uploaded file", details=str(exc)) from exc
                                if not event.more_data:
                                    handle.close()
                                    handle = None
                                    received.complete = True
                        event = decoder.next_event()
                except ValueError as exc:
                    # Decoder saw the body end (or break) before the closing boundary
                    self._end_of_stream_anomaly(receipt, str(exc))
                    break

                if not chunk and not saw_epilogue:
                    self._end_of_stream_anomaly(receipt, "body ended before the closing boundary")
                    break
        finally:
            if handle is not None:
                handle.close()

    @staticmethod
    def _end_of_stream_anomaly(receipt: UploadReceipt, reason: str) -> None:
        """Accept a truncated body only if the file part had already completed."""
        if receipt.file is not None and receipt.file.complete:
            logger.warning(
                "Upload body ended early (%s) after file %r was fully received; continuing",
                reason, receipt.file.filename,
            )
            receipt.stream_anomaly = reason
            return
        raise UploadInterruptedError()

    # --- validating ----------------------------------------------------------

    @staticmethod
    def _validate(receipt: UploadReceipt):
        fields = receipt.fields
        raw_playlist_id = (fields.get(FIELD_PLAYLIST_ID) or "").strip()
        title = (fields.get(FIELD_TITLE) or "").strip()
        has_file = receipt.file is not None and receipt.file.complete
        if not raw_playlist_id or not title or not has_file:
            raise MissingFieldsError(
                details=(
                    f"received: playlistId={bool(raw_playlist_id)}, "
                    f"title={bool(title)}, file={has_file}"
                )
            )
        try:
            playlist_id = int(raw_playlist_id)
        except ValueError as exc:
            raise MissingFieldsError(
                "Playlist ID must be an integer",
                code="INVALID_PLAYLIST_ID",
            ) from exc
        return playlist_id, title

    # --- cleanup -------------------------------------------------------------

    def _discard(self, received: Optional[ReceivedFile]) -> None:
        if received is None:
            return
        self.file_store.discard(received.partial_path)
        if received.final_path:
            self.file_store.discard(received.final_path)


__all__ = [
    "UploadState",
    "UploadLimits",
    "ReceivedFile",
    "UploadReceipt",
    "UploadContext",
    "UploadPipeline",
]
