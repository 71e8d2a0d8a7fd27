#!/usr/bin/env python
"""
Batch upload of local audio files into one playlist.

Files go up one at a time by default: item ``i + 1`` only starts once item
``i`` has succeeded or failed, so progress stays easy to follow and batch
order is preserved. A failed item never stops the batch. Once every item is
terminal the playlist's track list is fetched again from the server.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from trackshelf.core.progress import EventPublisher, NullPublisher
from trackshelf.domain.uploads.protocol import TrackDTO, derive_title

from .errors import CANCELLED_MESSAGE, ClientError

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class UploadItem:
    path: str
    playlist_id: int
    title: str
    index: int = 0
    progress: int = 0
    state: UploadState = UploadState.PENDING
    error: Optional[str] = None
    track: Optional[TrackDTO] = None

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)

    @property
    def is_terminal(self) -> bool:
        return self.state in (UploadState.SUCCEEDED, UploadState.FAILED)


@dataclass
class UploadBatchResult:
    playlist_id: int
    items: List[UploadItem] = field(default_factory=list)
    # Authoritative listing fetched after the batch; None when nothing succeeded
    tracks: Optional[List[TrackDTO]] = None
    refresh_error: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.state == UploadState.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if item.state == UploadState.FAILED)

    def summary(self) -> str:
        return f"Upload complete: {self.succeeded} succeeded, {self.failed} failed"


def aggregate_progress(items: Sequence[UploadItem]) -> float:
    """Mean of the per-item percentages; pending items count as 0."""
    if not items:
        return 0.0
    return sum(item.progress for item in items) / len(items)


class UploadOrchestrator:
    def __init__(self, api, publisher: Optional[EventPublisher] = None, concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.api = api
        self.publisher = publisher or NullPublisher()
        self.concurrency = concurrency
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._items: List[UploadItem] = []

    def cancel(self) -> None:
        """Abort the in-flight upload(s) and fail every item not yet started."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def aggregate_progress(self) -> float:
        with self._lock:
            return aggregate_progress(self._items)

    def _publish(self, event: str, item: Optional[UploadItem] = None, **payload) -> None:
        message = {"event": event, **payload}
        if item is not None:
            message.update(
                index=item.index,
                file=item.filename,
                title=item.title,
                progress=item.progress,
                state=item.state.value,
            )
        message["aggregate_progress"] = aggregate_progress(self._items)
        self.publisher.publish(message)

    def run(
        self,
        playlist_id: int,
        paths: Sequence[str],
        titles: Optional[Sequence[Optional[str]]] = None,
        *,
        artist: Optional[str] = None,
        album: Optional[str] = None,
    ) -> UploadBatchResult:
        paths = list(paths)
        result = UploadBatchResult(playlist_id=playlist_id)
        if not paths:
            return result

        self._cancel_event.clear()
        titles = list(titles or [])
        items = []
        for index, path in enumerate(paths):
            explicit = titles[index] if index < len(titles) else None
            title = (explicit or "").strip() or derive_title(os.path.basename(path))
            items.append(UploadItem(path=path, playlist_id=playlist_id, title=title, index=index))
        self._items = items
        result.items = items

        logger.info("Uploading %s file(s) to playlist %s", len(items), playlist_id)
        if self.concurrency == 1:
            for item in items:
                self._upload_one(item, artist=artist, album=album)
        else:
            with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="upload") as pool:
                futures = [pool.submit(self._upload_one, item, artist=artist, album=album) for item in items]
                for future in futures:
                    future.result()

        if result.succeeded > 0:
            try:
                result.tracks = self.api.list_tracks(playlist_id)
            except ClientError as exc:
                logger.warning("Could not refresh tracks for playlist %s: %s", playlist_id, exc)
                result.refresh_error = str(exc)

        logger.info(result.summary())
        self._publish(
            "batch_completed",
            playlist_id=playlist_id,
            succeeded=result.succeeded,
            failed=result.failed,
            summary=result.summary(),
        )
        return result

    def _fail(self, item: UploadItem, message: str) -> None:
        with self._lock:
            item.state = UploadState.FAILED
            item.error = message
        logger.warning("Upload of %s failed: %s", item.filename, message)
        self._publish("upload_failed", item, error=message)

    def _upload_one(self, item: UploadItem, *, artist: Optional[str], album: Optional[str]) -> None:
        if self._cancel_event.is_set():
            self._fail(item, CANCELLED_MESSAGE)
            return

        with self._lock:
            item.state = UploadState.UPLOADING
        self._publish("upload_started", item, total=len(self._items))

        def _on_progress(sent: int, total: int) -> None:
            percent = int(sent * 100 / total) if total else 0
            with self._lock:
                # never move backwards; 100 is reserved for a confirmed success
                percent = min(percent, 99)
                if percent <= item.progress:
                    return
                item.progress = percent
            self._publish("upload_progress", item)

        try:
            track = self.api.upload_track(
                item.playlist_id,
                item.path,
                title=item.title,
                artist=artist,
                album=album,
                on_progress=_on_progress,
                cancel_event=self._cancel_event,
            )
        except ClientError as exc:
            self._fail(item, str(exc))
            return
        except OSError as exc:
            self._fail(item, f"Could not read {item.filename}: {exc.strerror or exc}")
            return

        with self._lock:
            item.state = UploadState.SUCCEEDED
            item.progress = 100
            item.track = track
        self._publish("upload_succeeded", item, track_id=track.id)


__all__ = [
    "UploadState",
    "UploadItem",
    "UploadBatchResult",
    "UploadOrchestrator",
    "aggregate_progress",
]
