#!/usr/bin/env python
"""
Playlist and track management over the relational store and upload root.

The service owns every write to the ``playlists``/``tracks`` tables. Record
changes are committed first; on-disk payloads are removed afterwards on a
best-effort basis so a stuck file never blocks a delete.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from trackshelf.core.progress import EventPublisher, NullPublisher
from trackshelf.database.db_manager import Playlist, Track
from trackshelf.database.diagnostics import classify_database_error, driver_error_code
from trackshelf.domain.uploads.protocol import (
    PlaylistNotFoundError,
    StorageError,
    TrackNotFoundError,
    parse_playlist_name,
)

from .file_store import FileStore

logger = logging.getLogger(__name__)


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class LibraryService:
    def __init__(self, db, file_store: FileStore, publisher: Optional[EventPublisher] = None) -> None:
        self.db = db
        self.file_store = file_store
        self.publisher = publisher or NullPublisher()

    @property
    def session(self):
        return self.db.session

    def _publish(self, event: str, **payload) -> None:
        try:
            self.publisher.publish({"event": event, **payload})
        except Exception:  # pragma: no cover - event delivery never fails a request
            logger.debug("Dropping library event %s", event, exc_info=True)

    # --- playlists ---------------------------------------------------------

    def list_playlists(self) -> List[Playlist]:
        return (
            Playlist.query.order_by(Playlist.created_at.desc(), Playlist.id.desc()).all()
        )

    def get_playlist(self, playlist_id: int) -> Playlist:
        playlist = self.session.get(Playlist, playlist_id)
        if playlist is None:
            raise PlaylistNotFoundError()
        return playlist

    def create_playlist(self, name) -> Playlist:
        playlist = Playlist(name=parse_playlist_name(name))
        self.session.add(playlist)
        self.session.commit()
        logger.info("Created playlist %s (%s)", playlist.id, playlist.name)
        self._publish("playlist_created", playlist=playlist.to_dict())
        return playlist

    def rename_playlist(self, playlist_id: int, name) -> Playlist:
        cleaned = parse_playlist_name(name)
        playlist = self.get_playlist(playlist_id)
        playlist.name = cleaned
        self.session.commit()
        self._publish("playlist_updated", playlist=playlist.to_dict())
        return playlist

    def delete_playlist(self, playlist_id: int) -> int:
        """Delete a playlist, its tracks and their files.

        Returns the number of payload files actually removed from disk.
        """
        playlist = self.get_playlist(playlist_id)
        stored_names = [
            row.file_path
            for row in self.session.query(Track.file_path).filter(Track.playlist_id == playlist_id)
        ]
        self.session.delete(playlist)
        self.session.commit()

        removed = self.file_store.delete_many(stored_names)
        if removed != len(stored_names):
            logger.warning(
                "Playlist %s deleted; removed %s of %s track files",
                playlist_id, removed, len(stored_names),
            )
        else:
            logger.info("Playlist %s deleted with %s track file(s)", playlist_id, removed)
        self._publish("playlist_deleted", playlist_id=playlist_id, track_count=len(stored_names))
        return removed

    # --- tracks ------------------------------------------------------------

    def list_tracks(self, playlist_id: int) -> List[Track]:
        self.get_playlist(playlist_id)
        return (
            Track.query.filter_by(playlist_id=playlist_id)
            .order_by(Track.created_at.desc(), Track.id.desc())
            .all()
        )

    def add_track(
        self,
        playlist_id: int,
        *,
        title: str,
        file_path: str,
        file_size: Optional[int] = None,
        file_type: Optional[str] = None,
        artist: Optional[str] = None,
        album: Optional[str] = None,
        duration: int = 0,
    ) -> Track:
        """Insert the record for an already stored payload.

        Raises :class:`PlaylistNotFoundError` for an unknown playlist and
        :class:`StorageError` (or a 503 ``BackingStoreUnavailableError``) when
        the insert fails; the caller owns the file and must remove it.
        """
        try:
            if self.session.get(Playlist, playlist_id) is None:
                raise PlaylistNotFoundError()
            track = Track(
                playlist_id=playlist_id,
                title=title.strip(),
                artist=_clean_optional(artist),
                album=_clean_optional(album),
                duration=max(0, int(duration or 0)),
                file_path=file_path,
                file_size=file_size,
                file_type=file_type,
            )
            self.session.add(track)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                "Track insert failed for playlist %s (file %s): code=%s message=%s",
                playlist_id, file_path, driver_error_code(exc), exc,
                exc_info=True,
            )
            unavailable = classify_database_error(exc)
            if unavailable is not None:
                raise unavailable from exc
            orig = getattr(exc, "orig", None)
            raise StorageError(
                "Failed to save track",
                details=str(orig if orig is not None else exc),
                code=driver_error_code(exc) or StorageError.code,
            ) from exc

        logger.info(
            "Track %s stored: playlist=%s title=%r file=%s size=%s type=%s",
            track.id, playlist_id, track.title, file_path, file_size, file_type,
            extra={"playlist_id": playlist_id, "track_id": track.id},
        )
        self._publish("track_uploaded", track=track.to_dict())
        return track

    def delete_track(self, track_id: int) -> bool:
        """Delete the row, then best-effort delete its file.

        Returns whether the file was removed; a failed file removal is logged
        and never turns the delete into an error.
        """
        track = self.session.get(Track, track_id)
        if track is None:
            raise TrackNotFoundError()
        stored_name = track.file_path
        playlist_id = track.playlist_id
        self.session.delete(track)
        self.session.commit()

        removed = self.file_store.delete(stored_name)
        self._publish("track_deleted", track_id=track_id, playlist_id=playlist_id)
        return removed


__all__ = ["LibraryService"]
