"""Playlist/track management and on-disk payload storage."""

from .file_store import FileStore, UnsafeStoredNameError
from .service import LibraryService

__all__ = ["FileStore", "UnsafeStoredNameError", "LibraryService"]
