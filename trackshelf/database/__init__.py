"""Relational storage: Flask-SQLAlchemy models and backing-store diagnostics."""

from .db_manager import db, Playlist, Track, initialize_database

__all__ = ["db", "Playlist", "Track", "initialize_database"]
