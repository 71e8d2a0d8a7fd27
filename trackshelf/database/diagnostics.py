"""Classify backing-store failures into actionable operator guidance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from trackshelf.core.errors import BackingStoreUnavailableError

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("playlists", "tracks")

SETUP_HINT = "Run: python manage.py create_db"
CONFIG_HINT = "Check DATABASE_URL in the .env file and make sure the database server is running."

# (substring of the driver message, message, hint); first match wins
_UNAVAILABLE_PATTERNS = (
    ("connection refused", "Cannot connect to database. Please check if the database server is running.", CONFIG_HINT),
    ("can't connect", "Cannot connect to database. Please check if the database server is running.", CONFIG_HINT),
    ("could not connect", "Cannot connect to database. Please check if the database server is running.", CONFIG_HINT),
    ("access denied", "Database access denied. Please check your database credentials.", CONFIG_HINT),
    ("authentication failed", "Database access denied. Please check your database credentials.", CONFIG_HINT),
    ("unknown database", "Database does not exist.", SETUP_HINT),
    ("unable to open database file", "Database file cannot be opened.", CONFIG_HINT),
    ("no such table", "Database tables not found.", SETUP_HINT),
    ("doesn't exist", "Database tables not found.", SETUP_HINT),
    ("undefinedtable", "Database tables not found.", SETUP_HINT),
    ("name or service not known", "Cannot reach database server. Please check the database host.", CONFIG_HINT),
    ("could not translate host name", "Cannot reach database server. Please check the database host.", CONFIG_HINT),
    ("timed out", "Cannot reach database server. Please check the database host.", CONFIG_HINT),
)


def _driver_message(exc: BaseException) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc)


def driver_error_code(exc: BaseException) -> Optional[str]:
    """Best-effort driver error code (MySQL errno, Postgres SQLSTATE, ...)."""
    orig = getattr(exc, "orig", None)
    if orig is None:
        return getattr(exc, "code", None)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode:
        return str(pgcode)
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return str(args[0])
    return type(orig).__name__


def classify_database_error(exc: BaseException) -> Optional[BackingStoreUnavailableError]:
    """Return a 503 error when *exc* means the store itself is unusable.

    Constraint violations and other per-statement failures return ``None``
    so callers can treat them as ordinary server errors.
    """
    if not isinstance(exc, DBAPIError):
        return None
    if getattr(exc, "connection_invalidated", False):
        return BackingStoreUnavailableError(
            "Lost connection to the database.",
            details=_driver_message(exc),
            hint=CONFIG_HINT,
        )
    text = _driver_message(exc).lower()
    for needle, message, hint in _UNAVAILABLE_PATTERNS:
        if needle in text:
            return BackingStoreUnavailableError(message, details=_driver_message(exc), hint=hint)
    return None


@dataclass
class SchemaReport:
    reachable: bool
    tables: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reachable and not self.missing


def inspect_schema(engine) -> SchemaReport:
    """Connect once and report which required tables exist."""
    try:
        tables = sorted(inspect(engine).get_table_names())
    except SQLAlchemyError as exc:
        logger.warning("Database schema inspection failed: %s", exc)
        return SchemaReport(reachable=False, error=_driver_message(exc))
    missing = [name for name in REQUIRED_TABLES if name not in tables]
    return SchemaReport(reachable=True, tables=tables, missing=missing)


__all__ = [
    "REQUIRED_TABLES",
    "SchemaReport",
    "classify_database_error",
    "driver_error_code",
    "inspect_schema",
]
