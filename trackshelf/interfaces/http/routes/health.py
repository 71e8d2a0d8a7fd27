from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from trackshelf.database.db_manager import db
from trackshelf.database.diagnostics import SETUP_HINT, inspect_schema

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__)


def _upload_root_writable() -> bool:
    store = current_app.extensions.get("file_store")
    return bool(store and store.is_writable())


@health_bp.route("/healthz")
def healthz():
    status = 200
    checks = {}

    try:
        db.session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Health check database probe failed: %s", exc)
        status = 503
        checks["database"] = f"error: {exc}"

    if _upload_root_writable():
        checks["upload_root"] = "ok"
    else:
        status = 503
        checks["upload_root"] = "not writable"

    overall = "ok" if status == 200 else "degraded"
    return jsonify({"status": overall, "checks": checks}), status


@health_bp.route("/readyz")
def readyz():
    report = inspect_schema(db.engine)
    ready = report.ok and _upload_root_writable()
    payload = {
        "status": "ready" if ready else "blocked",
        "database_reachable": report.reachable,
        "missing_tables": report.missing,
        "upload_root_writable": _upload_root_writable(),
    }
    if report.error:
        payload["error"] = report.error
    if report.missing:
        payload["hint"] = SETUP_HINT
    return jsonify(payload), 200 if ready else 503
