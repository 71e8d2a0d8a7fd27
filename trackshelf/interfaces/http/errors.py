"""Render every failure as the ``{error, details?, code?, hint?}`` JSON body."""

from __future__ import annotations

import logging

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from trackshelf.core.errors import ServiceError
from trackshelf.database.db_manager import db
from trackshelf.database.diagnostics import classify_database_error, driver_error_code

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong!"


def _service_error_response(app: Flask, exc: ServiceError):
    # 4xx details are always safe to show; 5xx details depend on config
    include_details = exc.status_code < 500 or bool(app.config.get("EXPOSE_ERROR_DETAILS", True))
    return jsonify(exc.to_dict(include_details=include_details)), exc.status_code


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def _handle_service_error(exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("%s: %s (details=%s)", type(exc).__name__, exc.message, exc.details)
        return _service_error_response(app, exc)

    @app.errorhandler(HTTPException)
    def _handle_http_exception(exc: HTTPException):
        body = {"error": exc.description or exc.name}
        return jsonify(body), exc.code or 500

    @app.errorhandler(SQLAlchemyError)
    def _handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        logger.error("Database error (code=%s): %s", driver_error_code(exc), exc, exc_info=True)
        unavailable = classify_database_error(exc)
        if unavailable is not None:
            return _service_error_response(app, unavailable)
        body = {"error": GENERIC_ERROR_MESSAGE}
        return jsonify(body), 500

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return jsonify({"error": GENERIC_ERROR_MESSAGE}), 500
