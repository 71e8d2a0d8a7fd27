#!/usr/bin/env python
# config.py
import os
from typing import List

# This assumes config.py is at the root of your project
basedir = os.path.abspath(os.path.dirname(__file__))


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _get_csv_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name)
    source = raw if raw is not None else default
    return [token.strip() for token in source.split(",") if token and token.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'trackshelf-dev-secret'

    # Database
    # SQLite file under instance/ unless DATABASE_URL points at a server (e.g. mysql+pymysql://...)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'trackshelf.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Upload root; created at startup if missing
    UPLOAD_DIR = os.path.abspath(os.getenv('UPLOAD_DIR', os.path.join(basedir, 'uploads')))

    # Upload admission limits
    MAX_UPLOAD_BYTES = _get_int('MAX_UPLOAD_BYTES', 50 * 1024 * 1024)
    MAX_UPLOAD_FIELDS = _get_int('MAX_UPLOAD_FIELDS', 10)
    MAX_UPLOAD_FIELD_BYTES = _get_int('MAX_UPLOAD_FIELD_BYTES', 10 * 1024 * 1024)
    UPLOAD_CHUNK_SIZE = max(1024, _get_int('UPLOAD_CHUNK_SIZE', 64 * 1024))
    # Dead-man timer for a single upload request (seconds)
    UPLOAD_REQUEST_TIMEOUT_SECONDS = _get_int('UPLOAD_REQUEST_TIMEOUT_SECONDS', 5 * 60)
    # Leftover .part files older than this are removed at startup
    STALE_PARTIAL_UPLOAD_SECONDS = _get_int('STALE_PARTIAL_UPLOAD_SECONDS', 60 * 60)

    # HTTP
    CORS_ALLOWED_ORIGINS = _get_csv_list(
        'CORS_ALLOWED_ORIGINS',
        'http://localhost:3000,http://127.0.0.1:3000',
    )
    PORT = _get_int('PORT', 3000)

    # Runtime behavior
    DEBUG = _get_bool('DEBUG', False)
    # Control console logging; when disabled, logs go only to file
    ENABLE_CONSOLE_LOGS = _get_bool('ENABLE_CONSOLE_LOGS', False)
    LOG_DIR = os.getenv('LOG_DIR', os.path.join(basedir, 'log'))
    # JSON stdout logs (plus OTLP when an endpoint is configured)
    STRUCTURED_LOGS = _get_bool('STRUCTURED_LOGS', True)
    # Include backing-store error text in 5xx bodies (operator diagnostics)
    EXPOSE_ERROR_DETAILS = _get_bool('EXPOSE_ERROR_DETAILS', True)

    # Observability
    OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT')
    OTEL_EXPORTER_OTLP_HEADERS = os.getenv('OTEL_EXPORTER_OTLP_HEADERS')
    OTEL_EXPORTER_OTLP_INSECURE = _get_bool('OTEL_EXPORTER_OTLP_INSECURE', True)
    OTEL_SERVICE_NAME = os.getenv('OTEL_SERVICE_NAME', 'trackshelf')
