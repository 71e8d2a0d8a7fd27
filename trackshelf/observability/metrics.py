from __future__ import annotations

from typing import Optional

from flask import Blueprint, Response
from prometheus_client import Counter, Histogram, generate_latest

metrics_blueprint = Blueprint("metrics_bp", __name__)

CONTENT_TYPE_LATEST = "text/plain; version=0.0.4; charset=utf-8"

UPLOAD_ATTEMPTS = Counter(
    "trackshelf_upload_attempts_total",
    "Total number of track upload requests received by the API.",
)
UPLOAD_SUCCESSES = Counter(
    "trackshelf_upload_success_total",
    "Total number of uploads that produced a stored track.",
)
UPLOAD_FAILURES = Counter(
    "trackshelf_upload_failure_total",
    "Total number of rejected or failed uploads, by error code.",
    ["code"],
)
UPLOAD_BYTES = Counter(
    "trackshelf_upload_bytes_total",
    "Payload bytes written for successful uploads.",
)
UPLOAD_DURATION = Histogram(
    "trackshelf_upload_duration_seconds",
    "Wall time from first body byte to stored track.",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300, float("inf")),
)


def record_upload_attempt() -> None:
    UPLOAD_ATTEMPTS.inc()


def record_upload_success(size_bytes: int, duration_seconds: Optional[float] = None) -> None:
    UPLOAD_SUCCESSES.inc()
    UPLOAD_BYTES.inc(max(0, size_bytes))
    if duration_seconds is not None:
        UPLOAD_DURATION.observe(duration_seconds)


def record_upload_failure(code: str) -> None:
    UPLOAD_FAILURES.labels(code=code or "unknown").inc()


@metrics_blueprint.route("/metrics")
def metrics_endpoint() -> Response:
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)
