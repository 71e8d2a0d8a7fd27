"""Domain exceptions rendered as ``{error, details?, code?, hint?}`` bodies."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for failures that map onto an HTTP response.

    Raised anywhere below the HTTP layer; the Flask error handlers turn it
    into the JSON error shape with ``status_code``.
    """

    status_code = 500
    code: Optional[str] = None
    default_message = "Something went wrong"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[str] = None,
        code: Optional[str] = None,
        hint: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.details = details
        self.hint = hint
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self, *, include_details: bool = True) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if include_details and self.details:
            body["details"] = self.details
        if self.code:
            body["code"] = self.code
        if self.hint:
            body["hint"] = self.hint
        return body


class InvalidRequestError(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Resource not found"


class BackingStoreUnavailableError(ServiceError):
    """The relational store is unreachable, misconfigured or missing its schema."""

    status_code = 503
    code = "BACKING_STORE_UNAVAILABLE"
    default_message = "Database is unavailable"


__all__ = [
    "ServiceError",
    "InvalidRequestError",
    "NotFoundError",
    "BackingStoreUnavailableError",
]
