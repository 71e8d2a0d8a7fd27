"""Flask HTTP surface: blueprints, JSON error handlers and dev-server handler."""

from .errors import register_error_handlers
from .serving import request_handler_with_timeout

__all__ = ["register_error_handlers", "request_handler_with_timeout"]
