"""Core primitives shared across backend and client layers."""

from .errors import (
    BackingStoreUnavailableError,
    InvalidRequestError,
    NotFoundError,
    ServiceError,
)
from .progress import BrokerPublisher, EventBroker, EventPublisher, NullPublisher

__all__ = [
    "BackingStoreUnavailableError",
    "InvalidRequestError",
    "NotFoundError",
    "ServiceError",
    "BrokerPublisher",
    "EventBroker",
    "EventPublisher",
    "NullPublisher",
]
