from abc import ABC, abstractmethod
from collections.abc import Callable

import redis

ReconnectCallback = Callable[[], None]


class BaseBrokerConnection(ABC):
    """Owns broker connections for one process.

    The consumer connection is shared and must ride out broker outages; a
    producer connection is created per caller and fails fast.
    """

    @abstractmethod
    def consumer_connection(self) -> redis.Redis:
        """Shared connection used by the worker to consume jobs."""

    @abstractmethod
    def new_producer_connection(self) -> redis.Redis:
        """Fresh fail-fast connection for enqueueing from request paths."""

    @abstractmethod
    def on_reconnect(self, callback: ReconnectCallback) -> None:
        """Register a callback fired when the consumer connection recovers."""

    @abstractmethod
    def close(self) -> None:
        """Close every connection created by this manager."""
