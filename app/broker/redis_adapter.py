import threading
from collections.abc import Callable
from typing import Any, TypeVar

import redis
from redis.backoff import AbstractBackoff, ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from app.broker.base import BaseBrokerConnection, ReconnectCallback
from app.config.settings import Settings
from app.logging.logger import Log

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (RedisConnectionError, RedisTimeoutError)

T = TypeVar("T")


class ConnectionReadiness:
    """Tracks ready/lost transitions of the shared consumer connection.

    The first success after startup is the initial connect. A success that
    follows a failure, once the connection has been ready at least once, is a
    reconnect and fires the registered callbacks.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ever_ready = False
        self._lost = False
        self._callbacks: list[ReconnectCallback] = []

    def add_callback(self, callback: ReconnectCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def mark_lost(self, error: Exception) -> None:
        with self._lock:
            first_failure = not self._lost
            self._lost = True
        if first_failure:
            Log.warning(f"Broker connection lost, retrying: {error}")

    def mark_ready(self) -> None:
        with self._lock:
            reconnected = self._lost and self._ever_ready
            first_connect = not self._ever_ready
            self._lost = False
            self._ever_ready = True
            callbacks = list(self._callbacks) if reconnected else []
        if first_connect:
            Log.info("Broker consumer connection ready")
        if reconnected:
            Log.info("Broker reconnected, running reconnect callbacks")
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                Log.error(f"Reconnect callback failed: {exc}")


class ReadinessRetry(Retry):
    """Retry policy that reports connection loss and recovery.

    redis-py deep-copies the retry object into every pooled connection; all
    copies share this instance so readiness is tracked per client.
    """

    def __init__(
        self,
        readiness: ConnectionReadiness,
        backoff: AbstractBackoff,
        retries: int = -1,
    ) -> None:
        super().__init__(backoff, retries, supported_errors=TRANSIENT_ERRORS)  # type: ignore[arg-type]
        self._readiness = readiness
        self._depth = threading.local()

    def __deepcopy__(self, memo: dict[int, object]) -> "ReadinessRetry":
        return self

    def call_with_retry(  # type: ignore[override]
        self,
        do: Callable[[], T],
        fail: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        def _fail(error: Exception, *rest: object) -> None:
            if isinstance(error, TRANSIENT_ERRORS):
                self._readiness.mark_lost(error)
            fail(error, *rest)

        depth = getattr(self._depth, "value", 0)
        self._depth.value = depth + 1
        try:
            result = super().call_with_retry(do, _fail, *args, **kwargs)
        finally:
            self._depth.value = depth
        # connect() runs nested inside command retries; report once, outermost
        if depth == 0:
            self._readiness.mark_ready()
        return result


class RedisConnectionManager(BaseBrokerConnection):
    """Redis connections for one process, built by the composition root."""

    PRODUCER_SOCKET_TIMEOUT_SECONDS = 5

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._lock = threading.Lock()
        self._consumer: redis.Redis | None = None
        self._producers: list[redis.Redis] = []
        self._readiness = ConnectionReadiness()

    def consumer_connection(self) -> redis.Redis:
        with self._lock:
            if self._consumer is None:
                retry = ReadinessRetry(
                    self._readiness,
                    ExponentialBackoff(
                        cap=self._settings.redis_consumer_backoff_cap_seconds, base=0.5
                    ),
                    retries=-1,
                )
                self._consumer = redis.Redis(
                    host=self._settings.redis_host,
                    port=self._settings.redis_port,
                    db=self._settings.redis_db,
                    decode_responses=True,
                    retry=retry,
                    retry_on_error=list(TRANSIENT_ERRORS),
                    health_check_interval=30,
                )
                Log.info(
                    f"Created consumer connection to "
                    f"{self._settings.redis_host}:{self._settings.redis_port}"
                )
            return self._consumer

    def new_producer_connection(self) -> redis.Redis:
        client = redis.Redis(
            host=self._settings.redis_host,
            port=self._settings.redis_port,
            db=self._settings.redis_db,
            decode_responses=True,
            socket_connect_timeout=self.PRODUCER_SOCKET_TIMEOUT_SECONDS,
            socket_timeout=self.PRODUCER_SOCKET_TIMEOUT_SECONDS,
            retry=Retry(
                ExponentialBackoff(cap=1, base=0.1),
                self._settings.redis_producer_max_retries,
            ),
            retry_on_error=list(TRANSIENT_ERRORS),
        )
        with self._lock:
            self._producers.append(client)
        return client

    def on_reconnect(self, callback: ReconnectCallback) -> None:
        self._readiness.add_callback(callback)

    def close(self) -> None:
        """Close producers, then the consumer. Callers stop issuing commands first."""
        with self._lock:
            producers, self._producers = self._producers, []
            consumer, self._consumer = self._consumer, None
        for client in producers:
            client.close()
        if consumer is not None:
            consumer.close()
        Log.info("Broker connections closed")
