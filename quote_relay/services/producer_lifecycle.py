from __future__ import annotations

import logging
import queue
import random
import threading
from enum import Enum
from typing import Any, Callable, Optional

from quote_relay.errors import BrokerConnectionError
from quote_relay.services.polling_driver import PollingDriver

logger = logging.getLogger(__name__)


class ProducerState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    LOST = "LOST"
    STOPPED = "STOPPED"


def backoff_delay(
    attempt: int,
    *,
    base_sec: float,
    cap_sec: float,
    jitter: Callable[[], float] = random.random,
) -> float:
    """Capped exponential delay, jittered into [delay/2, delay]."""
    delay = min(base_sec * (2**attempt), cap_sec)
    return delay * (0.5 + 0.5 * jitter())


class ErrorDrain:
    """Background thread that logs asynchronous delivery failures of one connection."""

    def __init__(self, connection, *, on_error: Callable[[Any], None], poll_sec: float = 0.5) -> None:
        self.connection = connection
        self.on_error = on_error
        self.poll_sec = poll_sec
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True, name="producer-error-drain")
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                failure = self.connection.errors.get(timeout=self.poll_sec)
            except queue.Empty:
                continue
            self._report(failure)

    def _report(self, failure: Any) -> None:
        try:
            self.on_error(failure)
        except Exception as exc:
            logger.error("[PRODUCER][drain_callback_error] error=%s", exc)

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the thread, then report whatever the final flush left behind."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        while True:
            try:
                failure = self.connection.errors.get_nowait()
            except queue.Empty:
                return
            self._report(failure)


class ProducerLifecycleManager:
    """Owns the broker connection: connect with backoff, drain errors, poll, reconnect."""

    def __init__(
        self,
        *,
        connection_factory: Callable[[], Any],
        driver: PollingDriver,
        backoff_base_sec: float = 1.0,
        backoff_cap_sec: float = 30.0,
        sleep_fn: Optional[Callable[[float], Any]] = None,
        jitter: Callable[[], float] = random.random,
        drain_poll_sec: float = 0.5,
    ) -> None:
        self.connection_factory = connection_factory
        self.driver = driver
        self.backoff_base_sec = backoff_base_sec
        self.backoff_cap_sec = backoff_cap_sec
        self.jitter = jitter
        self.drain_poll_sec = drain_poll_sec
        self._stop_event = threading.Event()
        self._sleep_fn = sleep_fn or self._stop_event.wait

        self.state = ProducerState.DISCONNECTED
        self.running = False
        self.connect_attempts = 0
        self.reconnect_count = 0
        self.delivery_errors = 0
        self.last_error: str | None = None
        self.last_delivery_error: str | None = None
        self.connection = None

    def _set_state(self, state: ProducerState) -> None:
        if state != self.state:
            logger.info("[PRODUCER][state] %s -> %s", self.state.value, state.value)
        self.state = state

    def _on_delivery_error(self, failure: Any) -> None:
        self.delivery_errors += 1
        self.last_delivery_error = str(failure)
        logger.error("[PRODUCER][delivery_error] %s", failure)

    def connect(self):
        """Retry until a connection is up; returns None only when stopped."""
        self._set_state(ProducerState.CONNECTING)
        attempt = 0
        while not self._stop_event.is_set():
            self.connect_attempts += 1
            try:
                connection = self.connection_factory()
            except BrokerConnectionError as exc:
                self.last_error = str(exc)
                delay = backoff_delay(
                    attempt,
                    base_sec=self.backoff_base_sec,
                    cap_sec=self.backoff_cap_sec,
                    jitter=self.jitter,
                )
                logger.error(
                    "[PRODUCER][connect_error] attempt=%d retry_in=%.2fs error=%s",
                    attempt + 1,
                    delay,
                    exc,
                )
                attempt += 1
                self._sleep_fn(delay)
                continue
            self.last_error = None
            self._set_state(ProducerState.CONNECTED)
            return connection
        return None

    def run(self) -> None:
        self.running = True
        try:
            while not self._stop_event.is_set():
                connection = self.connect()
                if connection is None:
                    break
                self.connection = connection
                drain = ErrorDrain(connection, on_error=self._on_delivery_error, poll_sec=self.drain_poll_sec)
                drain.start()
                try:
                    self.driver.run(connection, self._stop_event)
                finally:
                    try:
                        connection.close()
                    finally:
                        drain.stop()
                        self.connection = None
                if not self._stop_event.is_set():
                    self.reconnect_count += 1
                    self._set_state(ProducerState.LOST)
        finally:
            self.running = False
            self._set_state(ProducerState.STOPPED)

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def metrics(self) -> dict[str, Any]:
        return {
            "producer_state": self.state.value,
            "connect_attempts": self.connect_attempts,
            "reconnect_count": self.reconnect_count,
            "delivery_errors": self.delivery_errors,
            "last_connect_error": self.last_error,
            "last_delivery_error": self.last_delivery_error,
            **self.driver.metrics(),
        }

