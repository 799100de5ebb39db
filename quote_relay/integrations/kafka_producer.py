from __future__ import annotations

import logging
import queue
from typing import Any, Callable, Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError, KafkaTimeoutError, NoBrokersAvailable

from quote_relay.errors import BrokerConnectionError, PublishError

logger = logging.getLogger(__name__)

PRODUCER_ACKS = 1  # leader only
PRODUCER_COMPRESSION = "snappy"


class DeliveryFailure:
    """One asynchronous delivery failure reported by the producer."""

    __slots__ = ("topic", "key", "error")

    def __init__(self, topic: str, key: str, error: BaseException) -> None:
        self.topic = topic
        self.key = key
        self.error = error

    def __str__(self) -> str:
        return f"topic={self.topic} key={self.key} error={self.error}"


class KafkaBrokerConnection:
    """Async Kafka producer handle with an error channel for failed deliveries."""

    def __init__(
        self,
        bootstrap_servers: str,
        *,
        linger_ms: int = 500,
        producer_factory: Optional[Callable[..., Any]] = None,
        close_timeout_sec: float = 5.0,
    ) -> None:
        self.bootstrap_servers = bootstrap_servers
        self.close_timeout_sec = close_timeout_sec
        self.errors: "queue.Queue[DeliveryFailure]" = queue.Queue()
        self.lost = False
        self.closed = False
        factory = producer_factory or KafkaProducer
        try:
            self._producer = factory(
                bootstrap_servers=[bootstrap_servers],
                acks=PRODUCER_ACKS,
                compression_type=PRODUCER_COMPRESSION,
                linger_ms=linger_ms,
            )
        except (KafkaError, ValueError) as exc:
            raise BrokerConnectionError(f"can't connect to {bootstrap_servers}: {exc}") from exc
        logger.info("[PRODUCER][connected] bootstrap=%s", bootstrap_servers)

    def _on_delivery_error(self, topic: str, key: str) -> Callable[[BaseException], None]:
        def _errback(exc: BaseException) -> None:
            self.errors.put(DeliveryFailure(topic, key, exc))

        return _errback

    def send(self, topic: str, key: str, value: bytes) -> None:
        if self.closed:
            self.lost = True
            raise PublishError("producer already closed")
        try:
            future = self._producer.send(topic, key=key.encode("utf-8"), value=value)
        except (KafkaTimeoutError, NoBrokersAvailable) as exc:
            # metadata unavailable: the broker is gone, rebuild the producer
            self.lost = True
            raise PublishError(f"send to {topic} failed: {exc}") from exc
        except KafkaError as exc:
            raise PublishError(f"send to {topic} failed: {exc}") from exc
        future.add_errback(self._on_delivery_error(topic, key))

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._producer.close(timeout=self.close_timeout_sec)
        except KafkaError as exc:
            logger.warning("[PRODUCER][close_error] bootstrap=%s error=%s", self.bootstrap_servers, exc)
        logger.info("[PRODUCER][closed] bootstrap=%s", self.bootstrap_servers)

    def __enter__(self) -> "KafkaBrokerConnection":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
