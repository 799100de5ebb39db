from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Sequence

from quote_relay.integrations.quote_rest import QuoteRestClient
from quote_relay.services.price_normalizer import normalize
from quote_relay.services.quote_publisher import QuotePublisher

logger = logging.getLogger(__name__)


class PollingDriver:
    """Sleep, fetch, normalize, publish; a failed cycle never stops the loop."""

    def __init__(
        self,
        *,
        fetcher: QuoteRestClient,
        symbols: Sequence[str],
        topic: str,
        interval_sec: float = 10.0,
        publisher: QuotePublisher | None = None,
        normalizer: Callable = normalize,
    ) -> None:
        self.fetcher = fetcher
        self.symbols = tuple(symbols)
        self.topic = topic
        self.interval_sec = interval_sec
        self.publisher = publisher or QuotePublisher()
        self.normalizer = normalizer

        self.cycles = 0
        self.failed_cycles = 0
        self.last_error: str | None = None
        self.last_cycle_ts: int | None = None

    def run_cycle(self, connection) -> int:
        response = self.fetcher.fetch(self.symbols)
        sent = 0
        for result in response.results:
            # first bad result aborts the rest of the cycle
            quote = self.normalizer(result)
            self.publisher.publish(connection, self.topic, result.symbol, quote)
            sent += 1
        return sent

    def run(
        self,
        connection,
        stop_event: threading.Event,
        *,
        max_cycles: int | None = None,
    ) -> None:
        """Poll until stopped or the connection is lost."""
        ran = 0
        while not stop_event.is_set():
            if stop_event.wait(self.interval_sec):
                return

            self.cycles += 1
            ran += 1
            try:
                sent = self.run_cycle(connection)
                self.last_error = None
                logger.info("[POLL][cycle_ok] cycle=%d published=%d", self.cycles, sent)
            except Exception as exc:
                self.failed_cycles += 1
                self.last_error = str(exc)
                logger.error(
                    "[POLL][cycle_error] cycle=%d error_type=%s error=%s",
                    self.cycles,
                    type(exc).__name__,
                    exc,
                )
            finally:
                self.last_cycle_ts = int(time.time())

            if getattr(connection, "lost", False):
                logger.warning("[POLL][connection_lost] cycle=%d", self.cycles)
                return
            if max_cycles is not None and ran >= max_cycles:
                return

    def metrics(self) -> dict[str, int | str | None]:
        return {
            "cycles": self.cycles,
            "failed_cycles": self.failed_cycles,
            "published": self.publisher.published,
            "last_cycle_error": self.last_error,
            "last_cycle_ts": self.last_cycle_ts,
        }
