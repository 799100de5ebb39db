from __future__ import annotations

from quote_relay.schemas.quote import PublishedQuote


class QuotePublisher:
    def __init__(self) -> None:
        self.published = 0

    @staticmethod
    def serialize(quote: PublishedQuote) -> bytes:
        return quote.model_dump_json().encode("utf-8")

    def publish(self, connection, topic: str, symbol: str, quote: PublishedQuote) -> None:
        """Hand one quote to the connection, keyed by symbol for per-symbol ordering."""
        connection.send(topic, symbol, self.serialize(quote))
        self.published += 1
