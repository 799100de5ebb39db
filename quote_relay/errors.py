from __future__ import annotations


class QuoteRelayError(Exception):
    """Base class for failures that abort a single ingestion cycle."""


class TransportError(QuoteRelayError):
    pass


class UpstreamStatusError(QuoteRelayError):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"unexpected status code: {status}, {body}")
        self.status = status
        self.body = body


class DecodeError(QuoteRelayError):
    pass


class PriceParseError(QuoteRelayError):
    def __init__(self, raw_value: str | None) -> None:
        super().__init__(f"can't convert {raw_value!r} to decimal")
        self.raw_value = raw_value


class PublishError(QuoteRelayError):
    pass


class BrokerConnectionError(QuoteRelayError):
    pass
