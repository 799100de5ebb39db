from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import requests
from pydantic import ValidationError

from quote_relay.config.settings import DEFAULT_QUOTE_API_ENDPOINT
from quote_relay.errors import DecodeError, TransportError, UpstreamStatusError
from quote_relay.schemas.quote import QuoteQueryResponse

logger = logging.getLogger(__name__)


class QuoteRestClient:
    """Batch quote client: one GET per cycle for the whole watchlist."""

    def __init__(
        self,
        endpoint: str = DEFAULT_QUOTE_API_ENDPOINT,
        session: Optional[Any] = None,
        timeout: float = 5.0,
    ) -> None:
        self.endpoint = endpoint
        self.session = session or requests
        self.timeout = timeout

    def fetch(self, symbols: Iterable[str]) -> QuoteQueryResponse:
        query = ",".join(symbols)
        try:
            response = self.session.get(
                self.endpoint,
                params={"symbols": query},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"quote request failed: {exc}") from exc

        if response.status_code != 200:
            raise UpstreamStatusError(response.status_code, response.text)

        try:
            parsed = QuoteQueryResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise DecodeError(f"malformed quote envelope: {exc.error_count()} error(s)") from exc

        logger.debug("[QUOTE][fetch] symbols=%s results=%d", query, len(parsed.results))
        return parsed
