from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Context, Decimal, DecimalException, InvalidOperation

from quote_relay.errors import PriceParseError
from quote_relay.schemas.quote import PublishedQuote, RawQuoteResult

AT_FORMAT = "%Y-%m-%d %H:%M:%S %z"

_TWO_PLACES = Decimal("0.01")
# ASCII plain or exponent notation only; NaN/Infinity/whitespace are rejected
_DECIMAL_LITERAL = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


def select_price(result: RawQuoteResult) -> str:
    """Extended-hours price wins whenever the API reports one."""
    if result.last_extended_hours_trade_price:
        return result.last_extended_hours_trade_price
    return result.last_trade_price


def parse_decimal(raw_value: str) -> Decimal:
    if not _DECIMAL_LITERAL.fullmatch(raw_value or ""):
        raise PriceParseError(raw_value)
    try:
        return Decimal(raw_value)
    except InvalidOperation as exc:
        raise PriceParseError(raw_value) from exc


def round_price(value: Decimal) -> str:
    """Round half away from zero to exactly two fractional digits."""
    # exponents beyond the context range raise InvalidOperation
    digits = max(value.adjusted(), 0) + 4
    context = Context(prec=max(28, digits), rounding=ROUND_HALF_UP)
    rounded = value.quantize(_TWO_PLACES, context=context)
    if rounded.is_zero():
        rounded = rounded.copy_abs()
    return f"{rounded:f}"


def format_at(now: datetime | None = None) -> str:
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(timezone.utc).strftime(AT_FORMAT)


def normalize(result: RawQuoteResult, now: datetime | None = None) -> PublishedQuote:
    raw_value = select_price(result)
    price = parse_decimal(raw_value)
    try:
        quote = round_price(price)
    except DecimalException as exc:
        raise PriceParseError(raw_value) from exc
    return PublishedQuote(quote=quote, at=format_at(now))
