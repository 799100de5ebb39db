from pydantic import BaseModel, ConfigDict, field_validator


class RawQuoteResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    symbol: str = ""
    last_trade_price: str = ""
    last_extended_hours_trade_price: str = ""

    @field_validator("symbol", "last_trade_price", "last_extended_hours_trade_price", mode="before")
    @classmethod
    def null_as_empty(cls, value):
        return "" if value is None else value


class QuoteQueryResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: list[RawQuoteResult] = []

    @field_validator("results", mode="before")
    @classmethod
    def null_as_no_results(cls, value):
        return [] if value is None else value


class PublishedQuote(BaseModel):
    quote: str
    at: str
