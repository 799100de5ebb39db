import os
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_QUOTE_API_ENDPOINT = "https://api.robinhood.com/quotes/"


def parse_watchlist(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [s.strip() for s in raw.split(",") if s.strip()]


class Settings(BaseModel):
    KAFKA_ENDPOINT: str = Field(min_length=1)
    EQUITY_WATCHLIST: tuple[str, ...]
    KAFKA_PRODUCER_TOPIC: str = Field(min_length=1)
    QUOTE_API_ENDPOINT: str = DEFAULT_QUOTE_API_ENDPOINT
    POLL_INTERVAL_SEC: float = Field(default=10.0, gt=0)
    QUOTE_API_TIMEOUT_SEC: float = Field(default=5.0, gt=0)
    KAFKA_LINGER_MS: int = Field(default=500, ge=0)
    RECONNECT_BACKOFF_BASE_SEC: float = Field(default=1.0, gt=0)
    RECONNECT_BACKOFF_CAP_SEC: float = Field(default=30.0, gt=0)
    LOG_LEVEL: str = "INFO"
    STATUS_HOST: str = "0.0.0.0"
    STATUS_PORT: int = Field(default=8080, gt=0, lt=65536)

    @field_validator("EQUITY_WATCHLIST")
    @classmethod
    def require_symbols(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("watchlist must contain at least one symbol")
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def check_backoff_bounds(self) -> "Settings":
        if self.RECONNECT_BACKOFF_CAP_SEC < self.RECONNECT_BACKOFF_BASE_SEC:
            raise ValueError("RECONNECT_BACKOFF_CAP_SEC must be >= RECONNECT_BACKOFF_BASE_SEC")
        return self

    @property
    def watchlist_query(self) -> str:
        return ",".join(self.EQUITY_WATCHLIST)

    @classmethod
    def from_env(cls) -> "Settings":
        raw = {
            "KAFKA_ENDPOINT": os.getenv("KAFKA_ENDPOINT"),
            "EQUITY_WATCHLIST": parse_watchlist(os.getenv("EQUITY_WATCHLIST")),
            "KAFKA_PRODUCER_TOPIC": os.getenv("KAFKA_PRODUCER_TOPIC"),
        }
        # optional knobs fall back to field defaults when unset
        for name in (
            "QUOTE_API_ENDPOINT",
            "POLL_INTERVAL_SEC",
            "QUOTE_API_TIMEOUT_SEC",
            "KAFKA_LINGER_MS",
            "RECONNECT_BACKOFF_BASE_SEC",
            "RECONNECT_BACKOFF_CAP_SEC",
            "LOG_LEVEL",
            "STATUS_HOST",
            "STATUS_PORT",
        ):
            value = os.getenv(name)
            if value:
                raw[name] = value
        return cls.model_validate(raw)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
