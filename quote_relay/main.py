from __future__ import annotations

import logging
import sys
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI

from quote_relay.api.routes import router
from quote_relay.config.settings import Settings, get_settings
from quote_relay.integrations.kafka_producer import KafkaBrokerConnection
from quote_relay.integrations.quote_rest import QuoteRestClient
from quote_relay.services.polling_driver import PollingDriver
from quote_relay.services.producer_lifecycle import ProducerLifecycleManager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


def build_lifecycle_manager(settings: Settings) -> ProducerLifecycleManager:
    driver = PollingDriver(
        fetcher=QuoteRestClient(
            endpoint=settings.QUOTE_API_ENDPOINT,
            timeout=settings.QUOTE_API_TIMEOUT_SEC,
        ),
        symbols=settings.EQUITY_WATCHLIST,
        topic=settings.KAFKA_PRODUCER_TOPIC,
        interval_sec=settings.POLL_INTERVAL_SEC,
    )
    return ProducerLifecycleManager(
        connection_factory=lambda: KafkaBrokerConnection(
            settings.KAFKA_ENDPOINT,
            linger_ms=settings.KAFKA_LINGER_MS,
        ),
        driver=driver,
        backoff_base_sec=settings.RECONNECT_BACKOFF_BASE_SEC,
        backoff_cap_sec=settings.RECONNECT_BACKOFF_CAP_SEC,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # invalid configuration fails startup before any polling begins
    settings = app.state.get_settings()
    manager = app.state.build_lifecycle_manager(settings)
    app.state.lifecycle_manager = manager

    relay_worker = threading.Thread(target=manager.run, daemon=True, name='quote-relay-worker')
    app.state.relay_worker_thread = relay_worker
    logger.info(
        "[RELAY][worker_start] symbols=%s topic=%s interval=%ss",
        settings.watchlist_query,
        settings.KAFKA_PRODUCER_TOPIC,
        settings.POLL_INTERVAL_SEC,
    )
    relay_worker.start()

    try:
        yield
    finally:
        manager.stop()
        relay_worker.join(timeout=10.0)
        logger.info("[RELAY][worker_stop] alive=%s", relay_worker.is_alive())


app = FastAPI(title="Equity Quote Relay", version="0.1.0", lifespan=lifespan)
app.include_router(router, prefix="/v1")

# NOTE: lazy-loaded so app import does not require env during tests.
app.state.get_settings = get_settings
app.state.build_lifecycle_manager = build_lifecycle_manager


def main() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(app, host=settings.STATUS_HOST, port=settings.STATUS_PORT, log_config=None)


if __name__ == "__main__":
    main()
