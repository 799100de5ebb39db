import os
import queue
import threading
import unittest
from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from quote_relay.api.routes import router
from quote_relay.config.settings import Settings
from quote_relay.main import app, build_lifecycle_manager
from quote_relay.services.producer_lifecycle import ProducerLifecycleManager, ProducerState

SETTINGS = Settings(
    KAFKA_ENDPOINT="broker:9092",
    EQUITY_WATCHLIST=("AAPL", "MSFT"),
    KAFKA_PRODUCER_TOPIC="quotes",
    POLL_INTERVAL_SEC=0.01,
)


class IdleConnection:
    def __init__(self) -> None:
        self.errors: "queue.Queue" = queue.Queue()
        self.lost = False
        self.closed = False

    def send(self, topic, key, value) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class BlockingDriver:
    def __init__(self) -> None:
        self.started = threading.Event()
        self.stopped = threading.Event()

    def run(self, connection, stop_event) -> None:
        self.started.set()
        stop_event.wait()
        self.stopped.set()

    def metrics(self) -> dict:
        return {"cycles": 0, "failed_cycles": 0, "published": 0}


class AppLifecycleTest(unittest.TestCase):
    def setUp(self):
        self.original_get_settings = app.state.get_settings
        self.original_build = app.state.build_lifecycle_manager
        self.connection = IdleConnection()
        self.driver = BlockingDriver()
        app.state.get_settings = lambda: SETTINGS
        app.state.build_lifecycle_manager = lambda settings: ProducerLifecycleManager(
            connection_factory=lambda: self.connection,
            driver=self.driver,
            drain_poll_sec=0.01,
        )

    def tearDown(self):
        app.state.get_settings = self.original_get_settings
        app.state.build_lifecycle_manager = self.original_build

    def test_relay_worker_starts_on_startup_and_stops_gracefully_on_shutdown(self):
        with TestClient(app) as client:
            self.assertTrue(self.driver.started.wait(1.0), "relay worker did not start on startup")
            health = client.get("/v1/health").json()
            self.assertEqual(health, {"status": "ok", "producer_state": "CONNECTED"})

        self.assertTrue(self.driver.stopped.wait(1.0), "relay worker did not stop after shutdown")
        self.assertTrue(self.connection.closed)
        self.assertFalse(app.state.relay_worker_thread.is_alive())
        self.assertEqual(app.state.lifecycle_manager.state, ProducerState.STOPPED)

    def test_metrics_endpoint_reports_producer_and_polling_counters(self):
        with TestClient(app) as client:
            self.assertTrue(self.driver.started.wait(1.0))
            metrics = client.get("/v1/metrics/relay").json()

        self.assertEqual(metrics["producer_state"], "CONNECTED")
        self.assertEqual(metrics["connect_attempts"], 1)
        self.assertEqual(metrics["delivery_errors"], 0)
        self.assertEqual(metrics["cycles"], 0)

    def test_missing_configuration_fails_startup(self):
        app.state.get_settings = Settings.from_env
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(Exception):
                with TestClient(app):
                    pass
        self.assertFalse(self.driver.started.is_set())


class StatusRoutesWithoutRelayTest(unittest.TestCase):
    def test_status_routes_return_503_before_relay_starts(self):
        bare_app = FastAPI()
        bare_app.include_router(router, prefix="/v1")
        client = TestClient(bare_app)

        for path in ("/v1/health", "/v1/metrics/relay"):
            with self.subTest(path=path):
                response = client.get(path)
                self.assertEqual(response.status_code, 503)
                self.assertEqual(response.json()["detail"], "RELAY_NOT_STARTED")


class BuildLifecycleManagerTest(unittest.TestCase):
    def test_manager_is_wired_from_settings(self):
        manager = build_lifecycle_manager(SETTINGS)

        self.assertEqual(manager.driver.symbols, ("AAPL", "MSFT"))
        self.assertEqual(manager.driver.topic, "quotes")
        self.assertEqual(manager.driver.interval_sec, 0.01)
        self.assertEqual(manager.driver.fetcher.endpoint, SETTINGS.QUOTE_API_ENDPOINT)
        self.assertEqual(manager.backoff_cap_sec, 30.0)
        self.assertEqual(manager.state, ProducerState.DISCONNECTED)


if __name__ == "__main__":
    unittest.main()
