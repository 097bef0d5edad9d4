"""Shared fixtures: an in-memory broker transport that records every request."""

import threading
from typing import Any, Callable

import pytest

from brokerbridge.config import Settings
from brokerbridge.errors import HTTPStatusFailure
from brokerbridge.models import BrokerId, Credential
from brokerbridge.services.broker_registry import build_registry
from brokerbridge.services.order_router import OrderRouter


class RecordingTransport:
    """Stand-in for HttpTransport that answers from a canned handler."""

    def __init__(self, handler: Callable[..., Any], log: list, lock: threading.Lock) -> None:
        self.handler = handler
        self.log = log
        self.lock = lock
        self.closed = False

    def request(self, method, path, *, json=None, params=None, headers=None):
        call = {"method": method, "path": path, "json": json, "params": params, "headers": dict(headers or {})}
        with self.lock:
            self.log.append(call)
        return self.handler(call)

    def close(self):
        self.closed = True


class FakeBrokers:
    """Transport factory plus the requests every transport it built has seen."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.transports: list[RecordingTransport] = []
        self.handler: Callable[[dict], Any] = lambda call: {}
        self._lock = threading.Lock()

    def respond(self, body: Any = None, status: int | None = None, handler: Callable[[dict], Any] | None = None) -> None:
        if handler is not None:
            self.handler = handler
        elif status is not None:
            def fail(call):
                raise HTTPStatusFailure(status, body, body.get("message") if isinstance(body, dict) else None)
            self.handler = fail
        else:
            self.handler = lambda call: body

    def __call__(self, adapter_cls, credential: Credential) -> RecordingTransport:
        transport = RecordingTransport(lambda call: self.handler(call), self.calls, self._lock)
        with self._lock:
            self.transports.append(transport)
        return transport


@pytest.fixture
def settings():
    return Settings(
        LOG_LEVEL="DEBUG",
        RETRY_BASE_DELAY=0,
        FYERS_APP_ID="APP-100",
        ANGEL_API_KEY="angel-key",
    )


@pytest.fixture
def brokers():
    return FakeBrokers()


@pytest.fixture
def registry(settings, brokers):
    return build_registry(settings, transport_factory=brokers)


@pytest.fixture
def order_router(registry):
    return OrderRouter(registry)


@pytest.fixture
def credential():
    def make(broker_id: BrokerId, token: str = "tok-123") -> Credential:
        return Credential(broker_id=broker_id, token=token)
    return make


@pytest.fixture
def market_order():
    """A valid MARKET INTRADAY buy; override fields per test."""
    def make(broker_id: BrokerId = BrokerId.UPSTOX, **overrides) -> dict:
        order = {
            "broker_id": broker_id.value,
            "symbol": "NSE_EQ|INE002A01018",
            "exchange": "NSE",
            "side": "BUY",
            "order_type": "MARKET",
            "product_type": "INTRADAY",
            "quantity": 10,
            "validity": "DAY",
        }
        order.update(overrides)
        return order
    return make
