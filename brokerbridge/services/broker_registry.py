from __future__ import annotations
from typing import Callable

from loguru import logger

from brokerbridge.config import Settings, settings as default_settings
from brokerbridge.errors import BrokerError, ErrorKind
from brokerbridge.models import BrokerId, Credential
from brokerbridge.services.brokers.aliceblue import AliceBlueBroker
from brokerbridge.services.brokers.angel import AngelBroker
from brokerbridge.services.brokers.base import BrokerAdapter
from brokerbridge.services.brokers.fyers import FyersBroker
from brokerbridge.services.brokers.upstox import UpstoxBroker
from brokerbridge.services.transport import BrokerTransport, HttpTransport

TransportFactory = Callable[[type[BrokerAdapter], Credential], BrokerTransport]

# URL path segment -> broker
_ALIASES = {
    "aliceblue": BrokerId.ALICEBLUE,
    "angel": BrokerId.ANGEL,
    "angel-broking": BrokerId.ANGEL,
    "angelone": BrokerId.ANGEL,
    "fyers": BrokerId.FYERS,
    "upstox": BrokerId.UPSTOX,
}


def parse_broker_id(name: str | BrokerId) -> BrokerId:
    if isinstance(name, BrokerId):
        return name
    b = (name or "").strip().lower()
    if b in _ALIASES:
        return _ALIASES[b]
    try:
        return BrokerId(b.upper())
    except ValueError:
        raise BrokerError(ErrorKind.UNKNOWN_BROKER, f"Unsupported broker: {name}") from None


def http_transport_factory(settings: Settings) -> TransportFactory:
    def factory(adapter_cls: type[BrokerAdapter], credential: Credential) -> BrokerTransport:
        return HttpTransport(adapter_cls.base_url(settings), timeout=settings.request_timeout)
    return factory


class BrokerRegistry:
    """Broker id -> adapter class, filled once at start-up and read-only afterwards.

    ``resolve`` hands out a new adapter per call, bound to the caller's
    credential and a transport of its own, so concurrent requests with
    different tokens never share a client.
    """

    def __init__(self, transport_factory: TransportFactory, settings: Settings | None = None) -> None:
        self._adapters: dict[BrokerId, type[BrokerAdapter]] = {}
        self._transport_factory = transport_factory
        self._settings = settings or default_settings
        self._frozen = False

    def register(self, broker_id: BrokerId, adapter_cls: type[BrokerAdapter]) -> None:
        if self._frozen:
            raise RuntimeError("Broker registry is frozen; register adapters at start-up")
        self._adapters[broker_id] = adapter_cls

    def freeze(self) -> "BrokerRegistry":
        self._frozen = True
        return self

    @property
    def brokers(self) -> list[BrokerId]:
        return list(self._adapters)

    def adapter_class(self, broker_id: BrokerId | str) -> type[BrokerAdapter]:
        b = parse_broker_id(broker_id)
        adapter_cls = self._adapters.get(b)
        if adapter_cls is None:
            raise BrokerError(ErrorKind.UNKNOWN_BROKER, f"Broker not registered: {b.value}")
        return adapter_cls

    def resolve(self, broker_id: BrokerId | str, credential: Credential) -> BrokerAdapter:
        adapter_cls = self.adapter_class(broker_id)
        transport = self._transport_factory(adapter_cls, credential)
        return adapter_cls(credential, transport, self._settings)


def build_registry(settings: Settings | None = None, transport_factory: TransportFactory | None = None) -> BrokerRegistry:
    settings = settings or default_settings
    registry = BrokerRegistry(transport_factory or http_transport_factory(settings), settings)
    for adapter_cls in (AliceBlueBroker, AngelBroker, FyersBroker, UpstoxBroker):
        registry.register(adapter_cls.broker_id, adapter_cls)
    logger.info("Registered brokers: {}", ", ".join(b.value for b in registry.brokers))
    return registry.freeze()
