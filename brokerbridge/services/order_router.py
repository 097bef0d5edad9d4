"""Single entry point from the HTTP layer into the broker adapters.

Every call goes: resolve the adapter class -> validate -> capability check ->
build an adapter bound to the caller's credential -> one adapter call. The
first three steps never touch the network. Nothing here retries; a write is
dispatched at most once per call.
"""
from __future__ import annotations
from typing import Any, Callable, Mapping

from loguru import logger

from brokerbridge.errors import BrokerError, ErrorKind, TransportFailure
from brokerbridge.models import (
    BrokerId,
    Credential,
    HistoricalQuery,
    IntradayQuery,
    NormalizedError,
    NormalizedOrder,
    NormalizedResult,
    OrderReference,
    PositionConversion,
    Violation,
)
from brokerbridge.services.broker_registry import BrokerRegistry
from brokerbridge.services.brokers.base import WRITE_CAPABILITIES, BrokerAdapter, Capability
from brokerbridge.services.validator import validate

OrderInput = NormalizedOrder | Mapping[str, Any]
_TAKES_ARGUMENTS = WRITE_CAPABILITIES | {
    Capability.GET_HISTORICAL_DATA,
    Capability.GET_INTRADAY_DATA,
    Capability.GET_ORDER_DETAILS,
}


class OrderRouter:
    def __init__(self, registry: BrokerRegistry) -> None:
        self.registry = registry

    # -------------------- writes --------------------

    def route(self, broker_id: BrokerId | str, credential: Credential, order: OrderInput) -> NormalizedResult:
        """Validate ``order`` and place it with ``broker_id``."""
        return self._dispatch(broker_id, credential, Capability.PLACE_ORDER,
                              lambda adapter, o: adapter.place_order(o), order=order)

    place_order = route

    def modify_order(self, broker_id: BrokerId | str, credential: Credential, reference: OrderReference,
                     order: OrderInput) -> NormalizedResult:
        return self._dispatch(broker_id, credential, Capability.MODIFY_ORDER,
                              lambda adapter, o: adapter.modify_order(reference, o), order=order)

    def cancel_order(self, broker_id: BrokerId | str, credential: Credential, reference: OrderReference) -> NormalizedResult:
        return self._dispatch(broker_id, credential, Capability.CANCEL_ORDER,
                              lambda adapter, _: adapter.cancel_order(reference))

    def convert_position(self, broker_id: BrokerId | str, credential: Credential,
                         conversion: PositionConversion) -> NormalizedResult:
        return self._dispatch(broker_id, credential, Capability.CONVERT_POSITION,
                              lambda adapter, _: adapter.convert_position(conversion))

    # -------------------- reads --------------------

    def get_historical_data(self, broker_id: BrokerId | str, credential: Credential, query: HistoricalQuery) -> NormalizedResult:
        return self._dispatch(broker_id, credential, Capability.GET_HISTORICAL_DATA,
                              lambda adapter, _: adapter.get_historical_data(query))

    def get_intraday_data(self, broker_id: BrokerId | str, credential: Credential, query: IntradayQuery) -> NormalizedResult:
        return self._dispatch(broker_id, credential, Capability.GET_INTRADAY_DATA,
                              lambda adapter, _: adapter.get_intraday_data(query))

    def get_order_details(self, broker_id: BrokerId | str, credential: Credential, reference: OrderReference) -> NormalizedResult:
        return self._dispatch(broker_id, credential, Capability.GET_ORDER_DETAILS,
                              lambda adapter, _: adapter.get_order_details(reference))

    def fetch(self, broker_id: BrokerId | str, credential: Credential, capability: Capability) -> NormalizedResult:
        """Run one of the parameterless read capabilities (order book, positions, ...)."""
        if capability in _TAKES_ARGUMENTS:
            raise ValueError(f"{capability.value} takes arguments; use its own method")
        return self._dispatch(broker_id, credential, capability,
                              lambda adapter, _: getattr(adapter, capability.value)())

    def get_order_book(self, broker_id: BrokerId | str, credential: Credential) -> NormalizedResult:
        return self.fetch(broker_id, credential, Capability.GET_ORDER_BOOK)

    def get_trade_book(self, broker_id: BrokerId | str, credential: Credential) -> NormalizedResult:
        return self.fetch(broker_id, credential, Capability.GET_TRADE_BOOK)

    def get_positions(self, broker_id: BrokerId | str, credential: Credential) -> NormalizedResult:
        return self.fetch(broker_id, credential, Capability.GET_POSITIONS)

    def get_holdings(self, broker_id: BrokerId | str, credential: Credential) -> NormalizedResult:
        return self.fetch(broker_id, credential, Capability.GET_HOLDINGS)

    def get_funds(self, broker_id: BrokerId | str, credential: Credential) -> NormalizedResult:
        return self.fetch(broker_id, credential, Capability.GET_FUNDS)

    def get_profile(self, broker_id: BrokerId | str, credential: Credential) -> NormalizedResult:
        return self.fetch(broker_id, credential, Capability.GET_PROFILE)

    # -------------------- dispatch --------------------

    def _dispatch(self, broker_id: BrokerId | str, credential: Credential, capability: Capability,
                  invoke: Callable[[BrokerAdapter, NormalizedOrder | None], NormalizedResult],
                  order: OrderInput | None = None) -> NormalizedResult:
        try:
            adapter_cls = self.registry.adapter_class(broker_id)
        except BrokerError as e:
            logger.info("{} {} -> {}", broker_id, capability.value, e.kind.value)
            return NormalizedResult.fail(NormalizedError.of(e.kind, e.message))
        broker = adapter_cls.broker_id

        violations: list[Violation] = []
        if credential.broker_id is not broker:
            violations.append(Violation(field="broker_id", code="mismatch",
                                        message=f"credential is for {credential.broker_id.value}, not {broker.value}"))
        normalized = None
        if order is not None:
            checked = validate(order)
            violations.extend(checked.violations)
            normalized = checked.order
            if normalized is not None and normalized.broker_id is not broker:
                violations.append(Violation(field="broker_id", code="mismatch",
                                            message=f"order is for {normalized.broker_id.value}, not {broker.value}"))
        if violations:
            logger.info("{} {} -> {} ({} violations)", broker.value, capability.value,
                        ErrorKind.VALIDATION_FAILED.value, len(violations))
            return NormalizedResult.invalid(violations)

        if not adapter_cls.supports(capability):
            logger.info("{} {} -> {}", broker.value, capability.value, ErrorKind.UNSUPPORTED_OPERATION.value)
            return NormalizedResult.fail(NormalizedError.of(
                ErrorKind.UNSUPPORTED_OPERATION, f"{broker.value} does not support {capability.value}"))

        adapter = self.registry.resolve(broker, credential)
        try:
            result = invoke(adapter, normalized)
        except NotImplementedError:
            result = NormalizedResult.fail(NormalizedError.of(
                ErrorKind.UNSUPPORTED_OPERATION, f"{broker.value} does not support {capability.value}"))
        except BrokerError as e:
            result = NormalizedResult.fail(NormalizedError.of(e.kind, e.message))
        except TransportFailure as e:
            result = NormalizedResult.fail(NormalizedError.of(e.kind, str(e)))
        except Exception as e:
            logger.exception("{} {} raised", broker.value, capability.value)
            result = NormalizedResult.fail(NormalizedError.of(ErrorKind.UNKNOWN, str(e) or type(e).__name__))
        finally:
            adapter.transport.close()

        outcome = "ok" if result.success else result.error.kind.value
        logger.info("{} {} -> {}", broker.value, capability.value, outcome)
        return result
