from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping

from loguru import logger

from brokerbridge.config import Settings, settings as default_settings
from brokerbridge.errors import ErrorTable, HTTPStatusFailure, TransportFailure
from brokerbridge.models import (
    BrokerId,
    Credential,
    Exchange,
    HistoricalQuery,
    IntradayQuery,
    NormalizedError,
    NormalizedOrder,
    NormalizedResult,
    OrderReference,
    PositionConversion,
    Violation,
)
from brokerbridge.services.transport import BrokerTransport


class Capability(str, Enum):
    PLACE_ORDER = "place_order"
    MODIFY_ORDER = "modify_order"
    CANCEL_ORDER = "cancel_order"
    GET_ORDER_BOOK = "get_order_book"
    GET_POSITIONS = "get_positions"
    GET_HOLDINGS = "get_holdings"
    GET_HISTORICAL_DATA = "get_historical_data"
    GET_TRADE_BOOK = "get_trade_book"
    GET_FUNDS = "get_funds"
    GET_PROFILE = "get_profile"
    GET_ORDER_DETAILS = "get_order_details"
    CONVERT_POSITION = "convert_position"
    GET_INTRADAY_DATA = "get_intraday_data"


WRITE_CAPABILITIES = frozenset({
    Capability.PLACE_ORDER,
    Capability.MODIFY_ORDER,
    Capability.CANCEL_ORDER,
    Capability.CONVERT_POSITION,
})
# What every supported broker offers; the rest is declared per adapter
CORE_CAPABILITIES = frozenset({
    Capability.PLACE_ORDER,
    Capability.MODIFY_ORDER,
    Capability.CANCEL_ORDER,
    Capability.GET_ORDER_BOOK,
    Capability.GET_TRADE_BOOK,
    Capability.GET_POSITIONS,
    Capability.GET_HOLDINGS,
    Capability.GET_FUNDS,
    Capability.GET_PROFILE,
    Capability.GET_HISTORICAL_DATA,
})
ALL_CAPABILITIES = frozenset(Capability)


@dataclass(frozen=True)
class TranslationTable:
    """Canonical field -> broker key, and canonical enum -> broker value.

    An enum field listed in ``values`` supports exactly the canonical members
    present in its mapping; anything else is unsupported by that broker.
    """

    fields: Mapping[str, str]
    values: Mapping[str, Mapping[Enum, Any]] = field(default_factory=dict)

    def key(self, name: str) -> str:
        return self.fields[name]

    def value(self, name: str, canonical: Enum) -> Any:
        return self.values[name][canonical]

    def unsupported(self, order: NormalizedOrder) -> list[Violation]:
        out = []
        for name, mapping in self.values.items():
            canonical = getattr(order, name, None)
            if canonical is not None and canonical not in mapping:
                allowed = ", ".join(m.value for m in mapping)
                out.append(Violation(field=name, code="unsupported",
                                     message=f"{name} {canonical.value} is not supported by this broker (supported: {allowed})"))
        return out

    def translate(self, order: NormalizedOrder) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name, key in self.fields.items():
            v = getattr(order, name)
            if v is None:
                continue
            if name in self.values:
                v = self.values[name][v]
            elif isinstance(v, Decimal):
                v = float(v)
            payload[key] = v
        return payload

    # Reverse direction, used by the HTTP layer for broker-flavoured bodies
    def canonical_field(self, key: str) -> str | None:
        for name, k in self.fields.items():
            if k == key:
                return name
        return None

    def canonical_value(self, name: str, value: Any) -> Any:
        if isinstance(value, Enum):
            return value
        for canonical, broker_value in self.values.get(name, {}).items():
            if broker_value == value or str(broker_value) == str(value):
                return canonical
        return value


def identity(enum_cls: type[Enum], *members: Enum) -> dict[Enum, str]:
    return {m: m.value for m in (members or enum_cls)}


def candles_to_dicts(rows: Any) -> list[dict]:
    out = []
    for row in rows or []:
        if isinstance(row, (list, tuple)) and len(row) >= 5:
            out.append({
                "timestamp": row[0], "open": row[1], "high": row[2], "low": row[3], "close": row[4],
                "volume": row[5] if len(row) > 5 else None,
            })
        else:
            out.append(row)
    return out


@dataclass
class Envelope:
    ok: bool
    data: Any = None
    code: Any = None
    message: str | None = None


class BrokerAdapter:
    """Translate normalized requests for one broker and normalize its answers.

    Instances are short-lived: one per routed call, bound to that call's
    credential and transport. Class attributes carry everything the router
    and HTTP layer need without constructing one.
    """

    broker_id: BrokerId
    name = "base"
    capabilities: frozenset[Capability] = frozenset()
    translation: TranslationTable = TranslationTable(fields={})
    errors: ErrorTable = ErrorTable()
    tag_max_length: int | None = None
    order_id_pattern: re.Pattern | None = None
    requires_symbol_token = False
    # resolution -> max days per request; None means no declared limit
    historical_limits: Mapping[str, int | None] = {}
    historical_exchanges: frozenset[Exchange] = frozenset(Exchange)
    intraday_resolutions: frozenset[str] = frozenset()
    instrument_key_pattern: re.Pattern | None = None

    def __init__(self, credential: Credential, transport: BrokerTransport, settings: Settings | None = None) -> None:
        self.credential = credential
        self.transport = transport
        self.settings = settings or default_settings

    @classmethod
    def base_url(cls, settings: Settings) -> str:
        raise NotImplementedError

    @classmethod
    def supports(cls, capability: Capability) -> bool:
        return capability in cls.capabilities

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.credential.token}"}

    def unwrap(self, body: Any) -> Envelope:
        """Split a broker body into success flag, payload, error code and message."""
        raise NotImplementedError

    # -------------------- capabilities --------------------

    def place_order(self, order: NormalizedOrder) -> NormalizedResult:
        raise NotImplementedError

    def modify_order(self, reference: OrderReference, order: NormalizedOrder) -> NormalizedResult:
        raise NotImplementedError

    def cancel_order(self, reference: OrderReference) -> NormalizedResult:
        raise NotImplementedError

    def get_order_book(self) -> NormalizedResult:
        raise NotImplementedError

    def get_trade_book(self) -> NormalizedResult:
        raise NotImplementedError

    def get_positions(self) -> NormalizedResult:
        raise NotImplementedError

    def get_holdings(self) -> NormalizedResult:
        raise NotImplementedError

    def get_funds(self) -> NormalizedResult:
        raise NotImplementedError

    def get_profile(self) -> NormalizedResult:
        raise NotImplementedError

    def get_historical_data(self, query: HistoricalQuery) -> NormalizedResult:
        raise NotImplementedError

    def get_order_details(self, reference: OrderReference) -> NormalizedResult:
        raise NotImplementedError

    def convert_position(self, conversion: PositionConversion) -> NormalizedResult:
        raise NotImplementedError

    def get_intraday_data(self, query: IntradayQuery) -> NormalizedResult:
        raise NotImplementedError

    # -------------------- broker-specific checks --------------------

    def check_order(self, order: NormalizedOrder) -> list[Violation]:
        violations = self.translation.unsupported(order)
        if self.requires_symbol_token and not order.symbol_token:
            violations.append(Violation(field="symbol_token", code="missing",
                                        message=f"symbol_token is required by {self.name}"))
        if order.tag and self.tag_max_length is not None and len(order.tag) > self.tag_max_length:
            violations.append(Violation(field="tag", code="too_long",
                                        message=f"tag must be at most {self.tag_max_length} characters for {self.name}"))
        return violations

    def check_order_id(self, order_id: str) -> list[Violation]:
        if not order_id or not order_id.strip():
            return [Violation(field="order_id", code="missing", message="order_id is required")]
        if self.order_id_pattern is not None and not self.order_id_pattern.fullmatch(order_id):
            return [Violation(field="order_id", code="invalid", message=f"order_id {order_id!r} is not a valid {self.name} order id")]
        return []

    def check_history(self, query: HistoricalQuery) -> list[Violation]:
        violations = []
        if query.resolution not in self.historical_limits:
            allowed = ", ".join(self.historical_limits)
            violations.append(Violation(field="resolution", code="unsupported",
                                        message=f"resolution must be one of: {allowed}"))
        if query.exchange not in self.historical_exchanges:
            allowed = ", ".join(sorted(e.value for e in self.historical_exchanges))
            violations.append(Violation(field="exchange", code="unsupported",
                                        message=f"exchange must be one of: {allowed}"))
        if query.end < query.start:
            violations.append(Violation(field="to", code="range", message="to must not be earlier than from"))
            return violations
        max_days = self.historical_limits.get(query.resolution)
        if max_days is not None:
            days = math.ceil((query.end - query.start).total_seconds() / 86400)
            if days > max_days:
                violations.append(Violation(field="to", code="range",
                                            message=f"Date range of {days} days exceeds {max_days} days allowed for {query.resolution}"))
        return violations

    def check_intraday(self, query: IntradayQuery) -> list[Violation]:
        violations = []
        if query.resolution not in self.intraday_resolutions:
            allowed = ", ".join(sorted(self.intraday_resolutions))
            violations.append(Violation(field="resolution", code="unsupported",
                                        message=f"resolution must be one of: {allowed}"))
        if self.instrument_key_pattern is not None and not self.instrument_key_pattern.fullmatch(query.instrument_key):
            violations.append(Violation(field="instrument_key", code="invalid",
                                        message=f"instrument_key {query.instrument_key!r} is not a valid {self.name} instrument key"))
        return violations

    def check_conversion(self, conversion: PositionConversion) -> list[Violation]:
        violations = []
        checks = (
            ("exchange", "exchange", conversion.exchange),
            ("from_product", "product_type", conversion.from_product),
            ("to_product", "product_type", conversion.to_product),
        )
        for name, table_key, canonical in checks:
            mapping = self.translation.values.get(table_key)
            if mapping is not None and canonical not in mapping:
                violations.append(Violation(field=name, code="unsupported",
                                            message=f"{name} {canonical.value} is not supported by {self.name}"))
        return violations

    # -------------------- transport boundary --------------------

    def call(self, method: str, path: str, *, json: Any = None, params: Mapping[str, Any] | None = None,
             extract: Callable[[Any], Any] | None = None,
             order_id: Callable[[Any], Any] | None = None) -> NormalizedResult:
        """Issue exactly one transport call and normalize whatever comes back."""
        try:
            body = self.transport.request(method, path, json=json, params=params, headers=self.auth_headers())
        except HTTPStatusFailure as e:
            env = self.unwrap(e.body)
            kind = self.errors.classify(status=e.status, code=env.code, message=env.message)
            logger.warning("{} {} {} -> HTTP {} ({})", self.name, method, path, e.status, kind.value)
            return NormalizedResult.fail(
                NormalizedError.of(kind, env.message or str(e), broker_code=_code(env.code), http_status=e.status),
                raw=e.body,
            )
        except TransportFailure as e:
            logger.warning("{} {} {} -> {}", self.name, method, path, e)
            return NormalizedResult.fail(NormalizedError.of(e.kind, str(e)))

        env = self.unwrap(body)
        if not env.ok:
            kind = self.errors.classify(code=env.code, message=env.message, envelope=True)
            return NormalizedResult.fail(
                NormalizedError.of(kind, env.message or f"{self.name} rejected the request", broker_code=_code(env.code)),
                raw=body,
            )
        data = extract(env.data) if extract else env.data
        broker_order_id = order_id(env.data) if order_id else None
        return NormalizedResult.ok(raw=body, data=data,
                                   broker_order_id=str(broker_order_id) if broker_order_id is not None else None)


def _code(code: Any) -> str | None:
    return None if code is None or code == "" else str(code)
