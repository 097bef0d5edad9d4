from __future__ import annotations
import re
from typing import Any
from urllib.parse import quote

from brokerbridge.config import Settings
from brokerbridge.errors import ErrorKind, ErrorTable
from brokerbridge.models import (
    BrokerId,
    Exchange,
    HistoricalQuery,
    IntradayQuery,
    NormalizedOrder,
    NormalizedResult,
    OrderReference,
    OrderType,
    PositionConversion,
    ProductType,
    Side,
    Validity,
)
from brokerbridge.services.brokers.base import (
    ALL_CAPABILITIES,
    BrokerAdapter,
    Envelope,
    TranslationTable,
    candles_to_dicts,
    identity,
)

TRANSLATION = TranslationTable(
    fields={
        "symbol": "instrument_token",
        "quantity": "quantity",
        "product_type": "product",
        "validity": "validity",
        "price": "price",
        "order_type": "order_type",
        "side": "transaction_type",
        "disclosed_quantity": "disclosed_quantity",
        "trigger_price": "trigger_price",
        "tag": "tag",
    },
    values={
        # Segment travels inside the instrument key (NSE_EQ|INE...), so every exchange is fine
        "exchange": identity(Exchange),
        "side": identity(Side),
        "order_type": {
            OrderType.MARKET: "MARKET",
            OrderType.LIMIT: "LIMIT",
            OrderType.STOP: "SL-M",
            OrderType.STOP_LIMIT: "SL",
        },
        # No bracket or margin products on v2; carry-forward F&O is D
        "product_type": {
            ProductType.INTRADAY: "I",
            ProductType.DELIVERY: "D",
            ProductType.NORMAL: "D",
            ProductType.COVER: "CO",
        },
        "validity": identity(Validity),
    },
)

ERRORS = ErrorTable(
    codes={
        "UDAPI100050": ErrorKind.AUTHENTICATION_FAILED,  # invalid token
        "UDAPI100016": ErrorKind.AUTHENTICATION_FAILED,  # invalid credentials
        "UDAPI100069": ErrorKind.AUTHENTICATION_FAILED,  # token expired
        "UDAPI10005": ErrorKind.RATE_LIMITED,
    },
)


def _order_id(data: Any) -> Any:
    return data.get("order_id") if isinstance(data, dict) else None


def _candles(data: Any) -> list[dict]:
    return candles_to_dicts(data.get("candles") if isinstance(data, dict) else data)


class UpstoxBroker(BrokerAdapter):
    broker_id = BrokerId.UPSTOX
    name = "upstox"
    capabilities = ALL_CAPABILITIES
    translation = TRANSLATION
    errors = ERRORS
    tag_max_length = 20
    historical_limits = {
        "1minute": 30,
        "30minute": 365,
        "day": 3650,
        "week": None,
        "month": None,
    }
    intraday_resolutions = frozenset({"1minute", "30minute"})
    instrument_key_pattern = re.compile(r"[A-Z]+_[A-Z]+\|[A-Z0-9]+")

    @classmethod
    def base_url(cls, settings: Settings) -> str:
        return settings.upstox_sandbox_url if settings.upstox_sandbox else settings.upstox_base_url

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.credential.token}", "Api-Version": "2.0"}

    def unwrap(self, body: Any) -> Envelope:
        if not isinstance(body, dict):
            return Envelope(ok=False, message=str(body) if body else None)
        if body.get("status") == "success":
            return Envelope(ok=True, data=body.get("data"))
        errors = body.get("errors") or [{}]
        first = errors[0] if isinstance(errors[0], dict) else {}
        return Envelope(ok=False, code=first.get("errorCode") or first.get("error_code"),
                        message=first.get("message") or body.get("message"))

    def build_order(self, order: NormalizedOrder) -> dict[str, Any]:
        payload = self.translation.translate(order)
        payload.setdefault("price", 0)
        payload.setdefault("trigger_price", 0)
        payload["is_amo"] = False
        return payload

    def place_order(self, order: NormalizedOrder) -> NormalizedResult:
        violations = self.check_order(order)
        if violations:
            return NormalizedResult.invalid(violations)
        return self.call("POST", "/order/place", json=self.build_order(order), order_id=_order_id)

    def modify_order(self, reference: OrderReference, order: NormalizedOrder) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id) + self.check_order(order)
        if violations:
            return NormalizedResult.invalid(violations)
        full = self.build_order(order)
        payload = {k: full[k] for k in ("quantity", "validity", "price", "order_type", "disclosed_quantity", "trigger_price")}
        payload["order_id"] = reference.order_id
        return self.call("PUT", "/order/modify", json=payload, order_id=_order_id)

    def cancel_order(self, reference: OrderReference) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id)
        if violations:
            return NormalizedResult.invalid(violations)
        return self.call("DELETE", "/order/cancel", params={"order_id": reference.order_id}, order_id=_order_id)

    def get_order_book(self) -> NormalizedResult:
        return self.call("GET", "/order/retrieve-all")

    def get_trade_book(self) -> NormalizedResult:
        return self.call("GET", "/order/trades/get-trades-for-day")

    def get_positions(self) -> NormalizedResult:
        return self.call("GET", "/portfolio/short-term-positions")

    def get_holdings(self) -> NormalizedResult:
        return self.call("GET", "/portfolio/long-term-holdings")

    def get_funds(self) -> NormalizedResult:
        return self.call("GET", "/user/get-funds-and-margin")

    def get_profile(self) -> NormalizedResult:
        return self.call("GET", "/user/profile")

    def get_historical_data(self, query: HistoricalQuery) -> NormalizedResult:
        violations = self.check_history(query)
        if violations:
            return NormalizedResult.invalid(violations)
        path = "/historical-candle/{}/{}/{}/{}".format(
            quote(query.instrument_key, safe=""),
            query.resolution,
            query.end.strftime("%Y-%m-%d"),
            query.start.strftime("%Y-%m-%d"),
        )
        return self.call("GET", path, extract=_candles)

    def get_intraday_data(self, query: IntradayQuery) -> NormalizedResult:
        violations = self.check_intraday(query)
        if violations:
            return NormalizedResult.invalid(violations)
        path = "/historical-candle/intraday/{}/{}".format(quote(query.instrument_key, safe=""), query.resolution)
        return self.call("GET", path, extract=_candles)

    def get_order_details(self, reference: OrderReference) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id)
        if violations:
            return NormalizedResult.invalid(violations)
        return self.call("GET", "/order/details", params={"order_id": reference.order_id})

    def convert_position(self, conversion: PositionConversion) -> NormalizedResult:
        violations = self.check_conversion(conversion)
        if violations:
            return NormalizedResult.invalid(violations)
        payload = {
            "instrument_token": conversion.symbol,
            "transaction_type": self.translation.value("side", conversion.side),
            "old_product": self.translation.value("product_type", conversion.from_product),
            "new_product": self.translation.value("product_type", conversion.to_product),
            "quantity": conversion.quantity,
        }
        return self.call("PUT", "/portfolio/convert-position", json=payload)
