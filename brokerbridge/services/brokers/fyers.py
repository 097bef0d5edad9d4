from __future__ import annotations
import re
from typing import Any

from brokerbridge.config import Settings
from brokerbridge.errors import ErrorKind, ErrorTable
from brokerbridge.models import (
    BrokerId,
    Exchange,
    HistoricalQuery,
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
    CORE_CAPABILITIES,
    BrokerAdapter,
    Capability,
    Envelope,
    TranslationTable,
    candles_to_dicts,
    identity,
)

TRANSLATION = TranslationTable(
    fields={
        "symbol": "symbol",
        "quantity": "qty",
        "order_type": "type",
        "side": "side",
        "product_type": "productType",
        "price": "limitPrice",
        "trigger_price": "stopPrice",
        "disclosed_quantity": "disclosedQty",
        "validity": "validity",
        "tag": "orderTag",
        "stop_loss": "stopLoss",
        "target": "takeProfit",
    },
    values={
        # Fyers symbols carry the exchange as a prefix: NSE:SBIN-EQ, NSE:NIFTY24AUGFUT
        "exchange": {
            Exchange.NSE: "NSE",
            Exchange.NFO: "NSE",
            Exchange.CDS: "NSE",
            Exchange.BSE: "BSE",
            Exchange.BFO: "BSE",
            Exchange.MCX: "MCX",
        },
        "order_type": {
            OrderType.LIMIT: 1,
            OrderType.MARKET: 2,
            OrderType.STOP: 3,
            OrderType.STOP_LIMIT: 4,
        },
        "side": {Side.BUY: 1, Side.SELL: -1},
        "product_type": {
            ProductType.INTRADAY: "INTRADAY",
            ProductType.DELIVERY: "CNC",
            ProductType.MARGIN: "MARGIN",
            ProductType.COVER: "CO",
            ProductType.BRACKET: "BO",
        },
        "validity": identity(Validity),
    },
)

ERRORS = ErrorTable(
    codes={
        -8: ErrorKind.AUTHENTICATION_FAILED,   # token expired
        -15: ErrorKind.AUTHENTICATION_FAILED,  # invalid token
        -16: ErrorKind.AUTHENTICATION_FAILED,  # unable to authenticate
        -17: ErrorKind.AUTHENTICATION_FAILED,  # token invalid or expired
        -429: ErrorKind.RATE_LIMITED,
    },
)

_SECONDS = ("5S", "10S", "15S", "30S", "45S")
_MINUTES = ("1", "2", "3", "5", "10", "15", "20", "30", "60", "120", "240")


def _order_id(data: Any) -> Any:
    return data.get("id") if isinstance(data, dict) else None


def _section(key: str):
    def extract(data: Any) -> Any:
        return data.get(key) if isinstance(data, dict) else data
    return extract


def _candles(data: Any) -> list[dict]:
    return candles_to_dicts(data.get("candles") if isinstance(data, dict) else data)


class FyersBroker(BrokerAdapter):
    broker_id = BrokerId.FYERS
    name = "fyers"
    capabilities = CORE_CAPABILITIES | {Capability.GET_ORDER_DETAILS, Capability.CONVERT_POSITION}
    translation = TRANSLATION
    errors = ERRORS
    tag_max_length = 30
    order_id_pattern = re.compile(r"\d+")
    historical_limits = {
        **{r: 30 for r in _SECONDS},
        **{r: 100 for r in _MINUTES},
        "D": 366,
        "1D": 366,
    }

    @classmethod
    def base_url(cls, settings: Settings) -> str:
        return settings.fyers_base_url

    def auth_headers(self) -> dict[str, str]:
        token = self.credential.token
        app_id = self.settings.fyers_app_id
        if app_id and ":" not in token:
            token = f"{app_id}:{token}"
        return {"Authorization": token}

    def unwrap(self, body: Any) -> Envelope:
        if not isinstance(body, dict):
            return Envelope(ok=False, message=str(body) if body else None)
        if body.get("s") == "ok":
            return Envelope(ok=True, data={k: v for k, v in body.items() if k not in ("s", "code", "message")})
        return Envelope(ok=False, code=body.get("code"), message=body.get("message"))

    def symbol(self, symbol: str, exchange: Exchange) -> str:
        if ":" in symbol:
            return symbol
        return f"{self.translation.value('exchange', exchange)}:{symbol}"

    def build_order(self, order: NormalizedOrder) -> dict[str, Any]:
        payload = {
            "limitPrice": 0,
            "stopPrice": 0,
            "disclosedQty": 0,
            "offlineOrder": False,
            "stopLoss": 0,
            "takeProfit": 0,
        }
        payload.update(self.translation.translate(order))
        payload["symbol"] = self.symbol(order.symbol, order.exchange)
        return payload

    def place_order(self, order: NormalizedOrder) -> NormalizedResult:
        violations = self.check_order(order)
        if violations:
            return NormalizedResult.invalid(violations)
        return self.call("POST", "/api/v3/orders/sync", json=self.build_order(order), order_id=_order_id)

    def modify_order(self, reference: OrderReference, order: NormalizedOrder) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id) + self.check_order(order)
        if violations:
            return NormalizedResult.invalid(violations)
        full = self.build_order(order)
        payload = {"id": reference.order_id}
        payload.update({k: full[k] for k in ("type", "limitPrice", "stopPrice", "qty")})
        return self.call("PATCH", "/api/v3/orders/sync", json=payload, order_id=_order_id)

    def cancel_order(self, reference: OrderReference) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id)
        if violations:
            return NormalizedResult.invalid(violations)
        return self.call("DELETE", "/api/v3/orders/sync", json={"id": reference.order_id}, order_id=_order_id)

    def get_order_book(self) -> NormalizedResult:
        return self.call("GET", "/api/v3/orders", extract=_section("orderBook"))

    def get_trade_book(self) -> NormalizedResult:
        return self.call("GET", "/api/v3/tradebook", extract=_section("tradeBook"))

    def get_positions(self) -> NormalizedResult:
        return self.call("GET", "/api/v3/positions")

    def get_holdings(self) -> NormalizedResult:
        return self.call("GET", "/api/v3/holdings")

    def get_funds(self) -> NormalizedResult:
        return self.call("GET", "/api/v3/funds", extract=_section("fund_limit"))

    def get_profile(self) -> NormalizedResult:
        return self.call("GET", "/api/v3/profile", extract=_section("data"))

    def get_historical_data(self, query: HistoricalQuery) -> NormalizedResult:
        violations = self.check_history(query)
        if violations:
            return NormalizedResult.invalid(violations)
        params = {
            "symbol": self.symbol(query.instrument_key, query.exchange),
            "resolution": query.resolution,
            "date_format": "1",
            "range_from": query.start.strftime("%Y-%m-%d"),
            "range_to": query.end.strftime("%Y-%m-%d"),
            "cont_flag": "1",
        }
        return self.call("GET", "/data/history", params=params, extract=_candles)

    def get_order_details(self, reference: OrderReference) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id)
        if violations:
            return NormalizedResult.invalid(violations)
        return self.call("GET", "/api/v3/orders", params={"id": reference.order_id}, extract=_section("orderBook"))

    def convert_position(self, conversion: PositionConversion) -> NormalizedResult:
        violations = self.check_conversion(conversion)
        if violations:
            return NormalizedResult.invalid(violations)
        payload = {
            "symbol": self.symbol(conversion.symbol, conversion.exchange),
            "positionSide": self.translation.value("side", conversion.side),
            "convertQty": conversion.quantity,
            "convertFrom": self.translation.value("product_type", conversion.from_product),
            "convertTo": self.translation.value("product_type", conversion.to_product),
            "overnight": 1,
        }
        return self.call("PUT", "/api/v3/positions", json=payload)
