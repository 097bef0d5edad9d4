from __future__ import annotations
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
        "symbol": "tradingsymbol",
        "symbol_token": "symboltoken",
        "side": "transactiontype",
        "exchange": "exchange",
        "order_type": "ordertype",
        "product_type": "producttype",
        "validity": "duration",
        "price": "price",
        "trigger_price": "triggerprice",
        "quantity": "quantity",
        "disclosed_quantity": "disclosedquantity",
        "tag": "ordertag",
        "target": "squareoff",
        "stop_loss": "stoploss",
        "trailing_stop_loss": "trailingStopLoss",
    },
    values={
        "exchange": identity(Exchange),
        "side": identity(Side),
        "order_type": {
            OrderType.MARKET: "MARKET",
            OrderType.LIMIT: "LIMIT",
            OrderType.STOP: "STOPLOSS_MARKET",
            OrderType.STOP_LIMIT: "STOPLOSS_LIMIT",
        },
        "product_type": {
            ProductType.INTRADAY: "INTRADAY",
            ProductType.DELIVERY: "DELIVERY",
            ProductType.MARGIN: "MARGIN",
            ProductType.NORMAL: "CARRYFORWARD",
            ProductType.BRACKET: "BO",
        },
        "validity": identity(Validity),
    },
)

ERRORS = ErrorTable(
    codes={
        "AG8001": ErrorKind.AUTHENTICATION_FAILED,  # invalid token
        "AG8002": ErrorKind.AUTHENTICATION_FAILED,  # token expired
        "AG8003": ErrorKind.AUTHENTICATION_FAILED,  # token missing
        "AB1010": ErrorKind.AUTHENTICATION_FAILED,  # session expired
        "AB8050": ErrorKind.AUTHENTICATION_FAILED,  # invalid refresh token
    },
    messages={
        "token expired": ErrorKind.AUTHENTICATION_FAILED,
        "invalid token": ErrorKind.AUTHENTICATION_FAILED,
        "exceeding access rate": ErrorKind.RATE_LIMITED,
    },
)

ORDER_PATH = "/rest/secure/angelbroking/order/v1"
# SmartAPI sends every number as a string
_NUMERIC_KEYS = ("price", "triggerprice", "quantity", "disclosedquantity", "squareoff", "stoploss", "trailingStopLoss")


def _order_id(data: Any) -> Any:
    return data.get("orderid") if isinstance(data, dict) else None


def variety(order: NormalizedOrder) -> str:
    if order.product_type is ProductType.BRACKET:
        return "ROBO"
    if order.order_type in (OrderType.STOP, OrderType.STOP_LIMIT):
        return "STOPLOSS"
    return "NORMAL"


class AngelBroker(BrokerAdapter):
    broker_id = BrokerId.ANGEL
    name = "angel"
    capabilities = CORE_CAPABILITIES | {Capability.CONVERT_POSITION}
    translation = TRANSLATION
    errors = ERRORS
    tag_max_length = 20
    requires_symbol_token = True
    historical_limits = {
        "ONE_MINUTE": 30,
        "THREE_MINUTE": 60,
        "FIVE_MINUTE": 100,
        "TEN_MINUTE": 100,
        "FIFTEEN_MINUTE": 200,
        "THIRTY_MINUTE": 200,
        "ONE_HOUR": 400,
        "ONE_DAY": 2000,
    }

    @classmethod
    def base_url(cls, settings: Settings) -> str:
        return settings.angel_base_url

    def auth_headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.credential.token}",
            "X-UserType": "USER",
            "X-SourceID": "WEB",
            "X-ClientLocalIP": self.settings.angel_client_local_ip,
            "X-ClientPublicIP": self.settings.angel_client_public_ip,
            "X-MACAddress": self.settings.angel_mac_address,
        }
        if self.settings.angel_api_key:
            headers["X-PrivateKey"] = self.settings.angel_api_key
        return headers

    def unwrap(self, body: Any) -> Envelope:
        if not isinstance(body, dict):
            return Envelope(ok=False, message=str(body) if body else None)
        if body.get("status") is True:
            return Envelope(ok=True, data=body.get("data"))
        return Envelope(ok=False, code=body.get("errorcode") or None, message=body.get("message"))

    def build_order(self, order: NormalizedOrder) -> dict[str, Any]:
        payload = self.translation.translate(order)
        payload["variety"] = variety(order)
        for key in ("price", "squareoff", "stoploss"):
            payload.setdefault(key, 0)
        for key in _NUMERIC_KEYS:
            if key in payload:
                payload[key] = str(payload[key])
        return payload

    def place_order(self, order: NormalizedOrder) -> NormalizedResult:
        violations = self.check_order(order)
        if violations:
            return NormalizedResult.invalid(violations)
        return self.call("POST", f"{ORDER_PATH}/placeOrder", json=self.build_order(order), order_id=_order_id)

    def modify_order(self, reference: OrderReference, order: NormalizedOrder) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id) + self.check_order(order)
        if violations:
            return NormalizedResult.invalid(violations)
        full = self.build_order(order)
        payload = {k: full[k] for k in ("variety", "ordertype", "producttype", "duration", "price", "quantity",
                                         "tradingsymbol", "symboltoken", "exchange")}
        payload["orderid"] = reference.order_id
        return self.call("POST", f"{ORDER_PATH}/modifyOrder", json=payload, order_id=_order_id)

    def cancel_order(self, reference: OrderReference) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id)
        if violations:
            return NormalizedResult.invalid(violations)
        payload = {"variety": "NORMAL", "orderid": reference.order_id}
        return self.call("POST", f"{ORDER_PATH}/cancelOrder", json=payload, order_id=_order_id)

    def get_order_book(self) -> NormalizedResult:
        return self.call("GET", f"{ORDER_PATH}/getOrderBook")

    def get_trade_book(self) -> NormalizedResult:
        return self.call("GET", f"{ORDER_PATH}/getTradeBook")

    def get_positions(self) -> NormalizedResult:
        return self.call("GET", f"{ORDER_PATH}/getPosition")

    def get_holdings(self) -> NormalizedResult:
        return self.call("GET", "/rest/secure/angelbroking/portfolio/v1/getHolding")

    def get_funds(self) -> NormalizedResult:
        return self.call("GET", "/rest/secure/angelbroking/user/v1/getRMS")

    def get_profile(self) -> NormalizedResult:
        return self.call("GET", "/rest/secure/angelbroking/user/v1/getProfile")

    def get_historical_data(self, query: HistoricalQuery) -> NormalizedResult:
        violations = self.check_history(query)
        if violations:
            return NormalizedResult.invalid(violations)
        payload = {
            "exchange": self.translation.value("exchange", query.exchange),
            "symboltoken": query.instrument_key,
            "interval": query.resolution,
            "fromdate": query.start.strftime("%Y-%m-%d %H:%M"),
            "todate": query.end.strftime("%Y-%m-%d %H:%M"),
        }
        return self.call("POST", "/rest/secure/angelbroking/historical/v1/getCandleData", json=payload,
                         extract=candles_to_dicts)

    def convert_position(self, conversion: PositionConversion) -> NormalizedResult:
        violations = self.check_conversion(conversion)
        if violations:
            return NormalizedResult.invalid(violations)
        payload = {
            "exchange": self.translation.value("exchange", conversion.exchange),
            "oldproducttype": self.translation.value("product_type", conversion.from_product),
            "newproducttype": self.translation.value("product_type", conversion.to_product),
            "tradingsymbol": conversion.symbol,
            "transactiontype": self.translation.value("side", conversion.side),
            "quantity": conversion.quantity,
            "type": "DAY",
        }
        if conversion.symbol_token:
            payload["symboltoken"] = conversion.symbol_token
        return self.call("POST", f"{ORDER_PATH}/convertPosition", json=payload)
