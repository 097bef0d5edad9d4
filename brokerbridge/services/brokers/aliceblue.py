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
    ProductType,
    Side,
    Validity,
    Violation,
)
from brokerbridge.services.brokers.base import (
    CORE_CAPABILITIES,
    BrokerAdapter,
    Capability,
    Envelope,
    TranslationTable,
    identity,
)

TRANSLATION = TranslationTable(
    fields={
        "symbol": "trading_symbol",
        "symbol_token": "symbol_id",
        "exchange": "exch",
        "side": "transtype",
        "validity": "ret",
        "order_type": "prctyp",
        "quantity": "qty",
        "price": "price",
        "trigger_price": "trigPrice",
        "product_type": "pCode",
        "disclosed_quantity": "discqty",
        "tag": "orderTag",
        "target": "target",
        "stop_loss": "stopLoss",
        "trailing_stop_loss": "trailing_stop_loss",
    },
    values={
        "exchange": identity(Exchange, Exchange.NSE, Exchange.BSE, Exchange.NFO, Exchange.MCX),
        "side": identity(Side),
        "validity": identity(Validity),
        "order_type": {
            OrderType.MARKET: "MKT",
            OrderType.LIMIT: "L",
            OrderType.STOP: "SL-M",
            OrderType.STOP_LIMIT: "SL",
        },
        "product_type": {
            ProductType.INTRADAY: "MIS",
            ProductType.DELIVERY: "CNC",
            ProductType.NORMAL: "NRML",
            ProductType.COVER: "CO",
            ProductType.BRACKET: "BO",
        },
    },
)

# AliceBlue only sends text in ``emsg``
ERRORS = ErrorTable(
    messages={
        "session expired": ErrorKind.AUTHENTICATION_FAILED,
        "invalid session": ErrorKind.AUTHENTICATION_FAILED,
        "unauthorized": ErrorKind.AUTHENTICATION_FAILED,
        "too many requests": ErrorKind.RATE_LIMITED,
    },
)

_NUMERIC_KEYS = ("qty", "price", "trigPrice", "discqty", "target", "stopLoss", "trailing_stop_loss")


def _order_id(data: Any) -> Any:
    if isinstance(data, list):
        data = data[0] if data else None
    return data.get("nestOrderNumber") if isinstance(data, dict) else None


def _result(data: Any) -> Any:
    return data.get("result", data) if isinstance(data, dict) else data


class AliceBlueBroker(BrokerAdapter):
    broker_id = BrokerId.ALICEBLUE
    name = "aliceblue"
    capabilities = CORE_CAPABILITIES | {Capability.GET_ORDER_DETAILS}
    translation = TRANSLATION
    errors = ERRORS
    tag_max_length = 20
    order_id_pattern = re.compile(r"\d+")
    requires_symbol_token = True
    # No published range limits for chart history
    historical_limits = {"1": None, "D": None}
    historical_exchanges = frozenset({Exchange.NSE, Exchange.NFO, Exchange.CDS, Exchange.MCX})

    @classmethod
    def base_url(cls, settings: Settings) -> str:
        return settings.aliceblue_base_url

    def unwrap(self, body: Any) -> Envelope:
        # Order placement and the books answer with a list, everything else with an object
        if isinstance(body, list) and not body:
            return Envelope(ok=True, data=[])
        first = body[0] if isinstance(body, list) else body
        if not isinstance(first, dict):
            return Envelope(ok=False, message=str(body) if body else None)
        if first.get("stat") == "Not_Ok":
            return Envelope(ok=False, message=first.get("emsg") or first.get("message"))
        return Envelope(ok=True, data=body)

    def build_order(self, order: NormalizedOrder) -> dict[str, Any]:
        payload = self.translation.translate(order)
        payload.setdefault("price", 0)
        payload.setdefault("trigPrice", 0)
        for key in _NUMERIC_KEYS:
            if key in payload:
                payload[key] = str(payload[key])
        payload["complexty"] = "BO" if order.product_type is ProductType.BRACKET else "REGULAR"
        payload["deviceNumber"] = self.settings.aliceblue_device_number
        return payload

    def place_order(self, order: NormalizedOrder) -> NormalizedResult:
        violations = self.check_order(order)
        if violations:
            return NormalizedResult.invalid(violations)
        return self.call("POST", "/placeOrder/executePlaceOrder", json=[self.build_order(order)], order_id=_order_id)

    def modify_order(self, reference: OrderReference, order: NormalizedOrder) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id) + self.check_order(order)
        if violations:
            return NormalizedResult.invalid(violations)
        full = self.build_order(order)
        payload = {k: full[k] for k in ("transtype", "discqty", "exch", "trading_symbol", "prctyp", "price",
                                         "qty", "trigPrice", "pCode", "deviceNumber")}
        payload["nestOrderNumber"] = reference.order_id
        payload["filledQuantity"] = "0"
        return self.call("POST", "/placeOrder/modifyOrder", json=payload, order_id=_order_id)

    def cancel_order(self, reference: OrderReference) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id)
        if reference.exchange is None:
            violations.append(Violation(field="exchange", code="missing", message="exchange is required to cancel an aliceblue order"))
        elif reference.exchange not in self.translation.values["exchange"]:
            violations.append(Violation(field="exchange", code="unsupported",
                                        message=f"exchange {reference.exchange.value} is not supported by aliceblue"))
        if not reference.symbol:
            violations.append(Violation(field="symbol", code="missing", message="symbol is required to cancel an aliceblue order"))
        if violations:
            return NormalizedResult.invalid(violations)
        payload = {
            "exch": reference.exchange.value,
            "nestOrderNumber": reference.order_id,
            "trading_symbol": reference.symbol,
            "deviceNumber": self.settings.aliceblue_device_number,
        }
        return self.call("POST", "/placeOrder/cancelOrder", json=payload, order_id=_order_id)

    def get_order_book(self) -> NormalizedResult:
        return self.call("GET", "/placeOrder/fetchOrderBook")

    def get_order_details(self, reference: OrderReference) -> NormalizedResult:
        violations = self.check_order_id(reference.order_id)
        if violations:
            return NormalizedResult.invalid(violations)
        return self.call("POST", "/placeOrder/orderHistory", json={"nestOrderNumber": reference.order_id})

    def get_trade_book(self) -> NormalizedResult:
        return self.call("GET", "/placeOrder/fetchTradeBook")

    def get_positions(self) -> NormalizedResult:
        return self.call("POST", "/positionAndHoldings/positionBook", json={"ret": "DAY"})

    def get_holdings(self) -> NormalizedResult:
        return self.call("GET", "/positionAndHoldings/holdings")

    def get_funds(self) -> NormalizedResult:
        return self.call("GET", "/limits/getRmsLimits")

    def get_profile(self) -> NormalizedResult:
        return self.call("GET", "/customer/accountDetails")

    def get_historical_data(self, query: HistoricalQuery) -> NormalizedResult:
        violations = self.check_history(query)
        if violations:
            return NormalizedResult.invalid(violations)
        payload = {
            "token": query.instrument_key,
            "resolution": query.resolution,
            "from": str(int(query.start.timestamp() * 1000)),
            "to": str(int(query.end.timestamp() * 1000)),
            "exchange": query.exchange.value,
        }
        return self.call("POST", "/chart/history", json=payload, extract=_result)
