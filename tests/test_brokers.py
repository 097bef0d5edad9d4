"""Tests for the per-broker adapters: payload translation, envelopes, error tables."""

from datetime import datetime, timezone

import pytest

from brokerbridge.errors import ErrorKind, TransportTimeout
from brokerbridge.models import BrokerId, Exchange, HistoricalQuery, IntradayQuery, OrderReference, PositionConversion
from brokerbridge.services.brokers.aliceblue import AliceBlueBroker
from brokerbridge.services.brokers.angel import AngelBroker
from brokerbridge.services.brokers.base import ALL_CAPABILITIES, CORE_CAPABILITIES, Capability
from brokerbridge.services.brokers.fyers import FyersBroker
from brokerbridge.services.brokers.upstox import UpstoxBroker
from brokerbridge.services.validator import validate


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def adapter(settings, brokers, credential):
    """Build an adapter wired to the recording transport."""
    def make(adapter_cls, token="tok-123"):
        cred = credential(adapter_cls.broker_id, token)
        return adapter_cls(cred, brokers(adapter_cls, cred), settings)
    return make


@pytest.fixture
def order(market_order):
    """A validated NormalizedOrder."""
    def make(broker_id=BrokerId.UPSTOX, **overrides):
        result = validate(market_order(broker_id, **overrides))
        assert result.ok, result.violations
        return result.order
    return make


def query(resolution, start, end, exchange=Exchange.NSE, key="NSE_EQ|INE002A01018"):
    return HistoricalQuery(instrument_key=key, resolution=resolution, start=start, end=end, exchange=exchange)


def conversion(**overrides):
    fields = {
        "symbol": "NSE_EQ|INE002A01018", "exchange": "NSE", "side": "BUY", "quantity": 5,
        "from_product": "INTRADAY", "to_product": "DELIVERY",
    }
    fields.update(overrides)
    return PositionConversion(**fields)


# =============================================================================
# Test Capabilities
# =============================================================================

class TestCapabilities:
    """Every broker offers the core set; extras are declared per broker."""

    @pytest.mark.parametrize("adapter_cls", [AliceBlueBroker, AngelBroker, FyersBroker, UpstoxBroker])
    def test_core_capability_set(self, adapter_cls):
        assert CORE_CAPABILITIES <= adapter_cls.capabilities
        for capability in adapter_cls.capabilities:
            assert callable(getattr(adapter_cls, capability.value))

    @pytest.mark.parametrize("adapter_cls,extras", [
        (AliceBlueBroker, {Capability.GET_ORDER_DETAILS}),
        (AngelBroker, {Capability.CONVERT_POSITION}),
        (FyersBroker, {Capability.GET_ORDER_DETAILS, Capability.CONVERT_POSITION}),
        (UpstoxBroker, ALL_CAPABILITIES - CORE_CAPABILITIES),
    ])
    def test_declared_extras(self, adapter_cls, extras):
        assert adapter_cls.capabilities - CORE_CAPABILITIES == extras

    def test_only_upstox_serves_intraday(self):
        assert UpstoxBroker.supports(Capability.GET_INTRADAY_DATA)
        for adapter_cls in (AliceBlueBroker, AngelBroker, FyersBroker):
            assert not adapter_cls.supports(Capability.GET_INTRADAY_DATA)


# =============================================================================
# Test Upstox
# =============================================================================

class TestUpstox:
    """Tests for the Upstox v2 adapter."""

    def test_place_order_payload(self, adapter, order, brokers):
        brokers.respond({"status": "success", "data": {"order_id": "240101000001"}})
        result = adapter(UpstoxBroker).place_order(order())

        assert result.success
        assert result.broker_order_id == "240101000001"
        call = brokers.calls[0]
        assert call["method"] == "POST"
        assert call["path"] == "/order/place"
        assert call["json"]["transaction_type"] == "BUY"
        assert call["json"]["product"] == "I"
        assert call["json"]["instrument_token"] == "NSE_EQ|INE002A01018"
        assert call["json"]["price"] == 0
        assert call["json"]["is_amo"] is False
        assert call["headers"]["Authorization"] == "Bearer tok-123"
        assert call["headers"]["Api-Version"] == "2.0"

    def test_stop_limit_maps_to_sl(self, adapter, order, brokers):
        brokers.respond({"status": "success", "data": {"order_id": "1"}})
        adapter(UpstoxBroker).place_order(order(order_type="STOP_LIMIT", price=100, trigger_price=99))
        payload = brokers.calls[0]["json"]
        assert payload["order_type"] == "SL"
        assert payload["price"] == 100.0
        assert payload["trigger_price"] == 99.0

    def test_bracket_unsupported(self, adapter, order, brokers):
        result = adapter(UpstoxBroker).place_order(
            order(product_type="BRACKET", order_type="LIMIT", price=100, stop_loss=1, target=2))
        assert result.error.kind is ErrorKind.VALIDATION_FAILED
        assert result.error.violations[0].field == "product_type"
        assert result.error.violations[0].code == "unsupported"
        assert brokers.calls == []

    def test_tag_too_long(self, adapter, order, brokers):
        result = adapter(UpstoxBroker).place_order(order(tag="x" * 21))
        assert [v.code for v in result.error.violations] == ["too_long"]
        assert brokers.calls == []

    def test_cancel_uses_query_param(self, adapter, brokers):
        brokers.respond({"status": "success", "data": {"order_id": "240101000001"}})
        result = adapter(UpstoxBroker).cancel_order(OrderReference(order_id="240101000001"))
        assert result.success
        assert brokers.calls[0]["method"] == "DELETE"
        assert brokers.calls[0]["params"] == {"order_id": "240101000001"}

    def test_error_code_expired_token(self, adapter, brokers):
        brokers.respond({"status": "error", "errors": [{"errorCode": "UDAPI100050", "message": "Invalid token used"}]},
                        status=401)
        result = adapter(UpstoxBroker).get_positions()
        assert result.error.kind is ErrorKind.AUTHENTICATION_FAILED
        assert result.error.broker_code == "UDAPI100050"
        assert result.error.http_status == 401
        assert result.error.retryable is False

    def test_historical_path_and_candles(self, adapter, brokers):
        brokers.respond({"status": "success", "data": {"candles": [["2024-01-02T00:00:00+05:30", 1, 2, 0.5, 1.5, 1000, 0]]}})
        result = adapter(UpstoxBroker).get_historical_data(query("day", datetime(2024, 1, 1), datetime(2024, 1, 31)))
        assert result.success
        assert brokers.calls[0]["path"] == "/historical-candle/NSE_EQ%7CINE002A01018/day/2024-01-31/2024-01-01"
        assert result.data == [{"timestamp": "2024-01-02T00:00:00+05:30", "open": 1, "high": 2, "low": 0.5,
                                "close": 1.5, "volume": 1000}]

    def test_historical_range_too_long(self, adapter, brokers):
        result = adapter(UpstoxBroker).get_historical_data(
            query("1minute", datetime(2024, 1, 1), datetime(2024, 3, 1)))
        assert [(v.field, v.code) for v in result.error.violations] == [("to", "range")]
        assert brokers.calls == []

    def test_historical_unknown_resolution(self, adapter):
        result = adapter(UpstoxBroker).get_historical_data(query("hour", datetime(2024, 1, 1), datetime(2024, 1, 2)))
        assert result.error.violations[0].field == "resolution"

    def test_sandbox_base_url(self, settings):
        assert UpstoxBroker.base_url(settings) == settings.upstox_base_url
        sandbox = settings.model_copy(update={"upstox_sandbox": True})
        assert UpstoxBroker.base_url(sandbox) == settings.upstox_sandbox_url

    def test_historical_mixed_timezones(self, adapter, brokers):
        brokers.respond({"status": "success", "data": {"candles": []}})
        result = adapter(UpstoxBroker).get_historical_data(
            query("day", datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 1, 31)))
        assert result.success
        assert brokers.calls[0]["path"].endswith("/day/2024-01-31/2024-01-01")

    def test_intraday_path(self, adapter, brokers):
        brokers.respond({"status": "success", "data": {"candles": [["2024-01-02T09:15:00+05:30", 1, 2, 0.5, 1.5, 10]]}})
        result = adapter(UpstoxBroker).get_intraday_data(
            IntradayQuery(instrument_key="NSE_EQ|INE002A01018", resolution="30minute"))
        assert result.success
        assert brokers.calls[0]["path"] == "/historical-candle/intraday/NSE_EQ%7CINE002A01018/30minute"
        assert result.data[0]["volume"] == 10

    def test_intraday_rejects_bad_key_and_resolution(self, adapter, brokers):
        result = adapter(UpstoxBroker).get_intraday_data(IntradayQuery(instrument_key="INE002A01018", resolution="day"))
        assert [(v.field, v.code) for v in result.error.violations] == [
            ("resolution", "unsupported"),
            ("instrument_key", "invalid"),
        ]
        assert brokers.calls == []

    def test_order_details(self, adapter, brokers):
        brokers.respond({"status": "success", "data": {"order_id": "240101000001", "status": "complete"}})
        result = adapter(UpstoxBroker).get_order_details(OrderReference(order_id="240101000001"))
        assert result.data["status"] == "complete"
        assert brokers.calls[0]["path"] == "/order/details"
        assert brokers.calls[0]["params"] == {"order_id": "240101000001"}

    def test_convert_position_payload(self, adapter, brokers):
        brokers.respond({"status": "success", "data": {"status": "complete"}})
        result = adapter(UpstoxBroker).convert_position(conversion())
        assert result.success
        assert brokers.calls[0]["method"] == "PUT"
        assert brokers.calls[0]["path"] == "/portfolio/convert-position"
        assert brokers.calls[0]["json"] == {
            "instrument_token": "NSE_EQ|INE002A01018",
            "transaction_type": "BUY",
            "old_product": "I",
            "new_product": "D",
            "quantity": 5,
        }

    def test_convert_to_unsupported_product(self, adapter, brokers):
        result = adapter(UpstoxBroker).convert_position(conversion(to_product="MARGIN"))
        assert [(v.field, v.code) for v in result.error.violations] == [("to_product", "unsupported")]
        assert brokers.calls == []


# =============================================================================
# Test Fyers
# =============================================================================

class TestFyers:
    """Tests for the Fyers v3 adapter."""

    def test_place_order_payload(self, adapter, order, brokers):
        brokers.respond({"s": "ok", "code": 1101, "message": "Order submitted", "id": "52104087951"})
        result = adapter(FyersBroker).place_order(
            order(BrokerId.FYERS, symbol="SBIN-EQ", side="SELL", order_type="LIMIT", price="101.5", quantity=5))

        assert result.success
        assert result.broker_order_id == "52104087951"
        payload = brokers.calls[0]["json"]
        assert payload["symbol"] == "NSE:SBIN-EQ"
        assert payload["type"] == 1
        assert payload["side"] == -1
        assert payload["productType"] == "INTRADAY"
        assert payload["limitPrice"] == 101.5
        assert payload["qty"] == 5
        assert payload["stopPrice"] == 0
        assert brokers.calls[0]["headers"]["Authorization"] == "APP-100:tok-123"

    def test_prefixed_symbol_and_token_untouched(self, adapter, order, brokers):
        brokers.respond({"s": "ok", "id": "1"})
        adapter(FyersBroker, token="APP-9:abc").place_order(order(BrokerId.FYERS, symbol="BSE:SBIN-A", exchange="BSE"))
        assert brokers.calls[0]["json"]["symbol"] == "BSE:SBIN-A"
        assert brokers.calls[0]["headers"]["Authorization"] == "APP-9:abc"

    def test_normal_product_unsupported(self, adapter, order, brokers):
        result = adapter(FyersBroker).place_order(order(BrokerId.FYERS, product_type="NORMAL"))
        assert result.error.kind is ErrorKind.VALIDATION_FAILED
        assert "product_type" in result.error.message
        assert brokers.calls == []

    def test_negative_code_is_auth_failure(self, adapter, brokers):
        brokers.respond({"s": "error", "code": -8, "message": "Your token has expired"})
        result = adapter(FyersBroker).get_order_book()
        assert result.error.kind is ErrorKind.AUTHENTICATION_FAILED
        assert result.error.broker_code == "-8"
        assert result.error.http_status is None

    def test_unknown_envelope_code_is_rejection(self, adapter, brokers):
        brokers.respond({"s": "error", "code": -50, "message": "Invalid order type"})
        result = adapter(FyersBroker).get_order_book()
        assert result.error.kind is ErrorKind.BROKER_REJECTED

    def test_order_book_extracted(self, adapter, brokers):
        brokers.respond({"s": "ok", "code": 200, "orderBook": [{"id": "1"}]})
        result = adapter(FyersBroker).get_order_book()
        assert result.data == [{"id": "1"}]

    def test_cancel_rejects_non_numeric_id(self, adapter, brokers):
        result = adapter(FyersBroker).cancel_order(OrderReference(order_id="abc"))
        assert result.error.violations[0].code == "invalid"
        assert brokers.calls == []

    def test_modify_sends_subset(self, adapter, order, brokers):
        brokers.respond({"s": "ok", "id": "808"})
        result = adapter(FyersBroker).modify_order(OrderReference(order_id="808"),
                                                   order(BrokerId.FYERS, order_type="LIMIT", price=50, quantity=2))
        assert result.success
        assert brokers.calls[0]["method"] == "PATCH"
        assert brokers.calls[0]["json"] == {"id": "808", "type": 1, "limitPrice": 50.0, "stopPrice": 0, "qty": 2}

    def test_historical_params(self, adapter, brokers):
        brokers.respond({"s": "ok", "candles": [[1704153600, 10, 11, 9, 10.5, 300]]})
        result = adapter(FyersBroker).get_historical_data(
            query("D", datetime(2024, 1, 1), datetime(2024, 6, 1), key="SBIN-EQ"))
        params = brokers.calls[0]["params"]
        assert params["symbol"] == "NSE:SBIN-EQ"
        assert params["range_from"] == "2024-01-01"
        assert params["cont_flag"] == "1"
        assert result.data[0]["close"] == 10.5

    def test_order_details_filtered_book(self, adapter, brokers):
        brokers.respond({"s": "ok", "orderBook": [{"id": "52104087951", "status": 2}]})
        result = adapter(FyersBroker).get_order_details(OrderReference(order_id="52104087951"))
        assert result.data == [{"id": "52104087951", "status": 2}]
        assert brokers.calls[0]["path"] == "/api/v3/orders"
        assert brokers.calls[0]["params"] == {"id": "52104087951"}

    def test_order_details_rejects_non_numeric_id(self, adapter, brokers):
        result = adapter(FyersBroker).get_order_details(OrderReference(order_id="abc"))
        assert result.error.violations[0].code == "invalid"
        assert brokers.calls == []

    def test_convert_position_payload(self, adapter, brokers):
        brokers.respond({"s": "ok", "code": 200, "message": "Successfully converted"})
        result = adapter(FyersBroker).convert_position(conversion(symbol="SBIN-EQ", side="SELL"))
        assert result.success
        assert brokers.calls[0]["method"] == "PUT"
        assert brokers.calls[0]["json"] == {
            "symbol": "NSE:SBIN-EQ",
            "positionSide": -1,
            "convertQty": 5,
            "convertFrom": "INTRADAY",
            "convertTo": "CNC",
            "overnight": 1,
        }


# =============================================================================
# Test Angel
# =============================================================================

class TestAngel:
    """Tests for the Angel Broking SmartAPI adapter."""

    def test_requires_symbol_token(self, adapter, order, brokers):
        result = adapter(AngelBroker).place_order(order(BrokerId.ANGEL, symbol="SBIN-EQ"))
        assert [(v.field, v.code) for v in result.error.violations] == [("symbol_token", "missing")]
        assert brokers.calls == []

    def test_bracket_order_payload(self, adapter, order, brokers):
        brokers.respond({"status": True, "message": "SUCCESS", "errorcode": "", "data": {"orderid": "201020000000080"}})
        result = adapter(AngelBroker).place_order(order(
            BrokerId.ANGEL, symbol="SBIN-EQ", symbol_token="3045", product_type="BRACKET",
            order_type="LIMIT", price=100, stop_loss=2, target=4))

        assert result.success
        assert result.broker_order_id == "201020000000080"
        call = brokers.calls[0]
        assert call["path"] == "/rest/secure/angelbroking/order/v1/placeOrder"
        payload = call["json"]
        assert payload["variety"] == "ROBO"
        assert payload["producttype"] == "BO"
        assert payload["tradingsymbol"] == "SBIN-EQ"
        assert payload["symboltoken"] == "3045"
        assert payload["duration"] == "DAY"
        assert payload["quantity"] == "10"
        assert payload["squareoff"] == "4.0"
        assert payload["stoploss"] == "2.0"
        assert call["headers"]["X-PrivateKey"] == "angel-key"
        assert call["headers"]["X-UserType"] == "USER"

    def test_stop_order_variety(self, adapter, order, brokers):
        brokers.respond({"status": True, "data": {"orderid": "1"}})
        adapter(AngelBroker).place_order(order(BrokerId.ANGEL, symbol_token="3045", order_type="STOP", trigger_price=95))
        assert brokers.calls[0]["json"]["variety"] == "STOPLOSS"
        assert brokers.calls[0]["json"]["ordertype"] == "STOPLOSS_MARKET"

    def test_cover_unsupported(self, adapter, order):
        result = adapter(AngelBroker).place_order(order(BrokerId.ANGEL, symbol_token="3045", product_type="COVER"))
        assert result.error.violations[0].field == "product_type"

    def test_token_expired_message(self, adapter, brokers):
        brokers.respond({"status": False, "message": "Token Expired", "errorcode": "", "data": None})
        result = adapter(AngelBroker).get_holdings()
        assert result.error.kind is ErrorKind.AUTHENTICATION_FAILED
        assert result.error.broker_code is None

    def test_rate_limit_message(self, adapter, brokers):
        brokers.respond({"status": False, "message": "Access denied because of exceeding access rate", "errorcode": ""})
        result = adapter(AngelBroker).get_order_book()
        assert result.error.kind is ErrorKind.RATE_LIMITED
        assert result.error.retryable is True

    def test_cancel_payload(self, adapter, brokers):
        brokers.respond({"status": True, "data": {"orderid": "201020000000080"}})
        adapter(AngelBroker).cancel_order(OrderReference(order_id="201020000000080"))
        assert brokers.calls[0]["json"] == {"variety": "NORMAL", "orderid": "201020000000080"}

    def test_historical_interval_limit(self, adapter, brokers):
        result = adapter(AngelBroker).get_historical_data(
            query("ONE_MINUTE", datetime(2024, 1, 1), datetime(2024, 2, 5), key="3045"))
        assert "exceeds 30 days" in result.error.message
        assert brokers.calls == []

    def test_historical_payload(self, adapter, brokers):
        brokers.respond({"status": True, "data": [["2024-01-02T09:15:00+05:30", 1, 2, 0.5, 1.5, 100]]})
        result = adapter(AngelBroker).get_historical_data(
            query("ONE_HOUR", datetime(2024, 1, 1, 9, 15), datetime(2024, 1, 5, 15, 30), key="3045"))
        assert brokers.calls[0]["json"]["fromdate"] == "2024-01-01 09:15"
        assert brokers.calls[0]["json"]["interval"] == "ONE_HOUR"
        assert result.data[0]["volume"] == 100

    def test_historical_aware_bounds_sent_in_ist(self, adapter, brokers):
        brokers.respond({"status": True, "data": []})
        adapter(AngelBroker).get_historical_data(
            query("ONE_HOUR", datetime(2024, 1, 1, 3, 45, tzinfo=timezone.utc), datetime(2024, 1, 5, 15, 30), key="3045"))
        assert brokers.calls[0]["json"]["fromdate"] == "2024-01-01 09:15"

    def test_convert_position_payload(self, adapter, brokers):
        brokers.respond({"status": True, "message": "SUCCESS", "data": None})
        result = adapter(AngelBroker).convert_position(
            conversion(symbol="SBIN-EQ", symbol_token="3045", from_product="DELIVERY", to_product="INTRADAY"))
        assert result.success
        assert brokers.calls[0]["path"] == "/rest/secure/angelbroking/order/v1/convertPosition"
        assert brokers.calls[0]["json"] == {
            "exchange": "NSE",
            "oldproducttype": "DELIVERY",
            "newproducttype": "INTRADAY",
            "tradingsymbol": "SBIN-EQ",
            "transactiontype": "BUY",
            "quantity": 5,
            "type": "DAY",
            "symboltoken": "3045",
        }

    def test_convert_cover_unsupported(self, adapter, brokers):
        result = adapter(AngelBroker).convert_position(conversion(from_product="COVER"))
        assert [(v.field, v.code) for v in result.error.violations] == [("from_product", "unsupported")]
        assert brokers.calls == []


# =============================================================================
# Test AliceBlue
# =============================================================================

class TestAliceBlue:
    """Tests for the AliceBlue ANT adapter."""

    def test_place_order_payload(self, adapter, order, brokers):
        brokers.respond([{"stat": "Ok", "nestOrderNumber": "231010000000001"}])
        result = adapter(AliceBlueBroker).place_order(
            order(BrokerId.ALICEBLUE, symbol="SBIN-EQ", symbol_token="3045", order_type="LIMIT", price=500))

        assert result.success
        assert result.broker_order_id == "231010000000001"
        payload = brokers.calls[0]["json"][0]
        assert payload["trading_symbol"] == "SBIN-EQ"
        assert payload["symbol_id"] == "3045"
        assert payload["prctyp"] == "L"
        assert payload["pCode"] == "MIS"
        assert payload["ret"] == "DAY"
        assert payload["qty"] == "10"
        assert payload["complexty"] == "REGULAR"
        assert payload["deviceNumber"] == "brokerbridge"

    def test_margin_and_cds_unsupported(self, adapter, order):
        result = adapter(AliceBlueBroker).place_order(
            order(BrokerId.ALICEBLUE, symbol_token="1", product_type="MARGIN", exchange="CDS"))
        assert [v.field for v in result.error.violations] == ["exchange", "product_type"]

    def test_session_expired(self, adapter, brokers):
        brokers.respond({"stat": "Not_Ok", "emsg": "Session Expired"})
        result = adapter(AliceBlueBroker).get_funds()
        assert result.error.kind is ErrorKind.AUTHENTICATION_FAILED
        assert result.error.message == "Session Expired"

    def test_not_ok_list_is_rejection(self, adapter, brokers):
        brokers.respond([{"stat": "Not_Ok", "emsg": "Insufficient funds"}])
        result = adapter(AliceBlueBroker).get_order_book()
        assert result.error.kind is ErrorKind.BROKER_REJECTED

    def test_empty_book_is_success(self, adapter, brokers):
        brokers.respond([])
        result = adapter(AliceBlueBroker).get_trade_book()
        assert result.success
        assert result.data == []

    def test_cancel_needs_exchange_and_symbol(self, adapter, brokers):
        result = adapter(AliceBlueBroker).cancel_order(OrderReference(order_id="231010000000001"))
        assert [v.field for v in result.error.violations] == ["exchange", "symbol"]
        assert brokers.calls == []

    def test_cancel_payload(self, adapter, brokers):
        brokers.respond({"stat": "Ok", "nestOrderNumber": "231010000000001"})
        adapter(AliceBlueBroker).cancel_order(
            OrderReference(order_id="231010000000001", exchange=Exchange.NSE, symbol="SBIN-EQ"))
        assert brokers.calls[0]["json"]["exch"] == "NSE"
        assert brokers.calls[0]["json"]["trading_symbol"] == "SBIN-EQ"

    def test_timeout_surfaces_as_timeout(self, adapter, brokers):
        def slow(call):
            raise TransportTimeout("Timed out after 10.0s")
        brokers.respond(handler=slow)
        result = adapter(AliceBlueBroker).get_profile()
        assert result.error.kind is ErrorKind.TIMEOUT
        assert result.error.retryable is True

    def test_historical_epoch_millis(self, adapter, brokers):
        brokers.respond({"stat": "Ok", "result": [{"time": "2024-01-02 09:15:00", "open": 1}]})
        result = adapter(AliceBlueBroker).get_historical_data(
            query("1", datetime(2024, 1, 1), datetime(2024, 12, 31), key="3045"))
        payload = brokers.calls[0]["json"]
        # Naive bounds are read as IST whatever the host timezone
        assert payload["from"] == "1704047400000"
        assert payload["to"] == "1735583400000"
        assert result.data == [{"time": "2024-01-02 09:15:00", "open": 1}]

    def test_historical_bse_unsupported(self, adapter):
        result = adapter(AliceBlueBroker).get_historical_data(
            query("D", datetime(2024, 1, 1), datetime(2024, 1, 2), exchange=Exchange.BSE))
        assert result.error.violations[0].field == "exchange"

    def test_tag_too_long(self, adapter, order, brokers):
        result = adapter(AliceBlueBroker).place_order(order(BrokerId.ALICEBLUE, symbol_token="3045", tag="t" * 21))
        assert [(v.field, v.code) for v in result.error.violations] == [("tag", "too_long")]
        assert brokers.calls == []

    def test_order_details_history(self, adapter, brokers):
        brokers.respond([{"stat": "Ok", "nestordernumber": "231010000000001", "Status": "complete"}])
        result = adapter(AliceBlueBroker).get_order_details(OrderReference(order_id="231010000000001"))
        assert result.success
        assert brokers.calls[0]["method"] == "POST"
        assert brokers.calls[0]["path"] == "/placeOrder/orderHistory"
        assert brokers.calls[0]["json"] == {"nestOrderNumber": "231010000000001"}
