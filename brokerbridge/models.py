"""Broker-agnostic request and result models shared by the router and adapters."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from brokerbridge.errors import ErrorKind


class BrokerId(str, Enum):
    ALICEBLUE = "ALICEBLUE"
    ANGEL = "ANGEL"
    FYERS = "FYERS"
    UPSTOX = "UPSTOX"


class Exchange(str, Enum):
    NSE = "NSE"
    BSE = "BSE"
    NFO = "NFO"
    BFO = "BFO"
    MCX = "MCX"
    CDS = "CDS"


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"
    STOP_LIMIT = "STOP_LIMIT"


class ProductType(str, Enum):
    INTRADAY = "INTRADAY"
    DELIVERY = "DELIVERY"
    MARGIN = "MARGIN"
    COVER = "COVER"
    BRACKET = "BRACKET"
    NORMAL = "NORMAL"


class Validity(str, Enum):
    DAY = "DAY"
    IOC = "IOC"


# Order types whose price / trigger price must be present
PRICED_ORDER_TYPES = frozenset({OrderType.LIMIT, OrderType.STOP_LIMIT})
TRIGGERED_ORDER_TYPES = frozenset({OrderType.STOP, OrderType.STOP_LIMIT})

# NSE, BSE and MCX all trade on IST, which has no daylight saving
EXCHANGE_TZ = timezone(timedelta(hours=5, minutes=30), "IST")


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class NormalizedOrder(_Model):
    """Order intent in the broker-independent vocabulary.

    Construction only checks types. Cross-field rules (price for LIMIT,
    disclosed quantity bounds, bracket legs) belong to
    :func:`brokerbridge.services.validator.validate`.
    """

    broker_id: BrokerId
    symbol: str
    exchange: Exchange
    side: Side
    order_type: OrderType
    product_type: ProductType
    quantity: int
    validity: Validity
    price: Decimal | None = None
    trigger_price: Decimal | None = None
    disclosed_quantity: int = 0
    tag: str | None = None
    # Instrument token for brokers that want it next to the trading symbol
    symbol_token: str | None = None
    # Bracket legs
    stop_loss: Decimal | None = None
    target: Decimal | None = None
    trailing_stop_loss: Decimal | None = None


class Credential(_Model):
    broker_id: BrokerId
    token: str = Field(repr=False)

    def __str__(self) -> str:
        return f"Credential({self.broker_id.value}, token=***)"


class OrderReference(_Model):
    """A broker-assigned order id plus whatever context the broker needs to act on it."""

    order_id: str
    exchange: Exchange | None = None
    symbol: str | None = None


class HistoricalQuery(_Model):
    instrument_key: str
    resolution: str
    start: datetime = Field(alias="from")
    end: datetime = Field(alias="to")
    exchange: Exchange

    @field_validator("start", "end")
    @classmethod
    def _exchange_time(cls, value: datetime) -> datetime:
        # Naive bounds are exchange time; aware ones are converted to it
        if value.tzinfo is None:
            return value.replace(tzinfo=EXCHANGE_TZ)
        return value.astimezone(EXCHANGE_TZ)


class IntradayQuery(_Model):
    """Candles for the current session; the broker picks the window."""

    instrument_key: str
    resolution: str


class PositionConversion(_Model):
    """Move an open position from one product to another (e.g. INTRADAY -> DELIVERY)."""

    symbol: str
    exchange: Exchange
    side: Side
    quantity: int = Field(gt=0)
    from_product: ProductType
    to_product: ProductType
    symbol_token: str | None = None

    @field_validator("exchange", "side", "from_product", "to_product", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _products_differ(self) -> "PositionConversion":
        if self.from_product is self.to_product:
            raise ValueError("from_product and to_product must differ")
        return self


class Violation(_Model):
    field: str
    code: str
    message: str


class NormalizedError(_Model):
    kind: ErrorKind
    message: str
    broker_code: str | None = None
    retryable: bool = False
    http_status: int | None = None
    violations: list[Violation] = Field(default_factory=list)

    @classmethod
    def of(cls, kind: ErrorKind, message: str, **kwargs: Any) -> "NormalizedError":
        return cls(kind=kind, message=message, retryable=kind.retryable, **kwargs)


class NormalizedResult(_Model):
    success: bool
    broker_order_id: str | None = None
    raw: Any = None
    data: Any = None
    error: NormalizedError | None = None

    @classmethod
    def ok(cls, raw: Any = None, data: Any = None, broker_order_id: str | None = None) -> "NormalizedResult":
        return cls(success=True, raw=raw, data=data, broker_order_id=broker_order_id)

    @classmethod
    def fail(cls, error: NormalizedError, raw: Any = None) -> "NormalizedResult":
        return cls(success=False, error=error, raw=raw)

    @classmethod
    def invalid(cls, violations: list[Violation]) -> "NormalizedResult":
        message = "; ".join(v.message for v in violations) or "Validation failed"
        return cls.fail(NormalizedError.of(ErrorKind.VALIDATION_FAILED, message, violations=violations))
