from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from brokerbridge.config import Settings
from brokerbridge.errors import ErrorKind
from brokerbridge.models import (
    Credential,
    HistoricalQuery,
    IntradayQuery,
    NormalizedResult,
    OrderReference,
    PositionConversion,
    Violation,
)
from brokerbridge.routers.inbound import to_canonical
from brokerbridge.services.broker_registry import BrokerRegistry, parse_broker_id
from brokerbridge.services.brokers.base import Capability
from brokerbridge.services.order_router import OrderRouter
from brokerbridge.services.retry import with_read_retry

router = APIRouter(prefix="/api/{broker}", tags=["orders"])

_KIND_STATUS = {
    ErrorKind.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNKNOWN_BROKER: status.HTTP_404_NOT_FOUND,
    ErrorKind.UNSUPPORTED_OPERATION: status.HTTP_400_BAD_REQUEST,
}
# Used when the broker gave us no status of its own
_FALLBACK_STATUS = {
    ErrorKind.AUTHENTICATION_FAILED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
}


def get_bearer_token(authorization: str = Header(None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header"
        )
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization token format"
        )
    return token


def get_order_router(request: Request) -> OrderRouter:
    return request.app.state.order_router


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def http_status(result: NormalizedResult) -> int:
    if result.success:
        return status.HTTP_200_OK
    kind = result.error.kind
    if kind in _KIND_STATUS:
        return _KIND_STATUS[kind]
    return result.error.http_status or _FALLBACK_STATUS.get(kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def to_response(result: NormalizedResult) -> JSONResponse:
    if result.success:
        content = {"success": True, "data": result.data}
        if result.broker_order_id is not None:
            content["broker_order_id"] = result.broker_order_id
    else:
        error = result.error.model_dump(mode="json", exclude_none=True)
        error["details"] = result.raw
        content = {"success": False, "message": result.error.message, "error": error}
        if result.error.kind is ErrorKind.VALIDATION_FAILED:
            content["violations"] = error["violations"]
    return JSONResponse(status_code=http_status(result), content=jsonable_encoder(content))


def _credential(broker: str, token: str) -> Credential:
    return Credential(broker_id=parse_broker_id(broker), token=token)


def _invalid(e: ValidationError) -> NormalizedResult:
    violations = [
        Violation(field=".".join(str(p) for p in err["loc"]) or "body", code="invalid", message=err["msg"])
        for err in e.errors()
    ]
    return NormalizedResult.invalid(violations)


def _order_body(request: Request, broker: str, body: dict[str, Any]) -> dict[str, Any]:
    registry: BrokerRegistry = request.app.state.registry
    adapter_cls = registry.adapter_class(broker)
    candidate = to_canonical(adapter_cls, body)
    # A broker named in the body is kept so the router can report a mismatch
    if "broker_id" not in candidate and "brokerId" not in candidate:
        candidate["broker_id"] = adapter_cls.broker_id.value
    return candidate


# -------------------- writes (never retried) --------------------

@router.post("/orders")
def place_order(request: Request, broker: str, body: dict[str, Any] = Body(...),
                token: str = Depends(get_bearer_token), order_router: OrderRouter = Depends(get_order_router)):
    credential = _credential(broker, token)
    return to_response(order_router.route(credential.broker_id, credential, _order_body(request, broker, body)))


@router.patch("/orders/{order_id}")
def modify_order(request: Request, broker: str, order_id: str, body: dict[str, Any] = Body(...),
                 token: str = Depends(get_bearer_token), order_router: OrderRouter = Depends(get_order_router)):
    credential = _credential(broker, token)
    reference = OrderReference(order_id=order_id)
    return to_response(order_router.modify_order(credential.broker_id, credential, reference,
                                                  _order_body(request, broker, body)))


@router.delete("/orders/{order_id}")
def cancel_order(broker: str, order_id: str, exchange: str | None = Query(None), symbol: str | None = Query(None),
                 token: str = Depends(get_bearer_token), order_router: OrderRouter = Depends(get_order_router)):
    credential = _credential(broker, token)
    try:
        reference = OrderReference(order_id=order_id, exchange=exchange.upper() if exchange else None, symbol=symbol)
    except ValidationError as e:
        return to_response(_invalid(e))
    return to_response(order_router.cancel_order(credential.broker_id, credential, reference))


@router.post("/portfolio/positions/convert")
def convert_position(broker: str, body: dict[str, Any] = Body(...), token: str = Depends(get_bearer_token),
                     order_router: OrderRouter = Depends(get_order_router)):
    credential = _credential(broker, token)
    try:
        conversion = PositionConversion.model_validate(body)
    except ValidationError as e:
        return to_response(_invalid(e))
    return to_response(order_router.convert_position(credential.broker_id, credential, conversion))


# -------------------- reads --------------------

def _read(broker: str, token: str, capability: Capability, order_router: OrderRouter, settings: Settings) -> JSONResponse:
    credential = _credential(broker, token)
    result = with_read_retry(
        capability,
        lambda: order_router.fetch(credential.broker_id, credential, capability),
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
    )
    return to_response(result)


@router.get("/orders")
def order_book(broker: str, token: str = Depends(get_bearer_token),
               order_router: OrderRouter = Depends(get_order_router), settings: Settings = Depends(get_settings)):
    return _read(broker, token, Capability.GET_ORDER_BOOK, order_router, settings)


@router.get("/trades")
def trade_book(broker: str, token: str = Depends(get_bearer_token),
               order_router: OrderRouter = Depends(get_order_router), settings: Settings = Depends(get_settings)):
    return _read(broker, token, Capability.GET_TRADE_BOOK, order_router, settings)


@router.get("/portfolio/positions")
def positions(broker: str, token: str = Depends(get_bearer_token),
              order_router: OrderRouter = Depends(get_order_router), settings: Settings = Depends(get_settings)):
    return _read(broker, token, Capability.GET_POSITIONS, order_router, settings)


@router.get("/portfolio/holdings")
def holdings(broker: str, token: str = Depends(get_bearer_token),
             order_router: OrderRouter = Depends(get_order_router), settings: Settings = Depends(get_settings)):
    return _read(broker, token, Capability.GET_HOLDINGS, order_router, settings)


@router.get("/funds")
def funds(broker: str, token: str = Depends(get_bearer_token),
          order_router: OrderRouter = Depends(get_order_router), settings: Settings = Depends(get_settings)):
    return _read(broker, token, Capability.GET_FUNDS, order_router, settings)


@router.get("/profile")
def profile(broker: str, token: str = Depends(get_bearer_token),
            order_router: OrderRouter = Depends(get_order_router), settings: Settings = Depends(get_settings)):
    return _read(broker, token, Capability.GET_PROFILE, order_router, settings)


@router.post("/historical")
def historical(broker: str, body: dict[str, Any] = Body(...), token: str = Depends(get_bearer_token),
               order_router: OrderRouter = Depends(get_order_router), settings: Settings = Depends(get_settings)):
    credential = _credential(broker, token)
    try:
        query = HistoricalQuery.model_validate(body)
    except ValidationError as e:
        return to_response(_invalid(e))
    result = with_read_retry(
        Capability.GET_HISTORICAL_DATA,
        lambda: order_router.get_historical_data(credential.broker_id, credential, query),
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
    )
    return to_response(result)


@router.get("/orders/{order_id}")
def order_details(broker: str, order_id: str, token: str = Depends(get_bearer_token),
                  order_router: OrderRouter = Depends(get_order_router), settings: Settings = Depends(get_settings)):
    credential = _credential(broker, token)
    reference = OrderReference(order_id=order_id)
    result = with_read_retry(
        Capability.GET_ORDER_DETAILS,
        lambda: order_router.get_order_details(credential.broker_id, credential, reference),
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
    )
    return to_response(result)


@router.get("/intraday")
def intraday(broker: str, instrument_key: str | None = Query(None), resolution: str | None = Query(None),
             token: str = Depends(get_bearer_token), order_router: OrderRouter = Depends(get_order_router),
             settings: Settings = Depends(get_settings)):
    credential = _credential(broker, token)
    try:
        query = IntradayQuery(instrument_key=instrument_key, resolution=resolution)
    except ValidationError as e:
        return to_response(_invalid(e))
    result = with_read_retry(
        Capability.GET_INTRADAY_DATA,
        lambda: order_router.get_intraday_data(credential.broker_id, credential, query),
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
    )
    return to_response(result)
