"""Broker-independent order validation.

``validate`` never stops at the first problem: it walks the canonical field
list once for presence and vocabulary, then once more for the per-order-type
rules, and returns every violation in the order the fields were visited.
Broker-specific limits (unsupported products, tag length, instrument tokens)
are left to the adapters.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from pydantic.alias_generators import to_camel

from brokerbridge.models import (
    PRICED_ORDER_TYPES,
    TRIGGERED_ORDER_TYPES,
    BrokerId,
    Exchange,
    NormalizedOrder,
    OrderType,
    ProductType,
    Side,
    Validity,
    Violation,
)

REQUIRED_FIELDS: tuple[tuple[str, type[Enum] | None], ...] = (
    ("broker_id", BrokerId),
    ("symbol", None),
    ("exchange", Exchange),
    ("side", Side),
    ("order_type", OrderType),
    ("product_type", ProductType),
    ("quantity", None),
    ("validity", Validity),
)

_ALIASES = {to_camel(name): name for name in NormalizedOrder.model_fields}


@dataclass(frozen=True)
class ValidationResult:
    order: NormalizedOrder | None
    violations: tuple[Violation, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.violations


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_enum(enum_cls: type[Enum], value: Any) -> Enum | None:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().upper())
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        # isdigit() also passes "--5", superscripts and over-long digit runs
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float, str)):
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        return d if d.is_finite() else None
    return None


def _canonical(candidate: NormalizedOrder | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(candidate, NormalizedOrder):
        return candidate.model_dump()
    return {_ALIASES.get(k, k): v for k, v in candidate.items()}


def _enum_names(enum_cls: type[Enum]) -> str:
    return ", ".join(m.value for m in enum_cls)


def _required_decimal(data: dict, name: str, reason: str, out: dict, violations: list) -> None:
    value = data.get(name)
    if _missing(value):
        violations.append(Violation(field=name, code="missing", message=f"{name} is required {reason}"))
        return
    parsed = _as_decimal(value)
    if parsed is None:
        violations.append(Violation(field=name, code="invalid", message=f"{name} must be a decimal number"))
    elif parsed <= 0:
        violations.append(Violation(field=name, code="not_positive", message=f"{name} must be greater than 0"))
    else:
        out[name] = parsed


def validate(candidate: NormalizedOrder | Mapping[str, Any]) -> ValidationResult:
    data = _canonical(candidate)
    violations: list[Violation] = []
    out: dict[str, Any] = {}

    # Pass 1: presence and vocabulary of the full required set
    for name, enum_cls in REQUIRED_FIELDS:
        value = data.get(name)
        if _missing(value):
            violations.append(Violation(field=name, code="missing", message=f"{name} is required"))
            continue
        if enum_cls is not None:
            parsed = _as_enum(enum_cls, value)
            if parsed is None:
                violations.append(Violation(field=name, code="invalid",
                                            message=f"{name} must be one of: {_enum_names(enum_cls)}"))
                continue
            out[name] = parsed
        elif name == "quantity":
            parsed = _as_int(value)
            if parsed is None:
                violations.append(Violation(field=name, code="invalid", message="quantity must be an integer"))
                continue
            out[name] = parsed
        else:
            if not isinstance(value, str):
                violations.append(Violation(field=name, code="invalid", message=f"{name} must be a string"))
                continue
            out[name] = value.strip()

    # Pass 2: rules that depend on other fields
    quantity = out.get("quantity")
    if quantity is not None and quantity <= 0:
        violations.append(Violation(field="quantity", code="not_positive", message="quantity must be greater than 0"))
        quantity = None

    # Prices on order types that do not use them are dropped, not rejected
    order_type = out.get("order_type")
    if order_type in PRICED_ORDER_TYPES:
        _required_decimal(data, "price", f"for {order_type.value} orders", out, violations)
    if order_type in TRIGGERED_ORDER_TYPES:
        _required_decimal(data, "trigger_price", f"for {order_type.value} orders", out, violations)

    disclosed = data.get("disclosed_quantity")
    if _missing(disclosed):
        out["disclosed_quantity"] = 0
    else:
        parsed = _as_int(disclosed)
        if parsed is None:
            violations.append(Violation(field="disclosed_quantity", code="invalid",
                                        message="disclosed_quantity must be an integer"))
        elif parsed < 0:
            violations.append(Violation(field="disclosed_quantity", code="negative",
                                        message="disclosed_quantity must not be negative"))
        elif quantity is not None and parsed > quantity:
            violations.append(Violation(field="disclosed_quantity", code="exceeds_quantity",
                                        message="disclosed_quantity must not exceed quantity"))
        else:
            out["disclosed_quantity"] = parsed

    for name in ("tag", "symbol_token"):
        value = data.get(name)
        if _missing(value):
            continue
        if not isinstance(value, str):
            violations.append(Violation(field=name, code="invalid", message=f"{name} must be a string"))
        else:
            out[name] = value.strip()

    if out.get("product_type") is ProductType.BRACKET:
        _required_decimal(data, "stop_loss", "for BRACKET orders", out, violations)
        _required_decimal(data, "target", "for BRACKET orders", out, violations)
        trailing = data.get("trailing_stop_loss")
        if not _missing(trailing):
            parsed = _as_decimal(trailing)
            if parsed is None or parsed < 0:
                violations.append(Violation(field="trailing_stop_loss", code="invalid",
                                            message="trailing_stop_loss must be a non-negative decimal"))
            else:
                out["trailing_stop_loss"] = parsed

    if violations:
        return ValidationResult(order=None, violations=tuple(violations))
    return ValidationResult(order=NormalizedOrder(**out))
