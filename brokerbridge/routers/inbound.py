"""Accept order bodies written in a broker's own vocabulary.

Clients of the old per-broker routes send ``qty``/``limitPrice``/``side: 1``
to Fyers, ``prctyp: "L"`` to AliceBlue and so on. The adapter's translation
table is read backwards to turn those into canonical field names and enum
values; canonical names and values pass through untouched.
"""
from __future__ import annotations
from typing import Any, Mapping

from brokerbridge.services.brokers.base import BrokerAdapter


def to_canonical(adapter_cls: type[BrokerAdapter], body: Mapping[str, Any]) -> dict[str, Any]:
    table = adapter_cls.translation
    out: dict[str, Any] = {}
    as_is: dict[str, Any] = {}
    for key, value in body.items():
        name = table.canonical_field(key)
        if name is None or name == key:
            as_is[key] = value
        else:
            out[name] = table.canonical_value(name, value)
    # Canonical spelling wins when a body carries both
    for key, value in as_is.items():
        out[key] = table.canonical_value(key, value)
    return out
