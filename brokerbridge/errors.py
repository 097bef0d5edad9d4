"""Error taxonomy shared by every broker adapter.

Brokers report failures in incompatible ways: HTTP statuses, ``errorcode``
strings, negative integer codes, ``stat: Not_Ok`` envelopes. Each adapter
owns an :class:`ErrorTable` that folds its own statuses and codes into one
:class:`ErrorKind`, so callers branch on the kind instead of parsing messages.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class ErrorKind(str, Enum):
    VALIDATION_FAILED = "ValidationFailed"
    UNKNOWN_BROKER = "UnknownBroker"
    UNSUPPORTED_OPERATION = "UnsupportedOperation"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    RATE_LIMITED = "RateLimited"
    BROKER_REJECTED = "BrokerRejected"
    TRANSPORT_ERROR = "TransportError"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"

    @property
    def retryable(self) -> bool:
        # Retry is the caller's decision; this only says whether it can help
        return self in _RETRYABLE


_RETRYABLE = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.TRANSPORT_ERROR, ErrorKind.TIMEOUT})

DEFAULT_STATUS_KINDS: dict[int, ErrorKind] = {
    400: ErrorKind.BROKER_REJECTED,
    401: ErrorKind.AUTHENTICATION_FAILED,
    403: ErrorKind.AUTHENTICATION_FAILED,
    404: ErrorKind.BROKER_REJECTED,
    408: ErrorKind.TIMEOUT,
    422: ErrorKind.BROKER_REJECTED,
    429: ErrorKind.RATE_LIMITED,
    502: ErrorKind.TRANSPORT_ERROR,
    503: ErrorKind.TRANSPORT_ERROR,
    504: ErrorKind.TIMEOUT,
}


class ErrorTable:
    """Table-driven ``(status, code) -> ErrorKind`` lookup.

    Lookup order: broker code, then message fragment (for brokers that only
    send text), then HTTP status. Anything unknown is :attr:`ErrorKind.UNKNOWN`,
    except a well-formed failure envelope, which is the broker saying no and
    maps to :attr:`ErrorKind.BROKER_REJECTED`.
    """

    def __init__(self, codes: Mapping[str, ErrorKind] | None = None, statuses: Mapping[int, ErrorKind] | None = None,
                 messages: Mapping[str, ErrorKind] | None = None) -> None:
        self.codes = {str(k): v for k, v in (codes or {}).items()}
        self.messages = {k.lower(): v for k, v in (messages or {}).items()}
        self.statuses = dict(DEFAULT_STATUS_KINDS)
        self.statuses.update(statuses or {})

    def classify(self, status: int | None = None, code: Any = None, message: str | None = None,
                 envelope: bool = False) -> ErrorKind:
        if code is not None and str(code) in self.codes:
            return self.codes[str(code)]
        if message:
            lowered = message.lower()
            for fragment, kind in self.messages.items():
                if fragment in lowered:
                    return kind
        if status is not None and status in self.statuses:
            return self.statuses[status]
        if envelope:
            return ErrorKind.BROKER_REJECTED
        return ErrorKind.UNKNOWN


class BrokerError(Exception):
    """Raised inside the core for failures that carry a kind but no broker response."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


# -------------------- transport failures --------------------

class TransportFailure(Exception):
    """Base class for everything the broker transport can raise."""

    kind = ErrorKind.TRANSPORT_ERROR


class TransportConnectionError(TransportFailure):
    pass


class TransportTimeout(TransportFailure):
    kind = ErrorKind.TIMEOUT


class HTTPStatusFailure(TransportFailure):
    """The broker answered with a non-2xx status."""

    kind = ErrorKind.UNKNOWN

    def __init__(self, status: int, body: Any = None, message: str | None = None) -> None:
        super().__init__(message or f"Broker responded with HTTP {status}")
        self.status = status
        self.body = body
