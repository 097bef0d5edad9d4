from __future__ import annotations
from typing import Any, Mapping, Protocol

import requests
from loguru import logger

from brokerbridge.errors import HTTPStatusFailure, TransportConnectionError, TransportTimeout


class BrokerTransport(Protocol):
    def request(self, method: str, path: str, *, json: Any = None, params: Mapping[str, Any] | None = None,
                headers: Mapping[str, str] | None = None) -> Any: ...

    def close(self) -> None: ...


def _decode(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class HttpTransport:
    """One ``requests.Session`` per routed call; never shared between credentials."""

    def __init__(self, base_url: str, timeout: float = 10.0, headers: Mapping[str, str] | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
        if headers:
            self.session.headers.update(headers)

    def request(self, method: str, path: str, *, json: Any = None, params: Mapping[str, Any] | None = None,
                headers: Mapping[str, str] | None = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("{} {}", method, url)
        try:
            response = self.session.request(method, url, json=json, params=params, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise TransportTimeout(f"Timed out after {self.timeout}s calling {url}") from e
        except requests.RequestException as e:
            raise TransportConnectionError(f"Request to {url} failed: {e}") from e

        body = _decode(response)
        if not response.ok:
            message = None
            if isinstance(body, dict):
                message = body.get("message") or body.get("emsg")
            raise HTTPStatusFailure(response.status_code, body, message)
        return body

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
