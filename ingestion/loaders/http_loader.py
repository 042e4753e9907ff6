"""
HTTP sink: one JSON request per payload, with status classification.

Status codes map to delivery outcomes:
    2xx                 -> SendResult(SUCCESS)
    429                 -> RateLimitSignal (retry after the server delay)
    5xx, 408            -> TransientSinkError (retry with backoff)
    other 4xx           -> PermanentSinkError (no retry)
    timeout / transport -> TransientSinkError
"""

import httpx
import json
from typing import Any, Callable, Dict, Optional
import logging

from ingestion.base import Sink
from models.base import SendStatus
from schemas.payloads import DXPayload
from schemas.results import SendResult
from core.exceptions import PermanentSinkError, RateLimitSignal, TransientSinkError

logger = logging.getLogger(__name__)

RESPONSE_EXCERPT_CHARS = 300
DEFAULT_RETRY_AFTER_SECONDS = 60.0
USER_AGENT = "dx-importers/1.0"

# (response, decoded body or None) -> None; raise SinkError to reject a 2xx
ResponseCheck = Callable[[httpx.Response, Any], None]


def classify_status_code(status_code: int) -> SendStatus:
    """HTTP status code -> delivery outcome"""
    if 200 <= status_code < 300:
        return SendStatus.SUCCESS
    if status_code in (408, 429) or status_code >= 500:
        return SendStatus.RETRYABLE
    return SendStatus.PERMANENT


def parse_retry_after(value: Optional[str], default: float = DEFAULT_RETRY_AFTER_SECONDS) -> float:
    """``Retry-After`` seconds; absent or non-numeric values fall back to ``default``"""
    if value is None:
        return default
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return default
    return seconds if seconds >= 0 else default


def excerpt(text: Optional[str], limit: int = RESPONSE_EXCERPT_CHARS) -> str:
    return (text or "")[:limit]


def to_body(payload: Any) -> Any:
    """JSON-ready form of a payload"""
    if isinstance(payload, DXPayload):
        return payload.to_wire()
    return payload


def reject_ok_false(response: httpx.Response, data: Any) -> None:
    """Treat ``{"ok": false, ...}`` bodies as permanent failures despite a 2xx"""
    if isinstance(data, dict) and data.get("ok") is False:
        raise PermanentSinkError(
            f"Endpoint reported ok=false: {data.get('error') or 'no error given'}",
            context={"target": str(response.request.url)},
            status_code=response.status_code,
            response_body=excerpt(response.text),
        )


class HTTPSink(Sink):
    """
    Deliver payloads to an HTTP endpoint.

    POST sends the payload as the JSON body; GET sends it as query
    parameters. Bearer auth when a token is given, or any ``httpx`` auth.
    The client is shared when passed in and owned (closed by ``aclose``)
    otherwise.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        method: str = "POST",
        timeout: float = 30.0,
        auth: Optional[httpx.Auth] = None,
        headers: Optional[Dict[str, str]] = None,
        response_check: Optional[ResponseCheck] = None,
    ):
        self.url = url
        self.token = token
        self.method = method.upper()
        self.timeout = timeout
        self.auth = auth
        self.response_check = response_check
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

        self.headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if self.method != "GET":
            self.headers["Content-Type"] = "application/json"
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        if headers:
            self.headers.update(headers)

    @property
    def target(self) -> str:
        return self.url

    def preview(self, payload: Any) -> str:
        body = json.dumps(to_body(payload), sort_keys=False, default=str)
        return f"{self.method} {self.url} {body}"

    async def deliver(self, payload: Any) -> SendResult:
        body = to_body(payload)
        request_kwargs: Dict[str, Any] = {"headers": self.headers, "timeout": self.timeout}
        if self.auth is not None:
            request_kwargs["auth"] = self.auth
        if self.method == "GET":
            request_kwargs["params"] = body or None
        else:
            request_kwargs["json"] = body

        try:
            response = await self.client.request(self.method, self.url, **request_kwargs)
        except httpx.TimeoutException as e:
            raise TransientSinkError(
                "Request timed out",
                context={"target": self.url, "timeout": self.timeout},
                original_exception=e,
            )
        except httpx.TransportError as e:
            raise TransientSinkError(
                "Transport error",
                context={"target": self.url},
                original_exception=e,
            )

        return self.handle_response(response)

    def handle_response(self, response: httpx.Response) -> SendResult:
        """Classify a response; raise for anything but success"""
        status_code = response.status_code
        body_excerpt = excerpt(response.text)
        outcome = classify_status_code(status_code)

        if status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise RateLimitSignal(
                "Rate limited",
                context={"target": self.url},
                response_body=body_excerpt,
                retry_after=retry_after,
            )

        if outcome == SendStatus.RETRYABLE:
            raise TransientSinkError(
                f"HTTP {status_code}",
                context={"target": self.url},
                status_code=status_code,
                response_body=body_excerpt,
            )

        if outcome == SendStatus.PERMANENT:
            raise PermanentSinkError(
                f"HTTP {status_code}",
                context={"target": self.url},
                status_code=status_code,
                response_body=body_excerpt,
            )

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = None

        if self.response_check is not None:
            self.response_check(response, data)

        return SendResult(
            status=SendStatus.SUCCESS,
            status_code=status_code,
            body=body_excerpt,
            data=data,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
