"""
Location: python/firebase_sdk/transport.py

Summary:
    HTTP transport layer for the Firebase REST API. Defines the Transport
    protocol the client and the streaming core depend on, and the default
    httpx-based implementation.

Usage:
    FirebaseClient uses HttpxTransport unless another Transport is passed
    in. Tests (and callers who want to stub Firebase out) can implement
    the protocol themselves: the streaming core only needs stream(), and
    the CRUD methods only need call().

Example:
    from firebase_sdk.transport import HttpxTransport

    transport = HttpxTransport()
    value = await transport.call("GET", "https://my-app.firebaseio.com/users")
    response = await transport.stream("https://my-app.firebaseio.com/users")
"""

import json
import logging
from typing import Any, AsyncGenerator, Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from .config import ClientConfig

logger = logging.getLogger(__name__)

EVENT_STREAM = "text/event-stream"

_BODY_METHODS = ("POST", "PUT", "PATCH")


class FirebaseError(Exception):
    """
    Exception raised when Firebase answers with an error status.

    Attributes:
        message: Error message reported by Firebase (or the HTTP reason)
        status_code: HTTP status code of the response
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @classmethod
    def from_response(cls, response: httpx.Response) -> "FirebaseError":
        """
        Build an error from a response whose body has been read.

        Firebase reports errors as {"error": "..."}; anything else falls
        back to the body text or the reason phrase.
        """
        message = ""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            message = body["error"]
        if not message:
            message = response.text or response.reason_phrase
        return cls(message, status_code=response.status_code)


@runtime_checkable
class StreamConnection(Protocol):
    """
    A long lived response whose body is read incrementally.

    httpx.Response opened with stream=True satisfies this protocol.
    """

    status_code: int

    def aiter_bytes(self) -> AsyncGenerator[bytes, None]:
        """Iterate over the body as it arrives; the session aclose()s it."""
        ...

    async def aclose(self) -> None:
        """Close the connection, unblocking any pending read."""
        ...


@runtime_checkable
class Transport(Protocol):
    """
    Protocol for the HTTP operations the client performs.

    Both operations take the bare Firebase URL; composing the ".json"
    suffix and the query string is the transport's job.
    """

    async def call(
        self,
        method: str,
        url: str,
        auth: Optional[str] = None,
        body: Any = None,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        Perform a request/response call.

        Args:
            method: HTTP method
            url: Firebase location URL
            auth: Optional auth token, sent as the "auth" query parameter
            body: Value to send as JSON
            params: Extra query parameters (override auth)

        Returns:
            The decoded JSON response, or None for an empty body

        Raises:
            FirebaseError: If Firebase answers with an error status
        """
        ...

    async def stream(
        self,
        url: str,
        auth: Optional[str] = None,
        params: Optional[dict[str, str]] = None,
    ) -> StreamConnection:
        """
        Open an SSE connection to a location.

        Args:
            url: Firebase location URL
            auth: Optional auth token
            params: Extra query parameters

        Returns:
            An open connection, positioned before the first body byte

        Raises:
            FirebaseError: If Firebase answers with an error status
        """
        ...

    async def aclose(self) -> None:
        """Release pooled connections."""
        ...


def build_query(auth: Optional[str], params: Optional[dict[str, str]]) -> dict[str, str]:
    """
    Compose the query string for a call.

    The auth token goes first so a per-call "auth" param overrides it.
    """
    query = {}
    if auth:
        query["auth"] = auth
    query.update(params or {})
    return query


def encode_body(body: Any) -> bytes:
    """JSON-encode a request body; pydantic models are dumped by alias."""
    if isinstance(body, BaseModel):
        body = body.model_dump(mode="json", by_alias=True)
    return json.dumps(body).encode("utf-8")


class HttpxTransport:
    """
    Default Transport built on httpx.

    Keeps two connection pools: one for regular calls, and one for SSE
    streams, which are exempt from the read timeout unless
    ClientConfig.stream_timeout says otherwise.

    Attributes:
        config: Timeouts, retries and pool limits in use
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize both HTTP clients.

        Args:
            config: Connection tunables (read from the environment if None)
            http_transport: Optional httpx transport to route requests
                through, e.g. httpx.MockTransport in tests
        """
        self.config = config or ClientConfig()

        self._http = httpx.AsyncClient(
            timeout=self.config.http_timeout(),
            transport=http_transport or httpx.AsyncHTTPTransport(limits=self.config.limits()),
        )
        self._stream_http = httpx.AsyncClient(
            timeout=self.config.stream_http_timeout(),
            transport=http_transport or httpx.AsyncHTTPTransport(limits=self.config.limits()),
        )

    async def aclose(self) -> None:
        """Close both HTTP clients."""
        await self._http.aclose()
        await self._stream_http.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args) -> None:
        """Exit async context manager and close resources."""
        await self.aclose()

    async def call(
        self,
        method: str,
        url: str,
        auth: Optional[str] = None,
        body: Any = None,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        Perform a request/response call, retrying transient failures.

        Transport errors and 5xx responses are retried up to
        config.max_retries times. Other error statuses fail immediately.

        Args:
            method: HTTP method
            url: Firebase location URL (".json" is appended)
            auth: Optional auth token
            body: Value to send as JSON for POST/PUT/PATCH
            params: Extra query parameters

        Returns:
            The decoded JSON response, or None for an empty body

        Raises:
            FirebaseError: If Firebase answers with an error status
            httpx.TransportError: If the request keeps failing
        """
        content = encode_body(body) if method.upper() in _BODY_METHODS else None
        request = self._http.build_request(
            method,
            url + ".json",
            params=build_query(auth, params),
            content=content,
        )

        retries = self.config.max_retries
        while True:
            try:
                response = await self._http.send(request)
            except httpx.TransportError as exc:
                if retries <= 0:
                    raise
                retries -= 1
                logger.warning("Retry %s %s: %s", method, url, exc)
                continue

            if response.status_code >= 500 and retries > 0:
                retries -= 1
                logger.warning("Retry %s %s: status code %d", method, url,
                               response.status_code)
                continue

            break

        if response.status_code >= 400:
            raise FirebaseError.from_response(response)

        if not response.content:
            return None
        return response.json()

    async def stream(
        self,
        url: str,
        auth: Optional[str] = None,
        params: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Open an SSE connection to a location.

        Args:
            url: Firebase location URL (".json" is appended)
            auth: Optional auth token
            params: Extra query parameters

        Returns:
            The streaming httpx.Response; the caller must aclose() it

        Raises:
            FirebaseError: If Firebase answers with an error status
            httpx.TransportError: If the connection cannot be established
        """
        request = self._stream_http.build_request(
            "GET",
            url + ".json",
            params=build_query(auth, params),
            headers={"Accept": EVENT_STREAM},
        )
        response = await self._stream_http.send(request, stream=True)

        if response.status_code >= 400:
            try:
                await response.aread()
            finally:
                await response.aclose()
            raise FirebaseError.from_response(response)

        return response
