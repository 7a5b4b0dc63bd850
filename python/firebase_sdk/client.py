"""
Location: python/firebase_sdk/client.py

Summary:
    Main FirebaseClient class for the firebase-sdk. A client is a reference
    to one location in a Firebase Realtime Database: it can read, write,
    push, update and remove the data there, manage security rules, and
    watch the location for changes in real time.

Usage:
    The primary entry point for using the SDK. Create a FirebaseClient for
    the database root, then derive references with child() and the query
    builders. References are cheap, immutable and share the root's
    transport.

Example:
    from firebase_sdk import FirebaseClient

    async with FirebaseClient("https://my-app.firebaseio.com", auth=token) as root:
        users = root.child("users")
        ada = await users.push({"name": "Ada"})
        await users.update(ada.key, {"age": 36})

        session = await users.order_by("age").limit_to_first(10).watch()
        async with session:
            async for event in session:
                print(event.event_type, event.path, event.decoded_object)
"""

import asyncio
import json
import re
from typing import Any, AsyncIterator, Optional, Type

from pydantic import BaseModel

from .config import ClientConfig
from .decoder import default_unmarshaller
from .session import StreamSession, open_stream
from .transport import HttpxTransport, Transport
from .types import KeyedValue, Rules, Unmarshaller

KEY_PROP = "$key"

RULES_PATH = "/.settings/rules"

_key_extractor = re.compile(r"https?://.*/([^/]+)/?$")


class FirebaseClient:
    """
    Reference to a Firebase location.

    Attributes:
        url: Absolute URL of the location
        auth: Optional auth token sent with every call
        params: Query parameters applied to reads and watches
        order: Property the reference is ordered by, if any
        config: Connection tunables in use
    """

    def __init__(
        self,
        url: str,
        auth: Optional[str] = None,
        transport: Optional[Transport] = None,
        config: Optional[ClientConfig] = None,
        params: Optional[dict[str, str]] = None,
    ):
        """
        Initialize the FirebaseClient.

        Args:
            url: Location URL (trailing slash removed)
            auth: Optional auth token; a per-call "auth" param overrides it
            transport: Optional Transport (an HttpxTransport is created if None)
            config: Optional ClientConfig (read from the environment if None)
            params: Optional query parameters for reads and watches
        """
        self.url = url.rstrip("/")
        self.auth = auth
        self.params = dict(params or {})
        self.order: Optional[str] = None
        self.config = config or ClientConfig()

        self._owns_transport = transport is None
        self._transport = transport or HttpxTransport(self.config)

    async def close(self) -> None:
        """
        Close the transport and release resources.

        Only closes a transport this client created itself. References
        derived from this client must not be used afterwards.
        """
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> "FirebaseClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args) -> None:
        """Exit async context manager and close resources."""
        await self.close()

    def __str__(self) -> str:
        return self.url

    def __repr__(self) -> str:
        return f"FirebaseClient({self.url!r})"

    @property
    def key(self) -> str:
        """
        Last segment of the location's path.

        The database root has no key, so a bare host returns "".
        """
        match = _key_extractor.search(self.url)
        if match is None:
            return ""
        return match.group(1)

    def _derive(self, url: str, params: Optional[dict[str, str]] = None) -> "FirebaseClient":
        ref = FirebaseClient(
            url,
            auth=self.auth,
            transport=self._transport,
            config=self.config,
            params=self.params if params is None else params,
        )
        ref.order = self.order
        return ref

    def _with_param(self, key: str, value: Any) -> "FirebaseClient":
        params = dict(self.params)
        params[key] = json.dumps(value)
        return self._derive(self.url, params)

    def child(self, path: str) -> "FirebaseClient":
        """
        Return a reference to the child at `path`.

        No request is made; the returned reference can then be read,
        written or watched.

        Args:
            path: Relative path of the child

        Returns:
            New FirebaseClient for the child location
        """
        return self._derive(f"{self.url}/{path}")

    def shallow(self) -> "FirebaseClient":
        """
        Return a reference that only reads the keys at this location.

        Only meaningful for objects; read literals with value().
        """
        params = dict(self.params)
        params["shallow"] = "true"
        return self._derive(self.url, params)

    # Query builders. They map directly to the REST query parameters:
    # https://firebase.google.com/docs/database/rest/retrieve-data#section-rest-filtering

    def order_by(self, prop: str) -> "FirebaseClient":
        """Order results by a child property, or by KEY_PROP."""
        ref = self._with_param("orderBy", prop)
        ref.order = prop
        return ref

    def equal_to(self, value: Any) -> "FirebaseClient":
        return self._with_param("equalTo", value)

    def start_at(self, value: Any) -> "FirebaseClient":
        return self._with_param("startAt", value)

    def end_at(self, value: Any) -> "FirebaseClient":
        return self._with_param("endAt", value)

    def limit_to_first(self, limit: int) -> "FirebaseClient":
        return self._with_param("limitToFirst", limit)

    def limit_to_last(self, limit: int) -> "FirebaseClient":
        return self._with_param("limitToLast", limit)

    async def value(self, model: Optional[Type[BaseModel]] = None) -> Any:
        """
        Read the value at this location.

        Args:
            model: Optional pydantic model to validate the value into

        Returns:
            The decoded JSON value (None if the location is empty), or a
            model instance when `model` is given

        Raises:
            FirebaseError: If Firebase answers with an error status
        """
        data = await self._transport.call("GET", self.url, self.auth, None, self.params)
        if model is not None:
            return model.model_validate(data)
        return data

    async def iterate(self) -> AsyncIterator[KeyedValue]:
        """
        Read this location and yield its children in key order.

        Yields:
            KeyedValue for each child

        Raises:
            FirebaseError: If Firebase answers with an error status
        """
        data = await self.value()
        if not isinstance(data, dict):
            return
        for key in sorted(data):
            yield KeyedValue(key=key, value=data[key])

    async def push(self, value: Any, params: Optional[dict[str, str]] = None) -> "FirebaseClient":
        """
        Create a new child with a generated key.

        Args:
            value: Value to store
            params: Optional query parameters for this call

        Returns:
            Reference to the newly created child

        Raises:
            FirebaseError: If Firebase answers with an error status
        """
        result = await self._transport.call("POST", self.url, self.auth, value, params)
        return self._derive(f"{self.url}/{result['name']}")

    async def set(self, path: str, value: Any, params: Optional[dict[str, str]] = None) -> "FirebaseClient":
        """
        Overwrite the value at `path`.

        Args:
            path: Relative path to write
            value: Value to store
            params: Optional query parameters for this call

        Returns:
            Reference to the written location

        Raises:
            FirebaseError: If Firebase answers with an error status
        """
        url = f"{self.url}/{path}"
        await self._transport.call("PUT", url, self.auth, value, params)
        return self._derive(url)

    async def update(self, path: str, value: Any, params: Optional[dict[str, str]] = None) -> None:
        """
        Partially update the value at `path`.

        Only the children present in `value` are written.

        Raises:
            FirebaseError: If Firebase answers with an error status
        """
        await self._transport.call("PATCH", f"{self.url}/{path}", self.auth, value, params)

    async def remove(self, path: str, params: Optional[dict[str, str]] = None) -> None:
        """
        Delete the data at `path`.

        Raises:
            FirebaseError: If Firebase answers with an error status
        """
        await self._transport.call("DELETE", f"{self.url}/{path}", self.auth, None, params)

    async def rules(self, params: Optional[dict[str, str]] = None) -> Rules:
        """
        Read the database's security rules.

        Args:
            params: Optional query parameters for this call

        Returns:
            The rules document
        """
        result = await self._transport.call("GET", self.url + RULES_PATH, self.auth, None, params)
        return result or {}

    async def set_rules(self, rules: Rules, params: Optional[dict[str, str]] = None) -> None:
        """Overwrite the database's security rules."""
        await self._transport.call("PUT", self.url + RULES_PATH, self.auth, rules, params)

    async def watch(
        self,
        unmarshaller: Optional[Unmarshaller] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> StreamSession:
        """
        Stream changes to this location in real time.

        Events are read in the background and delivered through the
        returned session. Decoding problems are reported per event and do
        not end the stream; a lost connection, a permission change or a
        revoked token ends it with a terminal event carrying the error.
        The session never reconnects; call watch() again for that.

        Args:
            unmarshaller: Decodes each event's raw data bytes. Defaults to
                plain JSON decoding (dicts for objects).
            stop: Optional event that cancels the watch when set. The
                session's cancel() method does the same.

        Returns:
            The running StreamSession

        Raises:
            FirebaseError: If Firebase refuses the connection
            httpx.TransportError: If the connection cannot be established
        """
        return await open_stream(
            self._transport,
            self.url,
            self.auth,
            self.params,
            unmarshaller=unmarshaller or default_unmarshaller,
            stop=stop,
            buffer_size=self.config.stream_buffer_size,
        )
