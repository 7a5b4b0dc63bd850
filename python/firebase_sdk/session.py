"""
Location: python/firebase_sdk/session.py

Summary:
    Watch session lifecycle. Owns one SSE connection, the bounded channel
    events are delivered on, and the two background tasks that drive it:
    a reader (parser -> decoder -> channel) and a watchdog that severs the
    connection when the session is cancelled.

Usage:
    Created by FirebaseClient.watch(); open_stream() is the lower level
    entry point for callers holding their own Transport. Callers iterate
    the session until it is exhausted; the last event delivered is always
    marked terminal. Connection failures are raised by open_stream()
    itself, everything after that arrives as events.

Example:
    from firebase_sdk.session import open_stream

    session = await open_stream(transport, "https://my-app.firebaseio.com/rooms")
    async with session:
        async for event in session:
            if event.stream_error:
                print("stream ended:", event.stream_error)
            elif event.decode_error:
                print("skipping bad event:", event.decode_error)
            else:
                print(event.path, event.decoded_object)
"""

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional, Union

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream

from .decoder import DecodeResult, EventDecoder, StreamError
from .stream import read_frames
from .transport import StreamConnection, Transport
from .types import ChangeEvent, RawFrame, TerminalSignal, Unmarshaller

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 1000


class StreamCancelledError(StreamError):
    """The session was cancelled by its owner."""

    def __init__(self, message: str = "Stream cancelled"):
        super().__init__(message)


class StreamSession:
    """
    A running watch on one location.

    Iterating the session yields ChangeEvents in wire order. The channel
    is bounded: when the consumer falls behind, the reader stops pulling
    from the socket until there is room again, so nothing is dropped.

    Attributes:
        events: Receiving end of the event channel
    """

    def __init__(
        self,
        connection: StreamConnection,
        decoder: EventDecoder,
        stop: Optional[asyncio.Event] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        """
        Initialize the session. Nothing runs until start() is called.

        Args:
            connection: Open SSE connection, owned by the session from now on
            decoder: Decoder applied to every frame
            stop: Optional event that cancels the session when set
            buffer_size: Capacity of the event channel
        """
        self._connection = connection
        self._connection_closed = False
        self._decoder = decoder
        self._stop = stop or asyncio.Event()

        self._send, self.events = anyio.create_memory_object_stream(buffer_size)

        self._reader: Optional[asyncio.Task] = None
        self._watchdog: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start the reader and watchdog tasks."""
        if self._reader is not None:
            raise RuntimeError("StreamSession already started")
        self._watchdog = asyncio.create_task(self._watch_for_stop())
        self._reader = asyncio.create_task(self._read())

    @property
    def closed(self) -> bool:
        """True once the reader has finished and the channel is closed."""
        return self._reader is not None and self._reader.done()

    def cancel(self) -> None:
        """
        Cancel the session.

        Closes the connection, which ends the blocked read; the consumer
        then receives a terminal event carrying StreamCancelledError.
        Safe to call any number of times, including after the stream has
        already ended.
        """
        self._stop.set()

    async def wait_closed(self) -> None:
        """
        Wait until the channel is closed and the connection released.

        The watchdog may still be closing the connection after the reader
        has finished, so both tasks are awaited.
        """
        tasks = [task for task in (self._reader, self._watchdog) if task is not None]
        if tasks:
            await asyncio.wait(tasks)

    async def aclose(self) -> None:
        """
        Cancel the session and discard any undelivered events.

        Returns once the connection is released.
        """
        self.cancel()
        self.events.close()
        await self.wait_closed()

    async def __aenter__(self) -> "StreamSession":
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args) -> None:
        """Exit async context manager and close the session."""
        await self.aclose()

    def __aiter__(self) -> MemoryObjectReceiveStream[ChangeEvent]:
        return self.events

    async def _watch_for_stop(self) -> None:
        await self._stop.wait()
        logger.debug("Stream cancelled, closing connection")
        await self._close_connection()

    async def _read(self) -> None:
        try:
            async with self._send:
                async with aclosing(self._connection.aiter_bytes()) as chunks:
                    async with aclosing(read_frames(chunks)) as items:
                        await self._deliver(items)
        except anyio.BrokenResourceError:
            logger.debug("Event consumer went away, stopping stream")
        finally:
            # Once stop is set the watchdog owns the close; let it finish
            if self._watchdog is not None and not self._stop.is_set():
                self._watchdog.cancel()
            await self._close_connection()
            logger.debug("Stream session closed")

    async def _deliver(self, items: AsyncIterator[Union[RawFrame, TerminalSignal]]) -> None:
        async for item in items:
            if isinstance(item, TerminalSignal) and self._stop.is_set():
                item = self._cancelled(item)

            try:
                result = self._decoder.decode(item)
            except Exception as exc:
                logger.exception("Event decoding failed, ending stream")
                result = DecodeResult(
                    ChangeEvent(stream_error=exc, terminal=True),
                    fatal=True,
                )

            if result.event is not None:
                await self._send.send(result.event)
            if result.fatal:
                return

    def _cancelled(self, signal: TerminalSignal) -> TerminalSignal:
        error = StreamCancelledError()
        error.__cause__ = signal.error
        return TerminalSignal(error=error)

    async def _close_connection(self) -> None:
        if self._connection_closed:
            return
        self._connection_closed = True
        await self._connection.aclose()


async def open_stream(
    transport: Transport,
    url: str,
    auth: Optional[str] = None,
    params: Optional[dict[str, str]] = None,
    *,
    unmarshaller: Optional[Unmarshaller] = None,
    stop: Optional[asyncio.Event] = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> StreamSession:
    """
    Open an SSE connection and start delivering its events.

    Returns as soon as the connection is established; events are read
    in the background.

    Args:
        transport: Transport used to open the connection
        url: Firebase location URL
        auth: Optional auth token
        params: Extra query parameters (ordering, filtering)
        unmarshaller: Payload decoder for put/patch events
        stop: Optional event that cancels the session when set
        buffer_size: Capacity of the event channel

    Returns:
        The running StreamSession

    Raises:
        FirebaseError: If Firebase answers with an error status
        httpx.TransportError: If the connection cannot be established
    """
    connection = await transport.stream(url, auth, params)
    logger.debug("Opened stream to %s", url)

    session = StreamSession(
        connection,
        EventDecoder(unmarshaller),
        stop=stop,
        buffer_size=buffer_size,
    )
    session.start()
    return session
