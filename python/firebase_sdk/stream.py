"""
Location: python/firebase_sdk/stream.py

Summary:
    Server-Sent Events (SSE) frame parsing for the streaming API. Turns a
    response body's bytes into RawFrame objects, one per "event:"/"data:"
    line pair, followed by a single TerminalSignal.

Usage:
    Used by session.py to drive a watch session. The parser keeps no
    upper bound on line length: change payloads can be arbitrarily large
    JSON documents, so lines are accumulated in a growing buffer rather
    than a fixed-size scanner.

Example:
    from firebase_sdk.stream import read_frames

    async for item in read_frames(response.aiter_bytes()):
        if isinstance(item, TerminalSignal):
            break
        print(item.event_type, item.data)
"""

import logging
from enum import Enum
from typing import AsyncIterable, AsyncIterator, Optional, Union

from .types import RawFrame, TerminalSignal

logger = logging.getLogger(__name__)

EVENT_PREFIX = "event: "
DATA_PREFIX = "data: "


class _State(Enum):
    AWAITING_EVENT_LINE = 1
    AWAITING_DATA_LINE = 2


class FrameParser:
    """
    Incremental parser for the event/data line-pair framing.

    Feed it chunks of bytes as they arrive; it returns every frame the
    chunk completes. Empty lines are skipped, so the blank separator
    between messages is optional.

    Attributes:
        pending: True while a partial line or an unpaired event line is held
    """

    def __init__(self):
        """Initialize an empty line buffer."""
        self._buffer = bytearray()
        self._scanned = 0
        self._state = _State.AWAITING_EVENT_LINE
        self._event_type: Optional[str] = None

    @property
    def pending(self) -> bool:
        return bool(self._buffer) or self._state is _State.AWAITING_DATA_LINE

    def feed(self, chunk: bytes) -> list[RawFrame]:
        """
        Consume a chunk of the byte stream.

        Args:
            chunk: Bytes read from the response body, split anywhere

        Returns:
            Frames completed by this chunk, in wire order
        """
        self._buffer.extend(chunk)
        frames = []
        start = 0

        while True:
            # Don't rescan what we already know holds no newline
            newline = self._buffer.find(b"\n", max(start, self._scanned))
            if newline < 0:
                break

            line = bytes(self._buffer[start:newline])
            start = newline + 1

            frame = self._take_line(line)
            if frame is not None:
                frames.append(frame)

        if start:
            del self._buffer[:start]
        self._scanned = len(self._buffer)
        return frames

    def _take_line(self, raw: bytes) -> Optional[RawFrame]:
        line = raw.decode("utf-8", errors="replace")
        if line.endswith("\r"):
            line = line[:-1]
        if not line:
            return None

        if self._state is _State.AWAITING_EVENT_LINE:
            self._event_type = line.removeprefix(EVENT_PREFIX)
            self._state = _State.AWAITING_DATA_LINE
            return None

        frame = RawFrame(
            event_type=self._event_type or "",
            data=line.removeprefix(DATA_PREFIX),
        )
        self._event_type = None
        self._state = _State.AWAITING_EVENT_LINE
        return frame


async def read_frames(
    chunks: AsyncIterable[bytes]
) -> AsyncIterator[Union[RawFrame, TerminalSignal]]:
    """
    Parse an SSE byte stream into frames.

    Yields every RawFrame in wire order, then exactly one TerminalSignal.
    A clean end of stream gives a signal without an error; a failing read
    (including a connection closed from another task) is captured into
    the signal instead of being raised.

    Args:
        chunks: Async iterable of body bytes, e.g. httpx.Response.aiter_bytes()

    Yields:
        RawFrame objects, then a single TerminalSignal

    Example:
        async for item in read_frames(response.aiter_bytes()):
            if isinstance(item, TerminalSignal):
                print("stream ended", item.error)
    """
    parser = FrameParser()
    error: Optional[Exception] = None

    try:
        async for chunk in chunks:
            for frame in parser.feed(chunk):
                yield frame
    except Exception as exc:
        error = exc
    else:
        if parser.pending:
            logger.debug("Discarding partial frame at end of stream")

    yield TerminalSignal(error=error)
