"""
Shared pytest fixtures for firebase-sdk tests.

This module provides a fake Transport and a fake streaming connection so
the streaming core can be driven without a network, plus helpers for
building SSE byte streams.
"""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from firebase_sdk.config import ClientConfig


_EOF = object()


def sse(*frames: tuple[str, str]) -> bytes:
    """Encode (event, data) pairs the way Firebase sends them."""
    return b"".join(
        f"event: {event}\ndata: {data}\n\n".encode("utf-8") for event, data in frames
    )


class FakeConnection:
    """
    In-memory stand-in for a streaming httpx.Response.

    Chunks are queued up front or pushed while the test runs. Unless
    held open, the body ends with a clean EOF after the initial chunks.
    Closing the connection makes a pending read fail, like a socket
    closed from another task.
    """

    def __init__(self, *chunks: bytes, hold_open: bool = False, error: Optional[Exception] = None):
        self.status_code = 200
        self.close_count = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        for chunk in chunks:
            self._queue.put_nowait(chunk)
        if error is not None:
            self._queue.put_nowait(error)
        elif not hold_open:
            self._queue.put_nowait(_EOF)

    def push(self, chunk: bytes) -> None:
        self._queue.put_nowait(chunk)

    def finish(self) -> None:
        self._queue.put_nowait(_EOF)

    async def aiter_bytes(self):
        while True:
            item = await self._queue.get()
            if item is _EOF:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def aclose(self) -> None:
        self.close_count += 1
        self._queue.put_nowait(ConnectionResetError("connection closed"))


class FakeTransport:
    """Transport double that hands out a prepared FakeConnection."""

    def __init__(self, connection: Optional[FakeConnection] = None):
        self.connection = connection
        self.stream_calls: list[tuple] = []
        self.call = AsyncMock(return_value=None)
        self.aclose = AsyncMock()

    async def stream(self, url, auth=None, params=None):
        self.stream_calls.append((url, auth, params))
        return self.connection


async def collect(session, timeout: float = 2.0) -> list:
    """Drain a session, failing the test if it never closes."""
    async def drain():
        return [event async for event in session]

    return await asyncio.wait_for(drain(), timeout)


@pytest.fixture
def config():
    """ClientConfig with small, explicit values."""
    return ClientConfig(
        connect_timeout=5.0,
        read_timeout=5.0,
        max_retries=2,
        stream_buffer_size=16,
    )


@pytest.fixture
def fake_transport():
    """FakeTransport without a connection; tests attach one."""
    return FakeTransport()


@pytest.fixture
def widget_payload():
    """The put/patch data line used across streaming tests."""
    return '{"path": "1/2/3", "data": {"a":1}}'
