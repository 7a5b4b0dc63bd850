"""
Location: python/firebase_sdk/config.py

Summary:
    Connection tunables for the firebase-sdk HTTP transport. Values can be
    passed explicitly or picked up from FIREBASE_* environment variables.

Usage:
    Build a ClientConfig once and hand it to FirebaseClient (or directly to
    HttpxTransport). Nothing in the SDK reads the environment on its own;
    environment variables only matter when a ClientConfig is constructed.

Example:
    from firebase_sdk.config import ClientConfig

    # FIREBASE_STREAM_TIMEOUT=600 bounds how long a stream may sit idle
    config = ClientConfig(connect_timeout=10.0)
    client = FirebaseClient("https://my-app.firebaseio.com", config=config)
"""

from typing import Optional

import httpx
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientConfig(BaseSettings):
    """
    Timeouts, retries and pool sizes for talking to Firebase.

    Attributes:
        connect_timeout: Seconds allowed to establish a connection
        read_timeout: Read/write timeout in seconds for regular calls
        stream_timeout: Read timeout in seconds for SSE streams, 0 means never
        max_retries: How many times a failing regular call is retried
        max_idle_connections: Keep-alive connections kept in each pool
        stream_buffer_size: Events buffered per watch session before the
            reader waits for the consumer
    """
    connect_timeout: float = Field(300.0, ge=0)
    read_timeout: float = Field(100.0, ge=0)
    stream_timeout: float = Field(0.0, ge=0)
    max_retries: int = Field(10, ge=0)
    max_idle_connections: int = Field(30, ge=0)
    stream_buffer_size: int = Field(1000, ge=1)

    model_config = SettingsConfigDict(env_prefix="FIREBASE_", extra="ignore")

    def http_timeout(self) -> httpx.Timeout:
        """Timeout for short lived request/response calls."""
        return httpx.Timeout(self.read_timeout, connect=self.connect_timeout)

    def stream_http_timeout(self) -> httpx.Timeout:
        """
        Timeout for long lived SSE connections.

        Streams never time out reading unless stream_timeout is set.
        Firebase occasionally leaves a stream connected but silent, and
        a read timeout is the only way to bound that.
        """
        read: Optional[float] = self.stream_timeout or None
        return httpx.Timeout(read, connect=self.connect_timeout)

    def limits(self) -> httpx.Limits:
        """Connection pool limits shared by both HTTP clients."""
        return httpx.Limits(max_keepalive_connections=self.max_idle_connections)
