"""
Location: python/firebase_sdk/__init__.py

Summary:
    Main package initialization for firebase-sdk. Exports all public classes
    and functions for convenient importing.

Usage:
    from firebase_sdk import FirebaseClient, ChangeEvent, EventType

    # Or import specific modules
    from firebase_sdk.session import open_stream
    from firebase_sdk.transport import HttpxTransport

Version: 0.1.0
"""

from .client import FirebaseClient, KEY_PROP
from .config import ClientConfig
from .types import (
    ChangeEvent,
    EventType,
    KeyedValue,
    RawFrame,
    Rules,
    TerminalSignal,
    Unmarshaller,
)
from .decoder import (
    AuthRevokedError,
    EnvelopeError,
    EventDecoder,
    PermissionDeniedError,
    StreamError,
    default_unmarshaller,
    model_unmarshaller,
)
from .session import StreamCancelledError, StreamSession, open_stream
from .stream import FrameParser, read_frames
from .transport import FirebaseError, HttpxTransport, StreamConnection, Transport

__version__ = "0.1.0"

__all__ = [
    # Main client
    "FirebaseClient",
    "KEY_PROP",
    "ClientConfig",
    # Types
    "ChangeEvent",
    "EventType",
    "KeyedValue",
    "RawFrame",
    "Rules",
    "TerminalSignal",
    "Unmarshaller",
    # Streaming
    "StreamSession",
    "open_stream",
    "FrameParser",
    "read_frames",
    "EventDecoder",
    "default_unmarshaller",
    "model_unmarshaller",
    # Transport
    "Transport",
    "StreamConnection",
    "HttpxTransport",
    # Exceptions
    "FirebaseError",
    "StreamError",
    "PermissionDeniedError",
    "AuthRevokedError",
    "StreamCancelledError",
    "EnvelopeError",
]
