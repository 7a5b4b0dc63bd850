"""
Location: python/firebase_sdk/types.py

Summary:
    Pydantic models for the firebase-sdk. Defines the frames produced by the
    SSE parser, the change events delivered to watchers, and the small
    value types used by the CRUD client.

Usage:
    These models are imported by stream.py, decoder.py, session.py and
    client.py. Frames are ephemeral and immutable; ChangeEvent is what
    callers receive when they iterate a watch session.

Example:
    from firebase_sdk.types import ChangeEvent, EventType

    async for event in session:
        if event.kind is EventType.PUT and event.ok:
            print(event.path, event.decoded_object)
"""

from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel


Rules = dict[str, Any]
"""Security rules document. Opaque to the client."""

Unmarshaller = Callable[[bytes], Any]
"""Turns the raw JSON of an event's data field into an object."""


class EventType(str, Enum):
    """
    Event types of the streaming protocol.

    Anything the server sends that is not one of the five known
    types classifies as UNKNOWN.
    """
    PUT = "put"
    PATCH = "patch"
    KEEP_ALIVE = "keep-alive"
    CANCEL = "cancel"
    AUTH_REVOKED = "auth_revoked"
    UNKNOWN = "unknown"

    @classmethod
    def classify(cls, value: str) -> "EventType":
        """
        Map a raw "event:" value onto an EventType.

        Args:
            value: The event type string as received on the wire

        Returns:
            The matching member, or UNKNOWN
        """
        try:
            member = cls(value)
        except ValueError:
            return cls.UNKNOWN
        return member


class RawFrame(BaseModel):
    """
    One event/data line pair read from the stream.

    Attributes:
        event_type: Value of the "event:" line with its prefix stripped
        data: Value of the "data:" line with its prefix stripped
    """
    event_type: str
    data: str

    model_config = {"frozen": True}


class TerminalSignal(BaseModel):
    """
    Marks the end of a stream's read loop.

    Exactly one is produced per stream, after every RawFrame.

    Attributes:
        error: The read error, or None when the stream ended with a clean EOF
    """
    error: Optional[Exception] = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


class ChangeEvent(BaseModel):
    """
    A decoded streaming event delivered to watchers.

    decode_error is a non-fatal, per-event condition: the stream keeps
    going. stream_error is fatal: an event carrying it is the last one
    before the channel closes, and it carries no decoded content.

    Attributes:
        event_type: Raw event type ("" for the end-of-stream event)
        path: Sub-path that changed (put/patch only)
        raw_payload: JSON text of the envelope's data field, as received
        decoded_object: Result of the unmarshaller
        decode_error: Envelope or unmarshaller failure
        stream_error: Transport failure or protocol-fatal server signal
        terminal: True for the last event before the channel closes
    """
    event_type: str = ""
    path: str = ""
    raw_payload: bytes = b""
    decoded_object: Any = None
    decode_error: Optional[Exception] = None
    stream_error: Optional[Exception] = None
    terminal: bool = False

    model_config = {"arbitrary_types_allowed": True}

    @property
    def kind(self) -> EventType:
        """The classified event type."""
        return EventType.classify(self.event_type)

    @property
    def ok(self) -> bool:
        """True when neither a decode nor a stream error is attached."""
        return self.decode_error is None and self.stream_error is None


class KeyedValue(BaseModel):
    """
    A child value together with its key, as emitted by FirebaseClient.iterate().

    Attributes:
        key: The child's key
        value: The child's decoded JSON value
    """
    key: str
    value: Any = None
