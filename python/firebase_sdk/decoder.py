"""
Location: python/firebase_sdk/decoder.py

Summary:
    Interprets raw SSE frames according to the Firebase streaming protocol.
    put/patch frames are decoded into ChangeEvents, keep-alives are dropped,
    and cancel/auth_revoked frames end the stream with a distinguished error.

Usage:
    Used by session.py, which feeds every item produced by
    stream.read_frames() through an EventDecoder and stops reading as soon
    as a result is marked fatal.

Example:
    from firebase_sdk.decoder import EventDecoder

    decoder = EventDecoder(unmarshaller=json.loads)
    result = decoder.decode(frame)
    if result.event is not None:
        await send(result.event)
    if result.fatal:
        return
"""

import json
import logging
import re
from json.decoder import scanstring
from typing import Any, NamedTuple, Optional, Type, Union

from pydantic import BaseModel

from .types import ChangeEvent, EventType, RawFrame, TerminalSignal, Unmarshaller

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_json_decoder = json.JSONDecoder()


class StreamError(Exception):
    """Base class for errors that end a stream."""
    pass


class PermissionDeniedError(StreamError):
    """The server revoked read access to the watched location."""

    def __init__(self, message: str = "Permission Denied"):
        super().__init__(message)


class AuthRevokedError(StreamError):
    """The auth token used to open the stream was revoked or expired."""

    def __init__(self, message: str = "Auth Token Revoked"):
        super().__init__(message)


class EnvelopeError(ValueError):
    """A put/patch payload is not a valid {"path": ..., "data": ...} object."""
    pass


def default_unmarshaller(data: bytes) -> Any:
    """
    Decode an event payload into plain Python objects.

    JSON objects become string-keyed dicts. Other JSON values are
    returned as decoded.

    Args:
        data: Raw JSON bytes of the envelope's data field

    Returns:
        The decoded value
    """
    return json.loads(data)


def model_unmarshaller(model: Type[BaseModel]) -> Unmarshaller:
    """
    Build an unmarshaller that validates payloads into a pydantic model.

    Args:
        model: The model class to validate into

    Returns:
        Callable suitable for FirebaseClient.watch(unmarshaller=...)
    """
    def unmarshal(data: bytes) -> BaseModel:
        return model.model_validate_json(data)

    return unmarshal


def split_envelope(text: str) -> tuple[str, bytes]:
    """
    Split a put/patch payload into its path and raw data.

    The data member is returned as the exact JSON text it was sent as,
    so the unmarshaller sees it byte for byte.

    Args:
        text: The frame's data line, e.g. '{"path": "/a", "data": {"b": 1}}'

    Returns:
        (path, raw JSON bytes of the data member)

    Raises:
        EnvelopeError: If the payload is not an object with a string
            "path" member and a "data" member, or is nested too deeply
            to parse
    """
    try:
        members = _scan_object(text)
    except json.JSONDecodeError as exc:
        raise EnvelopeError(f"Malformed event envelope: {exc}") from exc
    except RecursionError as exc:
        raise EnvelopeError("Event envelope is nested too deeply") from exc

    if "path" not in members or "data" not in members:
        raise EnvelopeError("Event envelope needs both 'path' and 'data'")

    path = json.loads(members["path"])
    if not isinstance(path, str):
        raise EnvelopeError("Event envelope 'path' must be a string")

    return path, members["data"].encode("utf-8")


def _scan_object(text: str) -> dict[str, str]:
    """Map each top-level member name of a JSON object to its source text."""
    members: dict[str, str] = {}

    idx = _skip(text, 0)
    if text[idx:idx + 1] != "{":
        raise json.JSONDecodeError("Expecting '{'", text, idx)
    idx = _skip(text, idx + 1)

    if text[idx:idx + 1] == "}":
        idx += 1
    else:
        while True:
            if text[idx:idx + 1] != '"':
                raise json.JSONDecodeError("Expecting property name", text, idx)
            key, idx = scanstring(text, idx + 1)

            idx = _skip(text, idx)
            if text[idx:idx + 1] != ":":
                raise json.JSONDecodeError("Expecting ':' delimiter", text, idx)
            idx = _skip(text, idx + 1)

            _, end = _json_decoder.raw_decode(text, idx)
            members[key] = text[idx:end]

            idx = _skip(text, end)
            delimiter = text[idx:idx + 1]
            idx += 1
            if delimiter == "}":
                break
            if delimiter != ",":
                raise json.JSONDecodeError("Expecting ',' delimiter", text, idx - 1)
            idx = _skip(text, idx)

    if _skip(text, idx) != len(text):
        raise json.JSONDecodeError("Extra data", text, idx)

    return members


def _skip(text: str, idx: int) -> int:
    return _WHITESPACE.match(text, idx).end()


class DecodeResult(NamedTuple):
    """
    Outcome of decoding one stream item.

    Attributes:
        event: Event to deliver, or None when nothing should be delivered
        fatal: True when the stream must stop after this result
    """
    event: Optional[ChangeEvent]
    fatal: bool


class EventDecoder:
    """
    Classifies frames and turns them into ChangeEvents.

    Attributes:
        unmarshaller: Callable applied to the raw data of put/patch events
    """

    def __init__(self, unmarshaller: Optional[Unmarshaller] = None):
        """
        Initialize the decoder.

        Args:
            unmarshaller: Payload decoder (default_unmarshaller if None)
        """
        self.unmarshaller = unmarshaller or default_unmarshaller

    def decode(self, item: Union[RawFrame, TerminalSignal]) -> DecodeResult:
        """
        Decode one item produced by read_frames().

        Args:
            item: A RawFrame, or the stream's TerminalSignal

        Returns:
            DecodeResult with the event to deliver (if any) and whether
            the stream ends here
        """
        if isinstance(item, TerminalSignal):
            return DecodeResult(
                ChangeEvent(stream_error=item.error, terminal=True),
                fatal=True,
            )

        kind = EventType.classify(item.event_type)

        if kind is EventType.KEEP_ALIVE:
            return DecodeResult(None, fatal=False)

        if kind is EventType.CANCEL:
            return DecodeResult(
                ChangeEvent(
                    event_type=item.event_type,
                    stream_error=PermissionDeniedError(),
                    terminal=True,
                ),
                fatal=True,
            )

        if kind is EventType.AUTH_REVOKED:
            return DecodeResult(
                ChangeEvent(
                    event_type=item.event_type,
                    stream_error=AuthRevokedError(),
                    terminal=True,
                ),
                fatal=True,
            )

        if kind in (EventType.PUT, EventType.PATCH):
            return DecodeResult(self._decode_change(item), fatal=False)

        logger.debug("Forwarding unrecognized event type %r", item.event_type)
        return DecodeResult(
            ChangeEvent(
                event_type=item.event_type,
                raw_payload=item.data.encode("utf-8"),
            ),
            fatal=False,
        )

    def _decode_change(self, frame: RawFrame) -> ChangeEvent:
        try:
            path, raw = split_envelope(frame.data)
        except EnvelopeError as exc:
            logger.warning("Dropping payload of malformed %s event: %s",
                           frame.event_type, exc)
            return ChangeEvent(event_type=frame.event_type, decode_error=exc)

        event = ChangeEvent(event_type=frame.event_type, path=path, raw_payload=raw)
        try:
            event.decoded_object = self.unmarshaller(raw)
        except Exception as exc:
            event.decode_error = exc

        return event
