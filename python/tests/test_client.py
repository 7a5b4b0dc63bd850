"""
Tests for firebase_sdk.client module.

Tests reference derivation, query builders, CRUD calls against a fake
Transport, rules, and starting a watch.
"""

import asyncio

import pytest
from pydantic import BaseModel

from firebase_sdk.client import KEY_PROP, FirebaseClient
from firebase_sdk.decoder import model_unmarshaller
from firebase_sdk.transport import FirebaseError, HttpxTransport
from firebase_sdk.types import KeyedValue

from conftest import FakeConnection, collect, sse

ROOT = "https://db.example.com"


class Dinosaur(BaseModel):
    height: float
    length: float


@pytest.fixture
def client(fake_transport, config):
    """Root client wired to the fake transport."""
    return FirebaseClient(ROOT, auth="token", transport=fake_transport, config=config)


class TestReferences:
    """Tests for building references without touching the network."""

    def test_trailing_slash_removed(self, fake_transport, config):
        """Test URL normalization."""
        ref = FirebaseClient(ROOT + "/", transport=fake_transport, config=config)
        assert ref.url == ROOT
        assert str(ref) == ROOT

    def test_child(self, client):
        """Test that child() appends the path and keeps auth."""
        ref = client.child("dinosaurs").child("lambeosaurus")
        assert ref.url == ROOT + "/dinosaurs/lambeosaurus"
        assert ref.auth == "token"

    @pytest.mark.parametrize("url,key", [
        (ROOT + "/dinosaurs/lambeosaurus", "lambeosaurus"),
        (ROOT + "/dinosaurs/", "dinosaurs"),
        (ROOT, ""),
        ("not a url", ""),
    ])
    def test_key(self, fake_transport, config, url, key):
        """Test key extraction from the last path segment."""
        ref = FirebaseClient(url, transport=fake_transport, config=config)
        assert ref.key == key

    def test_shallow(self, client):
        """Test the shallow parameter."""
        assert client.shallow().params == {"shallow": "true"}
        assert client.params == {}

    def test_query_builders_json_encode_values(self, client):
        """Test that filter values are JSON encoded."""
        ref = (
            client.child("dinosaurs")
            .order_by("height")
            .start_at(3)
            .end_at(25.5)
            .limit_to_first(2)
        )
        assert ref.params == {
            "orderBy": '"height"',
            "startAt": "3",
            "endAt": "25.5",
            "limitToFirst": "2",
        }
        assert ref.order == "height"

    def test_equal_to_and_limit_to_last(self, client):
        """Test string values and limitToLast."""
        ref = client.order_by(KEY_PROP).equal_to("stegosaurus").limit_to_last(1)
        assert ref.params == {
            "orderBy": '"$key"',
            "equalTo": '"stegosaurus"',
            "limitToLast": "1",
        }

    def test_builders_do_not_mutate(self, client):
        """Test that derived references are independent."""
        ordered = client.order_by("height")
        ordered.limit_to_first(1)
        assert ordered.params == {"orderBy": '"height"'}
        assert client.params == {}
        assert client.order is None

    def test_child_keeps_query(self, client):
        """Test that params and order survive child()."""
        ref = client.order_by("height").child("x")
        assert ref.params == {"orderBy": '"height"'}
        assert ref.order == "height"


class TestReadWrite:
    """Tests for CRUD operations."""

    async def test_value(self, client, fake_transport):
        """Test reading a value."""
        fake_transport.call.return_value = {"height": 2.1, "length": 12.5}

        result = await client.child("dinosaurs/stegosaurus").order_by("height").value()

        assert result == {"height": 2.1, "length": 12.5}
        fake_transport.call.assert_awaited_once_with(
            "GET",
            ROOT + "/dinosaurs/stegosaurus",
            "token",
            None,
            {"orderBy": '"height"'},
        )

    async def test_value_into_model(self, client, fake_transport):
        """Test validating a value into a pydantic model."""
        fake_transport.call.return_value = {"height": 2.1, "length": 12.5}

        dino = await client.child("dinosaurs/stegosaurus").value(model=Dinosaur)

        assert dino == Dinosaur(height=2.1, length=12.5)

    async def test_iterate_in_key_order(self, client, fake_transport):
        """Test that children are yielded sorted by key."""
        fake_transport.call.return_value = {"c": 3, "a": 1, "b": 2}

        items = [item async for item in client.iterate()]

        assert items == [
            KeyedValue(key="a", value=1),
            KeyedValue(key="b", value=2),
            KeyedValue(key="c", value=3),
        ]

    async def test_iterate_empty_location(self, client, fake_transport):
        """Test that a missing value yields nothing."""
        fake_transport.call.return_value = None
        assert [item async for item in client.iterate()] == []

    async def test_push(self, client, fake_transport):
        """Test that push returns a reference to the generated key."""
        fake_transport.call.return_value = {"name": "-INOQPH-aV_psbk3ZXEX"}

        ref = await client.child("users").push({"name": "Ada"})

        assert ref.url == ROOT + "/users/-INOQPH-aV_psbk3ZXEX"
        assert ref.key == "-INOQPH-aV_psbk3ZXEX"
        fake_transport.call.assert_awaited_once_with(
            "POST", ROOT + "/users", "token", {"name": "Ada"}, None,
        )

    async def test_set(self, client, fake_transport):
        """Test that set writes and returns the written location."""
        ref = await client.set("users/ada", {"age": 36}, params={"print": "silent"})

        assert ref.url == ROOT + "/users/ada"
        fake_transport.call.assert_awaited_once_with(
            "PUT", ROOT + "/users/ada", "token", {"age": 36}, {"print": "silent"},
        )

    async def test_update(self, client, fake_transport):
        """Test partial updates."""
        await client.update("users/ada", {"age": 37})

        fake_transport.call.assert_awaited_once_with(
            "PATCH", ROOT + "/users/ada", "token", {"age": 37}, None,
        )

    async def test_remove(self, client, fake_transport):
        """Test deletion."""
        await client.remove("users/ada")

        fake_transport.call.assert_awaited_once_with(
            "DELETE", ROOT + "/users/ada", "token", None, None,
        )

    async def test_errors_propagate(self, client, fake_transport):
        """Test that transport errors reach the caller."""
        fake_transport.call.side_effect = FirebaseError("Permission denied", status_code=401)

        with pytest.raises(FirebaseError):
            await client.value()


class TestRules:
    """Tests for security rules access."""

    async def test_rules(self, client, fake_transport):
        """Test reading rules."""
        rules = {"rules": {".read": True}}
        fake_transport.call.return_value = rules

        assert await client.rules() == rules
        fake_transport.call.assert_awaited_once_with(
            "GET", ROOT + "/.settings/rules", "token", None, None,
        )

    async def test_missing_rules(self, client, fake_transport):
        """Test that no rules document reads as empty."""
        fake_transport.call.return_value = None
        assert await client.rules() == {}

    async def test_set_rules(self, client, fake_transport):
        """Test writing rules."""
        rules = {"rules": {".write": False}}
        await client.set_rules(rules)

        fake_transport.call.assert_awaited_once_with(
            "PUT", ROOT + "/.settings/rules", "token", rules, None,
        )


class TestWatch:
    """Tests for FirebaseClient.watch."""

    async def test_watch_opens_stream_for_location(self, client, fake_transport):
        """Test that the location's url, auth and params are streamed."""
        fake_transport.connection = FakeConnection()

        session = await client.child("rooms").limit_to_last(5).watch()
        await collect(session)

        assert fake_transport.stream_calls == [
            (ROOT + "/rooms", "token", {"limitToLast": "5"}),
        ]

    async def test_watch_default_unmarshaller(self, client, fake_transport, widget_payload):
        """Test that payloads decode to plain JSON by default."""
        fake_transport.connection = FakeConnection(sse(("put", widget_payload)))

        events = await collect(await client.watch())

        assert events[0].decoded_object == {"a": 1}
        assert events[-1].terminal is True

    async def test_watch_custom_unmarshaller(self, client, fake_transport):
        """Test decoding into a caller-supplied model."""
        fake_transport.connection = FakeConnection(
            sse(("patch", '{"path": "/", "data": {"height": 1, "length": 2}}'))
        )

        session = await client.watch(unmarshaller=model_unmarshaller(Dinosaur))
        events = await collect(session)

        assert events[0].decoded_object == Dinosaur(height=1, length=2)

    async def test_watch_stop_event(self, client, fake_transport):
        """Test cancelling through the stop event."""
        stop = asyncio.Event()
        fake_transport.connection = FakeConnection(hold_open=True)

        session = await client.watch(stop=stop)
        stop.set()
        events = await collect(session)

        assert events[-1].terminal is True
        assert events[-1].stream_error is not None


class TestClose:
    """Tests for transport ownership."""

    async def test_injected_transport_not_closed(self, client, fake_transport):
        """Test that a caller's transport is left open."""
        await client.close()
        fake_transport.aclose.assert_not_awaited()

    async def test_owned_transport_closed(self, config):
        """Test that a client closes the transport it created."""
        async with FirebaseClient(ROOT, config=config) as client:
            assert isinstance(client._transport, HttpxTransport)
            child = client.child("x")
            assert child._transport is client._transport

        assert client._transport._http.is_closed
        assert client._transport._stream_http.is_closed

    async def test_derived_references_do_not_own_transport(self, config):
        """Test that closing a child leaves the shared transport open."""
        async with FirebaseClient(ROOT, config=config) as client:
            await client.child("x").close()
            assert not client._transport._http.is_closed
