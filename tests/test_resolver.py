"""Tests for identity resolution."""

import io
from unittest.mock import AsyncMock

import pytest

from chatgate.errors import ChatGateHTTPError, ChatGateResolutionError
from chatgate.models import Channel, Message, User
from chatgate.resolver import Resolver

from conftest import user_payload


@pytest.fixture
def resolver(live):
    return Resolver(live)


def _message(live, channel_id="10", message_id="100"):
    chan = live.get_channel(channel_id)
    return chan.messages.add(
        Message.from_payload(
            {"id": message_id, "content": "hi", "author": user_payload()},
            channel_id,
            live.users,
        )
    )


class TestResolveUser:
    def test_by_value_and_id(self, live, resolver):
        alice = live.users.get("id", "2")
        assert resolver.resolve_user(alice) is alice
        assert resolver.resolve_user("2") is alice
        assert resolver.resolve_user(2) is alice

    def test_by_message_server_and_direct_channel(self, live, resolver):
        alice = live.users.get("id", "2")
        bob = live.users.get("id", "3")
        assert resolver.resolve_user(_message(live)) is alice
        assert resolver.resolve_user(live.servers.get("id", "1")) is alice
        assert resolver.resolve_user(live.get_channel("20")) is bob

    def test_unresolvable(self, resolver):
        assert resolver.resolve_user("404") is None
        assert resolver.resolve_user(3.5) is None
        assert resolver.resolve_user(True) is None


class TestResolveServer:
    def test_variants(self, live, resolver):
        srv = live.servers.get("id", "1")
        assert resolver.resolve_server(srv) is srv
        assert resolver.resolve_server("1") is srv
        assert resolver.resolve_server(live.get_channel("10")) is srv
        assert resolver.resolve_server(_message(live)) is srv

    def test_direct_channel_has_no_server(self, live, resolver):
        assert resolver.resolve_server(live.get_channel("20")) is None


class TestResolveMessage:
    def test_by_id_across_channels(self, live, resolver):
        msg = _message(live, "20", "300")
        assert resolver.resolve_message("300") is msg
        assert resolver.resolve_message(msg) is msg
        assert resolver.resolve_message("404") is None


class TestText:
    def test_mentions_unique_in_order(self):
        text = "hi <@2> and <@!3> and <@2> again, <@999>"
        assert Resolver.resolve_mentions(text) == ["2", "3", "999"]

    def test_mentions_none(self):
        assert Resolver.resolve_mentions("no one here") == []

    def test_resolve_string(self, resolver):
        assert resolver.resolve_string("x") == "x"
        assert resolver.resolve_string(["a", 1, ("b", "c")]) == "a\n1\nb\nc"
        assert resolver.resolve_string(42) == "42"

    def test_resolve_file(self, tmp_path):
        path = tmp_path / "pic.png"
        path.write_bytes(b"\x89PNG")
        assert Resolver.resolve_file(path) == b"\x89PNG"
        assert Resolver.resolve_file(str(path)) == b"\x89PNG"
        assert Resolver.resolve_file(bytearray(b"ab")) == b"ab"
        stream = io.BytesIO(b"data")
        assert Resolver.resolve_file(stream) is stream

    def test_resolve_file_missing(self, tmp_path):
        with pytest.raises(ChatGateResolutionError):
            Resolver.resolve_file(tmp_path / "missing.png")
        with pytest.raises(ChatGateResolutionError):
            Resolver.resolve_file(12)


class TestResolveChannel:
    @pytest.mark.asyncio
    async def test_direct_variants(self, live, resolver):
        chan = live.get_channel("10")
        assert await resolver.resolve_channel(chan) is chan
        assert await resolver.resolve_channel("10") is chan
        assert await resolver.resolve_channel(_message(live)) is chan

    @pytest.mark.asyncio
    async def test_server_resolves_default_channel(self, live, resolver):
        channel = await resolver.resolve_channel(live.servers.get("id", "1"))
        assert channel.id == "1"

    @pytest.mark.asyncio
    async def test_user_with_existing_direct_channel(self, live, resolver):
        bob = live.users.get("id", "3")
        assert (await resolver.resolve_channel(bob)).id == "20"
        assert (await resolver.resolve_channel("3")).id == "20"

    @pytest.mark.asyncio
    async def test_user_without_direct_channel_starts_one(self, live):
        started = Channel.from_payload(
            {"id": "21", "is_private": True, "recipient": user_payload("2", "alice")}
        )
        start_direct = AsyncMock(return_value=started)
        resolver = Resolver(live, start_direct=start_direct)
        alice = live.users.get("id", "2")
        assert await resolver.resolve_channel(alice) is started
        start_direct.assert_awaited_once_with(alice)

    @pytest.mark.asyncio
    async def test_start_direct_failure(self, live):
        start_direct = AsyncMock(side_effect=ChatGateHTTPError("nope", 403))
        resolver = Resolver(live, start_direct=start_direct)
        with pytest.raises(ChatGateResolutionError, match="direct conversation"):
            await resolver.resolve_channel(User("2"))

    @pytest.mark.asyncio
    async def test_unresolvable(self, resolver):
        with pytest.raises(ChatGateResolutionError):
            await resolver.resolve_channel("404")
        with pytest.raises(ChatGateResolutionError):
            await resolver.resolve_channel(object())
