"""Tests for the command layer (transport mocked)."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from chatgate.commands import CommandLayer
from chatgate.errors import (
    ChatGateHTTPError,
    ChatGateNotAuthenticatedError,
    ChatGateResolutionError,
    ChatGateStateError,
)
from chatgate.session import Session
from chatgate.types import SessionState, Topic

from conftest import Recorder, server_payload, user_payload


def _message_body(message_id="500", channel_id="10", content="hello"):
    return {
        "id": message_id,
        "channel_id": channel_id,
        "content": content,
        "author": user_payload("99", "me"),
        "timestamp": "2015-10-01T12:00:00+00:00",
    }


@pytest.fixture
def transport():
    t = AsyncMock()
    t.request = AsyncMock(return_value=None)
    return t


@pytest.fixture
def commands(live, transport, bus):
    return CommandLayer(
        live,
        transport,
        bus,
        open_connection=AsyncMock(),
        close_connection=AsyncMock(),
        server_create_timeout=0.05,
    )


class TestStateGating:
    @pytest.mark.asyncio
    async def test_commands_fail_before_network_when_idle(self, transport, bus):
        commands = CommandLayer(Session(), transport, bus)
        with pytest.raises(ChatGateNotAuthenticatedError):
            await commands.send_message("10", "hi")
        with pytest.raises(ChatGateNotAuthenticatedError):
            await commands.create_server("x")
        with pytest.raises(ChatGateNotAuthenticatedError):
            await commands.logout()
        with pytest.raises(ChatGateNotAuthenticatedError):
            await commands.get_channel_logs("10")
        transport.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_logout_during_request_fails(self, live, commands, transport):
        async def respond(*args, **kwargs):
            live.disconnect(clear_credentials=True)
            return _message_body()

        transport.request.side_effect = respond
        with pytest.raises(ChatGateNotAuthenticatedError):
            await commands.send_message("10", "hi")
        assert len(live.get_channel("10").messages) == 0


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_opens_gateway(self, transport, bus):
        session = Session()
        opener = AsyncMock()
        transport.request.side_effect = [{"token": "tok"}, {"url": "wss://gw"}]
        commands = CommandLayer(session, transport, bus, open_connection=opener, compress=True)

        assert await commands.login("me@example.com", "pw") == "tok"
        assert session.state is SessionState.AUTHENTICATED
        assert session.token == "tok"

        first = transport.request.await_args_list[0]
        assert first.args == ("POST", "auth/login")
        assert first.kwargs["json"] == {"email": "me@example.com", "password": "pw"}
        second = transport.request.await_args_list[1]
        assert second.args == ("GET", "gateway")
        assert second.kwargs["token"] == "tok"

        url, handshake = opener.await_args.args
        assert url == "wss://gw"
        identify = json.loads(handshake)
        assert identify["op"] == 2
        assert identify["d"]["token"] == "tok"
        assert identify["d"]["compress"] is True

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, transport, bus):
        session = Session()
        recorder = Recorder(bus)
        transport.request.side_effect = ChatGateHTTPError("bad password", 400)
        commands = CommandLayer(session, transport, bus)

        with pytest.raises(ChatGateHTTPError) as exc_info:
            await commands.login("me@example.com", "wrong")
        assert exc_info.value.status == 400
        assert session.state is SessionState.DISCONNECTED
        assert recorder.topics() == [Topic.DISCONNECTED]

    @pytest.mark.asyncio
    async def test_cancelled_login_can_be_retried(self, transport, bus):
        session = Session()
        recorder = Recorder(bus)

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        transport.request.side_effect = slow
        commands = CommandLayer(session, transport, bus)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(commands.login("me@example.com", "pw"), 0.05)
        assert session.state is SessionState.DISCONNECTED
        assert session.token is None
        assert recorder.topics() == [Topic.DISCONNECTED]

        transport.request.side_effect = [{"token": "tok"}, {"url": "wss://gw"}]
        assert await commands.login("me@example.com", "pw") == "tok"
        assert session.state is SessionState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_cancelled_gateway_open_closes_connection(self, transport, bus):
        session = Session()

        async def slow_open(url, handshake):
            await asyncio.sleep(1)

        closer = AsyncMock()
        transport.request.side_effect = [{"token": "tok"}, {"url": "wss://gw"}]
        commands = CommandLayer(
            session, transport, bus, open_connection=slow_open, close_connection=closer
        )

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(commands.login("me@example.com", "pw"), 0.05)
        assert session.state is SessionState.DISCONNECTED
        assert session.token is None
        closer.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_login_twice_rejected(self, commands, transport):
        with pytest.raises(ChatGateStateError):
            await commands.login("me@example.com", "pw")
        transport.request.assert_not_called()


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout(self, live, commands, transport, recorder):
        await commands.logout()
        transport.request.assert_awaited_once_with("POST", "auth/logout", token="tok")
        commands._close_connection.assert_awaited_once()
        assert live.state is SessionState.DISCONNECTED
        assert live.token is None
        assert recorder.topics() == [Topic.DISCONNECTED]

    @pytest.mark.asyncio
    async def test_logout_twice(self, commands, recorder):
        await commands.logout()
        with pytest.raises(ChatGateNotAuthenticatedError):
            await commands.logout()
        assert recorder.topics() == [Topic.DISCONNECTED]


class TestServers:
    @pytest.mark.asyncio
    async def test_create_server_falls_back_to_response(self, live, commands, transport):
        transport.request.return_value = server_payload("7", channels=[])
        srv = await commands.create_server("new place")
        assert srv.id == "7"
        assert live.servers.get("id", "7") is srv
        assert transport.request.await_args.kwargs["json"] == {
            "name": "new place",
            "region": "london",
        }

    @pytest.mark.asyncio
    async def test_create_server_waits_for_push(self, live, commands, transport):
        async def respond(*args, **kwargs):
            live.ingest_server(server_payload("7", name="pushed", channels=[]))
            return {"id": "7", "name": "from response"}

        transport.request.side_effect = respond
        srv = await commands.create_server("pushed")
        assert srv.name == "pushed"

    @pytest.mark.asyncio
    async def test_leave_server(self, live, commands, transport):
        await commands.leave_server("1")
        transport.request.assert_awaited_once_with("DELETE", "guilds/1", token="tok")
        assert live.servers.get("id", "1") is None
        assert live.get_channel("10") is None

    @pytest.mark.asyncio
    async def test_leave_unknown_server(self, commands, transport):
        with pytest.raises(ChatGateResolutionError):
            await commands.leave_server("404")
        transport.request.assert_not_called()


class TestMessages:
    @pytest.mark.asyncio
    async def test_send_message(self, live, commands, transport):
        transport.request.return_value = _message_body()
        msg = await commands.send_message("10", ["hello", "<@2>"], tts=True)
        method, path = transport.request.await_args.args
        assert (method, path) == ("POST", "channels/10/messages")
        assert transport.request.await_args.kwargs["json"] == {
            "content": "hello\n<@2>",
            "mentions": ["2"],
            "tts": True,
        }
        assert live.get_channel("10").messages.get("id", "500") is msg
        assert msg.author is live.user

    @pytest.mark.asyncio
    async def test_send_to_user_uses_direct_channel(self, live, commands, transport):
        transport.request.return_value = _message_body(channel_id="20")
        bob = live.users.get("id", "3")
        await commands.send_message(bob, "hey")
        assert transport.request.await_args.args[1] == "channels/20/messages"

    @pytest.mark.asyncio
    async def test_send_to_user_starts_direct_channel(self, live, commands, transport):
        transport.request.side_effect = [
            {"id": "21", "recipient": user_payload("2", "alice")},
            _message_body(channel_id="21"),
        ]
        await commands.send_message(live.users.get("id", "2"), "hey")
        first = transport.request.await_args_list[0]
        assert first.args == ("POST", "users/99/channels")
        assert first.kwargs["json"] == {"recipient_id": "2"}
        assert live.private_channels.get("id", "21").messages.get("id", "500") is not None

    @pytest.mark.asyncio
    async def test_send_to_voice_channel_rejected(self, commands, transport):
        with pytest.raises(ChatGateResolutionError):
            await commands.send_message("11", "hi")
        transport.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_to_unknown_destination(self, commands, transport):
        with pytest.raises(ChatGateResolutionError, match="resolving destination"):
            await commands.send_message(object(), "hi")

    @pytest.mark.asyncio
    async def test_update_message(self, live, commands, transport):
        transport.request.return_value = _message_body()
        original = await commands.send_message("10", "hello")
        transport.request.return_value = _message_body(content="edited")

        updated = await commands.update_message(original, "edited")
        assert transport.request.await_args.args == ("PATCH", "channels/10/messages/500")
        assert live.get_channel("10").messages.get("id", "500") is updated
        assert updated.content == "edited"

    @pytest.mark.asyncio
    async def test_delete_message(self, live, commands, transport):
        transport.request.return_value = _message_body()
        msg = await commands.send_message("10", "hello")
        transport.request.return_value = None

        await commands.delete_message("500", delay=0.01)
        assert transport.request.await_args.args == ("DELETE", "channels/10/messages/500")
        assert live.get_channel("10").messages.get("id", "500") is None

    @pytest.mark.asyncio
    async def test_delete_unknown_message(self, commands):
        with pytest.raises(ChatGateResolutionError):
            await commands.delete_message("404")

    @pytest.mark.asyncio
    async def test_send_file(self, live, commands, transport):
        transport.request.return_value = _message_body()
        await commands.send_file("10", b"\x89PNG", "pic.png")
        assert transport.request.await_args.kwargs["files"] == {"file": ("pic.png", b"\x89PNG")}

    @pytest.mark.asyncio
    async def test_get_channel_logs(self, live, commands, transport):
        transport.request.return_value = [
            _message_body("502"),
            _message_body("501"),
        ]
        logs = await commands.get_channel_logs("10", 2, before="600")
        assert transport.request.await_args.kwargs["params"] == {"limit": 2, "before": "600"}
        assert [m.id for m in logs] == ["502", "501"]
        assert len(live.get_channel("10").messages) == 2

        again = await commands.get_channel_logs("10", 2)
        assert again[0] is logs[0]
