"""Shared payload builders and fixtures for chatgate tests."""

import pytest

from chatgate.dispatcher import EventDispatcher
from chatgate.events import EventBus
from chatgate.session import Session
from chatgate.types import GatewayFrame, Topic


def user_payload(user_id="2", username="alice", **extra):
    return {"id": user_id, "username": username, "discriminator": "0001", "avatar": None, **extra}


def server_payload(server_id="1", **extra):
    data = {
        "id": server_id,
        "name": "lounge",
        "region": "london",
        "owner_id": "2",
        "roles": [{"id": "50", "name": "@everyone", "permissions": 0}],
        "channels": [
            {"id": server_id, "name": "general", "type": "text"},
            {"id": "10", "name": "chat", "type": "text"},
            {"id": "11", "name": "voice", "type": "voice"},
        ],
        "members": [
            {"user": user_payload("2", "alice"), "roles": ["50"], "joined_at": "2015-10-01T12:00:00+00:00"},
            {"user": user_payload("3", "bob"), "roles": []},
        ],
        "presences": [{"user": {"id": "3"}, "status": "online", "game_id": None}],
    }
    data.update(extra)
    return data


def ready_payload(**extra):
    data = {
        "user": user_payload("99", "me"),
        "guilds": [server_payload()],
        "private_channels": [
            {"id": "20", "is_private": True, "recipient": user_payload("3", "bob")},
        ],
        "heartbeat_interval": 41250,
    }
    data.update(extra)
    return data


def frame(packet_type, payload, op=0, seq=None):
    return GatewayFrame(
        op=op,
        type=packet_type,
        payload=payload,
        sequence=seq,
        raw={"op": op, "t": packet_type, "d": payload, "s": seq},
    )


class Recorder:
    """Collects every notification published on a bus."""

    def __init__(self, bus):
        self.items = []
        bus.on_any(self.items.append)

    def topics(self):
        return [n.topic for n in self.items if n.topic not in (Topic.RAW, Topic.DEBUG)]

    def of(self, topic):
        return [n.args for n in self.items if n.topic == topic]


@pytest.fixture
def session():
    s = Session(max_cached_messages=50)
    s.begin_login()
    s.authenticated("tok", "me@example.com")
    return s


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    return Recorder(bus)


@pytest.fixture
def dispatcher(session, bus):
    return EventDispatcher(session, bus, typing_timeout=0.05)


@pytest.fixture
def live(session, dispatcher, recorder):
    """A session that has applied the standard ready payload."""
    dispatcher.dispatch(frame("READY", ready_payload()))
    recorder.items.clear()
    return session
