import asyncio

import pytest

from app.chat.protocol import SEND_OK
from app.chat.transport import ChatTransport
from app.core.exceptions import PersistenceUnavailable
from app.model import ChatRoom, ChatRoomMembership

from conftest import FakeWebSocket


@pytest.fixture
def transport(databases):
    return ChatTransport(databases)


async def connect(transport, tenant_id="acme", user_id=None):
    ws = FakeWebSocket()
    conn = transport.new_connection(tenant_id, user_id)
    await transport.protocol.connect(conn, ws)
    return conn, ws


def frame(event, payload, ack=1):
    return {"event": event, "ack": ack, "payload": payload}


def test_connect_sends_connected_frame(transport):
    async def scenario():
        conn, ws = await connect(transport, user_id=1)
        return conn, ws

    conn, ws = asyncio.run(scenario())
    assert ws.frames[0] == {
        "event": "connected",
        "payload": {"socketID": conn.socket_id, "tenantID": "acme", "userID": 1},
    }
    assert transport.registry.lookup("acme", 1) == conn.socket_id


def test_create_room_then_send_then_history(transport):
    async def scenario():
        a, a_ws = await connect(transport, user_id=1)
        b, b_ws = await connect(transport, user_id=2)
        created = await transport.protocol.handle_frame(a, frame("create-room", {"fromUserID": 1, "toUserID": 2}))
        sent = await transport.protocol.handle_frame(
            a, frame("send", {"fromUserID": 1, "toUserID": 2, "message": "hi"}, ack="m1")
        )
        return created, sent, a_ws, b_ws

    created, sent, a_ws, b_ws = asyncio.run(scenario())

    assert created == {"event": "ack", "ack": 1, "ok": True, "data": {"roomID": 1}}
    assert a_ws.events("room-created") == [{"event": "room-created", "payload": {"roomID": 1}}]
    assert b_ws.events("room-invited")[0]["payload"] == {"roomID": 1, "fromUserID": 1}

    assert sent == {"event": "ack", "ack": "m1", "ok": True, "data": SEND_OK}
    received = b_ws.events("received-message")
    assert len(received) == 1
    assert received[0]["room_id"] == 1
    assert received[0]["payload"] == {"fromUserID": 1, "toUserID": 2, "message": "hi"}
    assert a_ws.events("received-message") == []

    history = transport.protocol.get_chat_history("acme", 1)
    assert [(m.from_user_id, m.to_user_id, m.content) for m in history] == [(1, 2, "hi")]


def test_send_without_create_room_reaches_online_counterpart(transport):
    async def scenario():
        a, a_ws = await connect(transport, user_id=1)
        b, b_ws = await connect(transport, user_id=2)
        ack = await transport.protocol.handle_frame(
            a, frame("send", {"fromUserID": 1, "toUserID": 2, "message": "hello"})
        )
        reply = await transport.protocol.handle_frame(
            b, frame("send", {"fromUserID": 2, "toUserID": 1, "message": "hey"})
        )
        return ack, reply, a_ws, b_ws

    ack, reply, a_ws, b_ws = asyncio.run(scenario())

    assert ack["ok"] and reply["ok"]
    assert [f["payload"]["message"] for f in b_ws.events("received-message")] == ["hello"]
    assert [f["payload"]["message"] for f in a_ws.events("received-message")] == ["hey"]


def test_send_to_offline_user_still_acks(transport):
    async def scenario():
        a, a_ws = await connect(transport, user_id=1)
        return await transport.protocol.handle_frame(
            a, frame("send", {"fromUserID": 1, "toUserID": 2, "message": "are you there?"})
        )

    ack = asyncio.run(scenario())

    assert ack["ok"] is True
    assert [m.content for m in transport.protocol.get_chat_history("acme", 1)] == ["are you there?"]


def test_concurrent_sends_before_room_exists(transport, databases):
    async def scenario():
        a, _ = await connect(transport, user_id=1)
        b, _ = await connect(transport, user_id=2)
        return await asyncio.gather(
            transport.protocol.handle_frame(a, frame("send", {"fromUserID": 1, "toUserID": 2, "message": "a"})),
            transport.protocol.handle_frame(b, frame("send", {"fromUserID": 2, "toUserID": 1, "message": "b"})),
        )

    acks = asyncio.run(scenario())

    assert all(ack["ok"] for ack in acks)
    with databases.session("acme") as db:
        assert db.query(ChatRoom).count() == 1
        room_id = db.query(ChatRoom).one().id
    history = transport.protocol.get_chat_history("acme", room_id)
    assert sorted(m.content for m in history) == ["a", "b"]


def test_broadcast_stays_within_tenant(transport):
    async def scenario():
        a, _ = await connect(transport, "acme", user_id=1)
        acme_b, acme_ws = await connect(transport, "acme", user_id=2)
        globex_b, globex_ws = await connect(transport, "globex", user_id=2)
        await transport.protocol.handle_frame(a, frame("send", {"fromUserID": 1, "toUserID": 2, "message": "x"}))
        return acme_ws, globex_ws

    acme_ws, globex_ws = asyncio.run(scenario())

    assert len(acme_ws.events("received-message")) == 1
    assert globex_ws.events("received-message") == []
    assert globex_ws.events("room-invited") == []


@pytest.mark.parametrize(
    "event, payload, code",
    [
        ("create-room", {"fromUserID": 1, "toUserID": 1}, "InvalidParticipants"),
        ("create-room", {"fromUserID": 0, "toUserID": 2}, "InvalidParticipants"),
        ("create-room", {"fromUserID": "1", "toUserID": 2}, "InvalidParticipants"),
        ("create-room", {"fromUserID": 1}, "InvalidParticipants"),
        ("create-room", {"fromUserID": 1, "toUserID": 2, "extra": True}, "INVALID_PAYLOAD"),
        ("send", {"fromUserID": 1, "toUserID": 2, "message": ""}, "INVALID_PAYLOAD"),
        ("send", {"fromUserID": 1, "toUserID": 2}, "INVALID_PAYLOAD"),
        ("send", None, "INVALID_PAYLOAD"),
        ("send", {"fromUserID": 3, "toUserID": 3, "message": "me"}, "InvalidParticipants"),
        ("delete-room", {}, "UNKNOWN_EVENT"),
    ],
)
def test_invalid_events_get_error_acks(transport, databases, event, payload, code):
    async def scenario():
        conn, _ = await connect(transport, user_id=None)
        return await transport.protocol.handle_frame(conn, frame(event, payload, ack=7))

    ack = asyncio.run(scenario())

    assert ack["ok"] is False
    assert ack["ack"] == 7
    assert ack["code"] == code
    assert ack["message"]
    with databases.session("acme") as db:
        assert db.query(ChatRoom).count() == 0


def test_non_object_frame(transport):
    async def scenario():
        conn, _ = await connect(transport)
        return await transport.protocol.handle_frame(conn, ["send"])

    assert asyncio.run(scenario())["code"] == "INVALID_FRAME"


def test_from_user_must_match_connection(transport):
    async def scenario():
        conn, _ = await connect(transport, user_id=1)
        return await transport.protocol.handle_frame(conn, frame("create-room", {"fromUserID": 5, "toUserID": 2}))

    ack = asyncio.run(scenario())
    assert ack["code"] == "InvalidParticipants"


def test_unbound_connection_binds_to_first_sender(transport):
    async def scenario():
        conn, _ = await connect(transport)
        await transport.protocol.handle_frame(conn, frame("create-room", {"fromUserID": 4, "toUserID": 2}))
        return conn

    conn = asyncio.run(scenario())
    assert conn.user_id == 4
    assert transport.registry.lookup("acme", 4) == conn.socket_id


def test_unknown_tenant_fails_events(transport):
    async def scenario():
        conn, _ = await connect(transport, "initech", user_id=1)
        return await transport.protocol.handle_frame(conn, frame("create-room", {"fromUserID": 1, "toUserID": 2}))

    ack = asyncio.run(scenario())
    assert ack["ok"] is False
    assert ack["code"] == "UnknownTenant"


def test_persistence_failure_becomes_error_ack(transport, monkeypatch):
    def unavailable(tenant_id, user_a, user_b):
        raise PersistenceUnavailable("Storage unavailable for tenant acme")

    monkeypatch.setattr(transport.protocol, "resolve_room_sync", unavailable)

    async def scenario():
        conn, _ = await connect(transport, user_id=1)
        return await transport.protocol.handle_frame(
            conn, frame("send", {"fromUserID": 1, "toUserID": 2, "message": "lost"})
        )

    ack = asyncio.run(scenario())
    assert ack == {
        "event": "ack",
        "ack": 1,
        "ok": False,
        "code": "PersistenceUnavailable",
        "message": "Storage unavailable for tenant acme",
    }


def test_unexpected_error_becomes_generic_ack(transport, monkeypatch):
    def broken(tenant_id, user_a, user_b):
        raise RuntimeError("boom")

    monkeypatch.setattr(transport.protocol, "resolve_room_sync", broken)

    async def scenario():
        conn, _ = await connect(transport, user_id=1)
        return await transport.protocol.handle_frame(conn, frame("create-room", {"fromUserID": 1, "toUserID": 2}))

    ack = asyncio.run(scenario())
    assert ack["code"] == "INTERNAL_ERROR"
    assert "boom" not in ack["message"]


def test_disconnect_clears_registry_and_annotation(transport, databases):
    async def scenario():
        a, _ = await connect(transport, user_id=1)
        await transport.protocol.handle_frame(a, frame("create-room", {"fromUserID": 1, "toUserID": 2}))
        b, _ = await connect(transport, user_id=2)
        with databases.session("acme") as db:
            connected = db.query(ChatRoomMembership).filter_by(user_id=2).one().connected_to_socket
        await transport.protocol.disconnect(b)
        await transport.protocol.disconnect(b)
        return b, connected

    b, connected = asyncio.run(scenario())

    assert connected == b.socket_id
    assert transport.registry.lookup("acme", 2) is None
    with databases.session("acme") as db:
        assert db.query(ChatRoomMembership).filter_by(user_id=2).one().connected_to_socket is None


def test_broadcast_skips_disconnected_counterpart(transport):
    async def scenario():
        a, a_ws = await connect(transport, user_id=1)
        b, b_ws = await connect(transport, user_id=2)
        await transport.protocol.handle_frame(a, frame("create-room", {"fromUserID": 1, "toUserID": 2}))
        await transport.protocol.disconnect(b)
        ack = await transport.protocol.handle_frame(
            a, frame("send", {"fromUserID": 1, "toUserID": 2, "message": "gone"})
        )
        return ack, b_ws

    ack, b_ws = asyncio.run(scenario())
    assert ack["ok"] is True
    assert b_ws.events("received-message") == []


def test_send_survives_room_reconciled_before_insert(transport, databases, monkeypatch):
    def make_room():
        with databases.session("acme") as db:
            room = ChatRoom()
            db.add(room)
            db.flush()
            db.add_all([ChatRoomMembership(room_id=room.id, user_id=uid) for uid in (1, 2)])
            db.commit()
            return room.id

    canonical = make_room()
    stale = make_room()
    real_resolve = transport.protocol.resolve_room_sync

    def resolve_then_lose_race(tenant_id, user_a, user_b):
        # another worker reconciles right after this caller picked the stale room
        assert real_resolve(tenant_id, user_a, user_b) == canonical
        return stale

    monkeypatch.setattr(transport.protocol, "resolve_room_sync", resolve_then_lose_race)

    async def scenario():
        a, a_ws = await connect(transport, user_id=1)
        b, b_ws = await connect(transport, user_id=2)
        ack = await transport.protocol.handle_frame(
            a, frame("send", {"fromUserID": 1, "toUserID": 2, "message": "kept"})
        )
        return ack, b_ws

    ack, b_ws = asyncio.run(scenario())

    assert ack["ok"] is True
    assert [m.content for m in transport.protocol.get_chat_history("acme", canonical)] == ["kept"]
    assert b_ws.events("room-invited")[0]["payload"]["roomID"] == canonical
    assert [f["room_id"] for f in b_ws.events("received-message")] == [canonical]
