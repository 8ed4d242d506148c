import asyncio
import contextlib
import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import loadboard.main as main_module
from loadboard.auth import create_user
from loadboard.database import Base, MessageDB
from loadboard.fanout import FanOut
from loadboard.helpers.time import utcnow
from loadboard.main import app

pytestmark = pytest.mark.routes


def _join(ws, user_id):
    ws.send_json({"event": "join", "data": user_id})
    assert ws.receive_json() == {"event": "joined", "data": user_id}


def _send(client, sender, receiver, content):
    return client.post("/api/messages/send", json={"receiverId": receiver, "content": content},
                       headers={"Authorization": str(sender)})


def test_receiver_session_gets_the_stored_message(client, make_user):
    user1, user2 = make_user(), make_user()

    with client.websocket_connect("/ws") as ws:
        _join(ws, user2)
        sent = _send(client, user1, user2, "Hello").json()

        event = ws.receive_json()

    assert event == {"event": "receive_message", "data": sent}


def test_sender_session_gets_the_message_too(client, make_user):
    user1, user2 = make_user(), make_user()

    with client.websocket_connect("/ws") as ws:
        _join(ws, user1)
        sent = _send(client, user1, user2, "Hello").json()
        assert ws.receive_json()["data"] == sent


def test_uninvolved_session_gets_nothing(client, make_user):
    user1, user2, user3 = make_user(), make_user(), make_user()

    with client.websocket_connect("/ws") as ws:
        _join(ws, user3)
        _send(client, user1, user2, "not for you")
        _send(client, user1, user3, "for you")

        # The first event seen is the one addressed to user3
        assert ws.receive_json()["data"]["content"] == "for you"


def test_rejected_send_emits_nothing(client, make_user):
    user1, user2 = make_user(), make_user()

    with client.websocket_connect("/ws") as ws:
        _join(ws, user1)
        assert _send(client, user1, 999, "lost").status_code == 400
        assert _send(client, user1, user2, "").status_code == 400
        _send(client, user1, user2, "delivered")

        assert ws.receive_json()["data"]["content"] == "delivered"


def test_self_addressed_message_is_delivered_once(client, make_user):
    user1, user2 = make_user(), make_user()

    with client.websocket_connect("/ws") as ws:
        _join(ws, user1)
        _send(client, user1, user1, "note to self")
        _send(client, user2, user1, "next")

        assert ws.receive_json()["data"]["content"] == "note to self"
        assert ws.receive_json()["data"]["content"] == "next"


def test_socket_send_message_persists_and_fans_out(client, make_user):
    user1, user2 = make_user(), make_user()

    with client.websocket_connect("/ws") as sender_ws, client.websocket_connect("/ws") as receiver_ws:
        _join(sender_ws, user1)
        _join(receiver_ws, user2)

        sender_ws.send_json({"event": "send_message",
                             "data": {"senderId": user1, "receiverId": user2, "content": "over the socket"}})

        to_sender = sender_ws.receive_json()
        to_receiver = receiver_ws.receive_json()

    assert to_sender == to_receiver
    assert to_sender["event"] == "receive_message"
    history = client.get(f"/api/messages/{user2}", headers={"Authorization": str(user1)}).json()
    assert history == [to_sender["data"]]


def test_socket_errors_keep_the_connection_open(client, make_user):
    user1 = make_user()

    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"event": "join", "data": 12345})
        assert ws.receive_json() == {"event": "error", "data": {"detail": "Unknown user 12345"}}

        ws.send_json({"event": "send_message", "data": {"senderId": user1, "receiverId": 555, "content": "x"}})
        assert ws.receive_json() == {"event": "error", "data": {"detail": "Unknown receiver 555"}}

        ws.send_json({"event": "send_message", "data": {"senderId": user1}})
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"event": "wave"})
        assert ws.receive_json()["event"] == "error"

        _join(ws, user1)


def test_disconnect_leaves_channel(client, make_user):
    user1 = make_user()

    fanout = app.state.fanout

    with client.websocket_connect("/ws") as ws:
        _join(ws, user1)
        assert len(fanout.connections(user1)) == 1

    # Close is processed on the server loop
    for _ in range(200):
        if not fanout.connections(user1):
            break
        time.sleep(0.01)
    assert fanout.connections(user1) == []
    assert fanout.channels == {}


class RecordingSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


def _message(sender, receiver):
    return MessageDB(id=1, sender_id=sender, receiver_id=receiver, content="hi", created_at=utcnow())


def test_join_moves_connection_between_channels():
    fanout = FanOut()
    socket = RecordingSocket()

    fanout.join(1, socket)
    fanout.join(2, socket)

    assert fanout.connections(1) == []
    assert fanout.connections(2) == [socket]
    assert fanout.channel_of(socket) == 2
    assert fanout.leave(socket) == 2
    assert fanout.channels == {}


def test_publish_reaches_every_connection_of_both_parties():
    fanout = FanOut()
    a1, a2, b, c = RecordingSocket(), RecordingSocket(), RecordingSocket(), RecordingSocket()
    fanout.join(1, a1)
    fanout.join(1, a2)
    fanout.join(2, b)
    fanout.join(3, c)

    delivered = asyncio.run(fanout.publish(_message(1, 2)))

    assert delivered == 3
    assert [len(s.sent) for s in (a1, a2, b, c)] == [1, 1, 1, 0]
    assert a1.sent[0]["event"] == "receive_message"
    assert a1.sent[0]["data"]["sender_id"] == 1


def test_publish_drops_dead_connections():
    fanout = FanOut()
    dead, alive = RecordingSocket(fail=True), RecordingSocket()
    fanout.join(2, dead)
    fanout.join(2, alive)

    delivered = asyncio.run(fanout.publish(_message(1, 2)))

    assert delivered == 1
    assert fanout.connections(2) == [alive]


class StalledSocket:
    async def send_json(self, data):
        await asyncio.sleep(3600)


def test_stalled_connection_does_not_hold_up_the_others():
    fanout = FanOut(send_timeout=0.05)
    stalled, alive = StalledSocket(), RecordingSocket()
    fanout.join(2, stalled)
    fanout.join(1, alive)

    started = time.monotonic()
    delivered = asyncio.run(fanout.publish(_message(1, 2)))

    assert time.monotonic() - started < 5
    assert delivered == 1
    assert len(alive.sent) == 1
    assert fanout.connections(2) == []
    assert fanout.connections(1) == [alive]


def test_joined_listeners_hold_no_database_connection(client, tmp_path, monkeypatch):
    file_engine = create_engine(f"sqlite:///{tmp_path / 'listeners.db'}",
                                connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=file_engine)
    FileSession = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    with FileSession() as session:
        ids = [create_user(session, f"listener{n}@example.com", "pw", "driver", f"Listener {n}").id
               for n in range(6)]
    monkeypatch.setattr(main_module, "SessionLocal", FileSession)

    try:
        with contextlib.ExitStack() as stack:
            sockets = [stack.enter_context(client.websocket_connect("/ws")) for _ in ids]
            for ws, user_id in zip(sockets, ids):
                _join(ws, user_id)
            assert file_engine.pool.checkedout() == 0

            sockets[0].send_json({"event": "send_message",
                                  "data": {"senderId": ids[0], "receiverId": ids[1], "content": "ping"}})
            assert sockets[0].receive_json()["data"]["content"] == "ping"
            assert sockets[1].receive_json()["data"]["content"] == "ping"
            assert file_engine.pool.checkedout() == 0
    finally:
        file_engine.dispose()
