"""Tests for connection tracking, fan-out and the disconnect flush."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from tribechat.api.v1.websocket import handle_disconnect, handle_join
from tribechat.schemas.message import RoomKind
from tribechat.services.chat_service import build_chat_services
from tribechat.websocket_manager import ConnectionManager, Participant

from conftest import ALICE, BOB, ROOM

pytestmark = pytest.mark.anyio


def fake_socket():
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    return ws


def frames(ws):
    return [json.loads(call.args[0]) for call in ws.send_text.await_args_list]


@pytest.fixture
def manager():
    return ConnectionManager(send_timeout=0.5)


async def connect(manager, user_id, name, room=ROOM, kind=RoomKind.DIRECT):
    ws = fake_socket()
    await manager.connect(ws)
    manager.join(ws, Participant(room=room, user_id=user_id, name=name, kind=kind))
    return ws


class TestConnectionManager:
    async def test_room_broadcast_reaches_only_that_room(self, manager):
        alice = await connect(manager, ALICE, "alice")
        bob = await connect(manager, BOB, "bob", room="elsewhere")

        await manager.broadcast_to_room(ROOM, "message.created", {"id": "m1"})

        assert frames(alice) == [{"type": "message.created", "data": {"id": "m1"}}]
        assert frames(bob) == []

    async def test_exclude_sender(self, manager):
        alice = await connect(manager, ALICE, "alice")
        bob = await connect(manager, BOB, "bob")

        await manager.broadcast_to_room(ROOM, "typing.started", {}, exclude=alice)

        assert frames(alice) == []
        assert len(frames(bob)) == 1

    async def test_broadcast_all_includes_unjoined_connections(self, manager):
        lurker = fake_socket()
        await manager.connect(lurker)

        await manager.broadcast_all("lobby.updated", {"room_id": ROOM})

        assert frames(lurker) == [{"type": "lobby.updated", "data": {"room_id": ROOM}}]

    async def test_failed_socket_is_dropped(self, manager):
        alice = await connect(manager, ALICE, "alice")
        dead = await connect(manager, BOB, "bob")
        dead.send_text.side_effect = RuntimeError("closed")

        await manager.broadcast_to_room(ROOM, "message.created", {})

        assert manager.get_room_size(ROOM) == 1
        assert dead not in manager.connections
        assert len(frames(alice)) == 1
        # Still registered so its handler can flush on the way out
        assert manager.get_participant(dead).user_id == BOB
        assert manager.disconnect(dead).user_id == BOB

    async def test_slow_socket_times_out(self, manager):
        slow = await connect(manager, ALICE, "alice")

        async def hang(frame):
            await asyncio.sleep(5)

        slow.send_text.side_effect = hang
        await manager.broadcast_to_room(ROOM, "message.created", {})

        assert manager.get_room_size(ROOM) == 0

    async def test_rejoin_moves_socket(self, manager):
        ws = await connect(manager, ALICE, "alice")
        previous = manager.join(ws, Participant(room="other", user_id=ALICE, name="alice"))

        assert previous.room == ROOM
        assert manager.get_room_size(ROOM) == 0
        assert manager.get_user_list("other") == [{"user_id": ALICE, "name": "alice"}]

    async def test_disconnect_returns_participant(self, manager):
        ws = await connect(manager, ALICE, "alice")

        participant = manager.disconnect(ws)

        assert participant.user_id == ALICE
        assert manager.get_room_size(ROOM) == 0
        assert manager.disconnect(ws) is None


class TestDisconnectFlush:
    @pytest.fixture
    def services(self, redis_client, sessions, manager, object_storage, clock):
        return build_chat_services(redis_client, sessions, manager, object_storage, clock=clock)

    async def test_disconnect_flushes_both_buffers(self, manager, services, clock):
        alice = await connect(manager, ALICE, "alice")
        bob = await connect(manager, BOB, "bob")
        direct = services[RoomKind.DIRECT]
        tribe = services[RoomKind.TRIBE]
        for n in range(9):
            clock.advance(seconds=1)
            await direct.send_message(ROOM, ALICE, "alice", f"msg {n}")
        await tribe.send_message(ROOM, ALICE, "alice", "tribe msg")

        await handle_disconnect(alice, manager, services)

        assert await direct.buffer.length(ROOM) == 0
        assert await tribe.buffer.length(ROOM) == 0
        assert len(await direct.messages.find_by_room(ROOM)) == 9
        assert len(await tribe.messages.find_by_room(ROOM)) == 1
        assert (await direct.get_lobby(ROOM)).last_message == "msg 8"
        assert frames(bob)[-1] == {"type": "room.users", "data": {"room": ROOM, "users": [{"user_id": BOB, "name": "bob"}]}}

    async def test_disconnect_without_join_does_nothing(self, manager, services):
        ws = fake_socket()
        await manager.connect(ws)

        await handle_disconnect(ws, manager, services)

        assert ws not in manager.connections

    async def test_socket_dropped_by_broadcast_still_flushes(self, manager, services, clock):
        alice = await connect(manager, ALICE, "alice")
        direct = services[RoomKind.DIRECT]
        for n in range(3):
            clock.advance(seconds=1)
            await direct.send_message(ROOM, ALICE, "alice", f"msg {n}")
        alice.send_text.side_effect = RuntimeError("closed")

        await manager.broadcast_all("lobby.updated", {"room_id": ROOM})
        await handle_disconnect(alice, manager, services)

        assert await direct.buffer.length(ROOM) == 0
        assert len(await direct.messages.find_by_room(ROOM)) == 3

    async def test_joining_another_room_flushes_the_old_one(self, manager, services, clock):
        alice = await connect(manager, ALICE, "alice")
        direct = services[RoomKind.DIRECT]
        clock.advance(seconds=1)
        await direct.send_message(ROOM, ALICE, "alice", "before moving")

        await handle_join(alice, {"room": "other", "user_id": ALICE, "name": "alice"}, manager, services)

        assert await direct.buffer.length(ROOM) == 0
        assert len(await direct.messages.find_by_room(ROOM)) == 1
        assert manager.get_participant(alice).room == "other"
