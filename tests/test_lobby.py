"""Tests for the per-room lobby summary."""

from datetime import datetime, timedelta

import pytest

from tribechat.schemas.message import MessageRecord, MessageType

from conftest import ALICE, BOB, ROOM

pytestmark = pytest.mark.anyio

T0 = datetime(2026, 3, 1, 12, 0, 0)


def record(message_id, sent_at, body="hello", **fields):
    return MessageRecord(id=message_id, room_id=ROOM, sender_id=ALICE, body=body, sent_at=sent_at, **fields)


class TestLobbyService:
    async def test_record_message_creates_summary(self, direct, broadcaster):
        summary = await direct.lobby.record_message(record("m1", T0))

        assert summary.room_id == ROOM
        assert summary.last_message == "hello"
        assert summary.last_updated == T0
        assert broadcaster.global_events == [("lobby.updated", summary.to_event())]

    async def test_older_update_does_not_roll_back(self, direct):
        await direct.lobby.record_message(record("m2", T0 + timedelta(seconds=10), body="newer"))
        await direct.lobby.record_message(record("m1", T0, body="older"))

        summary = await direct.get_lobby(ROOM)
        assert summary.last_message_id == "m2"
        assert summary.last_message == "newer"

    async def test_file_preview(self, direct):
        summary = await direct.lobby.record_message(
            record("m1", T0, body="", type=MessageType.FILE, file_url="https://x/v.mp4", is_video=True)
        )
        assert summary.last_message == "🎬 Video"

    async def test_hide_is_idempotent(self, direct):
        await direct.lobby.record_message(record("m1", T0))

        await direct.hide_room(ROOM, BOB)
        summary = await direct.hide_room(ROOM, BOB)

        assert summary.deleted_for == [BOB]

    async def test_hide_without_summary_creates_one(self, direct):
        summary = await direct.hide_room(ROOM, BOB)
        assert summary.deleted_for == [BOB]
        assert summary.last_message_id is None

    async def test_new_message_unhides_room(self, direct):
        await direct.lobby.record_message(record("m1", T0))
        await direct.hide_room(ROOM, BOB)

        summary = await direct.lobby.record_message(record("m2", T0 + timedelta(seconds=1)))

        assert summary.deleted_for == []

    async def test_repair_ignores_unrelated_message(self, direct):
        await direct.lobby.record_message(record("m1", T0))
        assert await direct.lobby.repair_after_delete(ROOM, "other") is None

    async def test_repair_without_summary(self, direct):
        assert await direct.lobby.repair_after_delete(ROOM, "m1") is None

    async def test_lobbies_are_separate_per_kind(self, direct, tribe):
        await direct.lobby.record_message(record("m1", T0))
        assert await tribe.get_lobby(ROOM) is None

    async def test_survivor_skips_excluded_durable_row(self, direct, clock):
        first = await direct.send_direct(ROOM, ALICE, "alice", "first")
        clock.advance(seconds=5)
        second = await direct.send_direct(ROOM, ALICE, "alice", "second")

        survivor = await direct.lobby.latest_surviving(ROOM, exclude_id=second.id)

        assert survivor.id == first.id

    async def test_repair_with_excluded_row_still_stored(self, direct, clock):
        first = await direct.send_direct(ROOM, ALICE, "alice", "first")
        clock.advance(seconds=5)
        second = await direct.send_direct(ROOM, ALICE, "alice", "second")

        summary = await direct.lobby.repair_after_delete(ROOM, second.id)

        assert summary.last_message_id == first.id
        assert summary.last_message == "first"

    async def test_repair_skips_summary_that_moved_on(self, direct):
        await direct.lobby.record_message(record("m1", T0))
        await direct.lobby.record_message(record("m2", T0 + timedelta(seconds=1)))

        summary = await direct.lobby.store.upsert(
            ROOM, only_if_points_to="m1", last_message="", last_message_id=None
        )

        assert summary.last_message_id == "m2"
