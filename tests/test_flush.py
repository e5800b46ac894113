"""Tests for moving buffered messages into the durable store."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from tribechat.exceptions import StorageFailure
from tribechat.schemas.message import DeleteScope, from_buffer_entry

from conftest import ALICE, BOB, ROOM

pytestmark = pytest.mark.anyio


async def send_many(service, clock, count, sender=ALICE):
    sent = []
    for n in range(count):
        clock.advance(seconds=1)
        sent.append(await service.send_message(ROOM, sender, "alice", f"msg {n}"))
    return sent


class TestFlush:
    async def test_flush_of_empty_buffer_is_a_no_op(self, direct):
        result = await direct.flush(ROOM)
        assert result.ok
        assert result.flushed == 0

    async def test_flush_preserves_ids_and_timestamps(self, direct, clock):
        clock.now = clock.now.replace(microsecond=987654)
        [record] = await send_many(direct, clock, 1)

        result = await direct.flush(ROOM)

        assert result.ok and result.flushed == 1
        stored = await direct.messages.find_by_id(record.id)
        assert stored.sent_at == record.sent_at
        assert stored.body == record.body
        assert stored.sender_id == ALICE
        assert await direct.buffer.length(ROOM) == 0

    async def test_failed_insert_keeps_the_buffer(self, direct, clock):
        await send_many(direct, clock, 3)

        with patch.object(direct.messages, "insert_many", AsyncMock(side_effect=StorageFailure("db down"))):
            result = await direct.flush(ROOM)

        assert not result.ok
        assert isinstance(result.error, StorageFailure)
        assert await direct.buffer.length(ROOM) == 3
        assert await direct.messages.find_by_room(ROOM) == []

        # The next trigger retries the same batch
        retry = await direct.flush(ROOM)
        assert retry.flushed == 3
        assert len(await direct.messages.find_by_room(ROOM)) == 3

    async def test_repeated_insert_of_a_batch_is_harmless(self, direct, clock):
        await send_many(direct, clock, 2)
        records = [from_buffer_entry(e) for e in await direct.buffer.read_all(ROOM)]

        await direct.messages.insert_many(records)
        await direct.flush(ROOM)

        assert len(await direct.messages.find_by_room(ROOM)) == 2
        assert await direct.buffer.length(ROOM) == 0

    async def test_flush_clears_hidden_markers(self, direct, clock):
        await send_many(direct, clock, 1)
        await direct.hide_room(ROOM, BOB)
        assert (await direct.get_lobby(ROOM)).deleted_for == [BOB]

        await direct.flush(ROOM)

        assert (await direct.get_lobby(ROOM)).deleted_for == []

    async def test_flush_does_not_rebroadcast(self, direct, broadcaster, clock):
        await send_many(direct, clock, 4)
        await direct.flush(ROOM)
        assert len(broadcaster.of("message.created")) == 4

    async def test_buffer_read_failure_is_reported_not_raised(self, direct):
        with patch.object(direct.buffer, "read_all", AsyncMock(side_effect=StorageFailure("redis down"))):
            result = await direct.flush(ROOM)
        assert not result.ok

    async def test_threshold_check_below_batch_size(self, direct, clock):
        await send_many(direct, clock, 3)
        assert await direct.flusher.maybe_flush(ROOM) is None

    async def test_failed_threshold_flush_does_not_fail_the_send(self, direct, clock):
        await send_many(direct, clock, 9)

        with patch.object(direct.messages, "insert_many", AsyncMock(side_effect=StorageFailure("db down"))):
            await send_many(direct, clock, 1)

        assert await direct.buffer.length(ROOM) == 10

        # One more send crosses the threshold again and drains everything
        await send_many(direct, clock, 1)
        assert await direct.buffer.length(ROOM) == 0
        assert len(await direct.messages.find_by_room(ROOM, limit=100)) == 11

    async def test_delete_landing_mid_flush_leaves_no_row(self, direct, clock):
        first, second = await send_many(direct, clock, 2)
        insert_many = direct.messages.insert_many

        async def insert_then_delete(records):
            await insert_many(records)
            await direct.delete_message(ROOM, second.id, ALICE, DeleteScope.FOR_SELF)

        with patch.object(direct.messages, "insert_many", AsyncMock(side_effect=insert_then_delete)):
            result = await direct.flush(ROOM)

        assert result.ok and result.flushed == 1
        assert await direct.messages.find_by_id(second.id) is None
        assert await direct.messages.find_by_id(first.id) is not None
        assert await direct.buffer.length(ROOM) == 0

    async def test_concurrent_flushes_keep_every_row(self, direct, clock):
        await send_many(direct, clock, 3)

        results = await asyncio.gather(direct.flush(ROOM), direct.flush(ROOM))

        assert all(r.ok for r in results)
        assert sorted(r.flushed for r in results) == [0, 3]
        assert len(await direct.messages.find_by_room(ROOM)) == 3
