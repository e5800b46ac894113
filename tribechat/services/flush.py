"""Moves buffered messages into the durable store.

A flush never re-broadcasts: everything in the buffer was broadcast when it
was accepted. A failed bulk insert leaves the buffer as it was, so the next
threshold crossing or disconnect retries the same batch.

Flushes of one room are serialized, so an entry that is already gone when the
batch is discarded was taken by a delete that raced the insert. Its freshly
inserted row is removed again.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Optional

from tribechat.buffer import MessageBuffer
from tribechat.exceptions import StorageFailure
from tribechat.schemas.message import from_buffer_entry
from tribechat.services.lobby import LobbyService
from tribechat.services.steps import best_effort
from tribechat.services.stores import MessageStore

logger = logging.getLogger(__name__)


@dataclass
class FlushResult:
    room_id: str
    flushed: int = 0
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FlushEngine:
    def __init__(self, buffer: MessageBuffer, messages: MessageStore, lobby: LobbyService,
                 batch_size: int = 10):
        self.buffer = buffer
        self.messages = messages
        self.lobby = lobby
        self.batch_size = batch_size
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def maybe_flush(self, room_id: str) -> Optional[FlushResult]:
        """Flush when the room's buffer reached the batch size."""
        try:
            length = await self.buffer.length(room_id)
        except StorageFailure as exc:
            logger.error("Could not read buffer length for room %s: %s", room_id, exc)
            return FlushResult(room_id, error=exc)
        if length < self.batch_size:
            return None
        return await self.flush(room_id)

    async def flush(self, room_id: str) -> FlushResult:
        async with self._locks[room_id]:
            return await self._flush(room_id)

    async def _flush(self, room_id: str) -> FlushResult:
        try:
            entries = await self.buffer.read_all(room_id)
        except StorageFailure as exc:
            logger.error("Could not read buffer for room %s: %s", room_id, exc)
            return FlushResult(room_id, error=exc)
        if not entries:
            return FlushResult(room_id)

        try:
            await self.messages.insert_many([from_buffer_entry(entry) for entry in entries])
        except StorageFailure as exc:
            logger.error("Bulk insert of %d buffered messages for room %s failed, keeping buffer: %s",
                         len(entries), room_id, exc)
            return FlushResult(room_id, error=exc)

        await best_effort("reset deleted_for", self.lobby.reset_deleted_for(room_id), room_id)

        try:
            discarded = await self.buffer.discard(room_id, entries)
        except StorageFailure as exc:
            # Rows are durable already; re-inserting them on the next flush is a no-op.
            logger.error("Flushed %d messages for room %s but could not trim buffer: %s",
                         len(entries), room_id, exc)
            discarded = [True] * len(entries)

        dropped = 0
        for entry, still_buffered in zip(entries, discarded):
            if not still_buffered:
                logger.info("Message %s was deleted while room %s was flushing, removing its row",
                            entry.id, room_id)
                await best_effort("drop deleted row", self.messages.delete_by_id(entry.id), room_id)
                dropped += 1
        flushed = len(entries) - dropped
        logger.info("Flushed %d buffered messages for room %s", flushed, room_id)
        return FlushResult(room_id, flushed=flushed)
