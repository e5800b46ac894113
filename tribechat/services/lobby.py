import logging
from datetime import datetime
from typing import Callable, Optional

from tribechat.buffer import MessageBuffer
from tribechat.models.base import utcnow
from tribechat.schemas.lobby import LobbySummary
from tribechat.schemas.message import MessageRecord, from_buffer_entry
from tribechat.services.stores import LobbyStore, MessageStore

logger = logging.getLogger(__name__)

LOBBY_UPDATED = "lobby.updated"


class LobbyService:
    """Keeps a room's lobby summary in step with its buffered and durable messages.

    Every change is broadcast process-wide, since room lists show rooms the
    viewer has not joined.
    """

    def __init__(self, store: LobbyStore, messages: MessageStore, buffer: MessageBuffer, broadcaster,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.messages = messages
        self.buffer = buffer
        self.broadcaster = broadcaster
        self.clock = clock

    async def get(self, room_id: str) -> Optional[LobbySummary]:
        return await self.store.get(room_id)

    async def record_message(self, record: MessageRecord) -> LobbySummary:
        """Point the summary at ``record`` and un-hide the room for everyone."""
        summary = await self.store.upsert(
            record.room_id,
            only_if_newer=True,
            last_message=record.preview,
            last_message_id=record.id,
            last_updated=record.sent_at,
            deleted_for=[],
        )
        await self.publish(summary)
        return summary

    async def reset_deleted_for(self, room_id: str) -> LobbySummary:
        return await self.store.upsert(room_id, deleted_for=[])

    async def hide_for(self, room_id: str, user_id: str) -> LobbySummary:
        return await self.store.add_deleted_for(room_id, user_id)

    async def repair_after_delete(self, room_id: str, deleted_id: str) -> Optional[LobbySummary]:
        """Re-point the summary if it referenced ``deleted_id``.

        Returns the new summary, or None when the deleted message was not the
        room's last one and nothing changed. The write only lands while the
        summary still points at ``deleted_id``; a send that got in first wins.
        """
        current = await self.store.get(room_id)
        if current is None or current.last_message_id != deleted_id:
            return None

        survivor = await self.latest_surviving(room_id, exclude_id=deleted_id)
        if survivor is None:
            summary = await self.store.upsert(
                room_id,
                only_if_points_to=deleted_id,
                last_message="",
                last_message_id=None,
                last_updated=self.clock(),
            )
        else:
            summary = await self.store.upsert(
                room_id,
                only_if_points_to=deleted_id,
                last_message=survivor.preview,
                last_message_id=survivor.id,
                last_updated=survivor.sent_at,
            )
        if summary.last_message_id != (survivor.id if survivor else None):
            logger.debug("Lobby %s moved on before the repair for %s landed", room_id, deleted_id)
            return summary
        logger.debug("Lobby %s repaired after deleting %s -> %s", room_id, deleted_id, summary.last_message_id)
        await self.publish(summary)
        return summary

    async def latest_surviving(self, room_id: str, exclude_id: Optional[str] = None) -> Optional[MessageRecord]:
        """Most recent message of the room, whether still buffered or durable."""
        candidates = []
        for entry in reversed(await self.buffer.read_all(room_id)):
            if entry.id != exclude_id:
                candidates.append(from_buffer_entry(entry))
                break
        durable = await self.messages.latest(room_id, exclude_id=exclude_id)
        if durable is not None:
            candidates.append(durable)
        if not candidates:
            return None
        return max(candidates, key=lambda record: record.sent_at)

    async def publish(self, summary: LobbySummary):
        await self.broadcaster.broadcast_all(LOBBY_UPDATED, summary.to_event())
