"""Deletes a message from wherever it currently lives.

Recent messages are usually still buffered, so the buffer is scanned first.
A flush may move the message between that scan and the removal; in that case
the removal finds nothing and the lookup continues in the durable store.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from tribechat.buffer import MessageBuffer
from tribechat.exceptions import DeleteWindowExpiredError, MessageNotFoundError
from tribechat.models.base import utcnow
from tribechat.schemas.lobby import LobbySummary
from tribechat.schemas.message import DeleteScope, MessageType
from tribechat.services.lobby import LobbyService
from tribechat.services.steps import best_effort
from tribechat.services.stores import MessageStore

logger = logging.getLogger(__name__)

MESSAGE_DELETED = "message.deleted"


@dataclass
class DeleteOutcome:
    message_id: str
    room_id: str
    source: str  # "buffer" or "durable"
    lobby: Optional[LobbySummary] = None


class DeleteReconciler:
    def __init__(
        self,
        buffer: MessageBuffer,
        messages: MessageStore,
        lobby: LobbyService,
        broadcaster,
        object_storage,
        roles=None,
        delete_window: timedelta = timedelta(minutes=7),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.buffer = buffer
        self.messages = messages
        self.lobby = lobby
        self.broadcaster = broadcaster
        self.object_storage = object_storage
        # Only rooms with admins (tribes) get a role lookup
        self.roles = roles
        self.delete_window = delete_window
        self.clock = clock

    async def delete(self, room_id: str, message_id: str, requester_id: str,
                     scope: DeleteScope) -> DeleteOutcome:
        outcome = await self._delete_buffered(room_id, message_id, requester_id, scope)
        if outcome is None:
            outcome = await self._delete_durable(room_id, message_id, requester_id, scope)

        outcome.lobby = await self.lobby.repair_after_delete(room_id, message_id)
        await self.broadcaster.broadcast_to_room(
            room_id, MESSAGE_DELETED, {"message_id": message_id, "room_id": room_id}
        )
        logger.info("Deleted message %s in room %s from %s (%s)",
                    message_id, room_id, outcome.source, scope.value)
        return outcome

    async def _delete_buffered(self, room_id, message_id, requester_id, scope) -> Optional[DeleteOutcome]:
        for entry in await self.buffer.read_all(room_id):
            if entry.id != message_id or entry.sender_id != requester_id:
                continue
            if not await self.buffer.remove(room_id, entry):
                logger.debug("Message %s left the buffer of room %s mid-delete", message_id, room_id)
                return None
            if entry.type == MessageType.FILE and scope == DeleteScope.FOR_EVERYONE:
                await self._delete_file(entry.file_url, room_id)
            return DeleteOutcome(message_id=message_id, room_id=room_id, source="buffer")
        return None

    async def _delete_durable(self, room_id, message_id, requester_id, scope) -> DeleteOutcome:
        record = await self.messages.find_by_id(message_id)
        if record is None or record.room_id != room_id:
            raise MessageNotFoundError(f"Message {message_id} not found")

        is_admin = False
        if record.sender_id != requester_id or scope == DeleteScope.FOR_EVERYONE:
            is_admin = await self._is_admin(room_id, requester_id)
        if record.sender_id != requester_id and not is_admin:
            raise MessageNotFoundError(f"Message {message_id} not found")

        if scope == DeleteScope.FOR_EVERYONE and not is_admin:
            age = self._now() - record.sent_at
            if age > self.delete_window:
                raise DeleteWindowExpiredError(
                    f"Messages can only be deleted for everyone within "
                    f"{int(self.delete_window.total_seconds() // 60)} minutes"
                )

        if record.type == MessageType.FILE and scope == DeleteScope.FOR_EVERYONE:
            await self._delete_file(record.file_url, room_id)

        if not await self.messages.delete_by_id(message_id):
            raise MessageNotFoundError(f"Message {message_id} not found")
        return DeleteOutcome(message_id=message_id, room_id=room_id, source="durable")

    async def _delete_file(self, file_url: Optional[str], room_id: str):
        """A file that cannot be removed is logged and left behind; the message still goes."""
        if not file_url or self.object_storage is None:
            return
        await best_effort("delete file object", self.object_storage.delete_object(file_url), room_id)

    async def _is_admin(self, room_id: str, user_id: str) -> bool:
        if self.roles is None:
            return False
        return await self.roles.is_room_admin(room_id, user_id)

    def _now(self) -> datetime:
        return self.clock()
