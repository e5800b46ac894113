"""Message accept, flush, delete and lobby handling for one room kind.

Direct (1:1) and tribe rooms run the same code against separate buffers,
tables and lobbies; ``build_chat_services`` wires one ``ChatService`` for each.

Send path (buffered):
    1. assign id and timestamp
    2. append to the buffer (failure aborts the send)
    3. broadcast ``message.created`` to the room, sender included
    4. best effort: update the lobby summary and broadcast it everywhere
    5. best effort: notify the other participants
    6. flush if the buffer reached the batch size

A broadcast message is not necessarily durable yet.
"""
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tribechat.buffer import CHAT_BUFFER_PREFIX, TRIBE_BUFFER_PREFIX, MessageBuffer
from tribechat.exceptions import MessageValidationError
from tribechat.models.base import new_id, utcnow
from tribechat.models.lobby import ChatLobby, TribeLobby
from tribechat.models.message import Message, TribeMessage
from tribechat.schemas.lobby import LobbySummary
from tribechat.schemas.message import (
    DeleteScope,
    MessageRecord,
    MessageType,
    ReplyRef,
    RoomKind,
    from_buffer_entry,
    to_buffer_entry,
    to_event,
)
from tribechat.services.delete import DeleteOutcome, DeleteReconciler
from tribechat.services.flush import FlushEngine, FlushResult
from tribechat.services.lobby import LobbyService
from tribechat.services.rooms import NotificationSink, RoomRoles
from tribechat.services.steps import best_effort
from tribechat.services.stores import LobbyStore, MessageStore

logger = logging.getLogger(__name__)

MESSAGE_CREATED = "message.created"
MESSAGE_UPDATED = "message.updated"

IMAGE_URL = re.compile(r"\.(png|jpe?g|gif|webp)(\?.*)?$", re.IGNORECASE)
VIDEO_URL = re.compile(r"\.(mp4|mov|avi|mkv)(\?.*)?$", re.IGNORECASE)


def validate_identity(value, field: str = "sender id") -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError):
        raise MessageValidationError(f"Invalid {field}: {value!r}")


def validate_room(room_id) -> str:
    if not isinstance(room_id, str) or not room_id.strip():
        raise MessageValidationError("Room is required")
    return room_id


def classify_file(file_url: str, mimetype: Optional[str]) -> Tuple[bool, bool]:
    """(is_image, is_video), from the mimetype when given, else from the URL."""
    if mimetype:
        return mimetype.startswith("image/"), mimetype.startswith("video/")
    return bool(IMAGE_URL.search(file_url)), bool(VIDEO_URL.search(file_url))


class ChatService:
    def __init__(
        self,
        kind: RoomKind,
        buffer: MessageBuffer,
        messages: MessageStore,
        lobby: LobbyService,
        flusher: FlushEngine,
        deleter: DeleteReconciler,
        broadcaster,
        notifier: Optional[NotificationSink] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.kind = kind
        self.buffer = buffer
        self.messages = messages
        self.lobby = lobby
        self.flusher = flusher
        self.deleter = deleter
        self.broadcaster = broadcaster
        self.notifier = notifier
        self.clock = clock

    def _now(self) -> datetime:
        # The buffer keeps millisecond timestamps; match it so ids and times survive a flush unchanged.
        now = self.clock()
        return now.replace(microsecond=now.microsecond // 1000 * 1000)

    def _new_record(self, room_id: str, sender_id: str, sender_name: Optional[str], **fields) -> MessageRecord:
        return MessageRecord(
            id=new_id(),
            room_id=room_id,
            sender_id=sender_id,
            sender_name=sender_name,
            sent_at=self._now(),
            **fields,
        )

    def _validate_text(self, room_id, sender_id, text) -> Tuple[str, str]:
        room_id = validate_room(room_id)
        sender_id = validate_identity(sender_id)
        if not isinstance(text, str) or not text.strip():
            raise MessageValidationError("Message text is required")
        return room_id, sender_id

    async def send_message(self, room_id: str, sender_id: str, sender_name: Optional[str],
                           text: str, reply_to: Optional[ReplyRef] = None) -> MessageRecord:
        room_id, sender_id = self._validate_text(room_id, sender_id, text)
        record = self._new_record(room_id, sender_id, sender_name, body=text, reply_to=reply_to)

        await self.buffer.append(room_id, to_buffer_entry(record))
        await self.broadcaster.broadcast_to_room(room_id, MESSAGE_CREATED, self._event(record))

        await best_effort("lobby update", self.lobby.record_message(record), room_id)
        await self._notify(record)
        await self.flusher.maybe_flush(room_id)
        logger.debug("Accepted message %s in %s room %s", record.id, self.kind.value, room_id)
        return record

    async def send_direct(self, room_id: str, sender_id: str, sender_name: Optional[str],
                          text: str, reply_to: Optional[ReplyRef] = None) -> MessageRecord:
        """Write straight to the durable store, bypassing the buffer.

        The lobby is updated exactly as after a flush, deleted-for markers included.
        """
        room_id, sender_id = self._validate_text(room_id, sender_id, text)
        record = self._new_record(room_id, sender_id, sender_name, body=text, reply_to=reply_to)
        return await self._persist_and_publish(record, notify=True)

    async def send_file(self, room_id: str, sender_id: str, sender_name: Optional[str],
                        file_url: str, mimetype: Optional[str] = None) -> MessageRecord:
        room_id = validate_room(room_id)
        sender_id = validate_identity(sender_id)
        if not isinstance(file_url, str) or not file_url.strip():
            raise MessageValidationError("File URL is required")
        is_image, is_video = classify_file(file_url, mimetype)
        record = self._new_record(
            room_id, sender_id, sender_name,
            body="",
            type=MessageType.FILE,
            file_url=file_url,
            is_image=is_image,
            is_video=is_video,
        )
        return await self._persist_and_publish(record, notify=False)

    async def _persist_and_publish(self, record: MessageRecord, notify: bool) -> MessageRecord:
        stored = await self.messages.create(record)
        await self.broadcaster.broadcast_to_room(record.room_id, MESSAGE_CREATED, self._event(stored))
        await best_effort("lobby update", self.lobby.record_message(stored), record.room_id)
        if notify:
            await self._notify(stored)
        return stored

    async def _notify(self, record: MessageRecord):
        if self.notifier is None:
            return
        label = "tribe message" if self.kind == RoomKind.TRIBE else "message"
        text = f"New {label} from {record.sender_name or 'someone'}"
        await best_effort(
            "notify participants",
            self.notifier.notify_participants(record.room_id, record.sender_id, text),
            record.room_id,
        )

    def _event(self, record: MessageRecord) -> dict:
        return {**to_event(record), "kind": self.kind.value}

    async def delete_message(self, room_id: str, message_id: str, requester_id: str,
                             scope: DeleteScope = DeleteScope.FOR_SELF) -> DeleteOutcome:
        room_id = validate_room(room_id)
        requester_id = validate_identity(requester_id, "user id")
        if not isinstance(message_id, str) or not message_id.strip():
            raise MessageValidationError("Message id is required")
        return await self.deleter.delete(room_id, message_id, requester_id, scope)

    async def mark_seen(self, room_id: str, message_id: Optional[str] = None) -> Optional[str]:
        """Mark one message, or the room's latest unseen one, as seen.

        Still-buffered messages cannot be marked; they are written unseen.
        """
        room_id = validate_room(room_id)
        if message_id:
            if not await self.messages.update_seen(message_id):
                return None
            seen_id = message_id
        else:
            record = await self.messages.mark_latest_unseen(room_id)
            if record is None:
                return None
            seen_id = record.id
        await self.broadcaster.broadcast_to_room(
            room_id, MESSAGE_UPDATED, {"id": seen_id, "room_id": room_id, "seen": True}
        )
        return seen_id

    async def hide_room(self, room_id: str, user_id: str) -> LobbySummary:
        return await self.lobby.hide_for(validate_room(room_id), validate_identity(user_id, "user id"))

    async def flush(self, room_id: str) -> FlushResult:
        return await self.flusher.flush(room_id)

    async def get_lobby(self, room_id: str) -> Optional[LobbySummary]:
        return await self.lobby.get(room_id)

    async def history(self, room_id: str, limit: int = 50, offset: int = 0) -> List[Tuple[MessageRecord, bool]]:
        """Newest first. The first page starts with messages that are still buffered."""
        durable = await self.messages.find_by_room(room_id, limit=limit, offset=offset)
        page: List[Tuple[MessageRecord, bool]] = []
        if offset == 0:
            durable_ids = {record.id for record in durable}
            for entry in reversed(await self.buffer.read_all(room_id)):
                if entry.id not in durable_ids:
                    page.append((from_buffer_entry(entry), True))
        page.extend((record, False) for record in durable)
        return page[:limit]


def build_chat_services(
    redis_client,
    sessions: async_sessionmaker[AsyncSession],
    broadcaster,
    object_storage,
    batch_size: int = 10,
    ttl_seconds: int = 3600,
    delete_window_minutes: int = 7,
    timeout: float = 5.0,
    clock: Callable[[], datetime] = utcnow,
) -> Dict[RoomKind, ChatService]:
    roles = RoomRoles(sessions, timeout=timeout)
    notifier = NotificationSink(sessions, timeout=timeout)
    layout = {
        RoomKind.DIRECT: (CHAT_BUFFER_PREFIX, Message, ChatLobby, None),
        RoomKind.TRIBE: (TRIBE_BUFFER_PREFIX, TribeMessage, TribeLobby, roles),
    }

    services = {}
    for kind, (prefix, message_model, lobby_model, kind_roles) in layout.items():
        buffer = MessageBuffer(redis_client, prefix=prefix, ttl_seconds=ttl_seconds, timeout=timeout)
        messages = MessageStore(sessions, model=message_model, timeout=timeout)
        lobby = LobbyService(
            LobbyStore(sessions, model=lobby_model, timeout=timeout), messages, buffer, broadcaster, clock=clock
        )
        services[kind] = ChatService(
            kind=kind,
            buffer=buffer,
            messages=messages,
            lobby=lobby,
            flusher=FlushEngine(buffer, messages, lobby, batch_size=batch_size),
            deleter=DeleteReconciler(
                buffer,
                messages,
                lobby,
                broadcaster,
                object_storage,
                roles=kind_roles,
                delete_window=timedelta(minutes=delete_window_minutes),
                clock=clock,
            ),
            broadcaster=broadcaster,
            notifier=notifier,
            clock=clock,
        )
    return services
