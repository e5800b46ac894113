"""Canonical message value type and its projections.

``MessageRecord`` is the one shape the services work with. The buffer, the
durable tables and the websocket events each get their own projection through
the mapping functions at the bottom of this module.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict

IMAGE_PREVIEW = "📷 Image"
VIDEO_PREVIEW = "🎬 Video"
FILE_PREVIEW = "📎 File"


class MessageType(str, Enum):
    TEXT = "text"
    FILE = "file"


class DeleteScope(str, Enum):
    FOR_SELF = "forSelf"
    FOR_EVERYONE = "forEveryone"


class RoomKind(str, Enum):
    DIRECT = "direct"
    TRIBE = "tribe"


class ReplyRef(BaseModel):
    message_id: str
    sender_id: Optional[str] = None
    preview: Optional[str] = None


class MessageRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    room_id: str
    sender_id: str
    sender_name: Optional[str] = None
    body: str = ""
    type: MessageType = MessageType.TEXT
    sent_at: datetime
    seen: bool = False
    file_url: Optional[str] = None
    is_image: bool = False
    is_video: bool = False
    reply_to: Optional[ReplyRef] = None

    @property
    def preview(self) -> str:
        """Text shown for this message in a room list."""
        if self.type == MessageType.FILE:
            if self.is_image:
                return IMAGE_PREVIEW
            if self.is_video:
                return VIDEO_PREVIEW
            return FILE_PREVIEW
        return self.body


class BufferEntry(BaseModel):
    """What a buffered message looks like inside the Redis list.

    Entries are appended and removed whole, never edited, so ``encode`` of a
    decoded entry yields the exact bytes stored in the list.
    """

    id: str
    room_id: str
    sender_id: str
    sender_name: Optional[str] = None
    body: str = ""
    type: MessageType = MessageType.TEXT
    timestamp: int  # unix milliseconds
    file_url: Optional[str] = None
    is_image: bool = False
    is_video: bool = False
    reply_to: Optional[ReplyRef] = None

    def encode(self) -> str:
        return self.model_dump_json()

    @classmethod
    def decode(cls, raw: str) -> "BufferEntry":
        return cls.model_validate_json(raw)


# Websocket payloads

class JoinRoom(BaseModel):
    room: str
    user_id: str
    name: str
    kind: RoomKind = RoomKind.DIRECT


class SendMessageWebSocket(BaseModel):
    text: str
    reply_to: Optional[ReplyRef] = None


class SendFileWebSocket(BaseModel):
    file_url: str
    mimetype: Optional[str] = None


class DeleteMessageWebSocket(BaseModel):
    message_id: str
    delete_type: DeleteScope = DeleteScope.FOR_SELF


class MarkMessageSeen(BaseModel):
    message_id: Optional[str] = None


class TypingIndicator(BaseModel):
    is_typing: bool = True


# HTTP

class MessageCreate(BaseModel):
    text: str
    reply_to: Optional[ReplyRef] = None


class MessageResponse(BaseModel):
    id: str
    room_id: str
    sender_id: str
    sender_name: Optional[str] = None
    body: str
    type: MessageType
    sent_at: datetime
    seen: bool
    file_url: Optional[str] = None
    reply_to: Optional[ReplyRef] = None
    buffered: bool = False


class HistoryResponse(BaseModel):
    messages: List[MessageResponse]
    count: int


# Projections

def _to_millis(value: datetime) -> int:
    return int(value.replace(tzinfo=timezone.utc).timestamp() * 1000)


def _from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)


def to_buffer_entry(record: MessageRecord) -> BufferEntry:
    return BufferEntry(
        id=record.id,
        room_id=record.room_id,
        sender_id=record.sender_id,
        sender_name=record.sender_name,
        body=record.body,
        type=record.type,
        timestamp=_to_millis(record.sent_at),
        file_url=record.file_url,
        is_image=record.is_image,
        is_video=record.is_video,
        reply_to=record.reply_to,
    )


def from_buffer_entry(entry: BufferEntry) -> MessageRecord:
    return MessageRecord(
        id=entry.id,
        room_id=entry.room_id,
        sender_id=entry.sender_id,
        sender_name=entry.sender_name,
        body=entry.body,
        type=entry.type,
        sent_at=_from_millis(entry.timestamp),
        file_url=entry.file_url,
        is_image=entry.is_image,
        is_video=entry.is_video,
        reply_to=entry.reply_to,
    )


def to_row(record: MessageRecord) -> dict:
    """Column values for a durable message row."""
    reply = record.reply_to
    return {
        "id": record.id,
        "room_id": record.room_id,
        "sender_id": record.sender_id,
        "sender_name": record.sender_name,
        "body": record.body,
        "type": record.type.value,
        "sent_at": record.sent_at,
        "seen": record.seen,
        "file_url": record.file_url,
        "is_image": record.is_image,
        "is_video": record.is_video,
        "reply_to_id": reply.message_id if reply else None,
        "reply_to_sender_id": reply.sender_id if reply else None,
        "reply_preview": reply.preview if reply else None,
    }


def from_row(row) -> MessageRecord:
    reply = None
    if row.reply_to_id:
        reply = ReplyRef(
            message_id=row.reply_to_id,
            sender_id=row.reply_to_sender_id,
            preview=row.reply_preview,
        )
    return MessageRecord(
        id=row.id,
        room_id=row.room_id,
        sender_id=row.sender_id,
        sender_name=row.sender_name,
        body=row.body or "",
        type=MessageType(row.type),
        sent_at=row.sent_at,
        seen=row.seen,
        file_url=row.file_url,
        is_image=row.is_image,
        is_video=row.is_video,
        reply_to=reply,
    )


def to_event(record: MessageRecord) -> dict:
    """Payload of a ``message.created`` event."""
    return {
        "id": record.id,
        "room_id": record.room_id,
        "sender_id": record.sender_id,
        "sender_name": record.sender_name,
        "body": record.body,
        "type": record.type.value,
        "sent_at": record.sent_at.isoformat(),
        "seen": record.seen,
        "file_url": record.file_url,
        "is_image": record.is_image,
        "is_video": record.is_video,
        "reply_to": record.reply_to.model_dump() if record.reply_to else None,
    }


def to_response(record: MessageRecord, buffered: bool = False) -> MessageResponse:
    return MessageResponse(
        id=record.id,
        room_id=record.room_id,
        sender_id=record.sender_id,
        sender_name=record.sender_name,
        body=record.body,
        type=record.type,
        sent_at=record.sent_at,
        seen=record.seen,
        file_url=record.file_url,
        reply_to=record.reply_to,
        buffered=buffered,
    )
