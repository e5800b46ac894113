from sqlalchemy import Column, String, Text, DateTime, Boolean, Index
from .base import Base, utcnow

class MessageColumns:
    """Columns shared by the direct and tribe message tables.

    ``id`` is assigned by the send path before the message is broadcast or
    buffered, so the row written by a flush carries the id clients already saw.
    """

    id = Column(String(36), primary_key=True)
    room_id = Column(String(64), nullable=False, index=True)
    sender_id = Column(String(36), nullable=False, index=True)
    sender_name = Column(String(50), nullable=True)
    body = Column(Text, nullable=False, default="")
    type = Column(String(10), nullable=False, default="text")
    sent_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    seen = Column(Boolean, default=False, nullable=False)

    # File messages
    file_url = Column(Text, nullable=True)
    is_image = Column(Boolean, default=False, nullable=False)
    is_video = Column(Boolean, default=False, nullable=False)

    # Reply reference
    reply_to_id = Column(String(36), nullable=True)
    reply_to_sender_id = Column(String(36), nullable=True)
    reply_preview = Column(Text, nullable=True)

class Message(MessageColumns, Base):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_room_sent", "room_id", "sent_at"),)

class TribeMessage(MessageColumns, Base):
    __tablename__ = "tribe_messages"
    __table_args__ = (Index("ix_tribe_messages_room_sent", "room_id", "sent_at"),)
