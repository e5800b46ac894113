from sqlalchemy import Column, String, Text, DateTime, JSON
from .base import Base, utcnow

class LobbyColumns:
    room_id = Column(String(64), primary_key=True)
    last_message = Column(Text, nullable=False, default="")
    last_message_id = Column(String(36), nullable=True)
    last_updated = Column(DateTime, default=utcnow, nullable=False)
    # User ids that hid the room from their list; reset by every new message
    deleted_for = Column(JSON, nullable=False, default=list)

class ChatLobby(LobbyColumns, Base):
    __tablename__ = "chat_lobbies"

class TribeLobby(LobbyColumns, Base):
    __tablename__ = "tribe_lobbies"
