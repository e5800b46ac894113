from .base import Base
from .user import User
from .chat import Chat, ChatType
from .chat_member import ChatMember
from .message import Message, TribeMessage
from .lobby import ChatLobby, TribeLobby
from .notification import Notification

__all__ = [
    "Base",
    "User",
    "Chat",
    "ChatType",
    "ChatMember",
    "Message",
    "TribeMessage",
    "ChatLobby",
    "TribeLobby",
    "Notification",
]
