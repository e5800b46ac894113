from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship
from .base import BaseModel

class User(BaseModel):
    __tablename__ = "users"

    username = Column(String(50), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True)

    chat_memberships = relationship("ChatMember", back_populates="user")
    created_chats = relationship("Chat", foreign_keys="Chat.creator_id", back_populates="creator")
