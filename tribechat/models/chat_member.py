from sqlalchemy import Column, String, ForeignKey, DateTime, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel, utcnow

class ChatMember(BaseModel):
    __tablename__ = "chat_members"

    chat_id = Column(String(36), ForeignKey("chats.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    joined_at = Column(DateTime, default=utcnow, nullable=True)
    # Admins of a group room may delete for everyone past the delete window
    is_admin = Column(Boolean, default=False, nullable=False)

    chat = relationship("Chat", back_populates="members")
    user = relationship("User", back_populates="chat_memberships")

    __table_args__ = (
        UniqueConstraint("chat_id", "user_id", name="unique_chat_member"),
    )
