from sqlalchemy import Column, String, Text, UniqueConstraint
from .base import BaseModel

class Notification(BaseModel):
    __tablename__ = "notifications"

    user_id = Column(String(36), nullable=False, index=True)
    room_id = Column(String(64), nullable=False)
    kind = Column(String(20), nullable=False, default="message")
    text = Column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "kind", "text", name="unique_user_notification"),
    )
