from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LobbySummary(BaseModel):
    """Denormalized per-room state used to render room lists."""

    model_config = ConfigDict(from_attributes=True)

    room_id: str
    last_message: str = ""
    last_message_id: Optional[str] = None
    last_updated: datetime
    deleted_for: List[str] = Field(default_factory=list)

    def to_event(self) -> dict:
        return {
            "room_id": self.room_id,
            "last_message": self.last_message,
            "last_message_id": self.last_message_id,
            "last_updated": self.last_updated.isoformat(),
        }
