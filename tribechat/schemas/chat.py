from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime
from tribechat.models.chat import ChatType

class ChatResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    chat_type: ChatType
    creator_id: str
    created_at: datetime

class ChatMemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    is_admin: bool
    joined_at: Optional[datetime]

class ChatWithMembersResponse(ChatResponse):
    members: List[ChatMemberResponse]

class CreatePrivateChat(BaseModel):
    recipient_id: str

class CreateGroupChat(BaseModel):
    name: str
    member_ids: List[str]
