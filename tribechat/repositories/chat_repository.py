from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from sqlalchemy.orm import selectinload

from tribechat.models.chat import Chat, ChatType
from tribechat.models.chat_member import ChatMember

class ChatRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_private_chat(self, creator_id: str, recipient_id: str) -> Chat:
        """Private chat between two users; returns the existing one if present"""
        existing_chat = await self.get_private_chat_between_users(creator_id, recipient_id)
        if existing_chat:
            return existing_chat

        chat = Chat(
            chat_type=ChatType.PRIVATE,
            creator_id=creator_id
        )
        self.db.add(chat)
        await self.db.flush()  # assigns chat.id

        self.db.add(ChatMember(chat_id=chat.id, user_id=creator_id, is_admin=False))
        self.db.add(ChatMember(chat_id=chat.id, user_id=recipient_id, is_admin=False))

        await self.db.commit()
        await self.db.refresh(chat)
        return chat

    async def create_group_chat(self, creator_id: str, name: str, member_ids: List[str]) -> Chat:
        """Group ("tribe") chat; the creator is its admin"""
        chat = Chat(
            name=name,
            chat_type=ChatType.GROUP,
            creator_id=creator_id
        )
        self.db.add(chat)
        await self.db.flush()

        self.db.add(ChatMember(chat_id=chat.id, user_id=creator_id, is_admin=True))
        for member_id in set(member_ids):
            if member_id != creator_id:
                self.db.add(ChatMember(chat_id=chat.id, user_id=member_id, is_admin=False))

        await self.db.commit()
        await self.db.refresh(chat)
        return chat

    async def get_by_id(self, chat_id: str) -> Optional[Chat]:
        result = await self.db.execute(
            select(Chat).options(
                selectinload(Chat.members)
            ).where(Chat.id == chat_id)
        )
        return result.scalar_one_or_none()

    async def get_private_chat_between_users(self, user_id1: str, user_id2: str) -> Optional[Chat]:
        user1_chats = select(ChatMember.chat_id).where(ChatMember.user_id == user_id1)
        user2_chats = select(ChatMember.chat_id).where(ChatMember.user_id == user_id2)

        result = await self.db.execute(
            select(Chat).where(
                and_(
                    Chat.chat_type == ChatType.PRIVATE,
                    Chat.id.in_(user1_chats),
                    Chat.id.in_(user2_chats)
                )
            )
        )
        return result.scalars().first()

    async def get_member(self, chat_id: str, user_id: str) -> Optional[ChatMember]:
        result = await self.db.execute(
            select(ChatMember).where(
                and_(ChatMember.chat_id == chat_id, ChatMember.user_id == user_id)
            )
        )
        return result.scalar_one_or_none()

    async def is_member(self, chat_id: str, user_id: str) -> bool:
        return await self.get_member(chat_id, user_id) is not None

    async def is_admin(self, chat_id: str, user_id: str) -> bool:
        member = await self.get_member(chat_id, user_id)
        return bool(member and member.is_admin)

    async def get_member_ids(self, chat_id: str) -> List[str]:
        result = await self.db.execute(
            select(ChatMember.user_id).where(ChatMember.chat_id == chat_id)
        )
        return list(result.scalars().all())
