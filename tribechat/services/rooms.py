from typing import List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tribechat.repositories.chat_repository import ChatRepository
from tribechat.repositories.notification_repository import NotificationRepository
from tribechat.services.steps import bounded


class RoomRoles:
    """Answers whether a user administers a room, from ``chat_members.is_admin``."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession], timeout: float = 5.0):
        self.sessions = sessions
        self.timeout = timeout

    async def is_room_admin(self, room_id: str, user_id: str) -> bool:
        async def call():
            async with self.sessions() as db:
                return await ChatRepository(db).is_admin(room_id, user_id)

        return await bounded(call(), self.timeout, "room admin lookup")


class NotificationSink:
    def __init__(self, sessions: async_sessionmaker[AsyncSession], timeout: float = 5.0):
        self.sessions = sessions
        self.timeout = timeout

    async def notify_participants(self, room_id: str, exclude_user_id: str, text: str) -> List[str]:
        """Record a notification for every room member except ``exclude_user_id``."""
        async def call():
            async with self.sessions() as db:
                member_ids = await ChatRepository(db).get_member_ids(room_id)
                recipients = [user_id for user_id in member_ids if user_id != exclude_user_id]
                await NotificationRepository(db).add_for_users(recipients, room_id, text)
                return recipients

        return await bounded(call(), self.timeout, "notify participants")
