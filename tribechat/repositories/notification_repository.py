from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from tribechat.database import dialect_insert
from tribechat.models.base import new_id, utcnow
from tribechat.models.notification import Notification

class NotificationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_for_users(self, user_ids: List[str], room_id: str, text: str, kind: str = "message") -> int:
        """Insert one notification per user, skipping ones the user already has."""
        if not user_ids:
            return 0
        now = utcnow()
        rows = [
            {
                "id": new_id(),
                "user_id": user_id,
                "room_id": room_id,
                "kind": kind,
                "text": text,
                "created_at": now,
                "updated_at": now,
            }
            for user_id in user_ids
        ]
        stmt = dialect_insert(self.db, Notification).values(rows).on_conflict_do_nothing(
            index_elements=["user_id", "kind", "text"]
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount

    async def get_for_user(self, user_id: str) -> List[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        return list(result.scalars().all())
