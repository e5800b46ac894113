from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete

from tribechat.database import dialect_insert
from tribechat.models.message import Message
from tribechat.schemas.message import MessageRecord, to_row

class MessageRepository:
    """Durable message store for one room kind (``Message`` or ``TribeMessage``)."""

    def __init__(self, db: AsyncSession, model=Message):
        self.db = db
        self.model = model

    async def insert_many(self, records: List[MessageRecord]) -> int:
        """Bulk insert; ids that are already stored are skipped so a repeated batch is harmless."""
        if not records:
            return 0
        stmt = dialect_insert(self.db, self.model).values(
            [to_row(record) for record in records]
        ).on_conflict_do_nothing(index_elements=["id"])
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount

    async def create(self, record: MessageRecord):
        message = self.model(**to_row(record))
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def get_by_id(self, message_id: str):
        result = await self.db.execute(
            select(self.model).where(self.model.id == message_id)
        )
        return result.scalar_one_or_none()

    async def get_room_messages(
        self,
        room_id: str,
        limit: int = 50,
        offset: int = 0,
        newest_first: bool = True
    ) -> List:
        order = self.model.sent_at.desc() if newest_first else self.model.sent_at.asc()
        result = await self.db.execute(
            select(self.model)
            .where(self.model.room_id == room_id)
            .order_by(order)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_latest(self, room_id: str, exclude_id: Optional[str] = None):
        for message in await self.get_room_messages(room_id, limit=2):
            if message.id != exclude_id:
                return message
        return None

    async def mark_seen(self, message_id: str) -> bool:
        result = await self.db.execute(
            update(self.model).where(self.model.id == message_id).values(seen=True)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def mark_latest_unseen(self, room_id: str):
        """Mark the most recent unseen message of a room as seen and return it."""
        result = await self.db.execute(
            select(self.model)
            .where(self.model.room_id == room_id, self.model.seen.is_(False))
            .order_by(self.model.sent_at.desc())
            .limit(1)
        )
        message = result.scalar_one_or_none()
        if message is None:
            return None
        message.seen = True
        await self.db.commit()
        return message

    async def delete(self, message_id: str) -> bool:
        result = await self.db.execute(
            delete(self.model).where(self.model.id == message_id)
        )
        await self.db.commit()
        return result.rowcount > 0
