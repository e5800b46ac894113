from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tribechat.database import dialect_insert
from tribechat.models.base import utcnow
from tribechat.models.lobby import ChatLobby

class LobbyRepository:
    """One summary row per room (``ChatLobby`` or ``TribeLobby``)."""

    def __init__(self, db: AsyncSession, model=ChatLobby):
        self.db = db
        self.model = model

    async def get(self, room_id: str):
        result = await self.db.execute(
            select(self.model).where(self.model.room_id == room_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, room_id: str, only_if_newer: bool = False,
                     only_if_points_to: Optional[str] = None, **fields):
        """Create the room's summary or overwrite the given fields in one statement.

        With ``only_if_newer`` an existing row is left alone when its
        ``last_updated`` is later than the one being written, so updates that
        arrive out of order cannot roll the summary back. With
        ``only_if_points_to`` an existing row is only touched while its
        ``last_message_id`` still equals that id.
        """
        values = {
            "room_id": room_id,
            "last_message": "",
            "last_message_id": None,
            "last_updated": utcnow(),
            "deleted_for": [],
        }
        values.update(fields)
        stmt = dialect_insert(self.db, self.model).values(**values)
        if fields:
            conditions = []
            if only_if_newer:
                conditions.append(self.model.last_updated <= stmt.excluded.last_updated)
            if only_if_points_to is not None:
                conditions.append(self.model.last_message_id == only_if_points_to)
            where = and_(*conditions) if conditions else None
            stmt = stmt.on_conflict_do_update(index_elements=["room_id"], set_=fields, where=where)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=["room_id"])
        await self.db.execute(stmt)
        await self.db.commit()
        lobby = await self.get(room_id)
        await self.db.refresh(lobby)
        return lobby

    async def add_deleted_for(self, room_id: str, user_id: str):
        lobby = await self.get(room_id)
        if lobby is None:
            return await self.upsert(room_id, deleted_for=[user_id])
        if user_id not in (lobby.deleted_for or []):
            lobby.deleted_for = [*(lobby.deleted_for or []), user_id]
            await self.db.commit()
            await self.db.refresh(lobby)
        return lobby
