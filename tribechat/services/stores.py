"""Durable message and lobby stores.

Each call opens its own session, so the stores can be shared by long-lived
websocket handlers. Driver errors and timeouts surface as ``StorageFailure``.
"""
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tribechat.models.lobby import ChatLobby
from tribechat.models.message import Message
from tribechat.repositories.lobby_repository import LobbyRepository
from tribechat.repositories.message_repository import MessageRepository
from tribechat.schemas.lobby import LobbySummary
from tribechat.schemas.message import MessageRecord, from_row
from tribechat.services.steps import bounded


class MessageStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession], model=Message, timeout: float = 5.0):
        self.sessions = sessions
        self.model = model
        self.timeout = timeout

    async def _run(self, what: str, op):
        async def call():
            async with self.sessions() as db:
                return await op(MessageRepository(db, self.model))

        return await bounded(call(), self.timeout, f"{self.model.__tablename__} {what}")

    async def insert_many(self, records: List[MessageRecord]) -> int:
        return await self._run("insert_many", lambda repo: repo.insert_many(records))

    async def create(self, record: MessageRecord) -> MessageRecord:
        row = await self._run("create", lambda repo: repo.create(record))
        return from_row(row)

    async def find_by_id(self, message_id: str) -> Optional[MessageRecord]:
        row = await self._run("find_by_id", lambda repo: repo.get_by_id(message_id))
        return from_row(row) if row else None

    async def find_by_room(self, room_id: str, limit: int = 50, offset: int = 0,
                           newest_first: bool = True) -> List[MessageRecord]:
        rows = await self._run(
            "find_by_room",
            lambda repo: repo.get_room_messages(room_id, limit, offset, newest_first),
        )
        return [from_row(row) for row in rows]

    async def latest(self, room_id: str, exclude_id: Optional[str] = None) -> Optional[MessageRecord]:
        row = await self._run("latest", lambda repo: repo.get_latest(room_id, exclude_id))
        return from_row(row) if row else None

    async def delete_by_id(self, message_id: str) -> bool:
        return await self._run("delete", lambda repo: repo.delete(message_id))

    async def update_seen(self, message_id: str) -> bool:
        return await self._run("update_seen", lambda repo: repo.mark_seen(message_id))

    async def mark_latest_unseen(self, room_id: str) -> Optional[MessageRecord]:
        row = await self._run("mark_latest_unseen", lambda repo: repo.mark_latest_unseen(room_id))
        return from_row(row) if row else None


class LobbyStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession], model=ChatLobby, timeout: float = 5.0):
        self.sessions = sessions
        self.model = model
        self.timeout = timeout

    async def _run(self, what: str, op):
        async def call():
            async with self.sessions() as db:
                return await op(LobbyRepository(db, self.model))

        return await bounded(call(), self.timeout, f"{self.model.__tablename__} {what}")

    async def get(self, room_id: str) -> Optional[LobbySummary]:
        row = await self._run("get", lambda repo: repo.get(room_id))
        return LobbySummary.model_validate(row) if row else None

    async def upsert(self, room_id: str, only_if_newer: bool = False,
                     only_if_points_to: Optional[str] = None, **fields) -> LobbySummary:
        row = await self._run(
            "upsert",
            lambda repo: repo.upsert(room_id, only_if_newer=only_if_newer,
                                     only_if_points_to=only_if_points_to, **fields),
        )
        return LobbySummary.model_validate(row)

    async def add_deleted_for(self, room_id: str, user_id: str) -> LobbySummary:
        row = await self._run("add_deleted_for", lambda repo: repo.add_deleted_for(room_id, user_id))
        return LobbySummary.model_validate(row)
