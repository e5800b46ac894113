"""Per-room volatile message buffer backed by Redis lists.

Every operation is a single round trip (appends and batch removals go through
a MULTI pipeline) and none of them rewrites the whole list, so the send,
flush and delete paths can interleave on the same room without a lock.
"""
import logging
from typing import Iterable, List

import redis.asyncio as redis

from tribechat.schemas.message import BufferEntry
from tribechat.services.steps import bounded

logger = logging.getLogger(__name__)

CHAT_BUFFER_PREFIX = "chat:buffer"
TRIBE_BUFFER_PREFIX = "tribe:buffer"


class MessageBuffer:
    def __init__(self, redis_client: redis.Redis, prefix: str = CHAT_BUFFER_PREFIX,
                 ttl_seconds: int = 3600, timeout: float = 5.0):
        self.redis = redis_client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout

    def key(self, room_id: str) -> str:
        return f"{self.prefix}:{room_id}"

    async def append(self, room_id: str, entry: BufferEntry) -> None:
        """Push to the tail and refresh the TTL so abandoned rooms expire."""
        key = self.key(room_id)

        async def _append():
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.rpush(key, entry.encode())
                pipe.expire(key, self.ttl_seconds)
                await pipe.execute()

        await bounded(_append(), self.timeout, f"buffer append {key}")

    async def read_all(self, room_id: str) -> List[BufferEntry]:
        key = self.key(room_id)
        raw_items = await bounded(self.redis.lrange(key, 0, -1), self.timeout, f"buffer read {key}")
        entries = []
        for raw in raw_items:
            try:
                entries.append(BufferEntry.decode(raw))
            except ValueError:
                logger.error("Skipping undecodable entry in %s: %r", key, raw[:200])
        return entries

    async def remove(self, room_id: str, entry: BufferEntry) -> bool:
        """Remove one entry by value. Returns False when it was already gone."""
        key = self.key(room_id)
        removed = await bounded(self.redis.lrem(key, 1, entry.encode()), self.timeout, f"buffer remove {key}")
        return removed > 0

    async def discard(self, room_id: str, entries: Iterable[BufferEntry]) -> List[bool]:
        """Remove exactly ``entries``; anything appended meanwhile stays buffered.

        Returns, per entry, whether it was still in the list.
        """
        key = self.key(room_id)
        entries = list(entries)
        if not entries:
            return []

        async def _discard():
            async with self.redis.pipeline(transaction=True) as pipe:
                for entry in entries:
                    pipe.lrem(key, 1, entry.encode())
                return await pipe.execute()

        results = await bounded(_discard(), self.timeout, f"buffer discard {key}")
        return [removed > 0 for removed in results]

    async def length(self, room_id: str) -> int:
        key = self.key(room_id)
        return await bounded(self.redis.llen(key), self.timeout, f"buffer length {key}")

    async def clear(self, room_id: str) -> None:
        key = self.key(room_id)
        await bounded(self.redis.delete(key), self.timeout, f"buffer clear {key}")
