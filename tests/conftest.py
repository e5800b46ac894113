"""Shared fixtures: an in-memory SQL store, an in-memory Redis list store, and recording fakes."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tribechat.database import create_tables
from tribechat.exceptions import ObjectStoreError
from tribechat.schemas.message import RoomKind
from tribechat.services.chat_service import build_chat_services

ALICE = "11111111-1111-1111-1111-111111111111"
BOB = "22222222-2222-2222-2222-222222222222"
CAROL = "33333333-3333-3333-3333-333333333333"
ROOM = "room-1"


class FakePipeline:
    """Queues commands and runs them in order on ``execute``."""

    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.commands = []

    def rpush(self, key, *values):
        self.commands.append(("rpush", (key, *values)))
        return self

    def expire(self, key, seconds):
        self.commands.append(("expire", (key, seconds)))
        return self

    def lrem(self, key, count, value):
        self.commands.append(("lrem", (key, count, value)))
        return self

    async def execute(self):
        results = []
        for name, args in self.commands:
            results.append(await getattr(self.redis, name)(*args))
        self.commands = []
        return results


class FakeRedis:
    """The Redis list commands the buffer uses, kept in a dict."""

    def __init__(self):
        self.lists = {}
        self.ttls = {}

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def rpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def expire(self, key, seconds):
        if key not in self.lists:
            return False
        self.ttls[key] = seconds
        return True

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        stop = len(items) if end == -1 else end + 1
        return list(items[start:stop])

    async def lrem(self, key, count, value):
        items = self.lists.get(key, [])
        removed = 0
        while value in items and (count == 0 or removed < count):
            items.remove(value)
            removed += 1
        if key in self.lists and not items:
            del self.lists[key]
        return removed

    async def llen(self, key):
        return len(self.lists.get(key, []))

    async def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.lists.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted


class RecordingBroadcaster:
    def __init__(self):
        self.room_events = []
        self.global_events = []

    async def broadcast_to_room(self, room, event, data, exclude=None):
        self.room_events.append((room, event, data))

    async def broadcast_all(self, event, data):
        self.global_events.append((event, data))

    def of(self, event):
        return [data for _, name, data in self.room_events if name == event] + [
            data for name, data in self.global_events if name == event
        ]


class FakeObjectStorage:
    def __init__(self, fail=False):
        self.fail = fail
        self.deleted = []

    async def delete_object(self, public_url):
        if self.fail:
            raise ObjectStoreError(f"Failed to delete {public_url}")
        self.deleted.append(public_url)


class Clock:
    def __init__(self, start=datetime(2026, 3, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def sessions(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def object_storage():
    return FakeObjectStorage()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def chat_services(redis_client, sessions, broadcaster, object_storage, clock):
    return build_chat_services(
        redis_client,
        sessions,
        broadcaster,
        object_storage,
        batch_size=10,
        clock=clock,
    )


@pytest.fixture
def direct(chat_services):
    return chat_services[RoomKind.DIRECT]


@pytest.fixture
def tribe(chat_services):
    return chat_services[RoomKind.TRIBE]
