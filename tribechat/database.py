from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from tribechat.config import settings
import redis.asyncio as redis

async_engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG)
AsyncSessionLocal = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

def get_redis():
    return redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.STORAGE_TIMEOUT_SECONDS,
    )

async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

async def create_tables(engine=async_engine):
    from tribechat.models.base import Base
    from tribechat.models import user, chat, chat_member, message, lobby, notification

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

def dialect_insert(db: AsyncSession, model):
    """``INSERT`` construct with ``ON CONFLICT`` support for the session's backend."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Unsupported database dialect: {dialect}")
    return insert(model)
