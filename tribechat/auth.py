import uuid

from fastapi import Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tribechat.database import get_db
from tribechat.models.user import User
from tribechat.repositories.user_repository import UserRepository
from tribechat.schemas.message import RoomKind


async def get_current_user_id(x_user_id: str = Header(...)) -> str:
    """Acting user, taken from the ``X-User-Id`` header. Authentication happens upstream."""
    try:
        return str(uuid.UUID(x_user_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id must be a UUID"
        )


async def get_current_active_user(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> User:
    user = await UserRepository(db).get_by_id(user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


def get_chat_service(request: Request, kind: RoomKind = Query(RoomKind.DIRECT)):
    return request.app.state.chat_services[kind]
