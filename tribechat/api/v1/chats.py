from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tribechat.auth import get_chat_service, get_current_active_user, get_current_user_id
from tribechat.database import get_db
from tribechat.models.user import User
from tribechat.repositories.chat_repository import ChatRepository
from tribechat.repositories.user_repository import UserRepository
from tribechat.schemas.chat import (
    ChatResponse,
    ChatWithMembersResponse,
    CreatePrivateChat,
    CreateGroupChat,
)
from tribechat.schemas.lobby import LobbySummary

router = APIRouter()

@router.post("/private", response_model=ChatResponse, status_code=status.HTTP_201_CREATED)
async def create_private_chat(
    chat_data: CreatePrivateChat,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Direct room between the caller and one recipient; an existing one is reused."""
    if chat_data.recipient_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot open a chat with yourself"
        )

    if not await UserRepository(db).get_by_id(chat_data.recipient_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recipient not found"
        )

    return await ChatRepository(db).create_private_chat(current_user.id, chat_data.recipient_id)

@router.post("/group", response_model=ChatResponse, status_code=status.HTTP_201_CREATED)
async def create_group_chat(
    chat_data: CreateGroupChat,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Tribe room; the creator becomes its admin."""
    user_repo = UserRepository(db)
    for member_id in chat_data.member_ids:
        if not await user_repo.get_by_id(member_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"User {member_id} not found"
            )

    return await ChatRepository(db).create_group_chat(
        current_user.id,
        chat_data.name,
        chat_data.member_ids
    )

@router.get("/{chat_id}", response_model=ChatWithMembersResponse)
async def get_chat(
    chat_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    chat_repo = ChatRepository(db)

    if not await chat_repo.is_member(chat_id, user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this chat"
        )

    chat = await chat_repo.get_by_id(chat_id)
    if not chat:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Chat not found"
        )
    return chat

@router.get("/{room_id}/lobby", response_model=LobbySummary)
async def get_lobby(room_id: str, service=Depends(get_chat_service)):
    lobby = await service.get_lobby(room_id)
    if lobby is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No lobby for this room"
        )
    return lobby

@router.post("/{room_id}/hide", response_model=LobbySummary)
async def hide_chat(
    room_id: str,
    service=Depends(get_chat_service),
    user_id: str = Depends(get_current_user_id)
):
    """Delete the chat for the caller only; the next message brings it back."""
    return await service.hide_room(room_id, user_id)
