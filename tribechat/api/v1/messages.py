from fastapi import APIRouter, Depends, Query, status

from tribechat.auth import get_chat_service, get_current_active_user, get_current_user_id
from tribechat.models.user import User
from tribechat.schemas.message import (
    DeleteScope,
    HistoryResponse,
    MessageCreate,
    MessageResponse,
    to_response,
)

router = APIRouter()

@router.get("/history/{room_id}", response_model=HistoryResponse)
async def get_room_history(
    room_id: str,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service=Depends(get_chat_service)
):
    """Newest first; the first page includes messages that are not flushed yet."""
    page = await service.history(room_id, limit=limit, offset=offset)
    messages = [to_response(record, buffered=buffered) for record, buffered in page]
    return HistoryResponse(messages=messages, count=len(messages))

@router.post("/{room_id}", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    room_id: str,
    message_data: MessageCreate,
    service=Depends(get_chat_service),
    current_user: User = Depends(get_current_active_user)
):
    """Write a message straight to the durable store and broadcast it."""
    record = await service.send_direct(
        room_id,
        current_user.id,
        current_user.username,
        message_data.text,
        reply_to=message_data.reply_to
    )
    return to_response(record)

@router.delete("/{room_id}/{message_id}")
async def delete_message(
    room_id: str,
    message_id: str,
    delete_type: DeleteScope = Query(DeleteScope.FOR_SELF),
    service=Depends(get_chat_service),
    user_id: str = Depends(get_current_user_id)
):
    outcome = await service.delete_message(room_id, message_id, user_id, delete_type)
    return {
        "message_id": outcome.message_id,
        "room_id": outcome.room_id,
        "source": outcome.source,
        "lobby": outcome.lobby.to_event() if outcome.lobby else None,
    }

@router.post("/{room_id}/flush")
async def flush_room(room_id: str, service=Depends(get_chat_service)):
    result = await service.flush(room_id)
    return {
        "room_id": result.room_id,
        "flushed": result.flushed,
        "ok": result.ok,
        "error": str(result.error) if result.error else None,
    }
