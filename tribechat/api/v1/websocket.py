import json
import logging
from typing import Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from tribechat.exceptions import ChatError, MessageValidationError
from tribechat.schemas.message import (
    DeleteMessageWebSocket,
    JoinRoom,
    MarkMessageSeen,
    RoomKind,
    SendFileWebSocket,
    SendMessageWebSocket,
    TypingIndicator,
)
from tribechat.services.chat_service import ChatService, validate_identity, validate_room
from tribechat.websocket_manager import ConnectionManager, Participant

logger = logging.getLogger(__name__)

router = APIRouter()

@router.websocket("/chat")
async def websocket_chat(websocket: WebSocket):
    manager: ConnectionManager = websocket.app.state.manager
    services: Dict[RoomKind, ChatService] = websocket.app.state.chat_services

    await manager.connect(websocket)
    try:
        while True:
            data = await websocket.receive_text()

            try:
                message_data = json.loads(data)
                action = message_data.get("action")
                payload = message_data.get("data") or {}
            except (json.JSONDecodeError, AttributeError):
                await send_error(manager, websocket, "validation_error", "Invalid JSON format")
                continue

            try:
                await handle_websocket_message(websocket, action, payload, manager, services)
            except ValidationError as e:
                await send_error(manager, websocket, MessageValidationError.code, str(e))
            except ChatError as e:
                await send_error(manager, websocket, e.code, e.message)
            except Exception:
                logger.exception("Unhandled error processing %r", action)
                await send_error(manager, websocket, "internal_error", f"Error processing {action}")

    except WebSocketDisconnect:
        pass
    finally:
        await handle_disconnect(websocket, manager, services)

async def send_error(manager: ConnectionManager, websocket: WebSocket, code: str, message: str):
    await manager.send_personal_message(websocket, "error", {"code": code, "message": message})

async def send_ack(manager: ConnectionManager, websocket: WebSocket, action: str, **data):
    await manager.send_personal_message(websocket, "ack", {"action": action, **data})

async def handle_websocket_message(websocket: WebSocket, action: str, payload: dict,
                                   manager: ConnectionManager, services: Dict[RoomKind, ChatService]):
    if action == "ping":
        await manager.send_personal_message(websocket, "pong", {})
        return

    if action == "join":
        await handle_join(websocket, payload, manager, services)
        return

    participant = manager.get_participant(websocket)
    if participant is None:
        raise MessageValidationError("Join a room first")
    service = services[participant.kind]

    if action == "send_message":
        data = SendMessageWebSocket(**payload)
        record = await service.send_message(
            participant.room, participant.user_id, participant.name, data.text, reply_to=data.reply_to
        )
        await send_ack(manager, websocket, action, id=record.id)

    elif action == "send_tribe_message":
        data = SendMessageWebSocket(**payload)
        record = await services[RoomKind.TRIBE].send_direct(
            participant.room, participant.user_id, participant.name, data.text, reply_to=data.reply_to
        )
        await send_ack(manager, websocket, action, id=record.id)

    elif action == "send_file":
        data = SendFileWebSocket(**payload)
        record = await service.send_file(
            participant.room, participant.user_id, participant.name, data.file_url, data.mimetype
        )
        await send_ack(manager, websocket, action, id=record.id)

    elif action == "delete_message":
        data = DeleteMessageWebSocket(**payload)
        outcome = await service.delete_message(
            participant.room, data.message_id, participant.user_id, data.delete_type
        )
        await send_ack(manager, websocket, action, message_id=outcome.message_id, source=outcome.source)

    elif action == "mark_seen":
        data = MarkMessageSeen(**payload)
        seen_id = await service.mark_seen(participant.room, data.message_id)
        await send_ack(manager, websocket, action, message_id=seen_id)

    elif action == "typing":
        data = TypingIndicator(**payload)
        event = "typing.started" if data.is_typing else "typing.stopped"
        await manager.broadcast_to_room(
            participant.room,
            event,
            {"room": participant.room, "user_id": participant.user_id, "name": participant.name},
            exclude=websocket
        )

    elif action == "hide_room":
        await service.hide_room(participant.room, participant.user_id)
        await send_ack(manager, websocket, action, room=participant.room)

    else:
        raise MessageValidationError(f"Unknown action: {action}")

async def handle_join(websocket: WebSocket, payload: dict, manager: ConnectionManager,
                      services: Dict[RoomKind, ChatService]):
    data = JoinRoom(**payload)
    participant = Participant(
        room=validate_room(data.room),
        user_id=validate_identity(data.user_id, "user id"),
        name=data.name,
        kind=data.kind,
    )
    previous = manager.join(websocket, participant)
    if previous is not None and previous.room != participant.room:
        await flush_room(services, previous.room)
        await broadcast_user_list(manager, previous.room)
    await send_ack(manager, websocket, "join", room=participant.room, kind=participant.kind.value)
    await broadcast_user_list(manager, participant.room)

async def broadcast_user_list(manager: ConnectionManager, room: str):
    await manager.broadcast_to_room(room, "room.users", {"room": room, "users": manager.get_user_list(room)})

async def handle_disconnect(websocket: WebSocket, manager: ConnectionManager,
                            services: Dict[RoomKind, ChatService]):
    """Persist whatever the room still has buffered, then update the user list."""
    participant = manager.disconnect(websocket)
    if participant is None:
        return

    await flush_room(services, participant.room)
    await broadcast_user_list(manager, participant.room)

async def flush_room(services: Dict[RoomKind, ChatService], room: str):
    for service in services.values():
        result = await service.flush(room)
        if not result.ok:
            logger.warning("Flush of %s room %s on leave failed: %s",
                           service.kind.value, room, result.error)
