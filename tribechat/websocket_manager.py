import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from fastapi import WebSocket

from tribechat.schemas.message import RoomKind

logger = logging.getLogger(__name__)


@dataclass
class Participant:
    room: str
    user_id: str
    name: str
    kind: RoomKind = RoomKind.DIRECT


class ConnectionManager:
    """Tracks open sockets, which room each one joined, and fans events out.

    Events are JSON frames ``{"type": <event>, "data": {...}}``. A socket that
    fails or times out on send stops receiving fan-out, but its participant
    stays registered until ``disconnect`` so the handler can still flush the
    room it was in.
    """

    def __init__(self, send_timeout: float = 5.0):
        self.connections: Set[WebSocket] = set()
        self.rooms: Dict[str, List[WebSocket]] = {}
        self.participants: Dict[WebSocket, Participant] = {}
        self.send_timeout = send_timeout

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.connections.add(websocket)

    def join(self, websocket: WebSocket, participant: Participant) -> Optional[Participant]:
        """Move the socket into a room and return where it was before, if anywhere."""
        previous = self._leave_room(websocket)
        self.participants[websocket] = participant
        self.rooms.setdefault(participant.room, []).append(websocket)
        return previous

    def disconnect(self, websocket: WebSocket) -> Optional[Participant]:
        self.connections.discard(websocket)
        self._leave_room(websocket)
        return self.participants.pop(websocket, None)

    def _drop(self, websocket: WebSocket):
        self.connections.discard(websocket)
        self._leave_room(websocket)

    def _leave_room(self, websocket: WebSocket) -> Optional[Participant]:
        participant = self.participants.get(websocket)
        if participant is None:
            return None
        sockets = self.rooms.get(participant.room, [])
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            self.rooms.pop(participant.room, None)
        return participant

    def get_participant(self, websocket: WebSocket) -> Optional[Participant]:
        return self.participants.get(websocket)

    def get_user_list(self, room: str) -> List[dict]:
        return [
            {"user_id": self.participants[ws].user_id, "name": self.participants[ws].name}
            for ws in self.rooms.get(room, [])
            if ws in self.participants
        ]

    def get_room_size(self, room: str) -> int:
        return len(self.rooms.get(room, []))

    async def send_personal_message(self, websocket: WebSocket, event: str, data: dict) -> bool:
        return await self._safe_send(websocket, json.dumps({"type": event, "data": data}))

    async def broadcast_to_room(self, room: str, event: str, data: dict,
                                exclude: Optional[WebSocket] = None):
        targets = [ws for ws in self.rooms.get(room, []) if ws is not exclude]
        await self._fan_out(targets, event, data)

    async def broadcast_all(self, event: str, data: dict):
        await self._fan_out(list(self.connections), event, data)

    async def _fan_out(self, targets: List[WebSocket], event: str, data: dict):
        if not targets:
            return
        frame = json.dumps({"type": event, "data": data})
        results = await asyncio.gather(
            *[self._safe_send(ws, frame) for ws in targets],
            return_exceptions=True
        )
        for ws, ok in zip(targets, results):
            if ok is not True:
                logger.debug("Dropping dead connection after failed %s", event)
                self._drop(ws)

    async def _safe_send(self, websocket: WebSocket, frame: str) -> bool:
        try:
            await asyncio.wait_for(websocket.send_text(frame), self.send_timeout)
            return True
        except Exception as e:
            logger.debug("Failed to send to connection: %s", e)
            return False
