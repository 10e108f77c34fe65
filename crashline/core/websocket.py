"""
WebSocket manager for real-time round updates.
Fans engine events out to every connected client.
"""

import asyncio
from typing import Dict, Optional, Set

import orjson
from fastapi import WebSocket

from crashline.core.logger import get_logger
from crashline.core.models import RoundEvent

logger = get_logger("websocket")


class ConnectionManager:
    """
    Tracks open sockets and broadcasts round events.

    Engine listeners may fire on any thread; ``on_round_event`` hops onto the
    loop captured by ``bind_loop`` before touching a socket.
    """

    def __init__(self):
        self.all_connections: Set[WebSocket] = set()
        self.players: Dict[str, WebSocket] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    async def _send_json(self, websocket: WebSocket, data: dict):
        # orjson returns bytes, so send them as-is.
        await websocket.send_bytes(orjson.dumps(data))

    async def connect(self, websocket: WebSocket, player_id: str = None, state: dict = None):
        await websocket.accept()
        self.all_connections.add(websocket)
        if player_id:
            self.players[player_id] = websocket

        logger.info(
            f"WebSocket connected: player_id={player_id}, total={len(self.all_connections)}"
        )
        if state is not None:
            await self._send_json(websocket, {"type": "state", **state})

    def disconnect(self, websocket: WebSocket, player_id: str = None):
        self.all_connections.discard(websocket)
        if player_id is None:
            player_id = next((p for p, ws in self.players.items() if ws is websocket), None)
        if player_id and self.players.get(player_id) is websocket:
            del self.players[player_id]
        logger.info(f"WebSocket disconnected: total={len(self.all_connections)}")

    async def broadcast(self, message: dict, batch_size: int = 100):
        """Send to every client in batches; drop sockets that fail."""
        connections = list(self.all_connections)
        disconnected = []

        for i in range(0, len(connections), batch_size):
            batch = connections[i : i + batch_size]
            results = await asyncio.gather(
                *(self._send_json(ws, message) for ws in batch), return_exceptions=True
            )
            for ws, result in zip(batch, results):
                if isinstance(result, Exception):
                    disconnected.append(ws)

        if disconnected:
            logger.info(f"Dropping {len(disconnected)} disconnected clients after broadcast")
            for ws in disconnected:
                self.disconnect(ws)

    def on_round_event(self, event: RoundEvent):
        """Engine listener: schedule the broadcast on the bound loop."""
        if self._loop is None or self._loop.is_closed():
            return None
        return asyncio.run_coroutine_threadsafe(self.broadcast(event.to_message()), self._loop)
