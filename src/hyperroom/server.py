"""FastAPI app exposing the room over a WebSocket plus a few read-only endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from .auth import IdentityVerifier, verifier_for
from .chat import MessageStore
from .config import Settings
from .room import Room
from .sessions import ConnectionClosed

logger = logging.getLogger(__name__)

# Close code sent when a socket arrives without verified claims.
UNAUTHORIZED_CLOSE_CODE = 4401


class WebSocketConnection:
    """Buffers outbound frames so the room never waits on a slow socket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self._outbox: "asyncio.Queue[Optional[Dict[str, object]]]" = asyncio.Queue()
        self._closed = False

    def send(self, message: Dict[str, object]) -> None:
        if self._closed:
            raise ConnectionClosed()
        self._outbox.put_nowait(message)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._outbox.put_nowait(None)

    async def write_loop(self) -> None:
        try:
            while True:
                message = await self._outbox.get()
                if message is None:
                    return
                await self.websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            pass
        finally:
            self._closed = True


def create_app(
    settings: Optional[Settings] = None,
    verifier: Optional[IdentityVerifier] = None,
    store: Optional[MessageStore] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    verifier = verifier or verifier_for(settings.identity_source)
    room = Room(settings=settings, store=store)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        room.start()
        logger.info("Room started (max board size %d)", settings.max_depth)
        try:
            yield
        finally:
            await room.stop()
            logger.info("Room stopped")

    app = FastAPI(
        title="HyperRoom",
        description="Chat room with nested tic-tac-toe challenges",
        lifespan=lifespan,
    )
    app.state.room = room
    app.state.settings = settings

    @app.get("/healthz")
    def health() -> Dict[str, object]:
        return {
            "status": "ok",
            "sessions": len(room.registry),
            "challenges": len(room.challenges),
            "games": len(room.matches),
        }

    @app.get("/api/online")
    def online_users() -> Dict[str, object]:
        return {"users": [u.to_wire() for u in room.registry.list_online()]}

    @app.get("/api/games/{game_id}")
    def get_game(game_id: str) -> Dict[str, object]:
        match = room.matches.get(game_id)
        if match is None:
            raise HTTPException(status_code=404, detail="Game not found")
        return match.to_wire()

    @app.websocket("/ws")
    async def room_socket(websocket: WebSocket) -> None:
        identity = verifier.verify(websocket)
        if identity is None:
            await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
            return

        await websocket.accept()
        connection = WebSocketConnection(websocket)
        writer = asyncio.create_task(connection.write_loop())
        session = room.connect(identity, connection)
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                text = frame.get("text")
                if text is None:
                    # Binary frames are left for the room to reject as malformed.
                    payload: Any = frame.get("bytes")
                else:
                    try:
                        payload = json.loads(text)
                    except ValueError:
                        payload = text
                room.receive(session, payload)
        finally:
            room.disconnect(session)
            connection.close()
            await writer

    return app


app = create_app()
