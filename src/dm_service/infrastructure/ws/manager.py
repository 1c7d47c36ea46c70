"""In-process registry of WebSocket connections and their messaging sessions."""
from __future__ import annotations

import logging

from fastapi import WebSocket

from dm_service.services.session import MessagingSession

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks live connections per identity so shutdown can close their sessions."""

    def __init__(self) -> None:
        self._connections: dict[str, dict[WebSocket, MessagingSession | None]] = {}

    async def connect(self, ws: WebSocket, identity_id: str) -> None:
        await ws.accept()
        self._connections.setdefault(identity_id, {})[ws] = None
        logger.debug("WS connected: %s (identities=%d)", identity_id, len(self._connections))

    def attach(self, ws: WebSocket, identity_id: str, session: MessagingSession) -> None:
        conns = self._connections.get(identity_id)
        if conns is not None and ws in conns:
            conns[ws] = session

    def disconnect(self, ws: WebSocket, identity_id: str) -> None:
        conns = self._connections.get(identity_id)
        if not conns:
            return
        session = conns.pop(ws, None)
        if session is not None:
            session.close()
        if not conns:
            del self._connections[identity_id]
        logger.debug("WS disconnected: %s", identity_id)

    def connection_count(self, identity_id: str | None = None) -> int:
        if identity_id is not None:
            return len(self._connections.get(identity_id, {}))
        return sum(len(conns) for conns in self._connections.values())

    def close_all(self) -> None:
        for conns in self._connections.values():
            for session in conns.values():
                if session is not None:
                    session.close()
        self._connections.clear()
