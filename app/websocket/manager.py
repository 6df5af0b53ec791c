# =============================================================================
# app/websocket/manager.py - WebSocket Connection Manager
# =============================================================================
# Manages WebSocket connections per upload batch and forwards the batch's
# LedgerEvents to them.
#
# Usage:
#   from app.websocket import websocket_manager
#
#   await websocket_manager.connect(batch_id, websocket)
#   websocket_manager.watch(coordinator)
#   ...
#   websocket_manager.disconnect(batch_id, websocket)
# =============================================================================

import logging
from typing import Callable

from fastapi import WebSocket

from core.models.asset import LedgerEvent
from studio.uploads import UploadCoordinator

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections organized by batch ID.

    Each batch can have multiple connected clients (e.g., multiple browser tabs).
    A batch is subscribed to once, while at least one client is watching it.
    """

    def __init__(self):
        # batch_id -> set of WebSocket connections
        self.connections: dict[str, set[WebSocket]] = {}
        # batch_id -> unsubscribe callable from UploadCoordinator.subscribe()
        self._subscriptions: dict[str, Callable[[], None]] = {}
        self._total_connections = 0

    async def connect(self, batch_id: str, websocket: WebSocket) -> None:
        """
        Accept a new WebSocket connection and track it.

        Args:
            batch_id: The batch this connection is watching
            websocket: The WebSocket connection
        """
        await websocket.accept()

        self.connections.setdefault(batch_id, set()).add(websocket)
        self._total_connections += 1

        logger.info(
            f"WebSocket connected to batch {batch_id}. "
            f"Total connections: {self._total_connections}"
        )

    def watch(self, coordinator: UploadCoordinator) -> None:
        """Forward the coordinator's LedgerEvents to its batch's clients."""
        batch_id = coordinator.batch_id
        if batch_id in self._subscriptions:
            return

        async def forward(event: LedgerEvent) -> None:
            await self.broadcast(batch_id, event.model_dump(mode="json"))

        self._subscriptions[batch_id] = coordinator.subscribe(forward)

    def disconnect(self, batch_id: str, websocket: WebSocket) -> None:
        """
        Remove a WebSocket connection from tracking.

        The batch subscription is dropped with its last connection.
        """
        if batch_id in self.connections:
            if websocket in self.connections[batch_id]:
                self.connections[batch_id].discard(websocket)
                self._total_connections -= 1
            if not self.connections[batch_id]:
                del self.connections[batch_id]

        if batch_id not in self.connections:
            unsubscribe = self._subscriptions.pop(batch_id, None)
            if unsubscribe is not None:
                unsubscribe()

        logger.info(
            f"WebSocket disconnected from batch {batch_id}. "
            f"Total connections: {self._total_connections}"
        )

    async def broadcast(self, batch_id: str, message: dict) -> int:
        """
        Broadcast a message to all connections watching a batch.

        Returns:
            int: Number of clients the message was sent to
        """
        if batch_id not in self.connections:
            logger.debug(f"No connections for batch {batch_id}, skipping broadcast")
            return 0

        dead_connections: set[WebSocket] = set()
        sent_count = 0

        for websocket in list(self.connections[batch_id]):
            try:
                await websocket.send_json(message)
                sent_count += 1
            except Exception as e:
                logger.warning(f"Failed to send to WebSocket: {e}")
                dead_connections.add(websocket)

        for ws in dead_connections:
            self.disconnect(batch_id, ws)

        logger.debug(
            f"Broadcast to batch {batch_id}: "
            f"kind={message.get('kind')}, sent to {sent_count} clients"
        )
        return sent_count


# Global singleton instance
websocket_manager = ConnectionManager()
