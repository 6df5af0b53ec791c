# =============================================================================
# app/websocket/__init__.py - WebSocket Module
# =============================================================================
# Provides real-time ledger updates for upload batches.
#
# Usage:
#   from app.websocket import websocket_manager
#
#   # Forward a batch's LedgerEvents to every client watching it
#   websocket_manager.watch(coordinator)
#
#   # Or push a message directly
#   await websocket_manager.broadcast(batch_id, {"type": "transition", ...})
# =============================================================================

from app.websocket.manager import websocket_manager

__all__ = [
    "websocket_manager",
]
