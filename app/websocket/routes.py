# =============================================================================
# app/websocket/routes.py - WebSocket Routes
# =============================================================================
# WebSocket endpoint for real-time upload progress.
#
# Connect: ws://host/ws/uploads/{batch_id}?token={jwt}
#
# Events (LedgerEvent):
#   - {"kind": "transition", "asset_id": "...", "status": "committed", "summary": {...}}
#   - {"kind": "removed", "asset_id": "...", "summary": {...}}
#   - {"kind": "quiescent", "summary": {"ready": true, ...}}
# =============================================================================

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from app.auth import authenticate_token
from app.websocket.manager import websocket_manager
from lib.errors import AuthError
from studio.uploads import get_upload_registry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/uploads/{batch_id}")
async def upload_websocket(
    websocket: WebSocket,
    batch_id: str,
    token: str = Query(..., description="JWT token for authentication")
):
    """
    WebSocket endpoint for real-time upload batch updates.

    Authentication is required via the `token` query parameter.
    User must own the batch to connect. The first message is the current
    snapshot, so a client that connects late misses nothing.
    """
    # 1. Verify JWT token
    try:
        user = authenticate_token(token)
    except AuthError as e:
        logger.warning(f"WebSocket auth failed: {e.message}")
        await websocket.close(code=4001, reason="Invalid token")
        return

    # 2. Verify user owns this batch
    coordinator = get_upload_registry().get(batch_id, owner_id=user.user_id)
    if coordinator is None:
        logger.warning(f"WebSocket: batch {batch_id} not found for user {user.user_id}")
        await websocket.close(code=4004, reason="Batch not found")
        return

    # 3. Accept connection and forward ledger events
    await websocket_manager.connect(batch_id, websocket)
    websocket_manager.watch(coordinator)

    try:
        await websocket.send_json({
            "kind": "connected",
            "batch_id": batch_id,
            "summary": coordinator.snapshot().summary(),
        })

        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
            else:
                logger.debug(f"WebSocket received: {data[:100]}")

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected from batch {batch_id}")
    finally:
        websocket_manager.disconnect(batch_id, websocket)

