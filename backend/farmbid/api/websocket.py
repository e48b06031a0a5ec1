# farmbid/api/websocket.py
import logging
from typing import Any, Dict, Set
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from farmbid.core.database import get_async_db
from farmbid.core.exceptions import NotFoundError
from farmbid.schemas.auction import AuctionResponse
from farmbid.schemas.bid import BidResponse
from farmbid.services import auction_service, bidding_service

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """Manage WebSocket connections for real-time auction updates"""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, auction_id: str):
        """Accept a new WebSocket connection for an auction"""
        await websocket.accept()
        if auction_id not in self.active_connections:
            self.active_connections[auction_id] = set()
        self.active_connections[auction_id].add(websocket)
        logger.info(
            f"WebSocket connected to auction {auction_id}. "
            f"Total connections: {len(self.active_connections[auction_id])}"
        )

    def disconnect(self, websocket: WebSocket, auction_id: str):
        """Remove a WebSocket connection"""
        if auction_id in self.active_connections:
            self.active_connections[auction_id].discard(websocket)
            if not self.active_connections[auction_id]:
                del self.active_connections[auction_id]
        logger.info(f"WebSocket disconnected from auction {auction_id}")

    async def broadcast_to_auction(self, auction_id: str, message: dict) -> int:
        """Broadcast a message to all connections watching an auction"""
        if auction_id not in self.active_connections:
            return 0

        sent = 0
        disconnected = set()
        for connection in list(self.active_connections[auction_id]):
            try:
                await connection.send_json(message)
                sent += 1
            except Exception as e:
                logger.warning(f"Error sending to WebSocket: {e}")
                disconnected.add(connection)

        # Clean up disconnected clients
        for connection in disconnected:
            self.disconnect(connection, auction_id)
        return sent


# Global connection manager
manager = ConnectionManager()


async def get_auction_snapshot(db: AsyncSession, auction_id: UUID) -> Dict[str, Any]:
    """Current auction state and its bids, best first."""
    auction = await auction_service.get_auction(db, auction_id)
    bids = await bidding_service.list_auction_bids(db, auction_id)
    return {
        "auction": AuctionResponse.model_validate(auction).model_dump(mode="json"),
        "bids": [BidResponse.model_validate(bid).model_dump(mode="json") for bid in bids],
    }


@router.websocket("/ws/auctions/{auction_id}")
async def auction_websocket(
    websocket: WebSocket,
    auction_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    """
    WebSocket endpoint for the realtime auction feed.

    On connect the client receives a snapshot of the auction; afterwards
    every committed bid or auction event is pushed as it is published.
    """
    try:
        snapshot = await get_auction_snapshot(db, auction_id)
    except NotFoundError as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return
    finally:
        # release the pooled connection; the feed itself needs no database
        await db.commit()

    channel_id = str(auction_id)
    await manager.connect(websocket, channel_id)

    try:
        await websocket.send_json({"type": "snapshot", "data": snapshot})

        # Keep connection alive and listen for messages
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        manager.disconnect(websocket, channel_id)
    except Exception as e:
        logger.error(f"WebSocket error on auction {channel_id}: {e}")
        manager.disconnect(websocket, channel_id)
