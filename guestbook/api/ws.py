"""
WebSocket live feed for check-in dashboards
"""

import json
import logging
from datetime import datetime
from typing import Dict, List
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from sqlalchemy.orm import Session

from guestbook.core.db import get_db
from guestbook.services.repositories import EventRepo

logger = logging.getLogger(__name__)

class WebSocketManager:
    """Tracks dashboard connections per event public code"""

    def __init__(self):
        # event_code -> list of websockets
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, event_code: str):
        await websocket.accept()
        self.active_connections.setdefault(event_code, []).append(websocket)
        logger.info(f"Dashboard connected to event {event_code} ({self.get_connection_count(event_code)} open)")

    def disconnect(self, websocket: WebSocket, event_code: str):
        connections = self.active_connections.get(event_code)
        if not connections or websocket not in connections:
            return
        connections.remove(websocket)
        logger.info(f"Dashboard disconnected from event {event_code} ({len(connections)} open)")
        if not connections:
            del self.active_connections[event_code]

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        try:
            await websocket.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.warning(f"Could not deliver message to dashboard: {e}")

    async def broadcast_to_event(self, event_code: str, message: dict):
        """Send to every dashboard of an event, dropping connections that fail"""
        connections = list(self.active_connections.get(event_code, []))
        if not connections:
            logger.debug(f"No dashboards connected for event {event_code}")
            return

        payload = json.dumps(message)
        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(payload)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"Dropping dashboard connection for event {event_code}: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(websocket, event_code)

    async def publish(self, event_code: str, message_type: str, **payload):
        """Broadcast a typed feed message stamped with the current time"""
        message = {"type": message_type, "timestamp": datetime.utcnow().isoformat()}
        message.update(payload)
        await self.broadcast_to_event(event_code, message)

    def get_connection_count(self, event_code: str) -> int:
        return len(self.active_connections.get(event_code, []))

    def get_all_connection_counts(self) -> Dict[str, int]:
        return {
            event_code: len(connections)
            for event_code, connections in self.active_connections.items()
        }

# Global WebSocket manager instance
websocket_manager = WebSocketManager()

router = APIRouter()

@router.websocket("/events/{event_code}")
async def websocket_endpoint(
    websocket: WebSocket,
    event_code: str,
    db: Session = Depends(get_db)
):
    """Live check-in, seating and redemption feed for one event"""
    event = EventRepo.get_by_public_code(db, event_code)
    if not event:
        await websocket.close(code=4004, reason="Event not found")
        return

    await websocket_manager.connect(websocket, event_code)

    try:
        await websocket_manager.send_personal_message({
            "type": "connection",
            "message": f"Connected to event: {event.name}",
            "event_code": event_code,
            "connection_count": websocket_manager.get_connection_count(event_code)
        }, websocket)

        while True:
            data = await websocket.receive_text()
            try:
                client_message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data}")
                continue

            if isinstance(client_message, dict) and client_message.get("type") == "ping":
                await websocket_manager.send_personal_message({
                    "type": "pong",
                    "timestamp": client_message.get("timestamp")
                }, websocket)

    except WebSocketDisconnect:
        pass
    finally:
        websocket_manager.disconnect(websocket, event_code)

@router.get("/stats")
async def websocket_stats():
    """Connection counts per event"""
    counts = websocket_manager.get_all_connection_counts()
    return {
        "total_events_with_connections": len(counts),
        "connection_counts": counts,
        "total_connections": sum(counts.values())
    }
