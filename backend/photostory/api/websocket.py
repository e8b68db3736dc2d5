"""WebSocket push channel for render progress.

Interchangeable with polling GET /api/render/{job_id}: the same job state is
pushed on every change, and the socket closes once the job is terminal.

This module provides:
- WebSocketManager: connections per render job
- RenderProgressNotifier: job-service listener turning updates into messages
- the /ws/render/{job_id} route
"""

import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from photostory.exceptions import JobNotFoundError
from photostory.schemas.render import RenderProgress
from photostory.services.job_service import CANCELLED, progress_message

router = APIRouter()
logger = logging.getLogger(__name__)


class WebSocketManager:
    """Manages WebSocket connections for render progress updates.

    Supports multiple clients watching the same render job.
    """

    def __init__(self):
        # job_id -> list of connected websockets
        self._connections: dict[str, list[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, job_id: str) -> None:
        """Accept and register a WebSocket connection for a job."""
        await websocket.accept()
        self._connections.setdefault(job_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket, job_id: str) -> None:
        """Remove a WebSocket connection."""
        sockets = self._connections.get(job_id)
        if sockets is None:
            return
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            del self._connections[job_id]

    async def broadcast(self, job_id: str, message: dict[str, Any]) -> None:
        """Send a message to all clients watching a job."""
        disconnected = []
        for websocket in list(self._connections.get(job_id, [])):
            try:
                await websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                disconnected.append(websocket)
        for ws in disconnected:
            self.disconnect(ws, job_id)

    def get_connection_count(self, job_id: str) -> int:
        """Get the number of connected clients for a job."""
        return len(self._connections.get(job_id, []))


def create_message(update: RenderProgress) -> dict[str, Any]:
    """Push message for a job state: progress, complete, cancelled or error."""
    if update.status == "completed":
        kind = "complete"
    elif update.status == "failed":
        kind = "cancelled" if update.error == CANCELLED else "error"
    else:
        kind = "progress"
    message = {"type": kind, **update.model_dump(mode="json", by_alias=True)}
    return message


class RenderProgressNotifier:
    """Job-service listener that forwards every job change to its watchers."""

    def __init__(self, manager: WebSocketManager):
        self._manager = manager

    async def __call__(self, update: RenderProgress) -> None:
        await self._manager.broadcast(update.job_id, create_message(update))


@router.websocket("/ws/render/{job_id}")
async def render_progress_socket(websocket: WebSocket, job_id: str) -> None:
    jobs = websocket.app.state.job_service
    manager: WebSocketManager = websocket.app.state.websocket_manager

    try:
        job = await jobs.get_job(job_id)
    except JobNotFoundError:
        await websocket.close(code=4404)
        return

    await manager.connect(websocket, job_id)
    try:
        # Current state first so a late subscriber does not wait for the next change
        await websocket.send_json(create_message(progress_message(job)))
        if job.is_terminal:
            await websocket.close()
            return
        while True:
            # Client messages are ignored; receiving detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"[WS] Client left job {job_id}")
    finally:
        manager.disconnect(websocket, job_id)
