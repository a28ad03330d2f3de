import asyncio
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

log = logging.getLogger("powerhub.ws")


class ConnectionManager:
    """Fan-out of gateway events to connected WebSocket observers.

    Each observer has its own bounded queue; a full queue drops the message
    for that observer only.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self.active_connections: dict[WebSocket, asyncio.Queue] = {}

    async def connect(self, websocket: WebSocket) -> asyncio.Queue:
        await websocket.accept()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self.active_connections[websocket] = queue
        log.info("Client connected (%d observers)", len(self.active_connections))
        return queue

    def disconnect(self, websocket: WebSocket) -> None:
        if self.active_connections.pop(websocket, None) is not None:
            log.info("Client disconnected (%d observers)", len(self.active_connections))

    def publish(self, event: dict) -> int:
        """Queue an event for every observer. Returns how many accepted it."""
        message = json.dumps(event)
        delivered = 0
        for ws, queue in list(self.active_connections.items()):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                log.warning("Observer queue full, dropped %s event", event.get("type"))
        return delivered

    async def serve(self, websocket: WebSocket) -> None:
        """Run one observer connection until the client goes away."""
        queue = await self.connect(websocket)
        sender = asyncio.create_task(self._send_loop(websocket, queue))
        receiver = asyncio.create_task(self._receive_loop(websocket))
        try:
            done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if exc and not isinstance(exc, WebSocketDisconnect):
                    log.warning("Observer connection closed: %s", exc)
        finally:
            sender.cancel()
            receiver.cancel()
            self.disconnect(websocket)

    async def _send_loop(self, websocket: WebSocket, queue: asyncio.Queue) -> None:
        while True:
            message = await queue.get()
            await websocket.send_text(message)

    async def _receive_loop(self, websocket: WebSocket) -> None:
        while True:
            message = await websocket.receive_text()
            log.debug("WebSocket message received: %s", message)

    @property
    def count(self) -> int:
        return len(self.active_connections)
