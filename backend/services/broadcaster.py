"""
Live channel fan-out.

A connection is anything with an async `send_json(message)`; the WebSocket
route registers Starlette websockets, tests register recorders.

`publish` only queues the event: every connection has its own outbox drained
by a worker task, so a slow observer never holds up the caller or the other
observers. A send that times out, fails, or finds the outbox full drops that
connection.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

from core.config import settings

logger = logging.getLogger(__name__)

STOCK_UPDATE = "STOCK_UPDATE"
STATS_UPDATE = "STATS_UPDATE"
ORDER_UPDATE = "ORDER_UPDATE"


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class _Outbox:
    def __init__(self, max_pending: int) -> None:
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.worker: Optional[asyncio.Task] = None

    def discard_pending(self) -> None:
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.queue.task_done()


class Broadcaster:
    def __init__(self, send_timeout: Optional[float] = None, max_pending: Optional[int] = None) -> None:
        self.send_timeout = float(send_timeout or settings.broadcast_send_timeout_seconds)
        self.max_pending = int(max_pending or settings.broadcast_max_pending)
        self._outboxes: Dict[Connection, _Outbox] = {}

    def register(self, connection: Connection) -> None:
        if connection not in self._outboxes:
            self._outboxes[connection] = _Outbox(self.max_pending)

    def unregister(self, connection: Connection) -> None:
        outbox = self._outboxes.pop(connection, None)
        if outbox is None:
            return
        if outbox.worker is not None:
            outbox.worker.cancel()
        outbox.discard_pending()

    @property
    def connection_count(self) -> int:
        return len(self._outboxes)

    async def publish(self, event_type: str, data: Any) -> int:
        """Queue one event for every live connection. Returns how many it was queued for."""
        message = {"type": event_type, "data": data}
        queued = 0
        for connection, outbox in list(self._outboxes.items()):
            try:
                outbox.queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.info("Dropping live connection: %d %s events pending", outbox.queue.qsize(), event_type)
                self.unregister(connection)
                continue
            if outbox.worker is None or outbox.worker.done():
                outbox.worker = asyncio.create_task(self._pump(connection, outbox))
            queued += 1
        return queued

    async def drain(self) -> None:
        """Wait until every queued event was sent or its connection dropped."""
        await asyncio.gather(*(o.queue.join() for o in list(self._outboxes.values())))

    async def _pump(self, connection: Connection, outbox: _Outbox) -> None:
        while True:
            message = await outbox.queue.get()
            try:
                await asyncio.wait_for(connection.send_json(message), timeout=self.send_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # includes TimeoutError
                logger.info("Dropping live connection after failed %s send: %r", message["type"], e)
                outbox.worker = None
                self.unregister(connection)
                return
            finally:
                outbox.queue.task_done()


broadcaster = Broadcaster()
