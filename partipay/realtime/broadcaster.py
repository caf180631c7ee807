"""
Fan-out of session events to subscribed realtime connections.

One broadcaster lives on each application instance (app.state) and is
closed on shutdown. Each connection follows exactly one session. Delivery
is best-effort to currently open connections with no replay, and FIFO per
connection. Connections whose send fails or exceeds
``send_timeout`` are dropped.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Protocol

from partipay.core.config import settings
from partipay.schemas.events import SessionEvent, session_event_adapter

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class SessionBroadcaster:
    # Connections are keyed by id(): starlette WebSockets are not hashable.

    def __init__(self, send_timeout: Optional[float] = None):
        self.send_timeout = settings.REALTIME_SEND_TIMEOUT_SECONDS if send_timeout is None else send_timeout
        self._subscribers: Dict[str, Dict[int, Connection]] = {}
        self._subscriptions: Dict[int, str] = {}
        self._send_locks: Dict[int, asyncio.Lock] = {}

    def subscribe(self, session_id: str, connection: Connection) -> None:
        """Follow a session. A connection already following another session is moved."""
        self.unsubscribe(connection)
        key = id(connection)
        self._subscribers.setdefault(session_id, {})[key] = connection
        self._subscriptions[key] = session_id
        self._send_locks[key] = asyncio.Lock()
        logger.debug("Connection subscribed to session %s", session_id)

    def unsubscribe(self, connection: Connection) -> None:
        key = id(connection)
        session_id = self._subscriptions.pop(key, None)
        self._send_locks.pop(key, None)
        if session_id is None:
            return
        connections = self._subscribers.get(session_id)
        if connections is not None:
            connections.pop(key, None)
            if not connections:
                del self._subscribers[session_id]

    def subscription_of(self, connection: Connection) -> Optional[str]:
        return self._subscriptions.get(id(connection))

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, {}))

    async def _send(self, connection: Connection, payload: dict) -> bool:
        lock = self._send_locks.get(id(connection))
        if lock is None:
            return False
        async with lock:
            try:
                await asyncio.wait_for(connection.send_json(payload), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                logger.warning("Dropping realtime connection after send timed out (%.1fs)", self.send_timeout)
                return False
            except Exception:
                logger.warning("Dropping realtime connection after failed send", exc_info=True)
                return False
        return True

    async def send_to(self, connection: Connection, payload: dict) -> bool:
        """Send a control message to one subscribed connection, in order with its events."""
        return await self._send(connection, payload)

    async def publish(self, session_id: str, event: SessionEvent) -> int:
        """Send one event to every connection following the session. Returns deliveries."""
        payload = session_event_adapter.dump_python(event, mode="json")
        connections = list(self._subscribers.get(session_id, {}).values())
        if not connections:
            return 0

        results = await asyncio.gather(*(self._send(c, payload) for c in connections))
        for connection, delivered in zip(connections, results):
            if not delivered:
                self.unsubscribe(connection)
        return sum(1 for delivered in results if delivered)

    async def publish_all(self, session_id: str, events: Iterable[SessionEvent]) -> None:
        for event in events:
            await self.publish(session_id, event)

    async def close(self) -> None:
        """Forget every subscription; called on application shutdown."""
        count = len(self._subscriptions)
        self._subscribers.clear()
        self._subscriptions.clear()
        self._send_locks.clear()
        logger.info("Realtime broadcaster closed (%d connections released)", count)
