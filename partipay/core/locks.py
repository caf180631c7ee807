import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class _SessionLock:
    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0  # holder plus waiters


class SessionLocks:
    """One asyncio.Lock per session id, scoped to an application instance.

    Mutations of one session are serialized; different sessions never
    wait on each other. A session's lock is forgotten once nobody holds
    or waits for it.
    """

    def __init__(self):
        self._locks: Dict[str, _SessionLock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        key = str(session_id)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _SessionLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(key) is entry:
                del self._locks[key]
