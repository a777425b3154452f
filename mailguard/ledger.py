"""Idempotency ledger of delivered message ids."""

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class IdempotencyLedger:
    """Set of message ids that have been delivered successfully.

    Ids are only ever added, after a backend confirms delivery. ``claim``
    serializes concurrent dispatches of the same id so that the
    check-then-mark sequence cannot interleave.

    Usage:
        async with ledger.claim(message.id):
            if not ledger.has(message.id):
                await send(message)
                ledger.mark_sent(message.id)
    """

    def __init__(self):
        """Initialize an empty ledger."""
        self._sent: set[str] = set()
        self._lock = threading.Lock()
        # id -> (lock, number of holders and waiters)
        self._claims: dict[str, tuple[asyncio.Lock, int]] = {}

    def has(self, message_id: str) -> bool:
        """Check whether ``message_id`` was already delivered."""
        with self._lock:
            return message_id in self._sent

    def mark_sent(self, message_id: str) -> None:
        """Record ``message_id`` as delivered. Marking twice is a no-op."""
        with self._lock:
            if message_id in self._sent:
                return
            self._sent.add(message_id)
        logger.debug(f"Ledger marked {message_id} as sent")

    @asynccontextmanager
    async def claim(self, message_id: str) -> AsyncIterator[None]:
        """Hold the per-id lock for ``message_id`` for the duration of the block."""
        with self._lock:
            lock, refs = self._claims.get(message_id, (None, 0))
            if lock is None:
                lock = asyncio.Lock()
            self._claims[message_id] = (lock, refs + 1)

        try:
            async with lock:
                yield
        finally:
            with self._lock:
                lock, refs = self._claims[message_id]
                if refs <= 1:
                    del self._claims[message_id]
                else:
                    self._claims[message_id] = (lock, refs - 1)

    def __contains__(self, message_id: object) -> bool:
        with self._lock:
            return message_id in self._sent

    def __len__(self) -> int:
        with self._lock:
            return len(self._sent)
