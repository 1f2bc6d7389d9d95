"""Signer nonce sources for replay-resistant message digests."""

import asyncio
import logging
from typing import Dict, Optional, Protocol, Tuple

from eth_utils import to_checksum_address

logger = logging.getLogger(__name__)


class NonceSource(Protocol):
    """Supplies a strictly increasing nonce per signer and scope."""

    async def next_nonce(self, address: str, scope: str) -> int:
        """Reserve and return the next nonce for ``address`` in ``scope``."""
        ...


class InMemoryNonceSource:
    """Process-local monotonic nonce counters.

    Counters are keyed by ``(checksum address, scope)`` and each key has its
    own lock. Suitable for a single SDK process; anything shared across
    processes needs a persistent implementation of ``NonceSource``.
    """

    def __init__(self, start: int = 0):
        self._start = start
        self._next: Dict[Tuple[str, str], int] = {}
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def _key(self, address: str, scope: str) -> Tuple[str, str]:
        return (to_checksum_address(address), scope)

    def _get_lock(self, key: Tuple[str, str]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def next_nonce(self, address: str, scope: str) -> int:
        key = self._key(address, scope)
        async with self._get_lock(key):
            nonce = self._next.get(key, self._start)
            self._next[key] = nonce + 1
        logger.debug("Reserved nonce %d for %s scope=%s", nonce, key[0], scope)
        return nonce

    def peek(self, address: str, scope: str) -> int:
        """Next nonce that would be handed out, without reserving it."""
        return self._next.get(self._key(address, scope), self._start)

    def reset(self, address: Optional[str] = None, scope: Optional[str] = None) -> None:
        """Forget counters, optionally only those matching ``address``/``scope``."""
        wanted = to_checksum_address(address) if address else None
        for key in list(self._next):
            if (wanted is None or key[0] == wanted) and (scope is None or key[1] == scope):
                del self._next[key]
