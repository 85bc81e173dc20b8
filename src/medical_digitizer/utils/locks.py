# ============================================================================
# src/medical_digitizer/utils/locks.py
# ============================================================================
"""
Per-key asyncio locks.

One lock per key (document id, normalized patient name), created on first
use and dropped as soon as no task holds or waits for it.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List
import asyncio


class KeyedLocks:
    """
    Usage:
        locks = KeyedLocks()
        async with locks.hold(document_id):
            ...
    """

    def __init__(self):
        # key -> [lock, number of tasks holding or waiting]
        self._entries: Dict[str, List] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = [asyncio.Lock(), 0]
            self._entries[key] = entry
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
