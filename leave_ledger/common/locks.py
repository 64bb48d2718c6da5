"""Keyed asyncio mutual-exclusion scopes.

``KeyedLock`` hands out one ``asyncio.Lock`` per hashable key and forgets it
once no coroutine holds or waits on it, so the registry only grows with the
number of keys in flight::

    balance_locks = KeyedLock("balance")

    async with balance_locks.hold((employee_id, leave_type_id, year)):
        ...  # read-validate-write-commit

Scopes are per process. Cross-process safety comes from the conditional
UPDATE statements in ``leave_ledger.leave.store``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLock:
    """A registry of asyncio locks addressed by key."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                logger.debug("%s scope acquired: %s", self.name, key)
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)
