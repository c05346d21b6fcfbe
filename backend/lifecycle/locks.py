"""Per-shipment mutual exclusion for read-modify-write cycles in this process."""

from __future__ import annotations

import asyncio
import weakref


class ShipmentLocks:
    """
    Hands out one asyncio.Lock per shipment id.

    Locks are weakly held: once no coroutine references a shipment's lock
    it is dropped, so the registry does not grow with the fleet.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def for_shipment(self, shipment_id: str) -> asyncio.Lock:
        lock = self._locks.get(shipment_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[shipment_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


shipment_locks = ShipmentLocks()
