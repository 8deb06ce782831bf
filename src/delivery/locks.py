"""Per-order locks serializing every mutation of one order's deliveries.

These locks only serialize callers inside one process. Dispatch across
processes (API and engine) is guarded by the unique idempotency key of
``DispatchAttempt``; status changes from any process are safe because they
only ever move a delivery forward.
"""

import threading
from contextlib import contextmanager


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


class OrderLocks:
    """Re-entrant lock per order id, so reassignment can dispatch while holding it.

    A lock lives only while some thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _acquire_entry(self, order_id: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(order_id)
            if entry is None:
                entry = self._entries[order_id] = _Entry()
            entry.holders += 1
            return entry

    def _release_entry(self, order_id: str, entry: _Entry) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                del self._entries[order_id]

    @contextmanager
    def hold(self, order_id: str):
        key = str(order_id)
        entry = self._acquire_entry(key)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(key, entry)
