"""Per-entity locks for repair orders and spare parts."""

import threading
from contextlib import ExitStack, contextmanager

# Acquisition order across kinds; within a kind, ascending id
_KIND_ORDER = {"order": 0, "part": 1}


class EntityLocks:
    """Lazily created mutex per (kind, id).

    Operations on unrelated orders or parts never contend. When an
    operation needs several locks they are taken in one canonical order
    (orders before parts, ids ascending), so two operations can never
    wait on each other in a cycle.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, int], threading.Lock] = {}

    def _lock_for(self, kind: str, entity_id: int) -> threading.Lock:
        key = (kind, entity_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, *keys: tuple[str, int]):
        """Hold the locks for every ``(kind, id)`` key for the block."""
        ordered = sorted(set(keys), key=lambda k: (_KIND_ORDER[k[0]], k[1]))
        with ExitStack() as stack:
            for kind, entity_id in ordered:
                stack.enter_context(self._lock_for(kind, entity_id))
            yield

    def order(self, order_id: int):
        return self.hold(("order", order_id))

    def part(self, part_id: int):
        return self.hold(("part", part_id))
