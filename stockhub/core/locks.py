import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLockArena:
    """Per-key exclusive locks, created on demand and dropped once nobody waits on them.

    Keys passed to a single ``hold`` call are acquired in a stable sorted order so
    two callers asking for overlapping key sets cannot deadlock each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.holders += 1
            return entry

    def _checkin(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(key, None)

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        ordered = sorted(set(keys), key=repr)
        acquired: list[tuple[Hashable, _Entry]] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                try:
                    entry.lock.acquire()
                except BaseException:
                    self._checkin(key, entry)
                    raise
                acquired.append((key, entry))
            yield
        finally:
            for key, entry in reversed(acquired):
                entry.lock.release()
                self._checkin(key, entry)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)


stock_locks = KeyedLockArena()
pool_locks = KeyedLockArena()


def stock_key(product_id: int, warehouse_code: str) -> tuple[str, int, str]:
    return ("stock", product_id, warehouse_code)


def product_key(product_id: int) -> tuple[str, int]:
    return ("product", product_id)


def pool_key(pool_id: int) -> tuple[str, int]:
    return ("pool", pool_id)
