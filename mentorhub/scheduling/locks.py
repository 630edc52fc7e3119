from contextlib import contextmanager
from threading import Lock
from typing import Hashable, Iterator

from mentorhub.scheduling.errors import LedgerUnavailable


class KeyedLockRegistry:
    """Hands out one mutex per key, dropping it once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._entries: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable, timeout: float) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [Lock(), 0])
            entry[1] += 1

        lock = entry[0]
        try:
            if not lock.acquire(timeout=timeout):
                raise LedgerUnavailable('The booking calendar is busy. Please try again in a moment.')
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
