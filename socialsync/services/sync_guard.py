# socialsync/services/sync_guard.py
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from socialsync.errors import AlreadyInProgress


class SyncGuard:
    """At most one sync per key (``account:<id>``, ``catalog:<ws>:<platform>``) in this process.

    Overlapping triggers fail fast with AlreadyInProgress rather than queueing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._running: Dict[str, bool] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._lock:
            if self._running.get(key):
                raise AlreadyInProgress(key)
            self._running[key] = True
        try:
            yield
        finally:
            with self._lock:
                self._running.pop(key, None)

    def is_running(self, key: str) -> bool:
        with self._lock:
            return bool(self._running.get(key))


def account_key(account_id: int) -> str:
    return f"account:{account_id}"


def catalog_key(workspace_id: str, platform: str) -> str:
    return f"catalog:{workspace_id}:{platform}"
