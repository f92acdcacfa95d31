import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class AlreadyInFlight(RuntimeError):
    pass


class InFlightGuard:
    """Rejects a second request for the same key while the first is still running."""

    def __init__(self, name: str):
        self.name = name
        self._keys = set()
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._lock:
            if key in self._keys:
                raise AlreadyInFlight(f"A {self.name} request is already in progress")
            self._keys.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._keys.discard(key)

    def is_held(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._keys


checkout_guard = InFlightGuard("checkout")
transition_guard = InFlightGuard("status update")
