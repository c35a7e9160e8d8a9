"""One-shot guard for callbacks that several trigger paths may race to fire."""

from __future__ import annotations

import threading


class Latch:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def fire(self) -> bool:
        """Close the latch. Only the first caller gets True."""
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True
