"""Qt event-loop dispatcher.

Process output arrives on reader threads and hotkey events on the pynput
listener thread. Everything that touches chat history, the recording session
or the animation generation must run on the GUI thread, so those threads post
callables here instead of calling into the app directly.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, Qt, QTimer, Signal

from logger import log


class QtDispatcher(QObject):
    _posted = Signal(object)

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        # Queued even for same-thread emits so call_soon never re-enters the caller.
        self._posted.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def call_soon(self, fn: Callable[..., Any], *args: Any) -> None:
        """Run ``fn(*args)`` on the GUI thread. Safe to call from any thread."""
        self._posted.emit(partial(fn, *args))

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> None:
        delay_ms = max(0, int(delay_s * 1000))
        self.call_soon(self._start_timer, delay_ms, partial(fn, *args))

    def _start_timer(self, delay_ms: int, callback: Callable[[], Any]) -> None:
        QTimer.singleShot(delay_ms, self, partial(self._run, callback))

    def _run(self, callback: Callable[[], Any]) -> None:
        try:
            callback()
        except Exception:
            log.exception("Unhandled error in dispatched callback")
