"""Global push-to-talk hotkey based on pynput."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from interfaces import Dispatcher
from logger import log

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore


class PushToTalkHotkey:
    """Calls ``on_press`` when the key goes down and ``on_release`` when it comes up.

    pynput delivers key events on its listener thread; both callbacks are
    posted to the dispatcher. OS auto-repeat presses are collapsed.
    """

    def __init__(self, dispatcher: Dispatcher, hotkey_name: str = "Key.f9") -> None:
        self._dispatcher = dispatcher
        self._hotkey_name = hotkey_name
        self._listener: Optional[object] = None
        self._held = False
        self._lock = threading.Lock()

    @property
    def hotkey_name(self) -> str:
        return self._hotkey_name

    def start(self, on_press: Callable[[], None], on_release: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._listener = keyboard.Listener(
            on_press=lambda key: self._key_down(key, on_press),
            on_release=lambda key: self._key_up(key, on_release),
        )
        self._listener.start()
        log.info("push-to-talk hotkey active: %s", self._hotkey_name)

    def stop(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()

    def _matches(self, key: object) -> bool:
        return str(key) == self._hotkey_name

    def _key_down(self, key: object, callback: Callable[[], None]) -> None:
        if not self._matches(key):
            return
        with self._lock:
            if self._held:
                return
            self._held = True
        self._dispatcher.call_soon(callback)

    def _key_up(self, key: object, callback: Callable[[], None]) -> None:
        if not self._matches(key):
            return
        with self._lock:
            if not self._held:
                return
            self._held = False
        self._dispatcher.call_soon(callback)
