"""Global start/stop toggle key, listened for with pynput."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from loguru import logger

from config import DEFAULT_HOTKEY

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore


class ToggleHotkey:
    """Calls ``on_toggle`` once per press of the configured key.

    Keys are compared by their pynput string form ("Key.alt_r", "'g'").
    Auto-repeat while the key is held down does not toggle again.
    """

    def __init__(self, hotkey_name: str = DEFAULT_HOTKEY) -> None:
        self.hotkey_name = hotkey_name
        self._on_toggle: Optional[Callable[[], None]] = None
        self._listener: Any = None
        self._held = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._listener is not None

    def start(self, on_toggle: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        if self._listener is not None:
            return
        self._on_toggle = on_toggle
        self._listener = keyboard.Listener(on_press=self._handle_press, on_release=self._handle_release)
        self._listener.start()
        logger.info(f"Listening for toggle key {self.hotkey_name}")

    def stop(self) -> None:
        if self._listener is None:
            return
        self._listener.stop()
        self._listener = None
        self._on_toggle = None

    def _handle_press(self, key: object) -> None:
        if str(key) != self.hotkey_name:
            return
        with self._lock:
            repeat = self._held
            self._held = True
        if not repeat and self._on_toggle is not None:
            self._on_toggle()

    def _handle_release(self, key: object) -> None:
        if str(key) == self.hotkey_name:
            with self._lock:
                self._held = False
