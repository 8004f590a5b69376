"""
Observer Signals
================

Synchronous callback lists used to link SoC changes to cycle counters and
SoH changes of age models back to the battery.

Callbacks are invoked in registration order. There is no global listener
registry: every signal is owned by the object that emits it.
"""

from typing import Any, Callable, List


class Signal:
    """Ordered list of callbacks notified with a single value."""

    def __init__(self):
        self._callbacks: List[Callable[[Any], None]] = []

    def connect(self, callback: Callable[[Any], None]) -> None:
        """Register a callback. Registering the same callback twice has no effect."""
        if not callable(callback):
            raise TypeError(f"Signal callbacks must be callable, got {type(callback).__name__}")
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def disconnect(self, callback: Callable[[Any], None]) -> None:
        """Remove a callback (no-op if it was never registered)."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def emit(self, value: Any) -> None:
        """Notify every callback with value."""
        # copy: callbacks may (dis)connect while being notified
        for callback in list(self._callbacks):
            callback(value)

    def clear(self) -> None:
        """Remove all callbacks."""
        self._callbacks = []

    def __len__(self) -> int:
        return len(self._callbacks)
