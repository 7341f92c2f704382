"""
Synchronous observer channel used for core notifications.

Each notification kind (connectivity, counts, current plan) gets its own
Notifier. Listeners are invoked in subscription order on the emitting
thread, so delivery is ordered relative to the packet that caused it.
A failing listener is logged and never breaks the emitter.

An emit made by a listener while the same Notifier is dispatching on that
thread is queued and delivered after the current round has reached every
listener. Each listener therefore sees values in emission order and ends on
the latest one.
"""

import threading
from collections import deque
from typing import Callable, List

from production_counter.utils.AppLogging import logger


class Notifier:
    """Ordered list of callbacks for one notification kind."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Callable] = []
        self._lock = threading.Lock()
        # Per-thread queue of pending emits; set only while dispatching
        self._local = threading.local()

    def subscribe(self, callback: Callable) -> None:
        with self._lock:
            if callback not in self._listeners:
                self._listeners.append(callback)

    def unsubscribe(self, callback: Callable) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def emit(self, *args) -> None:
        pending = getattr(self._local, "pending", None)
        if pending is not None:
            pending.append(args)
            return

        pending = self._local.pending = deque([args])
        try:
            while pending:
                self._dispatch(pending.popleft())
        finally:
            self._local.pending = None

    def _dispatch(self, args: tuple) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for callback in listeners:
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"[Notifier] Listener error on '{self.name}': {e}", exc_info=True)
