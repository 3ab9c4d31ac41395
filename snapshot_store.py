"""
snapshot_store.py

Holds the single most recent universe snapshot. Last write wins; no history
and no merging. Readers get the immutable Snapshot value itself.
"""

import logging
from typing import Callable, List, Optional

from universe_model import Snapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    def __init__(self):
        self._current: Optional[Snapshot] = None
        self._version = 0
        self._listeners: List[Callable[[Snapshot], None]] = []

    @property
    def version(self) -> int:
        """Bumped on every replace; 0 until the first snapshot arrives."""
        return self._version

    def current(self) -> Optional[Snapshot]:
        return self._current

    def replace(self, snapshot: Snapshot):
        self._current = snapshot
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener %r failed", listener)

    def subscribe(self, listener: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
