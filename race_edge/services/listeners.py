"""
Change-notification registry owned by a :class:`RaceTracker`.

Holds callback references only.  Listeners may unsubscribe (themselves or
others) while a notification is in flight; the current round still runs
over the snapshot taken when it started.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from race_edge.core.records import EventRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class LedgerChange:
    """What changed.  ``kind`` is one of logged / undone / rebuilt / reset."""

    kind: str
    ledger_size: int
    record: Optional[EventRecord] = None


Listener = Callable[[LedgerChange], None]


class ListenerRegistry:
    def __init__(self):
        self._listeners: List[Listener] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass  # already removed

    def notify(self, change: LedgerChange) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(change)
            except Exception as exc:
                logger.error("Listener %r failed on %s: %s", listener, change.kind, exc, exc_info=True)
