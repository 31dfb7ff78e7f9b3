import logging
from typing import Callable, List

from .datatypes import ProgressEvent

logger = logging.getLogger(__name__)

Listener = Callable[[ProgressEvent], None]


class ProgressChannel:
    """
    Progress events for a bulk operation.

    Listeners are called synchronously in the order they subscribed, and
    every published event is kept in `history` in publish order.
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self.history: List[ProgressEvent] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        self.history.append(event)
        logger.debug(f"Progress {event.step}: {len(event.affected_so_far)} student(s) so far")
        for listener in list(self._listeners):
            listener(event)
