"""
Change notifications for pricing records.

Writers publish a RecordChangeEvent after a successful commit; list
views subscribe to refresh without holding a live store listener.
"""

import inspect
from typing import Awaitable, Callable, Optional, Union
import structlog

from models.pricing_record import RecordChangeEvent

logger = structlog.get_logger(__name__)

ChangeListener = Callable[[RecordChangeEvent], Union[None, Awaitable[None]]]


class ChangeFeed:
    """In-process publish/subscribe hook for record writes."""

    def __init__(self):
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, event: RecordChangeEvent) -> None:
        """
        Deliver an event to every listener.

        A failing listener is logged and skipped; the write it reports
        has already been committed.
        """
        logger.debug(
            "change_published",
            action=event.action.value,
            records=len(event.record_ids),
            listeners=len(self._listeners)
        )

        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "change_listener_failed",
                    action=event.action.value,
                    error=str(e),
                    error_type=type(e).__name__
                )


_change_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    """Get or create the process-wide ChangeFeed."""
    global _change_feed
    if _change_feed is None:
        _change_feed = ChangeFeed()
    return _change_feed
