"""
Unit tests for the change feed.

Run: pytest tests/unit/test_change_feed_service.py -v
"""

import pytest

from services.change_feed_service import ChangeFeed, get_change_feed
from models.pricing_record import ChangeAction, RecordChangeEvent


def _event() -> RecordChangeEvent:
    return RecordChangeEvent(action=ChangeAction.UPDATED, record_ids=["rec-1"], actor="u-1")


class TestChangeFeed:

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self):
        feed = ChangeFeed()
        seen = []

        async def async_listener(event):
            seen.append(("async", event.record_ids))

        feed.subscribe(lambda event: seen.append(("sync", event.record_ids)))
        feed.subscribe(async_listener)

        await feed.publish(_event())

        assert seen == [("sync", ["rec-1"]), ("async", ["rec-1"])]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        feed = ChangeFeed()
        seen = []
        unsubscribe = feed.subscribe(seen.append)

        unsubscribe()
        unsubscribe()
        await feed.publish(_event())

        assert seen == []
        assert feed.listener_count == 0

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_others(self):
        feed = ChangeFeed()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        feed.subscribe(broken)
        feed.subscribe(seen.append)

        await feed.publish(_event())

        assert len(seen) == 1

    def test_singleton(self):
        assert get_change_feed() is get_change_feed()
