"""Tests for scroll_triggers.py"""

import pytest

from wikiscroll.core.feed import FeedState, FeedStateMachine
from wikiscroll.core.scroll_triggers import (
    END_TRIGGER,
    PREFETCH_TRIGGER,
    ScrollTriggerController,
    Sentinel,
    TriggerSpec,
    ViewportEvents,
    VisibilityEvent,
)
from wikiscroll.core.settings import Settings
from wikiscroll.providers.content_types import Article, FeedQuery


@pytest.fixture
def events():
    return ViewportEvents()


@pytest.fixture
def feed(source):
    return FeedStateMachine(source, page_size=15)


@pytest.fixture
def controller(feed, events):
    ctrl = ScrollTriggerController(feed, events, Settings())
    ctrl.attach()
    return ctrl


class TestSentinels:
    """Tests for sentinel placement."""

    def test_ref_format(self):
        assert Sentinel("end", 3, 14).ref == "end:3:14"

    def test_no_sentinel_for_empty_list(self):
        assert TriggerSpec(END_TRIGGER, 200).sentinel_for(FeedState()) is None

    def test_prefetch_sentinel_before_end(self):
        items = tuple(Article(id=i, title=str(i)) for i in range(10))
        spec = TriggerSpec(PREFETCH_TRIGGER, 400, items_before_end=3)
        assert spec.sentinel_for(FeedState(items=items, generation=2)) == Sentinel("prefetch", 2, 6)

    def test_short_list_clamps_to_first_item(self):
        items = (Article(id=1, title="1"),)
        spec = TriggerSpec(PREFETCH_TRIGGER, 400, items_before_end=3)
        assert spec.sentinel_for(FeedState(items=items)).index == 0


@pytest.mark.asyncio
class TestViewportEvents:
    """Tests for the visibility event source."""

    async def test_publish_to_subscriber(self, events):
        seen = []

        async def handler(event):
            seen.append(event)

        events.subscribe("end:1:4", handler)
        delivered = await events.publish(VisibilityEvent("end:1:4", 0))

        assert delivered == 1
        assert seen == [VisibilityEvent("end:1:4", 0)]

    async def test_unknown_target_ignored(self, events):
        assert await events.publish(VisibilityEvent("end:9:9", 0)) == 0

    async def test_disconnect(self, events):
        seen = []

        async def handler(event):
            seen.append(event)

        sub = events.subscribe("end:1:4", handler)
        sub.disconnect()
        sub.disconnect()

        assert await events.publish(VisibilityEvent("end:1:4", 0)) == 0
        assert seen == []
        assert events.targets == []


@pytest.mark.asyncio
class TestScrollTriggerController:
    """Tests for the end and prefetch triggers."""

    async def test_sentinels_follow_feed(self, feed, controller):
        assert controller.sentinels() == {"end_trigger_ref": None, "prefetch_trigger_ref": None}

        await feed.mount()

        assert controller.sentinels() == {
            "end_trigger_ref": "end:1:14",
            "prefetch_trigger_ref": "prefetch:1:11",
        }

    async def test_end_trigger_loads_more(self, feed, controller, events):
        await feed.mount()

        await events.publish(VisibilityEvent("end:1:14", 150))

        assert len(feed.state.items) == 30
        assert feed.state.cursor == 2
        assert controller.sentinels()["end_trigger_ref"] == "end:1:29"

    async def test_end_trigger_outside_margin(self, feed, controller, events, source):
        await feed.mount()

        await events.publish(VisibilityEvent("end:1:14", 250))

        assert len(feed.state.items) == 15
        assert source.count("category", "all", 2) == 0

    async def test_old_sentinel_detached_after_growth(self, feed, controller, events, source):
        await feed.mount()
        await events.publish(VisibilityEvent("end:1:14", 0))

        delivered = await events.publish(VisibilityEvent("end:1:14", 0))

        assert delivered == 0
        assert source.count("category", "all", 3) == 0

    async def test_end_trigger_when_exhausted(self, feed, controller, events, source):
        source.results[("category", "all", 2)] = []
        await feed.mount()
        await feed.load_more()
        assert feed.state.has_more is False

        await events.publish(VisibilityEvent("end:1:14", 0))

        assert source.count("category", "all", 3) == 0

    async def test_prefetch_trigger_preloads(self, feed, controller, events, source):
        await feed.mount()

        await events.publish(VisibilityEvent("prefetch:1:11", 300))

        assert source.count("category", "all", 2) == 1
        assert feed.state.cursor == 1
        assert len(feed.state.items) == 15

    async def test_prefetch_trigger_needs_minimum_items(self, feed, controller, events, source):
        source.results[("category", "all", 1)] = [Article(id=i, title=str(i)) for i in range(3)]
        await feed.mount()
        ref = controller.sentinels()["prefetch_trigger_ref"]

        await events.publish(VisibilityEvent(ref, 0))

        assert source.count("category", "all", 2) == 0

    async def test_filter_change_retargets(self, feed, controller, events, source):
        await feed.mount()
        await feed.set_filter(FeedQuery.for_category("art"))

        assert controller.sentinels()["end_trigger_ref"] == "end:2:14"
        assert await events.publish(VisibilityEvent("end:1:14", 0)) == 0
        assert sorted(events.targets) == ["end:2:14", "prefetch:2:11"]

    async def test_close_disconnects(self, feed, controller, events, source):
        await feed.mount()

        controller.close()

        assert events.targets == []
        assert controller.sentinels()["end_trigger_ref"] is None
        await feed.load_more()
        assert events.targets == []


class TestTriggerSettings:
    """Tests for trigger configuration."""

    def test_margins_from_settings(self, feed, events):
        ctrl = ScrollTriggerController(
            feed, events, Settings(end_trigger_margin=50, prefetch_trigger_margin=900, prefetch_offset=5)
        )
        triggers = ctrl.triggers
        assert triggers[END_TRIGGER].margin == 50
        assert triggers[PREFETCH_TRIGGER].margin == 900
        assert triggers[PREFETCH_TRIGGER].items_before_end == 5
