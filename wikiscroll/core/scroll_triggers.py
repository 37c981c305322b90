"""Scroll triggers: sentinel visibility drives feed loading.

One visibility event source, two named triggers:
- end: sentinel on the last item, loads the next page
- prefetch: sentinel a few items earlier with a larger look-ahead, prefetches

Triggers never fetch themselves; they only call feed operations.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from wikiscroll.core.feed import FeedState, FeedStateMachine
from wikiscroll.core.settings import Settings

logger = logging.getLogger(__name__)

END_TRIGGER = "end"
PREFETCH_TRIGGER = "prefetch"


@dataclass(frozen=True)
class VisibilityEvent:
    """A sentinel's position relative to the viewport.

    `distance` is pixels from the viewport's bottom edge down to the
    sentinel; zero or negative means it is on screen.
    """

    target: str
    distance: float


Handler = Callable[[VisibilityEvent], Awaitable[None]]


class Subscription:
    """A handler attached to one sentinel ref."""

    def __init__(self, events: ViewportEvents, target: str, handler: Handler) -> None:
        self._events = events
        self.target = target
        self.handler = handler
        self.active = True

    def disconnect(self) -> None:
        if self.active:
            self.active = False
            self._events._remove(self)


class ViewportEvents:
    """Visibility event source shared by all triggers of a view."""

    def __init__(self) -> None:
        self._subs: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, target: str, handler: Handler) -> Subscription:
        sub = Subscription(self, target, handler)
        self._subs[target].append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        subs = self._subs.get(sub.target)
        if subs and sub in subs:
            subs.remove(sub)
            if not subs:
                del self._subs[sub.target]

    @property
    def targets(self) -> list[str]:
        return list(self._subs)

    async def publish(self, event: VisibilityEvent) -> int:
        """Deliver an event to the handlers of its target.

        Returns:
            Number of handlers invoked (0 for unknown or stale refs)
        """
        delivered = 0
        for sub in list(self._subs.get(event.target, ())):
            if not sub.active:
                continue
            await sub.handler(event)
            delivered += 1
        if not delivered:
            logger.debug(f"No trigger for sentinel {event.target}")
        return delivered

    def close(self) -> None:
        for subs in list(self._subs.values()):
            for sub in list(subs):
                sub.disconnect()


@dataclass(frozen=True)
class Sentinel:
    """Opaque handle for the element a trigger watches."""

    name: str
    generation: int
    index: int

    @property
    def ref(self) -> str:
        return f"{self.name}:{self.generation}:{self.index}"


@dataclass(frozen=True)
class TriggerSpec:
    """A named trigger: look-ahead margin and sentinel position."""

    name: str
    margin: float
    items_before_end: int = 0

    def sentinel_for(self, state: FeedState) -> Sentinel | None:
        if not state.items:
            return None
        index = max(len(state.items) - 1 - self.items_before_end, 0)
        return Sentinel(self.name, state.generation, index)


class ScrollTriggerController:
    """Keeps the end and prefetch triggers attached to the current sentinels."""

    def __init__(
        self,
        feed: FeedStateMachine,
        events: ViewportEvents,
        settings: Settings | None = None,
    ) -> None:
        s = settings or Settings()
        self._feed = feed
        self._events = events
        self._prefetch_min_items = s.prefetch_min_items
        self._triggers: dict[str, TriggerSpec] = {
            END_TRIGGER: TriggerSpec(END_TRIGGER, s.end_trigger_margin),
            PREFETCH_TRIGGER: TriggerSpec(PREFETCH_TRIGGER, s.prefetch_trigger_margin, s.prefetch_offset),
        }
        self._actions: dict[str, Handler] = {
            END_TRIGGER: self._on_end_visible,
            PREFETCH_TRIGGER: self._on_prefetch_visible,
        }
        self._sentinels: dict[str, Sentinel | None] = {name: None for name in self._triggers}
        self._subscriptions: dict[str, Subscription] = {}
        self._attached = False

    @property
    def triggers(self) -> dict[str, TriggerSpec]:
        return dict(self._triggers)

    def attach(self) -> None:
        if self._attached:
            return
        self._attached = True
        self._feed.add_listener(self._retarget)
        self._retarget(self._feed.state)

    def close(self) -> None:
        """Disconnect both triggers and stop following the feed."""
        self._attached = False
        self._feed.remove_listener(self._retarget)
        for sub in self._subscriptions.values():
            sub.disconnect()
        self._subscriptions.clear()
        self._sentinels = {name: None for name in self._triggers}

    def sentinels(self) -> dict[str, str | None]:
        """Refs the presentation layer puts on the sentinel elements."""
        end = self._sentinels[END_TRIGGER]
        prefetch = self._sentinels[PREFETCH_TRIGGER]
        return {
            "end_trigger_ref": end.ref if end else None,
            "prefetch_trigger_ref": prefetch.ref if prefetch else None,
        }

    def _retarget(self, state: FeedState) -> None:
        """Re-create a trigger's subscription whenever its sentinel changes."""
        if not self._attached:
            return
        for name, spec in self._triggers.items():
            sentinel = spec.sentinel_for(state)
            if sentinel == self._sentinels[name]:
                continue
            old = self._subscriptions.pop(name, None)
            if old is not None:
                old.disconnect()
            self._sentinels[name] = sentinel
            if sentinel is not None:
                self._subscriptions[name] = self._events.subscribe(sentinel.ref, self._actions[name])

    async def _on_end_visible(self, event: VisibilityEvent) -> None:
        if event.distance > self._triggers[END_TRIGGER].margin:
            return
        state = self._feed.state
        if state.has_more and not state.loading:
            logger.debug(f"End sentinel {event.target} visible, loading more")
            await self._feed.load_more()

    async def _on_prefetch_visible(self, event: VisibilityEvent) -> None:
        if event.distance > self._triggers[PREFETCH_TRIGGER].margin:
            return
        state = self._feed.state
        if state.has_more and not state.preloading and len(state.items) > self._prefetch_min_items:
            logger.debug(f"Prefetch sentinel {event.target} visible, preloading")
            await self._feed.preload_more()
