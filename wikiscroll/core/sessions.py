"""Feed sessions: one feed state machine and its scroll triggers per mounted view.

Provides:
- FeedSession bundling feed, triggers and their event source
- FeedSessionStore, an in-memory registry with idle eviction
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from wikiscroll.core.article_source import ArticleSource
from wikiscroll.core.feed import FeedStateMachine
from wikiscroll.core.scroll_triggers import ScrollTriggerController, ViewportEvents
from wikiscroll.core.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class FeedSession:
    """A mounted feed view."""

    id: str
    feed: FeedStateMachine
    events: ViewportEvents
    triggers: ScrollTriggerController
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def touch(self) -> None:
        """Update last_activity timestamp."""
        self.last_activity = datetime.now(timezone.utc)

    async def mount(self) -> None:
        """Attach triggers and run the initial unfiltered load."""
        self.triggers.attach()
        await self.feed.mount()

    def close(self) -> None:
        """Unmount: disconnect triggers, then drop the feed."""
        self.triggers.close()
        self.events.close()
        self.feed.close()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "state": self.feed.state.to_dict(),
            "sentinels": self.triggers.sentinels(),
            "started_at": self.started_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }


class FeedSessionStore:
    """In-memory store for FeedSessions. Thread-safe."""

    def __init__(self, source: ArticleSource, settings: Settings | None = None) -> None:
        self._source = source
        self._settings = settings or Settings()
        self._sessions: dict[str, FeedSession] = {}
        self._lock = threading.Lock()

    def create(self) -> FeedSession:
        """Create an unmounted session; the caller awaits `mount()`."""
        self.evict_idle()
        feed = FeedStateMachine(self._source, page_size=self._settings.page_size)
        events = ViewportEvents()
        session = FeedSession(
            id=str(uuid.uuid4()),
            feed=feed,
            events=events,
            triggers=ScrollTriggerController(feed, events, self._settings),
        )
        with self._lock:
            self._sessions[session.id] = session
        logger.info(f"Feed session {session.id} created")
        return session

    def get(self, session_id: str) -> FeedSession | None:
        """Get session by ID (and mark it active), or None if not found."""
        with self._lock:
            session = self._sessions.get(session_id)
        if session:
            session.touch()
        return session

    def close(self, session_id: str) -> bool:
        """Tear down and remove a session. Returns True if it existed."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        logger.info(f"Feed session {session_id} closed")
        return True

    def evict_idle(self, now: datetime | None = None) -> int:
        """Close sessions idle longer than the configured TTL. Returns count."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self._settings.session_ttl_seconds)
        with self._lock:
            stale = [s for s in self._sessions.values() if s.last_activity < cutoff]
            for session in stale:
                del self._sessions[session.id]
        for session in stale:
            session.close()
        if stale:
            logger.info(f"Evicted {len(stale)} idle feed sessions")
        return len(stale)

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# Global store instance
_store: FeedSessionStore | None = None


def init_session_store(source: ArticleSource, settings: Settings | None = None) -> FeedSessionStore:
    """Initialize the global FeedSessionStore."""
    global _store
    _store = FeedSessionStore(source, settings)
    return _store


def get_session_store() -> FeedSessionStore:
    """Get the global FeedSessionStore. Must call init_session_store first."""
    if _store is None:
        raise RuntimeError("FeedSessionStore not initialized. Call init_session_store first.")
    return _store
