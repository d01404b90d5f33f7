"""In-process snapshot feeds keyed by (collection, reference_id).

The dashboard backend publishes the full, ordered list of documents for an
agent's collection whenever it changes; every subscriber receives that whole
list. A new subscriber receives the current snapshot immediately.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from src.reminders.contracts import SnapshotCallback, SnapshotFeed, Unsubscribe

logger = structlog.get_logger()

MEETINGS = "meetings"
NOTES = "notes"
COLLECTIONS = frozenset({MEETINGS, NOTES})

_FeedKey = tuple[str, str]


class SnapshotFeedHub:
    """Holds the latest snapshot per feed and fans it out to subscribers."""

    def __init__(self) -> None:
        self._snapshots: dict[_FeedKey, tuple[dict[str, Any], ...]] = {}
        self._subscribers: dict[_FeedKey, list[SnapshotCallback]] = defaultdict(list)

    def feed(self, collection: str, reference_id: str) -> HubFeed:
        return HubFeed(self, self._key(collection, reference_id))

    def snapshot(self, collection: str, reference_id: str) -> tuple[dict[str, Any], ...]:
        return self._snapshots.get(self._key(collection, reference_id), ())

    def publish(
        self, collection: str, reference_id: str, docs: Sequence[Mapping[str, Any]]
    ) -> int:
        """Replace the snapshot and deliver it. Returns the number of subscribers reached."""
        key = self._key(collection, reference_id)
        snapshot = tuple(dict(doc) for doc in docs)
        self._snapshots[key] = snapshot
        subscribers = list(self._subscribers.get(key, ()))
        for callback in subscribers:
            self._deliver(key, callback, snapshot)
        logger.info(
            "feed_published",
            collection=collection,
            reference_id=reference_id,
            documents=len(snapshot),
            subscribers=len(subscribers),
        )
        return len(subscribers)

    def subscriber_count(self, collection: str, reference_id: str) -> int:
        return len(self._subscribers.get(self._key(collection, reference_id), ()))

    def add_subscriber(self, key: _FeedKey, callback: SnapshotCallback) -> Unsubscribe:
        self._subscribers[key].append(callback)
        self._deliver(key, callback, self._snapshots.get(key, ()))

        def _unsubscribe() -> None:
            if callback in self._subscribers[key]:
                self._subscribers[key].remove(callback)

        return _unsubscribe

    @staticmethod
    def _key(collection: str, reference_id: str) -> _FeedKey:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection '{collection}' (expected one of {sorted(COLLECTIONS)})")
        return collection, reference_id

    @staticmethod
    def _deliver(
        key: _FeedKey, callback: SnapshotCallback, snapshot: tuple[dict[str, Any], ...]
    ) -> None:
        try:
            callback(list(snapshot))
        except Exception:
            logger.exception("feed_subscriber_failed", collection=key[0], reference_id=key[1])


class HubFeed(SnapshotFeed):
    """SnapshotFeed view onto one hub key."""

    def __init__(self, hub: SnapshotFeedHub, key: _FeedKey) -> None:
        self._hub = hub
        self._key = key

    def subscribe(self, on_snapshot: SnapshotCallback) -> Unsubscribe:
        return self._hub.add_subscriber(self._key, on_snapshot)
