"""Candidate aggregator: the current meeting and note lists, one per feed.

Each snapshot replaces its list wholesale. Documents that cannot be mapped
are dropped one by one; siblings in the same snapshot are kept.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import tzinfo
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from src.infra.errors import MalformedCandidateError
from src.reminders.models import MeetingCandidate, NoteCandidate, meeting_from_doc, note_from_doc

if TYPE_CHECKING:
    from src.reminders.contracts import SnapshotFeed, Unsubscribe

logger = structlog.get_logger()

T = TypeVar("T")


def _map_snapshot(
    docs: Sequence[Any],
    mapper: Callable[[Mapping[str, Any], tzinfo | None], T | None],
    tz: tzinfo | None,
    feed: str,
) -> list[T]:
    candidates: list[T] = []
    for doc in docs:
        if not isinstance(doc, Mapping):
            logger.warning("candidate_malformed", feed=feed, error="document is not a mapping")
            continue
        try:
            candidate = mapper(doc, tz)
        except MalformedCandidateError as e:
            logger.warning("candidate_malformed", feed=feed, doc_id=e.doc_id, error=str(e))
            continue
        if candidate is not None:
            candidates.append(candidate)
    return candidates


class CandidateAggregator:
    """Holds the latest full candidate lists delivered by the two feeds."""

    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz
        self._meetings: tuple[MeetingCandidate, ...] = ()
        self._notes: tuple[NoteCandidate, ...] = ()
        self._unsubscribes: list[Unsubscribe] = []

    @property
    def meetings(self) -> tuple[MeetingCandidate, ...]:
        return self._meetings

    @property
    def notes(self) -> tuple[NoteCandidate, ...]:
        return self._notes

    def attach(self, meeting_feed: SnapshotFeed, note_feed: SnapshotFeed) -> None:
        """Subscribe to both feeds. Call detach() to cancel."""
        self._unsubscribes.append(meeting_feed.subscribe(self.replace_meetings))
        self._unsubscribes.append(note_feed.subscribe(self.replace_notes))

    def detach(self) -> None:
        while self._unsubscribes:
            self._unsubscribes.pop()()

    def replace_meetings(self, docs: Sequence[Any]) -> None:
        self._meetings = tuple(_map_snapshot(docs, meeting_from_doc, self._tz, "meetings"))
        logger.debug("meetings_snapshot", received=len(docs), candidates=len(self._meetings))

    def replace_notes(self, docs: Sequence[Any]) -> None:
        self._notes = tuple(_map_snapshot(docs, note_from_doc, self._tz, "notes"))
        logger.debug("notes_snapshot", received=len(docs), candidates=len(self._notes))
