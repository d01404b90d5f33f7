"""Window evaluator: recomputes the active reminder slots on every tick.

Meeting and note tracks are evaluated independently with the same rule:
the first candidate in feed order that is not dismissed today, falls on
today's calendar day, and started no more than ``window`` ago is active.

The logout checkpoint is edge-triggered: it is raised when the wall clock
reads the checkpoint hour:minute and today's acknowledgment is missing, then
stays raised until dismissed or until the day it fired on ends.
"""

from __future__ import annotations

from collections.abc import Container, Sequence
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, TypeVar

import structlog

from src.reminders.models import (
    ActiveState,
    MeetingCandidate,
    NoteCandidate,
    ReminderKind,
    day_key,
)

if TYPE_CHECKING:
    from src.reminders.aggregator import CandidateAggregator
    from src.reminders.ledger import DismissalLedger

logger = structlog.get_logger()

C = TypeVar("C", MeetingCandidate, NoteCandidate)

DEFAULT_WINDOW = timedelta(minutes=5)


def select_candidate(
    candidates: Sequence[C],
    dismissed: Container[str],
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> C | None:
    """First candidate with 0 <= now - trigger_time <= window on now's day."""
    for candidate in candidates:
        if candidate.id in dismissed:
            continue
        trigger = candidate.trigger_time.astimezone(now.tzinfo)
        if trigger.date() != now.date():
            continue
        if timedelta(0) <= now - trigger <= window:
            return candidate
    return None


def logout_due(now: datetime, hour: int = 16, minute: int = 30) -> bool:
    return now.hour == hour and now.minute == minute


class WindowEvaluator:
    """Sole owner of ActiveState."""

    def __init__(
        self,
        aggregator: CandidateAggregator,
        ledger: DismissalLedger,
        *,
        window: timedelta = DEFAULT_WINDOW,
        logout_hour: int = 16,
        logout_minute: int = 30,
    ) -> None:
        self._aggregator = aggregator
        self._ledger = ledger
        self._window = window
        self._logout_hour = logout_hour
        self._logout_minute = logout_minute
        self._state = ActiveState()
        self._logout_day: str | None = None

    @property
    def state(self) -> ActiveState:
        return self._state

    def evaluate(self, now: datetime) -> ActiveState:
        """Recompute every slot from the current candidates, ledger and clock."""
        day = day_key(now)
        meeting = select_candidate(
            self._aggregator.meetings,
            self._ledger.dismissed_ids(ReminderKind.meeting, day),
            now,
            self._window,
        )
        note = select_candidate(
            self._aggregator.notes,
            self._ledger.dismissed_ids(ReminderKind.note, day),
            now,
            self._window,
        )

        # Raised only for the day it fired on
        logout = self._state.logout_active and self._logout_day == day
        if self._ledger.is_logout_dismissed(day):
            logout = False
        elif not logout and logout_due(now, self._logout_hour, self._logout_minute):
            logout = True
            self._logout_day = day
            logger.info("logout_checkpoint_raised", day=day)

        self._state = ActiveState(active_meeting=meeting, active_note=note, logout_active=logout)
        logger.debug(
            "reminder_tick",
            now=now.isoformat(),
            meeting_id=meeting.id if meeting else None,
            note_id=note.id if note else None,
            logout_active=logout,
        )
        return self._state

    def clear(self, kind: ReminderKind) -> ActiveState:
        """Drop one slot immediately, without waiting for the next tick."""
        if kind == ReminderKind.meeting:
            self._state = replace(self._state, active_meeting=None)
        elif kind == ReminderKind.note:
            self._state = replace(self._state, active_note=None)
        else:
            self._state = replace(self._state, logout_active=False)
            self._logout_day = None
        return self._state
