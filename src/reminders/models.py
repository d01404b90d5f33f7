"""Reminder candidates, active state and feed document mapping.

Candidates are immutable; a feed snapshot replaces the whole list.
All trigger times are normalized to timezone-aware datetimes in the engine's
zone (tz=None means the system local zone).
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from enum import StrEnum
from typing import Any

from src.infra.errors import MalformedCandidateError


class ReminderKind(StrEnum):
    meeting = "meeting"
    note = "note"
    logout = "logout"


@dataclass(frozen=True)
class MeetingCandidate:
    """A scheduled meeting that may surface as a reminder at its start time."""

    id: str
    title: str
    trigger_time: datetime


@dataclass(frozen=True)
class NoteCandidate:
    """An ad-hoc note reminder that surfaces at its remind-at instant."""

    id: str
    activity_type: str
    remarks_text: str
    trigger_time: datetime


ReminderCandidate = MeetingCandidate | NoteCandidate


@dataclass(frozen=True)
class ActiveState:
    """What is currently surfaced: one slot per track."""

    active_meeting: MeetingCandidate | None = None
    active_note: NoteCandidate | None = None
    logout_active: bool = False


def day_key(moment: datetime) -> str:
    """Calendar-day ledger key (YYYY-MM-DD) in the moment's own zone."""
    return moment.date().isoformat()


def to_local_datetime(value: Any, tz: tzinfo | None = None) -> datetime:
    """Normalize a stored trigger value to an aware datetime in ``tz``.

    Accepts datetimes (naive ones are taken as local wall time), dates,
    ISO-8601 strings, epoch milliseconds, server timestamp mappings
    ({"seconds", "nanoseconds"} with or without a leading underscore) and
    objects exposing ``to_datetime()``.

    Raises ValueError or TypeError when the value cannot be interpreted,
    including values that fall outside the representable datetime range.
    """
    try:
        return _convert(value, tz)
    except OverflowError as e:
        raise ValueError(f"trigger time out of range: {e}") from e


def _convert(value: Any, tz: tzinfo | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz) if tz is not None else value.astimezone()
        return value.astimezone(tz)

    if isinstance(value, date):
        return _convert(datetime(value.year, value.month, value.day), tz)

    if isinstance(value, bool):
        raise TypeError("boolean is not a valid trigger time")

    if isinstance(value, int | float):
        if not math.isfinite(value):
            raise ValueError(f"non-finite epoch value: {value}")
        try:
            moment = datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError) as e:
            raise ValueError(f"epoch value out of range: {value}") from e
        return moment.astimezone(tz)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty trigger time string")
        return _convert(datetime.fromisoformat(text), tz)

    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0))
        if not isinstance(seconds, int | float) or isinstance(seconds, bool):
            raise ValueError(f"timestamp mapping without numeric seconds: {dict(value)!r}")
        if not isinstance(nanos, int | float) or isinstance(nanos, bool):
            raise ValueError(f"timestamp mapping with invalid nanoseconds: {nanos!r}")
        try:
            moment = datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp seconds out of range: {seconds}") from e
        return (moment + timedelta(microseconds=nanos // 1000)).astimezone(tz)

    converter = getattr(value, "to_datetime", None)
    if callable(converter):
        return _convert(converter(), tz)

    raise TypeError(f"unsupported trigger time type: {type(value).__name__}")


def _doc_id(doc: Mapping[str, Any]) -> str:
    raw = doc.get("id")
    if raw is None or str(raw).strip() == "":
        raise MalformedCandidateError("document has no id")
    return str(raw)


def meeting_from_doc(doc: Mapping[str, Any], tz: tzinfo | None = None) -> MeetingCandidate:
    """Map a stored meeting document to a MeetingCandidate.

    Raises MalformedCandidateError if the id or start time is unusable.
    """
    doc_id = _doc_id(doc)
    try:
        trigger = to_local_datetime(doc.get("start_date"), tz)
    except (TypeError, ValueError) as e:
        raise MalformedCandidateError(f"meeting {doc_id}: {e}", doc_id=doc_id) from e
    title = doc.get("type_activity") or doc.get("title") or ""
    return MeetingCandidate(id=doc_id, title=str(title), trigger_time=trigger)


def note_from_doc(doc: Mapping[str, Any], tz: tzinfo | None = None) -> NoteCandidate | None:
    """Map a stored note document to a NoteCandidate.

    Notes without a remind-at value are not reminders: returns None.
    Raises MalformedCandidateError if remind-at is present but unusable.
    """
    remind_at = doc.get("remind_at", doc.get("remindAt"))
    if remind_at is None or remind_at == "":
        return None
    doc_id = _doc_id(doc)
    try:
        trigger = to_local_datetime(remind_at, tz)
    except (TypeError, ValueError) as e:
        raise MalformedCandidateError(f"note {doc_id}: {e}", doc_id=doc_id) from e
    activity_type = doc.get("type_activity") or doc.get("activity_type") or ""
    return NoteCandidate(
        id=doc_id,
        activity_type=str(activity_type),
        remarks_text=str(doc.get("remarks") or ""),
        trigger_time=trigger,
    )
